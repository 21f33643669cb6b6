"""
Pytest configuration and fixtures for Strongroom tests.
"""

import shutil
import sys
import tempfile
from pathlib import Path
from typing import Dict, Generator, Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

# Check for pytest-asyncio
try:
    import pytest_asyncio  # noqa: F401
    HAS_PYTEST_ASYNCIO = True
except ImportError:
    HAS_PYTEST_ASYNCIO = False


def pytest_collection_modifyitems(config, items):
    """Skip async tests if pytest-asyncio is not installed."""
    if HAS_PYTEST_ASYNCIO:
        return

    import asyncio
    skip_asyncio = pytest.mark.skip(
        reason="pytest-asyncio not installed - async tests require pytest-asyncio"
    )
    for item in items:
        if asyncio.iscoroutinefunction(item.function):
            item.add_marker(skip_asyncio)


@pytest.fixture(scope="session", autouse=True)
def init_test_db(tmp_path_factory):
    """Initialize a SQLite DB with the Strongroom tables."""
    db_path = tmp_path_factory.mktemp("db") / "strongroom_test.sqlite"
    database_url = f"sqlite+aiosqlite:///{db_path.as_posix()}"

    from strongroom.shared.db_service import init_db
    from strongroom.DiskGate import init_project_db
    from strongroom.RecycleGate import init_recycle_bin_db

    init_db(database_url)
    init_project_db()
    init_recycle_bin_db()

    yield


@pytest.fixture(autouse=True)
def clean_tables():
    """Start every test with empty tables."""
    from sqlalchemy import delete

    from strongroom.shared.db_service import get_session
    from strongroom.DiskGate.projects import ProjectRecord
    from strongroom.RecycleGate.models import RecycleBinItem

    with get_session() as session:
        session.execute(delete(RecycleBinItem))
        session.execute(delete(ProjectRecord))
    yield


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    # Cleanup
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def storage_root(temp_dir: Path) -> Path:
    """Storage root for project folders, pinned for the test."""
    from strongroom.DiskGate import set_storage_root

    root = temp_dir / "fm"
    root.mkdir()
    set_storage_root(str(root))
    return root


@pytest.fixture
def access_rules() -> Dict[str, list]:
    return {"Project": ["Admin", "User"], "Admin": ["Admin"], "Estimator": ["Estimator"]}


@pytest.fixture
def sample_project() -> dict:
    """Project document as the surrounding application stores it."""
    return {
        "_id": "p1",
        "projectNumber": "25-10003",
        "name": "Harbour Bridge",
        "region": "AU",
        "clientId": "c9",
    }


class FakeProjectLookup:
    """In-memory project lookup."""

    def __init__(self, *projects):
        from strongroom.DiskGate import ProjectRef

        self.projects = {}
        for project in projects:
            ref = ProjectRef.coerce(project)
            self.projects[ref.id] = ref

    def put(self, project) -> None:
        from strongroom.DiskGate import ProjectRef

        ref = ProjectRef.coerce(project)
        self.projects[ref.id] = ref

    async def get_project(self, project_id: str) -> Optional[object]:
        return self.projects.get(project_id)


@pytest.fixture
def project_lookup(sample_project) -> FakeProjectLookup:
    return FakeProjectLookup(sample_project)


@pytest.fixture
def project_folders(storage_root, project_lookup, access_rules):
    from strongroom.DiskGate import ProjectFolders

    return ProjectFolders(project_lookup, root=str(storage_root), access_rules=access_rules)


@pytest.fixture
def recycle_settings(temp_dir: Path):
    from strongroom.RecycleGate import RecycleBinSettings

    return RecycleBinSettings(
        base_path=str(temp_dir / "recycle_bin"),
        max_retention_days=7,
        max_total_size=10 * 1024 * 1024,
        max_file_size=1024 * 1024,
    )


@pytest.fixture(autouse=True)
def reset_module_state():
    """Reset module-level state between tests."""
    yield

    # Reset the probed storage root
    try:
        from strongroom.DiskGate import pathing
        pathing.reset_storage_root()
    except (ImportError, AttributeError):
        pass

    # Reset Config
    try:
        import strongroom.Config as config_module
        config_module._manager = None
    except (ImportError, AttributeError):
        pass
