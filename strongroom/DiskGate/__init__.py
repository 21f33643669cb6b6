"""
DiskGate - Project folders on disk for Strongroom.

Provides:
- Canonical project paths (root/REGION/YEAR/"MM. Mon"/"number - name")
- Folder scaffolding with access-controlled subfolders and .meta.json
- Self-healing folder tree views
- Relocation of a project's tree after a rename
- Folder create/rename, ZIP export and bulk role migration

Usage:
    from strongroom.DiskGate import ProjectFolders, SqlProjectLookup

    folders = ProjectFolders(SqlProjectLookup())
    tree = await folders.build_folder_tree(project_id)

Blocking disk work runs in worker threads; the module-level functions are
synchronous and can be used directly from scripts.
"""

import asyncio
import os
from typing import Any, Dict, Optional, Tuple, Union

from strongroom import Config
from strongroom.shared.errors import AccessDenied, Conflict, InvalidInput, IOFailure, NotFound
from strongroom.shared.gate import (
    GateLogger,
    GateOperationResult,
    PathUtils,
    build_health_status,
)

from .archive import archive_filename, build_zip_archive
from .meta import (
    META_FILENAME,
    init_meta,
    move_meta,
    read_meta,
    update_meta,
    utc_timestamp,
    write_meta,
)
from .models import Invalid, Ok, PathResolution, ProjectRef
from .pathing import (
    get_storage_root,
    month_folder,
    reset_storage_root,
    resolve_project_path,
    set_storage_root,
)
from .projects import ProjectLookup, ProjectRecord, SqlProjectLookup, init_project_db
from .relocate import move_tree, reconcile_project_update, relocate_project_folder
from .scaffold import (
    DEFAULT_ACCESS_RULES,
    AccessRules,
    build_root_meta,
    create_initial_folders,
    find_folder_by_meta,
    get_access_rules,
    migrate_access_rules,
)
from .tree import FILES_KEY, locate_project_folder, repair_root_meta, walk_folder_tree

_log = GateLogger.get("DiskGate")

ProjectLike = Union[ProjectRef, Dict[str, Any]]


class ProjectFolders:
    """
    Async facade over the DiskGate functions, bound to a project lookup.

    Args:
        lookup: Resolves project IDs to ProjectRef
        root: Storage root (defaults to the probed root)
        access_rules: Folder -> roles map (defaults to FOLDER_ACCESS_RULES)
    """

    def __init__(
        self,
        lookup: ProjectLookup,
        root: Optional[str] = None,
        access_rules: Optional[AccessRules] = None,
    ):
        self.lookup = lookup
        self._root = root
        self._access_rules = access_rules

    @property
    def root(self) -> str:
        return self._root or get_storage_root()

    @property
    def access_rules(self) -> AccessRules:
        return self._access_rules if self._access_rules is not None else get_access_rules()

    def _region(self, project: ProjectRef, region: Optional[str]) -> str:
        return (region or project.region or Config.get("DEFAULT_REGION") or "AU").upper()

    # ==================== Lookup / Paths ====================

    async def get_project(self, project_id: str) -> ProjectRef:
        project = await self.lookup.get_project(project_id)
        if project is None:
            raise NotFound("Project not found", details=str(project_id))
        return project

    def resolve(
        self,
        project: ProjectLike,
        relative_folder: str = "",
        region: Optional[str] = None,
    ) -> PathResolution:
        project = ProjectRef.coerce(project)
        return resolve_project_path(project, relative_folder, self._region(project, region), self.root)

    async def locate_project_root(self, project_id: str, region: Optional[str] = None) -> str:
        """Disk root of a project, scaffolding it when it does not exist yet."""
        project = await self.get_project(project_id)
        return await self._locate(project, region)

    async def _locate(self, project: ProjectRef, region: Optional[str]) -> str:
        return await asyncio.to_thread(
            locate_project_folder,
            project,
            self._region(project, region),
            self.root,
            self.access_rules,
        )

    async def resolve_item(
        self,
        project_id: str,
        relative_path: str,
        region: Optional[str] = None,
        must_exist: bool = True,
    ) -> Tuple[ProjectRef, str, str]:
        """
        Resolve a path inside a project folder.

        Returns:
            (project, project_root, full_path)

        Raises:
            AccessDenied: the path leaves the project folder
            NotFound: must_exist and nothing is there
        """
        project = await self.get_project(project_id)
        project_root = await self._locate(project, region)

        relative = (relative_path or "").replace("\\", "/").lstrip("/")
        full_path = os.path.normpath(os.path.join(project_root, relative))
        if not PathUtils.is_within(project_root, full_path):
            raise AccessDenied("Path is outside the project folder", details=relative_path)
        if must_exist and not os.path.exists(full_path):
            raise NotFound("Path not found", details=relative_path)
        return project, project_root, full_path

    # ==================== Tree / Meta ====================

    async def build_folder_tree(self, project_id: str, region: Optional[str] = None) -> Dict[str, Any]:
        """Fresh tree of a project's folder; {} for a project with no content."""
        project_root = await self.locate_project_root(project_id, region)
        return await asyncio.to_thread(walk_folder_tree, project_root)

    async def read_root_meta(self, project_id: str, region: Optional[str] = None) -> Dict[str, Any]:
        """Root descriptor of a project, written from the project record if absent."""
        project = await self.get_project(project_id)
        project_root = await self._locate(project, region)
        defaults = build_root_meta(project, self._region(project, region), self.access_rules)
        return await asyncio.to_thread(init_meta, project_root, defaults)

    # ==================== Scaffold / Relocate ====================

    async def scaffold(self, project: ProjectLike, region: Optional[str] = None) -> bool:
        project = ProjectRef.coerce(project)
        return await asyncio.to_thread(
            create_initial_folders,
            project,
            self._region(project, region),
            self.access_rules,
            self.root,
        )

    async def relocate(
        self,
        previous: ProjectLike,
        current: ProjectLike,
        region: Optional[str] = None,
    ) -> GateOperationResult:
        current = ProjectRef.coerce(current)
        return await asyncio.to_thread(
            relocate_project_folder,
            previous,
            current,
            self._region(current, region),
            self.root,
            self.access_rules,
        )

    async def reconcile_project_update(
        self,
        previous: ProjectLike,
        current: ProjectLike,
        region: Optional[str] = None,
    ) -> GateOperationResult:
        current = ProjectRef.coerce(current)
        return await asyncio.to_thread(
            reconcile_project_update,
            previous,
            current,
            self._region(current, region),
            self.root,
            self.access_rules,
        )

    async def migrate_access_rules(self, region: Optional[str] = None) -> Dict[str, int]:
        region = (region or Config.get("DEFAULT_REGION") or "AU").upper()
        return await asyncio.to_thread(migrate_access_rules, region, self.access_rules, self.root)

    # ==================== Folder Operations ====================

    async def create_folder(
        self,
        project_id: str,
        path: str,
        role: str = "all",
        region: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a folder inside a project.

        Top-level folders get their own descriptor recording the project and
        role. An existing folder is reported, not an error.
        """
        if not path or not path.strip("/"):
            raise InvalidInput("Missing folder path")

        project, _, full_path = await self.resolve_item(project_id, path, region, must_exist=False)
        path = path.strip("/")
        result = {"projectId": project.id, "path": path, "role": role}

        if os.path.isdir(full_path):
            return {"message": "Folder already exists", "created": False, **result}

        def _create():
            os.makedirs(full_path, exist_ok=True)
            if "/" not in path:
                write_meta(full_path, {"projectId": project.id, "role": role, "createdAt": utc_timestamp()})

        try:
            await asyncio.to_thread(_create)
        except OSError as e:
            raise IOFailure("Could not create folder", details=str(e)) from e

        _log.info(f"Created folder {path} in project {project.id}")
        return {"message": "Folder created", "created": True, **result}

    async def rename_folder(
        self,
        project_id: str,
        path: str,
        new_name: str,
        region: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Rename or move a folder inside a project.

        new_name containing "/" is taken relative to the project root,
        otherwise the folder keeps its parent.

        Raises:
            AccessDenied: path is the project folder itself
            InvalidInput: the target lies inside the folder being moved
            Conflict: the target already exists
        """
        if not new_name or not new_name.strip("/"):
            raise InvalidInput("Missing newName")

        project, project_root, old_path = await self.resolve_item(project_id, path, region, must_exist=False)
        if os.path.normpath(old_path) == os.path.normpath(project_root):
            raise AccessDenied("The project folder itself cannot be renamed")
        if not os.path.exists(old_path):
            _log.warning(f"Rename source missing: {old_path}")
            return {
                "warning": "Source folder was not found on disk. Possibly already moved or renamed.",
                "path": path,
            }

        new_name = new_name.strip("/")
        if "/" in new_name:
            new_relative = new_name
        else:
            parent = os.path.dirname(path.strip("/"))
            new_relative = f"{parent}/{new_name}" if parent else new_name
        _, _, new_path = await self.resolve_item(project_id, new_relative, region, must_exist=False)

        if os.path.normpath(old_path) == os.path.normpath(new_path):
            return {"message": "No changes made", "path": path}
        if PathUtils.is_within(old_path, new_path):
            raise InvalidInput("A folder cannot be moved into itself", details=new_relative)
        if os.path.exists(new_path):
            raise Conflict("Target folder already exists", details=new_relative)

        method = await asyncio.to_thread(move_tree, old_path, new_path)
        _log.info(f"Renamed folder {path} -> {new_relative} in project {project.id} ({method})")
        return {
            "message": "Folder renamed successfully",
            "path": new_relative,
            "label": new_relative.split("/")[-1],
            "method": method,
        }

    async def archive(
        self,
        project_id: str,
        folder_path: Optional[str] = None,
        region: Optional[str] = None,
    ) -> Tuple[str, str]:
        """
        ZIP a project folder (the whole project by default).

        Returns:
            (zip_path, download_filename); the caller removes zip_path.
        """
        relative = "" if folder_path in (None, "", ".") else folder_path
        _, _, full_path = await self.resolve_item(project_id, relative, region, must_exist=False)
        if not os.path.isdir(full_path):
            raise NotFound("Folder not found on disk", details=folder_path or "root")

        zip_path = await asyncio.to_thread(build_zip_archive, full_path)
        return zip_path, archive_filename(folder_path)

    # ==================== Health ====================

    def health(self) -> Dict[str, Any]:
        root = self.root
        return build_health_status(
            gate_name="DiskGate",
            initialized=True,
            dependencies=["filesystem", "project lookup"],
            checks={"storage_root_exists": os.path.isdir(root)},
            details={"storage_root": root, "access_folders": list(self.access_rules)},
        )


__all__ = [
    # Service
    "ProjectFolders",
    "ProjectLookup",
    "SqlProjectLookup",
    "ProjectRecord",
    "init_project_db",
    # Models
    "ProjectRef",
    "Ok",
    "Invalid",
    "PathResolution",
    # Paths
    "resolve_project_path",
    "get_storage_root",
    "set_storage_root",
    "reset_storage_root",
    "month_folder",
    # Scaffold / meta
    "AccessRules",
    "DEFAULT_ACCESS_RULES",
    "get_access_rules",
    "build_root_meta",
    "create_initial_folders",
    "find_folder_by_meta",
    "migrate_access_rules",
    "META_FILENAME",
    "read_meta",
    "write_meta",
    "update_meta",
    "init_meta",
    "move_meta",
    # Tree
    "FILES_KEY",
    "walk_folder_tree",
    "locate_project_folder",
    "repair_root_meta",
    # Relocation
    "move_tree",
    "relocate_project_folder",
    "reconcile_project_update",
    # Archive
    "archive_filename",
    "build_zip_archive",
]
