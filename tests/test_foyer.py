"""
Tests for the Foyer HTTP layer: event bus, project notifier and API routes.
"""

import asyncio
import io
import os
import zipfile
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from foyer.app import create_app
from foyer.lifecycle import Services
from foyer.services.events import (
    EventBus,
    build_recycle_publisher,
    project_topic,
    recycle_bin_topic,
)
from foyer.services.notifier import ProjectNotifier
from strongroom.RecycleGate import RecycleBinService
from strongroom.WatchGate import DELETED, DiskChange, DiskWatcherService, WatcherSettings

PROJECT_DIR = "25-10003 - Harbour Bridge"


# =============================================================================
# Event Bus
# =============================================================================

class TestEventBus:
    """Tests for topic routing on the event bus."""

    @pytest.mark.asyncio
    async def test_topic_and_global_subscribers(self):
        bus = EventBus()
        everything = await bus.subscribe()
        project = await bus.subscribe(project_topic("p1"))
        other = await bus.subscribe(project_topic("p2"))

        await bus.publish("folder_sync", {"projectId": "p1"}, topic=project_topic("p1"))

        assert everything.qsize() == 1
        assert project.qsize() == 1
        assert other.qsize() == 0
        event = project.get_nowait()
        assert event["type"] == "folder_sync"
        assert event["topic"] == "project:p1"
        assert event["data"] == {"projectId": "p1"}

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        queue = await bus.subscribe("t")

        await bus.unsubscribe(queue)

        assert bus.subscriber_count("t") == 0
        await bus.publish("x", {}, topic="t")
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_full_queue_does_not_block(self):
        bus = EventBus(max_queue=1)
        queue = await bus.subscribe()

        await bus.publish("a", {})
        await bus.publish("b", {})

        assert queue.qsize() == 1
        assert [e["type"] for e in bus.get_recent()] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_recycle_publisher_routes_by_client(self):
        bus = EventBus()
        client = await bus.subscribe(recycle_bin_topic("c9"))
        publish = build_recycle_publisher(bus)

        await publish("file_deleted", {"clientId": "c9", "fileName": "a.txt"})
        await publish("items_permanently_deleted", {"deletedCount": 1})

        assert client.qsize() == 1
        assert client.get_nowait()["topic"] == "recycle_bin_c9"
        assert bus.get_recent(topic=None)[-1]["topic"] is None


# =============================================================================
# Project Notifier
# =============================================================================

def _change(recycled=False):
    return DiskChange(
        project_id="p1",
        action_type=DELETED,
        file_path="/fm/AU/p/Project/a.txt",
        relative_path="Project/a.txt",
        file_name="a.txt",
        is_folder=False,
        project_name="Harbour Bridge",
        recycle_bin_processed=recycled,
    )


class TestProjectNotifier:
    """Tests for change fan-out and long-poll waits."""

    def _notifier(self):
        watcher = MagicMock()
        watcher.on_change = AsyncMock(return_value=True)
        return ProjectNotifier(EventBus(), watcher)

    @pytest.mark.asyncio
    async def test_pending_change_returned_immediately(self):
        notifier = self._notifier()

        stamp = notifier.notify("p1")

        assert notifier.has_pending("p1")
        assert await notifier.wait_for_change("p1", timeout=0.1) == stamp
        assert not notifier.has_pending("p1")

    @pytest.mark.asyncio
    async def test_waiter_woken_by_notify(self):
        notifier = self._notifier()

        waiter = asyncio.create_task(notifier.wait_for_change("p1", timeout=5))
        await asyncio.sleep(0)
        stamp = notifier.notify("p1")

        assert await waiter == stamp
        # Consumed by the waiter, nothing left pending
        assert not notifier.has_pending("p1")

    @pytest.mark.asyncio
    async def test_concurrent_waiters_share_one_change(self):
        notifier = self._notifier()

        waiters = [asyncio.create_task(notifier.wait_for_change("p1", timeout=5)) for _ in range(3)]
        await asyncio.sleep(0)
        stamp = notifier.notify("p1")

        assert await asyncio.gather(*waiters) == [stamp, stamp, stamp]

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self):
        notifier = self._notifier()

        assert await notifier.wait_for_change("p1", timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_subscribe_attaches_watch(self):
        notifier = self._notifier()

        queue = await notifier.subscribe("p1")

        notifier.watcher.on_change.assert_awaited_once_with("p1", notifier._on_change)
        assert notifier.event_bus.subscriber_count(project_topic("p1")) == 1
        result = await notifier.unsubscribe("p1", queue)
        assert result == {"message": "Unsubscribed", "projectId": "p1"}
        assert notifier.event_bus.subscriber_count(project_topic("p1")) == 0

    @pytest.mark.asyncio
    async def test_change_published_as_folder_sync(self):
        notifier = self._notifier()
        queue = await notifier.event_bus.subscribe(project_topic("p1"))

        await notifier._on_change(_change())

        event = queue.get_nowait()
        assert event["type"] == "folder_sync"
        assert event["data"]["eventType"] == DELETED
        assert event["data"]["relativePath"] == "Project/a.txt"
        assert event["data"]["isFolder"] is False
        assert queue.empty()
        assert notifier.has_pending("p1")

    @pytest.mark.asyncio
    async def test_recycled_change_also_publishes_recycle_update(self):
        notifier = self._notifier()
        queue = await notifier.event_bus.subscribe(project_topic("p1"))

        await notifier._on_change(_change(recycled=True))

        types = [queue.get_nowait()["type"], queue.get_nowait()["type"]]
        assert types == ["folder_sync", "recycle_bin_update"]
        update = notifier.event_bus.get_recent(1)[0]["data"]
        assert update["type"] == "file_moved_to_recycle_bin"
        assert update["deletionMethod"] == "filesystem_watch"
        assert update["fileType"] == "file"


# =============================================================================
# HTTP API
# =============================================================================

@pytest.fixture
def services(project_folders, recycle_settings):
    bus = EventBus()
    recycle_bin = RecycleBinService(
        settings=recycle_settings,
        publisher=build_recycle_publisher(bus),
        restore_root=lambda: project_folders.root,
    )
    recycle_bin.ensure_storage()
    watcher = DiskWatcherService(project_folders, recycle_bin, settings=WatcherSettings(enabled=False))
    return Services(
        lookup=project_folders.lookup,
        event_bus=bus,
        folders=project_folders,
        recycle_bin=recycle_bin,
        watcher=watcher,
    )


@pytest.fixture
def client(services):
    return TestClient(create_app(services, manage_lifecycle=False))


@pytest.fixture
def project_root(storage_root):
    return storage_root / "AU" / "2025" / "10. Oct" / PROJECT_DIR


def _write(path, content="hello"):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write(content)


class TestFolderApi:
    """Tests for the /files routes."""

    def test_meta(self, client):
        response = client.get("/files/p1/meta")

        assert response.status_code == 200
        data = response.json()
        assert data["projectId"] == "p1"
        assert data["structure"] == ["Project", "Admin", "Estimator"]

    def test_unknown_project_error_shape(self, client):
        response = client.get("/files/nope/meta")

        assert response.status_code == 404
        assert response.json() == {"error": "Project not found", "details": "nope"}

    def test_folder_tree(self, client, project_root):
        client.get("/files/p1/meta")
        _write(str(project_root / "Project" / "a.txt"))

        response = client.get("/files/p1/folder-tree")

        assert response.status_code == 200
        tree = response.json()
        assert set(tree) == {"Project", "Admin", "Estimator"}
        assert tree["Project"]["__files"] == ["a.txt"]

    def test_watch_folder_tree_with_watchers_disabled(self, client):
        response = client.get("/files/p1/watch-folder-tree")

        assert response.status_code == 200
        assert "Project" in response.json()

    def test_create_folder(self, client, project_root):
        response = client.post("/files/p1/folders", json={"path": "Project/Drawings"})

        assert response.status_code == 200
        assert response.json()["created"] is True
        assert (project_root / "Project" / "Drawings").is_dir()

        again = client.post("/files/p1/folders", json={"path": "Project/Drawings"})
        assert again.json()["created"] is False
        assert again.json()["message"] == "Folder already exists"

    def test_create_folder_outside_project(self, client):
        response = client.post("/files/p1/folders", json={"path": "../../escape"})

        assert response.status_code == 403

    def test_rename_folder(self, client, project_root):
        client.post("/files/p1/folders", json={"path": "Project/Drawings"})

        response = client.put("/files/p1/folders/Project/Drawings", json={"newName": "Plans"})

        assert response.status_code == 200
        data = response.json()
        assert data["path"] == "Project/Plans"
        assert data["label"] == "Plans"
        assert data["method"] == "rename"
        assert (project_root / "Project" / "Plans").is_dir()
        assert not (project_root / "Project" / "Drawings").exists()

    def test_rename_onto_existing_conflicts(self, client):
        client.post("/files/p1/folders", json={"path": "Project/A"})
        client.post("/files/p1/folders", json={"path": "Project/B"})

        response = client.put("/files/p1/folders/Project/A", json={"newName": "B"})

        assert response.status_code == 409

    def test_rename_into_own_subfolder_rejected(self, client, project_root):
        _write(str(project_root / "Project" / "A" / "keep.txt"))

        response = client.put("/files/p1/folders/Project/A", json={"newName": "Project/A/B"})

        assert response.status_code == 400
        assert (project_root / "Project" / "A" / "keep.txt").is_file()

    def test_rename_missing_source_warns(self, client):
        client.get("/files/p1/meta")

        response = client.put("/files/p1/folders/Project/Ghost", json={"newName": "Other"})

        assert response.status_code == 200
        assert "warning" in response.json()

    def test_delete_folder_goes_to_recycle_bin(self, client, project_root):
        _write(str(project_root / "Project" / "Old" / "x.txt"))

        response = client.delete("/files/p1/folders/Project/Old", headers={"X-User-Id": "alice"})

        assert response.status_code == 200
        assert response.json()["recycleBinId"]
        assert not (project_root / "Project" / "Old").exists()

        items = client.get("/recycle-bin/items", params={"clientId": "c9"}).json()
        assert items["pagination"]["total"] == 1
        assert items["items"][0]["fileType"] == "folder"
        assert items["items"][0]["deletedBy"] == "alice"

    def test_delete_folder_on_file_rejected(self, client, project_root):
        _write(str(project_root / "Project" / "a.txt"))

        response = client.delete("/files/p1/folders/Project/a.txt")

        assert response.status_code == 400

    def test_delete_file_recycled(self, client, project_root):
        _write(str(project_root / "Project" / "a.txt"))

        response = client.delete("/files/p1/files/Project/a.txt")

        assert response.status_code == 200
        data = response.json()
        assert data["recycled"] is True
        assert data["message"] == "File moved to recycle bin"
        assert not (project_root / "Project" / "a.txt").exists()

        item = client.get(f"/recycle-bin/item/{data['recycleBinId']}").json()["item"]
        assert item["deletedBy"] == "anonymous"
        assert item["projectId"] == "p1"

    def test_excluded_file_deleted_outright(self, client, project_root):
        _write(str(project_root / "Project" / "scratch.tmp"))

        response = client.delete("/files/p1/files/Project/scratch.tmp")

        assert response.json() == {"message": "File deleted", "path": "Project/scratch.tmp", "recycled": False}
        assert not (project_root / "Project" / "scratch.tmp").exists()
        assert client.get("/recycle-bin/items").json()["pagination"]["total"] == 0

    def test_delete_missing_file(self, client):
        client.get("/files/p1/meta")

        response = client.delete("/files/p1/files/Project/none.txt")

        assert response.status_code == 404

    def test_download_file(self, client, project_root):
        _write(str(project_root / "Project" / "a.txt"), "contents")

        response = client.get("/files/p1/download/Project/a.txt")

        assert response.status_code == 200
        assert response.content == b"contents"

    def test_download_folder_is_not_found(self, client):
        client.get("/files/p1/meta")

        response = client.get("/files/p1/download/Project")

        assert response.status_code == 404

    def test_download_zip(self, client, project_root):
        _write(str(project_root / "Project" / "a.txt"))

        response = client.post("/files/p1/download-zip", json={"folderPath": "Project"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        names = zipfile.ZipFile(io.BytesIO(response.content)).namelist()
        assert "Project/a.txt" in names

    def test_watch_disk_disabled_returns_no_content(self, client):
        response = client.get("/files/p1/watch-disk", params={"timeout": 1})

        assert response.status_code == 204

    def test_notify_folder_update(self, client, services):
        response = client.post("/files/p1/notify-folder-update")

        assert response.status_code == 200
        assert response.json()["projectId"] == "p1"
        assert services.notifier.has_pending("p1")

    def test_relocate_after_rename(self, client, services, storage_root, project_root):
        old = {"_id": "p1", "projectNumber": "25-10003", "name": "Old Bridge", "region": "AU"}
        old_root = storage_root / "AU" / "2025" / "10. Oct" / "25-10003 - Old Bridge"
        _write(str(old_root / "Project" / "a.txt"))

        response = client.post("/files/p1/relocate", json={"previous": old})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert (project_root / "Project" / "a.txt").is_file()
        assert not old_root.exists()


class TestRecycleBinApi:
    """Tests for the /recycle-bin routes."""

    def _delete(self, client, project_root, name="a.txt"):
        _write(str(project_root / "Project" / name))
        return client.delete(f"/files/p1/files/Project/{name}").json()["recycleBinId"]

    def test_restore(self, client, project_root):
        item_id = self._delete(client, project_root)

        response = client.post(f"/recycle-bin/restore/{item_id}", headers={"X-User-Id": "bob"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "File restored successfully"
        assert (project_root / "Project" / "a.txt").is_file()

        again = client.post(f"/recycle-bin/restore/{item_id}")
        assert again.status_code == 409

    def test_restore_path_outside_storage_root(self, client, project_root, temp_dir):
        item_id = self._delete(client, project_root)
        outside = temp_dir / "elsewhere" / "a.txt"

        response = client.post(f"/recycle-bin/restore/{item_id}", json={"restorePath": str(outside)})

        assert response.status_code == 403
        assert not outside.exists()
        assert client.get(f"/recycle-bin/item/{item_id}").json()["item"]["canRestore"] is True

    def test_restore_bulk_requires_ids(self, client):
        response = client.post("/recycle-bin/restore-bulk", json={"recycleBinIds": []})

        assert response.status_code == 400
        assert "error" in response.json()

    def test_restore_bulk_partial(self, client, project_root):
        item_id = self._delete(client, project_root)

        response = client.post("/recycle-bin/restore-bulk", json={"recycleBinIds": [item_id, "missing"]})

        data = response.json()
        assert data["restoredCount"] == 1
        assert data["failedCount"] == 1
        assert data["results"][1]["success"] is False

    def test_permanent_delete(self, client, project_root):
        item_id = self._delete(client, project_root)

        response = client.delete(f"/recycle-bin/permanent/{item_id}")

        assert response.status_code == 200
        assert response.json()["deletedCount"] == 1
        assert client.get(f"/recycle-bin/item/{item_id}").json()["item"]["canRestore"] is False

    def test_permanent_delete_unknown(self, client):
        response = client.delete("/recycle-bin/permanent/missing")

        assert response.status_code == 404

    def test_items_sort_order_validated(self, client):
        response = client.get("/recycle-bin/items", params={"sortOrder": "sideways"})

        assert response.status_code == 400

    def test_client_listing_and_summary(self, client, project_root):
        self._delete(client, project_root, "a.txt")
        self._delete(client, project_root, "b.txt")

        listing = client.get("/recycle-bin/client/c9", params={"sortBy": "fileName", "sortOrder": "asc"}).json()
        assert [item["fileName"] for item in listing["items"]] == ["a.txt", "b.txt"]

        summary = client.get("/recycle-bin/summary").json()
        assert summary["success"] is True
        assert summary["summaries"]["c9"]["totalFiles"] == 2
        assert summary["overallSummary"]["fileCount"] == 2

    def test_cleanup(self, client):
        response = client.post("/recycle-bin/cleanup")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["cleanupCount"] == 0

    def test_unknown_item(self, client):
        response = client.get("/recycle-bin/item/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "File not found in recycle bin"


class TestHealthApi:
    """Tests for the health routes."""

    def test_healthy(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        gates = response.json()["gates"]
        assert set(gates) == {"DiskGate", "WatchGate", "RecycleGate", "Database"}
        assert gates["RecycleGate"]["details"]["cleanup_scheduled"] is False

    def test_single_gate(self, client):
        response = client.get("/api/health/gate/watchgate")

        assert response.json()["gate"] == "WatchGate"

    def test_unknown_gate(self, client):
        response = client.get("/api/health/gate/nothing")

        assert "available" in response.json()

    def test_summary_unhealthy(self, client, services, temp_dir):
        services.recycle_bin.settings.base_path = str(temp_dir / "missing")

        response = client.get("/api/health/summary")

        assert response.status_code == 503
        assert response.json()["gates"]["RecycleGate"] is False
