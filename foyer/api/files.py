from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from strongroom import Config
from strongroom.shared.errors import AccessDenied, InvalidInput, IOFailure, NotFound
from strongroom.shared.gate import GateLogger

from foyer.api.common import acting_user

_log = GateLogger.get("Foyer.Files")


class FolderCreate(BaseModel):
    """Model for creating a folder inside a project."""
    path: str
    role: str = "all"
    region: Optional[str] = None


class FolderRename(BaseModel):
    """Model for renaming or moving a folder."""
    new_name: str = Field(alias="newName")
    region: Optional[str] = None


class RelocateRequest(BaseModel):
    """Project fields as they were before the update."""
    previous: Dict[str, Any]
    region: Optional[str] = None


class ZipRequest(BaseModel):
    folder_path: Optional[str] = Field(default=None, alias="folderPath")
    region: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_router(services) -> APIRouter:
    router = APIRouter(prefix="/files")
    folders = services.folders
    watcher = services.watcher
    notifier = services.notifier
    recycle_bin = services.recycle_bin

    # ========== Meta / Tree ==========

    @router.get("/{project_id}/meta")
    async def project_meta(project_id: str, region: Optional[str] = None):
        """Root descriptor of a project folder (written if absent)."""
        return await folders.read_root_meta(project_id, region)

    @router.get("/{project_id}/folder-tree")
    async def folder_tree(project_id: str, region: Optional[str] = None):
        """Current folder tree of a project."""
        return await folders.build_folder_tree(project_id, region)

    @router.get("/{project_id}/watch-folder-tree")
    async def watch_folder_tree(project_id: str, region: Optional[str] = None):
        """Folder tree, starting (or keeping alive) the project's disk watch."""
        if watcher.enabled:
            await notifier.attach(project_id)
            watcher.touch(project_id)
        return await folders.build_folder_tree(project_id, region)

    # ========== Change notification ==========

    @router.get("/{project_id}/watch-disk")
    async def watch_disk(project_id: str, timeout: Optional[float] = None):
        """
        Long-poll for a change in the project.

        Returns 200 {changed, projectId, timestamp} on a change, 204 when
        nothing changed before the timeout or watchers are disabled.
        """
        if not watcher.enabled:
            return Response(status_code=204)

        limit = float(Config.get("LONG_POLL_TIMEOUT_SECONDS", 60))
        if timeout is not None:
            limit = max(0.0, min(timeout, limit))

        await notifier.attach(project_id)
        watcher.touch(project_id)

        changed_at = await notifier.wait_for_change(project_id, limit)
        if changed_at is None:
            return Response(status_code=204)

        return {
            "changed": True,
            "projectId": project_id,
            "timestamp": datetime.fromtimestamp(changed_at, timezone.utc).isoformat(),
        }

    @router.get("/{project_id}/events")
    async def project_events(project_id: str):
        """SSE stream of folder_sync and recycle_bin_update events."""

        async def generate():
            queue = await notifier.subscribe(project_id)
            try:
                yield {
                    "event": "system",
                    "data": json.dumps({"message": "Connected to project stream", "projectId": project_id}),
                }

                while True:
                    try:
                        event = await asyncio.wait_for(queue.get(), timeout=30.0)
                        yield {
                            "event": event["type"],
                            "data": json.dumps(event["data"]),
                        }
                    except asyncio.TimeoutError:
                        watcher.touch(project_id)
                        yield {"event": "ping", "data": "{}"}

            except asyncio.CancelledError:
                pass
            finally:
                await notifier.unsubscribe(project_id, queue)

        return EventSourceResponse(generate())

    @router.post("/{project_id}/notify-folder-update")
    async def notify_folder_update(project_id: str):
        """Flag a project as changed (for clients that changed it themselves)."""
        notifier.notify(project_id)
        return {
            "message": "Folder update notification sent",
            "projectId": project_id,
            "timestamp": _now(),
        }

    @router.post("/{project_id}/unwatch")
    async def unwatch(project_id: str):
        stopped = await watcher.stop_watch(project_id)
        return {"message": "Stopped watching" if stopped else "Not watching", "projectId": project_id}

    # ========== Folders ==========

    @router.post("/{project_id}/folders")
    async def create_folder(project_id: str, data: FolderCreate):
        result = await folders.create_folder(project_id, data.path, data.role, data.region)
        if result.get("created"):
            notifier.notify(project_id)
        return result

    @router.delete("/{project_id}/folders/{path:path}")
    async def delete_folder(project_id: str, path: str, region: Optional[str] = None, user_id: str = Depends(acting_user)):
        """Move a folder (and everything in it) to the recycle bin."""
        project, project_root, full_path = await folders.resolve_item(project_id, path, region)
        if os.path.normpath(full_path) == os.path.normpath(project_root):
            raise AccessDenied("The project folder itself cannot be deleted", details=path)
        if not os.path.isdir(full_path):
            raise InvalidInput("Not a folder", details=path)

        result = await recycle_bin.intercept(
            full_path,
            client_id=project.client_id or project.id,
            project_id=project.id,
            user_id=user_id,
            deleted_by=user_id,
        )
        notifier.notify(project_id)
        return {"message": "Folder moved to recycle bin", "path": path, **result}

    @router.put("/{project_id}/folders/{path:path}")
    async def rename_folder(project_id: str, path: str, data: FolderRename):
        result = await folders.rename_folder(project_id, path, data.new_name, data.region)
        if "method" in result:
            notifier.notify(project_id)
        return result

    # ========== Files ==========

    @router.delete("/{project_id}/files/{path:path}")
    async def delete_file(project_id: str, path: str, region: Optional[str] = None, user_id: str = Depends(acting_user)):
        """Move a file to the recycle bin; excluded extensions are deleted outright."""
        project, _, full_path = await folders.resolve_item(project_id, path, region)
        if os.path.isdir(full_path):
            raise InvalidInput("Not a file", details=path)

        file_name = os.path.basename(full_path)
        if recycle_bin.is_excluded(file_name):
            try:
                await asyncio.to_thread(os.remove, full_path)
            except OSError as e:
                raise IOFailure("Could not delete file", details=str(e)) from e
            _log.info(f"Deleted {path} in project {project.id} (bypassed recycle bin)")
            notifier.notify(project_id)
            return {"message": "File deleted", "path": path, "recycled": False}

        result = await recycle_bin.intercept(
            full_path,
            client_id=project.client_id or project.id,
            project_id=project.id,
            user_id=user_id,
            deleted_by=user_id,
        )
        notifier.notify(project_id)
        return {"message": "File moved to recycle bin", "path": path, "recycled": True, **result}

    # ========== Relocation ==========

    @router.post("/{project_id}/relocate")
    async def relocate(project_id: str, data: RelocateRequest):
        """Move the project folder after the project's number or name changed."""
        previous = dict(data.previous)
        if "_id" not in previous and "id" not in previous:
            previous["_id"] = project_id

        current = await folders.get_project(project_id)
        result = await folders.reconcile_project_update(previous, current, data.region)
        # The watched root no longer exists under its old name
        await watcher.stop_watch(project_id)
        notifier.notify(project_id)
        return result.to_dict()

    # ========== Downloads ==========

    @router.post("/{project_id}/download-zip")
    async def download_zip(project_id: str, data: Optional[ZipRequest] = None):
        data = data or ZipRequest()
        zip_path, filename = await folders.archive(project_id, data.folder_path, data.region)
        return FileResponse(
            zip_path,
            media_type="application/zip",
            filename=filename,
            background=BackgroundTask(lambda: Path(zip_path).unlink(missing_ok=True)),
        )

    @router.get("/{project_id}/download/{path:path}")
    async def download_file(project_id: str, path: str, region: Optional[str] = None):
        _, _, full_path = await folders.resolve_item(project_id, path, region)
        if not os.path.isfile(full_path):
            raise NotFound("File not found", details=path)
        return FileResponse(full_path, filename=os.path.basename(full_path))

    return router


__all__ = ["create_router"]
