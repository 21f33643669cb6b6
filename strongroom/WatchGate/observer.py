"""
watchdog bridge for project watches.

ProjectEventHandler runs in the watchdog observer thread. It only
normalizes events and hands them to the asyncio queue on the service's
loop; all processing happens in the worker task.
"""

import asyncio
import os
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler

from strongroom.DiskGate.meta import META_FILENAME
from strongroom.shared.gate import GateLogger

from .models import (
    ADDED,
    DELETED,
    FOLDER_ADDED,
    FOLDER_REMOVED,
    MODIFIED,
    RawDiskEvent,
)

_log = GateLogger.get("WatchGate.Observer")

_META_TMP = f"{META_FILENAME}.tmp"


def relative_depth(root_path: str, path: str) -> int:
    """Number of directories between root_path and path (0 for direct children)."""
    rel = os.path.relpath(path, root_path)
    if rel in (".", ""):
        return 0
    return len(rel.split(os.sep)) - 1


class ProjectEventHandler(FileSystemEventHandler):
    """
    Handles file system events for one project folder.

    This runs in a watchdog thread, so events are bridged to the main event
    loop with run_coroutine_threadsafe.
    """

    def __init__(
        self,
        project_id: str,
        root_path: str,
        event_loop: asyncio.AbstractEventLoop,
        enqueue: Callable[[RawDiskEvent], "asyncio.Future"],
        max_depth: int = 10,
    ):
        super().__init__()
        self.project_id = project_id
        self.root_path = root_path
        self.event_loop = event_loop
        self.enqueue = enqueue
        self.max_depth = max_depth

    def _should_ignore(self, path: str) -> bool:
        if os.path.basename(path) == _META_TMP:
            return True
        if os.path.normpath(path) == os.path.normpath(self.root_path):
            return True
        return relative_depth(self.root_path, path) > self.max_depth

    def _submit(self, action_type: str, path: str, is_directory: bool, moved: bool = False):
        if self._should_ignore(path):
            return
        event = RawDiskEvent(
            project_id=self.project_id,
            action_type=action_type,
            path=os.fsdecode(path),
            is_directory=is_directory,
            moved=moved,
        )
        try:
            asyncio.run_coroutine_threadsafe(self.enqueue(event), self.event_loop)
        except RuntimeError as e:
            # Loop already closed during shutdown
            _log.debug(f"Dropped {action_type} {path}: {e}")

    def on_created(self, event: FileSystemEvent):
        self._submit(FOLDER_ADDED if event.is_directory else ADDED, event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent):
        # Directory mtime changes accompany every child event
        if event.is_directory:
            return
        self._submit(MODIFIED, event.src_path, False)

    def on_deleted(self, event: FileSystemEvent):
        self._submit(FOLDER_REMOVED if event.is_directory else DELETED, event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent):
        """A rename is reported as a removal of the old path and an addition of the new one."""
        if event.is_directory:
            self._submit(FOLDER_REMOVED, event.src_path, True, moved=True)
            self._submit(FOLDER_ADDED, event.dest_path, True)
        else:
            self._submit(DELETED, event.src_path, False, moved=True)
            self._submit(ADDED, event.dest_path, False)
