"""
WatchGate - Live disk watches for Strongroom projects.

Usage:
    from strongroom.WatchGate import DiskWatcherService

    watcher = DiskWatcherService(folders, recycle_bin)
    await watcher.start()

    await watcher.on_change(project_id, callback)   # callback(DiskChange)
    watcher.touch(project_id)                        # keep the watch alive
    await watcher.stop_watch(project_id)

    await watcher.stop()

Watches idle for WATCH_INACTIVITY_SECONDS are stopped by the sweep.
ENABLE_WATCHERS=false turns every watch request into a no-op.
"""

from .bursts import BurstLogFilter
from .models import (
    ADDED,
    DELETED,
    FOLDER_ADDED,
    FOLDER_REMOVED,
    MODIFIED,
    DiskChange,
    RawDiskEvent,
    WatchEntry,
    WatcherSettings,
)
from .observer import ProjectEventHandler, relative_depth
from .service import DiskWatcherService

__all__ = [
    "DiskWatcherService",
    "DiskChange",
    "RawDiskEvent",
    "WatchEntry",
    "WatcherSettings",
    "ProjectEventHandler",
    "BurstLogFilter",
    "relative_depth",
    "ADDED",
    "MODIFIED",
    "DELETED",
    "FOLDER_ADDED",
    "FOLDER_REMOVED",
]
