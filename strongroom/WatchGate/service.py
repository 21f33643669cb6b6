"""
DiskWatcherService - per-project folder watches.

Each watched project has one watchdog observer. Observer threads push raw
events onto one asyncio queue; a single worker task turns them into
DiskChange objects, hands removals to the recycle bin and calls the
project's callbacks. A sweep task stops watches nobody has touched for
inactivity_seconds.
"""

import asyncio
import inspect
import os
import time
from typing import Any, Callable, Dict, List, Optional

from watchdog.observers import Observer

from strongroom.shared.errors import StrongroomError
from strongroom.shared.gate import GateLogger, build_health_status

from .bursts import BurstLogFilter
from .models import (
    FOLDER_REMOVED,
    ChangeCallback,
    DiskChange,
    RawDiskEvent,
    WatchEntry,
    WatcherSettings,
)
from .observer import ProjectEventHandler

_log = GateLogger.get("WatchGate")


class DiskWatcherService:
    """
    Owns the watch registry.

    Args:
        folders: ProjectFolders used to look up projects and their roots
        recycle_bin: RecycleBinService receiving external deletions (optional)
        settings: WatcherSettings (defaults from config)
        clock: Monotonic clock used for inactivity tracking
        observer_factory: Builds watchdog observers
    """

    def __init__(
        self,
        folders: Any,
        recycle_bin: Any = None,
        settings: Optional[WatcherSettings] = None,
        clock: Callable[[], float] = time.monotonic,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self.folders = folders
        self.recycle_bin = recycle_bin
        self.settings = settings or WatcherSettings.from_config()
        self.clock = clock
        self.observer_factory = observer_factory

        self._entries: Dict[str, WatchEntry] = {}
        self._lock = asyncio.Lock()
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker: Optional[asyncio.Task] = None
        self._sweeper: Optional[asyncio.Task] = None
        self._bursts = BurstLogFilter(clock=clock)

        self._stats = {
            "events": 0,
            "recycled": 0,
            "callback_errors": 0,
            "evicted": 0,
        }

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    # ==================== Lifecycle ====================

    async def start(self, sweep: bool = True) -> None:
        """Start the worker (and the inactivity sweep) on the running loop."""
        if self.running:
            return

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run_worker())
        if sweep:
            self._sweeper = asyncio.create_task(self._run_sweeper())
        _log.info(f"Disk watcher started (enabled={self.enabled})")

    async def stop(self) -> None:
        """Stop every watch and the background tasks."""
        for project_id in list(self._entries):
            await self.stop_watch(project_id)

        for task in (self._sweeper, self._worker):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._worker = None
        self._sweeper = None
        self._queue = None
        _log.info("Disk watcher stopped")

    # ==================== Watches ====================

    async def start_watch(self, project_id: str) -> bool:
        """
        Watch a project's folder, recursively.

        Idempotent: an existing watch is only touched.

        Returns:
            True if the project is being watched
        """
        if not self.enabled:
            return False

        if not self.running:
            await self.start()

        async with self._lock:
            entry = self._entries.get(project_id)
            if entry is not None:
                entry.last_touch = self.clock()
                return True

            project = await self.folders.get_project(project_id)
            root_path = await self.folders.locate_project_root(project_id)

            handler = ProjectEventHandler(
                project_id=project_id,
                root_path=root_path,
                event_loop=self._loop,
                enqueue=self._queue.put,
                max_depth=self.settings.max_depth,
            )
            observer = self.observer_factory()
            observer.schedule(handler, root_path, recursive=True)
            observer.start()

            self._entries[project_id] = WatchEntry(
                project_id=project_id,
                root_path=root_path,
                observer=observer,
                last_touch=self.clock(),
                project_name=project.name,
                client_id=project.client_id or project.id,
            )

        _log.info(f"Now watching {root_path} for project {project_id}")
        return True

    async def on_change(self, project_id: str, callback: ChangeCallback) -> bool:
        """Attach a callback to a project's watch, starting the watch if needed."""
        if not await self.start_watch(project_id):
            return False

        entry = self._entries[project_id]
        if callback not in entry.callbacks:
            entry.callbacks.append(callback)
        return True

    async def stop_watch(self, project_id: str) -> bool:
        """Stop a project's watch. Returns False if it was not watched."""
        entry = self._entries.pop(project_id, None)
        if entry is None:
            return False

        entry.observer.stop()
        await asyncio.to_thread(entry.observer.join, 5)

        suppressed = self._bursts.forget(project_id)
        tail = f" ({suppressed} unlogged events)" if suppressed else ""
        _log.info(f"Stopped watching project {project_id}{tail}")
        return True

    def touch(self, project_id: str) -> bool:
        """Record activity on a watch so the sweep keeps it."""
        entry = self._entries.get(project_id)
        if entry is None:
            return False
        entry.last_touch = self.clock()
        return True

    def is_watching(self, project_id: str) -> bool:
        return project_id in self._entries

    def list_watches(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries.values()]

    async def sweep(self) -> List[str]:
        """Stop watches idle for at least inactivity_seconds. Returns the stopped IDs."""
        now = self.clock()
        idle = [
            project_id
            for project_id, entry in self._entries.items()
            if now - entry.last_touch >= self.settings.inactivity_seconds
        ]

        for project_id in idle:
            _log.info(f"Watch for project {project_id} idle, stopping")
            await self.stop_watch(project_id)
            self._stats["evicted"] += 1

        return idle

    async def _run_sweeper(self) -> None:
        while True:
            await asyncio.sleep(self.settings.sweep_interval_seconds)
            try:
                await self.sweep()
            except Exception as e:
                _log.error(f"Watch sweep failed: {e}")

    # ==================== Event Processing ====================

    async def ingest(self, event: RawDiskEvent) -> None:
        """Queue an event for the worker (the observer threads use the same path)."""
        if self._queue is None:
            raise RuntimeError("DiskWatcherService is not started")
        await self._queue.put(event)

    async def drain(self) -> None:
        """Wait until every queued event has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def _run_worker(self) -> None:
        queue = self._queue
        while True:
            event = await queue.get()
            try:
                await self._process(event)
            except Exception as e:
                _log.error(f"Failed to process {event.action_type} {event.path}: {e}")
            finally:
                queue.task_done()

    async def _process(self, event: RawDiskEvent) -> Optional[DiskChange]:
        entry = self._entries.get(event.project_id)
        if entry is None:
            return None

        relative = os.path.relpath(event.path, entry.root_path).replace(os.sep, "/")
        change = DiskChange(
            project_id=event.project_id,
            action_type=event.action_type,
            file_path=event.path,
            relative_path=relative,
            file_name=os.path.basename(event.path),
            is_folder=event.is_directory,
            project_name=entry.project_name,
        )
        entry.event_count += 1
        entry.last_touch = self.clock()
        self._stats["events"] += 1

        if change.is_removal and not event.moved:
            change.recycle_bin_processed = await self._hand_to_recycle_bin(change)

        log_it, suppressed = self._bursts.should_log(event.project_id)
        if log_it:
            tail = f" (+{suppressed} more)" if suppressed else ""
            _log.info(f"Disk change in project {event.project_id}: [{change.action_type}] {relative}{tail}")

        for callback in list(entry.callbacks):
            await self._invoke(callback, change)

        return change

    async def _invoke(self, callback: ChangeCallback, change: DiskChange) -> None:
        try:
            result = callback(change)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._stats["callback_errors"] += 1
            _log.error(f"Watch callback for project {change.project_id} failed: {e}")

    async def _hand_to_recycle_bin(self, change: DiskChange) -> bool:
        """
        Record an external deletion with the recycle bin.

        Returns True when a recycle-bin record was written.
        """
        if self.recycle_bin is None:
            return False

        if os.path.lexists(change.file_path):
            return False
        if self.recycle_bin.was_intercepted(change.file_path):
            return False
        if not change.is_folder and self.recycle_bin.is_excluded(change.file_name):
            return False

        project = await self.folders.lookup.get_project(change.project_id)
        if project is None:
            _log.warning(
                f"Deletion of {change.relative_path} not attributable: "
                f"project {change.project_id} not found"
            )
            return False

        try:
            await self.recycle_bin.record_external_deletion(
                change.file_path,
                client_id=project.client_id or project.id,
                project_id=project.id,
                user_id="system",
                deleted_by="system",
                deletion_reason="direct_delete",
                deletion_method="filesystem_watch",
                file_type="folder" if change.action_type == FOLDER_REMOVED else "file",
            )
        except StrongroomError as e:
            _log.warning(f"Recycle bin rejected external deletion of {change.relative_path}: {e}")
            return False
        except Exception as e:
            _log.error(f"Recording external deletion of {change.relative_path} failed: {e}")
            return False

        self._stats["recycled"] += 1
        return True

    # ==================== Health ====================

    def health(self) -> Dict[str, Any]:
        return build_health_status(
            gate_name="WatchGate",
            initialized=self.running or not self.enabled,
            dependencies=["watchdog", "DiskGate", "RecycleGate"],
            checks={"worker_running": self.running or not self.enabled},
            details={
                "enabled": self.enabled,
                "watching": len(self._entries),
                "queued": self._queue.qsize() if self._queue is not None else 0,
                "stats": dict(self._stats),
            },
        )
