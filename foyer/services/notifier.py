from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional

from strongroom.shared.gate import GateLogger
from strongroom.WatchGate import DiskChange, DiskWatcherService

from foyer.services.events import EventBus, project_topic

_log = GateLogger.get("Foyer.Notifier")


class ProjectNotifier:
    """
    Fans disk changes out to project subscribers.

    One watcher callback per project feeds the project topic on the event
    bus (for SSE) and wakes long-poll waiters.
    """

    def __init__(self, event_bus: EventBus, watcher: DiskWatcherService):
        self.event_bus = event_bus
        self.watcher = watcher
        self._pending: Dict[str, float] = {}
        self._waiters: Dict[str, asyncio.Future] = {}
        self._waiting: Dict[str, int] = {}

    async def attach(self, project_id: str) -> bool:
        """Make sure the project's watch feeds this notifier."""
        return await self.watcher.on_change(project_id, self._on_change)

    async def subscribe(self, project_id: str) -> asyncio.Queue:
        """Queue of folder_sync / recycle_bin_update events for one project."""
        watching = await self.attach(project_id)
        if not watching:
            _log.debug(f"Subscribed to project {project_id} without a disk watch")
        return await self.event_bus.subscribe(project_topic(project_id))

    async def unsubscribe(self, project_id: str, queue: Optional[asyncio.Queue] = None) -> Dict[str, Any]:
        """Drop a subscriber. The shared watch keeps running until it goes idle."""
        if queue is not None:
            await self.event_bus.unsubscribe(queue)
        return {"message": "Unsubscribed", "projectId": project_id}

    async def _on_change(self, change: DiskChange) -> None:
        topic = project_topic(change.project_id)
        await self.event_bus.publish("folder_sync", {
            "projectId": change.project_id,
            "projectName": change.project_name,
            "eventType": change.action_type,
            "fileName": change.file_name,
            "relativePath": change.relative_path,
            "fullPath": change.file_path,
            "timestamp": change.timestamp,
            "isFolder": change.is_folder,
        }, topic=topic)

        if change.recycle_bin_processed:
            await self.event_bus.publish("recycle_bin_update", {
                "type": "file_moved_to_recycle_bin",
                "projectId": change.project_id,
                "projectName": change.project_name,
                "fileName": change.file_name,
                "filePath": change.file_path,
                "fileType": "folder" if change.is_folder else "file",
                "timestamp": change.timestamp,
                "deletionMethod": "filesystem_watch",
            }, topic=topic)

        self.notify(change.project_id)

    # ==================== Long-poll ====================

    def notify(self, project_id: str) -> float:
        """Flag a project as changed and wake its long-poll waiters."""
        timestamp = time.time()
        waiter = self._waiters.pop(project_id, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(timestamp)
        else:
            self._pending[project_id] = timestamp
        return timestamp

    def has_pending(self, project_id: str) -> bool:
        return project_id in self._pending

    async def wait_for_change(self, project_id: str, timeout: float) -> Optional[float]:
        """
        Wait until the project is flagged.

        Returns:
            Timestamp of the change, or None on timeout
        """
        if project_id in self._pending:
            return self._pending.pop(project_id)

        waiter = self._waiters.get(project_id)
        if waiter is None or waiter.done():
            waiter = asyncio.get_running_loop().create_future()
            self._waiters[project_id] = waiter

        self._waiting[project_id] = self._waiting.get(project_id, 0) + 1
        try:
            done, _ = await asyncio.wait({waiter}, timeout=timeout)
        finally:
            self._waiting[project_id] -= 1
            if self._waiting[project_id] <= 0:
                del self._waiting[project_id]
                if not waiter.done() and self._waiters.get(project_id) is waiter:
                    del self._waiters[project_id]

        if not done:
            return None
        return waiter.result()


__all__ = ["ProjectNotifier"]
