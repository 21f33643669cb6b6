"""Cron-driven recycle bin cleanup using croniter."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from croniter import croniter

from strongroom.shared.errors import InvalidInput
from strongroom.shared.gate import GateLogger

_log = GateLogger.get("RecycleGate.Scheduler")


class CleanupScheduler:
    """Runs a cleanup coroutine at every fire time of a cron expression (UTC)."""

    def __init__(self, cron_expr: str, cleanup: Callable[[], Awaitable[Dict[str, Any]]]):
        if not croniter.is_valid(cron_expr):
            raise InvalidInput(f"Invalid cleanup schedule: {cron_expr}")
        self.cron_expr = cron_expr
        self.cleanup = cleanup
        self._task: Optional[asyncio.Task] = None
        self.last_run: Optional[str] = None
        self.last_result: Optional[Dict[str, Any]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_fire(self, after: Optional[datetime] = None) -> datetime:
        base = after or datetime.now(timezone.utc)
        next_fire = croniter(self.cron_expr, base).get_next(datetime)
        if next_fire.tzinfo is None:
            next_fire = next_fire.replace(tzinfo=timezone.utc)
        return next_fire

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        _log.info(f"Recycle bin cleanup scheduled: {self.cron_expr}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            next_fire = self.next_fire()
            wait_seconds = (next_fire - datetime.now(timezone.utc)).total_seconds()
            if wait_seconds > 0:
                await asyncio.sleep(wait_seconds)

            try:
                self.last_result = await self.cleanup()
            except Exception as e:
                _log.error(f"Recycle bin cleanup failed: {e}")
            self.last_run = datetime.now(timezone.utc).isoformat()
