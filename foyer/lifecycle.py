from __future__ import annotations

from typing import Any, Dict, Optional

from strongroom import Config
from strongroom.DiskGate import ProjectFolders, SqlProjectLookup, init_project_db
from strongroom.RecycleGate import CleanupScheduler, RecycleBinService, init_recycle_bin_db
from strongroom.shared import db_service
from strongroom.shared.gate import GateLogger
from strongroom.WatchGate import DiskWatcherService

from foyer.services.events import EventBus, build_recycle_publisher
from foyer.services.notifier import ProjectNotifier

# Lifecycle logger
_log = GateLogger.get("Lifecycle")


class Services:
    """Everything the HTTP layer talks to, wired once per application."""

    def __init__(
        self,
        lookup: Any = None,
        event_bus: Optional[EventBus] = None,
        folders: Optional[ProjectFolders] = None,
        recycle_bin: Optional[RecycleBinService] = None,
        watcher: Optional[DiskWatcherService] = None,
    ):
        self.event_bus = event_bus or EventBus()
        self.lookup = lookup or SqlProjectLookup()
        self.folders = folders or ProjectFolders(self.lookup)
        self.recycle_bin = recycle_bin or RecycleBinService(
            publisher=build_recycle_publisher(self.event_bus),
            restore_root=lambda: self.folders.root,
        )
        self.watcher = watcher or DiskWatcherService(self.folders, self.recycle_bin)
        self.notifier = ProjectNotifier(self.event_bus, self.watcher)
        self.scheduler: Optional[CleanupScheduler] = None

    def health(self) -> Dict[str, Dict[str, Any]]:
        gates = {
            "DiskGate": self.folders.health(),
            "WatchGate": self.watcher.health(),
            "RecycleGate": self.recycle_bin.health(),
        }
        gates["RecycleGate"]["details"]["cleanup_scheduled"] = bool(self.scheduler and self.scheduler.running)
        return gates


async def startup(services: Services) -> None:
    """Initialize subsystems on server startup."""
    GateLogger.set_level(Config.get("LOG_LEVEL", "INFO"))

    valid, errors = Config.validate()
    for error in errors:
        _log.warning(f"Config: {error}")
    if valid:
        _log.info("Configuration validated")

    database_url = Config.get("DATABASE_URL")
    if database_url:
        try:
            db_service.init_db(database_url)
            init_project_db()
            init_recycle_bin_db()
        except Exception as e:
            _log.error(f"Database initialization failed: {e}")
    else:
        _log.warning("DATABASE_URL not set - recycle bin and project lookup disabled")

    try:
        services.recycle_bin.ensure_storage()
    except OSError as e:
        _log.error(f"Recycle bin storage unavailable: {e}")

    try:
        await services.watcher.start()
    except Exception as e:
        _log.error(f"Disk watcher failed to start: {e}")

    try:
        services.scheduler = CleanupScheduler(
            services.recycle_bin.settings.cleanup_schedule,
            services.recycle_bin.run_scheduled_cleanup,
        )
        services.scheduler.start()
    except Exception as e:
        _log.error(f"Recycle bin cleanup scheduler failed to start: {e}")


async def shutdown(services: Services) -> None:
    """Cleanup on server shutdown."""
    if services.scheduler is not None:
        try:
            await services.scheduler.stop()
            _log.info("Recycle bin cleanup scheduler stopped")
        except Exception as e:
            _log.error(f"Cleanup scheduler shutdown error: {e}")

    try:
        await services.watcher.stop()
    except Exception as e:
        _log.error(f"Disk watcher shutdown error: {e}")

    try:
        await db_service.dispose()
    except Exception as e:
        _log.error(f"Database shutdown error: {e}")


__all__ = ["Services", "startup", "shutdown"]
