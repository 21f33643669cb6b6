"""
RecycleGate - Recycle bin for Strongroom.

Deleted files and folders are moved under RECYCLE_BIN_PATH and tracked in
the recycle_bin_items table until they are restored or purged (after
RECYCLE_MAX_RETENTION_DAYS, or oldest-first once RECYCLE_MAX_TOTAL_SIZE is
exceeded).

Usage:
    from strongroom.RecycleGate import RecycleBinService, init_recycle_bin_db

    init_recycle_bin_db()
    bin = RecycleBinService(publisher=event_bus.publish)

    result = await bin.intercept(path, client_id=cid, project_id=pid, user_id=uid)
    await bin.restore(result["recycleBinId"], user_id=uid)
"""

from strongroom.shared.db_service import create_tables

from .models import ACTIVE, PERMANENTLY_DELETED, RESTORED, Base, RecycleBinItem
from .scheduler import CleanupScheduler
from .service import RecycleBinService, RecycleBinSettings
from .storage import (
    build_recycle_path,
    can_preview,
    detect_mime_type,
    format_file_size,
    unique_restore_path,
)
from .thumbnails import generate_thumbnail, remove_thumbnail


def init_recycle_bin_db() -> None:
    """Create the recycle bin tables (explicit)."""
    create_tables(Base.metadata)


__all__ = [
    "RecycleBinService",
    "RecycleBinSettings",
    "RecycleBinItem",
    "CleanupScheduler",
    "init_recycle_bin_db",
    "ACTIVE",
    "RESTORED",
    "PERMANENTLY_DELETED",
    "build_recycle_path",
    "can_preview",
    "detect_mime_type",
    "format_file_size",
    "unique_restore_path",
    "generate_thumbnail",
    "remove_thumbnail",
]
