"""
RecycleBinService - time-boxed holding area for deleted content.

Lifecycle of an item:

    active (canRestore) --restore--> restored
    active --expire / size-evict / manual delete--> permanently_deleted

Both end states are terminal. Bulk operations treat every item separately,
each in its own session, so one failure never aborts the batch.
"""

import asyncio
import math
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field
from sqlalchemy import case, distinct, func, or_, select

from strongroom import Config
from strongroom.DiskGate.pathing import get_storage_root
from strongroom.shared.db_service import get_async_session
from strongroom.shared.errors import (
    AccessDenied,
    Conflict,
    InvalidInput,
    IOFailure,
    NotFound,
    StorageLimitExceeded,
)
from strongroom.shared.gate import GateLogger, PathUtils, build_health_status

from .models import RecycleBinItem
from .storage import (
    build_recycle_path,
    can_preview,
    dated_folder,
    detect_mime_type,
    extension_of,
    format_file_size,
    move_into_place,
    remove_path,
    unique_restore_path,
)
from .thumbnails import generate_thumbnail, remove_thumbnail

_log = GateLogger.get("RecycleGate")

Publisher = Callable[[str, Dict[str, Any]], Awaitable[None]]

SORT_FIELDS = {
    "deletedAt": RecycleBinItem.deleted_at,
    "fileSize": RecycleBinItem.file_size,
    "fileName": RecycleBinItem.file_name,
    "expiresAt": RecycleBinItem.expires_at,
}


def _utcnow() -> datetime:
    """Naive UTC, the form stored in the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RecycleBinSettings(BaseModel):
    """Recycle bin limits and storage location."""

    base_path: str = "./storage/recycle_bin"
    max_retention_days: int = Field(default=7, ge=0)
    max_total_size: int = Field(default=2 * 1024 ** 3, gt=0)
    max_file_size: int = Field(default=100 * 1024 ** 2, gt=0)
    cleanup_schedule: str = "0 2 * * *"
    batch_size: int = Field(default=100, gt=0)
    excluded_extensions: List[str] = Field(default_factory=lambda: [".tmp", ".log", ".cache"])
    # How long an intercepted path is remembered so the watcher can skip it
    intercept_window_seconds: float = 60.0

    @classmethod
    def from_config(cls) -> "RecycleBinSettings":
        return cls(
            base_path=Config.get("RECYCLE_BIN_PATH", "./storage/recycle_bin"),
            max_retention_days=Config.get("RECYCLE_MAX_RETENTION_DAYS", 7),
            max_total_size=Config.get("RECYCLE_MAX_TOTAL_SIZE", 2 * 1024 ** 3),
            max_file_size=Config.get("RECYCLE_MAX_FILE_SIZE", 100 * 1024 ** 2),
            cleanup_schedule=Config.get("RECYCLE_CLEANUP_SCHEDULE", "0 2 * * *"),
            batch_size=Config.get("RECYCLE_BATCH_SIZE", 100),
            excluded_extensions=Config.get("RECYCLE_EXCLUDED_EXTENSIONS", [".tmp", ".log", ".cache"]),
        )


class RecycleBinService:
    """
    Moves deleted content aside, tracks it, restores it and purges it.

    Args:
        settings: RecycleBinSettings (defaults from config)
        publisher: async (event, data) callback for lifecycle events
        clock: Returns the current naive-UTC datetime
        session_factory: Async context manager yielding an AsyncSession
        restore_root: Returns the folder an explicit restore path must stay inside
    """

    def __init__(
        self,
        settings: Optional[RecycleBinSettings] = None,
        publisher: Optional[Publisher] = None,
        clock: Callable[[], datetime] = _utcnow,
        session_factory: Callable = get_async_session,
        restore_root: Callable[[], str] = get_storage_root,
    ):
        self.settings = settings or RecycleBinSettings.from_config()
        self.publisher = publisher
        self.clock = clock
        self.session_factory = session_factory
        self.restore_root = restore_root
        self._intercepts: Dict[str, datetime] = {}
        self._excluded = {e.lower() if e.startswith(".") else f".{e.lower()}" for e in self.settings.excluded_extensions}

    @property
    def base_path(self) -> str:
        return os.path.abspath(self.settings.base_path)

    def ensure_storage(self) -> None:
        PathUtils.ensure_dirs(self.base_path)

    # ==================== Helpers ====================

    def is_excluded(self, file_name: str) -> bool:
        """True for extensions that bypass the recycle bin."""
        return extension_of(file_name) in self._excluded

    def was_intercepted(self, path: str) -> bool:
        """
        True if path (or a folder containing it) was moved aside by intercept()
        within the intercept window.
        """
        now = self.clock()
        window = timedelta(seconds=self.settings.intercept_window_seconds)
        self._intercepts = {p: t for p, t in self._intercepts.items() if now - t <= window}

        candidate = os.path.normpath(os.path.abspath(path))
        while True:
            if candidate in self._intercepts:
                return True
            parent = os.path.dirname(candidate)
            if parent == candidate:
                return False
            candidate = parent

    async def _emit(self, event: str, data: Dict[str, Any]) -> None:
        if self.publisher is None:
            return
        try:
            await self.publisher(event, data)
        except Exception as e:
            _log.warning(f"Publishing {event} failed: {e}")

    async def _active_total_size(self, session) -> int:
        result = await session.execute(
            select(func.coalesce(func.sum(RecycleBinItem.file_size), 0))
            .where(RecycleBinItem.can_restore.is_(True))
        )
        return int(result.scalar_one())

    async def total_size(self) -> int:
        """Bytes held by active items."""
        async with self.session_factory() as session:
            return await self._active_total_size(session)

    # ==================== Intercept ====================

    async def intercept(
        self,
        original_path: str,
        *,
        client_id: str,
        project_id: Optional[str] = None,
        user_id: Optional[str] = None,
        deleted_by: Optional[str] = None,
        deletion_reason: str = "user_action",
        deletion_method: str = "ui_delete",
    ) -> Dict[str, Any]:
        """
        Move a file or folder into the recycle bin.

        Returns:
            {recycleBinId, recycleBinPath, expiresAt}

        Raises:
            NotFound: original_path does not exist
            StorageLimitExceeded: item too large, or the bin would exceed its cap
            IOFailure: the move failed (nothing was recorded)
        """
        original_path = os.path.abspath(original_path)
        if not os.path.lexists(original_path):
            raise NotFound("File not found", details=original_path)

        stats = await asyncio.to_thread(os.lstat, original_path)
        is_folder = os.path.isdir(original_path)
        size = await asyncio.to_thread(PathUtils.directory_size, original_path)
        file_name = os.path.basename(original_path)

        if size > self.settings.max_file_size:
            raise StorageLimitExceeded(
                f"Item exceeds the recycle bin per-item limit of {format_file_size(self.settings.max_file_size)}",
                details={"fileSize": size},
            )

        async with self.session_factory() as session:
            current = await self._active_total_size(session)
        if current + size > self.settings.max_total_size:
            raise StorageLimitExceeded(
                "Recycle bin storage limit exceeded. Please empty recycle bin or contact administrator.",
                details={"fileSize": size, "currentSize": current},
            )

        now = self.clock()
        recycle_path = build_recycle_path(self.base_path, client_id, file_name, now)

        self._intercepts[original_path] = now
        try:
            await asyncio.to_thread(move_into_place, original_path, recycle_path)
        except OSError as e:
            self._intercepts.pop(original_path, None)
            raise IOFailure(f"Could not move {file_name} to the recycle bin", details=str(e)) from e

        item = RecycleBinItem(
            id=str(uuid.uuid4()),
            original_path=original_path,
            file_name=file_name,
            file_type="folder" if is_folder else "file",
            file_extension=None if is_folder else extension_of(file_name),
            file_size=size,
            mime_type=None if is_folder else detect_mime_type(file_name),
            client_id=str(client_id),
            project_id=str(project_id) if project_id else None,
            user_id=user_id,
            deleted_at=now,
            deleted_by=deleted_by or user_id,
            deletion_reason=deletion_reason,
            deletion_method=deletion_method,
            recycle_bin_path=recycle_path,
            recycle_bin_folder=dated_folder(client_id, now),
            can_restore=True,
            expires_at=now + timedelta(days=self.settings.max_retention_days),
            item_metadata={
                "previewAvailable": False if is_folder else can_preview(file_name),
                "originalPermissions": stats.st_mode,
                "tags": [],
                "notes": "",
            },
            created_at=now,
            updated_at=now,
        )
        item.add_audit("deleted", now, deleted_by or user_id, f"Deleted via {deletion_method}: {deletion_reason}")

        try:
            async with self.session_factory() as session:
                session.add(item)
        except Exception:
            _log.error(f"Recording {original_path} failed; moving it back")
            await asyncio.to_thread(move_into_place, recycle_path, original_path)
            raise

        if not is_folder:
            await self._attach_thumbnail(item.id, recycle_path, client_id, now)

        await self._emit("file_deleted", {
            "recycleBinId": item.id,
            "clientId": item.client_id,
            "projectId": item.project_id,
            "fileName": item.file_name,
            "fileType": item.file_type,
            "deletedBy": item.deleted_by,
            "canRestore": True,
        })
        _log.info(f"Moved to recycle bin: {original_path} -> {recycle_path}")

        return {
            "recycleBinId": item.id,
            "recycleBinPath": recycle_path,
            "expiresAt": item.expires_at.isoformat(),
        }

    async def _attach_thumbnail(self, item_id: str, source: str, client_id: str, when: datetime) -> None:
        thumb = await asyncio.to_thread(generate_thumbnail, source, self.base_path, client_id, when)
        if not thumb:
            return
        try:
            async with self.session_factory() as session:
                item = await session.get(RecycleBinItem, item_id)
                if item is not None:
                    item.item_metadata = {**(item.item_metadata or {}), "thumbnailPath": thumb}
        except Exception as e:
            _log.warning(f"Could not record thumbnail for {item_id}: {e}")
            await asyncio.to_thread(remove_thumbnail, thumb)

    async def record_external_deletion(
        self,
        original_path: str,
        *,
        client_id: str,
        project_id: Optional[str] = None,
        user_id: Optional[str] = "system",
        deleted_by: Optional[str] = "system",
        deletion_reason: str = "direct_delete",
        deletion_method: str = "filesystem_watch",
        file_type: str = "file",
    ) -> Dict[str, Any]:
        """
        Record a deletion made outside the application.

        The content is already gone, so the item is written in its terminal
        state with cleanupReason "content_missing".
        """
        now = self.clock()
        file_name = os.path.basename(original_path)
        is_folder = file_type == "folder"

        item = RecycleBinItem(
            id=str(uuid.uuid4()),
            original_path=os.path.abspath(original_path),
            file_name=file_name,
            file_type=file_type,
            file_extension=None if is_folder else extension_of(file_name),
            file_size=0,
            mime_type=None if is_folder else detect_mime_type(file_name),
            client_id=str(client_id),
            project_id=str(project_id) if project_id else None,
            user_id=user_id,
            deleted_at=now,
            deleted_by=deleted_by,
            deletion_reason=deletion_reason,
            deletion_method=deletion_method,
            can_restore=False,
            expires_at=now,
            cleanup_reason="content_missing",
            permanently_deleted_at=now,
            item_metadata={"previewAvailable": False, "tags": [], "notes": ""},
            created_at=now,
            updated_at=now,
        )
        item.add_audit("deleted", now, deleted_by, f"Deleted via {deletion_method}: {deletion_reason}")
        item.add_audit("permanently_deleted", now, deleted_by, "Content was already removed from disk")

        async with self.session_factory() as session:
            session.add(item)

        await self._emit("file_deleted", {
            "recycleBinId": item.id,
            "clientId": item.client_id,
            "projectId": item.project_id,
            "fileName": file_name,
            "fileType": file_type,
            "deletedBy": deleted_by,
            "canRestore": False,
        })
        _log.info(f"Recorded external deletion of {original_path}")
        return item.to_dict()

    # ==================== Restore ====================

    async def restore(
        self,
        recycle_bin_id: str,
        *,
        user_id: Optional[str] = None,
        restore_path: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Move an active item back to disk.

        An occupied target gets a "_restored_{n}" suffix.

        Returns:
            {restoredPath, originalPath}

        Raises:
            NotFound: no such item
            AccessDenied: restore_path lies outside the storage root
            Conflict: the item is not active, or no free name remains
            IOFailure: the move failed (item stays active)
        """
        async with self.session_factory() as session:
            item = await session.get(RecycleBinItem, recycle_bin_id)
            if item is None:
                raise NotFound("File not found in recycle bin", details=recycle_bin_id)
            if not item.can_restore:
                raise Conflict("Item cannot be restored", details={"state": item.state})
            if restore_path and not PathUtils.is_within(self.restore_root(), restore_path):
                raise AccessDenied("Restore path is outside the storage root", details=restore_path)

            target = await asyncio.to_thread(unique_restore_path, restore_path or item.original_path)
            try:
                await asyncio.to_thread(move_into_place, item.recycle_bin_path, target)
            except OSError as e:
                raise IOFailure("Could not restore item", details=str(e)) from e

            now = self.clock()
            item.can_restore = False
            item.restored_at = now
            item.restored_by = user_id
            item.restored_path = target
            item.updated_at = now
            item.add_audit("restored", now, user_id, f"Restored to: {target}")

            thumb = item.thumbnail_path
            original_path = item.original_path
            client_id = item.client_id
            file_name = item.file_name

        await asyncio.to_thread(remove_thumbnail, thumb)
        await self._emit("file_restored", {
            "recycleBinId": recycle_bin_id,
            "clientId": client_id,
            "fileName": file_name,
            "restoredPath": target,
            "restoredBy": user_id,
        })
        _log.info(f"Restored {file_name} to {target}")

        return {"restoredPath": target, "originalPath": original_path}

    # ==================== Permanent Delete ====================

    async def _purge(
        self,
        recycle_bin_id: str,
        *,
        user_id: Optional[str],
        details: str,
        cleanup_reason: str,
    ) -> Optional[int]:
        """Permanently delete one active item. Returns bytes freed, or None if not active."""
        async with self.session_factory() as session:
            item = await session.get(RecycleBinItem, recycle_bin_id)
            if item is None or not item.can_restore:
                return None

            await asyncio.to_thread(remove_path, item.recycle_bin_path)

            now = self.clock()
            item.can_restore = False
            item.permanently_deleted_at = now
            item.cleanup_reason = cleanup_reason
            item.updated_at = now
            item.add_audit("permanently_deleted", now, user_id, details)
            size = item.file_size or 0
            thumb = item.thumbnail_path

        await asyncio.to_thread(remove_thumbnail, thumb)
        return size

    async def permanently_delete(
        self,
        recycle_bin_ids: Sequence[str],
        *,
        user_id: Optional[str] = None,
        reason: str = "manual",
    ) -> Dict[str, Any]:
        """
        Permanently delete active items.

        Returns:
            {deletedCount, totalSizeFreed, totalSizeFreedFormatted, failed}
        """
        deleted = 0
        freed = 0
        failed: List[str] = []

        for recycle_bin_id in recycle_bin_ids:
            try:
                size = await self._purge(
                    recycle_bin_id,
                    user_id=user_id,
                    details=f"Permanently deleted: {reason}",
                    cleanup_reason="manual",
                )
            except Exception as e:
                _log.warning(f"Failed to permanently delete item {recycle_bin_id}: {e}")
                failed.append(recycle_bin_id)
                continue

            if size is None:
                failed.append(recycle_bin_id)
                continue
            deleted += 1
            freed += size

        await self._emit("items_permanently_deleted", {
            "deletedCount": deleted,
            "totalSizeFreed": freed,
            "deletedBy": user_id,
        })

        return {
            "deletedCount": deleted,
            "totalSizeFreed": freed,
            "totalSizeFreedFormatted": format_file_size(freed),
            "failed": failed,
        }

    # ==================== Queries ====================

    async def get_item(self, recycle_bin_id: str) -> Dict[str, Any]:
        async with self.session_factory() as session:
            item = await session.get(RecycleBinItem, recycle_bin_id)
            if item is None:
                raise NotFound("File not found in recycle bin", details=recycle_bin_id)
            return item.to_dict()

    def _decorate(self, item: RecycleBinItem, now: datetime) -> Dict[str, Any]:
        data = item.to_dict(include_audit=False)
        remaining = (item.expires_at - now).total_seconds() / 86400
        data["daysUntilExpiry"] = math.ceil(remaining)
        data["sizeFormatted"] = format_file_size(item.file_size or 0)
        data["canPreview"] = bool((item.item_metadata or {}).get("previewAvailable"))
        return data

    async def list_items(
        self,
        client_id: Optional[str] = None,
        *,
        page: int = 1,
        limit: int = 20,
        file_type: Optional[str] = None,
        sort_by: str = "deletedAt",
        sort_order: int = -1,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Page through active items, newest first by default.

        client_id=None lists across every client.
        """
        if page < 1 or limit < 1:
            raise InvalidInput("page and limit must be positive")
        if sort_by not in SORT_FIELDS:
            raise InvalidInput(f"Cannot sort by {sort_by}", details=list(SORT_FIELDS))
        if file_type not in (None, "file", "folder"):
            raise InvalidInput("fileType must be 'file' or 'folder'")

        conditions = [RecycleBinItem.can_restore.is_(True)]
        if client_id is not None:
            conditions.append(RecycleBinItem.client_id == str(client_id))
        if file_type:
            conditions.append(RecycleBinItem.file_type == file_type)
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(
                RecycleBinItem.file_name.ilike(pattern),
                RecycleBinItem.original_path.ilike(pattern),
            ))

        column = SORT_FIELDS[sort_by]
        order = column.asc() if sort_order == 1 else column.desc()

        async with self.session_factory() as session:
            total = (await session.execute(
                select(func.count()).select_from(RecycleBinItem).where(*conditions)
            )).scalar_one()
            result = await session.execute(
                select(RecycleBinItem)
                .where(*conditions)
                .order_by(order, RecycleBinItem.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            items = result.scalars().all()

        now = self.clock()
        return {
            "items": [self._decorate(item, now) for item in items],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
            "summary": await self.summary(client_id),
        }

    async def summary(self, client_id: Optional[str] = None) -> Dict[str, Any]:
        """Totals over active items, for one client or all of them."""
        conditions = [RecycleBinItem.can_restore.is_(True)]
        if client_id is not None:
            conditions.append(RecycleBinItem.client_id == str(client_id))

        stmt = select(
            func.count(RecycleBinItem.id),
            func.coalesce(func.sum(RecycleBinItem.file_size), 0),
            func.coalesce(func.sum(case((RecycleBinItem.file_type == "file", 1), else_=0)), 0),
            func.coalesce(func.sum(case((RecycleBinItem.file_type == "folder", 1), else_=0)), 0),
            func.min(RecycleBinItem.deleted_at),
            func.max(RecycleBinItem.deleted_at),
        ).where(*conditions)

        async with self.session_factory() as session:
            count, size, files, folders, oldest, newest = (await session.execute(stmt)).one()

        return {
            "totalFiles": int(count),
            "totalSize": int(size),
            "totalSizeFormatted": format_file_size(int(size)),
            "fileCount": int(files),
            "folderCount": int(folders),
            "oldestItem": oldest.isoformat() if oldest else None,
            "newestItem": newest.isoformat() if newest else None,
        }

    async def client_ids(self) -> List[str]:
        """Clients that currently have active items."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(distinct(RecycleBinItem.client_id))
                .where(RecycleBinItem.can_restore.is_(True))
                .order_by(RecycleBinItem.client_id)
            )
            return [row[0] for row in result.all()]

    # ==================== Cleanup ====================

    async def run_scheduled_cleanup(self) -> Dict[str, Any]:
        """
        Purge expired items, then the oldest items while the bin is over its cap.

        Returns:
            {cleanupCount, sizeFreed, sizeFreedFormatted, timeLimitCount, sizeLimitCount}
        """
        _log.info("Starting recycle bin cleanup")
        now = self.clock()
        time_count = 0
        size_count = 0
        freed = 0
        attempted: List[str] = []

        # Pass 1: expired
        while True:
            async with self.session_factory() as session:
                stmt = (
                    select(RecycleBinItem.id)
                    .where(RecycleBinItem.can_restore.is_(True), RecycleBinItem.expires_at < now)
                    .order_by(RecycleBinItem.expires_at)
                    .limit(self.settings.batch_size)
                )
                if attempted:
                    stmt = stmt.where(RecycleBinItem.id.not_in(attempted))
                batch = (await session.execute(stmt)).scalars().all()

            if not batch:
                break

            for item_id in batch:
                attempted.append(item_id)
                size = await self._cleanup_one(item_id, "time_limit")
                if size is not None:
                    time_count += 1
                    freed += size

        # Pass 2: over the size cap, oldest first
        async with self.session_factory() as session:
            total = await self._active_total_size(session)
            candidates = []
            if total > self.settings.max_total_size:
                candidates = (await session.execute(
                    select(RecycleBinItem.id, RecycleBinItem.file_size)
                    .where(RecycleBinItem.can_restore.is_(True))
                    .order_by(RecycleBinItem.deleted_at.asc())
                )).all()

        if candidates:
            excess = total - self.settings.max_total_size
            cleaned = 0
            for item_id, _ in candidates:
                if cleaned >= excess:
                    break
                size = await self._cleanup_one(item_id, "size_limit")
                if size is not None:
                    size_count += 1
                    freed += size
                    cleaned += size

        count = time_count + size_count
        _log.info(f"Recycle bin cleanup completed: {count} items, {format_file_size(freed)} freed")
        await self._emit("cleanup_completed", {"cleanupCount": count, "sizeFreed": freed})

        return {
            "cleanupCount": count,
            "sizeFreed": freed,
            "sizeFreedFormatted": format_file_size(freed),
            "timeLimitCount": time_count,
            "sizeLimitCount": size_count,
        }

    async def _cleanup_one(self, item_id: str, cleanup_reason: str) -> Optional[int]:
        try:
            return await self._purge(
                item_id,
                user_id="system",
                details=f"Automatic cleanup: {cleanup_reason}",
                cleanup_reason=cleanup_reason,
            )
        except Exception as e:
            _log.warning(f"Failed to clean up item {item_id}: {e}")
            return None

    # ==================== Health ====================

    def health(self) -> Dict[str, Any]:
        base = self.base_path
        return build_health_status(
            gate_name="RecycleGate",
            initialized=True,
            dependencies=["database", "filesystem"],
            checks={"storage_dir_exists": os.path.isdir(base)},
            details={
                "base_path": base,
                "max_retention_days": self.settings.max_retention_days,
                "max_total_size": format_file_size(self.settings.max_total_size),
                "max_file_size": format_file_size(self.settings.max_file_size),
                "cleanup_schedule": self.settings.cleanup_schedule,
            },
        )
