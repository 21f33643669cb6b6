"""
RecycleGate SQLAlchemy models.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    BigInteger, Boolean, Column, DateTime, Index, JSON, String, Text
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

ACTIVE = "active"
RESTORED = "restored"
PERMANENTLY_DELETED = "permanently_deleted"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class RecycleBinItem(Base):
    """
    A deleted file or folder held in the recycle bin.

    Content lives under the recycle-bin directory at recycle_bin_path;
    can_restore is True only while the item is active.
    """
    __tablename__ = "recycle_bin_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Original file info
    original_path = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(10), nullable=False)       # file, folder
    file_extension = Column(String(32), nullable=True)
    file_size = Column(BigInteger, nullable=False, default=0)
    mime_type = Column(String(100), nullable=True)

    # Ownership
    client_id = Column(String(64), nullable=False)
    project_id = Column(String(64), nullable=True)
    user_id = Column(String(64), nullable=True)

    # Deletion
    deleted_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    deleted_by = Column(String(64), nullable=True)
    deletion_reason = Column(String(64), nullable=True)   # user_action, direct_delete, ...
    deletion_method = Column(String(32), nullable=True)   # ui_delete, filesystem_watch, bulk_delete

    # Storage
    recycle_bin_path = Column(Text, nullable=True)
    recycle_bin_folder = Column(String(255), nullable=True)

    # Lifecycle
    can_restore = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=False)
    cleanup_reason = Column(String(32), nullable=True)    # time_limit, size_limit, manual, content_missing
    restored_at = Column(DateTime, nullable=True)
    restored_by = Column(String(64), nullable=True)
    restored_path = Column(Text, nullable=True)
    permanently_deleted_at = Column(DateTime, nullable=True)

    # thumbnailPath, previewAvailable, originalPermissions, tags, notes
    item_metadata = Column("metadata", JSON, nullable=True)
    audit_log = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_recycle_client_active", "client_id", "can_restore", "deleted_at"),
        Index("ix_recycle_project_active", "project_id", "can_restore", "deleted_at"),
        Index("ix_recycle_expiry", "expires_at", "can_restore"),
        Index("ix_recycle_deleted_by", "deleted_by", "deleted_at"),
    )

    @property
    def state(self) -> str:
        if self.can_restore:
            return ACTIVE
        if self.restored_at is not None:
            return RESTORED
        return PERMANENTLY_DELETED

    @property
    def thumbnail_path(self) -> Optional[str]:
        return (self.item_metadata or {}).get("thumbnailPath")

    def add_audit(self, action: str, timestamp: datetime, user_id: Optional[str], details: str) -> None:
        """Append an audit entry (the column is reassigned so the change is tracked)."""
        entry = {
            "action": action,
            "timestamp": timestamp.isoformat(),
            "userId": user_id,
            "details": details,
        }
        self.audit_log = [*(self.audit_log or []), entry]

    def to_dict(self, include_audit: bool = True) -> Dict[str, Any]:
        """Convert to dict for API responses."""
        data = {
            "id": self.id,
            "originalPath": self.original_path,
            "fileName": self.file_name,
            "fileType": self.file_type,
            "fileExtension": self.file_extension,
            "fileSize": self.file_size,
            "mimeType": self.mime_type,
            "clientId": self.client_id,
            "projectId": self.project_id,
            "userId": self.user_id,
            "deletedAt": _iso(self.deleted_at),
            "deletedBy": self.deleted_by,
            "deletionReason": self.deletion_reason,
            "deletionMethod": self.deletion_method,
            "recycleBinPath": self.recycle_bin_path,
            "recycleBinFolder": self.recycle_bin_folder,
            "canRestore": self.can_restore,
            "state": self.state,
            "expiresAt": _iso(self.expires_at),
            "cleanupReason": self.cleanup_reason,
            "restoredAt": _iso(self.restored_at),
            "restoredBy": self.restored_by,
            "restoredPath": self.restored_path,
            "permanentlyDeletedAt": _iso(self.permanently_deleted_at),
            "metadata": self.item_metadata or {},
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_audit:
            data["auditLog"] = self.audit_log or []
        return data
