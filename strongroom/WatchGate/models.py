"""
WatchGate models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from strongroom import Config

# Action types reported to callbacks
ADDED = "added"
MODIFIED = "modified"
DELETED = "deleted"
FOLDER_ADDED = "folder added"
FOLDER_REMOVED = "folder removed"

REMOVALS = (DELETED, FOLDER_REMOVED)


class WatcherSettings(BaseModel):
    """Disk watcher tuning."""

    enabled: bool = True
    max_depth: int = Field(default=10, ge=0)
    inactivity_seconds: float = Field(default=300, gt=0)
    sweep_interval_seconds: float = Field(default=60, gt=0)

    @classmethod
    def from_config(cls) -> "WatcherSettings":
        return cls(
            enabled=Config.get("ENABLE_WATCHERS", True),
            max_depth=Config.get("WATCH_MAX_DEPTH", 10),
            inactivity_seconds=Config.get("WATCH_INACTIVITY_SECONDS", 300),
            sweep_interval_seconds=Config.get("WATCH_SWEEP_INTERVAL_SECONDS", 60),
        )


@dataclass
class RawDiskEvent:
    """One filesystem event as handed from the observer thread to the worker."""
    project_id: str
    action_type: str
    path: str
    is_directory: bool
    # Source side of a move; the content lives on elsewhere
    moved: bool = False


@dataclass
class DiskChange:
    """A change delivered to watcher callbacks."""
    project_id: str
    action_type: str
    file_path: str
    relative_path: str
    file_name: str
    is_folder: bool
    timestamp: str = ""
    project_name: Optional[str] = None
    recycle_bin_processed: bool = False

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def is_removal(self) -> bool:
        return self.action_type in REMOVALS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "projectName": self.project_name,
            "actionType": self.action_type,
            "filePath": self.file_path,
            "relativePath": self.relative_path,
            "fileName": self.file_name,
            "timestamp": self.timestamp,
            "isFolder": self.is_folder,
            "recycleBinProcessed": self.recycle_bin_processed,
        }


ChangeCallback = Callable[[DiskChange], Union[None, Awaitable[None]]]


@dataclass
class WatchEntry:
    """Tracks a running project watch."""
    project_id: str
    root_path: str
    observer: Any
    last_touch: float
    project_name: Optional[str] = None
    client_id: Optional[str] = None
    callbacks: List[ChangeCallback] = field(default_factory=list)
    event_count: int = 0
    created_at: str = ""

    def __post_init__(self):
        if not self.created_at:
            self.created_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "rootPath": self.root_path,
            "projectName": self.project_name,
            "callbacks": len(self.callbacks),
            "eventCount": self.event_count,
            "createdAt": self.created_at,
        }
