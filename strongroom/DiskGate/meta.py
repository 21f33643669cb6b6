"""
Folder metadata descriptors (.meta.json).

A missing or unparsable descriptor reads as None; callers fall back to
path-based inference.
"""

import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from strongroom.shared.gate import GateLogger

_log = GateLogger.get("DiskGate.Meta")

META_FILENAME = ".meta.json"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def meta_path(folder_path: str) -> str:
    return os.path.join(folder_path, META_FILENAME)


def read_meta(folder_path: str) -> Optional[Dict[str, Any]]:
    """Read a folder's descriptor, or None if absent or unreadable."""
    path = meta_path(folder_path)
    if not os.path.isfile(path):
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        _log.warning(f"Unreadable metadata at {path}: {e}")
        return None

    if not isinstance(data, dict):
        _log.warning(f"Metadata at {path} is not an object")
        return None
    return data


def write_meta(folder_path: str, data: Dict[str, Any]) -> None:
    """Write a descriptor, replacing any existing one in a single rename."""
    path = meta_path(folder_path)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    os.replace(tmp_path, path)


def update_meta(folder_path: str, key: str, value: Any) -> Dict[str, Any]:
    """Set one key on a descriptor (creating it if needed) and stamp lastUpdated."""
    data = read_meta(folder_path) or {}
    data[key] = value
    data["lastUpdated"] = utc_timestamp()
    write_meta(folder_path, data)
    return data


def init_meta(folder_path: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Return the existing descriptor, writing defaults first if there is none."""
    existing = read_meta(folder_path)
    if existing is not None:
        return existing
    write_meta(folder_path, defaults)
    _log.info(f"Created default metadata in {folder_path}")
    return dict(defaults)


def move_meta(old_folder: str, new_folder: str) -> bool:
    """
    Move a descriptor to a relocated folder.

    Returns False when there is nothing to move (already travelled with the
    content, or never existed).
    """
    source = meta_path(old_folder)
    if not os.path.isfile(source):
        return False

    os.makedirs(new_folder, exist_ok=True)
    os.replace(source, meta_path(new_folder))
    return True
