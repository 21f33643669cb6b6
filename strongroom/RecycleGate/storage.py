"""
RecycleGate file storage operations.

Layout under the recycle-bin base path:

    YYYY/MM/DD/client_{clientId}/{epochMillis}_{originalName}
    thumbnails/client_{clientId}/{epochMillis}_thumb.jpg
"""

import mimetypes
import os
import shutil
from datetime import datetime, timezone
from typing import Optional

from strongroom.shared.errors import Conflict

mimetypes.init()

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp"}
PREVIEW_EXTENSIONS = IMAGE_EXTENSIONS | {".pdf"}

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".txt": "text/plain",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

MAX_RESTORE_SUFFIX = 1000

_SIZE_UNITS = ("B", "KB", "MB", "GB")


def extension_of(name: str) -> str:
    return os.path.splitext(name)[1].lower()


def detect_mime_type(path: str) -> str:
    """MIME type from the file extension."""
    ext = extension_of(path)
    if ext in MIME_TYPES:
        return MIME_TYPES[ext]
    mime, _ = mimetypes.guess_type(path)
    return mime or "application/octet-stream"


def can_preview(name: str) -> bool:
    return extension_of(name) in PREVIEW_EXTENSIONS


def can_thumbnail(name: str) -> bool:
    return extension_of(name) in IMAGE_EXTENSIONS


def format_file_size(size: int) -> str:
    """Human-readable size: '0 B', '1.5 KB', '2.0 GB'."""
    if not size:
        return "0 B"
    value = float(size)
    i = 0
    while value >= 1024 and i < len(_SIZE_UNITS) - 1:
        value /= 1024
        i += 1
    return f"{value:.1f} {_SIZE_UNITS[i]}"


def epoch_millis(when: datetime) -> int:
    """Milliseconds since the epoch for a naive-UTC or aware datetime."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return int(when.timestamp() * 1000)


def dated_folder(client_id: str, when: datetime) -> str:
    """Relative folder for a deletion, e.g. '2025/10/14/client_42'."""
    return f"{when.year:04d}/{when.month:02d}/{when.day:02d}/client_{client_id}"


def build_recycle_path(base_path: str, client_id: str, file_name: str, when: datetime) -> str:
    return os.path.join(
        base_path,
        *dated_folder(client_id, when).split("/"),
        f"{epoch_millis(when)}_{file_name}",
    )


def thumbnail_path(base_path: str, client_id: str, when: datetime) -> str:
    return os.path.join(base_path, "thumbnails", f"client_{client_id}", f"{epoch_millis(when)}_thumb.jpg")


def unique_restore_path(target: str) -> str:
    """
    target if it is free, otherwise the first free {stem}_restored_{n}{ext}.

    Raises:
        Conflict: every suffix below MAX_RESTORE_SUFFIX is taken
    """
    if not os.path.lexists(target):
        return target

    directory = os.path.dirname(target)
    stem, ext = os.path.splitext(os.path.basename(target))
    for n in range(1, MAX_RESTORE_SUFFIX):
        candidate = os.path.join(directory, f"{stem}_restored_{n}{ext}")
        if not os.path.lexists(candidate):
            return candidate

    raise Conflict("No free restore name available", details=target)


def move_into_place(source: str, destination: str) -> None:
    """Move a file or folder, creating the destination's parent directories."""
    os.makedirs(os.path.dirname(destination), exist_ok=True)
    shutil.move(source, destination)


def remove_path(path: Optional[str]) -> None:
    """Delete a file or folder; a missing path is not an error."""
    if not path or not os.path.lexists(path):
        return
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)
