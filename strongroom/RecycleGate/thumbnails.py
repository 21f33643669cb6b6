"""
Thumbnails for recycled images.

Both functions are best-effort: failures are logged and never reach the
caller.
"""

import logging
import os
from datetime import datetime
from typing import Optional

from PIL import Image, ImageOps

from strongroom.shared.gate import GateErrorHandler

from .storage import can_thumbnail, thumbnail_path

THUMBNAIL_SIZE = (200, 200)
THUMBNAIL_QUALITY = 80


@GateErrorHandler.wrap("RecycleGate.Thumbnails", "Thumbnail generation", log_level=logging.WARNING)
def generate_thumbnail(source: str, base_path: str, client_id: str, when: datetime) -> Optional[str]:
    """Write a 200x200 cover-cropped JPEG of an image; returns its path or None."""
    if not can_thumbnail(source):
        return None

    destination = thumbnail_path(base_path, client_id, when)
    os.makedirs(os.path.dirname(destination), exist_ok=True)

    with Image.open(source) as img:
        thumb = ImageOps.fit(img.convert("RGB"), THUMBNAIL_SIZE, Image.Resampling.LANCZOS)
        thumb.save(destination, "JPEG", quality=THUMBNAIL_QUALITY)

    return destination


@GateErrorHandler.wrap("RecycleGate.Thumbnails", "Thumbnail removal", default_return=False, log_level=logging.WARNING)
def remove_thumbnail(path: Optional[str]) -> bool:
    if not path or not os.path.exists(path):
        return False
    os.remove(path)
    return True
