"""
ZIP export of project folders.
"""

import os
import re
import tempfile
import zipfile
from datetime import date
from typing import Optional

from .meta import META_FILENAME

_UNSAFE = re.compile(r"[^a-zA-Z0-9\-_]")


def archive_filename(folder_path: Optional[str], today: Optional[date] = None) -> str:
    """Download name for a folder archive, e.g. Project_Drawings_2025-10-14.zip."""
    label = folder_path if folder_path and folder_path != "." else "ProjectRoot"
    stamp = (today or date.today()).isoformat()
    return f"{_UNSAFE.sub('_', label)}_{stamp}.zip"


def build_zip_archive(folder: str, temp_dir: Optional[str] = None) -> str:
    """
    Write folder into a temporary ZIP and return its path.

    Entries are stored under the folder's own name so extracting recreates it.
    Descriptor files are left out. The caller removes the archive.
    """
    fd, zip_path = tempfile.mkstemp(suffix=".zip", dir=temp_dir)
    os.close(fd)

    prefix = os.path.basename(os.path.normpath(folder))
    with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as zipf:
        for current, dirs, files in os.walk(folder):
            dirs.sort()
            rel_dir = os.path.relpath(current, folder)
            arc_dir = prefix if rel_dir == "." else os.path.join(prefix, rel_dir)
            if not files and not dirs:
                zipf.writestr(arc_dir.replace(os.sep, "/") + "/", "")
            for name in sorted(files):
                if name == META_FILENAME:
                    continue
                zipf.write(os.path.join(current, name), os.path.join(arc_dir, name))

    return zip_path
