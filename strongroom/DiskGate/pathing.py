"""
Canonical disk paths for projects.

    {root}/{REGION}/{FULL_YEAR}/{MM}. {Mon}/{projectNumber} - {name}/{relative}

The storage root is probed once per process: the production mount if it
exists, otherwise the development directory.
"""

import os
import re
from typing import Any, Dict, Optional, Union

from strongroom import Config
from strongroom.shared.gate import GateLogger

from .models import Invalid, Ok, PathResolution, ProjectRef

_log = GateLogger.get("DiskGate.Paths")

MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

_PROJECT_NUMBER = re.compile(r"^(\d{2})-(\d{2})\w*$")

_storage_root: Optional[str] = None


def probe_storage_root(
    explicit: Optional[str] = None,
    production: Optional[str] = None,
    development: Optional[str] = None,
) -> str:
    """Pick the storage root: explicit setting, production mount, then development."""
    if explicit:
        return os.path.abspath(explicit)
    if production and os.path.isdir(production):
        return production
    return os.path.abspath(development or ".FM")


def get_storage_root() -> str:
    """The process-wide storage root, probed on first use."""
    global _storage_root
    if _storage_root is None:
        _storage_root = probe_storage_root(
            Config.get("STORAGE_ROOT"),
            Config.get("STORAGE_ROOT_PRODUCTION"),
            Config.get("STORAGE_ROOT_DEVELOPMENT"),
        )
        _log.info(f"Storage root: {_storage_root}")
    return _storage_root


def set_storage_root(path: str) -> None:
    """Pin the storage root (startup override)."""
    global _storage_root
    _storage_root = os.path.abspath(path)


def reset_storage_root() -> None:
    global _storage_root
    _storage_root = None


def month_folder(month: int) -> str:
    """Folder label for a month number, e.g. 10 -> '10. Oct'."""
    return f"{month:02d}. {MONTH_ABBREVIATIONS[month - 1]}"


def _split_relative(relative_folder: str) -> Optional[list]:
    parts = [p for p in relative_folder.replace("\\", "/").split("/") if p and p != "."]
    if any(p == ".." for p in parts):
        return None
    return parts


def resolve_project_path(
    project: Union[ProjectRef, Dict[str, Any]],
    relative_folder: str = "",
    region: Optional[str] = None,
    root: Optional[str] = None,
) -> PathResolution:
    """
    Derive the canonical on-disk directory for a project.

    Args:
        project: ProjectRef or project document with projectNumber and name
        relative_folder: Optional path below the project folder
        region: Region segment (defaults to the project's region)
        root: Storage root (defaults to the probed root)

    Returns:
        Ok(path), or Invalid(reason) when the identifiers cannot be mapped
    """
    try:
        project = ProjectRef.coerce(project)
    except ValueError as e:
        return _invalid(f"Malformed project record: {e}")

    number = (project.project_number or "").strip()
    name = (project.name or "").strip()
    if not number or not name:
        return _invalid(f"Project {project.id} is missing projectNumber or name")

    match = _PROJECT_NUMBER.match(number)
    if not match:
        return _invalid(f"Project number '{number}' does not match YY-MMNNN")

    year_short, month_digits = match.groups()
    month = int(month_digits)
    if not 1 <= month <= 12:
        return _invalid(f"Project number '{number}' has month {month_digits} outside 01-12")

    parts = _split_relative(relative_folder or "")
    if parts is None:
        return _invalid(f"Relative folder '{relative_folder}' escapes the project folder")

    region_segment = (region or project.region or "AU").upper()
    path = os.path.join(
        root or get_storage_root(),
        region_segment,
        f"20{year_short}",
        month_folder(month),
        f"{number} - {project.name}",
        *parts,
    )
    return Ok(path)


def _invalid(reason: str) -> Invalid:
    _log.warning(reason)
    return Invalid(reason)
