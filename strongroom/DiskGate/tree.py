"""
Folder tree synchronization.

Walks a project folder into the nested dict the UI consumes:

    {"A": {"__files": ["x.txt"], "B": {"__files": ["y.txt"]}}}

Every folder is a key; the reserved "__files" key lists the plain files
directly inside it. Trees are built fresh on every call.
"""

import os
from typing import Any, Dict, Optional

from strongroom.shared.errors import InvalidInput
from strongroom.shared.gate import GateLogger

from .meta import META_FILENAME, read_meta, write_meta
from .models import Invalid, ProjectRef
from .pathing import resolve_project_path
from .scaffold import (
    AccessRules,
    build_root_meta,
    create_initial_folders,
    find_folder_by_meta,
    get_access_rules,
)

_log = GateLogger.get("DiskGate.Tree")

FILES_KEY = "__files"


def walk_folder_tree(folder_path: str) -> Dict[str, Any]:
    """Recursively build the tree for one folder (descriptor files excluded)."""
    tree: Dict[str, Any] = {}
    files = []

    with os.scandir(folder_path) as entries:
        for entry in entries:
            if entry.name == META_FILENAME:
                continue
            if entry.is_dir(follow_symlinks=False):
                if entry.name == FILES_KEY:
                    continue
                tree[entry.name] = walk_folder_tree(entry.path)
            elif entry.is_file():
                files.append(entry.name)

    if files:
        tree[FILES_KEY] = sorted(files)
    return tree


def locate_project_folder(
    project: ProjectRef,
    region: str,
    root: Optional[str] = None,
    access_rules: Optional[AccessRules] = None,
) -> str:
    """
    Find (or create) the folder holding a project's content.

    Order: deterministic path, then a descriptor scan of the region, then a
    fresh scaffold at the deterministic path.

    Raises:
        InvalidInput: the project identifiers cannot be mapped to a path
    """
    resolution = resolve_project_path(project, "", region, root)
    if isinstance(resolution, Invalid):
        raise InvalidInput("Project folder cannot be resolved", details=resolution.reason)

    if os.path.isdir(resolution.path):
        repair_root_meta(resolution.path, project, region, access_rules)
        return resolution.path

    found = find_folder_by_meta(project.id, region, root)
    if found:
        _log.warning(
            f"Project {project.id} found at {found} instead of its canonical path {resolution.path}"
        )
        return found

    _log.warning(f"Project root missing, scaffolding: {resolution.path}")
    create_initial_folders(project, region, access_rules, root)
    return resolution.path


def repair_root_meta(
    folder_path: str,
    project: ProjectRef,
    region: str,
    access_rules: Optional[AccessRules] = None,
) -> bool:
    """
    Re-derive a missing or unreadable root descriptor from the project record.

    A descriptor naming a different project is left untouched.
    """
    existing = read_meta(folder_path)
    if existing is not None:
        if str(existing.get("projectId")) != project.id:
            _log.warning(
                f"{folder_path} descriptor names project {existing.get('projectId')}, "
                f"expected {project.id}"
            )
        return False

    rules = access_rules if access_rules is not None else get_access_rules()
    write_meta(folder_path, build_root_meta(project, region, rules))
    _log.info(f"Re-derived root metadata for project {project.id} at {folder_path}")
    return True
