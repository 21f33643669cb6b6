"""
Project folder relocation after a rename.

Moves a project's whole tree from the canonical path of its previous
identifiers to the canonical path of its new ones. Never overwrites.
"""

import os
import shutil
from typing import Any, Dict, Optional, Union

from strongroom.shared.errors import IOFailure
from strongroom.shared.gate import GateLogger, GateOperationResult, PathUtils

from .meta import move_meta, read_meta, utc_timestamp, write_meta
from .models import Invalid, ProjectRef
from .pathing import resolve_project_path
from .scaffold import AccessRules, create_initial_folders

_log = GateLogger.get("DiskGate.Relocate")

ProjectLike = Union[ProjectRef, Dict[str, Any]]


def move_tree(source: str, destination: str) -> str:
    """
    Move a file or directory, falling back to copy + delete when rename fails.

    Returns the method used ("rename" or "copy"). A failed copy removes its
    partial output so the source stays authoritative.

    Raises:
        IOFailure: destination lies inside source, or neither rename nor
            copy + delete succeeded
    """
    if os.path.isdir(source) and PathUtils.is_within(source, destination):
        raise IOFailure(f"Cannot move {source} into itself", details=destination)

    os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)

    try:
        os.rename(source, destination)
        return "rename"
    except OSError as e:
        _log.warning(f"Rename {source} -> {destination} failed ({e}); copying instead")

    try:
        if os.path.isdir(source):
            shutil.copytree(source, destination)
        else:
            shutil.copy2(source, destination)
    except OSError as e:
        if os.path.isdir(destination):
            shutil.rmtree(destination, ignore_errors=True)
        elif os.path.exists(destination):
            os.remove(destination)
        raise IOFailure(f"Could not move {source}", details=str(e)) from e

    try:
        if os.path.isdir(source):
            shutil.rmtree(source)
        else:
            os.remove(source)
    except OSError as e:
        raise IOFailure(
            f"Copied {source} to {destination} but could not remove the original",
            details=str(e),
        ) from e

    return "copy"


def relocate_project_folder(
    old_project: ProjectLike,
    new_project: ProjectLike,
    region: Optional[str] = None,
    root: Optional[str] = None,
    access_rules: Optional[AccessRules] = None,
) -> GateOperationResult:
    """
    Move a project's folder to match its new number/name.

    Args:
        old_project: Project record before the update
        new_project: Project record after the update
        region: Region segment (defaults to the new project's region)
        root: Storage root (defaults to the probed root)
        access_rules: Used when the old folder never existed and a fresh
            scaffold runs at the new location

    Returns:
        GateOperationResult; success=False with a reason when the paths
        cannot be resolved, the target is occupied, or the move failed.
    """
    old_project = ProjectRef.coerce(old_project)
    new_project = ProjectRef.coerce(new_project)
    region = (region or new_project.region or "AU").upper()

    old_res = resolve_project_path(old_project, "", region, root)
    new_res = resolve_project_path(new_project, "", region, root)
    if isinstance(old_res, Invalid):
        return GateOperationResult.fail("relocate", old_res.reason)
    if isinstance(new_res, Invalid):
        return GateOperationResult.fail("relocate", new_res.reason)

    old_path, new_path = old_res.path, new_res.path
    paths = {"oldPath": old_path, "newPath": new_path}

    if old_path == new_path:
        return GateOperationResult.ok("relocate", "Path unchanged", paths)

    if not os.path.exists(old_path):
        _log.info(f"No folder at {old_path}; scaffolding {new_path}")
        if create_initial_folders(new_project, region, access_rules, root):
            return GateOperationResult.ok("relocate", "Scaffolded at new path", paths)
        return GateOperationResult.fail("relocate", "Scaffold at new path failed", paths)

    if os.path.exists(new_path):
        _log.warning(f"Relocation target already exists: {new_path}")
        return GateOperationResult.fail("relocate", "Target folder already exists", paths)

    try:
        method = move_tree(old_path, new_path)
        move_meta(old_path, new_path)
        _refresh_identity(new_path, new_project)
    except (IOFailure, OSError) as e:
        _log.error(f"Relocation {old_path} -> {new_path} failed: {e}")
        return GateOperationResult.fail("relocate", str(e), paths)

    _log.info(f"Relocated project {new_project.id} ({method}): {old_path} -> {new_path}")
    return GateOperationResult.ok("relocate", f"Moved by {method}", {**paths, "method": method})


def _refresh_identity(folder_path: str, project: ProjectRef) -> None:
    meta = read_meta(folder_path)
    if meta is None:
        return
    meta["projectNumber"] = project.project_number
    meta["projectName"] = project.name
    meta["lastUpdated"] = utc_timestamp()
    write_meta(folder_path, meta)


def reconcile_project_update(
    old_project: ProjectLike,
    new_project: ProjectLike,
    region: Optional[str] = None,
    root: Optional[str] = None,
    access_rules: Optional[AccessRules] = None,
) -> GateOperationResult:
    """
    Relocation as run after a project update.

    A failed relocation never fails the update; the new path is scaffolded
    instead so the project always has a usable folder.
    """
    result = relocate_project_folder(old_project, new_project, region, root, access_rules)
    if result.success:
        return result

    _log.warning(f"Relocation failed ({result.reason}); scaffolding the new path as repair")
    repaired = create_initial_folders(new_project, region, access_rules, root)
    data = dict(result.data or {})
    data["repaired"] = repaired
    return GateOperationResult(
        success=False,
        operation="reconcile",
        message="Scaffolded new path after failed relocation" if repaired else "",
        data=data,
        reason=result.reason,
    )
