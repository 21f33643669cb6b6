"""
Project folder scaffolding.

Creates the canonical project root, its access-controlled subfolders and the
root descriptor. Every step is idempotent so a partial run heals on the next
call.
"""

import glob
import json
import os
from typing import Any, Dict, List, Optional, Union

from strongroom import Config
from strongroom.Config.schema import DEFAULT_ACCESS_RULES_JSON
from strongroom.shared.errors import IOFailure
from strongroom.shared.gate import GateLogger

from .meta import META_FILENAME, read_meta, utc_timestamp, write_meta
from .models import Invalid, ProjectRef
from .pathing import get_storage_root, resolve_project_path

_log = GateLogger.get("DiskGate.Scaffold")

AccessRules = Dict[str, List[str]]

DEFAULT_ACCESS_RULES: AccessRules = json.loads(DEFAULT_ACCESS_RULES_JSON)


def get_access_rules() -> AccessRules:
    """Configured folder -> roles map, falling back to the defaults when malformed."""
    rules = Config.get("FOLDER_ACCESS_RULES")
    if isinstance(rules, dict) and all(
        isinstance(k, str) and isinstance(v, list) for k, v in rules.items()
    ):
        return rules

    _log.warning("FOLDER_ACCESS_RULES is not a folder -> roles map; using defaults")
    return dict(DEFAULT_ACCESS_RULES)


def build_root_meta(
    project: ProjectRef,
    region: str,
    access_rules: AccessRules,
    created_at: Optional[str] = None,
) -> Dict[str, Any]:
    """The root descriptor written for a project folder."""
    return {
        "projectId": project.id,
        "projectNumber": project.project_number,
        "projectName": project.name,
        "region": region.upper(),
        "createdAt": created_at or utc_timestamp(),
        "allowedRoles": {folder: list(roles) for folder, roles in access_rules.items()},
        "structure": list(access_rules.keys()),
    }


def create_initial_folders(
    project: Union[ProjectRef, Dict[str, Any]],
    region: Optional[str] = None,
    access_rules: Optional[AccessRules] = None,
    root: Optional[str] = None,
) -> bool:
    """
    Scaffold a project's root folder.

    Args:
        project: Project record
        region: Region segment (defaults to the project's region)
        access_rules: Folder -> roles map (defaults to FOLDER_ACCESS_RULES)
        root: Storage root (defaults to the probed root)

    Returns:
        True once the root, its descriptor and every subfolder exist;
        False if the project cannot be mapped to a path or the existing
        descriptor belongs to another project.

    Raises:
        IOFailure: directory or descriptor could not be written
    """
    project = ProjectRef.coerce(project)
    region = (region or project.region or "AU").upper()
    rules = access_rules if access_rules is not None else get_access_rules()

    resolution = resolve_project_path(project, "", region, root)
    if isinstance(resolution, Invalid):
        _log.error(f"Cannot scaffold project {project.id}: {resolution.reason}")
        return False
    project_root = resolution.path

    try:
        os.makedirs(project_root, exist_ok=True)

        existing = read_meta(project_root)
        if existing is None:
            write_meta(project_root, build_root_meta(project, region, rules))
            _log.info(f"Wrote root metadata for project {project.id}")
        elif str(existing.get("projectId")) != project.id:
            _log.error(
                f"{project_root} is claimed by project {existing.get('projectId')}; "
                f"not scaffolding project {project.id}"
            )
            return False
        elif existing.get("allowedRoles") != rules or existing.get("structure") != list(rules):
            refreshed = build_root_meta(project, region, rules, existing.get("createdAt"))
            refreshed["lastUpdated"] = utc_timestamp()
            write_meta(project_root, refreshed)

        for folder in rules:
            os.makedirs(os.path.join(project_root, folder), exist_ok=True)

    except OSError as e:
        raise IOFailure(f"Failed to scaffold {project_root}", details=str(e)) from e

    return True


def _iter_root_descriptors(region: str, root: Optional[str]):
    """Yield every root/REGION/YEAR/MONTH/PROJECT/.meta.json path."""
    pattern = os.path.join(
        glob.escape(root or get_storage_root()),
        glob.escape(region.upper()),
        "*", "*", "*",
        META_FILENAME,
    )
    return glob.iglob(pattern)


def find_folder_by_meta(project_id: str, region: str, root: Optional[str] = None) -> Optional[str]:
    """
    Scan every project folder under a region for a descriptor naming project_id.

    Walks root/REGION/*/*/*/.meta.json, so the cost grows with the number of
    projects on disk.
    """
    for candidate in _iter_root_descriptors(region, root):
        folder = os.path.dirname(candidate)
        meta = read_meta(folder)
        if meta and str(meta.get("projectId")) == str(project_id):
            return folder
    return None


def migrate_access_rules(
    region: str,
    access_rules: Optional[AccessRules] = None,
    root: Optional[str] = None,
) -> Dict[str, int]:
    """
    Rewrite allowedRoles/structure in every project descriptor under a region.

    Missing subfolders for the new rules are created; folders no longer named
    by the rules are left on disk.
    """
    rules = access_rules if access_rules is not None else get_access_rules()

    stats = {"scanned": 0, "updated": 0, "skipped": 0}
    for candidate in _iter_root_descriptors(region, root):
        stats["scanned"] += 1
        folder = os.path.dirname(candidate)
        meta = read_meta(folder)
        if meta is None:
            stats["skipped"] += 1
            continue

        meta["allowedRoles"] = {name: list(roles) for name, roles in rules.items()}
        meta["structure"] = list(rules.keys())
        meta["lastUpdated"] = utc_timestamp()
        try:
            write_meta(folder, meta)
            for name in rules:
                os.makedirs(os.path.join(folder, name), exist_ok=True)
        except OSError as e:
            _log.warning(f"Could not migrate {folder}: {e}")
            stats["skipped"] += 1
            continue
        stats["updated"] += 1

    _log.info(f"Access rule migration for {region.upper()}: {stats}")
    return stats
