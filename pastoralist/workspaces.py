"""Workspace glob resolution for monorepos."""

import glob
import logging
from fnmatch import fnmatch
from pathlib import Path

from .errors import WorkspaceError
from .models import Manifest

logger = logging.getLogger(__name__)

WORKSPACE_SENTINELS = ("workspace", "workspaces")
DEFAULT_EXCLUDE = ["node_modules"]


def workspace_patterns(manifest: Manifest | None) -> list[str]:
    """List the workspace globs declared by a root manifest.

    Supports both the array form and yarn's ``{"packages": [...]}`` form.
    """
    if not manifest:
        return []
    workspaces = manifest.get("workspaces")
    if isinstance(workspaces, dict):
        workspaces = workspaces.get("packages")
    if not isinstance(workspaces, list):
        return []
    return [ws for ws in workspaces if isinstance(ws, str) and ws]


def _as_manifest_glob(pattern: str) -> str:
    return f"{pattern.rstrip('/')}/package.json"


def resolve_dep_paths(
    dep_paths: str | list[str] | None,
    manifest: Manifest | None,
) -> list[str] | None:
    """Turn configured depPaths into concrete glob patterns.

    Args:
        dep_paths: "workspace"/"workspaces", an explicit pattern list, or None
        manifest: Root manifest used to auto-derive workspace globs

    Returns:
        Glob patterns pointing at package.json files, or None when the
        project is not a monorepo
    """
    if dep_paths in WORKSPACE_SENTINELS:
        patterns = workspace_patterns(manifest)
        return [_as_manifest_glob(ws) for ws in patterns] or None

    if isinstance(dep_paths, list):
        return list(dep_paths)

    patterns = workspace_patterns(manifest)
    if patterns:
        return [_as_manifest_glob(ws) for ws in patterns]
    return None


def _is_excluded(relative: str, exclude: list[str]) -> bool:
    parts = relative.split("/")
    for pattern in exclude:
        # Bare names exclude any path segment, others are globs
        if "/" not in pattern and not any(ch in pattern for ch in "*?["):
            if pattern in parts:
                return True
        elif fnmatch(relative, pattern) or fnmatch(f"/{relative}", pattern):
            return True
    return False


def find_package_json_files(
    patterns: list[str],
    exclude: list[str] | None = None,
    root: str | Path = ".",
) -> list[str]:
    """Expand glob patterns into package.json paths.

    Args:
        patterns: Globs relative to root, e.g. ``packages/*/package.json``
        exclude: Directory names or globs to skip, on top of node_modules
        root: Directory the globs are evaluated from

    Returns:
        Sorted absolute paths

    Raises:
        WorkspaceError: No patterns were given, or none of them matched
    """
    if not patterns:
        logger.error("No depPaths provided")
        raise WorkspaceError("No depPaths provided to find_package_json_files")

    exclude = DEFAULT_EXCLUDE + [p for p in exclude or [] if p not in DEFAULT_EXCLUDE]
    root_path = Path(root).resolve()
    logger.debug(
        "Searching with patterns: %s, ignoring: %s, cwd: %s",
        ", ".join(patterns), ", ".join(exclude), root_path,
    )

    found: set[str] = set()
    for pattern in patterns:
        for match in glob.glob(pattern, root_dir=root_path, recursive=True):
            relative = Path(match).as_posix()
            if _is_excluded(relative, exclude):
                continue
            path = (root_path / match).resolve()
            if path.is_file():
                found.add(str(path))

    if not found:
        message = (
            f"No package.json files found matching patterns: {', '.join(patterns)} "
            f"in directory: {root_path}"
        )
        logger.error(message)
        raise WorkspaceError(message)

    logger.debug("Found %d files", len(found))
    return sorted(found)
