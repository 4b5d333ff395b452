"""Reconciliation of overrides, appendix and package.json."""

import json
import logging
from pathlib import Path
from typing import Any

from .appendix import (
    appendix_key,
    build_appendix,
    find_removable_appendix_items,
    is_nested_override,
    merge_appendices,
    package_name_from_key,
)
from .config import PastoralistConfig, load_config
from .detect import detect_package_manager
from .errors import ManifestError
from .manifest import ManifestCache, format_manifest, resolve_manifest, write_manifest
from .models import Appendix, DependencyTree, Manifest, PackageManager, ReconcileResult
from .output import HINT_RC_FILE_ID, HINT_RC_FILE_TEXT, ConsoleOutput, HintStore, Output, show_hint
from .overrides import (
    apply_overrides,
    existing_field,
    field_for_manager,
    get_overrides,
    remove_overrides,
)
from .patches import detect_patches, find_unused_patches
from .tree import DependencyTreeBuilder, collect_dependencies, default_builder
from .workspaces import find_package_json_files, resolve_dep_paths

logger = logging.getLogger(__name__)

RC_HINT_LINE_THRESHOLD = 10


def _set_pastoralist(manifest: Manifest, section: dict) -> Manifest:
    """Replace the pastoralist block in place, or drop it when empty."""
    if not section:
        return {key: value for key, value in manifest.items() if key != "pastoralist"}
    if "pastoralist" in manifest:
        return {
            key: (section if key == "pastoralist" else value)
            for key, value in manifest.items()
        }
    return {**manifest, "pastoralist": section}


def _other_pastoralist_keys(manifest: Manifest) -> dict:
    section = manifest.get("pastoralist")
    if not isinstance(section, dict):
        return {}
    return {key: value for key, value in section.items() if key != "appendix"}


def _with_overrides(
    manifest: Manifest,
    appendix: Appendix | None,
    overrides: dict[str, Any],
    field,
) -> Manifest:
    section = _other_pastoralist_keys(manifest)
    if appendix:
        section = {"appendix": appendix, **section}
    updated = _set_pastoralist(manifest, section)
    return apply_overrides(updated, overrides, field)


def _without_overrides(manifest: Manifest) -> Manifest:
    updated = remove_overrides(manifest)
    return _set_pastoralist(updated, _other_pastoralist_keys(updated))


def _should_suggest_rc_file(manifest: Manifest) -> bool:
    section = manifest.get("pastoralist")
    if not section:
        return False
    return len(json.dumps(section, indent=2).splitlines()) > RC_HINT_LINE_THRESHOLD


def update_package_json(
    path: str | Path,
    config: Manifest | None = None,
    appendix: Appendix | None = None,
    overrides: dict[str, Any] | None = None,
    is_testing: bool = False,
    dry_run: bool = False,
    package_manager: PackageManager | None = None,
    cache: ManifestCache | None = None,
    output: Output | None = None,
    hint_store: HintStore | None = None,
) -> Manifest:
    """Write overrides and appendix into a manifest.

    Args:
        path: package.json to update
        config: Current manifest contents; read from path when omitted
        appendix: Appendix to store under pastoralist.appendix
        overrides: Overrides to keep; empty removes the override field, and
            the appendix too unless one is given
        is_testing: Compute only; also skips package manager detection
        dry_run: Compute and print, but do not write
        package_manager: Skip lockfile detection
        cache: Manifest cache to invalidate after writing

    Returns:
        The updated manifest
    """
    if config is None:
        config = resolve_manifest(path, cache)
        if config is None:
            raise ManifestError(f"Could not read manifest at {path}")

    if overrides:
        field = existing_field(config)
        if field is None and not is_testing:
            manager = package_manager or detect_package_manager(Path(path).resolve().parent)
            field = field_for_manager(manager)
        updated = _with_overrides(config, appendix, overrides, field)
    elif appendix:
        # Workspace overrides still need their appendix when the root has none
        updated = _with_overrides(remove_overrides(config), appendix, {}, None)
    else:
        updated = _without_overrides(config)

    if is_testing:
        return updated

    output = output or ConsoleOutput()
    if dry_run:
        output.write_line("[DRY RUN] Would write to package.json:")
        output.write(format_manifest(updated))
        return updated

    write_manifest(path, updated, cache)

    if _should_suggest_rc_file(updated):
        show_hint(HINT_RC_FILE_ID, HINT_RC_FILE_TEXT, output, hint_store)

    return updated


def _removable_overrides(
    overrides: dict[str, Any],
    appendix: Appendix,
    tree: DependencyTree,
) -> list[str]:
    removable = set(find_removable_appendix_items(appendix))
    names = []
    for name, value in overrides.items():
        if is_nested_override(value):
            if not tree.get(name):
                names.append(name)
        elif name in removable:
            names.append(name)
    return names


def _override_keys(name: str, value: Any) -> list[str]:
    if is_nested_override(value):
        return [appendix_key(nested, str(version)) for nested, version in value.items()]
    return [appendix_key(name, str(value))]


def _merge_tracked_paths(appendix: Appendix, tracked: dict[str, Appendix]) -> Appendix:
    """Add overridePaths entries, unioning dependents of existing keys."""
    merged = dict(appendix)
    for path_appendix in tracked.values():
        for key, item in path_appendix.items():
            if key in merged:
                existing = merged[key]
                dependents = {
                    **(existing.get("dependents") or {}),
                    **(item.get("dependents") or {}),
                }
                merged[key] = {**existing, "dependents": dependents}
            else:
                merged[key] = item
    return merged


def reconcile(
    path: str | Path = "package.json",
    root: str | Path | None = None,
    config: PastoralistConfig | None = None,
    dep_paths: str | list[str] | None = None,
    exclude: list[str] | None = None,
    dry_run: bool = False,
    is_testing: bool = False,
    package_manager: PackageManager | None = None,
    extra_overrides: dict[str, Any] | None = None,
    reasons: dict[str, str] | None = None,
    cache: ManifestCache | None = None,
    tree_builder: DependencyTreeBuilder | None = None,
    output: Output | None = None,
    hint_store: HintStore | None = None,
) -> ReconcileResult:
    """Run one reconciliation pass over a project.

    Loads the manifest and config, builds the dependency tree for every
    override, recomputes the appendix, prunes overrides nobody requires
    and writes the result.

    Raises:
        ManifestError: The root manifest cannot be read
        ConfigError: The embedded config is invalid
        WorkspaceError: depPaths are empty or match nothing
    """
    manifest_path = Path(path).resolve()
    root_path = Path(root).resolve() if root else manifest_path.parent

    manifest = resolve_manifest(manifest_path, cache)
    if manifest is None:
        raise ManifestError(f"Could not read manifest at {manifest_path}")

    if config is None:
        config = load_config(root_path, manifest.get("pastoralist"))
    config = config or PastoralistConfig()

    overrides = get_overrides(manifest)
    if extra_overrides:
        overrides.update(extra_overrides)

    patterns = resolve_dep_paths(dep_paths if dep_paths is not None else config.dep_paths, manifest)
    workspace_files: list[str] = []
    if patterns is not None:
        workspace_files = [
            f for f in find_package_json_files(patterns, exclude, root_path)
            if f != str(manifest_path)
        ]

    # Workspace overrides are tracked in the appendix but never written to the root
    tracked_overrides = dict(overrides)
    for workspace_file in workspace_files:
        workspace_overrides = get_overrides(resolve_manifest(workspace_file, cache))
        if workspace_overrides:
            logger.debug("Found %d overrides in %s", len(workspace_overrides), workspace_file)
        for name, value in workspace_overrides.items():
            tracked_overrides.setdefault(name, value)

    manifest_files = [str(manifest_path)] + workspace_files
    builder = tree_builder
    if builder is None:
        builder = DependencyTreeBuilder(cache) if cache is not None else default_builder
    tree = builder.build(manifest_files, list(tracked_overrides))

    embedded = manifest.get("pastoralist")
    embedded_appendix = embedded.get("appendix") if isinstance(embedded, dict) else None
    previous = merge_appendices(embedded_appendix, config.appendix_dict())

    patch_map = detect_patches(root_path)
    appendix = build_appendix(tracked_overrides, tree, manifest, previous, patch_map, reasons)

    root_deps = collect_dependencies(manifest)
    tracked_paths = config.tracked_paths()
    missing_in_root = [name for name in overrides if name not in root_deps]
    if tracked_paths and missing_in_root:
        logger.debug("Using overridePaths configuration for monorepo support")
        appendix = _merge_tracked_paths(appendix, tracked_paths)

    all_deps = dict(root_deps)
    for workspace_file in workspace_files:
        all_deps.update(collect_dependencies(resolve_manifest(workspace_file, cache)))
    unused_patches = find_unused_patches(patch_map, all_deps)
    if unused_patches:
        logger.info(
            "Found %d potentially unused patch files: %s",
            len(unused_patches), ", ".join(unused_patches),
        )

    graph_known = (root_path / "node_modules").is_dir() or bool(workspace_files) or not all_deps
    removed: list[str] = []
    if graph_known:
        tracked_names = {
            package_name_from_key(key)
            for path_appendix in tracked_paths.values()
            for key in path_appendix
        }
        removed = [
            name for name in _removable_overrides(overrides, appendix, tree)
            if name not in tracked_names
        ]
    elif overrides:
        logger.info("node_modules not found in %s; keeping all overrides", root_path)

    if removed:
        logger.debug("Removing overrides: %s", ", ".join(removed))
    removed_keys = {key for name in removed for key in _override_keys(name, overrides[name])}
    final_overrides = {name: value for name, value in overrides.items() if name not in removed}
    final_appendix = {key: item for key, item in appendix.items() if key not in removed_keys}

    updated = update_package_json(
        manifest_path,
        manifest,
        appendix=final_appendix,
        overrides=final_overrides,
        is_testing=is_testing,
        dry_run=dry_run,
        package_manager=package_manager,
        cache=cache,
        output=output,
        hint_store=hint_store,
    )

    return ReconcileResult(
        manifest=updated,
        overrides=final_overrides,
        appendix=final_appendix,
        removed=removed,
        files_scanned=manifest_files,
        written=not (dry_run or is_testing),
    )
