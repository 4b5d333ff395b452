"""Dependency tree construction from root, workspace and installed manifests."""

import logging
from pathlib import Path

from .manifest import ManifestCache, resolve_manifest
from .models import DependencyTree, Manifest

logger = logging.getLogger(__name__)

PROJECT_DEPENDENCY_FIELDS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)
# devDependencies of an installed package are never installed
INSTALLED_DEPENDENCY_FIELDS = (
    "dependencies",
    "peerDependencies",
    "optionalDependencies",
)


def collect_dependencies(
    manifest: Manifest | None,
    fields=PROJECT_DEPENDENCY_FIELDS,
) -> dict[str, str]:
    """Merge the dependency maps of a manifest, later fields winning."""
    merged: dict[str, str] = {}
    if not manifest:
        return merged
    for field in fields:
        deps = manifest.get(field)
        if isinstance(deps, dict):
            merged.update({name: str(spec) for name, spec in deps.items()})
    return merged


def iter_installed_manifests(node_modules: Path):
    """Yield package.json paths of every package installed below node_modules."""
    if not node_modules.is_dir():
        return

    stack = [node_modules]
    while stack:
        directory = stack.pop()
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            logger.debug("Cannot list %s: %s", directory, e)
            continue

        for entry in entries:
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            if entry.name.startswith("@"):
                stack.append(entry)
                continue
            manifest_path = entry / "package.json"
            if manifest_path.is_file():
                yield manifest_path
            nested = entry / "node_modules"
            if nested.is_dir():
                stack.append(nested)


class DependencyTreeBuilder:
    """Builds and caches the requester map for overridden packages."""

    def __init__(self, cache: ManifestCache | None = None):
        self.manifest_cache = cache
        self._cache: dict[tuple, DependencyTree] = {}

    def clear(self) -> None:
        self._cache.clear()

    def _record(
        self,
        tree: DependencyTree,
        manifest: Manifest,
        requester: str,
        names: set[str],
        fields: tuple[str, ...],
    ) -> None:
        for dep_name, spec in collect_dependencies(manifest, fields).items():
            # Full-name match keeps @scope/name distinct from name
            if dep_name in names:
                tree.setdefault(dep_name, {})[requester] = spec

    def build(
        self,
        manifest_paths: list[str],
        package_names: list[str],
        include_installed: bool = True,
    ) -> DependencyTree:
        """Map each overridden package to the packages requesting it.

        Args:
            manifest_paths: Root and workspace package.json files
            package_names: Names of overridden packages to look for
            include_installed: Also walk node_modules next to each manifest

        Returns:
            package name -> {requester name: requested range}
        """
        key = (tuple(manifest_paths), tuple(sorted(package_names)), include_installed)
        if key in self._cache:
            logger.debug("Using cached dependency tree")
            return self._cache[key]

        names = set(package_names)
        tree: DependencyTree = {}
        seen: set[Path] = set()

        for path in manifest_paths:
            manifest_path = Path(path).resolve()
            manifest = resolve_manifest(manifest_path, self.manifest_cache)
            if manifest is None:
                logger.debug("Skipping unreadable manifest %s", manifest_path)
                continue

            seen.add(manifest_path)
            requester = manifest.get("name") or manifest_path.parent.name
            self._record(tree, manifest, requester, names, PROJECT_DEPENDENCY_FIELDS)

            if not include_installed:
                continue

            for installed_path in iter_installed_manifests(manifest_path.parent / "node_modules"):
                installed_path = installed_path.resolve()
                if installed_path in seen:
                    continue
                seen.add(installed_path)
                # Installed files are read once and not kept in the manifest cache
                installed = resolve_manifest(installed_path, ManifestCache())
                if installed is None:
                    logger.debug("Skipping unreadable manifest %s", installed_path)
                    continue
                installed_name = installed.get("name") or installed_path.parent.name
                self._record(tree, installed, installed_name, names, INSTALLED_DEPENDENCY_FIELDS)

        self._cache[key] = tree
        return tree


default_builder = DependencyTreeBuilder()


def get_dependency_tree(
    manifest_paths: list[str],
    package_names: list[str],
    include_installed: bool = True,
) -> DependencyTree:
    return default_builder.build(manifest_paths, package_names, include_installed)


def clear_dependency_tree_cache() -> None:
    default_builder.clear()
