"""Detection of patch-package style patch files."""

import glob
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

PATCH_PATTERNS = [
    "patches/*.patch",
    ".patches/*.patch",
    "*.patch",
    "patches/**/*.patch",
]


def package_name_from_patch(filename: str) -> str:
    """Extract the package name from a patch file name.

    patch-package names files ``name+version.patch`` and
    ``@scope+name+version.patch``.
    """
    stem = Path(filename).name.removesuffix(".patch")
    if "+" not in stem:
        return stem

    parts = stem.split("+")
    if stem.startswith("@") and len(parts) >= 2:
        return f"{parts[0]}/{parts[1]}"
    return parts[0]


def detect_patches(root: str | Path = ".") -> dict[str, list[str]]:
    """Map package names to the patch files found under root."""
    root_path = Path(root)
    patch_map: dict[str, list[str]] = {}
    seen: set[str] = set()

    for pattern in PATCH_PATTERNS:
        for match in sorted(glob.glob(pattern, root_dir=root_path, recursive=True)):
            relative = Path(match).as_posix()
            if relative in seen:
                continue
            seen.add(relative)

            name = package_name_from_patch(relative)
            if not name:
                continue
            logger.debug("Found patch for %s: %s", name, relative)
            patch_map.setdefault(name, []).append(relative)

    return patch_map


def find_unused_patches(patch_map: dict[str, list[str]], dependencies: dict[str, str]) -> list[str]:
    """Return patch files whose package is no longer a dependency."""
    unused: list[str] = []
    for name, patches in patch_map.items():
        if name not in dependencies:
            unused.extend(patches)
    return unused
