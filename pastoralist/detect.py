"""Package manager detection from lockfiles."""

from pathlib import Path

from .models import PackageManager

# Checked in order; the first lockfile found wins.
LOCKFILES: list[tuple[str, PackageManager]] = [
    ("bun.lockb", "bun"),
    ("bun.lock", "bun"),
    ("yarn.lock", "yarn"),
    ("pnpm-lock.yaml", "pnpm"),
]


def detect_package_manager(root: str | Path = ".") -> PackageManager:
    """Detect the package manager in use for a project.

    Args:
        root: Project directory to inspect

    Returns:
        'bun', 'yarn', 'pnpm', or 'npm' when no known lockfile is present
    """
    root_path = Path(root)
    for filename, manager in LOCKFILES:
        if (root_path / filename).exists():
            return manager
    return "npm"
