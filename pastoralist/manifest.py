"""package.json loading, caching and writing."""

import json
import logging
from pathlib import Path

from .errors import ManifestWriteError
from .models import Manifest

logger = logging.getLogger(__name__)


class ManifestCache:
    """Parsed manifests keyed by absolute path."""

    def __init__(self):
        self._entries: dict[str, Manifest] = {}

    @staticmethod
    def key(path: str | Path) -> str:
        return str(Path(path).resolve())

    def get(self, path: str | Path) -> Manifest | None:
        return self._entries.get(self.key(path))

    def set(self, path: str | Path, manifest: Manifest) -> None:
        self._entries[self.key(path)] = manifest

    def delete(self, path: str | Path) -> bool:
        return self._entries.pop(self.key(path), None) is not None

    def clear(self) -> int:
        """Drop every entry and return how many there were."""
        size = len(self._entries)
        self._entries.clear()
        logger.debug("Cache cleared. Had %d entries", size)
        return size

    def stats(self) -> dict:
        return {"size": len(self._entries), "keys": list(self._entries)}


default_cache = ManifestCache()


def _parse_json_file(path: Path) -> Manifest | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.debug("No manifest at %s", path)
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.debug("Invalid JSON at %s: %s", path, e)
        return None

    if not isinstance(data, dict):
        logger.debug("Manifest at %s is not a JSON object", path)
        return None
    return data


def resolve_manifest(path: str | Path, cache: ManifestCache | None = None) -> Manifest | None:
    """Load a manifest, reusing the cached object for the same path.

    Args:
        path: Path to a package.json style file
        cache: Cache to use; defaults to the process-wide cache

    Returns:
        The parsed manifest, or None when the file is missing or malformed
    """
    cache = cache if cache is not None else default_cache
    cached = cache.get(path)
    if cached is not None:
        return cached

    manifest = _parse_json_file(Path(path).resolve())
    if manifest is not None:
        cache.set(path, manifest)
    return manifest


def format_manifest(manifest: Manifest) -> str:
    """Serialise a manifest the way npm writes package.json."""
    return json.dumps(manifest, indent=2, ensure_ascii=False) + "\n"


def write_manifest(
    path: str | Path,
    manifest: Manifest,
    cache: ManifestCache | None = None,
) -> None:
    """Persist a manifest and invalidate its cache entry.

    OS errors propagate to the caller.
    """
    cache = cache if cache is not None else default_cache
    target = Path(path).resolve()
    if target.suffix != ".json":
        raise ManifestWriteError(f"Invalid target file: {target}")

    target.write_text(format_manifest(manifest), encoding="utf-8")
    cache.delete(target)
    logger.debug("Wrote %s", target)


def get_cache_stats(cache: ManifestCache | None = None) -> dict:
    return (cache if cache is not None else default_cache).stats()


def force_clear_cache(cache: ManifestCache | None = None) -> int:
    return (cache if cache is not None else default_cache).clear()
