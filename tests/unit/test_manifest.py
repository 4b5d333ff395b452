"""Tests for manifest loading, caching and writing."""

import json

import pytest

from pastoralist.errors import ManifestWriteError
from pastoralist.manifest import (
    ManifestCache,
    force_clear_cache,
    format_manifest,
    get_cache_stats,
    resolve_manifest,
    write_manifest,
)


class TestResolveManifest:
    """Test manifest loading."""

    def test_reads_valid_manifest(self, tmp_path, cache, sample_package_json, write_json):
        """Should parse a package.json into a dict."""
        path = write_json(tmp_path / "package.json", sample_package_json)
        assert resolve_manifest(path, cache) == sample_package_json

    def test_missing_file_returns_none(self, tmp_path, cache):
        """Should return None instead of raising for a missing file."""
        assert resolve_manifest(tmp_path / "package.json", cache) is None

    def test_malformed_json_returns_none(self, tmp_path, cache):
        """Should return None for malformed JSON."""
        path = tmp_path / "package.json"
        path.write_text('{"name": "broken",')
        assert resolve_manifest(path, cache) is None

    def test_non_object_returns_none(self, tmp_path, cache):
        """A JSON array is not a manifest."""
        path = tmp_path / "package.json"
        path.write_text("[1, 2, 3]")
        assert resolve_manifest(path, cache) is None

    def test_same_path_returns_cached_object(self, tmp_path, cache, write_json):
        """Repeated reads of the same path should hit the cache."""
        path = write_json(tmp_path / "package.json", {"name": "a"})
        first = resolve_manifest(path, cache)
        path.write_text(json.dumps({"name": "b"}))

        assert resolve_manifest(path, cache) is first
        assert cache.stats()["size"] == 1

    def test_failed_reads_are_not_cached(self, tmp_path, cache):
        """Only successful parses are stored."""
        resolve_manifest(tmp_path / "package.json", cache)
        assert cache.stats()["size"] == 0


class TestWriteManifest:
    """Test manifest serialisation and writes."""

    def test_format_uses_two_space_indent_and_trailing_newline(self):
        """Should match npm's package.json formatting."""
        text = format_manifest({"name": "a", "dependencies": {"b": "1.0.0"}})
        assert text.endswith("}\n")
        assert '\n  "name": "a"' in text
        assert '\n    "b": "1.0.0"' in text

    def test_write_invalidates_cache(self, tmp_path, cache, write_json):
        """A write should make the next read see the new content."""
        path = write_json(tmp_path / "package.json", {"name": "a"})
        resolve_manifest(path, cache)

        write_manifest(path, {"name": "b"}, cache)

        assert resolve_manifest(path, cache) == {"name": "b"}

    def test_write_rejects_non_json_target(self, tmp_path, cache):
        """Should refuse to write anything but a .json file."""
        with pytest.raises(ManifestWriteError):
            write_manifest(tmp_path / "package.txt", {"name": "a"}, cache)

    def test_key_order_preserved(self, tmp_path, cache):
        """Round-tripping should keep key order."""
        path = tmp_path / "package.json"
        manifest = {"name": "a", "version": "1.0.0", "scripts": {}, "dependencies": {}}
        write_manifest(path, manifest, cache)
        assert list(json.loads(path.read_text())) == ["name", "version", "scripts", "dependencies"]


class TestManifestCache:
    """Test the cache object itself."""

    def test_clear_returns_entry_count(self, tmp_path):
        """clear() should report how many entries were dropped."""
        cache = ManifestCache()
        cache.set(tmp_path / "a.json", {})
        cache.set(tmp_path / "b.json", {})
        assert cache.clear() == 2
        assert cache.stats() == {"size": 0, "keys": []}

    def test_keys_are_absolute(self, tmp_path, monkeypatch):
        """Relative and absolute paths map to the same entry."""
        monkeypatch.chdir(tmp_path)
        cache = ManifestCache()
        cache.set("package.json", {"name": "a"})
        assert cache.get(tmp_path / "package.json") == {"name": "a"}

    def test_default_cache_helpers(self, tmp_path, write_json):
        """Module helpers report on and clear the process-wide cache."""
        path = write_json(tmp_path / "package.json", {"name": "a"})
        force_clear_cache()
        resolve_manifest(path)

        assert get_cache_stats()["keys"] == [str(path.resolve())]
        assert force_clear_cache() == 1
