"""Pytest configuration and fixtures."""

import json

import pytest

from pastoralist.manifest import ManifestCache
from pastoralist.output import HintStore
from pastoralist.tree import DependencyTreeBuilder


class RecordingOutput:
    """Collects everything written through the Output interface."""

    def __init__(self):
        self.lines: list[str] = []

    def write(self, text: str) -> None:
        self.lines.append(text)

    def write_line(self, text: str = "") -> None:
        self.lines.append(text)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def dump_json(path, data):
    """Write a JSON file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n")
    return path


@pytest.fixture
def write_json():
    """Helper writing JSON files into a temporary project."""
    return dump_json


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Keep the hint store out of the real home directory."""
    home = tmp_path_factory.mktemp("pastoralist-home")
    monkeypatch.setenv("PASTORALIST_HOME", str(home))
    return home


@pytest.fixture
def cache():
    """A manifest cache private to the test."""
    return ManifestCache()


@pytest.fixture
def tree_builder(cache):
    """A dependency tree builder private to the test."""
    return DependencyTreeBuilder(cache)


@pytest.fixture
def output():
    return RecordingOutput()


@pytest.fixture
def hint_store(tmp_path):
    return HintStore(tmp_path / "hints.json")


@pytest.fixture
def sample_package_json():
    """Sample package.json content for testing."""
    return {
        "name": "test-project",
        "version": "1.0.0",
        "dependencies": {
            "express": "^4.18.0",
            "lodash": "~4.17.21",
        },
    }


@pytest.fixture
def project(tmp_path):
    """A project with installed packages that depend on lodash."""
    dump_json(tmp_path / "package.json", {
        "name": "app",
        "dependencies": {"express": "^4.18.0", "lodash": "^4.17.0"},
        "overrides": {"lodash": "4.17.21"},
    })
    dump_json(tmp_path / "node_modules" / "express" / "package.json", {
        "name": "express",
        "version": "4.18.2",
        "dependencies": {"body-parser": "1.20.1"},
    })
    dump_json(tmp_path / "node_modules" / "lodash" / "package.json", {
        "name": "lodash",
        "version": "4.17.21",
    })
    dump_json(tmp_path / "node_modules" / "some-lib" / "package.json", {
        "name": "some-lib",
        "version": "2.0.0",
        "dependencies": {"lodash": "^4.17.0"},
    })
    return tmp_path


@pytest.fixture
def monorepo(tmp_path):
    """A workspace project with two packages."""
    dump_json(tmp_path / "package.json", {
        "name": "mono",
        "private": True,
        "workspaces": ["packages/*"],
        "overrides": {"minimist": "1.2.8"},
    })
    dump_json(tmp_path / "packages" / "a" / "package.json", {
        "name": "@mono/a",
        "dependencies": {"minimist": "^1.2.0"},
    })
    dump_json(tmp_path / "packages" / "b" / "package.json", {
        "name": "@mono/b",
        "dependencies": {"chalk": "^5.0.0"},
    })
    dump_json(tmp_path / "packages" / "b" / "node_modules" / "dep" / "package.json", {
        "name": "dep",
        "dependencies": {"minimist": "^1.0.0"},
    })
    (tmp_path / "node_modules").mkdir()
    return tmp_path
