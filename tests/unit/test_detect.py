"""Tests for package manager detection."""

from pastoralist.detect import detect_package_manager


class TestPackageManagerDetection:
    """Test package manager detection from lockfiles."""

    def test_defaults_to_npm(self, tmp_path):
        """Should fall back to npm without a known lockfile."""
        assert detect_package_manager(tmp_path) == "npm"

    def test_detects_each_lockfile(self, tmp_path):
        """Should map each lockfile to its manager."""
        cases = {
            "bun.lockb": "bun",
            "bun.lock": "bun",
            "yarn.lock": "yarn",
            "pnpm-lock.yaml": "pnpm",
        }
        for lockfile, manager in cases.items():
            project = tmp_path / lockfile.replace(".", "_")
            project.mkdir()
            (project / lockfile).touch()
            assert detect_package_manager(project) == manager

    def test_package_lock_is_npm(self, tmp_path):
        """package-lock.json is npm's own lockfile."""
        (tmp_path / "package-lock.json").touch()
        assert detect_package_manager(tmp_path) == "npm"

    def test_bun_takes_precedence(self, tmp_path):
        """The first lockfile in the checking order wins."""
        (tmp_path / "yarn.lock").touch()
        (tmp_path / "bun.lockb").touch()
        assert detect_package_manager(tmp_path) == "bun"

    def test_yarn_before_pnpm(self, tmp_path):
        """yarn.lock is checked before pnpm-lock.yaml."""
        (tmp_path / "pnpm-lock.yaml").touch()
        (tmp_path / "yarn.lock").touch()
        assert detect_package_manager(tmp_path) == "yarn"
