"""Tests for appendix construction and merging."""

from pastoralist.appendix import (
    build_appendix,
    find_removable_appendix_items,
    merge_appendices,
    merge_appendix_item,
    package_name_from_key,
    stamp_security_ledger,
)


class TestPackageNameFromKey:
    """Test splitting appendix keys."""

    def test_plain_key(self):
        assert package_name_from_key("lodash@4.17.21") == "lodash"

    def test_scoped_key(self):
        """The leading @ of a scope is not a version separator."""
        assert package_name_from_key("@scope/pkg@1.0.0") == "@scope/pkg"

    def test_scope_without_version(self):
        assert package_name_from_key("@scope/pkg") == "@scope/pkg"


class TestBuildAppendix:
    """Test appendix computation from overrides and the tree."""

    def test_simple_override(self):
        tree = {"lodash": {"app": "^4.17.0", "some-lib": "^4.0.0"}}
        root = {"name": "app", "dependencies": {"lodash": "^4.17.0"}}

        appendix = build_appendix({"lodash": "4.17.21"}, tree, root, reasons={"lodash": "CVE fix"})

        item = appendix["lodash@4.17.21"]
        assert item["rootDeps"] == ["lodash"]
        assert item["dependents"] == {"app": "^4.17.0", "some-lib": "^4.0.0"}
        assert item["ledger"]["reason"] == "CVE fix"
        assert item["ledger"]["addedDate"].endswith("Z")

    def test_transitive_only_has_no_root_deps(self):
        appendix = build_appendix({"minimist": "1.2.8"}, {"minimist": {"mkdirp": "^1.2.0"}}, {"name": "app"})
        assert "rootDeps" not in appendix["minimist@1.2.8"]

    def test_nested_override(self):
        """Nested overrides produce one entry per child, attributed to the parent."""
        tree = {"pg": {"app": "^8.0.0"}}
        appendix = build_appendix({"pg": {"pg-types": "^4.0.1"}}, tree)
        assert appendix == {
            "pg-types@^4.0.1": {
                "dependents": {"app": "pg@^8.0.0 (nested override)"},
                "ledger": appendix["pg-types@^4.0.1"]["ledger"],
            }
        }

    def test_unused_override_has_empty_dependents(self):
        """Entries are still produced so the caller can prune them."""
        appendix = build_appendix({"left-pad": "1.3.0"}, {})
        assert appendix["left-pad@1.3.0"]["dependents"] == {}

    def test_ledger_carried_forward(self):
        """An existing ledger is reused unchanged."""
        previous = {
            "lodash@4.17.21": {
                "dependents": {"old": "^4.0.0"},
                "ledger": {"addedDate": "2024-01-01T00:00:00.000Z", "reason": "original"},
            }
        }
        appendix = build_appendix(
            {"lodash": "4.17.21"},
            {"lodash": {"app": "^4.17.0"}},
            previous=previous,
            reasons={"lodash": "new reason"},
        )
        item = appendix["lodash@4.17.21"]
        assert item["ledger"] == {"addedDate": "2024-01-01T00:00:00.000Z", "reason": "original"}
        assert item["dependents"] == {"app": "^4.17.0"}

    def test_patches_attached(self):
        appendix = build_appendix(
            {"lodash": "4.17.21"},
            {"lodash": {"app": "^4.17.0"}},
            patches={"lodash": ["patches/lodash+4.17.21.patch"]},
        )
        assert appendix["lodash@4.17.21"]["patches"] == ["patches/lodash+4.17.21.patch"]


class TestRemovableItems:
    def test_only_items_without_dependents(self):
        appendix = {
            "lodash@4.17.21": {"dependents": {"app": "^4.17.0"}},
            "left-pad@1.3.0": {"dependents": {}},
            "@scope/pkg@1.0.0": {},
        }
        assert find_removable_appendix_items(appendix) == ["left-pad", "@scope/pkg"]

    def test_empty(self):
        assert find_removable_appendix_items(None) == []


class TestMergeAppendices:
    """Test unioning appendix entries."""

    def test_union_of_dependents_and_root_deps(self):
        existing = {"rootDeps": ["a"], "dependents": {"x": "1"}, "patches": ["p1"]}
        incoming = {"rootDeps": ["a", "b"], "dependents": {"y": "2"}, "patches": ["p1", "p2"]}
        merged = merge_appendix_item(existing, incoming)
        assert merged["rootDeps"] == ["a", "b"]
        assert merged["dependents"] == {"x": "1", "y": "2"}
        assert merged["patches"] == ["p1", "p2"]

    def test_incoming_ledger_wins(self):
        merged = merge_appendix_item(
            {"dependents": {}, "ledger": {"addedDate": "old"}},
            {"dependents": {}, "ledger": {"addedDate": "new"}},
        )
        assert merged["ledger"] == {"addedDate": "new"}

    def test_merge_appendices_keeps_disjoint_keys(self):
        merged = merge_appendices({"a@1": {"dependents": {}}}, {"b@2": {"dependents": {}}})
        assert set(merged) == {"a@1", "b@2"}


class TestStampSecurityLedger:
    """Test the security ledger stamp."""

    def test_only_security_fields_change(self):
        item = {
            "dependents": {"app": "^4.17.0"},
            "ledger": {"addedDate": "2024-01-01T00:00:00.000Z", "reason": "pinned"},
        }
        stamped = stamp_security_ledger(item, "osv", now="2025-01-01T00:00:00.000Z")
        assert stamped["ledger"] == {
            "addedDate": "2024-01-01T00:00:00.000Z",
            "reason": "pinned",
            "securityChecked": True,
            "securityCheckDate": "2025-01-01T00:00:00.000Z",
            "securityProvider": "osv",
        }
        assert stamped["dependents"] == item["dependents"]
        assert "securityChecked" not in item["ledger"]

    def test_creates_ledger_when_missing(self):
        stamped = stamp_security_ledger({"dependents": {}}, "osv", now="2025-01-01T00:00:00.000Z")
        assert stamped["ledger"]["addedDate"] == "2025-01-01T00:00:00.000Z"
