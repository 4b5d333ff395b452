"""Appendix construction: provenance and dependents for every override."""

import copy
import logging
from datetime import datetime, timezone
from typing import Any

from .models import Appendix, AppendixItem, DependencyTree, Manifest
from .tree import collect_dependencies

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def appendix_key(name: str, version: str) -> str:
    return f"{name}@{version}"


def package_name_from_key(key: str) -> str:
    """Strip the version from an appendix key.

    The version follows the last ``@``; a leading ``@`` marks a scope, so
    ``@scope/name@1.0.0`` yields ``@scope/name``.
    """
    index = key.rfind("@")
    if index <= 0:
        return key
    return key[:index]


def is_nested_override(value: Any) -> bool:
    return isinstance(value, dict)


def _new_ledger(reason: str | None, now: str | None = None) -> dict:
    ledger = {"addedDate": now or utc_now()}
    if reason:
        ledger["reason"] = reason
    return ledger


def _build_item(
    key: str,
    dependents: dict[str, str],
    previous: Appendix,
    root_deps: list[str],
    patches: list[str],
    reason: str | None,
) -> AppendixItem:
    prior = previous.get(key) or {}
    item: AppendixItem = {}

    if root_deps:
        item["rootDeps"] = root_deps
    item["dependents"] = dependents

    patches = patches or prior.get("patches") or []
    if patches:
        item["patches"] = list(patches)

    # An existing ledger is never rewritten here
    ledger = prior.get("ledger")
    item["ledger"] = copy.deepcopy(ledger) if ledger else _new_ledger(reason)
    return item


def build_appendix(
    overrides: dict[str, Any],
    tree: DependencyTree,
    root_manifest: Manifest | None = None,
    previous: Appendix | None = None,
    patches: dict[str, list[str]] | None = None,
    reasons: dict[str, str] | None = None,
) -> Appendix:
    """Compute the next appendix from overrides and the dependency tree.

    Args:
        overrides: Active override map, name -> version or nested map
        tree: package name -> {requester: requested range}
        root_manifest: Root manifest, used for rootDeps
        previous: Appendix from the last run; ledgers are carried forward
        patches: package name -> patch files
        reasons: package name -> reason for newly added ledgers

    Returns:
        The new appendix, including entries without dependents
    """
    previous = previous or {}
    patches = patches or {}
    reasons = reasons or {}
    root_deps = collect_dependencies(root_manifest)
    appendix: Appendix = {}

    for name, value in overrides.items():
        if is_nested_override(value):
            parent_requesters = tree.get(name, {})
            for nested_name, nested_version in value.items():
                key = appendix_key(nested_name, str(nested_version))
                dependents = {
                    requester: f"{name}@{spec} (nested override)"
                    for requester, spec in parent_requesters.items()
                }
                appendix[key] = _build_item(
                    key,
                    dependents,
                    previous,
                    [nested_name] if nested_name in root_deps else [],
                    patches.get(nested_name, []),
                    reasons.get(nested_name) or reasons.get(name),
                )
            continue

        key = appendix_key(name, str(value))
        appendix[key] = _build_item(
            key,
            dict(tree.get(name, {})),
            previous,
            [name] if name in root_deps else [],
            patches.get(name, []),
            reasons.get(name),
        )

    logger.debug("Built appendix with %d entries", len(appendix))
    return appendix


def has_dependents(item: AppendixItem | None) -> bool:
    return bool(item and item.get("dependents"))


def find_removable_appendix_items(appendix: Appendix | None) -> list[str]:
    """Return package names whose appendix entry has no dependents."""
    if not appendix:
        return []
    return [
        package_name_from_key(key)
        for key, item in appendix.items()
        if not has_dependents(item)
    ]


def merge_appendix_item(existing: AppendixItem, incoming: AppendixItem) -> AppendixItem:
    """Union two items for the same key; incoming wins on conflicts."""
    merged: AppendixItem = {}

    root_deps = list(dict.fromkeys(
        (existing.get("rootDeps") or []) + (incoming.get("rootDeps") or [])
    ))
    if root_deps:
        merged["rootDeps"] = root_deps

    merged["dependents"] = {
        **(existing.get("dependents") or {}),
        **(incoming.get("dependents") or {}),
    }

    patches = list(dict.fromkeys((existing.get("patches") or []) + (incoming.get("patches") or [])))
    if patches:
        merged["patches"] = patches

    ledger = incoming.get("ledger") or existing.get("ledger")
    if ledger:
        merged["ledger"] = ledger
    return merged


def merge_appendices(base: Appendix | None, incoming: Appendix | None) -> Appendix:
    merged = dict(base or {})
    for key, item in (incoming or {}).items():
        merged[key] = merge_appendix_item(merged[key], item) if key in merged else item
    return merged


def stamp_security_ledger(
    item: AppendixItem,
    provider: str,
    now: str | None = None,
) -> AppendixItem:
    """Record a security check on an appendix item.

    addedDate and reason are kept when a ledger already exists.
    """
    ledger = dict(item.get("ledger") or _new_ledger(None, now))
    ledger["securityChecked"] = True
    ledger["securityCheckDate"] = now or utc_now()
    ledger["securityProvider"] = provider
    return {**item, "ledger": ledger}
