"""Core data models for Pastoralist."""

from dataclasses import dataclass, field
from typing import Any, Literal

Manifest = dict[str, Any]
AppendixItem = dict[str, Any]
Appendix = dict[str, AppendixItem]
DependencyTree = dict[str, dict[str, str]]

OverrideField = Literal["resolutions", "overrides", "pnpm"]
PackageManager = Literal["bun", "yarn", "pnpm", "npm"]

SEVERITY_SCORES = {"low": 1, "medium": 2, "high": 3, "critical": 4}


@dataclass
class VulnerabilityInfo:
    """A single advisory reported by a security provider."""

    package_name: str
    current_version: str
    severity: str = "medium"  # low, medium, high, critical
    title: str = ""
    vulnerable_versions: str = ""
    patched_version: str | None = None
    description: str | None = None
    cve: str | None = None
    url: str | None = None

    @property
    def fix_available(self) -> bool:
        return bool(self.patched_version)

    @property
    def severity_score(self) -> int:
        return SEVERITY_SCORES.get(self.severity.lower(), 0)


@dataclass
class SecurityOverride:
    """An override proposed to fix a vulnerability."""

    package_name: str
    from_version: str
    to_version: str
    reason: str
    severity: str = "medium"
    cve: str | None = None
    url: str | None = None


@dataclass
class SecurityReport:
    """Result of a security check over a manifest."""

    findings: list[VulnerabilityInfo]
    overrides: list[SecurityOverride]
    packages_scanned: int = 0
    unavailable: list[str] = field(default_factory=list)
    applied: list[SecurityOverride] = field(default_factory=list)


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    manifest: Manifest
    overrides: dict[str, Any]
    appendix: Appendix
    removed: list[str] = field(default_factory=list)
    files_scanned: list[str] = field(default_factory=list)
    written: bool = False
