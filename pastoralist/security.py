"""Security integration: vulnerability checks and security overrides."""

import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Protocol

import httpx
from packaging.version import InvalidVersion, Version

from .appendix import appendix_key, is_nested_override, stamp_security_ledger, utc_now
from .config import SecurityConfig
from .errors import ManifestError, ProviderError
from .manifest import ManifestCache, resolve_manifest
from .models import (
    SEVERITY_SCORES,
    Manifest,
    PackageManager,
    SecurityOverride,
    SecurityReport,
    VulnerabilityInfo,
)
from .osv import OSVProvider
from .output import Output
from .overrides import get_overrides
from .tree import collect_dependencies
from .update import update_package_json

logger = logging.getLogger(__name__)

SECURITY_DEPENDENCY_FIELDS = ("dependencies", "devDependencies", "peerDependencies")


class SecurityProvider(Protocol):
    name: str

    async def query_vulnerabilities(self, name: str, version: str) -> list[VulnerabilityInfo]: ...


class Prompt(Protocol):
    def list(self, message: str, choices: list[str]) -> str: ...

    def confirm(self, message: str, default: bool = True) -> bool: ...

    def input(self, message: str, default: str | None = None) -> str: ...


ProviderFactory = Callable[..., SecurityProvider]

PROVIDERS: dict[str, ProviderFactory] = {"osv": OSVProvider}


def register_provider(name: str, factory: ProviderFactory) -> None:
    """Make a provider available under name for create_providers."""
    PROVIDERS[name] = factory


def create_providers(
    provider: str | list[str] | None = None,
    token: str | None = None,
) -> list[SecurityProvider]:
    """Instantiate providers in the given order.

    Names without a registered factory fall back to OSV.
    """
    names = provider if isinstance(provider, list) else [provider or "osv"]
    providers: list[SecurityProvider] = []
    for name in dict.fromkeys(names):
        factory = PROVIDERS.get(name)
        if factory is None:
            logger.debug("Provider %s is not available, using osv", name)
            if any(isinstance(p, OSVProvider) for p in providers) or "osv" in names:
                continue
            factory = OSVProvider
        providers.append(factory(token=token))
    return providers


def parse_version(version: str) -> Version | None:
    try:
        return Version(version)
    except InvalidVersion:
        return None


def is_newer(candidate: str, current: str) -> bool:
    """True when candidate is a higher version than current.

    Unparseable versions are never considered newer.
    """
    new, old = parse_version(candidate), parse_version(current)
    if new is None:
        return False
    if old is None:
        return True
    return new > old


def clean_version(spec: str) -> str:
    return re.sub(r"^[\^~]", "", spec.strip())


def extract_packages(manifest: Manifest | None) -> list[tuple[str, str]]:
    """List (name, version) pairs of the manifest's direct dependencies."""
    deps = collect_dependencies(manifest, SECURITY_DEPENDENCY_FIELDS)
    return [(name, clean_version(spec)) for name, spec in deps.items()]


def is_version_vulnerable(current_version: str, vulnerable_range: str) -> bool:
    """Check a version against a ``>=a <b``, ``<b`` or ``<=b`` range."""
    version = parse_version(clean_version(current_version))
    if version is None:
        return False

    lower = re.search(r">= ?([^\s,]+)", vulnerable_range)
    upper = re.search(r"<(=?) ?([^\s,]+)", vulnerable_range)
    if upper is None:
        return False

    upper_version = parse_version(upper.group(2))
    if upper_version is None:
        return False
    if lower:
        lower_version = parse_version(lower.group(1))
        if lower_version is None or version < lower_version:
            return False
    return version <= upper_version if upper.group(1) else version < upper_version


def _affects(finding: VulnerabilityInfo) -> bool:
    if "<" not in finding.vulnerable_versions:
        return True
    return is_version_vulnerable(finding.current_version, finding.vulnerable_versions)


def deduplicate_findings(findings: list[VulnerabilityInfo]) -> list[VulnerabilityInfo]:
    """Collapse findings reported more than once, keeping the highest severity."""
    seen: dict[str, VulnerabilityInfo] = {}
    for finding in findings:
        key = f"{finding.package_name}@{finding.current_version}:{finding.cve or finding.title}"
        existing = seen.get(key)
        if existing is None or finding.severity_score > existing.severity_score:
            seen[key] = finding
    return list(seen.values())


def filter_findings(
    findings: list[VulnerabilityInfo],
    severity_threshold: str | None = None,
    exclude_packages: list[str] | None = None,
) -> list[VulnerabilityInfo]:
    minimum = SEVERITY_SCORES.get(severity_threshold or "low", 1)
    excluded = set(exclude_packages or [])
    return [
        finding for finding in findings
        if finding.package_name not in excluded and finding.severity_score >= minimum
    ]


def propose_overrides(findings: list[VulnerabilityInfo]) -> list[SecurityOverride]:
    """Build one override per fixable package, pinning the highest patched version."""
    proposed: dict[str, SecurityOverride] = {}
    for finding in findings:
        if not finding.fix_available:
            continue
        override = SecurityOverride(
            package_name=finding.package_name,
            from_version=finding.current_version,
            to_version=finding.patched_version,
            reason=f"Security fix: {finding.title} ({finding.severity})",
            severity=finding.severity,
            cve=finding.cve,
            url=finding.url,
        )
        existing = proposed.get(finding.package_name)
        if existing is None or is_newer(override.to_version, existing.to_version):
            proposed[finding.package_name] = override
    return list(proposed.values())


class SecurityChecker:
    """Runs the configured providers over a manifest's dependencies."""

    def __init__(
        self,
        providers: list[SecurityProvider] | None = None,
        config: SecurityConfig | None = None,
    ):
        self.config = config or SecurityConfig()
        self.providers = providers or create_providers(
            self.config.provider, self.config.security_provider_token
        )

    @property
    def provider_name(self) -> str:
        return self.providers[0].name if self.providers else "osv"

    async def check(self, manifest: Manifest) -> SecurityReport:
        """Query every dependency, one at a time, against each provider.

        A provider failure marks the package unavailable instead of raising.
        """
        packages = extract_packages(manifest)
        excluded = set(self.config.exclude_packages or [])
        findings: list[VulnerabilityInfo] = []
        unavailable: list[str] = []

        for name, version in packages:
            if name in excluded:
                continue
            for provider in self.providers:
                try:
                    results = await provider.query_vulnerabilities(name, version)
                except (ProviderError, httpx.HTTPError) as e:
                    logger.debug("%s failed for %s: %s", provider.name, name, e)
                    if name not in unavailable:
                        unavailable.append(name)
                    continue
                findings.extend(f for f in results if _affects(f))

        findings = filter_findings(
            deduplicate_findings(findings),
            self.config.severity_threshold,
            self.config.exclude_packages,
        )
        logger.debug("Found %d vulnerabilities in %d packages", len(findings), len(packages))
        return SecurityReport(
            findings=findings,
            overrides=propose_overrides(findings),
            packages_scanned=len(packages),
            unavailable=unavailable,
        )


def review_overrides(overrides: list[SecurityOverride], prompt: Prompt) -> list[SecurityOverride]:
    """Let the user apply, skip or re-pin each proposed override."""
    selected: list[SecurityOverride] = []
    for override in overrides:
        choice = prompt.list(
            f"{override.package_name}@{override.from_version}: {override.reason}",
            ["apply", "skip", "custom"],
        )
        if choice == "apply":
            selected.append(override)
        elif choice == "custom":
            version = prompt.input(f"Version for {override.package_name}", override.to_version)
            if version:
                selected.append(replace(override, to_version=version))

    if selected and not prompt.confirm(f"Apply {len(selected)} security override(s)?"):
        return []
    return selected


def apply_security_overrides(
    path: str | Path,
    overrides: list[SecurityOverride],
    provider: str,
    cache: ManifestCache | None = None,
    dry_run: bool = False,
    package_manager: PackageManager | None = None,
    output: Output | None = None,
    is_testing: bool = False,
) -> Manifest:
    """Merge security overrides into the manifest and stamp their ledgers.

    An existing pin that is already newer than the proposed fix is kept, as
    is any nested override. A bumped pin moves its appendix entry to the new
    version key.

    Raises:
        ManifestError: The manifest cannot be read
    """
    manifest = resolve_manifest(path, cache)
    if manifest is None:
        raise ManifestError(f"Could not read manifest at {path}")

    current: dict[str, Any] = get_overrides(manifest)
    section = manifest.get("pastoralist")
    appendix = dict((section or {}).get("appendix") or {}) if isinstance(section, dict) else {}
    root_deps = collect_dependencies(manifest)
    requester = manifest.get("name") or Path(path).resolve().parent.name

    for override in overrides:
        name = override.package_name
        existing = current.get(name)
        if is_nested_override(existing):
            logger.debug("Keeping nested override for %s", name)
            continue
        if isinstance(existing, str) and not is_newer(override.to_version, existing):
            logger.debug("Keeping %s@%s", name, existing)
            continue
        current[name] = override.to_version

        key = appendix_key(name, override.to_version)
        previous = None
        if isinstance(existing, str):
            # A bumped pin carries its previous entry forward
            previous = appendix.pop(appendix_key(name, existing), None)
        item = appendix.get(key) or previous
        if item is None:
            dependents = {}
            if name in root_deps:
                dependents[requester] = root_deps[name]
            item = {
                "dependents": dependents,
                "ledger": {"addedDate": utc_now(), "reason": override.reason},
            }
        appendix[key] = stamp_security_ledger(item, provider)

    return update_package_json(
        path,
        manifest,
        appendix=appendix,
        overrides=current,
        is_testing=is_testing,
        dry_run=dry_run,
        package_manager=package_manager,
        cache=cache,
        output=output,
    )


async def run_security_check(
    path: str | Path,
    config: SecurityConfig | None = None,
    checker: SecurityChecker | None = None,
    prompt: Prompt | None = None,
    cache: ManifestCache | None = None,
    dry_run: bool = False,
    package_manager: PackageManager | None = None,
    output: Output | None = None,
) -> SecurityReport:
    """Check a manifest and, in auto-fix or interactive mode, apply fixes.

    Without either mode the report only carries proposed overrides.
    """
    config = config or SecurityConfig()
    checker = checker or SecurityChecker(config=config)

    manifest = resolve_manifest(path, cache)
    if manifest is None:
        raise ManifestError(f"Could not read manifest at {path}")

    report = await checker.check(manifest)
    selected = report.overrides
    if config.interactive and prompt is not None:
        selected = review_overrides(selected, prompt)
    elif not config.auto_fix:
        return report

    if selected:
        apply_security_overrides(
            path,
            selected,
            checker.provider_name,
            cache=cache,
            dry_run=dry_run,
            package_manager=package_manager,
            output=output,
        )
        report.applied = selected
    return report
