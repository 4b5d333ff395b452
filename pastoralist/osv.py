"""OSV.dev vulnerability provider."""

import logging

import httpx

from .errors import ProviderError
from .models import SEVERITY_SCORES, VulnerabilityInfo

logger = logging.getLogger(__name__)

OSV_QUERY_URL = "https://api.osv.dev/v1/query"


class OSVProvider:
    """Queries the OSV database for npm advisories."""

    name = "osv"

    def __init__(self, timeout: float = 30.0, token: str | None = None):
        """Initialize OSV provider.

        Args:
            timeout: Request timeout in seconds
            token: Unused; OSV needs no authentication
        """
        self.timeout = timeout
        self._cache: dict[str, list[dict]] = {}

    async def query_vulnerabilities(self, name: str, version: str) -> list[VulnerabilityInfo]:
        """Get advisories affecting one package version.

        Args:
            name: npm package name
            version: Installed or requested version

        Returns:
            Advisories converted to VulnerabilityInfo
        """
        logger.debug("OSV checking %s@%s", name, version)
        vulns = await self._fetch_vulnerabilities(name, version)
        return [self._convert(name, version, vuln) for vuln in vulns]

    async def _fetch_vulnerabilities(self, name: str, version: str) -> list[dict]:
        """Fetch raw OSV records, caching per package version."""
        key = f"{name}@{version}"
        if key in self._cache:
            return self._cache[key]

        payload = {"package": {"name": name, "ecosystem": "npm"}, "version": version}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(OSV_QUERY_URL, json=payload)
                response.raise_for_status()
                vulns = response.json().get("vulns") or []
        except httpx.TimeoutException as e:
            raise ProviderError(f"Timeout querying OSV for {key}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Error querying OSV for {key}: {e}") from e
        except ValueError as e:
            raise ProviderError(f"Invalid OSV response for {key}") from e

        self._cache[key] = vulns
        return vulns

    def _convert(self, name: str, version: str, vuln: dict) -> VulnerabilityInfo:
        patched = self._patched_version(vuln)
        references = vuln.get("references") or []
        url = references[0].get("url") if references else None
        return VulnerabilityInfo(
            package_name=name,
            current_version=version,
            severity=self._severity(vuln),
            title=vuln.get("summary") or vuln.get("details") or f"Vulnerability in {name}",
            vulnerable_versions=self._version_range(vuln),
            patched_version=patched,
            description=vuln.get("details"),
            cve=next((a for a in vuln.get("aliases") or [] if a.startswith("CVE-")), None),
            url=url or f"https://osv.dev/vulnerability/{vuln.get('id', '')}",
        )

    @staticmethod
    def _events(vuln: dict) -> list[dict]:
        affected = (vuln.get("affected") or [{}])[0]
        ranges = affected.get("ranges") or [{}]
        return ranges[0].get("events") or []

    def _patched_version(self, vuln: dict) -> str | None:
        return next((e["fixed"] for e in self._events(vuln) if e.get("fixed")), None)

    def _version_range(self, vuln: dict) -> str:
        events = self._events(vuln)
        if not events:
            return ""
        introduced = next((e["introduced"] for e in events if e.get("introduced")), "0")
        fixed = self._patched_version(vuln)
        return f">={introduced} <{fixed}" if fixed else f">={introduced}"

    @staticmethod
    def _severity(vuln: dict) -> str:
        severity = (vuln.get("database_specific") or {}).get("severity")
        if not severity:
            scores = vuln.get("severity") or [{}]
            severity = scores[0].get("score")
        if isinstance(severity, str) and severity.lower() in SEVERITY_SCORES:
            return severity.lower()
        return "medium"
