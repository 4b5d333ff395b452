"""CLI application for Pastoralist."""

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm, Prompt
from rich.table import Table

from pastoralist.config import PastoralistConfig, SecurityConfig, load_config
from pastoralist.errors import ManifestError, PastoralistError
from pastoralist.manifest import resolve_manifest
from pastoralist.models import ReconcileResult, SecurityReport
from pastoralist.output import ConsoleOutput
from pastoralist.security import run_security_check
from pastoralist.update import reconcile
from pastoralist.workspaces import WORKSPACE_SENTINELS

console = Console()
err_console = Console(stderr=True)


class ConsolePrompt:
    """Interactive prompts backed by rich."""

    def __init__(self, console: Console):
        self.console = console

    def list(self, message: str, choices: list[str]) -> str:
        return Prompt.ask(message, choices=choices, default=choices[0], console=self.console)

    def confirm(self, message: str, default: bool = True) -> bool:
        return Confirm.ask(message, default=default, console=self.console)

    def input(self, message: str, default: str | None = None) -> str:
        return Prompt.ask(message, default=default, console=self.console)


class QuietOutput:
    """Discards dry-run output so JSON stays parseable."""

    def write(self, text: str) -> None:
        pass

    def write_line(self, text: str = "") -> None:
        pass


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def dep_paths_option(values: list[str] | None) -> str | list[str] | None:
    """Map repeated --depPaths values to the depPaths config shape."""
    if not values:
        return None
    if len(values) == 1 and values[0] in WORKSPACE_SENTINELS:
        return values[0]
    return list(values)


def build_security_config(
    config: PastoralistConfig,
    providers: list[str] | None,
    auto_fix: bool,
    interactive: bool,
) -> SecurityConfig:
    """Overlay CLI flags on the configured security settings."""
    base = config.security or SecurityConfig()
    updates = {}
    if providers:
        updates["provider"] = providers if len(providers) > 1 else providers[0]
    if auto_fix:
        updates["auto_fix"] = True
    if interactive:
        updates["interactive"] = True
    return base.model_copy(update=updates)


def security_enabled(config: PastoralistConfig, flag: bool) -> bool:
    if flag or config.check_security:
        return True
    return bool(config.security and config.security.enabled)


def format_json_output(result: ReconcileResult, report: SecurityReport | None = None) -> str:
    """Format JSON output."""
    data = {
        "overrides": result.overrides,
        "removed": result.removed,
        "appendix": result.appendix,
        "filesScanned": result.files_scanned,
        "written": result.written,
    }
    if not result.written:
        data["manifest"] = result.manifest
    if report is not None:
        data["security"] = {
            "packagesScanned": report.packages_scanned,
            "unavailable": report.unavailable,
            "vulnerabilities": [
                {
                    "package": finding.package_name,
                    "version": finding.current_version,
                    "severity": finding.severity,
                    "title": finding.title,
                    "patchedVersion": finding.patched_version,
                    "cve": finding.cve,
                    "url": finding.url,
                }
                for finding in report.findings
            ],
            "applied": [
                {"package": o.package_name, "from": o.from_version, "to": o.to_version}
                for o in report.applied
            ],
        }
    return json.dumps(data, indent=2)


def print_security_report(report: SecurityReport) -> None:
    if not report.findings:
        console.print(
            f"No vulnerabilities found in {report.packages_scanned} packages", style="green"
        )
    else:
        table = Table(title="Vulnerabilities")
        table.add_column("Package")
        table.add_column("Version")
        table.add_column("Severity")
        table.add_column("Fix")
        table.add_column("Title")
        for finding in report.findings:
            table.add_row(
                finding.package_name,
                finding.current_version,
                finding.severity,
                finding.patched_version or "-",
                finding.title,
            )
        console.print(table)

    if report.unavailable:
        console.print(
            f"Could not check {len(report.unavailable)} packages: {', '.join(report.unavailable)}",
            style="yellow",
        )
    for override in report.applied:
        console.print(
            f"Pinned {override.package_name} to {override.to_version} ({override.reason})"
        )


def print_summary(result: ReconcileResult) -> None:
    if not result.overrides and not result.removed:
        console.print("No overrides found")
        return

    table = Table(title="Overrides")
    table.add_column("Package")
    table.add_column("Version")
    table.add_column("Dependents")
    for name, value in result.overrides.items():
        version = value if isinstance(value, str) else json.dumps(value)
        keys = [key for key in result.appendix if key.startswith(f"{name}@")]
        dependents = sorted({
            dep for key in keys for dep in result.appendix[key].get("dependents", {})
        })
        table.add_row(name, version, ", ".join(dependents) or "-")
    console.print(table)

    for name in result.removed:
        console.print(f"Removed unused override: {name}", style="yellow")
    if result.written:
        console.print(f"Updated {result.files_scanned[0]}")


app = typer.Typer(
    name="pastoralist",
    help="Pastoralist - Track, secure and prune package.json overrides",
    add_completion=False,
)


@app.command()
def main(
    path: str = typer.Option("package.json", "--path", "-p", help="Path to the root package.json"),
    root: str | None = typer.Option(
        None, "--root", help="Project root; defaults to the manifest's directory"
    ),
    dep_paths: list[str] | None = typer.Option(
        None, "--depPaths", "--dep-paths", help="Workspace package.json globs, or 'workspace'"
    ),
    exclude: list[str] | None = typer.Option(
        None, "--exclude", help="Paths to skip when matching depPaths, besides node_modules"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show changes without writing"),
    debug: bool = typer.Option(False, "--debug", envvar="DEBUG", help="Enable debug logging"),
    check_security: bool = typer.Option(
        False, "--check-security", help="Check dependencies for vulnerabilities"
    ),
    security_provider: list[str] | None = typer.Option(
        None, "--security-provider", help="Vulnerability provider (osv, github, snyk, npm, socket)"
    ),
    auto_fix: bool = typer.Option(
        False, "--auto-fix", help="Apply security overrides without asking"
    ),
    interactive: bool = typer.Option(
        False, "--interactive", help="Choose security overrides interactively"
    ),
    format_type: str = typer.Option("text", "--format", help="Output format: text or json"),
) -> None:
    """Pastoralist - Reconcile overrides and their appendix in package.json."""
    configure_logging(debug)

    if format_type not in ("text", "json"):
        console.print(f"Error: Unsupported format: {format_type}", style="red")
        raise typer.Exit(1)

    output = QuietOutput() if format_type == "json" else ConsoleOutput(console)

    try:
        manifest_path = Path(path).resolve()
        root_path = Path(root).resolve() if root else manifest_path.parent
        manifest = resolve_manifest(manifest_path)
        if manifest is None:
            raise ManifestError(f"Could not read manifest at {manifest_path}")

        config = load_config(root_path, manifest.get("pastoralist")) or PastoralistConfig()

        report = None
        if security_enabled(config, check_security):
            security_config = build_security_config(
                config, security_provider, auto_fix, interactive
            )
            report = asyncio.run(
                run_security_check(
                    manifest_path,
                    security_config,
                    prompt=ConsolePrompt(console) if security_config.interactive else None,
                    dry_run=dry_run,
                    output=output,
                )
            )

        # Reloads config so ledgers stamped by the security check are kept
        result = reconcile(
            manifest_path,
            root=root_path,
            dep_paths=dep_paths_option(dep_paths),
            exclude=exclude or None,
            dry_run=dry_run,
            output=output,
        )

        if format_type == "json":
            typer.echo(format_json_output(result, report))
            return

        if report is not None:
            print_security_report(report)
        print_summary(result)

    except typer.Exit:
        raise
    except PastoralistError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
