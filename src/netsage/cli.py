"""NetSage CLI."""

import json
import logging
import os
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from netsage import __version__
from netsage.config import ScanSettings
from netsage.exceptions import InvalidTargetError, NetSageError
from netsage.modules.orchestrator import ScanOrchestrator
from netsage.modules.proxy import ProxyManager
from netsage.modules.target import resolve_target
from netsage.modules.vulnscan import TemplateManager
from netsage.tools.nuclei import NucleiRunner
from netsage.utils.async_utils import safe_async_run

app = typer.Typer(
    name="netsage",
    help="External reconnaissance and vulnerability triage",
    no_args_is_help=True,
)
console = Console()

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
    "info": "dim",
    "unknown": "dim",
}


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich; NETSAGE_LOG_LEVEL overrides the default level."""
    level_name = "DEBUG" if verbose else os.environ.get("NETSAGE_LOG_LEVEL", "WARNING")
    level = getattr(logging, level_name.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


@app.command()
def version() -> None:
    """Show the installed NetSage version."""
    console.print(f"NetSage {__version__}")


def _status_table(result: dict[str, Any]) -> Table:
    table = Table(title="Scan status")
    table.add_column("Component")
    table.add_column("Result")
    table.add_column("Detail")
    for name, status in result["scan_status"].items():
        if status["success"]:
            outcome = "[green]ok[/green]"
        elif status["skipped"]:
            outcome = "[dim]skipped[/dim]"
        else:
            outcome = f"[red]{status['error_kind']}[/red]"
        table.add_row(name, outcome, status["message"])
    return table


def _ports_table(ports: list[dict[str, Any]]) -> Table:
    table = Table(title="Ports")
    for column in ("Port", "State", "Service", "Version", "Source"):
        table.add_column(column)
    for entry in ports:
        table.add_row(
            f"{entry['port']}/{entry['protocol']}",
            entry["state"],
            entry.get("service") or "",
            entry.get("version") or "",
            entry.get("detection_method") or "",
        )
    return table


def _vulnerability_table(findings: list[dict[str, Any]]) -> Table:
    table = Table(title="Vulnerabilities")
    for column in ("Severity", "Name", "Matched", "CVE"):
        table.add_column(column)
    for finding in findings:
        style = SEVERITY_STYLES.get(finding["severity"], "")
        table.add_row(
            f"[{style}]{finding['severity']}[/{style}]" if style else finding["severity"],
            finding["name"],
            finding["matched"],
            ", ".join(finding["cve"]),
        )
    return table


def print_report(result: dict[str, Any]) -> None:
    console.print(f"[bold]Target:[/bold] {result['target']}  [dim]({result['scan_id']})[/dim]")
    console.print(_status_table(result))
    console.print(_ports_table(result["ports"]))
    summary = result["vulnerability_summary"]
    if result["vulnerabilities"]:
        console.print(_vulnerability_table(result["vulnerabilities"]))
    counts = ", ".join(f"{k}={v}" for k, v in summary["by_severity"].items() if v)
    console.print(f"Findings: {summary['total_count']}" + (f" ({counts})" if counts else ""))
    if summary["waf"]["detected"]:
        console.print(f"[yellow]WAF detected:[/yellow] {', '.join(summary['waf']['names'])}")
    missing = result["http"]["missing_security_headers"]
    if missing:
        console.print(f"Missing security headers: {', '.join(missing)}")
    if result["metadata"]["timed_out"]:
        console.print("[yellow]Scan hit the overall deadline; results are partial.[/yellow]")


@app.command()
def scan(
    target: str = typer.Argument(..., help="Hostname or http(s) URL"),
    ports: str | None = typer.Option(None, "--ports", "-p", help="Comma-separated TCP ports"),
    timeout_ms: int | None = typer.Option(None, "--timeout-ms", help="Overall scan deadline"),
    no_udp: bool = typer.Option(False, "--no-udp", help="Skip the UDP sweep"),
    no_vuln: bool = typer.Option(False, "--no-vuln", help="Skip the nuclei scan"),
    evasion: str | None = typer.Option(None, "--evasion", help="minimal, moderate or aggressive"),
    proxy: list[str] = typer.Option([], "--proxy", help="Proxy URL (repeatable)"),
    tor: bool = typer.Option(False, "--tor", help="Route through Tor at 127.0.0.1:9050"),
    severity: str | None = typer.Option(None, "--severity", help="Severity tier for templates"),
    comprehensive: bool = typer.Option(False, "--comprehensive", help="All severities and template groups"),
    aggressive: bool = typer.Option(False, "--aggressive", help="Faster nmap timing"),
    as_json: bool = typer.Option(False, "--json", help="Print the result document as JSON"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write JSON result to file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Scan one target."""
    configure_logging(verbose)
    options: dict[str, Any] = {
        "comprehensive": comprehensive,
        "aggressive": aggressive,
        "ports": ports,
        "timeoutMs": timeout_ms,
        "enableUdp": False if no_udp else None,
        "enableNuclei": False if no_vuln else None,
        "evasionProfile": evasion,
        "severity": severity,
    }
    if proxy or tor:
        options["proxyConfig"] = {"proxies": list(proxy), "useTor": tor}

    orchestrator = ScanOrchestrator(ScanSettings.load())
    if not as_json:
        console.print(f"[blue]Scanning {target}...[/blue]")
    try:
        result = safe_async_run(orchestrator.scan(target, options))
    except (InvalidTargetError, ValueError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(2) from None

    document = json.dumps(result, indent=2, default=str)
    if output:
        output.write_text(document, encoding="utf-8")
        if not as_json:
            console.print(f"[green]Result written to {output}[/green]")
    if as_json:
        console.print_json(document)
    else:
        print_report(result)


@app.command("validate-proxies")
def validate_proxies(
    proxies: list[str] = typer.Argument(..., help="Proxy URLs to test"),
    tor: bool = typer.Option(False, "--tor", help="Also test the local Tor proxy"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Test proxies against the connectivity endpoint and report which work."""
    configure_logging(verbose)
    manager = ProxyManager.from_urls(proxies, use_tor=tor)
    candidates = list(manager.proxies)

    async def run() -> list[Any]:
        try:
            return await manager.validate()
        finally:
            await manager.aclose()

    working = {p.key for p in safe_async_run(run())}
    table = Table(title="Proxy validation")
    table.add_column("Proxy")
    table.add_column("Result")
    for endpoint in candidates:
        ok = endpoint.key in working
        table.add_row(endpoint.key, "[green]working[/green]" if ok else "[red]failed[/red]")
    if tor:
        table.add_row("tor", "[green]working[/green]" if manager.use_tor else "[red]failed[/red]")
    console.print(table)
    if not working and not manager.use_tor:
        raise typer.Exit(1)


@app.command()
def templates(
    custom_dir: Path | None = typer.Option(None, "--custom-dir", help="Custom templates directory"),
    templates_dir: Path | None = typer.Option(None, "--templates-dir", help="nuclei templates"),
    suggest: str | None = typer.Option(None, "--suggest", help="Suggest templates for a target"),
    tech: list[str] = typer.Option([], "--tech", help="Detected technology (repeatable)"),
    update: bool = typer.Option(False, "--update", help="Run nuclei -update-templates first"),
) -> None:
    """Show template statistics and custom templates."""
    settings = ScanSettings.load()
    if update:
        try:
            safe_async_run(NucleiRunner().update_templates())
        except NetSageError as exc:
            console.print(f"[red]Template update failed: {exc}[/red]")
            raise typer.Exit(1) from None
        console.print("[green]nuclei templates updated[/green]")

    manager = TemplateManager(
        templates_dir or settings.nuclei_templates_dir or None,
        custom_dir or settings.custom_templates_dir or None,
    )
    if suggest:
        try:
            target = resolve_target(suggest)
        except InvalidTargetError as exc:
            console.print(f"[red]Error: {exc}[/red]")
            raise typer.Exit(2) from None
        for group, entries in manager.suggestions(target, tech).items():
            console.print(f"[bold]{group}:[/bold] {', '.join(entries)}")
        return

    stats = manager.template_stats()
    console.print(f"Templates directory: {stats.templates_dir or '[dim]not found[/dim]'}")
    table = Table(title=f"Templates by severity ({stats.total} total)")
    table.add_column("Severity")
    table.add_column("Count", justify="right")
    for severity, count in stats.by_severity.items():
        table.add_row(severity, str(count))
    console.print(table)

    custom = manager.list_custom_templates()
    if not custom:
        console.print("[dim]No custom templates[/dim]")
        return
    custom_table = Table(title="Custom templates")
    for column in ("File", "Name", "Severity"):
        custom_table.add_column(column)
    for entry in custom:
        custom_table.add_row(entry["filename"], str(entry["name"]), entry["severity"])
    console.print(custom_table)


def main():
    """Entry point for the CLI."""
    app()
