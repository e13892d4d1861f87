"""
Rich-powered console output for darp.

Tables for the deploy report, the URL list and the config summary.
"""

import sys

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .config import Config
from .deploy import DeployReport
from .proxy import project_url

console = Console(force_terminal=None, legacy_windows=True)

_USE_ASCII = not sys.stdout.isatty()

STATUS_STYLES = {
    "ok": ("+" if _USE_ASCII else "✓", "green"),
    "error": ("x" if _USE_ASCII else "✗", "red"),
    "running": ("+" if _USE_ASCII else "●", "green"),
    "stopped": ("-" if _USE_ASCII else "○", "dim"),
}

ACTION_STYLES = {
    "unchanged": "dim",
    "started": "green",
    "restarted": "yellow",
    "stopped": "yellow",
    "skipped": "dim",
    "failed": "bold red",
}


def status_icon(status: str) -> Text:
    """Create a styled status icon"""
    icon, style = STATUS_STYLES.get(status, ("?", "dim"))
    return Text(icon, style=style)


def deploy_table(report: DeployReport) -> Table:
    """One row per project found during deploy"""
    table = Table(title="Projects", show_header=True, header_style="bold cyan")
    table.add_column("Domain", style="bold")
    table.add_column("Project")
    table.add_column("URL", style="cyan")
    table.add_column("Port", justify="right")
    table.add_column("Status", justify="center")

    for domain in report.domains:
        if domain.error:
            table.add_row(domain.name, "", "", "", Text(domain.error, style="red"))
            continue
        for project in domain.projects:
            port = str(project.port) if project.port is not None else "-"
            status = status_icon("ok") if project.ok else Text(project.error or "", style="red")
            table.add_row(domain.name, project.project, project.url if project.ok else "", port, status)
    return table


def containers_table(report: DeployReport) -> Table:
    table = Table(title="Support containers", show_header=True, header_style="bold cyan")
    table.add_column("Container", style="bold")
    table.add_column("Action")
    table.add_column("Detail", style="dim")
    for container in report.containers:
        style = ACTION_STYLES.get(container.action, "")
        table.add_row(container.name, Text(container.action, style=style), container.error or "")
    return table


def print_deploy_report(report: DeployReport) -> None:
    console.print(deploy_table(report))
    for artifact in report.artifacts:
        if artifact.error:
            console.print(f"[red]{status_icon('error')}[/red] {artifact.name}: {artifact.error}")
        elif artifact.changed:
            console.print(f"[dim]updated {artifact.path}[/dim]")
    console.print(containers_table(report))
    if report.ok:
        console.print(Text.assemble(status_icon("ok"), " Deploy complete"))
    else:
        console.print(Text(f"Deploy finished with {len(report.failures)} failure(s)", style="bold red"))


def urls_table(assignments: dict[tuple[str, str], int], listening: set[int] | None = None) -> Table:
    """
    Table of project URLs.

    Args:
        assignments: (domain, project) -> port
        listening: Ports that currently have a listener, for the status column
    """
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Domain", style="green")
    table.add_column("URL", style="cyan")
    table.add_column("Port", justify="right")
    if listening is not None:
        table.add_column("Listening", justify="center")

    for (domain, project), port in sorted(assignments.items()):
        row = [domain, f"http://{project_url(project, domain)}", str(port)]
        if listening is not None:
            row.append(status_icon("running" if port in listening else "stopped"))
        table.add_row(*row)
    return table


def config_table(config: Config) -> Table:
    table = Table(title="darp configuration", show_header=False, box=None)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("engine", config.engine or "[dim](not set)[/dim]")
    table.add_row("podman_machine", config.podman_machine or "[dim](not set)[/dim]")
    table.add_row("urls_in_hosts", str(config.urls_in_hosts).lower())
    table.add_row("base_port", str(config.base_port))
    for location, domain in sorted(config.domains.items(), key=lambda item: item[1].name):
        detail = location
        if domain.default_environment:
            detail += f" (default environment: {domain.default_environment})"
        table.add_row(f"domain {domain.name}", detail)
    for name in sorted(config.environments):
        table.add_row(f"environment {name}", ", ".join(sorted(config.environments[name].to_dict())) or "-")
    return table
