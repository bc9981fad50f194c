"""Rich UI components for the CLI.

Why separate components:
- Keeps command logic apart from presentation details.
- Tables and panels are reused by several commands.
"""

from __future__ import annotations

import httpx
from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from adapters.http_client import extract_html_metadata
from core.domain.models import InstallReport
from core.services.routing import Route
from core.services.strategies import response_source

_SOURCE_STYLES = {"network": "green", "cache": "cyan", "offline": "yellow"}


def print_banner(console: Console) -> None:
    title = Text("अमन अक्षर", style="bold cyan")
    subtitle = Text("Offline cache • Resilient fetch • Asset preloading", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def build_routes_table(routes: tuple[Route, ...], *, matched: Route | None = None) -> Table:
    table = Table(title="Routing table (first match wins)")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Route", style="cyan", no_wrap=True)
    table.add_column("Strategy", style="white")
    table.add_column("Partition", style="magenta")
    for index, route in enumerate(routes, start=1):
        style = "bold green" if matched is not None and route is matched else None
        table.add_row(
            str(index),
            route.name,
            route.strategy.value,
            route.partition.value if route.partition else "-",
            style=style,
        )
    return table


def build_response_panel(response: httpx.Response, *, route: Route | None = None) -> Panel:
    source = response_source(response) or "network"
    body = Text()
    body.append(f"{response.status_code} {response.reason_phrase}\n", style="bold")
    body.append("Source: ")
    body.append(source + "\n", style=_SOURCE_STYLES.get(source, "white"))
    if route is not None:
        body.append(f"Route: {route.name} ({route.strategy.value})\n")
    content_type = response.headers.get("content-type", "")
    body.append(f"Content-Type: {content_type or '-'}\n")
    body.append(f"Size: {len(response.content)} bytes")

    if "html" in content_type:
        metadata = extract_html_metadata(html=response.text, base_url=str(response.url))
        if metadata.get("title"):
            body.append(f"\nTitle: {metadata['title']}", style="italic")

    border = "green" if response.is_success else "red"
    return Panel(body, title=str(response.url), border_style=border)


def build_install_panel(report: InstallReport) -> Panel:
    body = Text()
    body.append(f"Static assets cached: {len(report.static_assets)}\n")
    body.append(f"Decoder files cached: {'yes' if report.three_chunks_cached else 'no'}\n")
    body.append(f"Critical models cached: {'yes' if report.models_cached else 'no'}\n")
    for warning in report.warnings:
        body.append(f"- {warning}\n", style="yellow")
    if report.skip_waiting:
        body.append("Controller activates without waiting.", style="dim")
    return Panel(body, title=Text("Install", style="bold cyan"), border_style="cyan")


def build_caches_table(rows: list[tuple[str, int, bool]]) -> Table:
    table = Table(title="Cache partitions")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Entries", justify="right")
    table.add_column("State", style="white")
    for name, entries, current in rows:
        table.add_row(name, str(entries), "[green]current[/green]" if current else "[yellow]stale[/yellow]")
    return table


def build_preload_table(rows: list[tuple[str, str, str]]) -> Table:
    table = Table(title="Preloaded assets")
    table.add_column("URL", style="cyan")
    table.add_column("Status", style="white", no_wrap=True)
    table.add_column("Details", style="dim")
    for url, status, detail in rows:
        style = "green" if status == "OK" else "red"
        table.add_row(url, f"[{style}]{status}[/{style}]", detail)
    return table


def build_poems_table(rows: list[tuple[str, str]]) -> Table:
    table = Table(title="Poems available offline")
    table.add_column("Slug", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    for slug, title in rows:
        table.add_row(slug, title or "[dim]-[/dim]")
    return table
