"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from adapters.asset_loaders import supported_image_formats
from adapters.http_client import build_async_client
from adapters.offline_pages import render_offline_html
from core.config import AppSettings, write_user_env_vars
from core.domain.language import Language
from core.services.connection import ConnectionMonitor

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_http(url: str) -> tuple[bool, str]:
    try:
        async with build_async_client() as client:
            response = await client.get(url)
        return True, f"HTTP {response.status_code}"
    except Exception as exc:
        return False, str(exc)


def _check_cache_dir(path: Path) -> tuple[bool, str]:
    """Make sure disk partitions can be written atomically."""

    try:
        path.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path, suffix=".tmp")
        os.close(fd)
        os.replace(tmp, path / "_doctor_test")
        (path / "_doctor_test").unlink(missing_ok=True)
        return True, str(path)
    except OSError as exc:
        return False, str(exc)


def _check_templates() -> tuple[bool, str]:
    try:
        html = render_offline_html()
        return True, f"{len(html)} chars"
    except Exception as exc:
        return False, str(exc)


@app.command()
def run() -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = Table(title="Amanakshar Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    table.add_row("Origin", "OK", settings.origin)
    table.add_row("Cache version", "OK", settings.cache_version)
    table.add_row("Cache backend", "OK", settings.cache_backend)

    if settings.cache_backend == "disk":
        ok_dir, detail_dir = _check_cache_dir(settings.resolved_cache_dir())
        table.add_row("Cache directory", "OK" if ok_dir else "FAIL", detail_dir)

    monitor = ConnectionMonitor.from_settings(settings)
    speed = monitor.speed.value if monitor.speed else "unknown"
    table.add_row("Preload concurrency", "OK", f"{monitor.max_concurrent} ({speed})")

    table.add_row("Image formats", "OK", ", ".join(supported_image_formats()))

    ok_tpl, detail_tpl = _check_templates()
    table.add_row("Offline pages", "OK" if ok_tpl else "FAIL", detail_tpl)

    # Connectivity (best-effort)
    ok_http, detail_http = asyncio.run(_check_http(settings.origin))
    table.add_row("Origin connectivity", "OK" if ok_http else "FAIL", detail_http)

    _console.print(table)

    if not ok_http:
        _console.print(
            "\n[yellow]Note:[/yellow] Offline mode still works: cached pages and the offline page are served."
        )


@app.command(name="setup")
def setup() -> None:
    """Interactive setup (stores config in the user config .env)."""

    settings = AppSettings()

    origin = typer.prompt("Site origin", default=settings.origin, show_default=True).strip()
    backend = typer.prompt("Cache backend (disk/memory)", default=settings.cache_backend, show_default=True)
    backend = backend.strip().lower()
    connection = typer.prompt(
        "Connection type (slow-2g/2g/3g/4g, empty for unknown)",
        default=settings.connection_type or "",
        show_default=False,
    ).strip()
    language_input = typer.prompt("Error message language (hi/en)", default=settings.default_language.value).strip()

    if not origin.startswith(("http://", "https://")):
        raise typer.BadParameter("origin must start with http:// or https://")
    if backend not in ("disk", "memory"):
        raise typer.BadParameter("cache backend must be 'disk' or 'memory'")
    try:
        language = Language.parse(language_input).value
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    values = {
        "AMANAKSHAR_ORIGIN": origin,
        "AMANAKSHAR_CACHE_BACKEND": backend,
        "AMANAKSHAR_DEFAULT_LANGUAGE": language,
    }
    if connection:
        values["AMANAKSHAR_CONNECTION_TYPE"] = connection

    env_path = write_user_env_vars(values)

    _console.print(f"[green]Saved config to:[/green] {env_path}")
