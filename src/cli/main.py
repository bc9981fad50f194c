"""`amanakshar` command line.

Drives the offline cache controller, the resilient fetch helpers and the
asset preloader from a terminal. Every command builds its own short-lived
`httpx.AsyncClient` and cache storage from `AppSettings`.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx
import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn

from adapters.api_client import api_fetch
from adapters.asset_loaders import HttpAssetLoader
from adapters.cache_storage import build_cache_storage
from adapters.http_client import build_async_client, extract_html_metadata
from adapters.notifications import BrowserClientRegistry, ConsoleMessagePort, ConsoleNotifier
from cli import doctor
from cli.ui_components import (
    build_caches_table,
    build_install_panel,
    build_poems_table,
    build_preload_table,
    build_response_panel,
    build_routes_table,
    print_banner,
)
from core.config import AppSettings
from core.domain.assets import AssetPriority, AssetType
from core.domain.models import (
    CachePartitions,
    CachePoemMessage,
    ClearPoemCacheMessage,
    GetCachedPoemsMessage,
    PartitionKind,
)
from core.errors import ApiRequestError, InstallError, get_error_message
from core.logging import configure_logging
from core.services.asset_preloader import AssetPreloader
from core.services.cache_controller import SYNC_LIKES_TAG, UPDATE_POEMS_TAG, CacheController
from core.services.connection import ConnectionMonitor
from core.services.routing import ROUTES, resolve_route

app = typer.Typer(no_args_is_help=True, help="Offline cache, resilient fetch and asset preloading for amanakshar.com.")
poems_app = typer.Typer(no_args_is_help=True, help="Manage the offline poem cache.")
sync_app = typer.Typer(no_args_is_help=True, help="Run background sync tasks.")
api_app = typer.Typer(no_args_is_help=True, help="Call same-origin JSON APIs with retries.")

app.add_typer(poems_app, name="poems")
app.add_typer(sync_app, name="sync")
app.add_typer(api_app, name="api")
app.add_typer(doctor.app, name="doctor")

_console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override AMANAKSHAR_LOG_LEVEL."),
    banner: bool = typer.Option(False, "--banner", help="Print the banner first."),
) -> None:
    settings = AppSettings()
    configure_logging(log_level or settings.log_level)
    if banner:
        print_banner(_console)


@asynccontextmanager
async def _controller(settings: AppSettings) -> AsyncIterator[CacheController]:
    async with build_async_client(settings) as client:
        controller = CacheController(
            storage=build_cache_storage(settings),
            client=client,
            notifier=ConsoleNotifier(_console),
            clients=BrowserClientRegistry(origin=settings.origin),
            settings=settings,
        )
        try:
            yield controller
        finally:
            await controller.wait_for_background()


def _accept_header(html: bool) -> str | None:
    return "text/html,application/xhtml+xml" if html else None


@app.command()
def routes(
    url: Optional[str] = typer.Argument(None, help="Show which route handles this URL or path."),
    html: bool = typer.Option(False, "--html", help="Send Accept: text/html."),
) -> None:
    """Print the routing table."""

    settings = AppSettings()
    matched = None
    if url:
        origin = httpx.URL(settings.origin)
        request = httpx.Request("GET", origin.join(url), headers={"Accept": _accept_header(html) or "*/*"})
        matched = resolve_route(request, origin)
    _console.print(build_routes_table(ROUTES, matched=matched))


@app.command()
def fetch(
    url: str = typer.Argument(..., help="URL or site path."),
    html: bool = typer.Option(False, "--html", help="Request as a page navigation."),
) -> None:
    """Fetch through the cache controller and show where the answer came from."""

    settings = AppSettings()

    async def _run() -> None:
        async with _controller(settings) as controller:
            request = controller.request(url, accept=_accept_header(html))
            route = controller.route_for(request)
            try:
                response = await controller.fetch(request)
            except httpx.HTTPError as exc:
                _console.print(f"[red]Network error:[/red] {get_error_message(exc, settings.default_language)}")
                raise typer.Exit(code=1) from exc
            _console.print(build_response_panel(response, route=route))

    asyncio.run(_run())


@app.command()
def install() -> None:
    """Pre-populate the static, decoder and model partitions."""

    settings = AppSettings()

    async def _run() -> None:
        async with _controller(settings) as controller:
            try:
                report = await controller.on_install()
            except InstallError as exc:
                _console.print(f"[red]Install failed:[/red] {exc}")
                raise typer.Exit(code=1) from exc
            _console.print(build_install_panel(report))

    asyncio.run(_run())


@app.command()
def activate() -> None:
    """Delete caches left behind by other versions."""

    settings = AppSettings()

    async def _run() -> None:
        async with _controller(settings) as controller:
            deleted = await controller.on_activate()
        if not deleted:
            _console.print("[green]No stale caches.[/green]")
        for name in deleted:
            _console.print(f"[yellow]Deleted[/yellow] {name}")

    asyncio.run(_run())


@app.command()
def caches() -> None:
    """List cache partitions and their entry counts."""

    settings = AppSettings()

    async def _run() -> None:
        storage = build_cache_storage(settings)
        current = set(CachePartitions(version=settings.cache_version).current_names())
        rows: list[tuple[str, int, bool]] = []
        for name in await storage.keys():
            cache = await storage.open(name)
            rows.append((name, len(await cache.keys()), name in current))
        _console.print(build_caches_table(rows))

    asyncio.run(_run())


@poems_app.command("cache")
def poems_cache(slug: str = typer.Argument(..., help="Poem slug, e.g. 'dhoop'.")) -> None:
    """Save one poem page for offline reading."""

    settings = AppSettings()

    async def _run() -> None:
        async with _controller(settings) as controller:
            await controller.on_message(CachePoemMessage(slug=slug, url=f"/kavita/{slug}"))
            cached = await controller.cached_poems()
        if slug in cached:
            _console.print(f"[green]Cached[/green] {slug}")
        else:
            _console.print(f"[red]Could not cache[/red] {slug}")
            raise typer.Exit(code=1)

    asyncio.run(_run())


@poems_app.command("list")
def poems_list(
    titles: bool = typer.Option(False, "--titles", help="Read each cached page and show its title."),
) -> None:
    """Show poems available offline."""

    settings = AppSettings()

    async def _run() -> None:
        async with _controller(settings) as controller:
            if not titles:
                await controller.on_message(GetCachedPoemsMessage(), ConsoleMessagePort(_console))
                return
            rows: list[tuple[str, str]] = []
            for slug in await controller.cached_poems():
                entry = await controller.cached_entry(PartitionKind.POEMS, f"/kavita/{slug}")
                html = entry.content.decode("utf-8", errors="replace") if entry else ""
                rows.append((slug, extract_html_metadata(html=html).get("title", "")))
            _console.print(build_poems_table(rows))

    asyncio.run(_run())


@poems_app.command("clear")
def poems_clear() -> None:
    """Drop the whole poem partition."""

    settings = AppSettings()

    async def _run() -> None:
        async with _controller(settings) as controller:
            await controller.on_message(ClearPoemCacheMessage())
        _console.print("[green]Poem cache cleared.[/green]")

    asyncio.run(_run())


@poems_app.command("like")
def poems_like(slug: str = typer.Argument(...)) -> None:
    """Queue a like to be sent by `sync likes`."""

    settings = AppSettings()

    async def _run() -> None:
        async with _controller(settings) as controller:
            url = await controller.queue_like(slug)
        _console.print(f"[cyan]Queued[/cyan] {url}")

    asyncio.run(_run())


@sync_app.command("likes")
def sync_likes() -> None:
    """Replay likes queued while offline."""

    settings = AppSettings()

    async def _run() -> None:
        async with _controller(settings) as controller:
            replayed = await controller.on_sync(SYNC_LIKES_TAG)
        _console.print(f"Replayed {replayed} like(s).")

    asyncio.run(_run())


@sync_app.command("poems")
def sync_poems() -> None:
    """Refresh the featured poems list in the poem partition."""

    settings = AppSettings()

    async def _run() -> None:
        async with _controller(settings) as controller:
            updated = await controller.on_periodic_sync(UPDATE_POEMS_TAG)
        if not updated:
            _console.print("[yellow]Featured poems not updated.[/yellow]")
            raise typer.Exit(code=1)
        _console.print("[green]Featured poems updated.[/green]")

    asyncio.run(_run())


@app.command()
def push(
    payload: Optional[str] = typer.Argument(None, help="JSON payload (or plain text body)."),
    click: Optional[str] = typer.Option(None, "--click", help="Simulate a click: 'open' or 'close'."),
) -> None:
    """Show a push notification the way the site would."""

    settings = AppSettings()

    async def _run() -> None:
        async with _controller(settings) as controller:
            notification = await controller.on_push(payload)
            if click is not None:
                await controller.on_notification_click(notification, click)

    asyncio.run(_run())


def _describe(value: Any) -> str:
    if isinstance(value, bytes):
        return f"{len(value)} bytes"
    if isinstance(value, tuple):
        return ", ".join(getattr(link, "href", str(link)) for link in value)
    width = getattr(value, "width", None)
    if width is not None:
        return f"{getattr(value, 'format', '?')} {width}x{getattr(value, 'height', '?')}"
    return type(value).__name__


@app.command()
def preload(
    urls: list[str] = typer.Argument(..., help="Asset URLs or site paths."),
    asset_type: AssetType = typer.Option(AssetType.GENERIC, "--type", case_sensitive=False),
    priority: AssetPriority = typer.Option(AssetPriority.MEDIUM, "--priority", case_sensitive=False),
) -> None:
    """Load assets through the priority queue."""

    settings = AppSettings()

    async def _run() -> list[tuple[str, str, str]]:
        async with build_async_client(settings) as client:
            preloader = AssetPreloader(
                HttpAssetLoader(client, base_url=settings.origin),
                ConnectionMonitor.from_settings(settings),
            )
            with Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=_console,
            ) as progress:
                task_id = progress.add_task(f"Preloading ({preloader.connection_speed.value})", total=len(urls))
                preloader.on_progress(lambda p: progress.update(task_id, completed=p.loaded, total=max(p.total, 1)))

                futures = [preloader.preload(url, asset_type, priority) for url in urls]
                results = await asyncio.gather(*futures, return_exceptions=True)
            preloader.close()

        rows: list[tuple[str, str, str]] = []
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                rows.append((url, "FAIL", str(result)))
            else:
                rows.append((url, "OK", _describe(result)))
        return rows

    rows = asyncio.run(_run())
    _console.print(build_preload_table(rows))
    if any(status != "OK" for _, status, _ in rows):
        raise typer.Exit(code=1)


@app.command()
def warmup(urls: list[str] = typer.Argument(..., help="Absolute URLs whose origins to preconnect.")) -> None:
    """Print `<link rel=preconnect>` tags for the given URLs."""

    async def _run() -> list[str]:
        async with build_async_client(AppSettings()) as client:
            preloader = AssetPreloader(HttpAssetLoader(client))
            links = preloader.warmup_connection(urls)
            preloader.close()
        return [link.to_html() for link in links]

    for tag in asyncio.run(_run()):
        _console.print(tag, markup=False, highlight=False, soft_wrap=True)


@api_app.command("get")
def api_get(url: str = typer.Argument(..., help="URL or site path.")) -> None:
    """GET a JSON endpoint with retries and print the body."""

    _call_api("GET", url, None)


@api_app.command("post")
def api_post_command(
    url: str = typer.Argument(..., help="URL or site path."),
    body: Optional[str] = typer.Option(None, "--body", help="JSON request body."),
) -> None:
    """POST to a JSON endpoint with retries and print the body."""

    try:
        parsed = json.loads(body) if body else None
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"--body is not valid JSON: {exc}") from exc
    _call_api("POST", url, parsed)


def _call_api(method: str, url: str, body: Any) -> None:
    settings = AppSettings()
    target = str(httpx.URL(settings.origin).join(url))

    async def _run() -> Any:
        async with build_async_client(settings) as client:
            return await api_fetch(target, method=method, body=body, client=client, settings=settings)

    try:
        data = asyncio.run(_run())
    except (ApiRequestError, httpx.HTTPError) as exc:
        _console.print(f"[red]{get_error_message(exc, settings.default_language)}[/red]")
        raise typer.Exit(code=1) from exc
    _console.print_json(data=data)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
