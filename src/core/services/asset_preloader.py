"""Priority-ordered asset preloading with bounded concurrency.

`AssetPreloader` is a plain object: build one per application (or per test)
and hand it to whoever needs it.

Rules:
- Higher priority is dispatched first; ties keep insertion order.
- At most `connection.max_concurrent` loads run at once. The limit is read
  at every dispatch decision, so a connection change applies immediately.
- One load per URL. Every caller for a URL that is queued or loading gets a
  shielded view of the same future; cancelling one caller never cancels
  the shared load.
- Failed loads are not retried; call again to retry.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

import httpx

from core.domain.assets import (
    AssetPriority,
    AssetType,
    ConnectionSpeed,
    PreloadLink,
    PreloadProgress,
)
from core.interfaces.asset_loader import AssetLoader
from core.services.connection import ConnectionMonitor

logger = logging.getLogger(__name__)

DRACO_PATH = "/draco/"

ProgressCallback = Callable[[PreloadProgress], None]


@dataclass
class AssetQueueItem:
    url: str
    type: AssetType
    priority: AssetPriority
    sequence: int
    future: asyncio.Future[Any] = field(repr=False)
    loaded: bool = False
    error: BaseException | None = None
    started_at: float | None = None

    @property
    def sort_key(self) -> tuple[int, int]:
        return (-self.priority.weight, self.sequence)


def _retrieve_exception(future: asyncio.Future[Any]) -> None:
    # Fire-and-forget callers never await; keep asyncio from reporting it.
    if not future.cancelled():
        future.exception()


class AssetPreloader:
    def __init__(
        self,
        loader: AssetLoader,
        connection: ConnectionMonitor | None = None,
        *,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._loader = loader
        self._connection = connection or ConnectionMonitor()
        self._clock = clock

        self._queue: list[AssetQueueItem] = []
        self._loading: dict[str, AssetQueueItem] = {}
        self._pending: dict[str, AssetQueueItem] = {}
        self._cache: dict[str, Any] = {}
        self._failed: dict[str, AssetQueueItem] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._callbacks: list[ProgressCallback] = []
        self._sequence = itertools.count()
        self._drain_scheduled = False

        self._average_load_time = 0.0
        self._completed_loads = 0

        self._unsubscribe_connection = self._connection.on_change(self._on_connection_change)

    # -- public API -----------------------------------------------------------

    def preload_model(self, url: str, priority: AssetPriority = AssetPriority.MEDIUM) -> asyncio.Future[Any]:
        return self.preload(url, AssetType.MODEL, priority)

    def preload_texture(self, url: str, priority: AssetPriority = AssetPriority.MEDIUM) -> asyncio.Future[Any]:
        return self.preload(url, AssetType.TEXTURE, priority)

    def preload_draco(self) -> asyncio.Future[Any]:
        return self.preload(DRACO_PATH, AssetType.DRACO, AssetPriority.CRITICAL)

    def preload(
        self,
        url: str,
        asset_type: AssetType = AssetType.GENERIC,
        priority: AssetPriority = AssetPriority.MEDIUM,
    ) -> asyncio.Future[Any]:
        """Queue `url` and return an awaitable for its loaded value.

        Must be called from a running event loop. Dispatch happens on the
        next loop iteration so items queued together are ordered together.
        """

        loop = asyncio.get_running_loop()

        if url in self._cache:
            done = loop.create_future()
            done.set_result(self._cache[url])
            return done

        item = self._pending.get(url)
        if item is None:
            future = loop.create_future()
            future.add_done_callback(_retrieve_exception)
            item = AssetQueueItem(
                url=url,
                type=asset_type,
                priority=priority,
                sequence=next(self._sequence),
                future=future,
            )
            self._pending[url] = item
            self._failed.pop(url, None)
            self._queue.append(item)
            self._schedule_drain(loop)

        view = asyncio.shield(item.future)
        view.add_done_callback(_retrieve_exception)
        return view

    def on_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        """Subscribe to progress updates; returns the unsubscribe function."""

        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def progress(self) -> PreloadProgress:
        loaded = len(self._cache)
        remaining = len(self._loading) + len(self._queue)
        total = loaded + remaining
        percentage = (loaded / total) * 100 if total > 0 else 0.0
        return PreloadProgress(
            total=total,
            loaded=loaded,
            percentage=percentage,
            estimated_time_remaining=remaining * self._average_load_time,
        )

    def get_preload_links(self) -> list[PreloadLink]:
        """`<link rel=preload>` hints for queued critical and high items."""

        links: list[PreloadLink] = []
        for item in sorted(self._queue, key=lambda queued: queued.sort_key):
            if item.priority not in (AssetPriority.CRITICAL, AssetPriority.HIGH):
                continue
            links.append(
                PreloadLink(
                    rel="preload",
                    as_="image" if item.type is AssetType.TEXTURE else "fetch",
                    href=item.url,
                )
            )
        return links

    def warmup_connection(self, urls: Iterable[str]) -> list[PreloadLink]:
        """`<link rel=preconnect>` hints, one per distinct absolute origin."""

        origins: dict[str, None] = {}
        for url in urls:
            origin = _origin_of(url)
            if origin is not None:
                origins.setdefault(origin, None)
        return [PreloadLink(rel="preconnect", href=origin) for origin in origins]

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def connection_speed(self) -> ConnectionSpeed:
        # Unknown connections report medium while running 3 loads at once.
        return self._connection.speed or ConnectionSpeed.MEDIUM

    @property
    def max_concurrent(self) -> int:
        return self._connection.max_concurrent

    @property
    def average_load_time(self) -> float:
        return self._average_load_time

    @property
    def queued_urls(self) -> list[str]:
        return [item.url for item in sorted(self._queue, key=lambda queued: queued.sort_key)]

    @property
    def loading_urls(self) -> list[str]:
        return list(self._loading)

    def is_loaded(self, url: str) -> bool:
        return url in self._cache

    def error_for(self, url: str) -> BaseException | None:
        item = self._failed.get(url)
        return item.error if item is not None else None

    async def wait_idle(self) -> None:
        """Wait until nothing is queued or loading."""

        while self._queue or self._tasks or self._drain_scheduled:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(0)

    def close(self) -> None:
        self._unsubscribe_connection()
        self._callbacks.clear()

    # -- queue ------------------------------------------------------------------

    def _schedule_drain(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._drain_scheduled:
            return
        self._drain_scheduled = True
        loop.call_soon(self._scheduled_drain)

    def _scheduled_drain(self) -> None:
        self._drain_scheduled = False
        self._process_queue()

    def _process_queue(self) -> None:
        self._queue.sort(key=lambda item: item.sort_key)
        while self._queue and len(self._loading) < self._connection.max_concurrent:
            item = self._queue.pop(0)
            self._loading[item.url] = item
            item.started_at = self._clock()
            task = asyncio.create_task(self._load(item))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _load(self, item: AssetQueueItem) -> None:
        try:
            result = await self._loader.load(item.url, item.type)
        except asyncio.CancelledError:
            item.future.cancel()
            raise
        except Exception as exc:
            item.error = exc
            self._failed[item.url] = item
            logger.error("Failed to load asset %s: %s", item.url, exc)
            if not item.future.done():
                item.future.set_exception(exc)
        else:
            item.loaded = True
            self._cache[item.url] = result
            self._record_load_time(self._clock() - (item.started_at or self._clock()))
            if not item.future.done():
                item.future.set_result(result)
        finally:
            self._loading.pop(item.url, None)
            self._pending.pop(item.url, None)
            self._notify_progress()
            self._process_queue()

    def _record_load_time(self, seconds: float) -> None:
        self._completed_loads += 1
        self._average_load_time += (seconds - self._average_load_time) / self._completed_loads

    def _notify_progress(self) -> None:
        progress = self.progress()
        for callback in list(self._callbacks):
            try:
                callback(progress)
            except Exception:
                logger.exception("Progress callback failed")

    def _on_connection_change(self, effective_type: str | None) -> None:
        logger.debug("Preload concurrency now %d (%s)", self.max_concurrent, effective_type)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._process_queue()


def _origin_of(url: str) -> str | None:
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError):
        return None
    if not parsed.scheme or not parsed.host:
        return None
    origin = f"{parsed.scheme}://{parsed.host}"
    if parsed.port is not None:
        origin += f":{parsed.port}"
    return origin


class PreloadProgressWatcher:
    """Keeps the latest progress of one preloader; closes like a context manager."""

    def __init__(self, preloader: AssetPreloader) -> None:
        self._preloader = preloader
        self.progress = PreloadProgress()
        self._unsubscribe: Callable[[], None] | None = preloader.on_progress(self._update)

    def _update(self, progress: PreloadProgress) -> None:
        self.progress = progress

    def preload_model(self, url: str, priority: AssetPriority = AssetPriority.MEDIUM) -> asyncio.Future[Any]:
        return self._preloader.preload_model(url, priority)

    def preload_texture(self, url: str, priority: AssetPriority = AssetPriority.MEDIUM) -> asyncio.Future[Any]:
        return self._preloader.preload_texture(url, priority)

    def warmup_connection(self, urls: Iterable[str]) -> list[PreloadLink]:
        return self._preloader.warmup_connection(urls)

    @property
    def connection_speed(self) -> ConnectionSpeed:
        return self._preloader.connection_speed

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> "PreloadProgressWatcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def preload_critical_assets(
    preloader: AssetPreloader,
    assets: Iterable[tuple[str, AssetType]],
) -> list[asyncio.Future[Any]]:
    """Queue models and textures at critical priority; other types are skipped."""

    futures: list[asyncio.Future[Any]] = []
    for url, asset_type in assets:
        if asset_type is AssetType.MODEL:
            futures.append(preloader.preload_model(url, AssetPriority.CRITICAL))
        elif asset_type is AssetType.TEXTURE:
            futures.append(preloader.preload_texture(url, AssetPriority.CRITICAL))
    return futures
