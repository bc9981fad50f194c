"""Offline cache controller for the Aman Akshar site.

This is the service worker expressed as an object: each browser event is an
explicit method (`on_install`, `on_activate`, `on_fetch`, `on_message`,
`on_push`, `on_notification_click`, `on_sync`, `on_periodic_sync`), so the
whole lifecycle can be driven from the CLI or from tests.

Responsibilities:
- route every same-origin GET to a caching strategy (see `routing.ROUTES`);
- own the five version-stamped partitions and sweep stale ones on activate;
- answer page messages (cache a poem, list cached poems, clear them);
- show push notifications and react to clicks on them;
- replay likes queued while offline and refresh featured poems.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Iterable

import httpx
from pydantic import ValidationError

from adapters.cache_storage import store_response
from core.config import AppSettings
from core.domain.models import (
    CLIENT_MESSAGE_ADAPTER,
    CachedPoemsReply,
    CachePoemMessage,
    CachePartitions,
    ClearPoemCacheMessage,
    GetCachedPoemsMessage,
    InstallReport,
    Notification,
    PartitionKind,
    PushPayload,
    StoredResponse,
)
from core.errors import InstallError
from core.interfaces.cache_storage import CacheStorage
from core.interfaces.platform import ClientRegistry, MessagePort, Notifier
from core.services.routing import ROUTES, Route, Strategy, resolve_route
from core.services.strategies import CacheStrategies

logger = logging.getLogger(__name__)

STATIC_ASSETS: tuple[str, ...] = (
    "/kavitayen",
    "/parichay",
    "/manifest.json",
    "/images/poet/signature.svg",
    "/images/poet/aman-akshar-portrait.svg",
    "/icons/icon-192.svg",
    "/icons/icon-512.svg",
    "/textures/paper-grain.svg",
)

THREE_CHUNKS: tuple[str, ...] = (
    "/draco/draco_decoder.wasm",
    "/draco/draco_wasm_wrapper.js",
)

CRITICAL_MODELS: tuple[str, ...] = ("/models/poet-portrait.glb",)

SYNC_LIKES_TAG = "sync-likes"
UPDATE_POEMS_TAG = "update-poems"
FEATURED_POEMS_PATH = "/api/poems?featured=true"
POEM_PAGE_PREFIX = "/kavita/"


class CacheController:
    """Service-worker equivalent bound to one origin and one cache version."""

    def __init__(
        self,
        *,
        storage: CacheStorage,
        client: httpx.AsyncClient,
        notifier: Notifier,
        clients: ClientRegistry,
        settings: AppSettings | None = None,
        routes: tuple[Route, ...] = ROUTES,
    ) -> None:
        self._settings = settings or AppSettings()
        self._storage = storage
        self._client = client
        self._notifier = notifier
        self._clients = clients
        self._routes = routes
        self.origin = httpx.URL(self._settings.origin)
        self.partitions = CachePartitions(version=self._settings.cache_version)
        self.strategies = CacheStrategies(storage=storage, client=client, partitions=self.partitions)
        self.skip_waiting = False
        self.activated = False

    def absolute_url(self, path_or_url: str) -> httpx.URL:
        return self.origin.join(path_or_url)

    def request(self, path_or_url: str, *, method: str = "GET", accept: str | None = None) -> httpx.Request:
        # Routing reads Accept, so never inherit the client default.
        headers = {"Accept": accept or "*/*"}
        return self._client.build_request(method, self.absolute_url(path_or_url), headers=headers)

    # -- install / activate -------------------------------------------------

    async def on_install(self) -> InstallReport:
        """Pre-populate the static, three and model partitions.

        The static manifest is required: any failure raises `InstallError`.
        Decoder files and the critical model are optional.
        """

        report = InstallReport()
        logger.info("Installing cache controller %s", self.partitions.version)

        try:
            report.static_assets = await self.add_all(PartitionKind.STATIC, STATIC_ASSETS)
        except (httpx.HTTPError, OSError, ValueError) as exc:
            raise InstallError(f"Could not cache static assets: {exc}") from exc

        try:
            await self.add_all(PartitionKind.THREE, THREE_CHUNKS)
            report.three_chunks_cached = True
        except (httpx.HTTPError, OSError, ValueError) as exc:
            logger.warning("Failed to cache some Three.js chunks: %s", exc)
            report.warnings.append(f"three: {exc}")

        try:
            await self.add_all(PartitionKind.MODELS, CRITICAL_MODELS)
            report.models_cached = True
        except (httpx.HTTPError, OSError, ValueError) as exc:
            logger.warning("Failed to cache some 3D models: %s", exc)
            report.warnings.append(f"models: {exc}")

        self.skip_waiting = True
        report.skip_waiting = True
        return report

    async def add_all(self, kind: PartitionKind, paths: Iterable[str]) -> list[str]:
        """Fetch every path, then store them all; nothing is stored if one fails."""

        fetched: list[tuple[str, httpx.Response]] = []
        for path in paths:
            url = str(self.absolute_url(path))
            response = await self._client.get(url)
            if not response.is_success:
                raise ValueError(f"{url} answered {response.status_code}")
            fetched.append((url, response))

        cache = await self._storage.open(self.partitions.name(kind))
        for url, response in fetched:
            await cache.put(url, store_response(url, response))
        return [url for url, _ in fetched]

    async def on_activate(self) -> list[str]:
        """Delete stale `amanakshar-*` partitions, then claim open clients."""

        deleted: list[str] = []
        for name in await self._storage.keys():
            if self.partitions.is_stale(name):
                logger.info("Deleting old cache: %s", name)
                if await self._storage.delete(name):
                    deleted.append(name)
        await self._clients.claim()
        self.activated = True
        return deleted

    # -- fetch ----------------------------------------------------------------

    def route_for(self, request: httpx.Request) -> Route:
        return resolve_route(request, self.origin, self._routes)

    async def on_fetch(self, request: httpx.Request) -> httpx.Response | None:
        """Answer `request`, or return None when it must bypass the cache."""

        route = self.route_for(request)
        strategies = self.strategies

        if route.strategy is Strategy.BYPASS:
            return None
        if route.strategy is Strategy.POEM_PAGE:
            return await strategies.poem_page(request)
        if route.strategy is Strategy.POEM_API:
            return await strategies.poem_api(request)

        if route.partition is None:
            raise RuntimeError(f"Route {route.name} has no cache partition")
        if route.strategy is Strategy.CACHE_FIRST:
            return await strategies.cache_first(request, route.partition)
        if route.strategy is Strategy.NETWORK_FIRST:
            return await strategies.network_first(request, route.partition)
        return await strategies.stale_while_revalidate(request, route.partition)

    async def fetch(self, request: httpx.Request) -> httpx.Response:
        """`on_fetch`, falling back to a plain network request on bypass."""

        response = await self.on_fetch(request)
        if response is None:
            response = await self._client.send(request)
        return response

    async def wait_for_background(self) -> None:
        await self.strategies.wait_for_background()

    # -- messages -------------------------------------------------------------

    async def on_message(
        self,
        message: dict[str, Any] | CachePoemMessage | ClearPoemCacheMessage | GetCachedPoemsMessage,
        port: MessagePort | None = None,
    ) -> CachedPoemsReply | None:
        if isinstance(message, dict):
            try:
                message = CLIENT_MESSAGE_ADAPTER.validate_python(message)
            except ValidationError as exc:
                logger.warning("Ignoring unknown message %r: %s", message.get("type"), exc.error_count())
                return None

        if isinstance(message, CachePoemMessage):
            await self.cache_poem(message.slug, message.url)
            return None

        if isinstance(message, ClearPoemCacheMessage):
            await self._storage.delete(self.partitions.name(PartitionKind.POEMS))
            return None

        reply = CachedPoemsReply(poems=await self.cached_poems())
        if port is not None:
            port.post_message(reply.model_dump())
        return reply

    async def cache_poem(self, slug: str, url: str) -> bool:
        absolute = str(self.absolute_url(url))
        try:
            response = await self._client.get(absolute)
            if not response.is_success:
                logger.info("Poem %s not cached: origin answered %s", slug, response.status_code)
                return False
            cache = await self._storage.open(self.partitions.name(PartitionKind.POEMS))
            await cache.put(absolute, store_response(absolute, response))
        except (httpx.HTTPError, OSError) as exc:
            logger.warning("Failed to cache poem %s: %s", slug, exc)
            return False
        logger.info("Cached poem: %s", slug)
        return True

    async def cached_poems(self) -> list[str]:
        name = self.partitions.name(PartitionKind.POEMS)
        if not await self._storage.has(name):
            return []
        cache = await self._storage.open(name)
        slugs: list[str] = []
        for url in await cache.keys():
            path = httpx.URL(url).path
            if POEM_PAGE_PREFIX in path:
                slugs.append(path.replace(POEM_PAGE_PREFIX, "", 1).lstrip("/"))
        return slugs

    async def cached_entry(self, kind: PartitionKind, path_or_url: str) -> StoredResponse | None:
        name = self.partitions.name(kind)
        if not await self._storage.has(name):
            return None
        cache = await self._storage.open(name)
        return await cache.match(str(self.absolute_url(path_or_url)))

    # -- push -----------------------------------------------------------------

    async def on_push(self, data: bytes | str | dict[str, Any] | None) -> Notification:
        payload = _parse_push_payload(data)
        notification = Notification.from_payload(payload, timestamp=int(time.time() * 1000))
        await self._notifier.show_notification(notification)
        return notification

    async def on_notification_click(self, notification: Notification, action: str = "") -> None:
        await self._notifier.close(notification)

        if action == "close":
            return

        url = notification.data.url or "/"
        for client in await self._clients.match_all(include_uncontrolled=True):
            if client.url == url:
                await client.focus()
                return
        await self._clients.open_window(url)

    # -- background sync --------------------------------------------------------

    async def queue_like(self, slug: str) -> str:
        """Remember a like made while offline so `sync-likes` can replay it."""

        url = str(self.absolute_url(f"/api/poems/{slug}/like"))
        entry = StoredResponse(url=url, status_code=202, reason_phrase="Queued", request_method="POST")
        cache = await self._storage.open(self.partitions.name(PartitionKind.DYNAMIC))
        await cache.put(url, entry)
        return url

    async def on_sync(self, tag: str) -> int:
        if tag != SYNC_LIKES_TAG:
            logger.debug("Ignoring sync tag %s", tag)
            return 0
        return await self.sync_likes()

    async def sync_likes(self) -> int:
        """Replay queued likes; each one is dropped after a successful replay."""

        name = self.partitions.name(PartitionKind.DYNAMIC)
        if not await self._storage.has(name):
            return 0
        cache = await self._storage.open(name)

        replayed = 0
        for url in await cache.keys():
            if "/api/poems/" not in url or "/like" not in url:
                continue
            entry = await cache.match(url)
            method = entry.request_method if entry is not None else "POST"
            try:
                response = await self._client.request(method, url)
            except httpx.HTTPError as exc:
                logger.info("Failed to sync like %s: %s", url, exc)
                continue
            if not response.is_success:
                logger.info("Like %s not accepted yet (%s)", url, response.status_code)
                continue
            await cache.delete(url)
            replayed += 1
        return replayed

    async def on_periodic_sync(self, tag: str) -> bool:
        if tag != UPDATE_POEMS_TAG:
            logger.debug("Ignoring periodic sync tag %s", tag)
            return False
        return await self.update_poems_cache()

    async def update_poems_cache(self) -> bool:
        url = str(self.absolute_url(FEATURED_POEMS_PATH))
        try:
            response = await self._client.get(url)
            if not response.is_success:
                return False
            cache = await self._storage.open(self.partitions.name(PartitionKind.POEMS))
            await cache.put(url, store_response(url, response))
        except (httpx.HTTPError, OSError) as exc:
            logger.info("Periodic sync failed: %s", exc)
            return False
        return True


def _parse_push_payload(data: bytes | str | dict[str, Any] | None) -> PushPayload:
    if data is None:
        return PushPayload()
    if isinstance(data, dict):
        return _validate_push_fields(data)
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    if not data.strip():
        return PushPayload()
    try:
        raw = json.loads(data)
    except json.JSONDecodeError:
        # Plain-text pushes become the notification body.
        return PushPayload(body=data)
    if not isinstance(raw, dict):
        return PushPayload()
    return _validate_push_fields(raw)


def _validate_push_fields(raw: dict[str, Any]) -> PushPayload:
    """Validate a push payload, dropping malformed fields instead of the whole push."""

    try:
        return PushPayload.model_validate(raw)
    except ValidationError as exc:
        invalid = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
        logger.warning("Ignoring malformed push fields: %s", ", ".join(sorted(invalid)))
    cleaned = {key: value for key, value in raw.items() if key not in invalid}
    try:
        return PushPayload.model_validate(cleaned)
    except ValidationError:
        return PushPayload()
