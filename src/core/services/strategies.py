"""Caching strategies.

Every strategy degrades to "serve something": network, then cache, then a
synthesized offline document. Lookups search every partition (Cache Storage
`match` semantics); writes go to the strategy's target partition and never
fail the request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import httpx

from adapters.cache_storage import restore_response, store_response
from adapters.offline_pages import offline_json_response, offline_poem_response, offline_response
from core.domain.models import CachePartitions, PartitionKind
from core.interfaces.cache_storage import CacheStorage

logger = logging.getLogger(__name__)

SOURCE_EXTENSION = "amanakshar_source"
SOURCE_NETWORK = "network"
SOURCE_CACHE = "cache"
SOURCE_OFFLINE = "offline"

OfflineFactory = Callable[[httpx.Request | None], httpx.Response]


def tag_source(response: httpx.Response, source: str) -> httpx.Response:
    response.extensions[SOURCE_EXTENSION] = source
    return response


def response_source(response: httpx.Response) -> str | None:
    return response.extensions.get(SOURCE_EXTENSION)


def _offline(factory: OfflineFactory, request: httpx.Request) -> httpx.Response:
    return tag_source(factory(request), SOURCE_OFFLINE)


class CacheStrategies:
    """Cache-first, network-first, stale-while-revalidate and the poem variants."""

    def __init__(
        self,
        *,
        storage: CacheStorage,
        client: httpx.AsyncClient,
        partitions: CachePartitions,
    ) -> None:
        self._storage = storage
        self._client = client
        self._partitions = partitions
        self._background: set[asyncio.Task[Any]] = set()

    async def fetch(self, request: httpx.Request) -> httpx.Response:
        """Network fetch; raises `httpx.HTTPError` when the network fails."""

        response = await self._client.send(request)
        return tag_source(response, SOURCE_NETWORK)

    async def match(self, request: httpx.Request) -> httpx.Response | None:
        entry = await self._storage.match(str(request.url))
        if entry is None:
            return None
        return tag_source(restore_response(entry, request), SOURCE_CACHE)

    async def put(self, kind: PartitionKind, request: httpx.Request, response: httpx.Response) -> bool:
        """Store a copy of `response`; storage errors are logged, not raised."""

        url = str(request.url)
        try:
            cache = await self._storage.open(self._partitions.name(kind))
            await cache.put(url, store_response(url, response, request_method=request.method))
        except OSError as exc:
            logger.warning("Could not cache %s in %s: %s", url, kind.value, exc)
            return False
        return True

    async def cache_first(self, request: httpx.Request, kind: PartitionKind) -> httpx.Response:
        cached = await self.match(request)
        if cached is not None:
            return cached

        try:
            response = await self.fetch(request)
        except httpx.HTTPError as exc:
            logger.debug("Cache-first miss and network failure for %s: %s", request.url, exc)
            return _offline(offline_response, request)

        if response.is_success:
            await self.put(kind, request, response)
        return response

    async def network_first(
        self,
        request: httpx.Request,
        kind: PartitionKind,
        *,
        offline: OfflineFactory = offline_response,
    ) -> httpx.Response:
        """Prefer the network.

        A thrown network error falls back to the cache, then to `offline`.
        A 5xx from the origin falls back to a cached copy when there is one
        and is returned unchanged otherwise. 4xx responses pass through.
        """

        try:
            response = await self.fetch(request)
        except httpx.HTTPError as exc:
            logger.debug("Network-first failure for %s: %s", request.url, exc)
            cached = await self.match(request)
            if cached is not None:
                return cached
            return _offline(offline, request)

        if response.is_success:
            await self.put(kind, request, response)
            return response

        if response.status_code >= 500:
            cached = await self.match(request)
            if cached is not None:
                logger.info("Origin answered %s for %s, serving cached copy", response.status_code, request.url)
                return cached
        return response

    async def stale_while_revalidate(self, request: httpx.Request, kind: PartitionKind) -> httpx.Response:
        cached = await self.match(request)
        if cached is not None:
            self.spawn(self._revalidate(request, kind))
            return cached

        response = await self._revalidate(request, kind)
        if response is None:
            return _offline(offline_response, request)
        return response

    async def poem_page(self, request: httpx.Request) -> httpx.Response:
        return await self._poem_network_first(request, offline_poem_response)

    async def poem_api(self, request: httpx.Request) -> httpx.Response:
        return await self._poem_network_first(request, offline_json_response)

    async def _poem_network_first(self, request: httpx.Request, offline: OfflineFactory) -> httpx.Response:
        """Network-first into `poems`; never hands an origin error to the reader.

        A non-2xx answer is served as the offline document, except a 5xx
        with a cached copy, which serves that copy.
        """

        try:
            response = await self.fetch(request)
        except httpx.HTTPError as exc:
            logger.debug("Poem fetch failed for %s: %s", request.url, exc)
            cached = await self.match(request)
            if cached is not None:
                return cached
            return _offline(offline, request)

        if response.is_success:
            await self.put(PartitionKind.POEMS, request, response)
            return response

        if response.status_code >= 500:
            cached = await self.match(request)
            if cached is not None:
                logger.info("Origin answered %s for %s, serving cached poem", response.status_code, request.url)
                return cached
        logger.info("Origin answered %s for %s, serving offline document", response.status_code, request.url)
        return _offline(offline, request)

    async def _revalidate(self, request: httpx.Request, kind: PartitionKind) -> httpx.Response | None:
        try:
            response = await self.fetch(request)
        except httpx.HTTPError as exc:
            logger.debug("Revalidation failed for %s: %s", request.url, exc)
            return None
        if response.is_success:
            await self.put(kind, request, response)
        return response

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run `coro` in the background, tracked until it finishes."""

        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_for_background(self) -> None:
        while self._background:
            results = await asyncio.gather(*list(self._background), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.warning("Background cache task failed: %s", result)

