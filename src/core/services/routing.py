"""Request routing for the cache controller.

The routing contract is an ordered tuple of `Route`s; the first route whose
predicate matches decides the strategy and the target partition. Bypass
routes mean "let the request go to the network untouched".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import httpx

from core.domain.models import PartitionKind


class Strategy(str, Enum):
    BYPASS = "bypass"
    CACHE_FIRST = "cache-first"
    NETWORK_FIRST = "network-first"
    STALE_WHILE_REVALIDATE = "stale-while-revalidate"
    POEM_PAGE = "poem-page"
    POEM_API = "poem-api"


@dataclass(frozen=True)
class RouteContext:
    """What the predicates get to look at."""

    method: str
    url: httpx.URL
    accept: str
    same_origin: bool

    @property
    def path(self) -> str:
        return self.url.path

    @classmethod
    def from_request(cls, request: httpx.Request, origin: httpx.URL) -> "RouteContext":
        return cls(
            method=request.method.upper(),
            url=request.url,
            accept=request.headers.get("accept", ""),
            same_origin=same_origin(request.url, origin),
        )


@dataclass(frozen=True)
class Route:
    name: str
    predicate: Callable[[RouteContext], bool]
    strategy: Strategy
    partition: PartitionKind | None = None


_STATIC_EXTENSION_RE = re.compile(r"\.(js|css|png|jpg|jpeg|gif|svg|ico|woff|woff2)$")
_STATIC_PREFIXES = ("/icons/", "/images/", "/textures/")
_MODEL_EXTENSION_RE = re.compile(r"\.(glb|gltf)$")


def same_origin(url: httpx.URL, origin: httpx.URL) -> bool:
    return (
        url.scheme == origin.scheme
        and url.host == origin.host
        and _effective_port(url) == _effective_port(origin)
    )


def _effective_port(url: httpx.URL) -> int | None:
    if url.port is not None:
        return url.port
    return {"http": 80, "https": 443}.get(url.scheme)


def is_static_asset(path: str) -> bool:
    return bool(_STATIC_EXTENSION_RE.search(path)) or path.startswith(_STATIC_PREFIXES)


ROUTES: tuple[Route, ...] = (
    Route("non-get", lambda ctx: ctx.method != "GET", Strategy.BYPASS),
    Route("cross-origin", lambda ctx: not ctx.same_origin, Strategy.BYPASS),
    Route(
        "api",
        lambda ctx: ctx.path.startswith("/api/") and "/poems/" not in ctx.path,
        Strategy.BYPASS,
    ),
    Route("admin", lambda ctx: ctx.path.startswith("/admin"), Strategy.BYPASS),
    Route("poem-page", lambda ctx: ctx.path.startswith("/kavita/"), Strategy.POEM_PAGE, PartitionKind.POEMS),
    Route("poem-api", lambda ctx: ctx.path.startswith("/api/poems/"), Strategy.POEM_API, PartitionKind.POEMS),
    Route(
        "three-chunks",
        lambda ctx: ctx.path.startswith("/draco/") or "three" in ctx.path,
        Strategy.CACHE_FIRST,
        PartitionKind.THREE,
    ),
    Route(
        "models",
        lambda ctx: ctx.path.startswith("/models/") and bool(_MODEL_EXTENSION_RE.search(ctx.path)),
        Strategy.CACHE_FIRST,
        PartitionKind.MODELS,
    ),
    Route(
        "textures",
        lambda ctx: ctx.path.startswith("/textures/"),
        Strategy.STALE_WHILE_REVALIDATE,
        PartitionKind.STATIC,
    ),
    Route("static-assets", lambda ctx: is_static_asset(ctx.path), Strategy.CACHE_FIRST, PartitionKind.STATIC),
    Route("html-pages", lambda ctx: "text/html" in ctx.accept, Strategy.NETWORK_FIRST, PartitionKind.DYNAMIC),
    Route("default", lambda ctx: True, Strategy.STALE_WHILE_REVALIDATE, PartitionKind.DYNAMIC),
)


def resolve_route(
    request: httpx.Request,
    origin: httpx.URL,
    routes: tuple[Route, ...] = ROUTES,
) -> Route:
    ctx = RouteContext.from_request(request, origin)
    for route in routes:
        if route.predicate(ctx):
            return route
    # The last route matches everything.
    return routes[-1]
