"""Connection quality tracking for the preload queue.

The preloader asks the monitor for `max_concurrent` every time it decides
whether to start another load, so a change of effective type applies to
the next dispatch without restarting anything.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from core.config import AppSettings
from core.domain.assets import DEFAULT_MAX_CONCURRENT, ConnectionSpeed

logger = logging.getLogger(__name__)

ConnectionListener = Callable[[str | None], None]

# Throughput thresholds (kbit/s) used by the Network Information API.
_SLOW_2G_KBPS = 50
_2G_KBPS = 70
_3G_KBPS = 700


def classify_throughput(kbps: float) -> str:
    if kbps < _SLOW_2G_KBPS:
        return "slow-2g"
    if kbps < _2G_KBPS:
        return "2g"
    if kbps < _3G_KBPS:
        return "3g"
    return "4g"


class ConnectionMonitor:
    def __init__(
        self,
        effective_type: str | None = None,
        *,
        max_concurrency_override: int | None = None,
    ) -> None:
        self._effective_type = effective_type
        self._override = max_concurrency_override
        self._listeners: list[ConnectionListener] = []

    @classmethod
    def from_settings(cls, settings: AppSettings | None = None) -> "ConnectionMonitor":
        settings = settings or AppSettings()
        return cls(settings.connection_type, max_concurrency_override=settings.preload_max_concurrency)

    @property
    def effective_type(self) -> str | None:
        return self._effective_type

    @property
    def speed(self) -> ConnectionSpeed | None:
        return ConnectionSpeed.from_effective_type(self._effective_type)

    @property
    def max_concurrent(self) -> int:
        if self._override is not None:
            return self._override
        speed = self.speed
        if speed is None:
            return DEFAULT_MAX_CONCURRENT
        return speed.max_concurrent

    def set_effective_type(self, effective_type: str | None) -> None:
        if effective_type == self._effective_type:
            return
        logger.info("Connection changed: %s -> %s", self._effective_type, effective_type)
        self._effective_type = effective_type
        for listener in list(self._listeners):
            listener(effective_type)

    def on_change(self, listener: ConnectionListener) -> Callable[[], None]:
        """Register `listener`; returns a function that removes it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


async def probe_connection(
    client: httpx.AsyncClient,
    url: str,
    *,
    clock: Callable[[], float] = time.perf_counter,
) -> str | None:
    """Download `url` once and classify the observed throughput.

    Returns None when the probe fails or finishes too fast to measure.
    """

    started = clock()
    try:
        response = await client.get(url)
    except httpx.HTTPError as exc:
        logger.info("Connection probe failed: %s", exc)
        return None
    elapsed = clock() - started
    if not response.is_success or elapsed <= 0:
        return None

    kbps = (len(response.content) * 8 / 1000) / elapsed
    effective_type = classify_throughput(kbps)
    logger.debug("Probe %s: %.1f kbps (%s)", url, kbps, effective_type)
    return effective_type
