"""httpx wrapper.

Why a wrapper:
- Standardizes timeouts, headers and redirects for every outgoing request.
- Owns the retry policy (timeout per attempt, exponential backoff,
  retryable statuses) so callers only see a final response or a typed error.
- Makes testing easy: pass a client built on `httpx.MockTransport`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from core.config import AppSettings
from core.errors import ApiRequestError

logger = logging.getLogger(__name__)

DEFAULT_RETRY_ON: tuple[int, ...] = (408, 429, 500, 502, 503, 504)

Sleep = Callable[[float], Awaitable[None]]
RetryCallback = Callable[[int, Exception], None]


def build_async_client(
    settings: AppSettings | None = None,
    *,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an `httpx.AsyncClient` with safe defaults.

    Why a builder:
    - Centralizes timeouts/headers so every subsystem behaves the same.
    - `transport` lets tests and the CLI inject a mock or custom transport.
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
        headers=headers,
        transport=transport,
    )


@dataclass
class RetryPolicy:
    """Retry configuration for one logical call.

    Attempts never exceed `retries + 1`. Delays are in seconds.
    """

    retries: int = 3
    retry_delay: float = 1.0
    retry_on: tuple[int, ...] = DEFAULT_RETRY_ON
    timeout: float | None = 10.0
    on_retry: RetryCallback | None = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: AppSettings, **overrides: Any) -> "RetryPolicy":
        values: dict[str, Any] = {
            "retries": settings.http_retries,
            "retry_delay": settings.http_retry_delay_seconds,
            "retry_on": tuple(settings.http_retry_on),
            "timeout": settings.http_timeout_seconds,
        }
        values.update(overrides)
        return cls(**values)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the 0-indexed `attempt`."""

        return self.retry_delay * (2**attempt)


async def fetch_with_retry(
    url: str | httpx.URL,
    *,
    method: str = "GET",
    client: httpx.AsyncClient | None = None,
    policy: RetryPolicy | None = None,
    settings: AppSettings | None = None,
    sleep: Sleep = asyncio.sleep,
    **request_kwargs: Any,
) -> httpx.Response:
    """Perform a request with per-attempt timeout and exponential backoff.

    Returns the first response that is either successful or carries a
    status outside `policy.retry_on`. Otherwise raises the last error:
    `ApiRequestError` for retryable statuses and timeouts (408), or the
    `httpx.TransportError` of the final attempt.
    """

    if policy is None:
        policy = RetryPolicy.from_settings(settings or AppSettings())

    if client is None:
        async with build_async_client(settings) as own_client:
            return await _attempt_loop(own_client, method, url, policy, sleep, request_kwargs)
    return await _attempt_loop(client, method, url, policy, sleep, request_kwargs)


async def _attempt_loop(
    client: httpx.AsyncClient,
    method: str,
    url: str | httpx.URL,
    policy: RetryPolicy,
    sleep: Sleep,
    request_kwargs: dict[str, Any],
) -> httpx.Response:
    last_error: Exception = ApiRequestError("Unknown error")

    for attempt in range(policy.retries + 1):
        try:
            request = client.request(method, url, **request_kwargs)
            if policy.timeout is not None:
                response = await asyncio.wait_for(request, timeout=policy.timeout)
            else:
                response = await request
        except (TimeoutError, httpx.TimeoutException):
            last_error = ApiRequestError("Request timeout", 408, "Request Timeout")
        except httpx.TransportError as exc:
            last_error = exc
        else:
            if response.is_success or response.status_code not in policy.retry_on:
                return response
            last_error = ApiRequestError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                response.status_code,
                response.reason_phrase,
            )

        if attempt == policy.retries:
            break

        delay = policy.delay_for(attempt)
        logger.debug(
            "Retrying %s %s in %.2fs (attempt %d/%d): %s",
            method,
            url,
            delay,
            attempt + 1,
            policy.retries,
            last_error,
        )
        if policy.on_retry is not None:
            policy.on_retry(attempt + 1, last_error)
        await sleep(delay)

    raise last_error


def extract_html_metadata(*, html: str, base_url: str | None = None) -> dict[str, Any]:
    """Extract lightweight metadata from HTML.

    Optional keys returned:
    - title
    - meta_description
    - og_image
    """

    if not html:
        return {}

    soup = BeautifulSoup(html, "html.parser")

    title = None
    if soup.title and soup.title.string:
        title = soup.title.string.strip()

    meta_description = None
    tag = soup.find("meta", attrs={"name": "description"})
    if tag and tag.get("content"):
        meta_description = str(tag.get("content")).strip()

    og_image = None
    og = soup.find("meta", attrs={"property": "og:image"})
    if og and og.get("content"):
        og_image = str(og.get("content")).strip()
        if base_url:
            og_image = urljoin(base_url, og_image)

    out: dict[str, Any] = {}
    if title:
        out["title"] = title
    if meta_description:
        out["meta_description"] = meta_description
    if og_image:
        out["og_image"] = og_image
    return out
