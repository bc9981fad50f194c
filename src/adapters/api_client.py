"""Typed JSON helpers on top of `fetch_with_retry`.

Same-origin APIs (likes, forms) are treated opaquely: only status codes and
`{"error": "..."}` bodies are interpreted.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from adapters.http_client import RetryPolicy, Sleep, fetch_with_retry
from core.config import AppSettings
from core.errors import ApiRequestError

_JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


def _parse_error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


async def api_fetch(
    url: str | httpx.URL,
    *,
    method: str = "GET",
    body: Any = None,
    headers: dict[str, str] | None = None,
    client: httpx.AsyncClient | None = None,
    policy: RetryPolicy | None = None,
    settings: AppSettings | None = None,
    sleep: Sleep = asyncio.sleep,
) -> Any:
    """Fetch JSON with retries; raise `ApiRequestError` on a non-2xx result."""

    merged_headers = {**_JSON_HEADERS, **(headers or {})}
    request_kwargs: dict[str, Any] = {"headers": merged_headers}
    if body is not None:
        request_kwargs["content"] = json.dumps(body, ensure_ascii=False).encode("utf-8")

    response = await fetch_with_retry(
        url,
        method=method,
        client=client,
        policy=policy,
        settings=settings,
        sleep=sleep,
        **request_kwargs,
    )

    if not response.is_success:
        raise ApiRequestError(
            f"API Error: {response.status_code} {response.reason_phrase}",
            response.status_code,
            response.reason_phrase,
            _parse_error_body(response),
        )

    return response.json()


async def api_post(url: str | httpx.URL, body: Any, **kwargs: Any) -> Any:
    return await api_fetch(url, method="POST", body=body, **kwargs)


async def api_put(url: str | httpx.URL, body: Any, **kwargs: Any) -> Any:
    return await api_fetch(url, method="PUT", body=body, **kwargs)


async def api_delete(url: str | httpx.URL, **kwargs: Any) -> Any:
    return await api_fetch(url, method="DELETE", **kwargs)
