"""Error taxonomy for the fetch layer and the cache controller.

- `ApiRequestError` is the only error shape raised by the JSON helpers.
  Transport failures (DNS, refused connections) surface as the underlying
  `httpx.TransportError`; timeouts become `ApiRequestError(408)`.
- Cache storage failures are `OSError` subclasses so strategies can log
  them and keep serving.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from core import error_messages
from core.domain.language import Language

_NETWORK_MESSAGE_PARTS = (
    "Failed to fetch",
    "Network request failed",
    "NetworkError",
)


class ApiRequestError(Exception):
    """HTTP-level failure with optional status and parsed error body."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        status_text: str | None = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.status_text = status_text
        self.data = data

    def __repr__(self) -> str:
        return f"ApiRequestError({self.message!r}, status={self.status!r})"


class InstallError(Exception):
    """The critical static manifest could not be cached."""


class CacheQuotaExceededError(OSError):
    """A partition refused a write because it is full."""


class AssetLoadError(Exception):
    """An asset could not be fetched or decoded."""


def is_network_error(error: object) -> bool:
    if isinstance(error, (httpx.TransportError, asyncio.CancelledError)):
        return True
    if isinstance(error, BaseException):
        message = str(error)
        return any(part in message for part in _NETWORK_MESSAGE_PARTS)
    return False


def is_rate_limit_error(error: object) -> bool:
    return isinstance(error, ApiRequestError) and error.status == 429


def get_error_message(error: object, language: Language = Language.HINDI) -> str:
    """Map any error to a stable, localized user-facing message."""

    if is_network_error(error):
        return error_messages.message_for(error_messages.NETWORK, language)

    if is_rate_limit_error(error):
        return error_messages.message_for(error_messages.RATE_LIMITED, language)

    if isinstance(error, ApiRequestError):
        if error.status is None:
            return error_messages.message_for(error_messages.GENERIC, language)
        return error_messages.message_for(error.status, language)

    if isinstance(error, BaseException):
        return str(error) or error_messages.message_for(error_messages.UNKNOWN, language)

    return error_messages.message_for(error_messages.GENERIC, language)
