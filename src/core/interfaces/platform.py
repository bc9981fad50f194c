"""Platform contracts the controller talks to.

In a browser these are `registration.showNotification`, `clients` and a
`MessagePort`; here they are small Protocols so console, browser or test
doubles can stand in.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from core.domain.models import Notification


@runtime_checkable
class Notifier(Protocol):
    async def show_notification(self, notification: Notification) -> None:
        ...

    async def close(self, notification: Notification) -> None:
        ...


@runtime_checkable
class WindowClient(Protocol):
    url: str

    async def focus(self) -> None:
        ...


@runtime_checkable
class ClientRegistry(Protocol):
    async def match_all(self, *, include_uncontrolled: bool = True) -> list[WindowClient]:
        ...

    async def open_window(self, url: str) -> WindowClient | None:
        ...

    async def claim(self) -> None:
        """Take control of every open client."""

        ...


@runtime_checkable
class MessagePort(Protocol):
    def post_message(self, message: dict[str, Any]) -> None:
        ...
