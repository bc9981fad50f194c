"""Platform adapters for a terminal session.

- `ConsoleNotifier` renders notifications as Rich panels.
- `BrowserClientRegistry` tracks "windows" opened through `webbrowser`.
- `ConsoleMessagePort` prints replies and keeps them for inspection.
"""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from dataclasses import dataclass, field
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from core.domain.models import Notification

logger = logging.getLogger(__name__)


def build_notification_panel(notification: Notification) -> Panel:
    body = Text()
    if notification.body:
        body.append(notification.body + "\n\n")
    body.append(f"URL: {notification.data.url}", style="magenta")
    if notification.actions:
        labels = " | ".join(f"{action.title} ({action.action})" for action in notification.actions)
        body.append(f"\n{labels}", style="dim")
    return Panel(
        body,
        title=Text(notification.title, style="bold cyan"),
        subtitle=Text(notification.tag, style="dim"),
        border_style="cyan",
    )


class ConsoleNotifier:
    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()
        self.shown: list[Notification] = []

    async def show_notification(self, notification: Notification) -> None:
        self.shown.append(notification)
        self._console.print(build_notification_panel(notification))

    async def close(self, notification: Notification) -> None:
        if notification in self.shown:
            self.shown.remove(notification)


@dataclass
class BrowserWindow:
    url: str
    focused: bool = False

    async def focus(self) -> None:
        self.focused = True


@dataclass
class BrowserClientRegistry:
    """Window clients known to this process, opened with the system browser."""

    origin: str
    windows: list[BrowserWindow] = field(default_factory=list)
    claimed: bool = False
    open_browser: bool = True

    async def match_all(self, *, include_uncontrolled: bool = True) -> list[BrowserWindow]:
        if include_uncontrolled or self.claimed:
            return list(self.windows)
        return []

    async def open_window(self, url: str) -> BrowserWindow | None:
        target = url if "://" in url else self.origin.rstrip("/") + "/" + url.lstrip("/")
        window = BrowserWindow(url=url)
        if self.open_browser:
            opened = await asyncio.to_thread(webbrowser.open, target, 2)
            if not opened:
                logger.warning("No browser available to open %s", target)
                return None
        self.windows.append(window)
        return window

    async def claim(self) -> None:
        self.claimed = True


class ConsoleMessagePort:
    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()
        self.messages: list[dict[str, Any]] = []

    def post_message(self, message: dict[str, Any]) -> None:
        self.messages.append(message)
        self._console.print_json(data=message)
