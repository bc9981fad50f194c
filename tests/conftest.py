"""
Pytest configuration and fixtures for amanakshar-offline tests.
"""

import sys
from pathlib import Path

import httpx
import pytest

# Add src directory to Python path to allow importing core/adapters/cli
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from adapters.cache_storage import MemoryCacheStorage  # noqa: E402
from core.config import AppSettings  # noqa: E402
from core.domain.models import Notification  # noqa: E402

ORIGIN = "https://amanakshar.test"


class FakeSite:
    """In-process origin server for `httpx.MockTransport`.

    Pages are registered per path (query included). While `online` is False
    every request fails with `httpx.ConnectError`.
    """

    def __init__(self):
        self.pages = {}
        self.online = True
        self.requests = []

    def add(self, path, body=b"", *, status=200, content_type="text/html; charset=utf-8", headers=None):
        if isinstance(body, str):
            body = body.encode("utf-8")
        merged = {"Content-Type": content_type}
        merged.update(headers or {})
        self.pages[path] = (status, body, merged)

    def count(self, path, method="GET"):
        return sum(1 for request in self.requests if request.method == method and _target(request) == path)

    def handler(self, request):
        self.requests.append(request)
        if not self.online:
            raise httpx.ConnectError("Failed to fetch", request=request)
        page = self.pages.get(_target(request))
        if page is None:
            return httpx.Response(404, text="Not found")
        status, body, headers = page
        return httpx.Response(status, content=body, headers=headers)

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _target(request):
    path = request.url.path
    if request.url.query:
        path += "?" + request.url.query.decode("ascii")
    return path


class RecordingNotifier:
    def __init__(self):
        self.shown = []
        self.closed = []

    async def show_notification(self, notification: Notification):
        self.shown.append(notification)

    async def close(self, notification: Notification):
        self.closed.append(notification)


class FakeWindow:
    def __init__(self, url):
        self.url = url
        self.focused = False

    async def focus(self):
        self.focused = True


class FakeClients:
    def __init__(self, urls=()):
        self.windows = [FakeWindow(url) for url in urls]
        self.opened = []
        self.claimed = False

    async def match_all(self, *, include_uncontrolled=True):
        return list(self.windows)

    async def open_window(self, url):
        self.opened.append(url)
        window = FakeWindow(url)
        self.windows.append(window)
        return window

    async def claim(self):
        self.claimed = True


class RecordingPort:
    def __init__(self):
        self.messages = []

    def post_message(self, message):
        self.messages.append(message)


@pytest.fixture
def settings():
    return AppSettings(
        _env_file=None,
        origin=ORIGIN,
        cache_version="v-test",
        cache_backend="memory",
        http_retry_delay_seconds=0.0,
    )


@pytest.fixture
def site():
    return FakeSite()


@pytest.fixture
def storage():
    return MemoryCacheStorage()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clients():
    return FakeClients()


@pytest.fixture
def port():
    return RecordingPort()


@pytest.fixture
def anyio_backend():
    return "asyncio"
