"""Offline fallbacks served when both cache and network fail.

Why in adapters:
- The HTML documents are Jinja2 templates (infrastructure detail).
- Strategies only ask for "the offline page" or "the offline poem page".
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

SITE_NAME = "अमन अक्षर"
OFFLINE_STATUS = 503
_HTML_CONTENT_TYPE = "text/html; charset=utf-8"


@lru_cache(maxsize=1)
def _get_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
    )


def render_offline_html(*, home_href: str = "/") -> str:
    return _get_env().get_template("offline.html").render(site_name=SITE_NAME, home_href=home_href)


def render_offline_poem_html(*, poems_href: str = "/kavitayen") -> str:
    return _get_env().get_template("offline_poem.html").render(site_name=SITE_NAME, poems_href=poems_href)


def offline_response(request: httpx.Request | None = None) -> httpx.Response:
    """Generic offline document (503)."""

    return httpx.Response(
        OFFLINE_STATUS,
        headers={"Content-Type": _HTML_CONTENT_TYPE},
        text=render_offline_html(),
        request=request,
    )


def offline_poem_response(request: httpx.Request | None = None) -> httpx.Response:
    """Poem-specific offline document linking back to the poem list (503)."""

    return httpx.Response(
        OFFLINE_STATUS,
        headers={"Content-Type": _HTML_CONTENT_TYPE},
        text=render_offline_poem_html(),
        request=request,
    )


def offline_json_response(request: httpx.Request | None = None) -> httpx.Response:
    return httpx.Response(
        OFFLINE_STATUS,
        headers={"Content-Type": "application/json"},
        content=json.dumps({"error": "Offline"}).encode("utf-8"),
        request=request,
    )
