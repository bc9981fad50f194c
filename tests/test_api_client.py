"""Tests for the JSON API helpers."""

import json

import httpx
import pytest

from adapters.api_client import api_delete, api_fetch, api_post, api_put
from adapters.http_client import RetryPolicy
from core.errors import ApiRequestError


async def _no_sleep(delay):
    return None


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestApiFetch:
    """Headers, body encoding and error shape."""

    @pytest.mark.asyncio
    async def test_get_returns_parsed_json(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"poems": ["dhoop"]})

        async with _client(handler) as client:
            data = await api_fetch("https://x.test/api/poems", client=client, policy=RetryPolicy(), sleep=_no_sleep)

        assert data == {"poems": ["dhoop"]}
        assert seen[0].headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_post_put_delete_methods_and_body(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.content))
            return httpx.Response(200, json={"ok": True})

        async with _client(handler) as client:
            kwargs = {"client": client, "policy": RetryPolicy(), "sleep": _no_sleep}
            await api_post("https://x.test/api/enquiries", {"naam": "अमन"}, **kwargs)
            await api_put("https://x.test/api/x", {"a": 1}, **kwargs)
            await api_delete("https://x.test/api/x", **kwargs)

        assert [method for method, _ in seen] == ["POST", "PUT", "DELETE"]
        assert json.loads(seen[0][1].decode("utf-8")) == {"naam": "अमन"}
        assert seen[2][1] == b""

    @pytest.mark.asyncio
    async def test_error_carries_status_and_parsed_body(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid email"})

        async with _client(handler) as client:
            with pytest.raises(ApiRequestError) as exc_info:
                await api_post("https://x.test/api/enquiries", {}, client=client, policy=RetryPolicy(), sleep=_no_sleep)

        error = exc_info.value
        assert error.status == 400
        assert error.status_text == "Bad Request"
        assert error.data == {"error": "invalid email"}
        assert error.message == "API Error: 400 Bad Request"

    @pytest.mark.asyncio
    async def test_error_body_that_is_not_json(self):
        def handler(request):
            return httpx.Response(404, text="<html>nope</html>")

        async with _client(handler) as client:
            with pytest.raises(ApiRequestError) as exc_info:
                await api_fetch("https://x.test/api/missing", client=client, policy=RetryPolicy(), sleep=_no_sleep)
        assert exc_info.value.data is None

    @pytest.mark.asyncio
    async def test_retryable_failure_exhausts_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        async with _client(handler) as client:
            with pytest.raises(ApiRequestError) as exc_info:
                await api_fetch(
                    "https://x.test/api/poems", client=client, policy=RetryPolicy(retries=2), sleep=_no_sleep
                )
        assert exc_info.value.status == 503
        assert len(calls) == 3
