"""Request state machines for UI-style consumers.

`ApiQuery` (reads) and `Mutation` (writes) each own one `ApiState` and move
it through idle -> loading -> success | error, notifying subscribers on
every transition. At most one of `is_loading`, `is_error`, `is_success` is
ever true.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, TypeVar

import httpx

from adapters.http_client import RetryPolicy, Sleep, fetch_with_retry
from core.config import AppSettings
from core.domain.language import Language
from core.errors import ApiRequestError, get_error_message

logger = logging.getLogger(__name__)

T = TypeVar("T")
V = TypeVar("V")


@dataclass(frozen=True)
class ApiState(Generic[T]):
    data: T | None = None
    error: BaseException | None = None
    is_loading: bool = False
    is_error: bool = False
    is_success: bool = False
    error_message: str | None = None

    @property
    def is_idle(self) -> bool:
        return not (self.is_loading or self.is_error or self.is_success)

    def loading(self) -> "ApiState[T]":
        """Enter loading; previous data stays visible."""

        return replace(
            self,
            error=None,
            error_message=None,
            is_loading=True,
            is_error=False,
            is_success=False,
        )

    @classmethod
    def success(cls, data: T) -> "ApiState[T]":
        return cls(data=data, is_success=True)

    @classmethod
    def failure(cls, error: BaseException, message: str) -> "ApiState[T]":
        return cls(error=error, is_error=True, error_message=message)


StateListener = Callable[[ApiState[Any]], None]


class _StateHolder(Generic[T]):
    def __init__(self) -> None:
        self._state: ApiState[T] = ApiState()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> ApiState[T]:
        return self._state

    @property
    def data(self) -> T | None:
        return self._state.data

    @property
    def error(self) -> BaseException | None:
        return self._state.error

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def is_error(self) -> bool:
        return self._state.is_error

    @property
    def is_success(self) -> bool:
        return self._state.is_success

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: ApiState[T]) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)


def _http_error(response: httpx.Response) -> ApiRequestError:
    return ApiRequestError(
        f"HTTP {response.status_code}: {response.reason_phrase}",
        response.status_code,
        response.reason_phrase,
    )


class ApiQuery(_StateHolder[T]):
    """Retrying JSON read with last-call-wins semantics.

    Usage:
        async with ApiQuery(url, client=client, immediate=True) as query:
            print(query.data)

    A new `execute()` cancels the one still in flight; the superseded call
    returns None without touching state or firing callbacks. Leaving the
    `async with` block (or `close()`) cancels the request and freezes state.
    """

    def __init__(
        self,
        url: str | httpx.URL,
        *,
        client: httpx.AsyncClient | None = None,
        settings: AppSettings | None = None,
        policy: RetryPolicy | None = None,
        method: str = "GET",
        immediate: bool = False,
        on_success: Callable[[T], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        language: Language = Language.HINDI,
        sleep: Sleep = asyncio.sleep,
        **request_kwargs: Any,
    ) -> None:
        super().__init__()
        self.url = url
        self._client = client
        self._settings = settings
        self._policy = policy
        self._method = method
        self._immediate = immediate
        self._on_success = on_success
        self._on_error = on_error
        self._language = language
        self._sleep = sleep
        self._request_kwargs = request_kwargs
        self._task: asyncio.Task[T] | None = None
        self._closed = False

    async def _fetch(self) -> T:
        response = await fetch_with_retry(
            self.url,
            method=self._method,
            client=self._client,
            policy=self._policy,
            settings=self._settings,
            sleep=self._sleep,
            **self._request_kwargs,
        )
        if not response.is_success:
            raise _http_error(response)
        return response.json()

    async def execute(self) -> T | None:
        if self._closed:
            return None

        previous = self._task
        if previous is not None and not previous.done():
            previous.cancel()

        self._set_state(self.state.loading())
        task = asyncio.create_task(self._fetch())
        self._task = task

        try:
            data = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            return None
        except Exception as exc:
            if self._closed or self._task is not task:
                return None
            self._set_state(ApiState.failure(exc, get_error_message(exc, self._language)))
            if self._on_error is not None:
                self._on_error(exc)
            return None

        if self._closed or self._task is not task:
            return None
        self._set_state(ApiState.success(data))
        if self._on_success is not None:
            self._on_success(data)
        return data

    async def refetch(self) -> T | None:
        return await self.execute()

    def reset(self) -> None:
        self._cancel()
        self._set_state(ApiState())

    def close(self) -> None:
        self._closed = True
        self._cancel()

    def _cancel(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    def _set_state(self, state: ApiState[T]) -> None:
        if self._closed:
            return
        super()._set_state(state)

    async def __aenter__(self) -> "ApiQuery[T]":
        if self._immediate:
            await self.execute()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class Mutation(_StateHolder[T], Generic[T, V]):
    """A write operation with success/error/settled callbacks.

    Writes are not retried here; pass a `mutation_fn` that calls
    `fetch_with_retry` to opt in. `on_settled` always runs last.
    """

    def __init__(
        self,
        mutation_fn: Callable[[V], Awaitable[httpx.Response]],
        *,
        on_success: Callable[[T, V], None] | None = None,
        on_error: Callable[[Exception, V], None] | None = None,
        on_settled: Callable[[T | None, Exception | None, V], None] | None = None,
        language: Language = Language.HINDI,
    ) -> None:
        super().__init__()
        self._mutation_fn = mutation_fn
        self._on_success = on_success
        self._on_error = on_error
        self._on_settled = on_settled
        self._language = language

    async def mutate(self, variables: V) -> T | None:
        """Like `mutate_async`, but failures end up in state instead of raising."""

        try:
            return await self.mutate_async(variables)
        except Exception as exc:
            logger.debug("Mutation failed: %s", exc)
            return None

    async def mutate_async(self, variables: V) -> T:
        self._set_state(self.state.loading())

        try:
            response = await self._mutation_fn(variables)
            if not response.is_success:
                raise _http_error(response)
            data: T = response.json()
        except Exception as exc:
            self._set_state(ApiState.failure(exc, get_error_message(exc, self._language)))
            if self._on_error is not None:
                self._on_error(exc, variables)
            if self._on_settled is not None:
                self._on_settled(None, exc, variables)
            raise

        self._set_state(ApiState.success(data))
        if self._on_success is not None:
            self._on_success(data, variables)
        if self._on_settled is not None:
            self._on_settled(data, None, variables)
        return data

    def reset(self) -> None:
        self._set_state(ApiState())
