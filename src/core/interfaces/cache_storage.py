"""Cache storage contracts.

Why Protocol:
- The controller only needs Cache Storage semantics (named partitions of
  URL -> response entries), not a concrete backend.
- Memory and disk backends are interchangeable and testable in isolation.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.domain.models import StoredResponse


@runtime_checkable
class Cache(Protocol):
    """One named partition. Keys are absolute request URLs."""

    name: str

    async def match(self, url: str) -> StoredResponse | None:
        ...

    async def put(self, url: str, entry: StoredResponse) -> None:
        """Store or overwrite the entry for `url` atomically.

        Raises `OSError` (e.g. `CacheQuotaExceededError`) when the write
        cannot be performed.
        """

        ...

    async def delete(self, url: str) -> bool:
        ...

    async def keys(self) -> list[str]:
        ...


@runtime_checkable
class CacheStorage(Protocol):
    """The set of partitions visible to the controller."""

    async def open(self, name: str) -> Cache:
        """Return the partition, creating it if needed."""

        ...

    async def has(self, name: str) -> bool:
        ...

    async def delete(self, name: str) -> bool:
        ...

    async def keys(self) -> list[str]:
        """Partition names in creation order."""

        ...

    async def match(self, url: str) -> StoredResponse | None:
        """First GET entry for `url` across partitions, in creation order.

        Queued actions (entries replayed with another method) are skipped.
        """

        ...
