"""Cache Storage backends.

Two implementations of `core.interfaces.cache_storage.CacheStorage`:
- `MemoryCacheStorage`: dict-backed, optional per-partition quota (tests,
  short-lived CLI sessions).
- `DiskCacheStorage`: one directory per partition, one JSON file per entry,
  written atomically (temp file + `os.replace`), plus an index file that
  remembers partition creation order.

Also converts between `httpx.Response` and the persisted `StoredResponse`.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import shutil
from pathlib import Path

import httpx

from core.config import AppSettings
from core.domain.models import StoredResponse
from core.errors import CacheQuotaExceededError
from core.interfaces.cache_storage import Cache, CacheStorage

logger = logging.getLogger(__name__)

# Stored content is already decoded, so these would no longer describe it.
_DROPPED_HEADERS = {"content-encoding", "content-length", "transfer-encoding"}

_INDEX_FILE = "partitions.json"


def store_response(url: str, response: httpx.Response, *, request_method: str = "GET") -> StoredResponse:
    """Snapshot a fully read response for persistence."""

    headers = [
        (key, value)
        for key, value in response.headers.multi_items()
        if key.lower() not in _DROPPED_HEADERS
    ]
    return StoredResponse(
        url=url,
        status_code=response.status_code,
        reason_phrase=response.reason_phrase,
        headers=headers,
        content=response.content,
        request_method=request_method,
    )


def restore_response(entry: StoredResponse, request: httpx.Request | None = None) -> httpx.Response:
    extensions = {}
    if entry.reason_phrase:
        extensions["reason_phrase"] = entry.reason_phrase.encode("ascii", errors="ignore")
    return httpx.Response(
        entry.status_code,
        headers=entry.headers,
        content=entry.content,
        request=request,
        extensions=extensions,
    )


class MemoryCache:
    def __init__(self, name: str, *, max_entries: int | None = None) -> None:
        self.name = name
        self._entries: dict[str, StoredResponse] = {}
        self._max_entries = max_entries

    async def match(self, url: str) -> StoredResponse | None:
        return self._entries.get(url)

    async def put(self, url: str, entry: StoredResponse) -> None:
        if (
            self._max_entries is not None
            and url not in self._entries
            and len(self._entries) >= self._max_entries
        ):
            raise CacheQuotaExceededError(f"Partition {self.name} is full ({self._max_entries} entries)")
        self._entries[url] = entry

    async def delete(self, url: str) -> bool:
        return self._entries.pop(url, None) is not None

    async def keys(self) -> list[str]:
        return list(self._entries)


class MemoryCacheStorage:
    def __init__(self, *, max_entries_per_partition: int | None = None) -> None:
        self._partitions: dict[str, MemoryCache] = {}
        self._max_entries = max_entries_per_partition

    async def open(self, name: str) -> Cache:
        cache = self._partitions.get(name)
        if cache is None:
            cache = MemoryCache(name, max_entries=self._max_entries)
            self._partitions[name] = cache
        return cache

    async def has(self, name: str) -> bool:
        return name in self._partitions

    async def delete(self, name: str) -> bool:
        return self._partitions.pop(name, None) is not None

    async def keys(self) -> list[str]:
        return list(self._partitions)

    async def match(self, url: str) -> StoredResponse | None:
        for cache in list(self._partitions.values()):
            entry = await cache.match(url)
            if entry is not None and entry.request_method == "GET":
                return entry
        return None


def _entry_filename(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest() + ".json"


def _atomic_write(path: Path, data: str) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(data, encoding="utf-8")
    os.replace(tmp, path)


class DiskCache:
    def __init__(self, name: str, directory: Path) -> None:
        self.name = name
        self._dir = directory

    def _path(self, url: str) -> Path:
        return self._dir / _entry_filename(url)

    def _read(self, path: Path) -> StoredResponse | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return StoredResponse.model_validate_json(raw)
        except ValueError:
            logger.warning("Discarding unreadable cache entry %s", path)
            path.unlink(missing_ok=True)
            return None

    async def match(self, url: str) -> StoredResponse | None:
        return await asyncio.to_thread(self._read, self._path(url))

    async def put(self, url: str, entry: StoredResponse) -> None:
        payload = entry.model_dump_json()
        self._dir.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(_atomic_write, self._path(url), payload)

    async def delete(self, url: str) -> bool:
        path = self._path(url)
        if not path.exists():
            return False
        path.unlink(missing_ok=True)
        return True

    def _all_entries(self) -> list[StoredResponse]:
        if not self._dir.is_dir():
            return []
        entries = [self._read(path) for path in self._dir.glob("*.json")]
        found = [entry for entry in entries if entry is not None]
        found.sort(key=lambda entry: entry.stored_at)
        return found

    async def keys(self) -> list[str]:
        entries = await asyncio.to_thread(self._all_entries)
        return [entry.url for entry in entries]


class DiskCacheStorage:
    """Partitions persisted under `root`, surviving process restarts."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def _index_path(self) -> Path:
        return self._root / _INDEX_FILE

    def _load_index(self) -> list[str]:
        path = self._index_path()
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        if not isinstance(data, list):
            return []
        return [name for name in data if isinstance(name, str)]

    def _save_index(self, names: list[str]) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        _atomic_write(self._index_path(), json.dumps(names, ensure_ascii=False, indent=2) + "\n")

    def _partition_dir(self, name: str) -> Path:
        # Partition names are plain ASCII tags; keep them readable on disk.
        safe = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in name)
        return self._root / safe

    async def open(self, name: str) -> Cache:
        names = self._load_index()
        if name not in names:
            names.append(name)
            self._save_index(names)
        directory = self._partition_dir(name)
        directory.mkdir(parents=True, exist_ok=True)
        return DiskCache(name, directory)

    async def has(self, name: str) -> bool:
        return name in self._load_index()

    async def delete(self, name: str) -> bool:
        names = self._load_index()
        if name not in names:
            return False
        names.remove(name)
        self._save_index(names)
        await asyncio.to_thread(shutil.rmtree, self._partition_dir(name), True)
        return True

    async def keys(self) -> list[str]:
        return self._load_index()

    async def match(self, url: str) -> StoredResponse | None:
        for name in self._load_index():
            cache = DiskCache(name, self._partition_dir(name))
            entry = await cache.match(url)
            if entry is not None and entry.request_method == "GET":
                return entry
        return None


def build_cache_storage(settings: AppSettings | None = None) -> CacheStorage:
    settings = settings or AppSettings()
    if settings.cache_backend == "memory":
        return MemoryCacheStorage()
    return DiskCacheStorage(settings.resolved_cache_dir())
