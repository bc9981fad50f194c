"""Asset loader contract used by the preload queue."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from core.domain.assets import AssetType


@runtime_checkable
class AssetLoader(Protocol):
    """Loads a single asset.

    Rules:
    - `load` is async because it does I/O (HTTP) or decoding.
    - Failures raise; the queue records the error and moves on.
    """

    async def load(self, url: str, asset_type: AssetType) -> Any:
        ...
