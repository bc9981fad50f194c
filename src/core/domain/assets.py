"""Asset preloading vocabulary: priorities, types, connection speeds and
the values the preloader reports back to its subscribers."""

from __future__ import annotations

from enum import Enum

from markupsafe import escape
from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class AssetPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> int:
        """Higher weight is served first."""

        return _PRIORITY_WEIGHTS[self]


_PRIORITY_WEIGHTS: dict[AssetPriority, int] = {
    AssetPriority.CRITICAL: 4,
    AssetPriority.HIGH: 3,
    AssetPriority.MEDIUM: 2,
    AssetPriority.LOW: 1,
}


class AssetType(str, Enum):
    MODEL = "model"
    TEXTURE = "texture"
    DRACO = "draco"
    GENERIC = "generic"


# Concurrency used when the connection type cannot be detected.
DEFAULT_MAX_CONCURRENT = 3


class ConnectionSpeed(str, Enum):
    SLOW = "slow"
    MEDIUM = "medium"
    FAST = "fast"

    @property
    def max_concurrent(self) -> int:
        if self is ConnectionSpeed.FAST:
            return 4
        if self is ConnectionSpeed.MEDIUM:
            return 2
        return 1

    @classmethod
    def from_effective_type(cls, effective_type: str | None) -> "ConnectionSpeed | None":
        """Map a Network-Information style effective type to a speed.

        `None` means the type is unknown; any other value that is not 4g or
        3g (slow-2g, 2g, ...) counts as slow.
        """

        if effective_type is None:
            return None
        value = effective_type.strip().lower()
        if not value:
            return None
        if value == "4g":
            return cls.FAST
        if value == "3g":
            return cls.MEDIUM
        return cls.SLOW


class PreloadProgress(BaseModel):
    total: int = 0
    loaded: int = 0
    percentage: float = 0.0
    estimated_time_remaining: float = Field(default=0.0, description="Seconds.")


class PreloadLink(BaseModel):
    """A `<link>` hint for SSR head injection."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    rel: str
    as_: str | None = Field(default=None, alias="as")
    href: str
    crossorigin: str | None = "anonymous"

    def to_html(self) -> str:
        parts = [f'rel="{escape(self.rel)}"']
        if self.as_:
            parts.append(f'as="{escape(self.as_)}"')
        parts.append(f'href="{escape(self.href)}"')
        if self.crossorigin:
            parts.append(f'crossorigin="{escape(self.crossorigin)}"')
        return f"<link {' '.join(parts)}>"
