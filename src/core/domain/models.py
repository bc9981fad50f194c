"""Domain models (Pydantic v2).

Why Pydantic in the domain:
- Strict validation and self-documenting fields (Field) without coupling the
  core to I/O libraries.
- Push payloads and page messages arrive as loose JSON and are validated
  once, at the edge.

Note:
- These models describe *what* is cached or shown, not *how* it is fetched.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic.config import ConfigDict

CACHE_PREFIX = "amanakshar-"

DEFAULT_NOTIFICATION_TITLE = "अमन अक्षर"
DEFAULT_NOTIFICATION_ICON = "/icons/icon-192.svg"
DEFAULT_NOTIFICATION_TAG = "amanakshar-notification"
DEFAULT_VIBRATE_PATTERN = (200, 100, 200)


class PartitionKind(str, Enum):
    """The five cache partitions owned by the controller."""

    STATIC = "static"
    DYNAMIC = "dynamic"
    POEMS = "poems"
    THREE = "three"
    MODELS = "models"


class CachePartitions(BaseModel):
    """Version-stamped partition names.

    Exactly one set of names is current: the one built from the running
    controller's version. Any other `amanakshar-*` cache is stale.
    """

    model_config = ConfigDict(frozen=True)

    version: str = Field(..., min_length=1, description="Cache version tag, e.g. 'v1.3.0'.")

    def name(self, kind: PartitionKind) -> str:
        return f"{CACHE_PREFIX}{kind.value}-{self.version}"

    def current_names(self) -> tuple[str, ...]:
        return tuple(self.name(kind) for kind in PartitionKind)

    def is_stale(self, cache_name: str) -> bool:
        return cache_name.startswith(CACHE_PREFIX) and cache_name not in self.current_names()


class StoredResponse(BaseModel):
    """A (request URL, response) pair persisted in one partition.

    Identity is the absolute request URL: one entry per URL per partition.
    """

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    url: str = Field(..., min_length=1, description="Absolute request URL (cache key).")
    status_code: int = Field(..., ge=100, le=599)
    reason_phrase: str = Field(default="")
    headers: list[tuple[str, str]] = Field(default_factory=list)
    content: bytes = Field(default=b"")
    request_method: str = Field(
        default="GET",
        description="Method used to replay the entry (queued offline actions use POST).",
    )
    stored_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class InstallReport(BaseModel):
    """Outcome of the install step."""

    static_assets: list[str] = Field(default_factory=list)
    three_chunks_cached: bool = False
    models_cached: bool = False
    warnings: list[str] = Field(default_factory=list)
    skip_waiting: bool = False


class NotificationAction(BaseModel):
    action: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)


def _default_actions() -> list[NotificationAction]:
    return [
        NotificationAction(action="open", title="देखें"),
        NotificationAction(action="close", title="बंद करें"),
    ]


class PushPayload(BaseModel):
    """Push message sent by the server. Every field is optional."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str | None = None
    body: str | None = None
    icon: str | None = None
    badge: str | None = None
    image: str | None = None
    tag: str | None = None
    require_interaction: bool | None = Field(default=None, alias="requireInteraction")
    actions: list[NotificationAction] | None = None
    url: str | None = None


class NotificationData(BaseModel):
    url: str = "/"
    timestamp: int = Field(..., description="Milliseconds since epoch at display time.")


class Notification(BaseModel):
    """A notification as handed to the platform notifier."""

    title: str
    body: str = ""
    icon: str = DEFAULT_NOTIFICATION_ICON
    badge: str = DEFAULT_NOTIFICATION_ICON
    image: str | None = None
    vibrate: list[int] = Field(default_factory=lambda: list(DEFAULT_VIBRATE_PATTERN))
    tag: str = DEFAULT_NOTIFICATION_TAG
    require_interaction: bool = False
    actions: list[NotificationAction] = Field(default_factory=_default_actions)
    data: NotificationData

    @classmethod
    def from_payload(cls, payload: PushPayload, *, timestamp: int) -> "Notification":
        return cls(
            title=payload.title or DEFAULT_NOTIFICATION_TITLE,
            body=payload.body or "",
            icon=payload.icon or DEFAULT_NOTIFICATION_ICON,
            badge=payload.badge or DEFAULT_NOTIFICATION_ICON,
            image=payload.image,
            tag=payload.tag or DEFAULT_NOTIFICATION_TAG,
            require_interaction=bool(payload.require_interaction),
            actions=payload.actions or _default_actions(),
            data=NotificationData(url=payload.url or "/", timestamp=timestamp),
        )


class CachePoemMessage(BaseModel):
    type: Literal["CACHE_POEM"] = "CACHE_POEM"
    slug: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)


class ClearPoemCacheMessage(BaseModel):
    type: Literal["CLEAR_POEM_CACHE"] = "CLEAR_POEM_CACHE"


class GetCachedPoemsMessage(BaseModel):
    type: Literal["GET_CACHED_POEMS"] = "GET_CACHED_POEMS"


ClientMessage = Annotated[
    Union[CachePoemMessage, ClearPoemCacheMessage, GetCachedPoemsMessage],
    Field(discriminator="type"),
]

CLIENT_MESSAGE_ADAPTER: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


class CachedPoemsReply(BaseModel):
    poems: list[str] = Field(default_factory=list)
