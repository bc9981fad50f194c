"""Core configuration.

Why here:
- Centralizes environment variables (pydantic-settings) away from the CLI.
- Lets adapters (HTTP, cache storage, asset loaders) read config consistently.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.domain.language import Language


def get_user_config_dir() -> Path:
    """Per-user configuration directory (cross-platform, no dependencies)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "amanakshar"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "amanakshar"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "amanakshar"
    return Path.home() / ".config" / "amanakshar"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str], *, env_path: Path | None = None) -> Path:
    """Write/update variables in the user's global .env."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        try:
            existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))
        except OSError:
            existing = {}

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# amanakshar-offline user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Central application settings.

    Why pydantic-settings:
    - Typed and validated at the edge (env vars) without leaking into services.
    - A single configuration contract for the CLI and the adapters.
    """

    model_config = SettingsConfigDict(
        env_prefix="AMANAKSHAR_",
        extra="ignore",
        case_sensitive=False,
        # Project .env first (dev), then the user's global config.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    origin: str = Field(
        default="https://amanakshar.com",
        min_length=8,
        description="Site origin served by the cache controller (scheme://host[:port]).",
    )
    cache_version: str = Field(
        default="v1.3.0",
        min_length=1,
        description="Version tag stamped into every cache partition name.",
    )
    cache_backend: Literal["disk", "memory"] = Field(
        default="disk",
        description="Where cache partitions live.",
    )
    cache_dir: Path | None = Field(
        default=None,
        description="Root directory for disk partitions (defaults to the user config dir).",
    )

    http_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Per-attempt timeout (seconds).",
    )
    http_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the first attempt for retryable failures.",
    )
    http_retry_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Base delay for exponential backoff (seconds).",
    )
    http_retry_on: list[int] = Field(
        default_factory=lambda: [408, 429, 500, 502, 503, 504],
        description="HTTP statuses that trigger a retry.",
    )
    user_agent: str = Field(
        default="amanakshar-offline/0.1 (+https://amanakshar.com)",
        min_length=1,
        description="User-Agent for outgoing requests.",
    )

    connection_type: str | None = Field(
        default=None,
        description="Effective connection type (slow-2g, 2g, 3g, 4g). Unset means unknown.",
    )
    preload_max_concurrency: int | None = Field(
        default=None,
        ge=1,
        le=32,
        description="Fixed preload concurrency; overrides the connection-derived value.",
    )

    log_level: str = Field(
        default="INFO",
        description="Root log level for the CLI.",
    )
    default_language: Language = Field(
        default=Language.HINDI,
        description="Language for user-facing error messages (hi/en).",
    )

    def resolved_cache_dir(self) -> Path:
        return self.cache_dir or (get_user_config_dir() / "caches")
