"""Asset loaders backed by httpx and Pillow.

One loader per asset type:
- model: raw bytes, fetched with an urgent `Priority` hint;
- texture: best supported image format first, original URL as fallback,
  decoded with Pillow off the event loop;
- draco: no fetch at all, only `<link rel=preload>` hints for the decoder;
- generic: raw bytes.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Sequence

import httpx
from PIL import Image, UnidentifiedImageError, features

from core.domain.assets import AssetType, PreloadLink
from core.errors import AssetLoadError

logger = logging.getLogger(__name__)

DRACO_FILES = ("draco_decoder.wasm", "draco_wasm_wrapper.js")
_RASTER_EXTENSION_RE = re.compile(r"\.(jpg|jpeg|png)$", re.IGNORECASE)
_BASELINE_FORMATS = ("jpg", "png")


@dataclass(frozen=True)
class TextureAsset:
    """A decoded texture. SVG textures are kept as source, without pixel size."""

    url: str
    format: str | None
    width: int | None
    height: int | None
    mode: str | None
    content: bytes = field(repr=False)


def supported_image_formats() -> list[str]:
    """Formats this process can decode, best first."""

    formats = list(_BASELINE_FORMATS)
    if features.check_module("webp"):
        formats.insert(0, "webp")
    if ".avif" in Image.registered_extensions():
        formats.insert(0, "avif")
    return formats


def get_optimized_image_url(url: str, formats: Sequence[str]) -> str:
    """Swap a .jpg/.jpeg/.png extension for the first modern format."""

    for image_format in formats:
        if image_format not in _BASELINE_FORMATS:
            return _RASTER_EXTENSION_RE.sub(f".{image_format}", url)
    return url


def decode_texture(url: str, content: bytes, content_type: str = "") -> TextureAsset:
    if "svg" in content_type or url.lower().endswith(".svg"):
        return TextureAsset(url=url, format="SVG", width=None, height=None, mode=None, content=content)
    try:
        with Image.open(BytesIO(content)) as image:
            image.load()
            return TextureAsset(
                url=url,
                format=image.format,
                width=image.width,
                height=image.height,
                mode=image.mode,
                content=content,
            )
    except (UnidentifiedImageError, OSError) as exc:
        raise AssetLoadError(f"Failed to load texture: {url}") from exc


class HttpAssetLoader:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str | None = None,
        image_formats: Sequence[str] | None = None,
    ) -> None:
        self._client = client
        self._base_url = httpx.URL(base_url) if base_url else None
        self._formats = list(image_formats) if image_formats is not None else supported_image_formats()

    def resolve(self, url: str) -> str:
        if self._base_url is None:
            return url
        return str(self._base_url.join(url))

    async def load(self, url: str, asset_type: AssetType) -> Any:
        if asset_type is AssetType.MODEL:
            return await self.load_model(url)
        if asset_type is AssetType.TEXTURE:
            return await self.load_texture(url)
        if asset_type is AssetType.DRACO:
            return self.load_draco(url)
        return await self.load_generic(url)

    async def load_model(self, url: str) -> bytes:
        response = await self._client.get(self.resolve(url), headers={"Priority": "u=1"})
        if not response.is_success:
            raise AssetLoadError(f"Failed to load model: {response.reason_phrase}")
        return response.content

    async def load_texture(self, url: str) -> TextureAsset:
        response: httpx.Response | None = None

        optimized = get_optimized_image_url(url, self._formats)
        if optimized != url:
            candidate = await self._client.get(self.resolve(optimized))
            if candidate.is_success:
                response = candidate
            else:
                logger.debug("%s not served (%s), using %s", optimized, candidate.status_code, url)

        if response is None:
            response = await self._client.get(self.resolve(url))
            if not response.is_success:
                raise AssetLoadError(f"Failed to load texture: {url}")

        return await asyncio.to_thread(
            decode_texture,
            str(response.request.url),
            response.content,
            response.headers.get("content-type", ""),
        )

    def load_draco(self, url: str = "/draco/") -> tuple[PreloadLink, ...]:
        base = url if url.endswith("/") else url + "/"
        return tuple(PreloadLink(rel="preload", as_="fetch", href=f"{base}{name}") for name in DRACO_FILES)

    async def load_generic(self, url: str) -> bytes:
        response = await self._client.get(self.resolve(url))
        if not response.is_success:
            raise AssetLoadError(f"Failed to load asset: {response.reason_phrase}")
        return response.content
