"""Image model adapter (Gemini image models via google-genai)."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from carousel_studio.config import get_settings
from carousel_studio.core.errors import AssetError, ConfigurationError
from carousel_studio.core.logging import get_logger

logger = get_logger(__name__)

PROVIDER = "gemini"
MIN_IMAGE_BYTES = 128

_PNG_MAGIC = b"\x89PNG"
_JPEG_MAGIC = b"\xff\xd8\xff"


@dataclass(frozen=True)
class ImageResult:
    data: bytes
    mime_type: str
    model: str
    provider: str = PROVIDER

    @property
    def extension(self) -> str:
        if "jpeg" in self.mime_type or "jpg" in self.mime_type:
            return "jpg"
        if "webp" in self.mime_type:
            return "webp"
        return "png"


def validate_image_bytes(data: bytes, mime_type: str) -> None:
    """Reject payloads too small to be an image or whose magic bytes contradict the MIME type."""
    if len(data) < MIN_IMAGE_BYTES:
        raise AssetError(f"Generated image too small ({len(data)} bytes).", kind="failed_validation")
    mime = mime_type.lower()
    if "png" in mime and not data.startswith(_PNG_MAGIC):
        raise AssetError("Generated image is not a valid PNG.", kind="failed_validation")
    if ("jpeg" in mime or "jpg" in mime) and not data.startswith(_JPEG_MAGIC):
        raise AssetError("Generated image is not a valid JPEG.", kind="failed_validation")
    if "webp" in mime and not (data[:4] == b"RIFF" and data[8:12] == b"WEBP"):
        raise AssetError("Generated image is not a valid WEBP.", kind="failed_validation")


def rank_image_models(names: Sequence[str]) -> str | None:
    def score(name: str) -> int:
        n = name.lower()
        s = 0
        if "flash-image" in n or "flash_image" in n:
            s += 100
        if "pro-image" in n or "pro_image" in n:
            s += 80
        if "image" in n:
            s += 20
        if "2.5" in n:
            s += 10
        if "3" in n:
            s += 5
        return s

    candidates = [n.removeprefix("models/") for n in names if n]
    if not candidates:
        return None
    return sorted(candidates, key=score, reverse=True)[0]


def supported_image_models() -> tuple[str, str]:
    settings = get_settings()
    return settings.image_model_default, settings.image_model_with_text


def resolve_image_model(override: str | None) -> str:
    """Run-level default model: a supported override, else the default tier."""
    default, with_text = supported_image_models()
    if override and override in (default, with_text):
        return override
    if override:
        logger.info("image_model_override_ignored", requested_model=override)
    return default


class ImageGenerationAdapter:
    """Generate one image per call; raises ``AssetError`` on any failure."""

    def __init__(self, client: genai.Client | None = None) -> None:
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            settings = get_settings()
            if not settings.gemini_api_key:
                raise ConfigurationError("GEMINI_API_KEY is not configured.")
            self._client = genai.Client(
                api_key=settings.gemini_api_key,
                http_options=types.HttpOptions(timeout=settings.image_timeout_seconds * 1000),
            )
        return self._client

    async def _request(self, prompt: str, model: str) -> ImageResult:
        t0 = time.monotonic()
        response = await self.client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
        )
        for candidate in response.candidates or []:
            parts = candidate.content.parts if candidate.content else None
            for part in parts or []:
                inline = part.inline_data
                if inline is not None and inline.data:
                    result = ImageResult(data=inline.data, mime_type=inline.mime_type or "image/png", model=model)
                    logger.info(
                        "image_model_call",
                        model=model,
                        mime_type=result.mime_type,
                        size=len(result.data),
                        duration_ms=int((time.monotonic() - t0) * 1000),
                    )
                    return result
        raise AssetError("Image model returned no image.", kind="failed")

    async def _fallback_model(self) -> str | None:
        try:
            pager = await self.client.aio.models.list()
            names = [m.name async for m in pager if m.name]
        except genai_errors.APIError as e:
            logger.warning("image_model_list_failed", error=str(e))
            return None
        return rank_image_models(names)

    async def generate(self, prompt: str, model: str) -> ImageResult:
        try:
            result = await self._request(prompt, model)
        except genai_errors.ClientError as e:
            if e.code != 404:
                raise AssetError(f"Image model call failed (HTTP {e.code}).", kind="failed") from e
            fallback = await self._fallback_model()
            if not fallback or fallback == model:
                raise AssetError(f"Image model {model!r} not found.", kind="failed") from e
            logger.warning("image_model_fallback", requested_model=model, fallback_model=fallback)
            try:
                result = await self._request(prompt, fallback)
            except genai_errors.APIError as retry_error:
                raise AssetError(
                    f"Fallback image model call failed (HTTP {retry_error.code}).", kind="failed",
                ) from retry_error
            except httpx.HTTPError as retry_error:
                raise AssetError(f"Fallback image model transport error: {retry_error}", kind="failed") from retry_error
        except genai_errors.APIError as e:
            raise AssetError(f"Image model call failed (HTTP {e.code}).", kind="failed") from e
        except httpx.HTTPError as e:
            raise AssetError(f"Image model transport error: {e}", kind="failed") from e

        validate_image_bytes(result.data, result.mime_type)
        return result
