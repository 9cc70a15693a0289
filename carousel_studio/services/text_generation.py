"""Text model adapter: prompt in, validated contract object (or typed failure) out."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Literal, Sequence, TypeVar

import openai
from openai import AsyncOpenAI

from carousel_studio.config import get_settings
from carousel_studio.core.errors import ConfigurationError, ContractViolation, StudioError, TransportError
from carousel_studio.core.json_extract import extract_first_json
from carousel_studio.core.logging import get_logger
from carousel_studio.services.prompts import PromptPayload
from carousel_studio.services.references import ReferenceImage

logger = get_logger(__name__)

T = TypeVar("T")

TextErrorKind = Literal["transport", "non_json", "schema_mismatch"]

JSON_ONLY_REMINDER = "IMPORTANT: reply ONLY with valid JSON. No Markdown. No extra text."


@dataclass
class TextResult(Generic[T]):
    ok: bool
    data: T | None = None
    error_kind: TextErrorKind | None = None
    detail: str | None = None
    raw: str | None = None
    model: str | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_error(self) -> StudioError:
        """The exception matching this failure, for callers that propagate."""
        if self.error_kind == "transport":
            return TransportError(self.detail or "Text model call failed.")
        return ContractViolation(
            self.detail or "Text model reply rejected.",
            kind=self.error_kind or "non_json",
            raw=self.raw,
            errors=self.errors,
        )


def normalize_model_id(model: str) -> str:
    return model[len("models/"):] if model.startswith("models/") else model


def rank_text_models(names: Sequence[str]) -> str | None:
    """Best fallback among listed models: fast tiers first, then newer versions."""

    def score(name: str) -> int:
        n = name.lower()
        s = 0
        if "flash" in n:
            s += 100
        if "3.0" in n:
            s += 30
        if "2.0" in n:
            s += 20
        if "1.5" in n:
            s += 10
        return s

    candidates = [normalize_model_id(n) for n in names if n]
    if not candidates:
        return None
    # Stable: ties keep listing order.
    return sorted(candidates, key=score, reverse=True)[0]


def _user_content(user: str, images: Sequence[ReferenceImage]) -> Any:
    text = f"{JSON_ONLY_REMINDER}\n\n{user}"
    if not images:
        return text
    parts: list[dict[str, Any]] = [{"type": "text", "text": text}]
    for image in images:
        parts.append({
            "type": "image_url",
            "image_url": {"url": f"data:{image.mime_type};base64,{image.data}"},
        })
    return parts


class TextGenerationAdapter:
    """Calls an OpenAI-compatible chat endpoint and validates the JSON it returns.

    Never retries on its own except for one hop to a fallback model when the
    configured model does not exist.
    """

    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None) -> None:
        settings = get_settings()
        self._client = client
        self.model = normalize_model_id(model or settings.text_model)
        self.max_tokens = settings.text_max_tokens
        self.temperature = settings.text_temperature

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            settings = get_settings()
            if not settings.text_model_api_key:
                raise ConfigurationError("TEXT_MODEL_API_KEY is not configured.")
            self._client = AsyncOpenAI(
                api_key=settings.text_model_api_key,
                base_url=settings.text_model_base_url,
                timeout=settings.text_timeout_seconds,
            )
        return self._client

    async def _complete(self, model: str, prompt: PromptPayload, images: Sequence[ReferenceImage]) -> str:
        t0 = time.monotonic()
        response = await self.client.chat.completions.create(
            model=model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": _user_content(prompt.user, images)},
            ],
            response_format={"type": "json_object"},
        )
        content = (response.choices[0].message.content or "") if response.choices else ""
        logger.info(
            "text_model_call",
            model=model,
            duration_ms=int((time.monotonic() - t0) * 1000),
            tokens_in=response.usage.prompt_tokens if response.usage else 0,
            tokens_out=response.usage.completion_tokens if response.usage else 0,
            attachments=len(images),
        )
        return content

    async def _fallback_model(self) -> str | None:
        try:
            page = await self.client.models.list()
        except openai.OpenAIError as e:
            logger.warning("text_model_list_failed", error=str(e))
            return None
        return rank_text_models([m.id for m in page.data])

    async def _call(self, prompt: PromptPayload, images: Sequence[ReferenceImage]) -> tuple[str, str]:
        """Return ``(raw_text, model_used)`` or raise ``TransportError``."""
        model = self.model
        try:
            return await self._complete(model, prompt, images), model
        except openai.NotFoundError as e:
            fallback = await self._fallback_model()
            if not fallback or fallback == model:
                raise TransportError(
                    f"Text model {model!r} not found: {e}", status_code=404, model_not_found=True,
                ) from e
            logger.warning("text_model_fallback", requested_model=model, fallback_model=fallback)
            model = fallback
        except openai.APIStatusError as e:
            raise TransportError(f"Text model call failed: HTTP {e.status_code}", status_code=e.status_code) from e
        except openai.APIError as e:
            raise TransportError(f"Text model call failed: {e}") from e

        try:
            return await self._complete(model, prompt, images), model
        except openai.APIStatusError as e:
            raise TransportError(
                f"Fallback text model call failed: HTTP {e.status_code}", status_code=e.status_code,
            ) from e
        except openai.APIError as e:
            raise TransportError(f"Fallback text model call failed: {e}") from e

    async def generate_json(
        self,
        prompt: PromptPayload,
        validate: Callable[..., T],
        images: Sequence[ReferenceImage] = (),
    ) -> TextResult[T]:
        """Generate, extract the first JSON value, and validate it.

        ``validate(data, raw=...)`` must return the contract object or raise
        ``ContractViolation``. Raises ``ConfigurationError`` when credentials
        are missing; every other failure comes back as a failed ``TextResult``.
        """
        try:
            raw, model = await self._call(prompt, images)
        except TransportError as e:
            logger.warning("text_model_transport_error", error=e.message, status_code=e.status_code)
            return TextResult(ok=False, error_kind="transport", detail=e.message)

        extracted = extract_first_json(raw) or raw.strip()
        try:
            data = json.loads(extracted)
        except json.JSONDecodeError:
            logger.warning("text_model_non_json", model=model, raw_excerpt=raw[:200])
            return TextResult(
                ok=False,
                error_kind="non_json",
                detail="Text model reply is not valid JSON.",
                raw=raw,
                model=model,
            )

        try:
            validated = validate(data, raw=extracted)
        except ContractViolation as e:
            logger.warning("text_model_schema_mismatch", model=model, errors=len(e.errors))
            return TextResult(
                ok=False,
                error_kind="schema_mismatch",
                detail=e.message,
                raw=extracted,
                model=model,
                errors=e.errors,
            )
        return TextResult(ok=True, data=validated, raw=extracted, model=model)
