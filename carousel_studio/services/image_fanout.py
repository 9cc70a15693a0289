"""Image fan-out: one image per planner request, processed sequentially.

Each request is isolated: a failure is recorded on the progress trace and the
loop moves on. Progress is persisted (and published) after every image.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from carousel_studio.config import get_settings
from carousel_studio.core.errors import AssetError, ConfigurationError
from carousel_studio.core.logging import get_logger
from carousel_studio.models.carousel import Carousel
from carousel_studio.schemas.common import Palette, Rect01
from carousel_studio.schemas.document import Document
from carousel_studio.schemas.generation import GenerationProgress, ImageTrace
from carousel_studio.schemas.layout import LayoutDescriptor
from carousel_studio.schemas.planner import ImageRequest, PlannerOutput
from carousel_studio.services.compositor import slide_id
from carousel_studio.services.events import NullEventPublisher, ProgressEventPublisher
from carousel_studio.services.image_generation import ImageGenerationAdapter, ImageResult, supported_image_models
from carousel_studio.services.layouts import rect_to_px

logger = get_logger(__name__)

DEBUG_PROMPT_LIMIT = 300
DEFAULT_TONE = "neutral"


def truncate_text(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[: max(0, limit - 1)] + "…"


def describe_zone(zone: Rect01) -> str:
    """Plain-words position of a unit rect's centre ("top left", "middle center"...)."""
    cx = zone.x + zone.w / 2
    cy = zone.y + zone.h / 2
    horizontal = "left" if cx < 0.33 else "right" if cx > 0.66 else "center"
    vertical = "top" if cy < 0.33 else "bottom" if cy > 0.66 else "middle"
    return f"{vertical} {horizontal}"


def request_slot_id(request: ImageRequest, layout: LayoutDescriptor) -> str | None:
    """Slot a request fills; background requests without one use the first background slot."""
    if request.slot_id:
        return request.slot_id
    if request.purpose == "background":
        for slot in layout.images:
            if slot.kind == "background":
                return slot.id
    return None


def build_image_prompt(
    request: ImageRequest,
    *,
    layout: LayoutDescriptor,
    palette: Palette,
    tone: str | None,
    slot_id: str | None = None,
) -> str:
    """Planner prompt plus geometry, calm-area, palette and tone instructions."""
    slot = layout.slot(slot_id or request.slot_id)
    extra: list[str] = []
    if slot is not None:
        px = rect_to_px(slot.bounds, layout.slide.width, layout.slide.height)
        extra.append(f"Slot format: {px.w}x{px.h}px (ratio {px.w}:{px.h}).")
    elif request.aspect:
        extra.append(f"Aspect ratio: {request.aspect}.")

    safe_zones = request.safe_zones or (list(slot.safe_zones) if slot is not None else [])
    if safe_zones:
        hints = list(dict.fromkeys(describe_zone(zone) for zone in safe_zones))
        extra.append(f"Keep calm areas free for text in these regions: {', '.join(hints)}.")
        extra.append("Make those regions low-contrast with little detail so text stays legible.")
        extra.append("Do not draw boxes, blur, bands, guides, coordinates or text to mark those areas.")

    extra.append(f"Palette: {palette.background}, {palette.text}, {palette.accent}.")
    extra.append(f"Tone: {tone or DEFAULT_TONE}.")
    if not request.contains_text:
        extra.append("No text in image.")
    return "\n".join([request.prompt, *extra]).strip()


def model_for_request(request: ImageRequest, run_model: str) -> str:
    """Requests that must render legible text go to the text-capable tier."""
    if request.contains_text:
        return supported_image_models()[1]
    return run_model


def assign_asset(document: Document, slide_index: int, slot_id: str | None, asset_id: str) -> bool:
    """Point the slot's image object at ``asset_id``; ``False`` if nothing is bound to the slot."""
    if not slot_id:
        return False
    slide = document.slide_by_id(slide_id(slide_index)) or document.slide_at(slide_index)
    if slide is None:
        return False
    image = slide.image_for_slot(slot_id)
    if image is None:
        return False
    image.asset_id = asset_id
    image.hidden = False
    return True


@dataclass
class FanoutContext:
    carousel: Carousel
    plan: PlannerOutput
    layout: LayoutDescriptor
    document: Document
    progress: GenerationProgress
    run_model: str
    tone: str | None = None


class ImageFanout:
    """Generate, validate, upload and register every image the plan asks for."""

    def __init__(
        self,
        repository,
        storage,
        image_adapter: ImageGenerationAdapter | None = None,
        publisher: ProgressEventPublisher | None = None,
    ) -> None:
        self.repository = repository
        self.storage = storage
        self.images = image_adapter or ImageGenerationAdapter()
        self.publisher = publisher or NullEventPublisher()

    async def run(self, ctx: FanoutContext) -> None:
        settings = get_settings()
        palette = ctx.plan.global_style.palette
        for slide in ctx.plan.slides:
            for request in slide.image_requests:
                slot_id = request_slot_id(request, ctx.layout)
                prompt = build_image_prompt(
                    request, layout=ctx.layout, palette=palette, tone=ctx.tone, slot_id=slot_id,
                )
                debug_prompt = truncate_text(prompt, DEBUG_PROMPT_LIMIT) if settings.generation_debug else None
                if debug_prompt:
                    logger.debug("image_prompt", slide_index=slide.index, slot_id=slot_id, prompt=debug_prompt)

                trace = await self._one(ctx, slide.index, slot_id, request, prompt)
                trace.prompt = debug_prompt
                ctx.progress.images.record(trace)
                await self._checkpoint(ctx, trace)

    async def _one(
        self,
        ctx: FanoutContext,
        slide_index: int,
        slot_id: str | None,
        request: ImageRequest,
        prompt: str,
    ) -> ImageTrace:
        settings = get_settings()
        model = model_for_request(request, ctx.run_model)

        def failed(status: str, error: str, path: str | None = None) -> ImageTrace:
            logger.warning("image_failed", slide_index=slide_index, slot_id=slot_id, status=status, error=error)
            return ImageTrace(slide_index=slide_index, slot_id=slot_id, status=status, path=path, error=error)

        def unexpected(status: str, step: str, error: Exception, path: str | None = None) -> ImageTrace:
            logger.exception("image_step_crashed", slide_index=slide_index, slot_id=slot_id, step=step)
            message = f"{type(error).__name__}: {error}"
            return ImageTrace(slide_index=slide_index, slot_id=slot_id, status=status, path=path, error=message)

        try:
            image: ImageResult = await self.images.generate(prompt, model)
        except AssetError as e:
            status = "failed_validation" if e.kind == "failed_validation" else "failed"
            return failed(status, e.message)
        except ConfigurationError:
            raise
        except Exception as e:
            return unexpected("failed", "generate", e)

        carousel = ctx.carousel
        path = f"workspaces/{carousel.workspace_id}/carousels/{carousel.id}/generated/{uuid4()}.{image.extension}"
        bucket = settings.assets_bucket
        try:
            await self.storage.upload(bucket, path, image.data, image.mime_type)
        except AssetError as e:
            return failed("failed_upload", e.message)
        except Exception as e:
            return unexpected("failed_upload", "upload", e)

        metadata: dict[str, Any] = {
            "provider": image.provider,
            "model": image.model,
            "slideIndex": slide_index,
            "slotId": slot_id,
            "prompt": request.prompt,
            "aspect": request.aspect,
        }
        try:
            asset_id = await self.repository.insert_generated_asset(
                carousel, bucket=bucket, path=path, mime_type=image.mime_type, metadata=metadata,
            )
        except SQLAlchemyError as e:
            return failed("failed_db", str(e), path=path)
        except Exception as e:
            return unexpected("failed_db", "insert", e, path=path)

        if not assign_asset(ctx.document, slide_index, slot_id, str(asset_id)):
            logger.info("image_unbound", slide_index=slide_index, slot_id=slot_id, asset_id=str(asset_id))
        return ImageTrace(slide_index=slide_index, slot_id=slot_id, status="ready", path=path)

    async def _checkpoint(self, ctx: FanoutContext, trace: ImageTrace) -> None:
        images = ctx.progress.images
        await self.repository.save_progress(ctx.carousel.id, ctx.progress.to_json_dict())
        await self.publisher.image_finished(
            ctx.carousel.id,
            trace.model_dump(mode="json", by_alias=True),
            done=images.done,
            failed=images.failed,
            total=images.total,
        )
