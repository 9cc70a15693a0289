"""Generation orchestrator: brief → plan → (review) → document + images.

State machine per carousel: ``idle → running → succeeded | failed``. Entry
checks (ownership, brief, single-flight) run before any model call. Each
phase persists the progress record as soon as it completes.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from pydantic import ValidationError

from carousel_studio.config import get_settings
from carousel_studio.core.errors import ConcurrencyError, InvalidBriefError, StudioError
from carousel_studio.core.logging import bind_job_context, get_logger
from carousel_studio.schemas.document import Document
from carousel_studio.schemas.generation import (
    Brief,
    EditRecord,
    GenerateResponse,
    GenerationProgress,
    GenerationStage,
    GenerationStatus,
    utcnow,
)
from carousel_studio.schemas.planner import PlannerOutput, validate_planner_output
from carousel_studio.services.compositor import compose_document, merge_into_skeleton
from carousel_studio.services.events import NullEventPublisher, ProgressEventPublisher
from carousel_studio.services.image_fanout import DEBUG_PROMPT_LIMIT, FanoutContext, ImageFanout, truncate_text
from carousel_studio.services.image_generation import PROVIDER, ImageGenerationAdapter, resolve_image_model
from carousel_studio.services.layouts import TemplateBundle, resolve_template
from carousel_studio.services.prompts import (
    PromptPayload,
    build_aesthetic_review_prompt,
    build_planner_prompt,
    clamp_similarity,
)
from carousel_studio.services.references import ReferenceLoader, ReferenceSet
from carousel_studio.services.repository import CarouselRepository
from carousel_studio.services.style import resolve_palette
from carousel_studio.services.text_generation import TextGenerationAdapter

logger = get_logger(__name__)

MAX_AESTHETIC_PASSES = 2


def aesthetic_passes() -> int:
    return max(0, min(MAX_AESTHETIC_PASSES, get_settings().aesthetic_max_passes))


def summarize_plan(plan: PlannerOutput) -> dict[str, Any]:
    """Compact plan digest for the debug section of the progress record."""
    return {
        "templateId": plan.global_style.template_id,
        "palette": plan.global_style.palette.model_dump(),
        "slides": [
            {
                "index": slide.index,
                "title": slide.text.title,
                "images": [
                    {"slotId": req.slot_id, "purpose": req.purpose, "containsText": req.contains_text}
                    for req in slide.image_requests
                ],
            }
            for slide in plan.slides
        ],
    }


def _debug_prompt(prompt: PromptPayload) -> dict[str, str]:
    return {
        "system": truncate_text(prompt.system, DEBUG_PROMPT_LIMIT),
        "user": truncate_text(prompt.user, DEBUG_PROMPT_LIMIT),
    }


def _previous_edits(meta: Any) -> list[EditRecord]:
    """Edit history survives regenerations; anything unreadable is dropped."""
    if not isinstance(meta, dict):
        return []
    try:
        return GenerationProgress.model_validate(meta).edits
    except ValidationError:
        logger.warning("previous_progress_unreadable")
        return []


def _skeleton_slide_count(skeleton: dict[str, Any] | None) -> int:
    if not skeleton:
        return 0
    slides = skeleton.get("slides")
    return len(slides) if isinstance(slides, list) else 0


class GenerationOrchestrator:
    """Runs one generation job for a carousel, request/response, start to finish."""

    def __init__(
        self,
        repository: CarouselRepository,
        storage,
        text_adapter: TextGenerationAdapter | None = None,
        image_adapter: ImageGenerationAdapter | None = None,
        publisher: ProgressEventPublisher | None = None,
        reference_loader: ReferenceLoader | None = None,
    ) -> None:
        self.repository = repository
        self.text = text_adapter or TextGenerationAdapter()
        self.publisher = publisher or NullEventPublisher()
        self.references = reference_loader or ReferenceLoader(repository, storage)
        self.fanout = ImageFanout(repository, storage, image_adapter, self.publisher)

    async def run(self, carousel_id: UUID, user_id: UUID, *, image_model: str | None = None) -> GenerateResponse:
        bind_job_context(carousel_id)
        carousel = await self.repository.get_owned(carousel_id, user_id)

        try:
            brief = Brief.model_validate(carousel.draft or {})
        except ValidationError as e:
            raise InvalidBriefError("Stored brief is invalid.") from e
        topic_or_prompt = brief.topic_or_prompt
        if not topic_or_prompt:
            raise InvalidBriefError("No topic or prompt to generate from.")

        if carousel.generation_status == GenerationStatus.RUNNING.value:
            raise ConcurrencyError()

        job_id = str(uuid4())
        bind_job_context(carousel_id, job_id)
        run_model = resolve_image_model(image_model)
        progress = GenerationProgress.start(
            job_id=job_id,
            provider=PROVIDER,
            image_model=run_model,
            edits=_previous_edits(carousel.generation_meta),
        )
        if not await self.repository.try_start_generation(carousel_id, user_id, progress.to_json_dict()):
            raise ConcurrencyError()
        logger.info("generation_started", image_model=run_model, template_id=brief.template_id)

        try:
            title = await self._execute(carousel, brief, topic_or_prompt, progress, run_model)
        except Exception as e:
            if progress.stage != GenerationStage.FAILED_TEXT:
                progress.stage = GenerationStage.FAILED
                progress.finished_at = utcnow()
                message = e.message if isinstance(e, StudioError) else (str(e) or type(e).__name__)
                await self.repository.fail_generation(carousel_id, message, progress.to_json_dict())
            logger.error("generation_failed", error=str(e), error_type=type(e).__name__)
            await self.publisher.generation_failed(carousel_id, str(e))
            raise

        logger.info(
            "generation_succeeded",
            images_done=progress.images.done,
            images_failed=progress.images.failed,
        )
        await self.publisher.generation_complete(carousel_id, title)
        return GenerateResponse(job_id=job_id, title=title)

    async def _checkpoint(self, carousel_id: UUID, progress: GenerationProgress, *, stage_changed: bool = False) -> None:
        await self.repository.save_progress(carousel_id, progress.to_json_dict())
        if stage_changed and progress.stage is not None:
            await self.publisher.stage_changed(carousel_id, progress.stage.value)

    async def _execute(
        self,
        carousel,
        brief: Brief,
        topic_or_prompt: str,
        progress: GenerationProgress,
        run_model: str,
    ) -> str | None:
        settings = get_settings()
        bundle: TemplateBundle = await resolve_template(brief.template_id, self.repository.get_template_data)
        layout = bundle.layout
        skeleton = bundle.skeleton
        slides_count = _skeleton_slide_count(skeleton) or brief.slides_count
        similarity = clamp_similarity(
            brief.reference_similarity
            if brief.reference_similarity is not None
            else settings.default_reference_similarity
        )
        references: ReferenceSet = await self.references.load(carousel.id)

        # ── text ──
        prompt = build_planner_prompt(
            brief=brief,
            topic_or_prompt=topic_or_prompt,
            slides_count=slides_count,
            layout=layout,
            instructions=bundle.instructions,
            palette=resolve_palette(brief.palette, skeleton),
            references=references,
            similarity=similarity,
        )
        result = await self.text.generate_json(prompt, validate_planner_output, images=references.attachments)
        if not result.ok:
            progress.stage = GenerationStage.FAILED_TEXT
            progress.raw = result.raw
            progress.finished_at = utcnow()
            await self.repository.fail_generation(
                carousel.id, result.detail or "Text generation failed.", progress.to_json_dict(),
            )
            logger.warning("generation_text_failed", error_kind=result.error_kind)
            raise result.to_error()

        plan: PlannerOutput = result.data
        if settings.generation_debug:
            progress.add_debug("planner", summarize_plan(plan))
            progress.add_debug("plannerPrompt", _debug_prompt(prompt))
            progress.add_debug("references", {
                "style": len(references.style),
                "content": len(references.content),
                "similarity": similarity,
            })
            await self._checkpoint(carousel.id, progress)

        # ── aesthetic review ──
        for review_pass in range(1, aesthetic_passes() + 1):
            progress.stage = GenerationStage.AESTHETIC_REVIEW
            await self._checkpoint(carousel.id, progress, stage_changed=review_pass == 1)
            review = await self.text.generate_json(
                build_aesthetic_review_prompt(plan=plan, layout=layout, brief=brief, topic_or_prompt=topic_or_prompt),
                validate_planner_output,
            )
            if not review.ok:
                logger.warning("aesthetic_review_failed", review_pass=review_pass, error_kind=review.error_kind)
                progress.raw = review.raw
                break
            if len(review.data.slides) != len(plan.slides):
                logger.warning(
                    "aesthetic_review_rejected",
                    review_pass=review_pass,
                    slides_before=len(plan.slides),
                    slides_after=len(review.data.slides),
                )
                break
            plan = review.data
            if settings.generation_debug:
                progress.add_debug(f"review{review_pass}", summarize_plan(plan))

        # ── images ──
        title = plan.slides[0].text.title if plan.slides else None
        progress.stage = GenerationStage.IMAGES
        progress.title = title or topic_or_prompt
        progress.images.total = plan.total_image_requests
        await self._checkpoint(carousel.id, progress, stage_changed=True)

        document: Document = (
            merge_into_skeleton(plan, layout, skeleton) if skeleton else compose_document(plan, layout)
        )
        await self.fanout.run(FanoutContext(
            carousel=carousel,
            plan=plan,
            layout=layout,
            document=document,
            progress=progress,
            run_model=run_model,
            tone=brief.tone,
        ))

        # ── done ──
        progress.stage = GenerationStage.DONE
        progress.finished_at = utcnow()
        await self.repository.finish_generation(
            carousel.id,
            title=title,
            editor_state=document.to_json_dict(),
            meta=progress.to_json_dict(),
        )
        return title
