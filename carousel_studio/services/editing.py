"""Natural-language edits: instruction in, lock-respecting patch applied and persisted."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Literal
from uuid import UUID

from pydantic import ValidationError

from carousel_studio.core.errors import ConcurrencyError, InvalidDocumentError
from carousel_studio.core.logging import bind_job_context, get_logger
from carousel_studio.schemas.document import Document, ImageObject, TextObject
from carousel_studio.schemas.edit import EditOp, validate_edit_patch
from carousel_studio.schemas.generation import (
    EditRecord,
    EditRequest,
    EditResponse,
    GenerationProgress,
    GenerationStatus,
)
from carousel_studio.services.edit_patch import PatchResult, apply_edit_patch, resolve_slide_position
from carousel_studio.services.events import NullEventPublisher, ProgressEventPublisher
from carousel_studio.services.locks import LockSet
from carousel_studio.services.prompts import build_edit_prompt
from carousel_studio.services.repository import CarouselRepository
from carousel_studio.services.text_generation import TextGenerationAdapter

logger = get_logger(__name__)

Role = Literal["title", "body", "tagline", "cta", "image", "text"]

SUMMARY_TEXT_LIMIT = 200
LOCKED_ONLY_SUMMARY = "Nothing was applied because the requested elements are locked."

# English and Portuguese keywords, matched against the lower-cased instruction.
_ALL_RE = re.compile(
    r"\b(tudo|todos|todas|everything|all)\b"
    r"|carrossel\s+(inteiro|completo)"
    r"|(mude|troque|refa[cç]a|reescreva)\s+tudo"
    r"|whole\s+carousel"
)
_IMAGE_RE = re.compile(r"\b(imagem|imagens|foto|fotos|image|images|photo|photos|background|fundo)\b")
_TITLE_RE = re.compile(r"\b(t[ií]tulo|title|heading)\b")
_BODY_RE = re.compile(r"\b(corpo|body|descri[cç][aã]o|par[aá]grafo|paragraph)\b|texto\s+do\s+corpo")
_CTA_RE = re.compile(r"\b(cta|call to action|chamada)\b")
_TAGLINE_RE = re.compile(r"\b(tagline|subt[ií]tulo|subtitle)\b")
_TEXT_RE = re.compile(r"\b(texto|text|copy)\b")


@dataclass
class RequestedRoles:
    wants_all: bool = False
    roles: set[Role] = field(default_factory=set)


def infer_requested_roles(instruction: str) -> RequestedRoles:
    raw = instruction.lower()
    requested = RequestedRoles(wants_all=bool(_ALL_RE.search(raw)))
    wants_image = bool(_IMAGE_RE.search(raw))
    for role, pattern in (("title", _TITLE_RE), ("body", _BODY_RE), ("cta", _CTA_RE), ("tagline", _TAGLINE_RE)):
        if pattern.search(raw):
            requested.roles.add(role)
    if wants_image:
        requested.roles.add("image")
    elif _TEXT_RE.search(raw):
        requested.roles.add("text")
    return requested


def infer_object_role(obj: Any) -> Role | None:
    """Role of an editor object; ``None`` for kinds edits never target."""
    if isinstance(obj, ImageObject):
        return "image"
    if not isinstance(obj, TextObject):
        return None
    key = obj.role.lower()
    if "tagline" in key or "subtitulo" in key or "subtitle" in key:
        return "tagline"
    if "title" in key or "titulo" in key:
        return "title"
    if "body" in key or "corpo" in key or "desc" in key:
        return "body"
    if "cta" in key:
        return "cta"
    return "text"


def editable_summary(document: Document) -> list[dict[str, Any]]:
    """Redacted view for the model: ids, kinds, short text and geometry only."""
    summary = []
    for index, slide in enumerate(document.slides, start=1):
        objects = []
        for obj in slide.objects:
            if obj.id is None:
                continue
            text = getattr(obj, "text", None)
            objects.append({
                "id": obj.id,
                "type": obj.type,
                "text": text[:SUMMARY_TEXT_LIMIT] if isinstance(text, str) else None,
                "x": getattr(obj, "x", None),
                "y": getattr(obj, "y", None),
                "width": getattr(obj, "width", None),
                "height": getattr(obj, "height", None),
                "slotId": getattr(obj, "slot_id", None),
                "assetId": getattr(obj, "asset_id", None),
            })
        summary.append({"slideIndex": index, "slideId": slide.id, "objects": objects})
    return summary


def allowed_target_keys(document: Document, requested: RequestedRoles, slide_index: int | None) -> list[str]:
    """``"<slideIndex>:<objectId>"`` keys the instruction may touch, in document order."""
    wants_text = "text" in requested.roles
    allowed: list[str] = []
    for index, slide in enumerate(document.slides, start=1):
        if slide_index is not None and index != slide_index:
            continue
        for obj in slide.objects:
            role = infer_object_role(obj)
            if role is None or not obj.id:
                continue
            if (
                requested.wants_all
                or not requested.roles
                or role in requested.roles
                or (wants_text and role != "image")
            ):
                allowed.append(f"{index}:{obj.id}")
    return allowed


def _split_key(key: str) -> tuple[int, str]:
    index, _, object_id = key.partition(":")
    return int(index), object_id


def _slide_id(document: Document, index: int) -> str | None:
    slide = document.slide_at(index)
    return slide.id if slide else None


def _is_key_locked(document: Document, locks: LockSet, key: str) -> bool:
    index, object_id = _split_key(key)
    return locks.is_locked(object_id=object_id, slide_id=_slide_id(document, index), slide_index=index)


def _op_slide_index(document: Document, op: EditOp) -> int | None:
    return resolve_slide_position([slide.id for slide in document.slides], op)


def _targets_existing_object(document: Document, op: EditOp) -> bool:
    index = _op_slide_index(document, op)
    slide = document.slide_at(index) if index is not None else None
    return slide is not None and slide.find(op.object_id) is not None


def _progress_with_edit(meta: Any, record: EditRecord) -> dict[str, Any]:
    """Stored progress with ``record`` prepended to its edit history.

    An unreadable record keeps its other keys; only its history restarts.
    """
    if not isinstance(meta, dict):
        meta = {}
    try:
        progress = GenerationProgress.model_validate(meta)
    except ValidationError:
        logger.warning("progress_unreadable")
        return {**meta, "edits": [record.model_dump(mode="json", by_alias=True)]}
    progress.add_edit(record)
    return progress.to_json_dict()


def _compose_summary(result: PatchResult, blocked: int, skipped_policy: int) -> str:
    parts: list[str] = []
    if result.summary:
        parts.append(result.summary)
    else:
        kinds = {op.op for op in result.applied_ops}
        if kinds & {"set_text", "set_style"}:
            parts.append("Updated text/style")
        if "move" in kinds:
            parts.append("Moved elements")
        if not parts:
            parts.append("No changes applied")
    if blocked:
        parts.append(f"Locks respected: {blocked}")
    if skipped_policy:
        parts.append(f"Ignored by policy: {skipped_policy}")
    return " · ".join(parts)


class EditingService:
    """Turns an instruction into an edit patch and applies it under the lock set."""

    def __init__(
        self,
        repository: CarouselRepository,
        text_adapter: TextGenerationAdapter | None = None,
        publisher: ProgressEventPublisher | None = None,
    ) -> None:
        self.repository = repository
        self.text = text_adapter or TextGenerationAdapter()
        self.publisher = publisher or NullEventPublisher()

    async def edit(self, carousel_id: UUID, user_id: UUID, request: EditRequest) -> EditResponse:
        bind_job_context(carousel_id)
        carousel = await self.repository.get_owned(carousel_id, user_id)
        if carousel.generation_status == GenerationStatus.RUNNING.value:
            raise ConcurrencyError()

        try:
            document = Document.model_validate(carousel.editor_state or {})
        except ValidationError as e:
            raise InvalidDocumentError("Stored document is invalid; edit not applied.") from e

        instruction = request.instruction.strip()
        slide_index = request.slide_index
        locks = LockSet(carousel.element_locks)
        requested = infer_requested_roles(instruction)
        allowed = allowed_target_keys(document, requested, slide_index)

        blocked = self._locked_only_request(document, locks, requested, allowed, slide_index)
        if blocked:
            logger.info("edit_blocked_by_lock", slide_index=slide_index, blocked=blocked)
            return EditResponse(
                applied=0,
                skipped_locked=0,
                skipped_missing=0,
                skipped_policy=0,
                blocked_by_lock=blocked,
                summary=LOCKED_ONLY_SUMMARY,
            )

        prompt = build_edit_prompt(
            summary=editable_summary(document),
            locked=[
                {"slideIndex": index, "objectId": object_id}
                for index, object_id in map(_split_key, locks.locked_keys())
            ],
            allowed_targets=allowed,
            instruction=instruction,
            slide_index=slide_index,
        )
        result = await self.text.generate_json(prompt, validate_edit_patch)
        if not result.ok:
            logger.warning("edit_patch_rejected", error_kind=result.error_kind, detail=result.detail)
            raise result.to_error()
        patch = result.data

        kept: list[EditOp] = []
        skipped_policy = 0
        allowed_set = set(allowed)
        for op in patch.ops:
            if not _targets_existing_object(document, op):
                # counted as missing by the applier
                kept.append(op)
                continue
            op_index = _op_slide_index(document, op)
            if slide_index is not None and op_index != slide_index:
                skipped_policy += 1
                continue
            if allowed_set and f"{op_index}:{op.object_id}" not in allowed_set:
                skipped_policy += 1
                continue
            kept.append(op)

        applied = apply_edit_patch(document, locks, patch.model_copy(update={"ops": kept}))

        blocked_targets = {
            f"{_op_slide_index(document, op)}:{op.object_id}" for op in applied.skipped_locked_ops
        }
        blocked_targets.update(key for key in allowed if _is_key_locked(document, locks, key))

        record = EditRecord(
            instruction=instruction,
            slide_index=slide_index,
            patch=patch.to_json_dict(),
            applied=applied.applied,
            skipped_locked=applied.skipped_locked,
            skipped_missing=applied.skipped_missing,
            skipped_policy=skipped_policy,
            model=result.model,
        )
        await self.repository.save_editor_state(
            carousel_id,
            applied.document.to_json_dict(),
            meta=_progress_with_edit(carousel.generation_meta, record),
        )
        await self.publisher.edit_applied(carousel_id, slide_index, applied.applied)

        logger.info(
            "edit_applied",
            applied=applied.applied,
            skipped_locked=applied.skipped_locked,
            skipped_missing=applied.skipped_missing,
            skipped_policy=skipped_policy,
        )
        return EditResponse(
            applied=applied.applied,
            skipped_locked=applied.skipped_locked,
            skipped_missing=applied.skipped_missing,
            skipped_policy=skipped_policy,
            blocked_by_lock=len(blocked_targets),
            summary=_compose_summary(applied, len(blocked_targets), skipped_policy),
        )

    @staticmethod
    def _locked_only_request(
        document: Document,
        locks: LockSet,
        requested: RequestedRoles,
        allowed: list[str],
        slide_index: int | None,
    ) -> int:
        """Count of locked targets when every target the user named is locked, else 0.

        Only applies to a specific-element request on a chosen slide; then
        the model is not called at all.
        """
        if requested.wants_all or not requested.roles or not allowed or slide_index is None:
            return 0
        on_slide = [key for key in allowed if key.startswith(f"{slide_index}:")]
        locked = [key for key in on_slide if _is_key_locked(document, locks, key)]
        if locked and len(locked) == len(on_slide):
            return len(locked)
        return 0
