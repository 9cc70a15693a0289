"""Apply a validated edit patch to a document, enforcing the lock set.

Pure: takes a document and returns a new one, never touches storage. Locks
are enforced here regardless of what the model was told.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from carousel_studio.core.errors import ContractViolation
from carousel_studio.core.logging import get_logger
from carousel_studio.schemas.document import Document, parse_object
from carousel_studio.schemas.edit import EditOp, EditPatch, MoveOp, SetStyleOp, SetTextOp
from carousel_studio.services.locks import LockSet

logger = get_logger(__name__)


@dataclass
class PatchResult:
    document: Document
    applied: int = 0
    skipped_locked: int = 0
    skipped_missing: int = 0
    summary: str | None = None
    applied_ops: list[EditOp] = field(default_factory=list)
    skipped_locked_ops: list[EditOp] = field(default_factory=list)


def resolve_slide_position(slide_ids: list[str | None], op: EditOp) -> int | None:
    """1-based position of the op's slide, by id first, else by index.

    An op carrying both an id and an index that point at different slides
    has no target.
    """
    position: int | None = None
    if op.slide_id:
        for candidate, sid in enumerate(slide_ids, start=1):
            if sid == op.slide_id:
                position = candidate
                break
        if position is None:
            return None
        if op.slide_index is not None and op.slide_index != position:
            return None
        return position
    if op.slide_index is not None and 1 <= op.slide_index <= len(slide_ids):
        return op.slide_index
    return None


def _slide_id_of(slide: dict[str, Any]) -> str | None:
    value = slide.get("id")
    return value if isinstance(value, str) else None


def _find_slide(slides: list[dict[str, Any]], op: EditOp) -> tuple[int, dict[str, Any]] | None:
    position = resolve_slide_position([_slide_id_of(slide) for slide in slides], op)
    if position is None:
        return None
    return position, slides[position - 1]


def _find_object(slide: dict[str, Any], object_id: str) -> dict[str, Any] | None:
    objects = slide.get("objects")
    if not isinstance(objects, list):
        return None
    for obj in objects:
        if isinstance(obj, dict) and obj.get("id") == object_id:
            return obj
    return None


def _mutate(obj: dict[str, Any], op: EditOp) -> None:
    if isinstance(op, SetTextOp):
        obj["text"] = op.text
    elif isinstance(op, SetStyleOp):
        obj.update(op.style)
    elif isinstance(op, MoveOp):
        if op.x is not None:
            obj["x"] = op.x
        if op.y is not None:
            obj["y"] = op.y


def apply_edit_patch(document: Document, locks: LockSet, patch: EditPatch) -> PatchResult:
    """Apply ``patch`` op by op; every op lands in exactly one counter.

    Order of checks per op: slide exists, target not locked, object exists.
    An op that would leave its object invalid (e.g. a non-positive font
    size) aborts the whole patch with ``ContractViolation``.
    """
    state = copy.deepcopy(document.to_json_dict())
    slides = state.get("slides") or []
    result = PatchResult(document=document, summary=patch.summary)

    for op in patch.ops:
        found = _find_slide(slides, op)
        if found is None:
            result.skipped_missing += 1
            continue
        position, slide = found

        if locks.is_locked(object_id=op.object_id, slide_id=_slide_id_of(slide), slide_index=position):
            result.skipped_locked += 1
            result.skipped_locked_ops.append(op)
            continue

        obj = _find_object(slide, op.object_id)
        if obj is None:
            result.skipped_missing += 1
            continue

        _mutate(obj, op)
        try:
            parse_object(obj)
        except ValidationError as e:
            raise ContractViolation(
                f"Edit on {op.object_id} would produce an invalid object.",
                kind="schema_mismatch",
                errors=e.errors(include_url=False, include_input=False),
            ) from e
        result.applied += 1
        result.applied_ops.append(op)

    result.document = Document.model_validate(state)
    logger.debug(
        "edit_patch_applied",
        applied=result.applied,
        skipped_locked=result.skipped_locked,
        skipped_missing=result.skipped_missing,
    )
    return result
