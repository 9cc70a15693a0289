"""Project a planner output onto a layout, producing the canvas document.

Two pure entry points:

- ``compose_document`` builds a fresh document from scratch.
- ``merge_into_skeleton`` writes the plan's text into an existing (possibly
  hand-edited) document, keeping its slides, object ids and geometry.
"""

from __future__ import annotations

import copy
from typing import Any

from carousel_studio.core.logging import get_logger
from carousel_studio.schemas.document import (
    IMAGE_ID_PREFIX,
    Background,
    Document,
    DocumentBackground,
    DocumentGlobal,
    DocumentTypography,
    ImageObject,
    PaletteData,
    Slide,
    TextObject,
)
from carousel_studio.schemas.layout import TEXT_ZONE_KEYS, LayoutDescriptor
from carousel_studio.schemas.planner import PlannerOutput, SlidePlan
from carousel_studio.services.layouts import rect_to_px
from carousel_studio.services.style import DerivedSizes, resolve_overlay, resolve_sizes

logger = get_logger(__name__)


def slide_id(index: int) -> str:
    return f"slide_{index}"


def image_object_id(slot_id: str) -> str:
    return f"{IMAGE_ID_PREFIX}{slot_id}"


def _text_objects(plan: PlannerOutput, slide: SlidePlan, layout: LayoutDescriptor, sizes: DerivedSizes) -> list[TextObject]:
    palette = plan.global_style.palette
    typography = plan.global_style.typography
    width, height = layout.slide.width, layout.slide.height

    objects: list[TextObject] = []
    for key in TEXT_ZONE_KEYS:
        zone = layout.zones.text_zone(key)
        text = slide.text.get(key)
        if zone is None or text is None:
            continue
        rect = rect_to_px(zone, width, height)
        is_title = key == "title"
        if is_title:
            font_size = typography.title_size
        elif key == "cta":
            font_size = sizes.cta_size
        elif key == "tagline":
            font_size = sizes.tagline_size
        else:
            font_size = typography.body_size
        objects.append(TextObject(
            id=key,
            type="text",
            variant=key,
            text=text,
            x=rect.x,
            y=rect.y,
            width=rect.w,
            height=rect.h,
            font_family=typography.title_font_family if is_title else typography.body_font_family,
            font_size=font_size,
            font_weight=700 if is_title else 600,
            fill=palette.accent if key in ("title", "cta") else palette.text,
            text_align=typography.alignment,
            font_style="normal",
            line_height=sizes.line_height_tight if is_title else sizes.line_height_normal,
            underline=False,
            linethrough=False,
            letter_spacing=0,
        ))
    return objects


def _image_objects(layout: LayoutDescriptor) -> list[ImageObject]:
    objects = []
    for slot in layout.images:
        rect = rect_to_px(slot.bounds, layout.slide.width, layout.slide.height)
        objects.append(ImageObject(
            id=image_object_id(slot.id),
            type="image",
            slot_id=slot.id,
            x=rect.x,
            y=rect.y,
            width=rect.w,
            height=rect.h,
            asset_id=None,
        ))
    return objects


def compose_document(plan: PlannerOutput, layout: LayoutDescriptor) -> Document:
    """Build a document from scratch: one slide per slide plan.

    Absent optional text fields produce no object; every layout image slot
    gets an unfilled image object.
    """
    palette = plan.global_style.palette
    typography = plan.global_style.typography
    sizes = resolve_sizes(layout, typography.body_size)
    overlay = resolve_overlay(plan.global_style.background_overlay, layout)

    slides = []
    for slide_plan in plan.slides:
        slides.append(Slide(
            id=slide_id(slide_plan.index),
            width=layout.slide.width,
            height=layout.slide.height,
            background=Background(color=palette.background, overlay=overlay.model_copy()),
            objects=[*_text_objects(plan, slide_plan, layout, sizes), *_image_objects(layout)],
        ))

    return Document(
        version=1,
        global_=DocumentGlobal(
            template_id=layout.id,
            template_data=layout.model_dump(mode="json", by_alias=True),
            palette_data=PaletteData(
                background=palette.background,
                text=palette.text,
                accent=palette.accent,
            ),
            typography=DocumentTypography(
                title_font_family=typography.title_font_family,
                body_font_family=typography.body_font_family,
                title_size=typography.title_size,
                body_size=typography.body_size,
                tagline_size=sizes.tagline_size,
                cta_size=sizes.cta_size,
            ),
            background=DocumentBackground(overlay=overlay.model_copy()),
        ),
        slides=slides,
    )


# ── Merge ──


def _object_slot(obj: dict[str, Any]) -> str | None:
    slot = obj.get("slotId")
    if isinstance(slot, str) and slot:
        return slot
    raw_id = obj.get("id")
    if isinstance(raw_id, str) and raw_id.startswith(IMAGE_ID_PREFIX):
        return raw_id[len(IMAGE_ID_PREFIX):] or None
    return None


def _merge_text(obj: dict[str, Any], slide_plan: SlidePlan) -> dict[str, Any]:
    variant = obj.get("variant") if isinstance(obj.get("variant"), str) else obj.get("id")
    if variant not in TEXT_ZONE_KEYS:
        return obj
    text = slide_plan.text.get(variant)
    if text is not None:
        return {**obj, "text": text, "hidden": False}
    # Keep the object (and its geometry) so it can be reinstated later.
    return {**obj, "text": "", "hidden": True}


def _merge_slide(
    base: dict[str, Any],
    fresh: dict[str, Any] | None,
    slide_plan: SlidePlan | None,
    slot_ids: set[str],
) -> dict[str, Any]:
    slide = {**fresh, **base} if fresh is not None else dict(base)
    objects = [obj for obj in slide.get("objects") or [] if isinstance(obj, dict)]
    if not objects and fresh is not None:
        objects = copy.deepcopy(fresh.get("objects") or [])

    merged: list[dict[str, Any]] = []
    for obj in objects:
        kind = obj.get("type")
        if kind == "text" and slide_plan is not None:
            merged.append(_merge_text(obj, slide_plan))
        elif kind == "image":
            slot = _object_slot(obj)
            if slot is not None and slot in slot_ids:
                # Regeneration asks for fresh imagery for every declared slot.
                merged.append({**obj, "slotId": slot, "assetId": None})
            else:
                merged.append(obj)
        else:
            merged.append(obj)

    if fresh is not None and slot_ids:
        present = {obj.get("slotId") for obj in merged if obj.get("type") == "image"}
        for fresh_obj in fresh.get("objects") or []:
            slot = fresh_obj.get("slotId")
            if fresh_obj.get("type") != "image" or slot not in slot_ids or slot in present:
                continue
            merged.append({**fresh_obj, "assetId": None})
            present.add(slot)

    slide["objects"] = merged
    return slide


def merge_into_skeleton(plan: PlannerOutput, layout: LayoutDescriptor, skeleton: dict[str, Any]) -> Document:
    """Write a plan into an existing document.

    The skeleton's slide count, object ids and object geometry are kept.
    Text objects whose field is now absent become hidden and empty. Image
    objects bound to a slot the layout still declares lose their asset.
    Layout slots missing from a skeleton slide are added unfilled.
    """
    fresh = compose_document(plan, layout).to_json_dict()
    base = copy.deepcopy(skeleton)
    base_slides = [s for s in base.get("slides") or [] if isinstance(s, dict)]
    fresh_slides = fresh["slides"]
    slot_ids = layout.slot_ids

    if not base_slides:
        merged_slides = fresh_slides
    else:
        if len(base_slides) != len(plan.slides):
            logger.warning(
                "skeleton_slide_count_mismatch",
                skeleton_slides=len(base_slides),
                plan_slides=len(plan.slides),
            )
        merged_slides = []
        for position, base_slide in enumerate(base_slides):
            slide_plan = plan.slide(position + 1)
            fresh_slide = fresh_slides[position] if position < len(fresh_slides) else None
            merged_slides.append(_merge_slide(base_slide, fresh_slide, slide_plan, slot_ids))

    base_global = base.get("global") if isinstance(base.get("global"), dict) else {}
    merged = {
        **base,
        "version": base.get("version") or 1,
        "global": {
            **base_global,
            "templateId": layout.id,
            "templateData": fresh["global"]["templateData"],
        },
        "slides": merged_slides,
    }
    return Document.model_validate(merged)


def hide_unfilled_slots(document: Document) -> tuple[Document, int]:
    """Hide image objects that never received an asset.

    The follow-up to a partially successful run: placeholders for failed
    images are hidden rather than deleted so they can be refilled.
    """
    data = document.to_json_dict()
    hidden = 0
    for slide in data.get("slides", []):
        for obj in slide.get("objects", []):
            if obj.get("type") == "image" and not obj.get("assetId") and not obj.get("hidden"):
                obj["hidden"] = True
                hidden += 1
    return Document.model_validate(data), hidden
