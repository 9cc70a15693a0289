"""Prompt builders for the planner, the aesthetic review pass and NL edits.

All builders are pure: same inputs, same payload. Reference images are never
inlined here; they travel as attachments next to the user payload.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any

from carousel_studio.config import get_settings
from carousel_studio.schemas.common import Palette
from carousel_studio.schemas.generation import Brief
from carousel_studio.schemas.layout import LayoutDescriptor
from carousel_studio.schemas.planner import PLANNER_CONTRACT_VERSION, PlannerOutput
from carousel_studio.services.layouts import builtin_layout_ids
from carousel_studio.services.references import ReferenceSet

DEFAULT_SIMILARITY = 70
DEFAULT_LANGUAGE = "pt-BR"
ALLOWED_FONTS = ("Inter", "Poppins", "Lora", "Merriweather", "Montserrat", "Manrope")


@dataclass(frozen=True)
class PromptPayload:
    system: str
    user: str


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2)


def clamp_similarity(value: Any) -> int:
    """Clamp the style-similarity dial to 0..100; anything non-numeric means 70."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SIMILARITY
    if not math.isfinite(number):
        return DEFAULT_SIMILARITY
    return max(0, min(100, int(math.floor(number + 0.5))))


# ── Planner ──

PLANNER_CONTRACT_GUIDE = """\
Required JSON shape (planner contract v{version}):
{{
  "version": {version},
  "globalStyle": {{
    "palette": {{"background": "#ffffff", "text": "#111111", "accent": "#ff5500"}},
    "backgroundOverlay": {{"enabled": true, "opacity": 0.35, "color": "#000000"}},
    "typography": {{
      "titleFontFamily": "Inter",
      "bodyFontFamily": "Inter",
      "titleSize": 64,
      "bodySize": 32,
      "ctaSize": 26,
      "alignment": "left"
    }},
    "spacing": {{"padding": 80}},
    "templateId": "builtin/split-left-text-right-image"
  }},
  "slides": [
    {{
      "index": 1,
      "text": {{
        "tagline": "optional string",
        "title": "required string",
        "body": "optional string",
        "cta": "optional string"
      }},
      "images": [
        {{
          "slotId": "hero",
          "purpose": "slot",
          "prompt": "description of the image",
          "containsText": false,
          "aspect": "4:5",
          "safeZones": [{{"x": 0.84, "y": 0.9, "w": 0.12, "h": 0.06}}],
          "styleHints": ["minimalist"],
          "avoid": ["text in the image"]
        }}
      ]
    }}
  ]
}}

Rules:
- Always include version={version}, globalStyle and slides.
- Slide indices start at 1 and are contiguous.
- Never use legacy keys such as "elements", "zoneId" or "content".
- Use only the keys documented above.
- Reply ONLY with valid JSON (no Markdown, no extra text).
"""

PLANNER_SYSTEM_PROMPT = """\
You are the planner of a social media carousel generator.
Reply ONLY with valid JSON following the planner contract.
Respect the template, its zones and its safe areas.
Keep the visual language consistent across slides.
Plan for legibility: avoid placing text over very dark or very detailed areas.
When the template uses a background image, prefer compositions with breathing room in the text zones.
If needed, set backgroundOverlay to improve contrast.
Never ask for boxes, blur, bands, guides or coordinates to be drawn into an image.
Never put numeric coordinates or technical labels inside an image prompt.
Reference images (if any) are attached after the text, style references first.
Follow the style references according to the requested similarity level.
Never copy literal content from the references.
"""

TEMPLATE_INSTRUCTIONS_LINE = "Follow the instructions in `templateInstructions` when filling texts and images.\n"


def build_planner_prompt(
    *,
    brief: Brief,
    topic_or_prompt: str,
    slides_count: int,
    layout: LayoutDescriptor,
    instructions: str | None,
    palette: Palette | None,
    references: ReferenceSet,
    similarity: int,
) -> PromptPayload:
    """First-draft prompt: brief, layout, style defaults, reference manifest, contract."""
    settings = get_settings()
    system = (
        PLANNER_SYSTEM_PROMPT
        + (TEMPLATE_INSTRUCTIONS_LINE if instructions else "")
        + PLANNER_CONTRACT_GUIDE.format(version=PLANNER_CONTRACT_VERSION)
    )

    typography = layout.defaults.typography
    overlay = layout.defaults.background.overlay
    order = [
        {"kind": ref.kind, "name": ref.name, "index": position}
        for position, ref in enumerate(references.attachments, start=1)
    ]
    creator = brief.creator_info.model_dump(by_alias=True, exclude_none=True) if brief.creator_info else {"enabled": True}

    payload = {
        "project": {
            "platform": brief.platform,
            "language": brief.language or DEFAULT_LANGUAGE,
            "slidesCount": slides_count,
            "inputMode": brief.mode,
            "topic": topic_or_prompt if brief.mode == "topic" else None,
            "prompt": topic_or_prompt if brief.mode == "prompt" else None,
            "tone": brief.tone,
            "audience": brief.target_audience,
            "creator": creator,
        },
        "layout": {
            "templateId": layout.id,
            "templateData": layout.model_dump(mode="json", by_alias=True),
            "spacing": {"padding": layout.defaults.spacing.padding},
        },
        "templateInstructions": instructions,
        "style": {
            "palette": palette.model_dump() if palette else None,
            "overlay": overlay.model_dump(mode="json", by_alias=True, exclude_none=True) if overlay else None,
            "typography": {
                "titleFontFamily": typography.font_family,
                "bodyFontFamily": typography.font_family,
                "titleSize": typography.title_size,
                "bodySize": typography.body_size,
                "ctaSize": typography.cta_size or 26,
            },
        },
        "references": {
            "styleSimilarity": similarity,
            "styleImages": [ref.name for ref in references.style],
            "contentImages": [ref.name for ref in references.content],
            "order": order,
        },
        "constraints": {
            "allowedFonts": list(ALLOWED_FONTS),
            "templates": list(dict.fromkeys([*builtin_layout_ids(), layout.id])),
            "imageModels": {
                "default": settings.image_model_default,
                "withText": settings.image_model_with_text,
            },
        },
    }
    return PromptPayload(system=system, user=_dumps(payload))


# ── Aesthetic review ──

REVIEW_SYSTEM_PROMPT = """\
You are an art director reviewing a carousel plan.
Goal: legibility and a modern look, without changing the main content.
Only adjust what is needed: palette, overlay, image prompts and trimming body/cta text.
Do not change titles, slide count, slide order or the template.
Avoid text over dark or very detailed areas.
When a background image is used, ask for breathing room in the text zones.
If needed, drop body/cta on some slides to improve the composition.
Never include coordinates, boxes, blur, bands, guides or labels in the images.
Never write numeric coordinates or technical labels inside image prompts.
Reply ONLY with valid JSON following the same planner contract as the input plan.
"""


def build_aesthetic_review_prompt(
    *,
    plan: PlannerOutput,
    layout: LayoutDescriptor,
    brief: Brief,
    topic_or_prompt: str,
) -> PromptPayload:
    payload = {
        "context": {
            "topicOrPrompt": topic_or_prompt,
            "tone": brief.tone,
            "audience": brief.target_audience,
            "language": brief.language or DEFAULT_LANGUAGE,
        },
        "template": layout.model_dump(mode="json", by_alias=True),
        "plan": plan.to_json_dict(),
    }
    return PromptPayload(system=REVIEW_SYSTEM_PROMPT, user=_dumps(payload))


# ── Natural-language edit ──

EDIT_SYSTEM_PROMPT = """\
You are the editing assistant of a carousel editor.
Your task is to produce a JSON PATCH that changes the document.
Do NOT include Markdown. Reply ONLY with valid JSON.
Rules:
- Use only the operations: set_text, set_style, move
- Always include slideIndex (1..N) and objectId
- set_style may not change id, type, variant, slotId, assetId or text
- NEVER modify locked elements (lockedElements).
- If the user asks to change a locked element, do NOT compensate by changing another element; skip it and explain in the summary.
- Never invent objectIds. Use only ids present in the context.
"""

EDIT_PATCH_EXAMPLE = {
    "ops": [
        {"op": "set_text", "slideIndex": 1, "objectId": "title", "text": "..."},
        {"op": "set_style", "slideIndex": 1, "objectId": "title", "style": {"fontWeight": 700}},
        {"op": "move", "slideIndex": 1, "objectId": "title", "x": 100, "y": 200},
    ],
    "summary": "...",
}


def build_edit_prompt(
    *,
    summary: list[dict[str, Any]],
    locked: list[dict[str, Any]],
    allowed_targets: list[str],
    instruction: str,
    slide_index: int | None,
) -> PromptPayload:
    """Edit prompt: a redacted document summary, the lock list and the instruction."""
    if slide_index is not None:
        scope = f"- Restrict the edit to the target slideIndex ({slide_index}).\n"
    else:
        scope = "- If the user names a target slide, edit only that slide.\n"

    parts = [
        "Context (slides and elements):",
        _dumps(summary),
        "",
        "lockedElements:",
        _dumps(locked),
        "",
        "allowedTargets (slideIndex:objectId); do NOT edit targets missing from this list:",
        _dumps(allowed_targets),
        "",
    ]
    if slide_index is not None:
        parts.append(f"Target slideIndex: {slide_index}")
    parts += [
        f"User instruction: {instruction}",
        "",
        "Expected format:",
        _dumps(EDIT_PATCH_EXAMPLE),
    ]
    return PromptPayload(system=EDIT_SYSTEM_PROMPT + scope, user="\n".join(parts))
