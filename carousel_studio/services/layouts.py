"""Layout catalog and template resolution.

Built-in layouts live in an in-process catalog. Stored templates come in two
shapes: a bare layout descriptor (``version: 1``) or a visual template
(``version: 2``) bundling a layout, an authored document skeleton and free-text
authoring instructions.

Resolution never fails: an absent, unknown or malformed id degrades to the
default built-in layout and logs ``layout_fallback``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from carousel_studio.core.logging import get_logger
from carousel_studio.schemas.common import Rect01
from carousel_studio.schemas.document import Document
from carousel_studio.schemas.layout import LayoutDescriptor, VisualTemplate

logger = get_logger(__name__)

DEFAULT_LAYOUT_ID = "builtin/background-overlay"

TemplateFetcher = Callable[[str], Awaitable[dict[str, Any] | None]]


# ── Catalog ──

LAYOUT_CATALOG: dict[str, LayoutDescriptor] = {}


def _register(data: dict[str, Any]) -> LayoutDescriptor:
    layout = LayoutDescriptor.model_validate(data)
    LAYOUT_CATALOG[layout.id] = layout
    return layout


_BACKGROUND_ZONES = {
    "title": {"x": 0.08, "y": 0.2, "w": 0.84, "h": 0.22},
    "body": {"x": 0.08, "y": 0.42, "w": 0.7, "h": 0.22},
    "cta": {"x": 0.08, "y": 0.74, "w": 0.6, "h": 0.08},
    "creator": {"x": 0.06, "y": 0.88, "w": 0.6, "h": 0.1},
    "swipe": {"x": 0.82, "y": 0.88, "w": 0.12, "h": 0.08},
}

_register({
    "version": 1,
    "id": "builtin/background-overlay",
    "name": "Background image + overlay",
    "slide": {"width": 1080, "height": 1080},
    "zones": _BACKGROUND_ZONES,
    "images": [
        {
            "id": "background",
            "kind": "background",
            "bounds": {"x": 0, "y": 0, "w": 1, "h": 1},
            # Every text zone sits on top of the background image.
            "safeZones": list(_BACKGROUND_ZONES.values()),
        },
    ],
    "defaults": {
        "typography": {
            "fontFamily": "Inter",
            "titleSize": 72,
            "bodySize": 34,
            "taglineSize": 24,
            "ctaSize": 28,
            "lineHeightTight": 1.1,
            "lineHeightNormal": 1.25,
        },
        "spacing": {"padding": 80},
        "background": {
            "overlay": {"enabled": True, "opacity": 0.35, "color": "#000000", "mode": "solid", "height": 0.6},
        },
    },
})

_register({
    "version": 1,
    "id": "builtin/split-left-text-right-image",
    "name": "Split (text left, image right)",
    "slide": {"width": 1080, "height": 1080},
    "zones": {
        "title": {"x": 0.08, "y": 0.18, "w": 0.4, "h": 0.24},
        "body": {"x": 0.08, "y": 0.42, "w": 0.4, "h": 0.26},
        "cta": {"x": 0.08, "y": 0.74, "w": 0.4, "h": 0.08},
        "creator": {"x": 0.08, "y": 0.88, "w": 0.4, "h": 0.1},
        "swipe": {"x": 0.84, "y": 0.9, "w": 0.12, "h": 0.06},
    },
    "images": [
        {
            "id": "hero",
            "kind": "slot",
            "bounds": {"x": 0.52, "y": 0.1, "w": 0.4, "h": 0.8},
            "safeZones": [{"x": 0.84, "y": 0.9, "w": 0.12, "h": 0.06}],
        },
    ],
    "defaults": {
        "typography": {
            "fontFamily": "Inter",
            "titleSize": 64,
            "bodySize": 32,
            "taglineSize": 22,
            "ctaSize": 26,
            "lineHeightTight": 1.1,
            "lineHeightNormal": 1.25,
        },
        "spacing": {"padding": 80},
        "background": {},
    },
})


def default_layout() -> LayoutDescriptor:
    return LAYOUT_CATALOG[DEFAULT_LAYOUT_ID]


def builtin_layout_ids() -> list[str]:
    return list(LAYOUT_CATALOG)


# ── Geometry ──


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class PixelRect:
    x: int
    y: int
    w: int
    h: int


def rect_to_px(rect: Rect01, width: int, height: int) -> PixelRect:
    """Project a unit rectangle onto a canvas, rounding halves up."""
    return PixelRect(
        x=_round_half_up(rect.x * width),
        y=_round_half_up(rect.y * height),
        w=_round_half_up(rect.w * width),
        h=_round_half_up(rect.h * height),
    )


# ── Resolution ──


@dataclass(frozen=True)
class TemplateBundle:
    layout: LayoutDescriptor
    instructions: str | None = None
    skeleton: dict[str, Any] | None = None
    fell_back: bool = False


def _fallback(template_id: str | None, reason: str) -> TemplateBundle:
    logger.warning(
        "layout_fallback",
        requested_template_id=template_id,
        reason=reason,
        fallback_template_id=DEFAULT_LAYOUT_ID,
    )
    return TemplateBundle(layout=default_layout(), fell_back=True)


def bundle_from_record(template_id: str, data: Any) -> TemplateBundle:
    """Interpret a stored template payload. Pure; degrades instead of raising."""
    if not isinstance(data, dict):
        return _fallback(template_id, "malformed")

    version = data.get("version")
    try:
        if version == 1:
            return TemplateBundle(layout=LayoutDescriptor.model_validate(data))
        if version == 2:
            visual = VisualTemplate.model_validate(data)
            skeleton = Document.model_validate(visual.visual).to_json_dict()
            instructions = visual.prompt.strip() if visual.prompt and visual.prompt.strip() else None
            return TemplateBundle(
                layout=visual.layout,
                instructions=instructions,
                skeleton=skeleton,
            )
    except ValidationError as e:
        logger.debug("template_record_invalid", template_id=template_id, errors=e.error_count())
        return _fallback(template_id, "malformed")
    return _fallback(template_id, "unsupported_version")


async def resolve_template(template_id: str | None, fetch: TemplateFetcher) -> TemplateBundle:
    """Resolve a template id to a layout bundle.

    Built-ins are answered from the catalog; anything else is looked up via
    ``fetch`` (which returns the stored payload or ``None``).
    """
    key = template_id.strip() if isinstance(template_id, str) else ""
    if not key:
        return _fallback(template_id, "absent")

    builtin = LAYOUT_CATALOG.get(key)
    if builtin is not None:
        return TemplateBundle(layout=builtin)

    data = await fetch(key)
    if data is None:
        return _fallback(key, "unknown")
    return bundle_from_record(key, data)
