"""Ordered style fallback chains.

Each resolver walks a fixed precedence list and returns the first complete
candidate:

- palette: brief draft, then visual skeleton, then none
- overlay: planner output, then layout default, then disabled
- tagline/CTA size: layout default, then derived from the body size
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from carousel_studio.schemas.common import HEX_COLOR_PATTERN, Palette
from carousel_studio.schemas.document import Overlay
from carousel_studio.schemas.layout import LayoutDescriptor
from carousel_studio.schemas.planner import PlannerOverlay

_HEX = re.compile(HEX_COLOR_PATTERN)

DEFAULT_LINE_HEIGHT_TIGHT = 1.1
DEFAULT_LINE_HEIGHT_NORMAL = 1.25
MIN_DERIVED_FONT_SIZE = 16


def _palette_from(raw: Any) -> Palette | None:
    if not isinstance(raw, dict):
        return None
    values = {key: raw.get(key) for key in ("background", "text", "accent")}
    if not all(isinstance(v, str) and _HEX.match(v.strip()) for v in values.values()):
        return None
    return Palette.model_validate(values)


def palette_from_brief(palette: Any) -> Palette | None:
    return _palette_from(palette)


def palette_from_skeleton(skeleton: Any) -> Palette | None:
    if not isinstance(skeleton, dict):
        return None
    global_block = skeleton.get("global")
    if not isinstance(global_block, dict):
        return None
    return _palette_from(global_block.get("paletteData"))


def resolve_palette(brief_palette: Any, skeleton: Any) -> Palette | None:
    """Palette to suggest to the planner: brief draft wins, then the skeleton."""
    return palette_from_brief(brief_palette) or palette_from_skeleton(skeleton)


def resolve_overlay(plan_overlay: PlannerOverlay | None, layout: LayoutDescriptor) -> Overlay:
    """Overlay to render: the plan's choice, then the layout default, then disabled."""
    if plan_overlay is not None:
        return Overlay(
            enabled=plan_overlay.enabled,
            opacity=plan_overlay.opacity,
            color=plan_overlay.color or "#000000",
            mode=plan_overlay.mode or "solid",
            height=plan_overlay.height if plan_overlay.height is not None else 0.6,
        )
    layout_overlay = layout.defaults.background.overlay
    if layout_overlay is not None:
        return Overlay(
            enabled=layout_overlay.enabled,
            opacity=layout_overlay.opacity,
            color=layout_overlay.color or "#000000",
            mode=layout_overlay.mode or "solid",
            height=layout_overlay.height if layout_overlay.height is not None else 0.6,
        )
    return Overlay(enabled=False, opacity=0.35, color="#000000", mode="solid", height=0.6)


@dataclass(frozen=True)
class DerivedSizes:
    tagline_size: int
    cta_size: int
    line_height_tight: float
    line_height_normal: float


def _derived(body_size: int, factor: float) -> int:
    return max(MIN_DERIVED_FONT_SIZE, int(body_size * factor + 0.5))


def resolve_sizes(layout: LayoutDescriptor, body_size: int) -> DerivedSizes:
    typography = layout.defaults.typography
    return DerivedSizes(
        tagline_size=typography.tagline_size or _derived(body_size, 0.6),
        cta_size=typography.cta_size or _derived(body_size, 0.8),
        line_height_tight=typography.line_height_tight or DEFAULT_LINE_HEIGHT_TIGHT,
        line_height_normal=typography.line_height_normal or DEFAULT_LINE_HEIGHT_NORMAL,
    )
