"""Layout descriptors: where text zones and image slots sit on a slide."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import ConfigDict, Field

from carousel_studio.schemas.common import CamelModel, Rect01, UnitFloat

TextZoneKey = Literal["tagline", "title", "body", "cta"]
TEXT_ZONE_KEYS: tuple[TextZoneKey, ...] = ("tagline", "title", "body", "cta")


class _FrozenCamel(CamelModel):
    model_config = ConfigDict(frozen=True)


class SlideSize(_FrozenCamel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)


class LayoutZones(_FrozenCamel):
    title: Rect01
    tagline: Rect01 | None = None
    body: Rect01 | None = None
    cta: Rect01 | None = None
    creator: Rect01 | None = None
    swipe: Rect01 | None = None

    def text_zone(self, key: str) -> Rect01 | None:
        if key not in TEXT_ZONE_KEYS:
            return None
        return getattr(self, key)


class ImageSlot(_FrozenCamel):
    id: str = Field(min_length=1)
    kind: Literal["background", "slot"]
    bounds: Rect01
    safe_zones: tuple[Rect01, ...] = ()


class TypographyDefaults(_FrozenCamel):
    font_family: str
    title_size: int
    body_size: int
    tagline_size: int | None = None
    cta_size: int | None = None
    line_height_tight: float | None = None
    line_height_normal: float | None = None


class SpacingDefaults(_FrozenCamel):
    padding: int = 80


class OverlayDefaults(_FrozenCamel):
    enabled: bool
    opacity: UnitFloat
    color: str | None = None
    mode: Literal["solid", "bottom-gradient"] | None = None
    height: UnitFloat | None = None


class BackgroundDefaults(_FrozenCamel):
    overlay: OverlayDefaults | None = None


class LayoutDefaults(_FrozenCamel):
    typography: TypographyDefaults
    spacing: SpacingDefaults = Field(default_factory=SpacingDefaults)
    background: BackgroundDefaults = Field(default_factory=BackgroundDefaults)


class LayoutDescriptor(_FrozenCamel):
    """A resolved layout. Immutable for the duration of a generation run."""

    version: Literal[1] = 1
    id: str = Field(min_length=1)
    name: str
    slide: SlideSize
    zones: LayoutZones
    images: tuple[ImageSlot, ...] = ()
    defaults: LayoutDefaults

    def slot(self, slot_id: str | None) -> ImageSlot | None:
        if not slot_id:
            return None
        for slot in self.images:
            if slot.id == slot_id:
                return slot
        return None

    @property
    def slot_ids(self) -> set[str]:
        return {slot.id for slot in self.images}


class VisualTemplate(CamelModel):
    """Stored template bundling a layout, an authored skeleton and instructions."""

    version: Literal[2] = 2
    id: str = Field(min_length=1)
    name: str
    layout: LayoutDescriptor
    visual: dict[str, Any]
    prompt: str | None = None
