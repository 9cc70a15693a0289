"""Planner contract: the closed, versioned JSON shape the text model must return."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import ConfigDict, Field, StringConstraints, ValidationError, model_validator

from carousel_studio.core.errors import ContractViolation
from carousel_studio.schemas.common import CamelModel, HexColor, Palette, Rect01, UnitFloat

PLANNER_CONTRACT_VERSION = 1

MAX_SLIDES = 20
MAX_IMAGES_PER_SLIDE = 6


def _text(min_length: int, max_length: int) -> Any:
    return Annotated[
        str,
        StringConstraints(strip_whitespace=True, min_length=min_length, max_length=max_length),
    ]


FontFamily = _text(1, 80)
ShortText = _text(0, 140)
TitleText = _text(1, 140)
BodyText = _text(0, 800)
ImagePrompt = _text(1, 1600)
SlotId = _text(1, 80)
Aspect = _text(1, 32)
StyleHint = _text(1, 80)
AvoidItem = _text(1, 120)
Note = _text(1, 200)
TemplateId = _text(1, 200)


class _Closed(CamelModel):
    model_config = ConfigDict(extra="forbid")


class PlannerOverlay(_Closed):
    enabled: bool
    opacity: float = Field(ge=0, le=0.95)
    color: HexColor | None = None
    mode: Literal["solid", "bottom-gradient"] | None = None
    height: UnitFloat | None = None


class PlannerTypography(_Closed):
    title_font_family: FontFamily
    body_font_family: FontFamily
    title_size: int = Field(ge=8, le=200)
    body_size: int = Field(ge=8, le=200)
    cta_size: int = Field(ge=8, le=200)
    alignment: Literal["left", "center", "right"] = "left"


class PlannerSpacing(_Closed):
    padding: int = Field(ge=0, le=240)


class PlannerPalette(Palette):
    model_config = ConfigDict(extra="forbid")


class SafeZone(Rect01):
    model_config = ConfigDict(extra="forbid")


class GlobalStyle(_Closed):
    palette: PlannerPalette
    background_overlay: PlannerOverlay | None = None
    typography: PlannerTypography
    spacing: PlannerSpacing
    template_id: TemplateId


class ImageRequest(_Closed):
    slot_id: SlotId | None = None
    purpose: Literal["background", "slot"]
    prompt: ImagePrompt
    contains_text: bool = False
    aspect: Aspect | None = None
    safe_zones: list[SafeZone] | None = Field(default=None, max_length=6)
    style_hints: list[StyleHint] | None = Field(default=None, max_length=12)
    avoid: list[AvoidItem] | None = Field(default=None, max_length=12)

    @model_validator(mode="after")
    def _slot_requires_id(self) -> ImageRequest:
        if self.purpose == "slot" and not self.slot_id:
            raise ValueError("slotId is required when purpose=slot")
        return self


class SlideText(_Closed):
    tagline: ShortText | None = None
    title: TitleText
    body: BodyText | None = None
    cta: ShortText | None = None

    def get(self, key: str) -> str | None:
        """Return the field if it carries non-blank text."""
        value = getattr(self, key, None)
        if isinstance(value, str) and value.strip():
            return value
        return None


class SlidePlan(_Closed):
    index: int = Field(ge=1)
    text: SlideText
    images: list[ImageRequest] | None = Field(default=None, max_length=MAX_IMAGES_PER_SLIDE)

    @property
    def image_requests(self) -> list[ImageRequest]:
        return self.images or []


class PlannerOutput(_Closed):
    version: Literal[1]
    global_style: GlobalStyle
    slides: list[SlidePlan] = Field(min_length=1, max_length=MAX_SLIDES)
    notes: list[Note] | None = Field(default=None, max_length=8)

    @model_validator(mode="after")
    def _contiguous_indices(self) -> PlannerOutput:
        indices = [slide.index for slide in self.slides]
        if sorted(indices) != list(range(1, len(indices) + 1)):
            raise ValueError("slide indices must be unique and contiguous starting at 1")
        return self

    def slide(self, index: int) -> SlidePlan | None:
        for plan in self.slides:
            if plan.index == index:
                return plan
        return None

    @property
    def total_image_requests(self) -> int:
        return sum(len(slide.image_requests) for slide in self.slides)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def validate_planner_output(data: Any, *, raw: str | None = None) -> PlannerOutput:
    """Validate a decoded candidate against the planner contract.

    Raises ``ContractViolation(kind="schema_mismatch")`` carrying the pydantic
    error list and the raw model text on rejection.
    """
    try:
        return PlannerOutput.model_validate(data)
    except ValidationError as e:
        raise ContractViolation(
            "Planner output does not match the expected contract.",
            kind="schema_mismatch",
            raw=raw,
            errors=e.errors(include_url=False, include_input=False),
        ) from e
