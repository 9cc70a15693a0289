"""Canvas document: the persisted, pixel-accurate editor state.

The editor writes extra keys onto slides and objects, so every model here
keeps unknown fields. Dumps use ``exclude_unset`` so a document read from
storage is written back with the same shape it arrived in.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import ConfigDict, Discriminator, Field, Tag

from carousel_studio.schemas.common import CamelModel

Number = Union[int, float]

IMAGE_ID_PREFIX = "image_"


class _OpenCamel(CamelModel):
    model_config = ConfigDict(extra="allow")


class Overlay(_OpenCamel):
    enabled: bool = False
    opacity: float = Field(default=0.35, ge=0, le=1)
    color: str = "#000000"
    mode: Literal["solid", "bottom-gradient"] = "solid"
    height: float = Field(default=0.6, ge=0, le=1)


class Background(_OpenCamel):
    color: str | None = None
    overlay: Overlay | None = None


class TextObject(_OpenCamel):
    id: str = Field(min_length=1)
    type: Literal["text"] = "text"
    variant: str | None = None
    text: str = ""
    x: Number = 0
    y: Number = 0
    width: Number = 0
    height: Number = 0
    font_family: str | None = None
    font_size: Number | None = Field(default=None, gt=0)
    font_weight: int | str | None = None
    fill: str | None = None
    text_align: str | None = None
    font_style: str | None = None
    line_height: Number | None = None
    underline: bool | None = None
    linethrough: bool | None = None
    letter_spacing: Number | None = None
    hidden: bool = False

    @property
    def role(self) -> str:
        return self.variant or self.id


class ImageObject(_OpenCamel):
    id: str = Field(min_length=1)
    type: Literal["image"] = "image"
    slot_id: str | None = None
    x: Number = 0
    y: Number = 0
    width: Number = 0
    height: Number = 0
    asset_id: str | None = None
    hidden: bool = False

    @property
    def bound_slot(self) -> str | None:
        """Slot this object fills: explicit ``slotId`` or an ``image_<slot>`` id."""
        if self.slot_id:
            return self.slot_id
        if self.id.startswith(IMAGE_ID_PREFIX):
            return self.id[len(IMAGE_ID_PREFIX):] or None
        return None


class OtherObject(_OpenCamel):
    """Any editor object kind this pipeline does not interpret (shapes, icons...)."""

    type: str
    id: str | None = None


def _object_kind(value: Any) -> str:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return kind if kind in ("text", "image") else "other"


SlideObject = Annotated[
    Union[
        Annotated[TextObject, Tag("text")],
        Annotated[ImageObject, Tag("image")],
        Annotated[OtherObject, Tag("other")],
    ],
    Discriminator(_object_kind),
]


class Slide(_OpenCamel):
    id: str = Field(min_length=1)
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    background: Background | None = None
    objects: list[SlideObject] = Field(default_factory=list)

    def find(self, object_id: str) -> TextObject | ImageObject | OtherObject | None:
        for obj in self.objects:
            if obj.id == object_id:
                return obj
        return None

    def image_for_slot(self, slot_id: str) -> ImageObject | None:
        for obj in self.objects:
            if isinstance(obj, ImageObject) and obj.bound_slot == slot_id:
                return obj
        return None

    @property
    def text_objects(self) -> list[TextObject]:
        return [obj for obj in self.objects if isinstance(obj, TextObject)]

    @property
    def image_objects(self) -> list[ImageObject]:
        return [obj for obj in self.objects if isinstance(obj, ImageObject)]


class PaletteData(_OpenCamel):
    background: str | None = None
    text: str | None = None
    accent: str | None = None


class DocumentTypography(_OpenCamel):
    title_font_family: str | None = None
    body_font_family: str | None = None
    title_size: Number | None = None
    body_size: Number | None = None
    tagline_size: Number | None = None
    cta_size: Number | None = None


class DocumentBackground(_OpenCamel):
    overlay: Overlay | None = None


class DocumentGlobal(_OpenCamel):
    template_id: str | None = None
    template_data: dict[str, Any] | None = None
    palette_data: PaletteData | None = None
    typography: DocumentTypography | None = None
    background: DocumentBackground | None = None


class Document(_OpenCamel):
    version: int = Field(default=1, ge=1)
    global_: DocumentGlobal | None = Field(default=None, alias="global")
    slides: list[Slide] = Field(default_factory=list)

    def slide_at(self, index: int) -> Slide | None:
        """1-based positional lookup."""
        if 1 <= index <= len(self.slides):
            return self.slides[index - 1]
        return None

    def slide_by_id(self, slide_id: str) -> Slide | None:
        for slide in self.slides:
            if slide.id == slide_id:
                return slide
        return None

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


def dump_object(obj: TextObject | ImageObject | OtherObject) -> dict[str, Any]:
    return obj.model_dump(mode="json", by_alias=True, exclude_unset=True)


def parse_object(data: dict[str, Any]) -> TextObject | ImageObject | OtherObject:
    """Validate one raw object dict into its tagged variant."""
    kind = _object_kind(data)
    if kind == "text":
        return TextObject.model_validate(data)
    if kind == "image":
        return ImageObject.model_validate(data)
    return OtherObject.model_validate(data)
