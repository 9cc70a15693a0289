"""Shared building blocks for the camelCase JSON documents the editor stores."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

HEX_COLOR_PATTERN = r"^#([0-9a-fA-F]{3}){1,2}$"

HexColor = Annotated[
    str,
    StringConstraints(strip_whitespace=True, to_lower=True, pattern=HEX_COLOR_PATTERN),
]

UnitFloat = Annotated[float, Field(ge=0, le=1)]


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Rect01(CamelModel):
    """Rectangle in unit coordinates (fractions of the slide size)."""

    model_config = ConfigDict(frozen=True)

    x: UnitFloat
    y: UnitFloat
    w: UnitFloat
    h: UnitFloat


class Palette(CamelModel):
    background: HexColor
    text: HexColor
    accent: HexColor
