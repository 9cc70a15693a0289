"""Edit patch contract: typed operations derived from a natural-language instruction."""

from __future__ import annotations

import math
from typing import Annotated, Any, Literal, Union

from pydantic import ConfigDict, Field, ValidationError, field_validator

from carousel_studio.core.errors import ContractViolation
from carousel_studio.schemas.common import CamelModel

MAX_EDIT_SLIDE_INDEX = 20
MAX_OPS = 50

# Keys that identify or bind an object; a style delta may never rewrite them.
STRUCTURAL_KEYS = frozenset({"id", "type", "variant", "slotId", "assetId", "text"})

FiniteFloat = Annotated[float, Field(allow_inf_nan=False)]


def _has_non_finite(value: Any) -> bool:
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, dict):
        return any(_has_non_finite(item) for item in value.values())
    if isinstance(value, list):
        return any(_has_non_finite(item) for item in value)
    return False


class _Op(CamelModel):
    model_config = ConfigDict(extra="forbid")

    slide_id: str | None = Field(default=None, min_length=1)
    slide_index: int | None = Field(default=None, ge=1, le=MAX_EDIT_SLIDE_INDEX)
    object_id: str = Field(min_length=1)

    @property
    def target_key(self) -> str:
        return f"{self.slide_index}:{self.object_id}"


class SetTextOp(_Op):
    op: Literal["set_text"]
    text: str = Field(min_length=1, max_length=1500)


class SetStyleOp(_Op):
    op: Literal["set_style"]
    style: dict[str, Any]

    @field_validator("style")
    @classmethod
    def _valid_style_delta(cls, value: dict[str, Any]) -> dict[str, Any]:
        blocked = sorted(STRUCTURAL_KEYS.intersection(value))
        if blocked:
            raise ValueError(f"style may not change {', '.join(blocked)}")
        if _has_non_finite(value):
            raise ValueError("style values must be finite numbers")
        return value


class MoveOp(_Op):
    op: Literal["move"]
    x: int | FiniteFloat | None = None
    y: int | FiniteFloat | None = None


EditOp = Annotated[Union[SetTextOp, SetStyleOp, MoveOp], Field(discriminator="op")]


class EditPatch(CamelModel):
    model_config = ConfigDict(extra="forbid")

    ops: list[EditOp] = Field(min_length=1, max_length=MAX_OPS)
    summary: str | None = Field(default=None, max_length=300)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def validate_edit_patch(data: Any, *, raw: str | None = None) -> EditPatch:
    try:
        return EditPatch.model_validate(data)
    except ValidationError as e:
        raise ContractViolation(
            "Edit patch does not match the expected contract.",
            kind="schema_mismatch",
            raw=raw,
            errors=e.errors(include_url=False, include_input=False),
        ) from e
