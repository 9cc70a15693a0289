"""Error taxonomy for the generation and edit pipeline.

Phase-level failures propagate as exceptions; item-level failures
(one image) are recorded on the progress trace and never raised past the
fan-out loop.
"""

from __future__ import annotations

from typing import Any, Literal

ContractErrorKind = Literal["non_json", "schema_mismatch"]


class StudioError(Exception):
    """Base class for every error raised by the pipeline."""

    code: str = "studio_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "kind": self.code}


class ConfigurationError(StudioError):
    """Missing or invalid model credentials. Retrying cannot help."""

    code = "configuration"


class TransportError(StudioError):
    """Network/HTTP failure while talking to an external model."""

    code = "transport"

    def __init__(self, message: str, *, status_code: int | None = None, model_not_found: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.model_not_found = model_not_found


class ContractViolation(StudioError):
    """The model replied, but not with an acceptable contract payload.

    ``kind`` separates "not JSON at all" from "JSON that failed the schema";
    ``raw`` keeps the model text for operator diagnosis.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ContractErrorKind,
        raw: str | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.raw = raw
        self.errors = errors or []

    @property
    def code(self) -> str:  # type: ignore[override]
        return self.kind

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "kind": self.kind, "raw": self.raw}


class AssetError(StudioError):
    """A single image failed to generate, validate or upload."""

    code = "asset"

    def __init__(self, message: str, *, kind: str = "failed") -> None:
        super().__init__(message)
        self.kind = kind


class ConcurrencyError(StudioError):
    """A generation is already running for this carousel."""

    code = "generation_running"

    def __init__(self, message: str = "GENERATION_RUNNING") -> None:
        super().__init__(message)


class NotFoundError(StudioError):
    code = "not_found"

    def __init__(self, message: str = "NOT_FOUND") -> None:
        super().__init__(message)


class AccessDeniedError(StudioError):
    code = "forbidden"

    def __init__(self, message: str = "FORBIDDEN") -> None:
        super().__init__(message)


class InvalidBriefError(StudioError):
    """The stored brief has nothing to generate from."""

    code = "invalid_brief"


class InvalidDocumentError(StudioError):
    """The stored document cannot be parsed, so no edit can be applied to it."""

    code = "invalid_document"
