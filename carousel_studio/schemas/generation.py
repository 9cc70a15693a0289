"""Generation job state, the stored brief, and request/response schemas."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import ConfigDict, Field

from carousel_studio.schemas.common import CamelModel

EDIT_HISTORY_LIMIT = 20


class GenerationStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class GenerationStage(str, Enum):
    TEXT = "text"
    AESTHETIC_REVIEW = "aesthetic_review"
    IMAGES = "images"
    DONE = "done"
    FAILED_TEXT = "failed_text"
    FAILED = "failed"


ImageTraceStatus = Literal["ready", "failed", "failed_validation", "failed_upload", "failed_db"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Progress record ──


class ImageTrace(CamelModel):
    slide_index: int
    slot_id: str | None = None
    status: ImageTraceStatus
    path: str | None = None
    error: str | None = None
    prompt: str | None = None


class ImageProgress(CamelModel):
    model: str
    total: int = 0
    done: int = 0
    failed: int = 0
    by_slide: list[ImageTrace] = Field(default_factory=list)

    def record(self, trace: ImageTrace) -> None:
        if trace.status == "ready":
            self.done += 1
        else:
            self.failed += 1
        self.by_slide.append(trace)


class EditRecord(CamelModel):
    at: datetime = Field(default_factory=utcnow)
    instruction: str
    slide_index: int | None = None
    patch: dict[str, Any] | None = None
    applied: int = 0
    skipped_locked: int = 0
    skipped_missing: int = 0
    skipped_policy: int = 0
    model: str | None = None


class GenerationProgress(CamelModel):
    """Append-only progress record threaded through every phase of a run."""

    model_config = ConfigDict(extra="allow")

    job_id: str | None = None
    stage: GenerationStage | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    provider: str | None = None
    title: str | None = None
    raw: str | None = None
    images: ImageProgress | None = None
    debug: dict[str, Any] | None = None
    edits: list[EditRecord] = Field(default_factory=list)

    @classmethod
    def start(
        cls,
        *,
        job_id: str,
        provider: str,
        image_model: str,
        edits: list[EditRecord] | None = None,
    ) -> GenerationProgress:
        return cls(
            job_id=job_id,
            stage=GenerationStage.TEXT,
            started_at=utcnow(),
            provider=provider,
            images=ImageProgress(model=image_model),
            edits=list(edits or []),
        )

    def add_edit(self, record: EditRecord) -> None:
        self.edits = [record, *self.edits][:EDIT_HISTORY_LIMIT]

    def add_debug(self, key: str, value: Any) -> None:
        self.debug = {**(self.debug or {}), key: value}

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GenerationJobState(CamelModel):
    status: GenerationStatus = GenerationStatus.IDLE
    error: str | None = None
    progress: GenerationProgress | None = None


# ── Stored brief ──


class CreatorInfo(CamelModel):
    model_config = ConfigDict(extra="allow")

    enabled: bool = True
    name: str | None = None
    handle: str | None = None
    role: str | None = None


class Brief(CamelModel):
    """The draft a carousel was created from. Read leniently: the form evolves."""

    model_config = ConfigDict(extra="allow")

    input_mode: Literal["topic", "prompt"] | None = None
    topic: str | None = None
    prompt: str | None = None
    slides_count: int = Field(default=5, ge=1, le=20)
    platform: str = "instagram"
    tone: str | None = None
    target_audience: str | None = None
    language: str | None = None
    template_id: str | None = None
    creator_info: CreatorInfo | None = None
    palette: dict[str, Any] | None = None
    reference_similarity: float | None = None

    @property
    def mode(self) -> Literal["topic", "prompt"]:
        if self.input_mode:
            return self.input_mode
        return "prompt" if self.prompt else "topic"

    @property
    def topic_or_prompt(self) -> str | None:
        primary = self.prompt if self.mode == "prompt" else self.topic
        for candidate in (primary, self.prompt, self.topic):
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
        return None


# ── API I/O ──


class GenerateRequest(CamelModel):
    image_model: str | None = None


class GenerateResponse(CamelModel):
    ok: bool = True
    job_id: str
    title: str | None = None


class EditRequest(CamelModel):
    instruction: str = Field(min_length=2, max_length=2000)
    slide_index: int | None = Field(default=None, ge=1, le=20)


class EditResponse(CamelModel):
    applied: int
    skipped_locked: int
    skipped_missing: int
    skipped_policy: int = 0
    blocked_by_lock: int = 0
    summary: str


class CleanupResponse(CamelModel):
    hidden: int


class SignedUrlResponse(CamelModel):
    url: str
    expires_in: int
