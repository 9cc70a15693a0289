"""Carousel API endpoints: generation, NL edits, progress, SSE, locks, assets."""

import asyncio
import json
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from carousel_studio.config import get_settings
from carousel_studio.core.errors import ConcurrencyError, InvalidDocumentError
from carousel_studio.deps import CurrentUserId, Editor, Orchestrator, Repository, Storage
from carousel_studio.schemas.document import Document
from carousel_studio.schemas.generation import (
    CleanupResponse,
    EditRequest,
    EditResponse,
    GenerateRequest,
    GenerateResponse,
    GenerationJobState,
    GenerationProgress,
    GenerationStatus,
    SignedUrlResponse,
)
from carousel_studio.services.compositor import hide_unfilled_slots
from carousel_studio.services.events import TERMINAL_EVENTS, events_channel

router = APIRouter()

HEARTBEAT_SECONDS = 15


# ── Helpers ──


def _ensure_found(obj, detail: str = "NOT_FOUND"):
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
    return obj


def _progress_of(meta: Any) -> GenerationProgress | None:
    if not meta:
        return None
    try:
        return GenerationProgress.model_validate(meta)
    except ValidationError:
        return None


# ══════════════════════════════════════════════
#  Generation
# ══════════════════════════════════════════════


@router.post("/{carousel_id}/generate", response_model=GenerateResponse)
async def generate_carousel(
    carousel_id: UUID,
    user_id: CurrentUserId,
    orchestrator: Orchestrator,
    data: GenerateRequest | None = None,
) -> GenerateResponse:
    """Run a full generation for the carousel's stored brief."""
    image_model = data.image_model if data else None
    return await orchestrator.run(carousel_id, user_id, image_model=image_model)


@router.get("/{carousel_id}/progress", response_model=GenerationJobState)
async def generation_progress(
    carousel_id: UUID,
    user_id: CurrentUserId,
    repository: Repository,
) -> GenerationJobState:
    """Current job state; the authoritative view for polling clients."""
    carousel = await repository.get_owned(carousel_id, user_id)
    return GenerationJobState(
        status=GenerationStatus(carousel.generation_status),
        error=carousel.generation_error,
        progress=_progress_of(carousel.generation_meta),
    )


# ══════════════════════════════════════════════
#  SSE: generation progress
# ══════════════════════════════════════════════


@router.get("/{carousel_id}/events")
async def generation_events(
    carousel_id: UUID,
    user_id: CurrentUserId,
    repository: Repository,
) -> StreamingResponse:
    """SSE stream of progress events until the run completes or fails."""
    await repository.get_owned(carousel_id, user_id)

    async def event_stream():
        import redis.asyncio as aioredis

        redis = aioredis.from_url(get_settings().redis_url, decode_responses=True)
        pubsub = redis.pubsub()
        channel = events_channel(carousel_id)
        await pubsub.subscribe(channel)

        try:
            while True:
                try:
                    msg = await asyncio.wait_for(
                        pubsub.get_message(ignore_subscribe_messages=True),
                        timeout=HEARTBEAT_SECONDS,
                    )
                except asyncio.TimeoutError:
                    msg = None

                if msg is None:
                    yield ": heartbeat\n\n"
                    continue

                if msg["type"] != "message":
                    continue

                event = json.loads(msg["data"])
                event_type = event.get("type", "update")
                payload = event.get("payload", {})
                seq = event.get("seq", "")

                yield (
                    f"id: {seq}\n"
                    f"event: {event_type}\n"
                    f"data: {json.dumps(payload)}\n\n"
                )

                if event_type in TERMINAL_EVENTS:
                    break
        finally:
            await pubsub.unsubscribe(channel)
            await redis.aclose()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


# ══════════════════════════════════════════════
#  Editing
# ══════════════════════════════════════════════


@router.post("/{carousel_id}/edit", response_model=EditResponse)
async def edit_carousel(
    carousel_id: UUID,
    data: EditRequest,
    user_id: CurrentUserId,
    editor: Editor,
) -> EditResponse:
    """Apply a natural-language edit, respecting element locks."""
    return await editor.edit(carousel_id, user_id, data)


@router.post("/{carousel_id}/cleanup-placeholders", response_model=CleanupResponse)
async def cleanup_placeholders(
    carousel_id: UUID,
    user_id: CurrentUserId,
    repository: Repository,
) -> CleanupResponse:
    """Hide image placeholders whose generation failed."""
    carousel = await repository.get_owned(carousel_id, user_id)
    if carousel.generation_status == GenerationStatus.RUNNING.value:
        raise ConcurrencyError()
    try:
        document = Document.model_validate(carousel.editor_state or {})
    except ValidationError as e:
        raise InvalidDocumentError("Stored document is invalid.") from e

    cleaned, hidden = hide_unfilled_slots(document)
    if hidden:
        await repository.save_editor_state(carousel_id, cleaned.to_json_dict())
    return CleanupResponse(hidden=hidden)


@router.put("/{carousel_id}/locks")
async def replace_locks(
    carousel_id: UUID,
    user_id: CurrentUserId,
    repository: Repository,
    locks: dict[str, Any] | list[str] = Body(...),
) -> dict[str, Any] | list[str]:
    """Replace the element lock set."""
    await repository.get_owned(carousel_id, user_id)
    await repository.save_locks(carousel_id, locks)
    return locks


# ══════════════════════════════════════════════
#  Assets
# ══════════════════════════════════════════════


@router.get("/{carousel_id}/assets/{asset_id}/url", response_model=SignedUrlResponse)
async def asset_signed_url(
    carousel_id: UUID,
    asset_id: UUID,
    user_id: CurrentUserId,
    repository: Repository,
    storage: Storage,
) -> SignedUrlResponse:
    """Short-lived signed GET URL for a private asset."""
    await repository.get_owned(carousel_id, user_id)
    asset = _ensure_found(await repository.get_asset(carousel_id, asset_id))
    ttl = get_settings().signed_url_ttl_seconds
    url = await storage.sign_url(asset.storage_bucket, asset.storage_path, ttl)
    return SignedUrlResponse(url=url, expires_in=ttl)
