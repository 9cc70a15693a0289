"""SSE event publisher for carousel generation progress."""

from __future__ import annotations

import json
from typing import Any
from uuid import UUID

from redis.exceptions import RedisError

from carousel_studio.core.logging import get_logger

logger = get_logger(__name__)

TERMINAL_EVENTS = frozenset({"generation_complete", "generation_failed"})


def events_channel(carousel_id: UUID | str) -> str:
    return f"carousel:{carousel_id}:events"


class ProgressEventPublisher:
    """Publishes ordered progress events to Redis pub/sub.

    The persisted job state stays authoritative; events are a push hint for
    live clients, so a Redis outage is logged and never fails a run.
    """

    def __init__(self, redis, *, enabled: bool = True) -> None:
        self.redis = redis
        self.enabled = enabled and redis is not None

    async def publish(
        self,
        carousel_id: UUID,
        *,
        event_type: str,
        payload: dict[str, Any] | None = None,
        slide_index: int | None = None,
    ) -> None:
        if not self.enabled:
            return
        try:
            seq = await self.redis.incr(f"carousel:{carousel_id}:seq")
            event = {
                "event_id": f"{carousel_id}:{event_type}:{seq}",
                "seq": seq,
                "type": event_type,
                "payload": {
                    **(payload or {}),
                    **({"slide_index": slide_index} if slide_index is not None else {}),
                },
            }
            await self.redis.publish(events_channel(carousel_id), json.dumps(event))
        except RedisError as e:
            logger.warning("progress_event_publish_failed", event_type=event_type, error=str(e))

    # ── Convenience methods ──

    async def stage_changed(self, carousel_id: UUID, stage: str) -> None:
        await self.publish(carousel_id, event_type="stage", payload={"stage": stage})

    async def image_finished(self, carousel_id: UUID, trace: dict[str, Any], *, done: int, failed: int, total: int) -> None:
        await self.publish(
            carousel_id,
            event_type="image",
            payload={
                "slot_id": trace.get("slotId"),
                "status": trace.get("status"),
                "done": done,
                "failed": failed,
                "total": total,
            },
            slide_index=trace.get("slideIndex"),
        )

    async def generation_complete(self, carousel_id: UUID, title: str | None) -> None:
        await self.publish(carousel_id, event_type="generation_complete", payload={"title": title})

    async def generation_failed(self, carousel_id: UUID, message: str) -> None:
        await self.publish(carousel_id, event_type="generation_failed", payload={"message": message})

    async def edit_applied(self, carousel_id: UUID, slide_index: int | None, applied: int) -> None:
        await self.publish(
            carousel_id,
            event_type="edit_applied",
            payload={"applied": applied},
            slide_index=slide_index,
        )


class NullEventPublisher(ProgressEventPublisher):
    """Publisher used when progress events are disabled."""

    def __init__(self) -> None:
        super().__init__(None, enabled=False)
