"""Carousel persistence: document, job state, lock set, assets, templates.

Every write runs in its own short transaction and commits immediately, so
progress is visible to pollers while a run is still going.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carousel_studio.core.errors import AccessDeniedError, NotFoundError
from carousel_studio.core.logging import get_logger
from carousel_studio.models.carousel import AssetStatus, AssetType, Carousel, CarouselAsset, CarouselTemplate
from carousel_studio.schemas.generation import GenerationStatus

logger = get_logger(__name__)


def _as_uuid(value: str) -> UUID | None:
    try:
        return UUID(value)
    except (TypeError, ValueError):
        return None


class CarouselRepository:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    # ── Reads ──

    async def get(self, carousel_id: UUID) -> Carousel | None:
        async with self.session_maker() as db:
            return await db.get(Carousel, carousel_id)

    async def get_owned(self, carousel_id: UUID, owner_id: UUID) -> Carousel:
        carousel = await self.get(carousel_id)
        if carousel is None:
            raise NotFoundError()
        if carousel.owner_id != owner_id:
            raise AccessDeniedError()
        return carousel

    async def list_assets(self, carousel_id: UUID, *, asset_type: str) -> list[CarouselAsset]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(CarouselAsset)
                .where(
                    CarouselAsset.carousel_id == carousel_id,
                    CarouselAsset.asset_type == asset_type,
                )
                .order_by(CarouselAsset.created_at.asc())
            )
            return list(result.scalars().all())

    async def get_asset(self, carousel_id: UUID, asset_id: UUID) -> CarouselAsset | None:
        async with self.session_maker() as db:
            result = await db.execute(
                select(CarouselAsset).where(
                    CarouselAsset.id == asset_id,
                    CarouselAsset.carousel_id == carousel_id,
                )
            )
            return result.scalar_one_or_none()

    async def get_template_data(self, template_id: str) -> dict[str, Any] | None:
        """Stored template payload, or ``None`` for unknown or non-UUID ids."""
        key = _as_uuid(template_id)
        if key is None:
            return None
        async with self.session_maker() as db:
            template = await db.get(CarouselTemplate, key)
            return template.template_data if template else None

    # ── Job state ──

    async def try_start_generation(self, carousel_id: UUID, owner_id: UUID, meta: dict[str, Any]) -> bool:
        """Atomically move the job to ``running``; ``False`` if one is already running."""
        async with self.session_maker() as db:
            result = await db.execute(
                update(Carousel)
                .where(
                    Carousel.id == carousel_id,
                    Carousel.owner_id == owner_id,
                    Carousel.generation_status != GenerationStatus.RUNNING.value,
                )
                .values(
                    generation_status=GenerationStatus.RUNNING.value,
                    generation_error=None,
                    generation_meta=meta,
                )
            )
            await db.commit()
            claimed = result.rowcount == 1
        if not claimed:
            logger.info("generation_claim_rejected", carousel_id=str(carousel_id))
        return claimed

    async def save_progress(self, carousel_id: UUID, meta: dict[str, Any]) -> None:
        await self._update(carousel_id, generation_meta=meta)

    async def fail_generation(self, carousel_id: UUID, error: str, meta: dict[str, Any]) -> None:
        await self._update(
            carousel_id,
            generation_status=GenerationStatus.FAILED.value,
            generation_error=error,
            generation_meta=meta,
        )

    async def finish_generation(
        self,
        carousel_id: UUID,
        *,
        title: str | None,
        editor_state: dict[str, Any],
        meta: dict[str, Any],
    ) -> None:
        """Write the final document, title, progress and ``succeeded`` together."""
        values: dict[str, Any] = {
            "editor_state": editor_state,
            "generation_status": GenerationStatus.SUCCEEDED.value,
            "generation_error": None,
            "generation_meta": meta,
        }
        if title:
            values["title"] = title
        await self._update(carousel_id, **values)

    # ── Document / locks ──

    async def save_editor_state(
        self,
        carousel_id: UUID,
        editor_state: dict[str, Any],
        *,
        meta: dict[str, Any] | None = None,
    ) -> None:
        values: dict[str, Any] = {"editor_state": editor_state}
        if meta is not None:
            values["generation_meta"] = meta
        await self._update(carousel_id, **values)

    async def save_locks(self, carousel_id: UUID, locks: Any) -> None:
        await self._update(carousel_id, element_locks=locks)

    # ── Assets ──

    async def insert_generated_asset(
        self,
        carousel: Carousel,
        *,
        bucket: str,
        path: str,
        mime_type: str,
        metadata: dict[str, Any],
    ) -> UUID:
        async with self.session_maker() as db:
            asset = CarouselAsset(
                carousel_id=carousel.id,
                workspace_id=carousel.workspace_id,
                owner_id=carousel.owner_id,
                asset_type=AssetType.GENERATED.value,
                storage_bucket=bucket,
                storage_path=path,
                mime_type=mime_type,
                status=AssetStatus.READY.value,
                metadata_=metadata,
            )
            db.add(asset)
            await db.flush()
            asset_id = asset.id
            await db.commit()
            return asset_id

    async def _update(self, carousel_id: UUID, **values: Any) -> None:
        async with self.session_maker() as db:
            await db.execute(update(Carousel).where(Carousel.id == carousel_id).values(**values))
            await db.commit()
