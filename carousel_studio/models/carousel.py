"""Carousel models: the document, its generation job state, assets and templates."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carousel_studio.database import Base


# ── Enums ──


class AssetType(str, Enum):
    REFERENCE = "reference"
    GENERATED = "generated"
    UPLOAD = "upload"


class AssetStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


# ── Tables ──


class Carousel(Base):
    __tablename__ = "carousels"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4,
    )
    workspace_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), nullable=False, index=True,
    )
    owner_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), nullable=False, index=True,
    )
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    draft: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    editor_state: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    element_locks: Mapped[Any] = mapped_column(JSONB, nullable=False, default=dict)

    # Generation job state (one job per carousel)
    generation_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="idle", server_default="idle", index=True,
    )
    generation_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    generation_meta: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(),
    )

    assets: Mapped[list["CarouselAsset"]] = relationship(
        "CarouselAsset",
        back_populates="carousel",
        cascade="all, delete-orphan",
    )


class CarouselAsset(Base):
    __tablename__ = "carousel_assets"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4,
    )
    carousel_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("carousels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workspace_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    owner_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    asset_type: Mapped[str] = mapped_column(String(20), nullable=False)
    storage_bucket: Mapped[str] = mapped_column(String(100), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=AssetStatus.READY.value)
    # "metadata" is reserved on declarative classes.
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(),
    )

    carousel: Mapped["Carousel"] = relationship("Carousel", back_populates="assets")


class CarouselTemplate(Base):
    __tablename__ = "carousel_templates"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4,
    )
    workspace_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    template_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(),
    )
