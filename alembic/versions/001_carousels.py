"""Add carousel tables for AI carousel generation and editing.

Revision ID: 001
Revises:
Create Date: 2026-10-19

Tables: carousel_templates, carousels, carousel_assets
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── carousel_templates ──
    op.create_table(
        "carousel_templates",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "workspace_id",
            postgresql.UUID(as_uuid=True),
            nullable=True,
            comment="NULL = shared template",
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column(
            "template_data",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
            comment="version 1 = layout descriptor, version 2 = layout + visual skeleton + prompt",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
    )
    op.create_index("ix_carousel_templates_workspace_id", "carousel_templates", ["workspace_id"])

    # ── carousels ──
    op.create_table(
        "carousels",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("workspace_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column(
            "draft",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
            comment="Brief the carousel is generated from",
        ),
        sa.Column("editor_state", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("element_locks", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column(
            "generation_status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'idle'"),
            comment="idle|running|succeeded|failed",
        ),
        sa.Column("generation_error", sa.Text(), nullable=True),
        sa.Column("generation_meta", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.CheckConstraint(
            "generation_status IN ('idle', 'running', 'succeeded', 'failed')",
            name="ck_carousels_generation_status",
        ),
    )
    op.create_index("ix_carousels_workspace_id", "carousels", ["workspace_id"])
    op.create_index("ix_carousels_owner_id", "carousels", ["owner_id"])
    op.create_index("ix_carousels_generation_status", "carousels", ["generation_status"])

    # ── carousel_assets ──
    op.create_table(
        "carousel_assets",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "carousel_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("carousels.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("workspace_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("asset_type", sa.String(20), nullable=False, comment="reference|generated|upload"),
        sa.Column("storage_bucket", sa.String(100), nullable=False),
        sa.Column("storage_path", sa.String(1000), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'ready'")),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
    )
    op.create_index("ix_carousel_assets_carousel_id", "carousel_assets", ["carousel_id"])
    op.create_index(
        "ix_carousel_assets_carousel_type",
        "carousel_assets",
        ["carousel_id", "asset_type"],
    )


def downgrade() -> None:
    op.drop_index("ix_carousel_assets_carousel_type", table_name="carousel_assets")
    op.drop_index("ix_carousel_assets_carousel_id", table_name="carousel_assets")
    op.drop_table("carousel_assets")
    op.drop_index("ix_carousels_generation_status", table_name="carousels")
    op.drop_index("ix_carousels_owner_id", table_name="carousels")
    op.drop_index("ix_carousels_workspace_id", table_name="carousels")
    op.drop_table("carousels")
    op.drop_index("ix_carousel_templates_workspace_id", table_name="carousel_templates")
    op.drop_table("carousel_templates")
