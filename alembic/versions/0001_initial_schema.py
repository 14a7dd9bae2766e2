"""Initial schema: releases, scan_profiles, scan_errors.

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # ── releases ─────────────────────────────────────────────────────────────
    op.create_table(
        "releases",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("release", sa.String(100), nullable=False),
        sa.Column("app_name", sa.String(255), nullable=False),
        sa.Column("status_id", sa.String(100), nullable=True),
        sa.Column("token_ciphertext", sa.Text(), nullable=False),
        sa.Column("payload", JSONB(), nullable=True),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_releases_release", "releases", ["release"])

    # ── scan_profiles ────────────────────────────────────────────────────────
    op.create_table(
        "scan_profiles",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("provider_token", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("endpoint", sa.String(255), nullable=False),
        sa.Column("target_app", sa.String(255), nullable=True),
        sa.Column("target_url", sa.String(500), nullable=False),
        sa.Column(
            "release_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("releases.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="profile_created"),
        sa.Column("report_key", sa.String(255), nullable=True),
        sa.Column("success_threshold", sa.Float(), nullable=True),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_scan_profiles_provider_token", "scan_profiles", ["provider_token"])
    op.create_index("ix_scan_profiles_release_id", "scan_profiles", ["release_id"])
    op.create_index("ix_scan_profiles_status", "scan_profiles", ["status"])
    op.create_index("ix_scan_profiles_deleted", "scan_profiles", ["deleted"])

    # ── scan_errors ──────────────────────────────────────────────────────────
    op.create_table(
        "scan_errors",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "release_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("releases.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "profile_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("scan_profiles.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )


def downgrade() -> None:
    op.drop_table("scan_errors")
    op.drop_table("scan_profiles")
    op.drop_table("releases")
