"""create background_checks

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ACTIVE = sa.text("status IN ('pending', 'in_progress', 'requires_review')")


def upgrade() -> None:
    op.create_table(
        "background_checks",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("volunteer_id", sa.Uuid(), nullable=False),
        sa.Column("provider", sa.String(100), nullable=False),
        sa.Column("check_type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("external_id", sa.String(100), nullable=True),
        sa.Column("candidate_url", sa.Text(), nullable=True),
        sa.Column("is_simulated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cost", sa.Numeric(8, 2), nullable=True),
        sa.Column("results", postgresql.JSONB(), nullable=True),
        sa.Column("renewal_reminder", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("events", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("provider", "external_id", name="uq_background_checks_provider_external_id"),
    )
    op.create_index("ix_background_checks_volunteer_id", "background_checks", ["volunteer_id"])
    op.create_index(
        "ix_background_checks_status_expires_at",
        "background_checks",
        ["status", "expires_at"],
    )
    op.create_index(
        "uq_background_checks_active_per_type",
        "background_checks",
        ["volunteer_id", "check_type"],
        unique=True,
        postgresql_where=_ACTIVE,
    )


def downgrade() -> None:
    op.drop_index("uq_background_checks_active_per_type", table_name="background_checks")
    op.drop_index("ix_background_checks_status_expires_at", table_name="background_checks")
    op.drop_index("ix_background_checks_volunteer_id", table_name="background_checks")
    op.drop_table("background_checks")
