"""Create company_status_events table.

The candidates index serves the merge lookup
(`WHERE company_key = ? AND status_type = ? AND start_date >= ? ORDER BY start_date DESC`).
"""

from __future__ import annotations

import logging

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "5b2e9c1f4a70"
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)

_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    op.create_table(
        "company_status_events",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("company_key", sa.String(length=255), nullable=False),
        sa.Column("status_type", sa.String(length=32), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("affected_departments", _JSON, nullable=False),
        sa.Column("employee_count_impact", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sources", _JSON, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("last_merged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_company_status_events"),
        sa.CheckConstraint(
            "status_type IN ('layoff', 'hiring_freeze', 'mass_hiring', 'restructuring')",
            name="ck_company_status_events_status_type",
        ),
        sa.CheckConstraint("version >= 1", name="ck_company_status_events_version"),
    )
    op.create_index(
        "ix_company_status_events_candidates",
        "company_status_events",
        ["company_key", "status_type", "start_date"],
        unique=False,
    )
    logger.info("events.migration.applied", extra={"revision": revision})


def downgrade() -> None:
    op.drop_index("ix_company_status_events_candidates", table_name="company_status_events")
    op.drop_table("company_status_events")
