"""Baseline migration - tenants, synced records, links and jobs

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Creates the organization table, the synced account/case/ticket/theme tables,
the derived link tables and the background job table.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _org_fk() -> sa.Column:
    return sa.Column(
        "organization_id",
        sa.Uuid(),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        primary_key=True,
    )


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    # ==========================================================================
    # Synced records
    # ==========================================================================
    op.create_table(
        "accounts",
        _org_fk(),
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("products", JSON_TYPE, nullable=True),
        sa.Column("vertical", sa.String(255), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "support_cases",
        _org_fk(),
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("external_case_number", sa.String(32), nullable=True),
        sa.Column("account_id", sa.String(64), nullable=True),
        sa.Column("theme_key", sa.String(100), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_support_cases_org_account", "support_cases", ["organization_id", "account_id"]
    )
    op.create_index(
        "idx_support_cases_org_theme", "support_cases", ["organization_id", "theme_key"]
    )
    op.create_table(
        "tickets",
        _org_fk(),
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("external_key", sa.String(50), nullable=False),
        sa.Column("custom_fields", JSON_TYPE, nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(100), nullable=True),
        sa.Column("resolution_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("labels", JSON_TYPE, nullable=False),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_tickets_org_key", "tickets", ["organization_id", "external_key"])
    op.create_table(
        "themes",
        _org_fk(),
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("label", sa.String(255), nullable=False),
    )

    # ==========================================================================
    # Derived links
    # ==========================================================================
    op.create_table(
        "account_ticket_links",
        _org_fk(),
        sa.Column("account_id", sa.String(64), primary_key=True),
        sa.Column("ticket_id", sa.String(64), primary_key=True),
        sa.Column("strategy", sa.String(30), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("evidence", JSON_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_account_ticket_links_confidence",
        ),
    )
    op.create_index(
        "idx_account_ticket_links_ticket", "account_ticket_links", ["organization_id", "ticket_id"]
    )
    op.create_table(
        "theme_ticket_links",
        _org_fk(),
        sa.Column("theme_key", sa.String(100), primary_key=True),
        sa.Column("ticket_id", sa.String(64), primary_key=True),
        sa.Column("match_type", sa.String(30), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_theme_ticket_links_confidence",
        ),
    )
    op.create_index(
        "idx_theme_ticket_links_ticket", "theme_ticket_links", ["organization_id", "ticket_id"]
    )

    # ==========================================================================
    # Jobs
    # ==========================================================================
    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "organization_id",
            sa.Uuid(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("job_type", sa.String(50), nullable=False),
        sa.Column("payload", JSON_TYPE, nullable=False),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_jobs_pending", "jobs", ["status", "run_at"])
    op.create_index("idx_jobs_org", "jobs", ["organization_id", "created_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("jobs")
    op.drop_table("theme_ticket_links")
    op.drop_table("account_ticket_links")
    op.drop_table("themes")
    op.drop_table("tickets")
    op.drop_table("support_cases")
    op.drop_table("accounts")
    op.drop_table("organizations")
