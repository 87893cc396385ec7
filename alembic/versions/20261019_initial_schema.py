"""Initial database schema

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates the affiliates, leads and attribution_events tables.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all initial tables."""

    # Affiliates table
    op.create_table(
        "affiliates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("affiliate_code", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("commission_rate", sa.Numeric(12, 2), nullable=False, server_default="50.0"),
        sa.Column("total_referrals", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("approved_referrals", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_commissions", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("paid_commissions", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("pending_commissions", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(50), nullable=False, server_default="paypal"),
        sa.Column("payment_details", sa.String(255), nullable=False, server_default=""),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("custom_message", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_affiliates_email"),
        sa.UniqueConstraint("affiliate_code", name="uq_affiliates_affiliate_code"),
    )
    op.create_index("ix_affiliates_affiliate_code", "affiliates", ["affiliate_code"], unique=False)
    op.create_index("ix_affiliates_status", "affiliates", ["status"], unique=False)

    # Leads table
    op.create_table(
        "leads",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=False),
        sa.Column("city", sa.String(100), nullable=False),
        sa.Column("state", sa.String(50), nullable=False),
        sa.Column("has_residence", sa.Boolean(), nullable=False),
        sa.Column("has_internet", sa.Boolean(), nullable=False),
        sa.Column("has_space", sa.Boolean(), nullable=False),
        sa.Column("referral_code", sa.String(50), nullable=True),
        sa.Column("affiliate_id", sa.Integer(), nullable=True),
        sa.Column("referral_source", sa.String(100), nullable=True),
        sa.Column("session_id", sa.String(255), nullable=True),
        sa.Column("utm_source", sa.String(255), nullable=True),
        sa.Column("utm_medium", sa.String(255), nullable=True),
        sa.Column("utm_campaign", sa.String(255), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("screen_resolution", sa.String(50), nullable=True),
        sa.Column("submission_time", sa.DateTime(), nullable=False),
        sa.Column("time_to_complete", sa.Float(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="new"),
        sa.Column("monthly_earnings", sa.Float(), nullable=True),
        sa.Column("equipment_type", sa.String(100), nullable=True),
        sa.Column("installation_date", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("email", name="uq_leads_email"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_leads_state", "leads", ["state"], unique=False)
    op.create_index("ix_leads_referral_code", "leads", ["referral_code"], unique=False)
    op.create_index("ix_leads_affiliate_id", "leads", ["affiliate_id"], unique=False)
    op.create_index("ix_leads_status", "leads", ["status"], unique=False)
    op.create_index("ix_leads_created_at", "leads", ["created_at"], unique=False)

    # Attribution outbox table
    op.create_table(
        "attribution_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("idempotency_key", sa.String(100), nullable=False),
        sa.Column("lead_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("referral_code", sa.String(50), nullable=True),
        sa.Column("affiliate_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("applied_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key", name="uq_attribution_events_idempotency_key"),
    )
    op.create_index("ix_attribution_events_lead_id", "attribution_events", ["lead_id"], unique=False)
    op.create_index(
        "ix_attribution_events_affiliate_id", "attribution_events", ["affiliate_id"], unique=False
    )
    op.create_index(
        "ix_attribution_events_applied_at", "attribution_events", ["applied_at"], unique=False
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("attribution_events")
    op.drop_table("leads")
    op.drop_table("affiliates")
