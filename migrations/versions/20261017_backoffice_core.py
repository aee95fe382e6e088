"""prospects, lenders, trust account events and users

Revision ID: 20261017_backoffice_core
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261017_backoffice_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "prospects",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("borrower_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone_number", sa.String(50), nullable=True),
        sa.Column("county", sa.String(100), nullable=True),
        sa.Column("state", sa.String(50), nullable=True),
        sa.Column("borrower_type", sa.String(20), nullable=False),
        sa.Column("loan_type", sa.String(20), nullable=False),
        sa.Column("loan_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("assigned_to", sa.String(36), nullable=True),
        sa.Column("assigned_to_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="in_progress"),
        sa.Column("rejected_at_stage", sa.Integer(), nullable=True),
        sa.Column("current_stage", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("current_stage_name", sa.String(50), nullable=False, server_default=""),
        sa.Column("stages", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("terms", postgresql.JSONB(), nullable=True),
        sa.Column("funders", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("history", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("properties", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("co_borrowers", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("borrower_details", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("version >= 1", name="ck_prospects_version_positive"),
        sa.CheckConstraint("loan_amount >= 0", name="ck_prospects_loan_amount_nonneg"),
        sa.CheckConstraint("status IN ('in_progress', 'completed', 'rejected')", name="ck_prospects_status"),
        sa.CheckConstraint(
            "borrower_type IN ('individual', 'company', 'both')", name="ck_prospects_borrower_type"
        ),
        sa.CheckConstraint("loan_type IN ('purchase', 'refinance')", name="ck_prospects_loan_type"),
        sa.UniqueConstraint("code", name="uq_prospects_code"),
    )
    op.create_index("ix_prospects_status", "prospects", ["status"])
    op.create_index("ix_prospects_assigned_to", "prospects", ["assigned_to"])

    op.create_table(
        "lenders",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column("account", sa.String(50), nullable=False),
        sa.Column("lender_name", sa.String(255), nullable=False),
        sa.Column("address", postgresql.JSONB(), nullable=True),
        sa.Column("portfolio_value", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("trust_balance", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("version >= 1", name="ck_lenders_version_positive"),
        sa.CheckConstraint("trust_balance >= 0", name="ck_lenders_trust_balance_nonneg"),
        sa.UniqueConstraint("account", name="uq_lenders_account"),
    )

    op.create_table(
        "trust_account_events",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column("lender_id", sa.String(36), nullable=False),
        sa.Column("event_type", sa.String(30), nullable=False),
        sa.Column("event_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("related_loan_id", sa.String(36), nullable=True),
        sa.Column("related_loan_code", sa.String(32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_trust_events_amount_positive"),
        sa.CheckConstraint(
            "event_type IN ('Deposit', 'Withdrawal', 'Funding Disbursement', 'Funding Reversal', "
            "'Payment Distribution', 'Payment Reversal')",
            name="ck_trust_events_type",
        ),
        sa.ForeignKeyConstraint(["lender_id"], ["lenders.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_trust_events_lender_date", "trust_account_events", ["lender_id", "event_date"])
    op.create_index("ix_trust_account_events_related_loan_id", "trust_account_events", ["related_loan_id"])


def downgrade() -> None:
    op.drop_index("ix_trust_account_events_related_loan_id", table_name="trust_account_events")
    op.drop_index("ix_trust_events_lender_date", table_name="trust_account_events")
    op.drop_table("trust_account_events")
    op.drop_table("lenders")
    op.drop_index("ix_prospects_assigned_to", table_name="prospects")
    op.drop_index("ix_prospects_status", table_name="prospects")
    op.drop_table("prospects")
    op.drop_table("users")
