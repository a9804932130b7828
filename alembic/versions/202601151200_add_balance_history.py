"""add balance history

Revision ID: 202601151200
Revises: 202601100900
Create Date: 2026-01-15 12:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "202601151200"
down_revision = "202601100900"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "account_balance_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("previous_balance_cents", sa.BigInteger(), nullable=False),
        sa.Column("new_balance_cents", sa.BigInteger(), nullable=False),
        sa.Column("change_amount_cents", sa.BigInteger(), nullable=False),
        sa.Column(
            "change_type",
            sa.Enum("initial_set", "manual_set", name="balancechangetype"),
            nullable=False,
        ),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("expected_balance_cents", sa.BigInteger(), nullable=True),
        sa.Column("discrepancy_cents", sa.BigInteger(), nullable=True),
        sa.Column(
            "is_reconciliation",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_balance_history_account_created",
        "account_balance_history",
        ["account_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_balance_history_account_created", table_name="account_balance_history"
    )
    op.drop_table("account_balance_history")
