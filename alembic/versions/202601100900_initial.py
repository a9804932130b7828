"""initial balance schema

Revision ID: 202601100900
Revises:
Create Date: 2026-01-10 09:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "202601100900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type", sa.Enum("expense", "income", name="accounttype"), nullable=False
        ),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_account_user_name"),
    )

    op.create_table(
        "balance_anchors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("balance_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("set_at", sa.DateTime(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "account_id", "user_id", name="uq_balance_anchor_account_user"
        ),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("is_draft", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index(
        "ix_transactions_account_date", "transactions", ["account_id", "date"]
    )
    op.create_index(
        "ix_transactions_account_recorded",
        "transactions",
        ["account_id", "recorded_at"],
    )
    op.create_index(
        "ix_transactions_account_draft", "transactions", ["account_id", "is_draft"]
    )

    op.create_table(
        "transfers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "from_account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "to_account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_transfers_amount_positive"),
        sa.CheckConstraint(
            "from_account_id <> to_account_id", name="ck_transfers_distinct_accounts"
        ),
    )
    op.create_index("ix_transfers_from_date", "transfers", ["from_account_id", "date"])
    op.create_index("ix_transfers_to_date", "transfers", ["to_account_id", "date"])

    op.create_table(
        "account_daily_summaries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("summary_date", sa.Date(), nullable=False),
        sa.Column("net_change_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "transaction_count", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "total_expenses_cents", sa.BigInteger(), nullable=False, server_default="0"
        ),
        sa.Column(
            "total_income_cents", sa.BigInteger(), nullable=False, server_default="0"
        ),
        sa.Column(
            "transfers_in_cents", sa.BigInteger(), nullable=False, server_default="0"
        ),
        sa.Column(
            "transfers_out_cents", sa.BigInteger(), nullable=False, server_default="0"
        ),
        sa.Column(
            "is_archived", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("archived_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("account_id", "summary_date", name="uq_daily_summary_date"),
    )
    op.create_index(
        "ix_daily_summary_account_archived",
        "account_daily_summaries",
        ["account_id", "is_archived"],
    )

    op.create_table(
        "household_links",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_user_id", sa.Integer(), nullable=False),
        sa.Column("partner_user_id", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "owner_user_id <> partner_user_id", name="ck_household_distinct_users"
        ),
    )
    op.create_index(
        "ix_household_owner_active", "household_links", ["owner_user_id", "active"]
    )
    op.create_index(
        "ix_household_partner_active",
        "household_links",
        ["partner_user_id", "active"],
    )


def downgrade() -> None:
    op.drop_index("ix_household_partner_active", table_name="household_links")
    op.drop_index("ix_household_owner_active", table_name="household_links")
    op.drop_table("household_links")
    op.drop_index(
        "ix_daily_summary_account_archived", table_name="account_daily_summaries"
    )
    op.drop_table("account_daily_summaries")
    op.drop_index("ix_transfers_to_date", table_name="transfers")
    op.drop_index("ix_transfers_from_date", table_name="transfers")
    op.drop_table("transfers")
    op.drop_index("ix_transactions_account_draft", table_name="transactions")
    op.drop_index("ix_transactions_account_recorded", table_name="transactions")
    op.drop_index("ix_transactions_account_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("balance_anchors")
    op.drop_table("accounts")
