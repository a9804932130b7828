from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AccountType(str, Enum):
    expense = "expense"
    income = "income"


class BalanceChangeType(str, Enum):
    initial_set = "initial_set"
    manual_set = "manual_set"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[AccountType] = mapped_column(SAEnum(AccountType), nullable=False)

    anchors: Mapped[list["BalanceAnchor"]] = relationship(
        "BalanceAnchor", back_populates="account"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_account_user_name"),
    )


class BalanceAnchor(Base, TimestampMixin):
    __tablename__ = "balance_anchors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    set_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)

    account: Mapped["Account"] = relationship("Account", back_populates="anchors")

    __table_args__ = (
        UniqueConstraint("account_id", "user_id", name="uq_balance_anchor_account_user"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_draft: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_transactions_account_date", "account_id", "date"),
        Index("ix_transactions_account_recorded", "account_id", "recorded_at"),
        Index("ix_transactions_account_draft", "account_id", "is_draft"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )


class Transfer(Base, TimestampMixin):
    __tablename__ = "transfers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    from_account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    to_account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    from_account: Mapped["Account"] = relationship(
        "Account", foreign_keys=[from_account_id]
    )
    to_account: Mapped["Account"] = relationship("Account", foreign_keys=[to_account_id])

    __table_args__ = (
        Index("ix_transfers_from_date", "from_account_id", "date"),
        Index("ix_transfers_to_date", "to_account_id", "date"),
        CheckConstraint("amount_cents > 0", name="ck_transfers_amount_positive"),
        CheckConstraint(
            "from_account_id <> to_account_id", name="ck_transfers_distinct_accounts"
        ),
    )


class DailySummary(Base, TimestampMixin):
    __tablename__ = "account_daily_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    summary_date: Mapped[date] = mapped_column(Date, nullable=False)
    net_change_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_expenses_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    total_income_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    transfers_in_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    transfers_out_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        UniqueConstraint("account_id", "summary_date", name="uq_daily_summary_date"),
        Index("ix_daily_summary_account_archived", "account_id", "is_archived"),
    )


class HouseholdLink(Base, TimestampMixin):
    __tablename__ = "household_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    partner_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_household_owner_active", "owner_user_id", "active"),
        Index("ix_household_partner_active", "partner_user_id", "active"),
        CheckConstraint(
            "owner_user_id <> partner_user_id", name="ck_household_distinct_users"
        ),
    )


class BalanceHistoryEntry(Base):
    __tablename__ = "account_balance_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_balance_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    new_balance_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    change_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    change_type: Mapped[BalanceChangeType] = mapped_column(
        SAEnum(BalanceChangeType), nullable=False
    )
    reason: Mapped[Optional[str]] = mapped_column(Text)
    expected_balance_cents: Mapped[Optional[int]] = mapped_column(BigInteger)
    discrepancy_cents: Mapped[Optional[int]] = mapped_column(BigInteger)
    is_reconciliation: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_balance_history_account_created", "account_id", "created_at"),
    )
