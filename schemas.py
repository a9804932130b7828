from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from models import AccountType, BalanceChangeType
from periods import Granularity


class BalanceSetIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    balance: Union[Decimal, str]
    reason: Optional[str] = Field(default=None, max_length=200)


class BalanceSetOut(BaseModel):
    account_id: int
    balance_cents: int
    balance: Decimal
    set_at: datetime
    previous_balance_cents: int
    discrepancy_cents: int
    change_type: BalanceChangeType


class BalanceDiagnosticsOut(BaseModel):
    anchor_balance_cents: int
    anchor_is_default: bool
    confirmed_transaction_cents: int
    confirmed_transaction_count: int
    transfers_in_cents: int
    transfers_out_cents: int
    transfer_count: int
    confirmed_delta_cents: int
    settled_balance_cents: int


class CurrentBalanceOut(BaseModel):
    account_id: int
    account_type: AccountType
    balance_cents: int
    balance: Decimal
    pending_drafts_cents: int
    draft_count: int
    anchor_set_at: datetime
    diagnostics: Optional[BalanceDiagnosticsOut] = None


class EventLineOut(BaseModel):
    id: int
    amount_cents: int
    amount: Decimal
    description: str = ""


class TransferLineOut(BaseModel):
    id: int
    amount_cents: int
    amount: Decimal
    counterpart_account_id: int
    counterpart_name: str
    description: str = ""


class PeriodOut(BaseModel):
    key: str
    start: date
    end: date
    archived: bool
    implicit: bool = False
    opening_balance_cents: int
    closing_balance_cents: int
    net_change_cents: int
    transaction_count: Optional[int] = None
    expenses_cents: Optional[int] = None
    income_cents: Optional[int] = None
    transfers_in_cents: Optional[int] = None
    transfers_out_cents: Optional[int] = None
    transfers_in_count: Optional[int] = None
    transfers_out_count: Optional[int] = None
    transactions: list[EventLineOut] = Field(default_factory=list)
    transfers_in: list[TransferLineOut] = Field(default_factory=list)
    transfers_out: list[TransferLineOut] = Field(default_factory=list)


class HistoryOut(BaseModel):
    account_id: int
    granularity: Granularity
    current_balance_cents: int
    pending_drafts_cents: int
    archive_boundary: Optional[date] = None
    live_region_change_cents: int
    gaps: list[str] = Field(default_factory=list)
    unbucketed_event_count: int = 0
    periods: list[PeriodOut]


class BalanceHistoryEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    previous_balance_cents: int
    new_balance_cents: int
    change_amount_cents: int
    change_type: BalanceChangeType
    reason: Optional[str] = None
    expected_balance_cents: Optional[int] = None
    discrepancy_cents: Optional[int] = None
    is_reconciliation: bool
    effective_date: date
    created_at: datetime


class BalanceHistoryOut(BaseModel):
    account_id: int
    items: list[BalanceHistoryEntryOut]
    total: int
    limit: int
    offset: int
    has_more: bool
