"""Pure balance arithmetic: current balance and backward reconstruction.

Nothing in this module touches the database. Amounts are integer cents.
Transaction amounts are in the account's native sign (spending on an expense
account, earnings on an income account); bucket net changes are balance
effects (closing minus opening).
"""

from __future__ import annotations

import operator
from dataclasses import dataclass, replace
from datetime import date, datetime
from itertools import accumulate
from typing import Iterable, Optional, Sequence

from errors import UpstreamFailureError
from models import AccountType
from periods import Granularity, bucket_bounds, bucket_key, keys_between


@dataclass(frozen=True)
class EventSum:
    amount_cents: int = 0
    count: int = 0


@dataclass(frozen=True)
class TransferLegs:
    in_cents: int = 0
    out_cents: int = 0
    count: int = 0


@dataclass(frozen=True)
class EventLine:
    id: int
    amount_cents: int
    description: Optional[str] = None


@dataclass(frozen=True)
class TransferLine:
    id: int
    amount_cents: int
    counterpart_account_id: int
    counterpart_name: str
    description: Optional[str] = None


@dataclass(frozen=True)
class DayActivity:
    day: date
    transaction_cents: int = 0
    transaction_count: int = 0
    transfers_in_cents: int = 0
    transfers_out_cents: int = 0
    transfers_in_count: int = 0
    transfers_out_count: int = 0
    transactions: tuple[EventLine, ...] = ()
    transfers_in: tuple[TransferLine, ...] = ()
    transfers_out: tuple[TransferLine, ...] = ()

    @property
    def transfer_count(self) -> int:
        return self.transfers_in_count + self.transfers_out_count


@dataclass(frozen=True)
class EventTotals:
    account_type: AccountType
    confirmed: EventSum
    drafts: EventSum
    transfers: TransferLegs

    @property
    def transfer_delta_cents(self) -> int:
        return to_native(
            self.account_type, self.transfers.in_cents - self.transfers.out_cents
        )

    @property
    def confirmed_delta_cents(self) -> int:
        return self.confirmed.amount_cents + self.transfer_delta_cents

    @property
    def draft_delta_cents(self) -> int:
        return self.drafts.amount_cents


@dataclass(frozen=True)
class BalanceDiagnostics:
    anchor_balance_cents: int
    anchor_is_default: bool
    confirmed_transaction_cents: int
    confirmed_transaction_count: int
    transfers_in_cents: int
    transfers_out_cents: int
    transfer_count: int
    confirmed_delta_cents: int
    settled_balance_cents: int


@dataclass(frozen=True)
class CurrentBalance:
    account_id: int
    owner_id: int
    account_type: AccountType
    balance_cents: int
    pending_drafts_cents: int
    draft_count: int
    anchor_set_at: datetime
    diagnostics: Optional[BalanceDiagnostics] = None

    @property
    def pending_draft_effect_cents(self) -> int:
        return balance_effect(self.account_type, self.pending_drafts_cents)


@dataclass(frozen=True)
class PeriodBucket:
    key: str
    granularity: Granularity
    start: date
    end: date
    net_change_cents: int
    archived: bool
    transaction_count: Optional[int] = None
    expenses_cents: Optional[int] = None
    income_cents: Optional[int] = None
    transfers_in_cents: Optional[int] = None
    transfers_out_cents: Optional[int] = None
    transfers_in_count: Optional[int] = None
    transfers_out_count: Optional[int] = None
    implicit: bool = False
    # itemised rows, only carried by live day buckets
    transactions: tuple[EventLine, ...] = ()
    transfers_in: tuple[TransferLine, ...] = ()
    transfers_out: tuple[TransferLine, ...] = ()


@dataclass(frozen=True)
class ReconstructedPeriod:
    bucket: PeriodBucket
    opening_cents: int
    closing_cents: int


@dataclass(frozen=True)
class BucketSet:
    granularity: Granularity
    buckets: tuple[PeriodBucket, ...]
    boundary: Optional[date]
    live_region_change_cents: int = 0
    # confirmed events dated inside the archived region on an unsummarised day
    unbucketed_event_count: int = 0


@dataclass(frozen=True)
class HistoryResult:
    current: CurrentBalance
    granularity: Granularity
    periods: tuple[ReconstructedPeriod, ...]
    boundary: Optional[date]
    live_region_change_cents: int
    gaps: tuple[str, ...] = ()
    unbucketed_event_count: int = 0


def _sign(account_type: AccountType) -> int:
    return -1 if account_type == AccountType.expense else 1


def balance_effect(account_type: AccountType, native_cents: int) -> int:
    return _sign(account_type) * native_cents


def to_native(account_type: AccountType, effect_cents: int) -> int:
    return _sign(account_type) * effect_cents


def apply_delta(account_type: AccountType, balance_cents: int, delta_cents: int) -> int:
    """Combine a balance with a native-sign delta: subtract on expense accounts, add on income."""
    return balance_cents + balance_effect(account_type, delta_cents)


def compute_current_balance(
    *,
    account_id: int,
    owner_id: int,
    account_type: AccountType,
    anchor_balance_cents: int,
    anchor_set_at: datetime,
    totals: EventTotals,
    anchor_is_default: bool = False,
    include_diagnostics: bool = False,
) -> CurrentBalance:
    settled = apply_delta(
        account_type, anchor_balance_cents, totals.confirmed_delta_cents
    )
    balance = apply_delta(account_type, settled, totals.draft_delta_cents)

    diagnostics = None
    if include_diagnostics:
        diagnostics = BalanceDiagnostics(
            anchor_balance_cents=anchor_balance_cents,
            anchor_is_default=anchor_is_default,
            confirmed_transaction_cents=totals.confirmed.amount_cents,
            confirmed_transaction_count=totals.confirmed.count,
            transfers_in_cents=totals.transfers.in_cents,
            transfers_out_cents=totals.transfers.out_cents,
            transfer_count=totals.transfers.count,
            confirmed_delta_cents=totals.confirmed_delta_cents,
            settled_balance_cents=settled,
        )
    return CurrentBalance(
        account_id=account_id,
        owner_id=owner_id,
        account_type=account_type,
        balance_cents=balance,
        pending_drafts_cents=totals.draft_delta_cents,
        draft_count=totals.drafts.count,
        anchor_set_at=anchor_set_at,
        diagnostics=diagnostics,
    )


def bucket_from_activity(
    account_type: AccountType,
    key: str,
    granularity: Granularity,
    activities: Iterable[DayActivity],
    *,
    archived: bool = False,
) -> PeriodBucket:
    transaction_cents = 0
    transaction_count = 0
    transfers_in = 0
    transfers_out = 0
    in_count = 0
    out_count = 0
    transactions: list[EventLine] = []
    lines_in: list[TransferLine] = []
    lines_out: list[TransferLine] = []
    for activity in activities:
        transaction_cents += activity.transaction_cents
        transaction_count += activity.transaction_count
        transfers_in += activity.transfers_in_cents
        transfers_out += activity.transfers_out_cents
        in_count += activity.transfers_in_count
        out_count += activity.transfers_out_count
        transactions.extend(activity.transactions)
        lines_in.extend(activity.transfers_in)
        lines_out.extend(activity.transfers_out)
    start, end = bucket_bounds(key, granularity)
    is_expense = account_type == AccountType.expense
    itemised = granularity == Granularity.day
    return PeriodBucket(
        key=key,
        granularity=granularity,
        start=start,
        end=end,
        net_change_cents=balance_effect(account_type, transaction_cents)
        + transfers_in
        - transfers_out,
        archived=archived,
        transaction_count=transaction_count,
        expenses_cents=transaction_cents if is_expense else 0,
        income_cents=0 if is_expense else transaction_cents,
        transfers_in_cents=transfers_in,
        transfers_out_cents=transfers_out,
        transfers_in_count=in_count,
        transfers_out_count=out_count,
        transactions=tuple(transactions) if itemised else (),
        transfers_in=tuple(lines_in) if itemised else (),
        transfers_out=tuple(lines_out) if itemised else (),
    )


def group_activity(
    account_type: AccountType,
    activities: Iterable[DayActivity],
    granularity: Granularity,
) -> tuple[PeriodBucket, ...]:
    grouped: dict[str, list[DayActivity]] = {}
    for activity in activities:
        grouped.setdefault(bucket_key(activity.day, granularity), []).append(activity)
    return tuple(
        bucket_from_activity(account_type, key, granularity, grouped[key])
        for key in sorted(grouped, reverse=True)
    )


def _add_optional(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None or b is None:
        return None
    return a + b


def merge_buckets(first: PeriodBucket, second: PeriodBucket) -> PeriodBucket:
    if first.key != second.key or first.granularity != second.granularity:
        raise ValueError(f"Cannot merge buckets {first.key} and {second.key}")
    return replace(
        first,
        net_change_cents=first.net_change_cents + second.net_change_cents,
        archived=first.archived and second.archived,
        transaction_count=_add_optional(
            first.transaction_count, second.transaction_count
        ),
        expenses_cents=_add_optional(first.expenses_cents, second.expenses_cents),
        income_cents=_add_optional(first.income_cents, second.income_cents),
        transfers_in_cents=_add_optional(
            first.transfers_in_cents, second.transfers_in_cents
        ),
        transfers_out_cents=_add_optional(
            first.transfers_out_cents, second.transfers_out_cents
        ),
        transfers_in_count=_add_optional(
            first.transfers_in_count, second.transfers_in_count
        ),
        transfers_out_count=_add_optional(
            first.transfers_out_count, second.transfers_out_count
        ),
        implicit=False,
        transactions=first.transactions + second.transactions,
        transfers_in=first.transfers_in + second.transfers_in,
        transfers_out=first.transfers_out + second.transfers_out,
    )


def combine_buckets(*groups: Iterable[PeriodBucket]) -> tuple[PeriodBucket, ...]:
    """Union bucket groups into one descending sequence, merging equal keys."""
    by_key: dict[str, PeriodBucket] = {}
    for group in groups:
        for bucket in group:
            existing = by_key.get(bucket.key)
            by_key[bucket.key] = merge_buckets(existing, bucket) if existing else bucket
    return tuple(by_key[key] for key in sorted(by_key, reverse=True))


def _check_order(buckets: Sequence[PeriodBucket]) -> None:
    for newer, older in zip(buckets, buckets[1:]):
        if newer.granularity != older.granularity:
            raise UpstreamFailureError(
                f"Mixed bucket granularity: {newer.key} and {older.key}"
            )
        if newer.key <= older.key:
            raise UpstreamFailureError(
                f"Buckets out of order or duplicated: {newer.key} before {older.key}"
            )


def reconstruct(
    current_balance_cents: int,
    buckets: Iterable[PeriodBucket],
    *,
    live_region_change_cents: int = 0,
) -> tuple[ReconstructedPeriod, ...]:
    ordered = tuple(buckets)
    _check_order(ordered)
    start = current_balance_cents - live_region_change_cents
    closings = accumulate(
        (bucket.net_change_cents for bucket in ordered), operator.sub, initial=start
    )
    return tuple(
        ReconstructedPeriod(
            bucket=bucket,
            opening_cents=closing - bucket.net_change_cents,
            closing_cents=closing,
        )
        for bucket, closing in zip(ordered, closings)
    )


def find_gaps(buckets: Sequence[PeriodBucket]) -> tuple[str, ...]:
    gaps: list[str] = []
    for newer, older in zip(buckets, buckets[1:]):
        gaps.extend(keys_between(newer.key, older.key, newer.granularity))
    return tuple(gaps)


def _zero_bucket(key: str, granularity: Granularity) -> PeriodBucket:
    start, end = bucket_bounds(key, granularity)
    return PeriodBucket(
        key=key,
        granularity=granularity,
        start=start,
        end=end,
        net_change_cents=0,
        archived=False,
        implicit=True,
    )


def fill_gaps(buckets: Sequence[PeriodBucket]) -> tuple[PeriodBucket, ...]:
    if not buckets:
        return ()
    filled: list[PeriodBucket] = [buckets[0]]
    for newer, older in zip(buckets, buckets[1:]):
        filled.extend(
            _zero_bucket(key, newer.granularity)
            for key in keys_between(newer.key, older.key, newer.granularity)
        )
        filled.append(older)
    return tuple(filled)


def verify_chain(
    periods: Sequence[ReconstructedPeriod], *, tolerance_cents: int = 0
) -> tuple[str, ...]:
    problems: list[str] = []
    for period in periods:
        drift = period.closing_cents - period.opening_cents - period.bucket.net_change_cents
        if abs(drift) > tolerance_cents:
            problems.append(f"{period.bucket.key}: closing-opening off by {drift}")
    for newer, older in zip(periods, periods[1:]):
        drift = newer.opening_cents - older.closing_cents
        if abs(drift) > tolerance_cents:
            problems.append(
                f"{newer.bucket.key}/{older.bucket.key}: chain broken by {drift}"
            )
    return tuple(problems)
