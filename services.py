from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from config import Settings, get_settings
from errors import (
    BalanceError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
    UpstreamFailureError,
)
from models import (
    Account,
    AccountType,
    BalanceAnchor,
    BalanceChangeType,
    BalanceHistoryEntry,
    DailySummary,
    HouseholdLink,
    Transaction,
    Transfer,
    utcnow,
)
from money import AmountInput, to_cents
from periods import Granularity, Period, bucket_bounds, bucket_key, resolve_period
from reconstruction import (
    BucketSet,
    CurrentBalance,
    DayActivity,
    EventLine,
    EventSum,
    EventTotals,
    HistoryResult,
    PeriodBucket,
    ReconstructedPeriod,
    TransferLegs,
    TransferLine,
    combine_buckets,
    compute_current_balance,
    fill_gaps,
    find_gaps,
    group_activity,
    reconstruct,
    verify_chain,
)

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)


def get_current_user_id() -> int:
    return get_settings().default_user_id


def can_view(requester_id: int, owner_id: int, linked_user_id: Optional[int]) -> bool:
    if requester_id == owner_id:
        return True
    return linked_user_id is not None and linked_user_id == owner_id


def fan_out(
    tasks: dict[str, Callable[[], Any]],
    *,
    max_workers: int,
    timeout: Optional[float],
) -> dict[str, Any]:
    """Run independent reads concurrently and return every result, or raise.

    A failure or an expired deadline on any task aborts the whole batch; no
    partial result is ever returned.
    """
    if not tasks:
        return {}
    pool = ThreadPoolExecutor(
        max_workers=max(1, min(max_workers, len(tasks))),
        thread_name_prefix="ledger-read",
    )
    try:
        futures = {name: pool.submit(task) for name, task in tasks.items()}
        done, pending = wait(
            futures.values(), timeout=timeout, return_when=FIRST_EXCEPTION
        )
        for future in done:
            exc = future.exception()
            if exc is None:
                continue
            for other in pending:
                other.cancel()
            if isinstance(exc, BalanceError):
                raise exc
            raise UpstreamFailureError("Ledger read failed") from exc
        if pending:
            for other in pending:
                other.cancel()
            raise UpstreamFailureError(f"Ledger reads timed out after {timeout}s")
        return {name: future.result() for name, future in futures.items()}
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


@dataclass(frozen=True)
class AccountRef:
    id: int
    user_id: int
    name: str
    type: AccountType
    created_at: datetime


@dataclass(frozen=True)
class ResolvedAnchor:
    account: AccountRef
    owner_id: int
    balance_cents: int
    set_at: datetime
    is_default: bool


@dataclass(frozen=True)
class AnchorWrite:
    account_id: int
    balance_cents: int
    set_at: datetime
    previous_balance_cents: int
    discrepancy_cents: int
    change_type: BalanceChangeType


class HouseholdResolver:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def resolve_linked_user(self, user_id: int) -> Optional[int]:
        try:
            with self.session_factory() as session:
                link = session.scalar(
                    select(HouseholdLink)
                    .where(
                        HouseholdLink.active.is_(True),
                        or_(
                            HouseholdLink.owner_user_id == user_id,
                            HouseholdLink.partner_user_id == user_id,
                        ),
                    )
                    .order_by(HouseholdLink.created_at.desc(), HouseholdLink.id.desc())
                    .limit(1)
                )
        except SQLAlchemyError as exc:
            raise UpstreamFailureError("Failed to resolve household link") from exc
        if not link:
            return None
        if link.owner_user_id == user_id:
            return link.partner_user_id
        return link.owner_user_id


class SqlLedgerStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def _read(self, label: str, fn: Callable[[Session], Any]) -> Any:
        try:
            with self.session_factory() as session:
                return fn(session)
        except SQLAlchemyError as exc:
            logger.warning(f"ledger_read_failed: query={label} error={exc}")
            raise UpstreamFailureError(f"Ledger read failed: {label}") from exc

    def fetch_account(self, account_id: int) -> Optional[AccountRef]:
        def run(session: Session) -> Optional[AccountRef]:
            account = session.get(Account, account_id)
            if not account:
                return None
            return AccountRef(
                id=account.id,
                user_id=account.user_id,
                name=account.name,
                type=account.type,
                created_at=account.created_at,
            )

        return self._read("account", run)

    def fetch_anchor(
        self, account_id: int, owner_id: int
    ) -> Optional[tuple[int, datetime]]:
        def run(session: Session) -> Optional[tuple[int, datetime]]:
            row = session.execute(
                select(BalanceAnchor.balance_cents, BalanceAnchor.set_at).where(
                    BalanceAnchor.account_id == account_id,
                    BalanceAnchor.user_id == owner_id,
                )
            ).first()
            if row is None:
                return None
            return int(row.balance_cents), row.set_at

        return self._read("anchor", run)

    def fetch_confirmed_events_since(
        self, account_id: int, since: datetime
    ) -> EventSum:
        def run(session: Session) -> EventSum:
            row = session.execute(
                select(
                    func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
                    func.count(Transaction.id).label("count"),
                ).where(
                    Transaction.account_id == account_id,
                    Transaction.is_draft.is_(False),
                    Transaction.deleted_at.is_(None),
                    Transaction.recorded_at > since,
                )
            ).one()
            return EventSum(amount_cents=int(row.total), count=int(row.count))

        return self._read("confirmed_events", run)

    def fetch_draft_events(self, account_id: int) -> EventSum:
        def run(session: Session) -> EventSum:
            row = session.execute(
                select(
                    func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
                    func.count(Transaction.id).label("count"),
                ).where(
                    Transaction.account_id == account_id,
                    Transaction.is_draft.is_(True),
                    Transaction.deleted_at.is_(None),
                )
            ).one()
            return EventSum(amount_cents=int(row.total), count=int(row.count))

        return self._read("draft_events", run)

    def fetch_transfer_legs(
        self,
        account_id: int,
        *,
        since: Optional[datetime] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> TransferLegs:
        def leg_totals(session: Session, column) -> tuple[int, int]:
            stmt = select(
                func.coalesce(func.sum(Transfer.amount_cents), 0).label("total"),
                func.count(Transfer.id).label("count"),
            ).where(column == account_id)
            if since is not None:
                stmt = stmt.where(Transfer.recorded_at > since)
            if start is not None:
                stmt = stmt.where(Transfer.date >= start)
            if end is not None:
                stmt = stmt.where(Transfer.date <= end)
            row = session.execute(stmt).one()
            return int(row.total), int(row.count)

        def run(session: Session) -> TransferLegs:
            in_cents, in_count = leg_totals(session, Transfer.to_account_id)
            out_cents, out_count = leg_totals(session, Transfer.from_account_id)
            return TransferLegs(
                in_cents=in_cents, out_cents=out_cents, count=in_count + out_count
            )

        return self._read("transfer_legs", run)

    def fetch_archive_boundary(self, account_id: int) -> Optional[date]:
        def run(session: Session) -> Optional[date]:
            return session.scalar(
                select(func.max(DailySummary.summary_date)).where(
                    DailySummary.account_id == account_id,
                    DailySummary.is_archived.is_(True),
                )
            )

        return self._read("archive_boundary", run)

    def fetch_archived_buckets(
        self,
        account_id: int,
        granularity: Granularity,
        *,
        since: Optional[date] = None,
        until: Optional[date] = None,
    ) -> tuple[PeriodBucket, ...]:
        def run(session: Session) -> tuple[PeriodBucket, ...]:
            stmt = (
                select(DailySummary)
                .where(
                    DailySummary.account_id == account_id,
                    DailySummary.is_archived.is_(True),
                )
                .order_by(DailySummary.summary_date.desc())
            )
            if since is not None:
                stmt = stmt.where(DailySummary.summary_date >= since)
            if until is not None:
                stmt = stmt.where(DailySummary.summary_date <= until)
            summaries = session.scalars(stmt).all()
            return combine_buckets(
                _summary_bucket(summary, granularity) for summary in summaries
            )

        return self._read("archived_buckets", run)

    def fetch_live_region_events(
        self,
        account_id: int,
        since_boundary: Optional[date],
        *,
        since: Optional[date] = None,
    ) -> tuple[DayActivity, ...]:
        def in_region(stmt, date_column):
            if since_boundary is not None:
                stmt = stmt.where(date_column > since_boundary)
            if since is not None:
                stmt = stmt.where(date_column >= since)
            return stmt

        def run(session: Session) -> tuple[DayActivity, ...]:
            transactions: dict[date, list[EventLine]] = {}
            transfers_in: dict[date, list[TransferLine]] = {}
            transfers_out: dict[date, list[TransferLine]] = {}

            txn_stmt = in_region(
                select(
                    Transaction.id,
                    Transaction.date,
                    Transaction.amount_cents,
                    Transaction.description,
                )
                .where(
                    Transaction.account_id == account_id,
                    Transaction.is_draft.is_(False),
                    Transaction.deleted_at.is_(None),
                )
                .order_by(Transaction.recorded_at, Transaction.id),
                Transaction.date,
            )
            for row in session.execute(txn_stmt):
                transactions.setdefault(row.date, []).append(
                    EventLine(
                        id=row.id,
                        amount_cents=int(row.amount_cents),
                        description=row.description,
                    )
                )

            for own, other, lines in (
                (Transfer.to_account_id, Transfer.from_account_id, transfers_in),
                (Transfer.from_account_id, Transfer.to_account_id, transfers_out),
            ):
                stmt = in_region(
                    select(
                        Transfer.id,
                        Transfer.date,
                        Transfer.amount_cents,
                        Transfer.description,
                        other.label("counterpart_id"),
                        Account.name.label("counterpart_name"),
                    )
                    .join(Account, Account.id == other)
                    .where(own == account_id)
                    .order_by(Transfer.recorded_at, Transfer.id),
                    Transfer.date,
                )
                for row in session.execute(stmt):
                    lines.setdefault(row.date, []).append(
                        TransferLine(
                            id=row.id,
                            amount_cents=int(row.amount_cents),
                            counterpart_account_id=row.counterpart_id,
                            counterpart_name=row.counterpart_name,
                            description=row.description,
                        )
                    )

            days = set(transactions) | set(transfers_in) | set(transfers_out)
            return tuple(
                _day_activity(
                    day,
                    transactions.get(day, []),
                    transfers_in.get(day, []),
                    transfers_out.get(day, []),
                )
                for day in sorted(days, reverse=True)
            )

        return self._read("live_region_events", run)

    def fetch_unbucketed_event_count(
        self,
        account_id: int,
        boundary: Optional[date],
        *,
        since: Optional[date] = None,
    ) -> int:
        """Count confirmed events dated on or before the boundary on days no
        archived summary covers. Such events move the current balance but no
        bucket."""
        if boundary is None:
            return 0

        def summarised(date_column):
            return (
                select(DailySummary.id)
                .where(
                    DailySummary.account_id == account_id,
                    DailySummary.is_archived.is_(True),
                    DailySummary.summary_date == date_column,
                )
                .exists()
            )

        def run(session: Session) -> int:
            txn_stmt = select(func.count(Transaction.id)).where(
                Transaction.account_id == account_id,
                Transaction.is_draft.is_(False),
                Transaction.deleted_at.is_(None),
                Transaction.date <= boundary,
                ~summarised(Transaction.date),
            )
            transfer_stmt = select(func.count(Transfer.id)).where(
                or_(
                    Transfer.to_account_id == account_id,
                    Transfer.from_account_id == account_id,
                ),
                Transfer.date <= boundary,
                ~summarised(Transfer.date),
            )
            if since is not None:
                txn_stmt = txn_stmt.where(Transaction.date >= since)
                transfer_stmt = transfer_stmt.where(Transfer.date >= since)
            return int(session.scalar(txn_stmt) or 0) + int(
                session.scalar(transfer_stmt) or 0
            )

        return self._read("unbucketed_events", run)

    def fetch_balance_history(
        self,
        account_id: int,
        *,
        limit: int,
        offset: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> tuple[list[BalanceHistoryEntry], int]:
        def run(session: Session) -> tuple[list[BalanceHistoryEntry], int]:
            filters = [BalanceHistoryEntry.account_id == account_id]
            if start is not None:
                filters.append(BalanceHistoryEntry.effective_date >= start)
            if end is not None:
                filters.append(BalanceHistoryEntry.effective_date <= end)
            total = session.scalar(
                select(func.count(BalanceHistoryEntry.id)).where(*filters)
            )
            entries = session.scalars(
                select(BalanceHistoryEntry)
                .where(*filters)
                .order_by(
                    BalanceHistoryEntry.created_at.desc(),
                    BalanceHistoryEntry.id.desc(),
                )
                .limit(limit)
                .offset(offset)
            ).all()
            return list(entries), int(total or 0)

        return self._read("balance_history", run)


def _day_activity(
    day: date,
    transactions: list[EventLine],
    transfers_in: list[TransferLine],
    transfers_out: list[TransferLine],
) -> DayActivity:
    return DayActivity(
        day=day,
        transaction_cents=sum(line.amount_cents for line in transactions),
        transaction_count=len(transactions),
        transfers_in_cents=sum(line.amount_cents for line in transfers_in),
        transfers_out_cents=sum(line.amount_cents for line in transfers_out),
        transfers_in_count=len(transfers_in),
        transfers_out_count=len(transfers_out),
        transactions=tuple(transactions),
        transfers_in=tuple(transfers_in),
        transfers_out=tuple(transfers_out),
    )


def _summary_bucket(summary: DailySummary, granularity: Granularity) -> PeriodBucket:
    key = bucket_key(summary.summary_date, granularity)
    start, end = bucket_bounds(key, granularity)
    return PeriodBucket(
        key=key,
        granularity=granularity,
        start=start,
        end=end,
        net_change_cents=int(summary.net_change_cents),
        archived=True,
        transaction_count=summary.transaction_count,
        expenses_cents=summary.total_expenses_cents,
        income_cents=summary.total_income_cents,
        transfers_in_cents=summary.transfers_in_cents,
        transfers_out_cents=summary.transfers_out_cents,
    )


class AnchorResolver:
    def __init__(self, store: SqlLedgerStore, household: HouseholdResolver) -> None:
        self.store = store
        self.household = household

    def resolve(self, account_id: int, requesting_user_id: int) -> ResolvedAnchor:
        account = self.store.fetch_account(account_id)
        if account is None:
            raise NotFoundError("Account not found")

        linked = None
        if account.user_id != requesting_user_id:
            linked = self.household.resolve_linked_user(requesting_user_id)
        if not can_view(requesting_user_id, account.user_id, linked):
            logger.warning(
                f"balance_access_denied: account_id={account_id} "
                f"user_id={requesting_user_id}"
            )
            raise UnauthorizedError("Not allowed to view this account")

        anchor = self.store.fetch_anchor(account.id, account.user_id)
        if anchor is None:
            return ResolvedAnchor(
                account=account,
                owner_id=account.user_id,
                balance_cents=0,
                set_at=account.created_at or EPOCH,
                is_default=True,
            )
        balance_cents, set_at = anchor
        return ResolvedAnchor(
            account=account,
            owner_id=account.user_id,
            balance_cents=balance_cents,
            set_at=set_at,
            is_default=False,
        )


class EventAggregator:
    def __init__(
        self, store: SqlLedgerStore, *, max_workers: int, timeout: Optional[float]
    ) -> None:
        self.store = store
        self.max_workers = max_workers
        self.timeout = timeout

    def aggregate(self, account: AccountRef, anchor_set_at: datetime) -> EventTotals:
        results = fan_out(
            {
                "confirmed": lambda: self.store.fetch_confirmed_events_since(
                    account.id, anchor_set_at
                ),
                "drafts": lambda: self.store.fetch_draft_events(account.id),
                "transfers": lambda: self.store.fetch_transfer_legs(
                    account.id, since=anchor_set_at
                ),
            },
            max_workers=self.max_workers,
            timeout=self.timeout,
        )
        return EventTotals(
            account_type=account.type,
            confirmed=results["confirmed"],
            drafts=results["drafts"],
            transfers=results["transfers"],
        )


class ArchiveBoundaryManager:
    def __init__(
        self, store: SqlLedgerStore, *, max_workers: int, timeout: Optional[float]
    ) -> None:
        self.store = store
        self.max_workers = max_workers
        self.timeout = timeout

    def collect(
        self,
        account: AccountRef,
        granularity: Granularity,
        *,
        since: Optional[date] = None,
        pending_change_cents: int = 0,
    ) -> BucketSet:
        boundary = self.store.fetch_archive_boundary(account.id)
        results = fan_out(
            {
                "archived": lambda: self.store.fetch_archived_buckets(
                    account.id, granularity, since=since, until=boundary
                ),
                "live": lambda: self.store.fetch_live_region_events(
                    account.id, boundary, since=since
                ),
                "unbucketed": lambda: self.store.fetch_unbucketed_event_count(
                    account.id, boundary, since=since
                ),
            },
            max_workers=self.max_workers,
            timeout=self.timeout,
        )
        live = group_activity(account.type, results["live"], granularity)
        buckets = combine_buckets(live, results["archived"])
        logger.debug(
            f"buckets_collected: account_id={account.id} granularity={granularity.value} "
            f"boundary={boundary} archived={len(results['archived'])} live={len(live)}"
        )
        if results["unbucketed"]:
            logger.warning(
                f"unbucketed_events: account_id={account.id} boundary={boundary} "
                f"count={results['unbucketed']}"
            )
        return BucketSet(
            granularity=granularity,
            buckets=buckets,
            boundary=boundary,
            live_region_change_cents=pending_change_cents,
            unbucketed_event_count=results["unbucketed"],
        )


class BalanceService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        user_id: Optional[int] = None,
        *,
        settings: Optional[Settings] = None,
        store: Optional[SqlLedgerStore] = None,
        household: Optional[HouseholdResolver] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.session_factory = session_factory
        self.user_id = get_current_user_id() if user_id is None else user_id
        self.settings = settings or get_settings()
        self.store = store or SqlLedgerStore(session_factory)
        self.household = household or HouseholdResolver(session_factory)
        self.now = now or utcnow
        self.anchors = AnchorResolver(self.store, self.household)
        self.aggregator = EventAggregator(
            self.store,
            max_workers=self.settings.ledger_max_workers,
            timeout=self.settings.ledger_timeout_secs,
        )
        self.archive = ArchiveBoundaryManager(
            self.store,
            max_workers=self.settings.ledger_max_workers,
            timeout=self.settings.ledger_timeout_secs,
        )

    def _current(
        self, anchor: ResolvedAnchor, *, include_diagnostics: bool = False
    ) -> CurrentBalance:
        totals = self.aggregator.aggregate(anchor.account, anchor.set_at)
        current = compute_current_balance(
            account_id=anchor.account.id,
            owner_id=anchor.owner_id,
            account_type=anchor.account.type,
            anchor_balance_cents=anchor.balance_cents,
            anchor_set_at=anchor.set_at,
            totals=totals,
            anchor_is_default=anchor.is_default,
            include_diagnostics=include_diagnostics,
        )
        logger.info(
            f"balance_computed: account_id={current.account_id} "
            f"user_id={self.user_id} balance_cents={current.balance_cents} "
            f"draft_count={current.draft_count}"
        )
        return current

    def current_balance(
        self, account_id: int, *, include_diagnostics: bool = False
    ) -> CurrentBalance:
        anchor = self.anchors.resolve(account_id, self.user_id)
        return self._current(anchor, include_diagnostics=include_diagnostics)

    def set_balance(
        self, account_id: int, new_balance: AmountInput, *, reason: Optional[str] = None
    ) -> AnchorWrite:
        cents = to_cents(new_balance)
        anchor = self.anchors.resolve(account_id, self.user_id)
        if anchor.owner_id != self.user_id:
            raise InvalidInputError("Only the account owner can set its balance")

        previous = self._current(anchor)
        set_at = self.now()
        discrepancy = cents - previous.balance_cents
        change_type = (
            BalanceChangeType.initial_set
            if anchor.is_default
            else BalanceChangeType.manual_set
        )
        try:
            with self.session_factory.begin() as session:
                _upsert_anchor(
                    session,
                    account_id=account_id,
                    owner_id=anchor.owner_id,
                    balance_cents=cents,
                    set_at=set_at,
                    note=reason,
                )
                session.add(
                    BalanceHistoryEntry(
                        account_id=account_id,
                        user_id=anchor.owner_id,
                        previous_balance_cents=previous.balance_cents,
                        new_balance_cents=cents,
                        change_amount_cents=discrepancy,
                        change_type=change_type,
                        reason=reason,
                        expected_balance_cents=previous.balance_cents,
                        discrepancy_cents=discrepancy,
                        is_reconciliation=(
                            change_type == BalanceChangeType.manual_set
                            and abs(discrepancy) > self.settings.tolerance_cents
                        ),
                        effective_date=set_at.date(),
                        created_at=set_at,
                    )
                )
        except SQLAlchemyError as exc:
            logger.exception(f"balance_set_failed: account_id={account_id}")
            raise UpstreamFailureError("Failed to store balance") from exc

        logger.info(
            f"balance_set: account_id={account_id} user_id={self.user_id} "
            f"balance_cents={cents} previous_cents={previous.balance_cents} "
            f"change_type={change_type.value}"
        )
        return AnchorWrite(
            account_id=account_id,
            balance_cents=cents,
            set_at=set_at,
            previous_balance_cents=previous.balance_cents,
            discrepancy_cents=discrepancy,
            change_type=change_type,
        )

    def _history(
        self,
        account_id: int,
        granularity: Granularity,
        *,
        since: Optional[date] = None,
        with_gaps: bool = False,
    ) -> tuple[CurrentBalance, BucketSet, tuple[ReconstructedPeriod, ...]]:
        anchor = self.anchors.resolve(account_id, self.user_id)
        current = self._current(anchor)
        bucket_set = self.archive.collect(
            anchor.account,
            granularity,
            since=since,
            pending_change_cents=current.pending_draft_effect_cents,
        )
        buckets = fill_gaps(bucket_set.buckets) if with_gaps else bucket_set.buckets
        periods = reconstruct(
            current.balance_cents,
            buckets,
            live_region_change_cents=bucket_set.live_region_change_cents,
        )
        problems = verify_chain(periods, tolerance_cents=self.settings.tolerance_cents)
        if problems:
            logger.warning(
                f"history_chain_violation: account_id={account_id} problems={problems}"
            )
            raise UpstreamFailureError("Reconstructed history is inconsistent")
        return current, bucket_set, periods

    def daily_history(
        self,
        account_id: int,
        period: Optional[Period] = None,
        limit: Optional[int] = None,
        *,
        fill_gaps: bool = False,
    ) -> HistoryResult:
        period = period or resolve_period(None, None, None)
        limit = self.settings.history_limit if limit is None else limit
        if limit < 1:
            raise InvalidInputError("Limit must be positive")

        current, bucket_set, periods = self._history(
            account_id, Granularity.day, since=period.start, with_gaps=fill_gaps
        )
        in_range = tuple(p for p in periods if period.contains(p.bucket.start))
        gaps = find_gaps([b for b in bucket_set.buckets if period.contains(b.start)])
        return HistoryResult(
            current=current,
            granularity=Granularity.day,
            periods=in_range[:limit],
            boundary=bucket_set.boundary,
            live_region_change_cents=bucket_set.live_region_change_cents,
            gaps=gaps,
            unbucketed_event_count=bucket_set.unbucketed_event_count,
        )

    def monthly_archive_summary(self, account_id: int) -> HistoryResult:
        current, bucket_set, periods = self._history(account_id, Granularity.month)
        return HistoryResult(
            current=current,
            granularity=Granularity.month,
            periods=periods,
            boundary=bucket_set.boundary,
            live_region_change_cents=bucket_set.live_region_change_cents,
            gaps=find_gaps(bucket_set.buckets),
            unbucketed_event_count=bucket_set.unbucketed_event_count,
        )

    def balance_history(
        self,
        account_id: int,
        *,
        limit: int = 50,
        offset: int = 0,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> tuple[list[BalanceHistoryEntry], int]:
        """Set-balance audit entries, newest first, optionally restricted to an
        inclusive effective-date range."""
        if limit < 1 or offset < 0:
            raise InvalidInputError("Invalid pagination")
        if start is not None and end is not None and start > end:
            raise InvalidInputError("Start date must be before end date")
        anchor = self.anchors.resolve(account_id, self.user_id)
        return self.store.fetch_balance_history(
            anchor.account.id, limit=limit, offset=offset, start=start, end=end
        )


def _upsert_anchor(
    session: Session,
    *,
    account_id: int,
    owner_id: int,
    balance_cents: int,
    set_at: datetime,
    note: Optional[str],
) -> None:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise UpstreamFailureError(f"Unsupported database dialect: {dialect}")

    stmt = insert(BalanceAnchor).values(
        account_id=account_id,
        user_id=owner_id,
        balance_cents=balance_cents,
        set_at=set_at,
        note=note,
        created_at=set_at,
        updated_at=set_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["account_id", "user_id"],
        set_={
            "balance_cents": stmt.excluded.balance_cents,
            "set_at": stmt.excluded.set_at,
            "note": stmt.excluded.note,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    session.execute(stmt)
