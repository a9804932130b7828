import logging
from datetime import date, datetime

import pytest

from conftest import (
    add_account,
    add_anchor,
    add_summary,
    add_transaction,
    add_transfer,
)
from errors import InvalidInputError
from models import AccountType
from periods import Granularity, Period
from services import BalanceService

MARCH = Period("custom", date(2025, 3, 1), date(2025, 3, 31))


def seed_march(factory) -> int:
    account_id = add_account(factory, name="Card", type=AccountType.expense)
    savings = add_account(factory, name="Savings", type=AccountType.income)
    add_summary(factory, account_id, date(2025, 3, 1), -100)
    add_summary(factory, account_id, date(2025, 3, 2), -50)
    add_transaction(factory, account_id, 20, date(2025, 3, 4))
    add_transfer(factory, savings, account_id, 10, date(2025, 3, 5))
    add_transaction(factory, account_id, 5, date(2025, 3, 5), is_draft=True)
    return account_id


def test_daily_history_walks_back_from_current_balance(session_factory) -> None:
    account_id = seed_march(session_factory)

    result = BalanceService(session_factory, 1).daily_history(account_id, MARCH)

    assert result.granularity == Granularity.day
    assert result.current.balance_cents == -15
    assert result.boundary == date(2025, 3, 2)
    assert result.live_region_change_cents == -5
    assert [
        (p.bucket.key, p.opening_cents, p.closing_cents, p.bucket.archived)
        for p in result.periods
    ] == [
        ("2025-03-05", -20, -10, False),
        ("2025-03-04", 0, -20, False),
        ("2025-03-02", 50, 0, True),
        ("2025-03-01", 150, 50, True),
    ]
    assert result.gaps == ("2025-03-03",)


def test_daily_history_can_fill_gaps(session_factory) -> None:
    account_id = seed_march(session_factory)

    result = BalanceService(session_factory, 1).daily_history(
        account_id, MARCH, fill_gaps=True
    )

    filler = result.periods[2]
    assert filler.bucket.key == "2025-03-03"
    assert filler.bucket.implicit is True
    assert filler.opening_cents == filler.closing_cents == 0
    assert len(result.periods) == 5


def test_daily_history_respects_range_and_limit(session_factory) -> None:
    account_id = seed_march(session_factory)
    service = BalanceService(session_factory, 1)

    limited = service.daily_history(account_id, MARCH, 2)
    assert [p.bucket.key for p in limited.periods] == ["2025-03-05", "2025-03-04"]

    window = service.daily_history(
        account_id, Period("custom", date(2025, 3, 2), date(2025, 3, 4))
    )
    assert [(p.bucket.key, p.closing_cents) for p in window.periods] == [
        ("2025-03-04", -20),
        ("2025-03-02", 0),
    ]
    assert window.gaps == ("2025-03-03",)


def test_daily_history_rejects_non_positive_limit(session_factory) -> None:
    account_id = seed_march(session_factory)

    with pytest.raises(InvalidInputError):
        BalanceService(session_factory, 1).daily_history(account_id, MARCH, 0)


def test_monthly_summary_chains_archived_and_live_months(session_factory) -> None:
    account_id = add_account(session_factory)
    add_summary(session_factory, account_id, date(2025, 1, 15), -120)
    add_summary(session_factory, account_id, date(2025, 1, 20), -80)
    add_anchor(session_factory, account_id, 800, datetime(2025, 2, 1))
    add_transaction(session_factory, account_id, 50, date(2025, 2, 10))

    result = BalanceService(session_factory, 1).monthly_archive_summary(account_id)

    assert result.current.balance_cents == 750
    assert [
        (p.bucket.key, p.opening_cents, p.closing_cents, p.bucket.archived)
        for p in result.periods
    ] == [
        ("2025-02", 800, 750, False),
        ("2025-01", 1_000, 800, True),
    ]
    assert result.gaps == ()


def test_month_split_by_boundary_is_merged_and_live(session_factory) -> None:
    account_id = add_account(session_factory)
    add_summary(session_factory, account_id, date(2025, 1, 15), -120)
    add_transaction(session_factory, account_id, 30, date(2025, 1, 25))
    add_transaction(session_factory, account_id, 50, date(2025, 2, 10))

    result = BalanceService(session_factory, 1).monthly_archive_summary(account_id)

    assert result.current.balance_cents == -80
    january = result.periods[1]
    assert january.bucket.key == "2025-01"
    assert january.bucket.net_change_cents == -150
    assert january.bucket.archived is False
    assert (january.opening_cents, january.closing_cents) == (120, -30)


def test_account_without_activity_has_empty_history(session_factory) -> None:
    account_id = add_account(session_factory)

    result = BalanceService(session_factory, 1).monthly_archive_summary(account_id)

    assert result.periods == ()
    assert result.boundary is None
    assert result.current.balance_cents == 0


def test_transfer_moves_daily_net_between_both_accounts(session_factory) -> None:
    checking = add_account(session_factory, name="Checking", type=AccountType.income)
    savings = add_account(session_factory, name="Savings", type=AccountType.income)
    add_transfer(session_factory, checking, savings, 40, date(2025, 3, 10))
    service = BalanceService(session_factory, 1)

    (source,) = service.daily_history(checking, MARCH).periods
    (target,) = service.daily_history(savings, MARCH).periods

    assert source.bucket.key == target.bucket.key == "2025-03-10"
    assert source.bucket.net_change_cents == -40
    assert target.bucket.net_change_cents == 40
    assert (source.bucket.transfers_in_count, source.bucket.transfers_out_count) == (0, 1)
    assert (target.bucket.transfers_in_count, target.bucket.transfers_out_count) == (1, 0)
    assert source.bucket.transfers_out[0].counterpart_name == "Savings"
    assert target.bucket.transfers_in[0].counterpart_name == "Checking"
    assert target.bucket.transfers_in[0].counterpart_account_id == checking


def test_live_day_lists_its_transactions(session_factory) -> None:
    account_id = add_account(session_factory)
    add_transaction(
        session_factory, account_id, 1_250, date(2025, 3, 4),
        recorded_at=datetime(2025, 3, 4, 9, 0), description="Groceries",
    )
    add_transaction(
        session_factory, account_id, 300, date(2025, 3, 4),
        recorded_at=datetime(2025, 3, 4, 18, 0), description="Bus",
    )
    add_transaction(
        session_factory, account_id, 99, date(2025, 3, 4), is_draft=True,
        description="Not yet booked",
    )

    (period,) = BalanceService(session_factory, 1).daily_history(
        account_id, MARCH
    ).periods

    assert [(t.amount_cents, t.description) for t in period.bucket.transactions] == [
        (1_250, "Groceries"),
        (300, "Bus"),
    ]
    assert period.bucket.transaction_count == 2
    assert period.bucket.transfers_in == period.bucket.transfers_out == ()


def test_events_on_unsummarised_archived_days_are_counted_and_logged(
    session_factory, caplog
) -> None:
    account_id = add_account(session_factory)
    add_summary(session_factory, account_id, date(2025, 3, 3), -40)
    add_transaction(session_factory, account_id, 40, date(2025, 3, 3))
    add_transaction(session_factory, account_id, 10, date(2025, 3, 1))

    with caplog.at_level(logging.WARNING, logger="services"):
        result = BalanceService(session_factory, 1).daily_history(account_id, MARCH)

    assert result.unbucketed_event_count == 1
    assert [p.bucket.key for p in result.periods] == ["2025-03-03"]
    assert "unbucketed_events" in caplog.text


def test_fully_summarised_archive_reports_no_unbucketed_events(session_factory) -> None:
    account_id = seed_march(session_factory)

    result = BalanceService(session_factory, 1).monthly_archive_summary(account_id)

    assert result.unbucketed_event_count == 0
