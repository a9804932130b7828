from datetime import date, datetime

import pytest

from conftest import add_account, add_anchor, add_transaction, link_household
from errors import InvalidInputError, UnauthorizedError
from services import BalanceService, HouseholdResolver, can_view


def test_can_view_rules() -> None:
    assert can_view(1, 1, None)
    assert can_view(2, 1, 1)
    assert not can_view(2, 1, None)
    assert not can_view(2, 1, 3)


def test_resolver_finds_partner_from_either_side(session_factory) -> None:
    link_household(session_factory, owner_user_id=1, partner_user_id=2)
    resolver = HouseholdResolver(session_factory)

    assert resolver.resolve_linked_user(1) == 2
    assert resolver.resolve_linked_user(2) == 1
    assert resolver.resolve_linked_user(3) is None


def test_resolver_ignores_inactive_links(session_factory) -> None:
    link_household(session_factory, owner_user_id=1, partner_user_id=2, active=False)

    assert HouseholdResolver(session_factory).resolve_linked_user(2) is None


def test_partner_sees_owner_anchor_and_events(session_factory) -> None:
    account_id = add_account(session_factory, user_id=1)
    add_anchor(session_factory, account_id, 20_000, datetime(2025, 1, 1))
    add_transaction(session_factory, account_id, 1_500, date(2025, 1, 3))
    add_transaction(session_factory, account_id, 999, date(2025, 1, 4), user_id=2)
    link_household(session_factory, owner_user_id=1, partner_user_id=2)

    owner_view = BalanceService(session_factory, 1).current_balance(account_id)
    partner_view = BalanceService(session_factory, 2).current_balance(account_id)

    assert partner_view.balance_cents == owner_view.balance_cents == 17_501
    assert partner_view.owner_id == 1
    assert partner_view.anchor_set_at == datetime(2025, 1, 1)


def test_partner_cannot_set_owner_balance(session_factory) -> None:
    account_id = add_account(session_factory, user_id=1)
    link_household(session_factory, owner_user_id=1, partner_user_id=2)

    with pytest.raises(InvalidInputError):
        BalanceService(session_factory, 2).set_balance(account_id, 10)


def test_unlinked_user_cannot_read_history(session_factory) -> None:
    account_id = add_account(session_factory, user_id=1)
    link_household(session_factory, owner_user_id=1, partner_user_id=2)

    with pytest.raises(UnauthorizedError):
        BalanceService(session_factory, 3).monthly_archive_summary(account_id)


def test_partner_anchor_row_on_owner_account_is_ignored(session_factory) -> None:
    account_id = add_account(session_factory, user_id=1)
    add_anchor(session_factory, account_id, 20_000, datetime(2025, 1, 1))
    add_anchor(session_factory, account_id, 1_000, datetime(2025, 1, 5), user_id=2)
    add_transaction(session_factory, account_id, 1_500, date(2025, 1, 3))
    link_household(session_factory, owner_user_id=1, partner_user_id=2)

    owner_view = BalanceService(session_factory, 1).current_balance(account_id)
    partner_view = BalanceService(session_factory, 2).current_balance(account_id)

    assert partner_view.balance_cents == owner_view.balance_cents == 18_500
    assert partner_view.anchor_set_at == datetime(2025, 1, 1)
