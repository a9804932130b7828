from datetime import date, datetime
from typing import Optional

import pytest
from sqlalchemy.orm import Session, sessionmaker

from database import Base, make_engine, make_session_factory
from models import (
    Account,
    AccountType,
    BalanceAnchor,
    DailySummary,
    HouseholdLink,
    Transaction,
    Transfer,
)

CREATED_AT = datetime(2024, 1, 1, 8, 0)


@pytest.fixture
def session_factory(tmp_path) -> sessionmaker[Session]:
    # Ledger reads run on worker threads, each with its own connection,
    # so the database has to live in a file rather than in memory.
    engine = make_engine(f"sqlite:///{tmp_path / 'balances.db'}", ledger_workers=4)
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


def add_account(
    factory: sessionmaker[Session],
    *,
    user_id: int = 1,
    name: str = "Checking",
    type: AccountType = AccountType.expense,
) -> int:
    with factory.begin() as session:
        account = Account(
            user_id=user_id,
            name=name,
            type=type,
            created_at=CREATED_AT,
            updated_at=CREATED_AT,
        )
        session.add(account)
        session.flush()
        return account.id


def add_anchor(
    factory: sessionmaker[Session],
    account_id: int,
    balance_cents: int,
    set_at: datetime,
    *,
    user_id: int = 1,
) -> None:
    with factory.begin() as session:
        session.add(
            BalanceAnchor(
                account_id=account_id,
                user_id=user_id,
                balance_cents=balance_cents,
                set_at=set_at,
            )
        )


def add_transaction(
    factory: sessionmaker[Session],
    account_id: int,
    amount_cents: int,
    day: date,
    *,
    recorded_at: Optional[datetime] = None,
    is_draft: bool = False,
    deleted: bool = False,
    user_id: int = 1,
    description: Optional[str] = None,
) -> None:
    recorded_at = recorded_at or datetime(day.year, day.month, day.day, 12, 0)
    with factory.begin() as session:
        session.add(
            Transaction(
                account_id=account_id,
                user_id=user_id,
                amount_cents=amount_cents,
                date=day,
                is_draft=is_draft,
                description=description,
                recorded_at=recorded_at,
                deleted_at=recorded_at if deleted else None,
            )
        )


def add_transfer(
    factory: sessionmaker[Session],
    from_account_id: int,
    to_account_id: int,
    amount_cents: int,
    day: date,
    *,
    recorded_at: Optional[datetime] = None,
    description: Optional[str] = None,
) -> None:
    recorded_at = recorded_at or datetime(day.year, day.month, day.day, 12, 0)
    with factory.begin() as session:
        session.add(
            Transfer(
                from_account_id=from_account_id,
                to_account_id=to_account_id,
                amount_cents=amount_cents,
                date=day,
                description=description,
                recorded_at=recorded_at,
            )
        )


def add_summary(
    factory: sessionmaker[Session],
    account_id: int,
    day: date,
    net_change_cents: int,
    *,
    transaction_count: int = 1,
    user_id: int = 1,
) -> None:
    with factory.begin() as session:
        session.add(
            DailySummary(
                account_id=account_id,
                user_id=user_id,
                summary_date=day,
                net_change_cents=net_change_cents,
                transaction_count=transaction_count,
                total_expenses_cents=max(-net_change_cents, 0),
                total_income_cents=max(net_change_cents, 0),
                is_archived=True,
                archived_at=datetime(2025, 6, 1),
            )
        )


def link_household(
    factory: sessionmaker[Session],
    owner_user_id: int,
    partner_user_id: int,
    *,
    active: bool = True,
) -> None:
    with factory.begin() as session:
        session.add(
            HouseholdLink(
                owner_user_id=owner_user_id,
                partner_user_id=partner_user_id,
                active=active,
            )
        )
