import threading
import time

import pytest
from sqlalchemy.exc import OperationalError

from conftest import add_account
from errors import NotFoundError, UpstreamFailureError
from services import BalanceService, SqlLedgerStore, fan_out


def test_fan_out_returns_every_result() -> None:
    results = fan_out(
        {"a": lambda: 1, "b": lambda: 2, "c": lambda: 3},
        max_workers=2,
        timeout=5,
    )

    assert results == {"a": 1, "b": 2, "c": 3}


def test_fan_out_runs_tasks_concurrently() -> None:
    barrier = threading.Barrier(2, timeout=2)

    def task() -> str:
        barrier.wait()
        return "ok"

    assert fan_out({"a": task, "b": task}, max_workers=2, timeout=5) == {
        "a": "ok",
        "b": "ok",
    }


def test_fan_out_failure_aborts_without_partial_result() -> None:
    release = threading.Event()

    def slow() -> int:
        release.wait(2)
        return 1

    def broken() -> int:
        raise KeyError("boom")

    try:
        with pytest.raises(UpstreamFailureError) as excinfo:
            fan_out({"slow": slow, "broken": broken}, max_workers=2, timeout=5)
    finally:
        release.set()

    assert isinstance(excinfo.value.__cause__, KeyError)


def test_fan_out_passes_domain_errors_through() -> None:
    def missing() -> None:
        raise NotFoundError("Account not found")

    with pytest.raises(NotFoundError):
        fan_out({"missing": missing}, max_workers=1, timeout=5)


def test_fan_out_times_out() -> None:
    release = threading.Event()

    def stuck() -> int:
        release.wait(2)
        return 1

    started = time.monotonic()
    try:
        with pytest.raises(UpstreamFailureError, match="timed out"):
            fan_out({"stuck": stuck, "quick": lambda: 2}, max_workers=2, timeout=0.05)
    finally:
        release.set()

    assert time.monotonic() - started < 1.5


class BrokenDraftStore(SqlLedgerStore):
    def fetch_draft_events(self, account_id: int):
        def run(session):
            raise OperationalError("SELECT drafts", {}, Exception("disk I/O error"))

        return self._read("draft_events", run)


def test_failed_ledger_read_fails_the_whole_balance(session_factory) -> None:
    account_id = add_account(session_factory)
    service = BalanceService(
        session_factory, 1, store=BrokenDraftStore(session_factory)
    )

    with pytest.raises(UpstreamFailureError):
        service.current_balance(account_id)
