from datetime import date
from decimal import Decimal

import pytest

from errors import InvalidInputError
from money import from_cents, to_cents
from periods import Granularity, keys_between, resolve_period


@pytest.mark.parametrize(
    "value,expected",
    [
        (Decimal("12.34"), 1234),
        ("12,34", 1234),
        ("€ 1.234,56", 123456),
        (10, 1000),
        (-5.5, -550),
        (Decimal("0.005"), 1),
    ],
)
def test_to_cents_parses_amounts(value, expected) -> None:
    assert to_cents(value) == expected


@pytest.mark.parametrize(
    "value",
    ["abc", "", True, None, "NaN", float("inf"), "1e30", "1e20", Decimal("-1e17")],
)
def test_to_cents_rejects_non_numeric(value) -> None:
    with pytest.raises(InvalidInputError):
        to_cents(value)


def test_from_cents_has_two_places() -> None:
    assert from_cents(-1250) == Decimal("-12.50")


def test_resolve_period_defaults_to_this_month() -> None:
    period = resolve_period(None, None, None, today=date(2025, 3, 15))

    assert period.slug == "this_month"
    assert (period.start, period.end) == (date(2025, 3, 1), date(2025, 3, 15))


def test_resolve_period_last_month_crosses_year() -> None:
    period = resolve_period("last_month", None, None, today=date(2025, 1, 10))

    assert (period.start, period.end) == (date(2024, 12, 1), date(2024, 12, 31))


def test_resolve_period_custom_range() -> None:
    period = resolve_period(None, "2025-02-01", "2025-02-10", today=date(2025, 3, 1))

    assert period.slug == "custom"
    assert period.contains(date(2025, 2, 10))
    assert not period.contains(date(2025, 2, 11))


@pytest.mark.parametrize(
    "slug,start,end",
    [
        ("weekly", None, None),
        ("custom", "2025-02-01", None),
        ("custom", "2025-02-10", "2025-02-01"),
        ("custom", "01.02.2025", "2025-02-10"),
    ],
)
def test_resolve_period_rejects_bad_input(slug, start, end) -> None:
    with pytest.raises(ValueError):
        resolve_period(slug, start, end, today=date(2025, 3, 1))


def test_keys_between_walks_across_year_end() -> None:
    assert list(keys_between("2025-02", "2024-11", Granularity.month)) == [
        "2025-01",
        "2024-12",
    ]
    assert list(keys_between("2025-03-01", "2025-02-27", Granularity.day)) == [
        "2025-02-28"
    ]


def test_to_cents_accepts_the_largest_storable_amount() -> None:
    assert to_cents("92233720368547758.07") == 2**63 - 1
