from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from config import get_settings


class Granularity(str, Enum):
    day = "day"
    month = "month"


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def local_today() -> date:
    settings = get_settings()
    return datetime.now(ZoneInfo(settings.timezone)).date()


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    first = month_start(d)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    return date(month_index // 12, (month_index % 12) + 1, 1)


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def parse_month_key(key: str) -> date:
    year, month = key.split("-")
    return date(int(year), int(month), 1)


def bucket_key(d: date, granularity: Granularity) -> str:
    if granularity == Granularity.month:
        return month_key(d)
    return d.isoformat()


def bucket_bounds(key: str, granularity: Granularity) -> tuple[date, date]:
    if granularity == Granularity.month:
        first = parse_month_key(key)
        return first, month_end(first)
    day = date.fromisoformat(key)
    return day, day


def previous_key(key: str, granularity: Granularity) -> str:
    if granularity == Granularity.month:
        return month_key(add_months(parse_month_key(key), -1))
    return (date.fromisoformat(key) - timedelta(days=1)).isoformat()


def keys_between(newer: str, older: str, granularity: Granularity) -> Iterator[str]:
    """Yield the keys strictly between two bucket keys, newest first."""
    key = previous_key(newer, granularity)
    while key > older:
        yield key
        key = previous_key(key, granularity)


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or local_today()
    if period == "all":
        return Period("all", date(1970, 1, 1), today)
    if period == "last_month":
        last_month_end = month_start(today) - date.resolution
        return Period("last_month", month_start(last_month_end), last_month_end)
    if period == "last_30_days":
        return Period("last_30_days", today - timedelta(days=29), today)
    if period == "custom" or (not period and (start or end)):
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        try:
            start_date = date.fromisoformat(start)
            end_date = date.fromisoformat(end)
        except ValueError as exc:
            raise ValueError("Dates must use the YYYY-MM-DD format") from exc
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period and period != "this_month":
        raise ValueError(f"Unknown period: {period}")

    return Period("this_month", month_start(today), today)
