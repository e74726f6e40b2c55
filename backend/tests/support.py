"""Test helpers for steering the pinned store clock."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

BANGKOK = ZoneInfo("Asia/Bangkok")
TODAY = date(2026, 3, 10)


def noon(day: date) -> datetime:
    """Noon in Bangkok on ``day``, as the UTC timestamp the store returns."""
    return datetime.combine(day, time(12, 0), tzinfo=BANGKOK).astimezone(timezone.utc)


def set_today(store, day: date) -> None:
    store.server_timestamp.return_value = noon(day)


def next_day(store) -> date:
    current = store.server_timestamp.return_value.astimezone(BANGKOK).date()
    day = current + timedelta(days=1)
    set_today(store, day)
    return day
