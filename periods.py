from datetime import date, datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import ReadOnlyMonth

EDITABLE_MONTH_COUNT = 6

Clock = Callable[[], date]


def month_key_for(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def date_in_month(value: str, month_key: str) -> bool:
    return value.startswith(month_key + "-")


def system_clock(timezone: Optional[str] = None) -> Clock:
    """Clock returning today's date in ``timezone`` (the configured one by default)."""
    zone = ZoneInfo(timezone or get_settings().timezone)

    def today() -> date:
        return datetime.now(zone).date()

    return today


def editable_month_keys(today: date, count: int = EDITABLE_MONTH_COUNT) -> list[str]:
    """Month keys that may be written to, newest first.

    Steps whole calendar months backwards from ``today``'s month; the day of
    month never takes part, so short months cannot skew the window.
    """
    year, month = today.year, today.month
    keys = []
    for _ in range(count):
        keys.append(month_key_for(year, month))
        if month == 1:
            year, month = year - 1, 12
        else:
            month -= 1
    return keys


def ensure_editable(month_key: str, clock: Clock) -> None:
    if month_key not in editable_month_keys(clock()):
        raise ReadOnlyMonth(month_key)
