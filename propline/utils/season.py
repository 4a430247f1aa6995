"""
NBA season helpers.

An NBA season label spans October (inclusive) through September:
any date before October 1 of year Y belongs to "(Y-1)-YY", any date on or
after it belongs to "Y-(Y+1)" with a two-digit second year.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

# UTC timezone for Python < 3.11 compatibility
try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc

SEASON_START_MONTH = 10

DateLike = Union[date, datetime]


def today_utc() -> date:
    return datetime.now(UTC).date()


def season_label(on: Optional[DateLike] = None) -> str:
    """
    Season label for a date.

    Examples:
        >>> season_label(date(2025, 9, 30))
        '2024-25'
        >>> season_label(date(2025, 10, 1))
        '2025-26'
        >>> season_label(date(2099, 11, 2))
        '2099-00'
    """
    if on is None:
        on = today_utc()
    year = on.year
    if on.month < SEASON_START_MONTH:
        return f"{year - 1}-{year % 100:02d}"
    return f"{year}-{(year + 1) % 100:02d}"


def season_start_year(label: str) -> int:
    """'2024-25' -> 2024"""
    return int(label.split("-")[0])


def previous_season(label: str) -> str:
    """'2024-25' -> '2023-24'"""
    start = season_start_year(label) - 1
    return f"{start}-{(start + 1) % 100:02d}"


def recent_cutoff(years: int, now: Optional[DateLike] = None) -> date:
    """Oldest date still considered recent: ``years`` years before now."""
    if now is None:
        now = today_utc()
    if isinstance(now, datetime):
        now = now.date()
    try:
        return now.replace(year=now.year - years)
    except ValueError:
        # Feb 29 -> Feb 28
        return (now - timedelta(days=1)).replace(year=now.year - years)
