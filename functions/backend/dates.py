"""
Calendar helpers. Dates travel as ISO ``YYYY-MM-DD`` strings.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def today() -> date:
    return datetime.now(timezone.utc).date()


def today_iso() -> str:
    return today().isoformat()


def start_of_week(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def parse_day(value: Optional[str]) -> Optional[date]:
    """Parse a date or timestamp string; None for anything else (e.g. ``09:00``)."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def is_time_value(value) -> bool:
    """True for ``HH:MM[:SS]`` strings and ISO timestamps."""
    if not value or not isinstance(value, str):
        return False
    parts = value.split(":")
    if 2 <= len(parts) <= 3 and all(p.isdigit() for p in parts):
        return 1 <= len(parts[0]) <= 2 and all(len(p) == 2 for p in parts[1:])
    return parse_day(value) is not None
