"""Listing age parsing.

The listings table reports how long a role has been up either as a
relative token ("3d", "2w", "1mo", "4h") or, in older sections, as an
absolute date ("Oct 05"). Both are reduced to the same pair: an integer
``age_days`` and a ``posted_at`` timestamp, one derived from the other.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

ONE_DAY = timedelta(days=1)

_AGE_TOKEN_RE = re.compile(r"^(\d+)\s*(mo|w|d|h)$", re.IGNORECASE)

_UNIT_DELTAS = {
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "mo": timedelta(days=30),  # approximate month
}

_DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%m/%d/%Y",
    "%m-%d-%Y",
]

# Formats without a year; resolved to the most recent past occurrence
_YEARLESS_FORMATS = ["%b %d", "%B %d"]
YEARLESS_LOOKBACK_YEARS = 8


def looks_like_age_token(text: str) -> bool:
    return bool(_AGE_TOKEN_RE.match(text.strip()))


def parse_age_token(text: str) -> Optional[timedelta]:
    """Parse "3d" / "2w" / "1mo" / "4h" into a duration."""
    match = _AGE_TOKEN_RE.match(text.strip())
    if not match:
        return None
    value = int(match.group(1))
    return value * _UNIT_DELTAS[match.group(2).lower()]


def parse_absolute_date(text: str, now: datetime) -> Optional[datetime]:
    """Parse a calendar date as shown in the table. Naive results are UTC."""
    s = text.strip()
    if not s:
        return None

    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
        return _as_utc(parsed)
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return _as_utc(datetime.strptime(s, fmt))
        except ValueError:
            continue

    for fmt in _YEARLESS_FORMATS:
        # Walk back to the most recent year holding the date (Feb 29 needs a leap year).
        for year in range(now.year, now.year - YEARLESS_LOOKBACK_YEARS, -1):
            try:
                parsed = _as_utc(datetime.strptime(f"{s} {year}", f"{fmt} %Y"))
            except ValueError:
                continue
            if parsed <= now:
                return parsed

    return None


def derive_age(
    now: datetime,
    age: Optional[timedelta] = None,
    posted_at: Optional[datetime] = None,
) -> tuple[int, datetime]:
    """Return a consistent ``(age_days, posted_at)`` pair.

    ``posted_at`` wins when given; otherwise it is computed from
    ``age``; with neither the listing is taken as posted ``now``.
    A posting date in the future clamps to ``(0, now)``.
    """
    if posted_at is not None:
        posted_at = _as_utc(posted_at)
        days = (now - posted_at) // ONE_DAY
        if days < 0:
            return 0, now
        return days, posted_at
    if age is not None:
        if age < timedelta(0):
            return 0, now
        return age // ONE_DAY, now - age
    return 0, now


def parse_age_cell(text: str, now: datetime) -> Optional[tuple[int, datetime]]:
    """Read an age-column cell.

    Returns None for an empty cell (no age signal). Raises ValueError for
    a non-empty cell that is neither an age token, a bare day count nor a
    date.
    """
    s = (text or "").strip()
    if not s:
        return None

    age = parse_age_token(s)
    if age is not None:
        return derive_age(now, age=age)

    if s.isdigit():
        return derive_age(now, age=int(s) * ONE_DAY)

    posted = parse_absolute_date(s, now)
    if posted is not None:
        return derive_age(now, posted_at=posted)

    raise ValueError(f"unparseable age {s!r}")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
