# Overview: UTC clock and ISO-8601 parsing/serialization helpers.

"""
Time handling

The database stores naive datetimes that are always UTC. Anything coming
in from a client is normalized to that form, and everything going out is
rendered as ISO-8601 with a trailing "Z".

Event dates are calendar dates (no time zone). Application deadlines are
datetimes; a deadline given as a bare date means the end of that day, so
"apply by 2026-05-01" still accepts applications on May 1st.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the form stored in the database)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2026-05-01"                 -> 2026-05-01 23:59:59.999999
    "2026-05-01T09:00"           -> taken as UTC
    "2026-05-01T18:00+09:00"     -> 2026-05-01 09:00 (UTC, naive)
    None or blank                -> None

    Raises ValueError for anything else.
    """
    text = _clean(value)
    if text is None:
        return None

    if len(text) == 10:
        return datetime.combine(date.fromisoformat(text), time.max)

    # fromisoformat() on 3.10 does not accept the "Z" suffix
    parsed = datetime.fromisoformat(text[:-1] + "+00:00" if text.endswith("Z") else text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse "YYYY-MM-DD"; a longer datetime string is cut to its date part."""
    text = _clean(value)
    if text is None:
        return None
    return date.fromisoformat(text[:10])


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored (naive UTC) or aware datetime as "YYYY-MM-DDTHH:MM:SSZ"."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def to_iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None
