from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Optional


UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def today_utc() -> date:
    return utc_now().date()


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values (SQLite drops tzinfo) or convert to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _normalize_fraction(s: str) -> str:
    """Pad or trim fractional seconds to 6 digits."""

    digits = s[:6]
    if len(digits) < 6:
        digits = digits + "0" * (6 - len(digits))
    return digits


def parse_rfc3339(s: Optional[str]) -> Optional[datetime]:
    """Parse a RFC3339 string and return a timezone-aware UTC datetime.

    Graph emits seven fractional digits (``2024-05-01T00:00:00.0000000``),
    which ``fromisoformat`` rejects on older interpreters, so the fraction
    is normalized first.
    """

    if not s:
        return None

    value = s.strip()
    if not value:
        return None

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"

    if "." in value:
        head, tail = value.split(".", 1)
        tz_part = ""
        frac = tail
        for sign in ("+", "-"):
            if sign in tail:
                frac, suffix = tail.split(sign, 1)
                tz_part = f"{sign}{suffix}"
                break
        value = f"{head}.{_normalize_fraction(frac)}{tz_part}"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    return ensure_utc(dt)


def to_rfc3339_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to RFC3339 in UTC."""

    if dt is None:
        return None
    value = ensure_utc(dt)
    if value is None:
        return None
    return value.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def parse_date(value: Any) -> Optional[date]:
    """Accept ``date``, ``datetime`` or ``YYYY-MM-DD[...]`` strings."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def graph_midnight(day: date) -> Dict[str, str]:
    """Graph ``dateTimeTimeZone`` for midnight UTC on ``day``."""
    return {"dateTime": f"{day.isoformat()}T00:00:00", "timeZone": "UTC"}


def graph_date(value: Optional[Dict[str, Any]]) -> Optional[date]:
    """Date portion of a Graph ``dateTimeTimeZone`` object."""
    if not value:
        return None
    raw = value.get("dateTime")
    if not raw:
        return None
    return parse_date(str(raw).split("T", 1)[0])


__all__ = [
    "UTC",
    "ensure_utc",
    "graph_date",
    "graph_midnight",
    "parse_date",
    "parse_rfc3339",
    "to_rfc3339_utc",
    "today_utc",
    "utc_now",
]
