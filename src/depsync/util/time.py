from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

# Graph reports "never" as the minimum DateTimeOffset.
_NEVER_YEAR = 1

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def now_utc() -> datetime:
    """Return current time as tz-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_rfc3339(value: str) -> datetime:
    """
    Parse RFC3339 timestamp string into tz-aware UTC datetime.

    Accepts strings like:
      - 2025-01-01T12:34:56Z
      - 2025-01-01T12:34:56.1234567Z  (Graph uses 7 fractional digits)
      - 2025-01-01T12:34:56+09:00
    """
    if not isinstance(value, str) or not value:
        raise ValueError("RFC3339 value must be a non-empty string")

    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    s = _FRACTION_RE.sub(r".\1", s)

    dt = datetime.fromisoformat(s)  # raises ValueError if invalid
    dt = normalize_dt(dt)
    return dt.astimezone(timezone.utc)


def parse_optional_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a nullable Graph timestamp.

    None, empty strings and the 0001-01-01 sentinel all mean "never".
    Raises ValueError for anything else that does not parse.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    dt = parse_rfc3339(value)
    if dt.year <= _NEVER_YEAR:
        return None
    return dt


def format_local(dt: Optional[datetime], *, never: str = "Never") -> str:
    """Render a tz-aware datetime in the machine's local time zone."""
    if dt is None:
        return never
    return normalize_dt(dt).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_duration(seconds: int) -> str:
    """Render a second count as MM:SS (or H:MM:SS past an hour)."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def normalize_dt(dt: datetime) -> datetime:
    """Ensure datetime is tz-aware. Raises if naive."""
    if not isinstance(dt, datetime):
        raise TypeError("dt must be a datetime")
    if dt.tzinfo is None:
        raise ValueError("naive datetime is not allowed; timezone-aware required")
    return dt
