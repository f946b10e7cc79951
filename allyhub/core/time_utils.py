from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

# Timestamp layouts the game client renders in reports besides ISO-8601
_GAME_FORMATS = (
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
)


def utc_now() -> datetime:
    """Return current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure the given datetime is timezone-aware in UTC.

    - If dt is None, returns None.
    - If dt is naive, it is taken to already be UTC. Every timestamp this
      service writes is UTC, and SQLite hands them back without an offset.
    - If dt has a timezone, convert to UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to RFC3339/ISO8601 string with 'Z' suffix for UTC.

    Returns None if dt is None.
    """
    if dt is None:
        return None
    dt_utc = ensure_aware_utc(dt)
    s = dt_utc.isoformat()
    if s.endswith("+00:00"):
        s = s[:-6] + "Z"
    return s


def parse_utc(value: Optional[Union[str, datetime]]) -> Optional[datetime]:
    """Parse an ISO8601 string (supporting trailing 'Z'), a game-rendered
    timestamp, or pass-through datetime into aware UTC.

    Returns None if value is None or blank. Raises ValueError for strings
    that match no known layout.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_aware_utc(value)
    s = str(value).strip()
    if not s:
        return None
    if s.endswith('Z'):
        s = s[:-1] + '+00:00'
    try:
        return ensure_aware_utc(datetime.fromisoformat(s))
    except ValueError:
        pass
    for fmt in _GAME_FORMATS:
        try:
            return ensure_aware_utc(datetime.strptime(s, fmt))
        except ValueError:
            continue
    raise ValueError(f"unrecognised timestamp: {value!r}")


def epoch_ms(dt: Optional[datetime]) -> int:
    """Milliseconds since the epoch, 0 for None."""
    if dt is None:
        return 0
    return int(ensure_aware_utc(dt).timestamp()) * 1000


def hours_since(dt: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """Whole hours elapsed since dt (truncated), or None."""
    if dt is None:
        return None
    now = ensure_aware_utc(now) if now is not None else utc_now()
    return int((now - ensure_aware_utc(dt)).total_seconds() // 3600)


def sync_window_start(now: Optional[datetime] = None, window_hours: int = 6) -> datetime:
    """Start of the fixed sync bucket containing now.

    Buckets are aligned to midnight UTC (00/06/12/18 for 6h windows); this is
    not a rolling window.
    """
    now = ensure_aware_utc(now) if now is not None else utc_now()
    start_hour = (now.hour // window_hours) * window_hours
    return now.replace(hour=start_hour, minute=0, second=0, microsecond=0)


def is_within_sync_window(last_sync_at: Optional[datetime], now: Optional[datetime] = None, window_hours: int = 6) -> bool:
    if last_sync_at is None:
        return False
    return ensure_aware_utc(last_sync_at) >= sync_window_start(now, window_hours)


__all__ = [
    "utc_now",
    "ensure_aware_utc",
    "isoformat_utc",
    "parse_utc",
    "epoch_ms",
    "hours_since",
    "sync_window_start",
    "is_within_sync_window",
]
