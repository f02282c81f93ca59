"""Date range helpers for report queries"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30


def parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp

    Accepts a trailing "Z" and fractional seconds. Returns None when the value
    is empty, unparseable, or has no UTC offset.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    if "." in text:
        # Nanosecond precision is accepted; datetime keeps microseconds
        head, _, rest = text.partition(".")
        digits = ""
        while rest and rest[0].isdigit():
            digits, rest = digits + rest[0], rest[1:]
        text = f"{head}.{(digits or '0')[:6].ljust(6, '0')}{rest}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


def parse_date_range(
    start: Optional[str],
    end: Optional[str],
    now: Optional[datetime] = None
) -> Tuple[int, int]:
    """
    Resolve a query window to epoch seconds

    An unparseable start defaults to 30 days before now, an unparseable end
    defaults to now, and an end in the future is clamped to now.

    Args:
        start: RFC 3339 start timestamp
        end: RFC 3339 end timestamp
        now: Reference time (defaults to the current UTC time)

    Returns:
        (start, end) as epoch seconds
    """
    now = now or datetime.now(timezone.utc)

    start_dt = parse_rfc3339(start)
    if start_dt is None:
        if start:
            logger.warning(f"Invalid start time {start!r}, using default")
        start_dt = now - timedelta(days=DEFAULT_WINDOW_DAYS)

    end_dt = parse_rfc3339(end)
    if end_dt is None:
        if end:
            logger.warning(f"Invalid end time {end!r}, using default")
        end_dt = now
    if end_dt > now:
        end_dt = now

    return int(start_dt.timestamp()), int(end_dt.timestamp())


def format_rfc3339(epoch: int) -> str:
    """Format epoch seconds as an RFC 3339 UTC timestamp"""
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat().replace("+00:00", "Z")
