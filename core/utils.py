"""
Time helpers. Persisted and wire timestamps are always timezone-aware UTC.
"""
from datetime import datetime, timezone

UTC = timezone.utc


def get_utc_now() -> datetime:
    return datetime.now(UTC)


def to_utc(dt: datetime) -> datetime:
    """Convert any datetime to UTC; naive values are assumed to be UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp as returned by PostgREST into aware UTC.

    Accepts a trailing "Z" and fractional seconds of any precision.

    Raises:
        ValueError: if value is not an ISO-8601 timestamp
    """
    text = value.strip().replace("Z", "+00:00")
    if "." in text:
        # Normalize the fraction to microseconds for datetime.fromisoformat
        head, _, tail = text.partition(".")
        digits = ""
        while tail and tail[0].isdigit():
            digits, tail = digits + tail[0], tail[1:]
        text = f"{head}.{digits[:6].ljust(6, '0')}{tail}"
    return to_utc(datetime.fromisoformat(text))
