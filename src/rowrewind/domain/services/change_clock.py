"""UTC capture times and their textual form.

Capture times are stored as "YYYY-MM-DD HH:MM:SS" (UTC, second
precision), which sorts lexicographically in time order.
"""

from datetime import datetime, timezone
from typing import Callable

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
TIMESTAMP_LENGTH = 19

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC with second precision.

    Naive datetimes are taken to already be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime to the stored textual form."""
    return to_utc(value).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a revert bound.

    Accepts None, a datetime, the stored "YYYY-MM-DD HH:MM:SS" form or any
    ISO-8601 string understood by ``datetime.fromisoformat``.

    Raises:
        ValueError: If the string cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc(value)

    text = value.strip()
    try:
        parsed = datetime.strptime(text, TIMESTAMP_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(
                f"invalid timestamp {value!r}, expected 'YYYY-MM-DD HH:MM:SS' (UTC)"
            ) from None
    return to_utc(parsed)
