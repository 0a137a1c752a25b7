"""
Timestamp helpers.

All timestamps inside BenchRank are timezone-aware UTC datetimes so that
ordering never mixes naive and aware values (the MongoDB driver hands back
naive UTC datetimes by default).
"""

from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Normalize a datetime or ISO-8601 string to an aware UTC datetime.

    Naive values are assumed to be UTC. Returns None for None.

    Raises:
        ValueError: If the value is neither a datetime nor a parseable string
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize an aware datetime as ISO-8601 with a trailing Z."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
