"""Timestamp helpers.

Documents store timestamps as integer epoch milliseconds; models use
timezone-aware UTC datetimes truncated to the same precision.
"""

from datetime import datetime, timezone
from typing import Optional


def now() -> datetime:
    """Current UTC time at millisecond precision."""
    current = datetime.now(timezone.utc)
    return current.replace(microsecond=(current.microsecond // 1000) * 1000)


def to_millis(value: datetime) -> int:
    return int(round(value.timestamp() * 1000))


def from_millis(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
