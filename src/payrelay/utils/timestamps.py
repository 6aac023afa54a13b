"""Timestamp helpers for values stored in DynamoDB.

Key conditions on ``created_at`` and ``expires_at`` compare the stored
strings lexically, so every timestamp is written in UTC with a fixed
microsecond precision. Without the fixed precision a whole-second value
drops its fraction and ``+`` sorts before ``.``.
"""

import datetime as dt
from typing import Any


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def to_iso(value: dt.datetime) -> str:
    """Serialise a datetime for storage; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC).isoformat(timespec="microseconds")


def parse_iso(value: Any) -> dt.datetime | None:
    """Parse a stored timestamp; empty values give None."""
    if not value:
        return None
    parsed = dt.datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed
