from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision and a `Z` suffix."""
    value = value or utc_now()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def unix_millis(value: Optional[datetime] = None) -> int:
    value = value or utc_now()
    return int(value.timestamp() * 1000)
