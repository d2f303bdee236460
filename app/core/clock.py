"""
Timezone helpers.

All timestamps are written as timezone-aware UTC. Some backends (SQLite)
hand them back naive, so anything read from the database goes through
as_utc() before it is compared with utcnow().
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
