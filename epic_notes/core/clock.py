"""
Single source of "now" for every expiry decision (sessions, codes, 2FA freshness).
Tests monkeypatch `utcnow` to move time forward without sleeping.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    SQLite hands back naive datetimes even for TIMESTAMP(timezone=True) columns.
    Everything we store is UTC, so a naive value is interpreted as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
