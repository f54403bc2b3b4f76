"""Utility mixins shared across ORM models."""
from __future__ import annotations

import threading
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.types import TypeDecorator


_clock_lock = threading.Lock()
_last_timestamp: datetime | None = None


def utcnow() -> datetime:
    """Current UTC time, strictly increasing within the process."""

    global _last_timestamp
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if _last_timestamp is not None and now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always loads as UTC, including on sqlite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class UUIDPrimaryKeyMixin:
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """Timestamp columns populated client-side so ordering keeps sub-second precision."""

    created_at = Column(UTCDateTime(), default=utcnow, nullable=False, index=True)
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)


__all__ = ["TimestampMixin", "UTCDateTime", "UUIDPrimaryKeyMixin", "utcnow"]
