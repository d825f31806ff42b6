"""Custom SQLAlchemy column types for multi-database compatibility."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.dialects import postgresql
from sqlalchemy.types import CHAR, DateTime, TypeDecorator


def is_guid(value: Any) -> bool:
    """Whether ``value`` can be bound to a ``GUID`` column on every dialect."""

    if isinstance(value, uuid.UUID):
        return True
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class GUID(TypeDecorator):
    """Platform-independent GUID/UUID type.

    Uses ``UUID`` on PostgreSQL and a 36-character string elsewhere. Values are
    always handed back as strings so identifiers compare equal to path
    parameters without conversion.
    """

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):  # type: ignore[override]
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value)

    def process_result_value(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return value
        return str(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp normalised to UTC.

    SQLite drops ``tzinfo`` on the way back, which makes stored sale dates
    incomparable with ``datetime.now(timezone.utc)``. Naive values are treated
    as UTC in both directions.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return value
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
