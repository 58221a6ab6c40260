"""
Declarative base and shared column helpers.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    """Timezone-aware current time for timestamp columns."""
    return datetime.now(UTC)


def new_generation() -> str:
    return uuid4().hex


def isoformat(value: datetime | None) -> str | None:
    """Serialize a timestamp for change-event snapshots."""
    return value.isoformat() if value else None


class UTCDateTime(TypeDecorator):
    """
    Timestamp stored as UTC and always loaded timezone-aware.

    SQLite has no timezone support and returns naive values; naive values
    on the way in are taken to be UTC already.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
        list[Any]: JSON,
        datetime: UTCDateTime,
    }


class GenerationMixin:
    """
    Per-insert token for rows whose primary key is reused.

    A row deleted and re-inserted under the same id restarts its version
    counter; the generation keeps its change events distinct.
    """

    generation: Mapped[str] = mapped_column(Text, nullable=False, default=new_generation)
