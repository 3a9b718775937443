"""
Module: approval_kernel.db.base
Responsibility: Declarative base and portable column types for the approval
    tables.
Architecture position: Kernel > DB.  Lowest import target in the kernel;
    imports nothing from models/, services/, stores/ or domain/.

Invariants enforced:
    - Surrogate keys are uuid4 values stored as String(36), so the schema is
      the same on SQLite and PostgreSQL.
    - Rule thresholds (Decimal) map to Numeric(38, 9).
    - Timestamps are aware UTC on the way in and on the way out, including
      on SQLite, which stores no offset.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, Integer, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, CHAR-like String(36) in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class UTCDateTime(TypeDecorator):
    """
    Aware datetime column.

    Binding a naive datetime is an error.  Values read back without an
    offset are UTC by construction and are tagged as such.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base: every table gets a uuid4 ``id`` primary key."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )
