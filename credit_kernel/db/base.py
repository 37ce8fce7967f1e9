"""
Module: credit_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent
    column types, and the VersionedMixin used for optimistic concurrency.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, or domain/.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated primary key.
    - Decimal precision: Decimal maps to Numeric(38, 9).  NEVER use float for
      monetary amounts.
    - Compare-and-swap: VersionedMixin registers ``revision`` as the mapper's
      version_id_col.  Every UPDATE carries ``WHERE revision = <read value>``;
      a concurrent writer that got there first makes the UPDATE match zero
      rows and SQLAlchemy raises StaleDataError.

Failure modes:
    - StaleDataError on flush when the row's revision moved underneath us.
    - IntegrityError on duplicate UUID (astronomically unlikely).
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from credit_kernel.db.types import ExternalId, LongText, Money, Quantity, StatusCode


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime that always reads back as UTC.

    Guarantees:
        - process_bind_param: naive values are refused; aware values are
          normalized to UTC.
        - process_result_value: backends that drop tzinfo (SQLite) get UTC
          reattached, so stored and in-memory timestamps compare equal.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9) -- financial-grade precision.
        - datetime maps to UTCDateTime (timezone-aware, UTC on read).
    """

    type_annotation_map: ClassVar[dict] = {
        # Financial precision: 38 digits total, 9 decimal places
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        date: Date(),
        PyUUID: UUIDString(),
        int: BigInteger,
        # Annotated aliases from db/types.py
        Money: Numeric(38, 9),
        Quantity: Numeric(38, 9),
        ExternalId: String(128),
        StatusCode: String(20),
        LongText: String(4000),
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class VersionedMixin:
    """
    Optimistic-concurrency revision counter.

    Contract:
        Subclasses declare an integer ``revision`` column and register it as
        ``version_id_col`` with ``version_id_generator=False``, so the
        counter is application-managed.  Every mutator that participates in
        a read-then-write decision calls ``touch()``; the UPDATE it produces
        is then a compare-and-swap against the revision that was read.

    Guarantees:
        - A row is never updated from a stale read: the losing writer gets
          StaleDataError and the whole transaction rolls back.
        - New rows start at revision 1.
    """

    def touch(self) -> None:
        """Advance the revision so the next flush is a compare-and-swap."""
        self.revision = (self.revision or 0) + 1


# Re-export UUID for convenience
UUID = PyUUID
