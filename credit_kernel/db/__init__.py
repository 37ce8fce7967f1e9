"""Database layer - engine, base classes, and column types."""

from credit_kernel.db.base import UUID, Base, UTCDateTime, UUIDString, VersionedMixin
from credit_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
)
from credit_kernel.db.types import ExternalId, LongText, Money, Quantity

__all__ = [
    "get_engine",
    "get_session_factory",
    "init_engine_from_url",
    "create_tables",
    "Base",
    "VersionedMixin",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "Money",
    "Quantity",
    "ExternalId",
    "LongText",
]
