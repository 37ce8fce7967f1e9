"""
Module: credit_kernel.models.activity_log
Responsibility: Append-only rows written by the database activity log sink.
Architecture position: Kernel > Models.  May import from db/ only.

The kernel writes these rows after the primary transaction commits and
never reads them back for any correctness decision.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_kernel.db.base import Base
from credit_kernel.db.types import ExternalId, LongText, StatusCode

if TYPE_CHECKING:
    from credit_kernel.domain.dtos import ActivityEntry


class ActivityLogRecord(Base):
    __tablename__ = "activity_log"

    __table_args__ = (
        CheckConstraint(
            "activity_type IN ('create', 'update', 'delete', 'approve', 'reject')",
            name="ck_activity_log_valid_type",
        ),
        CheckConstraint(
            "entity_type IN ('client', 'invoice', 'payment', 'credit_limit')",
            name="ck_activity_log_valid_entity",
        ),
        Index("idx_activity_log_entity", "entity_type", "entity_id"),
        Index("idx_activity_log_actor", "actor_id", "occurred_at"),
    )

    actor_id: Mapped[ExternalId | None] = mapped_column(nullable=True)
    activity_type: Mapped[StatusCode] = mapped_column(nullable=False)
    entity_type: Mapped[StatusCode] = mapped_column(nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)
    description: Mapped[LongText] = mapped_column(nullable=False)
    # "metadata" is reserved on declarative classes
    entry_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ActivityLogRecord {self.activity_type} "
            f"{self.entity_type}:{self.entity_id}>"
        )

    def to_dto(self) -> ActivityEntry:
        from credit_kernel.domain.dtos import ActivityEntry, ActivityType, EntityType

        return ActivityEntry(
            actor_id=self.actor_id,
            activity_type=ActivityType(self.activity_type),
            entity_type=EntityType(self.entity_type),
            entity_id=self.entity_id,
            description=self.description,
            occurred_at=self.occurred_at,
            metadata=dict(self.entry_metadata or {}),
        )
