"""
Read helpers over the activity log table.

Only presentation layers read the activity log; nothing in the kernel
makes a decision from it.
"""

from sqlalchemy import select

from credit_kernel.domain.dtos import ActivityEntry, EntityType
from credit_kernel.models.activity_log import ActivityLogRecord
from credit_kernel.selectors.base import BaseSelector


class ActivityLogSelector(BaseSelector[ActivityLogRecord]):

    def for_actor(self, actor_id: str, limit: int = 50) -> list[ActivityEntry]:
        stmt = (
            select(ActivityLogRecord)
            .where(ActivityLogRecord.actor_id == actor_id)
            .order_by(ActivityLogRecord.occurred_at.desc())
            .limit(limit)
        )
        return [r.to_dto() for r in self.session.scalars(stmt)]

    def for_entity(self, entity_type: EntityType, entity_id: str) -> list[ActivityEntry]:
        stmt = (
            select(ActivityLogRecord)
            .where(
                ActivityLogRecord.entity_type == entity_type.value,
                ActivityLogRecord.entity_id == str(entity_id),
            )
            .order_by(ActivityLogRecord.occurred_at)
        )
        return [r.to_dto() for r in self.session.scalars(stmt)]
