"""
Activity log -- best-effort audit trail, written after commit.

Responsibility:
    Defines the ``ActivityLog`` sink protocol, a database-backed sink, and
    the emitter the engine calls once a primary transaction has committed.

Architecture position:
    Kernel > Services -- imperative shell.  The sink is an external
    collaborator; the kernel writes to it but never reads it back for any
    correctness decision.

Invariants enforced:
    - Fire-and-forget: ``ActivityLogEmitter.emit`` never raises.  A failing
      sink is logged locally at WARNING (``activity_log_failed``) and is
      never retried and never rolls back the primary write.
    - The database sink writes in its own short session, never inside the
      primary transaction.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sqlalchemy.orm import Session, sessionmaker

from credit_kernel.domain.dtos import ActivityEntry
from credit_kernel.logging_config import get_logger
from credit_kernel.models.activity_log import ActivityLogRecord

logger = get_logger("services.activity_log")


@runtime_checkable
class ActivityLog(Protocol):
    """Audit sink: ``log(entry)`` records one activity entry."""

    def log(self, entry: ActivityEntry) -> None: ...


class DatabaseActivityLog:
    """Writes entries to the ``activity_log`` table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def log(self, entry: ActivityEntry) -> None:
        session = self._session_factory()
        try:
            session.add(
                ActivityLogRecord(
                    actor_id=entry.actor_id,
                    activity_type=entry.activity_type.value,
                    entity_type=entry.entity_type.value,
                    entity_id=entry.entity_id,
                    description=entry.description,
                    entry_metadata=dict(entry.metadata),
                    occurred_at=entry.occurred_at,
                )
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class ActivityLogEmitter:
    """
    Hands entries to the sink and absorbs its failures.

    A ``None`` sink disables audit logging entirely.
    """

    def __init__(self, sink: ActivityLog | None):
        self._sink = sink

    def emit(self, entry: ActivityEntry) -> None:
        if self._sink is None:
            return
        try:
            self._sink.log(entry)
        except Exception:
            logger.warning(
                "activity_log_failed",
                extra={
                    "activity_type": entry.activity_type.value,
                    "entity_type": entry.entity_type.value,
                    "entity_id": entry.entity_id,
                },
                exc_info=True,
            )
