"""
Module: credit_kernel.models.credit_request
Responsibility: ORM persistence for credit-limit-increase requests.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Lifecycle: DB check constraint limits status values; transition rules
      live in domain/credit_request.py.
    - At most one pending request per client: partial unique index on
      client_id where status = 'pending'.
    - ``current_limit`` is a snapshot taken when the request was filed and
      is never updated.

Failure modes:
    - IntegrityError on a second pending request for the same client.
    - StaleDataError on flush if another transaction decided the request.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, text
from sqlalchemy.orm import Mapped, mapped_column

from credit_kernel.db.base import Base, UUIDString, VersionedMixin
from credit_kernel.db.types import ExternalId, LongText, Money, StatusCode

if TYPE_CHECKING:
    from credit_kernel.domain.dtos import CreditLimitRequestInfo


class CreditLimitRequest(VersionedMixin, Base):
    """Persistent credit limit request."""

    __tablename__ = "credit_limit_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_credit_requests_valid_status",
        ),
        CheckConstraint("requested_limit >= 0", name="ck_credit_requests_limit_non_negative"),
        Index(
            "uq_credit_requests_one_pending",
            "client_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("idx_credit_requests_provider", "provider_id", "status"),
    )

    client_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("client_accounts.id"),
        nullable=False,
    )
    provider_id: Mapped[ExternalId] = mapped_column(nullable=False)
    current_limit: Mapped[Money] = mapped_column(nullable=False)
    requested_limit: Mapped[Money] = mapped_column(nullable=False)
    status: Mapped[StatusCode] = mapped_column(nullable=False, default="pending")
    requested_by: Mapped[ExternalId | None] = mapped_column(nullable=True)
    decided_by: Mapped[ExternalId | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[LongText | None] = mapped_column(nullable=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": revision, "version_id_generator": False}

    def __repr__(self) -> str:
        return (
            f"<CreditLimitRequest {self.id} client={self.client_id} "
            f"{self.current_limit}->{self.requested_limit} status={self.status}>"
        )

    def to_dto(self) -> CreditLimitRequestInfo:
        """Convert ORM model to frozen domain DTO."""
        from credit_kernel.domain.dtos import CreditLimitRequestInfo, CreditRequestStatus

        return CreditLimitRequestInfo(
            id=self.id,
            client_id=self.client_id,
            provider_id=self.provider_id,
            current_limit=self.current_limit,
            requested_limit=self.requested_limit,
            status=CreditRequestStatus(self.status),
            requested_by=self.requested_by,
            decided_by=self.decided_by,
            decided_at=self.decided_at,
            notes=self.notes,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
