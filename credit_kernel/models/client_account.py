"""
Module: credit_kernel.models.client_account
Responsibility: ORM persistence for a client's trade-credit account at a
    provider: the credit ceiling and account lifecycle status.
Architecture position: Kernel > Models.  May import from db/ only (domain
    DTOs are imported lazily inside ``to_dto``).

Invariants enforced:
    - credit_limit >= 0 (DB check constraint).
    - status is one of active / suspended / closed (DB check constraint).
    - ``revision`` is the compare-and-swap column.  It moves whenever the
      account's credit limit changes *and* whenever an invoice is created
      for the account or a pending invoice grows, so two transactions that
      both reserve credit against the same account cannot both commit.

Failure modes:
    - StaleDataError on flush if another transaction moved ``revision``.
    - IntegrityError on a negative credit limit.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_kernel.db.base import Base, VersionedMixin
from credit_kernel.db.types import ExternalId, Money, StatusCode

if TYPE_CHECKING:
    from credit_kernel.domain.dtos import ClientAccountInfo


class ClientAccount(VersionedMixin, Base):
    """
    A client's credit account with one provider.

    ``credit_limit`` is mutated only by credit request approval or the
    administrative limit change; invoice and payment flows read it but never
    write it.
    """

    __tablename__ = "client_accounts"

    __table_args__ = (
        CheckConstraint("credit_limit >= 0", name="ck_client_accounts_limit_non_negative"),
        CheckConstraint(
            "status IN ('active', 'suspended', 'closed')",
            name="ck_client_accounts_valid_status",
        ),
        Index("idx_client_accounts_provider", "provider_id"),
    )

    provider_id: Mapped[ExternalId] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    credit_limit: Mapped[Money] = mapped_column(nullable=False)
    status: Mapped[StatusCode] = mapped_column(nullable=False, default="active")
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": revision, "version_id_generator": False}

    def __repr__(self) -> str:
        return f"<ClientAccount {self.id} limit={self.credit_limit} status={self.status}>"

    def to_dto(self) -> ClientAccountInfo:
        """Convert ORM model to frozen domain DTO."""
        from credit_kernel.domain.dtos import ClientAccountInfo, ClientAccountStatus

        return ClientAccountInfo(
            id=self.id,
            provider_id=self.provider_id,
            name=self.name,
            credit_limit=self.credit_limit,
            status=ClientAccountStatus(self.status),
            revision=self.revision,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
