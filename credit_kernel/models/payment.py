"""
Module: credit_kernel.models.payment
Responsibility: ORM persistence for payments applied against invoices.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - amount > 0 (DB check constraint).
    - invoice_id never changes after insert (PaymentService refuses it).
    - idempotency_key is unique when present, so one logical request can
      produce at most one payment row.
    - Voided payments stay in the table but are excluded from every
      paid-so-far sum.

Payments carry no revision of their own: every payment write touches the
owning invoice, whose revision serializes all payment activity on it.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_kernel.db.base import Base, UUIDString
from credit_kernel.db.types import ExternalId, LongText, Money, StatusCode

if TYPE_CHECKING:
    from credit_kernel.domain.dtos import PaymentInfo


class Payment(Base):
    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        CheckConstraint(
            "method IN ('bank_transfer', 'credit_card', 'cash')",
            name="ck_payments_valid_method",
        ),
        Index("idx_payments_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=False,
    )
    amount: Mapped[Money] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(nullable=False)
    method: Mapped[StatusCode] = mapped_column(nullable=False)
    receipt_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(
        String(200), nullable=True, unique=True,
    )
    created_by: Mapped[ExternalId | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    void_reason: Mapped[LongText | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.id} invoice={self.invoice_id} amount={self.amount}>"

    def to_dto(self) -> PaymentInfo:
        from credit_kernel.domain.dtos import PaymentInfo, PaymentMethod

        return PaymentInfo(
            id=self.id,
            invoice_id=self.invoice_id,
            amount=self.amount,
            payment_date=self.payment_date,
            method=PaymentMethod(self.method),
            receipt_ref=self.receipt_ref,
            idempotency_key=self.idempotency_key,
            created_by=self.created_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
            voided_at=self.voided_at,
            void_reason=self.void_reason,
        )
