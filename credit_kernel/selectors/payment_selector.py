"""
Module: credit_kernel.selectors.payment_selector
Responsibility: Read-only payment listings and aggregation across many
    invoices.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Cross-invoice lookups batch by owning invoice id with
      ``IN (...)`` queries of at most ``BATCH_SIZE`` ids.
    - Voided payments are excluded unless explicitly requested.
"""

from datetime import date
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select

from credit_kernel.domain.dtos import PaymentInfo, PaymentMethod, PaymentStats
from credit_kernel.domain.values import ZERO
from credit_kernel.models.invoice import Invoice
from credit_kernel.models.payment import Payment
from credit_kernel.selectors.base import BaseSelector

BATCH_SIZE = 500


def _chunks(ids: Sequence[UUID], size: int) -> Iterable[Sequence[UUID]]:
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


class PaymentSelector(BaseSelector[Payment]):

    def get(self, payment_id: UUID) -> PaymentInfo | None:
        payment = self.session.get(Payment, payment_id)
        return payment.to_dto() if payment is not None else None

    def for_invoice(self, invoice_id: UUID, include_voided: bool = False) -> list[PaymentInfo]:
        return self.for_invoices([invoice_id], include_voided=include_voided)

    def for_invoices(
        self,
        invoice_ids: Sequence[UUID],
        include_voided: bool = False,
    ) -> list[PaymentInfo]:
        """Payments on any of ``invoice_ids``, newest payment date first."""
        payments: list[Payment] = []
        for batch in _chunks(list(invoice_ids), BATCH_SIZE):
            stmt = select(Payment).where(Payment.invoice_id.in_(batch))
            if not include_voided:
                stmt = stmt.where(Payment.voided_at.is_(None))
            payments.extend(self.session.scalars(stmt))
        payments.sort(key=lambda p: (p.payment_date, p.created_at), reverse=True)
        return [p.to_dto() for p in payments]

    def for_client(self, client_id: UUID, include_voided: bool = False) -> list[PaymentInfo]:
        invoice_ids = self.session.scalars(
            select(Invoice.id).where(Invoice.client_id == client_id)
        ).all()
        return self.for_invoices(invoice_ids, include_voided=include_voided)

    def for_provider(self, provider_id: str, include_voided: bool = False) -> list[PaymentInfo]:
        invoice_ids = self.session.scalars(
            select(Invoice.id).where(Invoice.provider_id == provider_id)
        ).all()
        return self.for_invoices(invoice_ids, include_voided=include_voided)

    def stats(
        self,
        provider_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> PaymentStats:
        """Count and totals of non-voided payments, optionally by date range."""
        payments = [
            p
            for p in self.for_provider(provider_id)
            if (start is None or p.payment_date >= start)
            and (end is None or p.payment_date <= end)
        ]
        by_method = {method: ZERO for method in PaymentMethod}
        count_by_method = {method: 0 for method in PaymentMethod}
        for p in payments:
            by_method[p.method] += p.amount
            count_by_method[p.method] += 1
        return PaymentStats(
            count=len(payments),
            total_amount=sum((p.amount for p in payments), ZERO),
            by_method=by_method,
            count_by_method=count_by_method,
        )
