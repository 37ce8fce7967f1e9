"""
Module: credit_kernel.selectors.invoice_selector
Responsibility: Read-only invoice listings and provider reporting views
    (overdue invoices, status counts, value statistics).
Architecture position: Kernel > Selectors.

Invariants enforced:
    - "overdue" is derived here from ``today``: a pending invoice whose due
      date is before ``today``.  It is never read from storage.
    - Amounts are summed in Python over Decimal values.
    - Listings are newest first (invoice_date, then created_at).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from credit_kernel.domain.dtos import InvoiceInfo, InvoiceStats, InvoiceStatus, InvoiceSummary
from credit_kernel.domain.values import ZERO, round_money
from credit_kernel.models.invoice import Invoice
from credit_kernel.selectors.base import BaseSelector


class InvoiceSelector(BaseSelector[Invoice]):
    """Invoice queries returning ``InvoiceInfo`` DTOs."""

    def get(self, invoice_id: UUID) -> InvoiceInfo | None:
        invoice = self.session.get(Invoice, invoice_id)
        return invoice.to_dto() if invoice is not None else None

    def for_client(
        self,
        client_id: UUID,
        status: InvoiceStatus | None = None,
        today: date | None = None,
    ) -> list[InvoiceInfo]:
        stmt = select(Invoice).where(Invoice.client_id == client_id)
        return self._list(stmt, status, today)

    def for_provider(
        self,
        provider_id: str,
        status: InvoiceStatus | None = None,
        today: date | None = None,
    ) -> list[InvoiceInfo]:
        """
        Invoices issued by ``provider_id``.

        Filtering by OVERDUE requires ``today``; filtering by PENDING with
        ``today`` given excludes overdue invoices, matching what a user
        sees.
        """
        stmt = select(Invoice).where(Invoice.provider_id == provider_id)
        return self._list(stmt, status, today)

    def search(self, provider_id: str, term: str) -> list[InvoiceInfo]:
        """
        Invoices of ``provider_id`` whose id or total contains ``term``.

        Totals are matched in their cents form (``"250.00"``).  A blank
        term matches everything.
        """
        needle = (term or "").strip().lower()
        invoices = self.for_provider(provider_id)
        if not needle:
            return invoices
        return [
            info
            for info in invoices
            if needle in str(info.id) or needle in str(round_money(info.total_amount))
        ]

    def overdue(self, today: date, provider_id: str | None = None) -> list[InvoiceInfo]:
        """Pending invoices past their due date, oldest due date first."""
        stmt = select(Invoice).where(
            Invoice.status == InvoiceStatus.PENDING.value,
            Invoice.due_date < today,
        )
        if provider_id is not None:
            stmt = stmt.where(Invoice.provider_id == provider_id)
        stmt = stmt.order_by(Invoice.due_date, Invoice.created_at)
        return [i.to_dto() for i in self.session.scalars(stmt)]

    def summary(self, provider_id: str, today: date) -> InvoiceSummary:
        counts = {status: 0 for status in InvoiceStatus}
        for info in self.for_provider(provider_id):
            counts[info.display_status(today)] += 1
        return InvoiceSummary(
            total=sum(counts.values()),
            paid=counts[InvoiceStatus.PAID],
            pending=counts[InvoiceStatus.PENDING],
            overdue=counts[InvoiceStatus.OVERDUE],
            cancelled=counts[InvoiceStatus.CANCELLED],
        )

    def stats(self, provider_id: str, today: date) -> InvoiceStats:
        """Invoice values by display status and mean days to settle."""
        values = {status: ZERO for status in InvoiceStatus}
        settle_days: list[int] = []
        for info in self.for_provider(provider_id):
            shown = info.display_status(today)
            values[shown] += info.total_amount
            if shown == InvoiceStatus.PAID and info.settled_at is not None:
                settle_days.append((info.settled_at.date() - info.invoice_date).days)

        average = None
        if settle_days:
            average = round_money(Decimal(sum(settle_days)) / Decimal(len(settle_days)))

        return InvoiceStats(
            total_value=(
                values[InvoiceStatus.PAID]
                + values[InvoiceStatus.PENDING]
                + values[InvoiceStatus.OVERDUE]
            ),
            paid_value=values[InvoiceStatus.PAID],
            pending_value=values[InvoiceStatus.PENDING],
            overdue_value=values[InvoiceStatus.OVERDUE],
            average_days_to_settle=average,
        )

    def _list(self, stmt, status: InvoiceStatus | None, today: date | None) -> list[InvoiceInfo]:
        if status == InvoiceStatus.OVERDUE and today is None:
            raise ValueError("filtering by overdue requires today")
        if status is not None:
            stored = InvoiceStatus.PENDING if status == InvoiceStatus.OVERDUE else status
            stmt = stmt.where(Invoice.status == stored.value)
        stmt = stmt.order_by(Invoice.invoice_date.desc(), Invoice.created_at.desc())
        invoices = [i.to_dto() for i in self.session.scalars(stmt)]
        if status is not None and today is not None:
            invoices = [i for i in invoices if i.display_status(today) == status]
        return invoices
