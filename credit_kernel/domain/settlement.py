"""
Settlement -- pure derivation of invoice status from payments.

Responsibility:
    Decide whether an invoice is settled given its total and the payments
    recorded against it, and derive the display-only ``overdue`` label.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - An invoice is paid if and only if its non-voided payments sum to at
      least its total.  Overpayment still settles; the excess is recorded
      as-is.
    - Cancelled is terminal here: no payment arithmetic moves an invoice
      out of cancelled.
    - Overdue is never stored.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Protocol

from credit_kernel.domain.dtos import InvoiceStatus
from credit_kernel.domain.values import ZERO


class _Amounted(Protocol):
    amount: Decimal
    voided_at: object


def paid_total(payments: Iterable[_Amounted]) -> Decimal:
    """Sum of non-voided payment amounts."""
    return sum((p.amount for p in payments if p.voided_at is None), ZERO)


def is_settled(total_amount: Decimal, paid_so_far: Decimal) -> bool:
    return paid_so_far >= total_amount


def derive_settlement_status(
    current: InvoiceStatus,
    total_amount: Decimal,
    paid_so_far: Decimal,
) -> InvoiceStatus:
    """
    Stored status an invoice should have after its payments changed.

    Pending and paid move in either direction across the settlement
    threshold.  Cancelled never changes.
    """
    if current == InvoiceStatus.CANCELLED:
        return InvoiceStatus.CANCELLED
    if is_settled(total_amount, paid_so_far):
        return InvoiceStatus.PAID
    return InvoiceStatus.PENDING


def display_status(status: InvoiceStatus, due_date: date, today: date) -> InvoiceStatus:
    """Pending invoices past their due date display as overdue."""
    if status == InvoiceStatus.PENDING and due_date < today:
        return InvoiceStatus.OVERDUE
    return status
