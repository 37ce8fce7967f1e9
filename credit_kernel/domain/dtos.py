"""
Data Transfer Objects -- immutable records crossing the kernel boundary.

Responsibility:
    Closed enums for every stored status and frozen dataclasses for every
    value the engine accepts or returns.  ORM rows never escape the kernel;
    callers only ever see these types.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    May import only from ``domain/values`` and the exception hierarchy.

Invariants enforced:
    - Every DTO is ``frozen=True``.
    - Status fields are closed enums, never free strings.
    - ``overdue`` is not a stored invoice status; it is derived on read by
      ``InvoiceInfo.display_status(today)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# ---------------------------------------------------------------------------
# Closed status enums
# ---------------------------------------------------------------------------


class ClientAccountStatus(str, Enum):
    """Lifecycle of a client's trade-credit account."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    CLOSED = "closed"


class InvoiceStatus(str, Enum):
    """
    Invoice status.

    PENDING, PAID and CANCELLED are stored.  OVERDUE is display-only:
    a pending invoice whose due date has passed.
    """

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


STORED_INVOICE_STATUSES = frozenset(
    {InvoiceStatus.PENDING, InvoiceStatus.PAID, InvoiceStatus.CANCELLED}
)


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    CASH = "cash"


class CreditRequestStatus(str, Enum):
    """Credit limit request state machine: pending -> approved | rejected."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not CreditRequestStatus.PENDING


class ActivityType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"


class EntityType(str, Enum):
    CLIENT = "client"
    INVOICE = "invoice"
    PAYMENT = "payment"
    CREDIT_LIMIT = "credit_limit"


# ---------------------------------------------------------------------------
# Client accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClientAccountInfo:
    """Read-only view of a client account."""

    id: UUID
    provider_id: str
    name: str
    credit_limit: Decimal
    status: ClientAccountStatus
    revision: int
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status == ClientAccountStatus.ACTIVE


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineItemInput:
    """A caller-supplied line item; totals are always recomputed."""

    description: str
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class InvoiceDraft:
    """
    Input to ``create_invoice``.

    ``total_amount`` is the caller's declared total; it must match the sum
    of ``quantity * unit_price`` over ``items`` within the amount epsilon.
    """

    client_id: UUID
    provider_id: str
    invoice_date: date
    due_date: date
    items: tuple[LineItemInput, ...]
    total_amount: Decimal


@dataclass(frozen=True)
class LineItemInfo:
    item_code: str
    position: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal


@dataclass(frozen=True)
class InvoiceCommentInfo:
    id: UUID
    invoice_id: UUID
    text: str
    created_by: str
    created_at: datetime


@dataclass(frozen=True)
class InvoiceInfo:
    """Read-only view of an invoice, its line items and comments."""

    id: UUID
    client_id: UUID
    provider_id: str
    invoice_date: date
    due_date: date
    total_amount: Decimal
    status: InvoiceStatus
    items: tuple[LineItemInfo, ...]
    revision: int
    created_at: datetime
    updated_at: datetime
    settled_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    comments: tuple[InvoiceCommentInfo, ...] = ()

    def display_status(self, today: date) -> InvoiceStatus:
        """Status as shown to users; pending past due date reads as overdue."""
        from credit_kernel.domain.settlement import display_status

        return display_status(self.status, self.due_date, today)

    def item(self, item_code: str) -> LineItemInfo | None:
        for line in self.items:
            if line.item_code == item_code:
                return line
        return None


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentInfo:
    id: UUID
    invoice_id: UUID
    amount: Decimal
    payment_date: date
    method: PaymentMethod
    receipt_ref: str | None
    idempotency_key: str | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime
    voided_at: datetime | None = None
    void_reason: str | None = None

    @property
    def is_voided(self) -> bool:
        return self.voided_at is not None


@dataclass(frozen=True)
class PaymentUpdate:
    """
    Amendment to an existing payment.  ``None`` means "leave unchanged".

    ``invoice_id`` exists only so that an attempt to re-attribute a payment
    can be refused explicitly.
    """

    amount: Decimal | None = None
    payment_date: date | None = None
    method: PaymentMethod | None = None
    receipt_ref: str | None = None
    invoice_id: UUID | None = None

    def is_empty(self) -> bool:
        return all(
            v is None
            for v in (
                self.amount,
                self.payment_date,
                self.method,
                self.receipt_ref,
                self.invoice_id,
            )
        )


# ---------------------------------------------------------------------------
# Credit limit requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreditLimitRequestInfo:
    id: UUID
    client_id: UUID
    provider_id: str
    current_limit: Decimal
    requested_limit: Decimal
    status: CreditRequestStatus
    requested_by: str | None
    decided_by: str | None
    decided_at: datetime | None
    notes: str | None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActivityEntry:
    """One audit entry handed to the activity log sink."""

    actor_id: str | None
    activity_type: ActivityType
    entity_type: EntityType
    entity_id: str
    description: str
    occurred_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceSummary:
    """Invoice counts for one provider.  ``pending`` excludes overdue."""

    total: int
    paid: int
    pending: int
    overdue: int
    cancelled: int


@dataclass(frozen=True)
class InvoiceStats:
    """Invoice values for one provider, cancelled invoices excluded."""

    total_value: Decimal
    paid_value: Decimal
    pending_value: Decimal
    overdue_value: Decimal
    average_days_to_settle: Decimal | None


@dataclass(frozen=True)
class PaymentStats:
    count: int
    total_amount: Decimal
    by_method: dict[PaymentMethod, Decimal]
    count_by_method: dict[PaymentMethod, int]
