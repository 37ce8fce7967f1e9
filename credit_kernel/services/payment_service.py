"""
PaymentService -- apply payments and derive settlement.

Responsibility:
    Records payments against invoices, amends and voids them, and keeps the
    owning invoice's stored status consistent with the payments on it.

Architecture position:
    Kernel > Services -- imperative shell, flush-only (see BaseService).
    Settlement rules come from domain/settlement.py.

Invariants enforced:
    - An invoice is ``paid`` only while its non-voided payments cover its
      total; amendments and voids re-derive pending <-> paid in the same
      transaction.  Cancelled invoices keep their status.
    - A payment never moves to another invoice.
    - One logical request, one payment: a repeated ``idempotency_key``
      returns the payment already recorded under it.
    - Every payment write advances the invoice revision, so concurrent
      payments on one invoice serialize through its compare-and-swap.

Failure modes:
    - InvoiceNotFoundError, InvoiceAlreadySettledError (code
      ``already-paid``), InvoiceNotPayableError, PaymentNotFoundError,
      ValidationError, CreditLimitExceededError (reopening a paid invoice
      the client can no longer cover).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from credit_kernel.domain.clock import Clock
from credit_kernel.domain.dtos import InvoiceStatus, PaymentMethod, PaymentUpdate
from credit_kernel.domain.settlement import derive_settlement_status, paid_total
from credit_kernel.domain.values import ZERO, to_decimal
from credit_kernel.exceptions import (
    InvoiceAlreadySettledError,
    InvoiceNotFoundError,
    InvoiceNotPayableError,
    PaymentNotFoundError,
    ValidationError,
)
from credit_kernel.logging_config import get_logger
from credit_kernel.models.invoice import Invoice
from credit_kernel.models.payment import Payment
from credit_kernel.services.base import BaseService
from credit_kernel.services.client_account_service import ClientAccountService

logger = get_logger("services.payment")


@dataclass(frozen=True)
class PaymentOutcome:
    """What a payment write did to its invoice."""

    payment: Payment
    invoice: Invoice
    previous_status: InvoiceStatus
    created: bool = True

    @property
    def status_changed(self) -> bool:
        return self.invoice.status != self.previous_status.value


def coerce_method(method: PaymentMethod | str) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError as exc:
        raise ValidationError("method", f"unknown payment method {method!r}") from exc


def coerce_amount(amount, field: str = "amount") -> Decimal:
    value = to_decimal(amount, field)
    if value <= ZERO:
        raise ValidationError(field, "must be greater than zero")
    return value


class PaymentService(BaseService[Payment]):
    """
    Payment writes inside one LedgerStore attempt.

    Contract:
        Reopening a paid invoice (an amendment or void that drops its
        payments below the total) puts its total back into the client's
        pending exposure, so it must fit the client's available credit.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        accounts: ClientAccountService | None = None,
    ):
        super().__init__(session, clock)
        self.accounts = accounts or ClientAccountService(session, self.clock)

    def record(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        payment_date: date,
        receipt_ref: str | None = None,
        actor_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> PaymentOutcome:
        """
        Apply a payment to a pending invoice.

        Preconditions:
            ``amount`` and ``method`` already validated by the caller.

        Postconditions:
            - Payment flushed; invoice revision advanced.
            - Invoice is ``paid`` if cumulative payments now cover its
              total.  Overpayment is recorded as-is.
        """
        if idempotency_key is not None:
            existing = self.session.scalar(
                select(Payment).where(Payment.idempotency_key == idempotency_key)
            )
            if existing is not None:
                if existing.invoice_id != invoice_id:
                    raise ValidationError(
                        "idempotency_key", "already used for a different invoice"
                    )
                invoice = self._get_invoice(existing.invoice_id)
                logger.info(
                    "payment_replayed",
                    extra={"payment_id": str(existing.id), "idempotency_key": idempotency_key},
                )
                return PaymentOutcome(
                    payment=existing,
                    invoice=invoice,
                    previous_status=InvoiceStatus(invoice.status),
                    created=False,
                )

        invoice = self._get_invoice(invoice_id)
        if invoice.status == InvoiceStatus.PAID.value:
            raise InvoiceAlreadySettledError(str(invoice_id))
        if invoice.status != InvoiceStatus.PENDING.value:
            raise InvoiceNotPayableError(str(invoice_id), invoice.status)

        paid_so_far = paid_total(self.active_payments(invoice.id))
        now = self.clock.now()
        payment = Payment(
            invoice_id=invoice.id,
            amount=amount,
            payment_date=payment_date,
            method=method.value,
            receipt_ref=receipt_ref,
            idempotency_key=idempotency_key,
            created_by=actor_id,
            created_at=now,
            updated_at=now,
        )
        self.session.add(payment)

        previous = InvoiceStatus(invoice.status)
        self._apply_settlement(invoice, paid_so_far + amount)
        self.session.flush()

        logger.info(
            "payment_recorded",
            extra={
                "payment_id": str(payment.id),
                "invoice_id": str(invoice.id),
                "amount": str(amount),
                "paid_total": str(paid_so_far + amount),
                "invoice_status": invoice.status,
            },
        )
        return PaymentOutcome(payment=payment, invoice=invoice, previous_status=previous)

    def get(self, payment_id: UUID) -> Payment:
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    def update(self, payment_id: UUID, updates: PaymentUpdate) -> PaymentOutcome:
        """
        Amend a payment and re-derive the owning invoice's status.

        Raises:
            PaymentNotFoundError: no such payment.
            ValidationError: re-attribution to another invoice, a
                non-positive amount, or amending a voided payment.
        """
        payment = self.get(payment_id)
        if updates.invoice_id is not None and updates.invoice_id != payment.invoice_id:
            raise ValidationError("invoice_id", "payments cannot be moved to another invoice")
        if payment.voided_at is not None:
            raise ValidationError("payment", "voided payments cannot be amended")

        if updates.amount is not None:
            payment.amount = coerce_amount(updates.amount)
        if updates.payment_date is not None:
            payment.payment_date = updates.payment_date
        if updates.method is not None:
            payment.method = coerce_method(updates.method).value
        if updates.receipt_ref is not None:
            payment.receipt_ref = updates.receipt_ref
        payment.updated_at = self.clock.now()

        return self._resettle(payment, "payment_updated")

    def void(self, payment_id: UUID, reason: str) -> PaymentOutcome:
        """Exclude a payment from the paid-so-far sum of its invoice."""
        payment = self.get(payment_id)
        if payment.voided_at is not None:
            raise ValidationError("payment", "payment is already voided")
        now = self.clock.now()
        payment.voided_at = now
        payment.void_reason = reason
        payment.updated_at = now
        return self._resettle(payment, "payment_voided")

    def active_payments(self, invoice_id: UUID) -> list[Payment]:
        return list(
            self.session.scalars(
                select(Payment).where(
                    Payment.invoice_id == invoice_id,
                    Payment.voided_at.is_(None),
                )
            )
        )

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def _resettle(self, payment: Payment, event: str) -> PaymentOutcome:
        invoice = self._get_invoice(payment.invoice_id)
        previous = InvoiceStatus(invoice.status)
        # Autoflush makes the amended payment visible to this query.
        paid = paid_total(self.active_payments(invoice.id))
        self._apply_settlement(invoice, paid)
        self.session.flush()
        logger.info(
            event,
            extra={
                "payment_id": str(payment.id),
                "invoice_id": str(invoice.id),
                "paid_total": str(paid),
                "previous_status": previous.value,
                "invoice_status": invoice.status,
            },
        )
        return PaymentOutcome(payment=payment, invoice=invoice, previous_status=previous)

    def _apply_settlement(self, invoice: Invoice, paid: Decimal) -> None:
        current = InvoiceStatus(invoice.status)
        target = derive_settlement_status(current, invoice.total_amount, paid)
        now = self.clock.now()
        if current == InvoiceStatus.PAID and target == InvoiceStatus.PENDING:
            account = self.accounts.get(invoice.client_id)
            self.accounts.reserve_credit(account, invoice.total_amount, require_active=False)
        if target != current:
            invoice.status = target.value
            invoice.settled_at = now if target == InvoiceStatus.PAID else None
            if target == InvoiceStatus.PAID:
                logger.info("invoice_settled", extra={"invoice_id": str(invoice.id)})
            else:
                logger.info("invoice_reopened", extra={"invoice_id": str(invoice.id)})
        invoice.touch()
        invoice.updated_at = now
