"""
InvoiceService -- invoice creation, item edits and cancellation.

Responsibility:
    Validates invoice drafts, creates invoices against available credit,
    mutates line items of pending invoices with the same recompute-total
    discipline, cancels pending invoices, and keeps each invoice's comment
    thread.

Architecture position:
    Kernel > Services -- imperative shell, flush-only (see BaseService).
    Credit checks are delegated to ClientAccountService.reserve_credit.

Invariants enforced:
    - Amount-sum: ``total_amount`` equals the sum of
      ``quantity * unit_price`` within the amount epsilon at creation, and
      exactly after every item mutation.
    - Settlement monotonicity: paid and cancelled invoices reject every
      item, amount and due-date edit.
    - Credit: growing a pending invoice re-checks the growth against
      available credit.
    - Line items carry the stable code ``"<invoice-id>-item-<n>"``; codes
      are never reused within an invoice.

Failure modes:
    - ValidationError, AmountMismatchError (before any transaction).
    - InvoiceNotFoundError, ImmutableInvoiceError, ItemNotFoundError,
      InvoiceNotPendingError, CreditLimitExceededError (inside one).
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from credit_kernel.domain.clock import Clock
from credit_kernel.domain.dtos import InvoiceDraft, InvoiceStatus, LineItemInput
from credit_kernel.domain.values import (
    DEFAULT_AMOUNT_EPSILON,
    ZERO,
    amounts_match,
    items_total,
    line_total,
    to_decimal,
)
from credit_kernel.exceptions import (
    AmountMismatchError,
    ImmutableInvoiceError,
    InvoiceNotFoundError,
    InvoiceNotPendingError,
    ItemNotFoundError,
    ValidationError,
)
from credit_kernel.logging_config import get_logger
from credit_kernel.models.invoice import Invoice, InvoiceComment, InvoiceLineItem
from credit_kernel.services.base import BaseService
from credit_kernel.services.client_account_service import ClientAccountService

logger = get_logger("services.invoice")


def item_code_for(invoice_id: UUID, position: int) -> str:
    return f"{invoice_id}-item-{position}"


def validate_line_item(item: LineItemInput, field: str = "item") -> LineItemInput:
    """Normalize one line item; raises ValidationError on bad values."""
    description = (item.description or "").strip()
    if not description:
        raise ValidationError(f"{field}.description", "is required")
    quantity = to_decimal(item.quantity, f"{field}.quantity")
    unit_price = to_decimal(item.unit_price, f"{field}.unit_price")
    if quantity <= ZERO:
        raise ValidationError(f"{field}.quantity", "must be greater than zero")
    if unit_price < ZERO:
        raise ValidationError(f"{field}.unit_price", "must not be negative")
    return LineItemInput(description=description, quantity=quantity, unit_price=unit_price)


def validate_draft(
    draft: InvoiceDraft,
    amount_epsilon: Decimal = DEFAULT_AMOUNT_EPSILON,
) -> InvoiceDraft:
    """
    Validate an invoice draft before any transaction starts.

    Returns:
        A normalized copy of ``draft`` with Decimal amounts.

    Raises:
        ValidationError: a required field is missing or malformed.
        AmountMismatchError: declared total differs from the item sum by
            more than ``amount_epsilon``.
    """
    if draft.client_id is None:
        raise ValidationError("client_id", "is required")
    if not draft.provider_id:
        raise ValidationError("provider_id", "is required")
    if draft.invoice_date is None:
        raise ValidationError("invoice_date", "is required")
    if draft.due_date is None:
        raise ValidationError("due_date", "is required")
    if draft.due_date < draft.invoice_date:
        raise ValidationError("due_date", "must not be before invoice_date")
    if not draft.items:
        raise ValidationError("items", "invoice must have at least one item")

    items = tuple(
        validate_line_item(item, f"items[{index}]")
        for index, item in enumerate(draft.items)
    )
    total_amount = to_decimal(draft.total_amount, "total_amount")
    if total_amount <= ZERO:
        raise ValidationError("total_amount", "must be greater than zero")

    computed = items_total(items)
    if not amounts_match(total_amount, computed, amount_epsilon):
        raise AmountMismatchError(total_amount, computed)

    return replace(draft, items=items, total_amount=total_amount)


class InvoiceService(BaseService[Invoice]):
    """
    Invoice writes inside one LedgerStore attempt.

    Contract:
        Drafts passed to ``create`` have been through ``validate_draft``.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        accounts: ClientAccountService | None = None,
    ):
        super().__init__(session, clock)
        self.accounts = accounts or ClientAccountService(session, self.clock)

    # -----------------------------------------------------------------
    # Creation
    # -----------------------------------------------------------------

    def create(self, draft: InvoiceDraft) -> Invoice:
        """
        Create a pending invoice if the client has enough available credit.

        Postconditions:
            - Invoice and items flushed; account revision advanced.
        """
        account = self.accounts.get(draft.client_id)
        available = self.accounts.reserve_credit(account, draft.total_amount)

        now = self.clock.now()
        invoice_id = uuid4()
        invoice = Invoice(
            id=invoice_id,
            client_id=account.id,
            provider_id=draft.provider_id,
            invoice_date=draft.invoice_date,
            due_date=draft.due_date,
            total_amount=draft.total_amount,
            status=InvoiceStatus.PENDING.value,
            revision=1,
            last_item_position=0,
            created_at=now,
            updated_at=now,
        )
        for item in draft.items:
            invoice.items.append(self._build_item(invoice_id, invoice.next_position(), item))

        self.session.add(invoice)
        self.session.flush()

        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(invoice.id),
                "client_id": str(account.id),
                "total_amount": str(invoice.total_amount),
                "available_before": str(available),
                "item_count": len(draft.items),
            },
        )
        return invoice

    # -----------------------------------------------------------------
    # Loading
    # -----------------------------------------------------------------

    def get(self, invoice_id: UUID) -> Invoice:
        invoice = self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def get_mutable(self, invoice_id: UUID) -> Invoice:
        """Load an invoice whose items and amounts may still change."""
        invoice = self.get(invoice_id)
        if not invoice.is_pending:
            raise ImmutableInvoiceError(str(invoice_id), invoice.status)
        return invoice

    # -----------------------------------------------------------------
    # Item mutations
    # -----------------------------------------------------------------

    def add_item(self, invoice_id: UUID, item: LineItemInput) -> Invoice:
        item = validate_line_item(item)
        invoice = self.get_mutable(invoice_id)
        invoice.items.append(
            self._build_item(invoice.id, invoice.next_position(), item)
        )
        return self._retotal(invoice)

    def remove_item(self, invoice_id: UUID, item_code: str) -> Invoice:
        invoice = self.get_mutable(invoice_id)
        line = self._find_item(invoice, item_code)
        if len(invoice.items) == 1:
            raise ValidationError("items", "invoice must have at least one item")
        invoice.items.remove(line)
        return self._retotal(invoice)

    def update_item(
        self,
        invoice_id: UUID,
        item_code: str,
        description: str | None = None,
        quantity: Decimal | None = None,
        unit_price: Decimal | None = None,
    ) -> Invoice:
        invoice = self.get_mutable(invoice_id)
        line = self._find_item(invoice, item_code)
        merged = validate_line_item(
            LineItemInput(
                description=line.description if description is None else description,
                quantity=line.quantity if quantity is None else quantity,
                unit_price=line.unit_price if unit_price is None else unit_price,
            )
        )
        line.description = merged.description
        line.quantity = merged.quantity
        line.unit_price = merged.unit_price
        line.total = line_total(merged.quantity, merged.unit_price)
        return self._retotal(invoice)

    def update_due_date(self, invoice_id: UUID, due_date: date) -> Invoice:
        invoice = self.get_mutable(invoice_id)
        if due_date < invoice.invoice_date:
            raise ValidationError("due_date", "must not be before invoice_date")
        invoice.due_date = due_date
        invoice.touch()
        invoice.updated_at = self.clock.now()
        self.session.flush()
        return invoice

    # -----------------------------------------------------------------
    # Cancellation
    # -----------------------------------------------------------------

    def cancel(self, invoice_id: UUID, reason: str, actor_id: str | None = None) -> Invoice:
        """
        Cancel a pending invoice.  Never checks credit: cancelling only
        releases what creation reserved.
        """
        invoice = self.get(invoice_id)
        if not invoice.is_pending:
            raise InvoiceNotPendingError(str(invoice_id), invoice.status)
        now = self.clock.now()
        invoice.status = InvoiceStatus.CANCELLED.value
        invoice.cancelled_at = now
        invoice.cancelled_by = actor_id
        invoice.cancellation_reason = reason
        invoice.updated_at = now
        invoice.touch()
        self.session.flush()
        logger.info(
            "invoice_cancelled",
            extra={"invoice_id": str(invoice.id), "reason": reason},
        )
        return invoice

    # -----------------------------------------------------------------
    # Comments
    # -----------------------------------------------------------------

    def add_comment(self, invoice_id: UUID, text: str, author: str) -> InvoiceComment:
        """
        Append a note to an invoice of any status.

        The comment row is inserted on its own; the invoice row and its
        revision are left alone.
        """
        invoice = self.get(invoice_id)
        comment = InvoiceComment(
            invoice_id=invoice.id,
            text=text,
            created_by=author,
            created_at=self.clock.now(),
        )
        self.session.add(comment)
        self.session.flush()
        logger.info(
            "invoice_comment_added",
            extra={"invoice_id": str(invoice.id), "comment_id": str(comment.id)},
        )
        return comment

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    @staticmethod
    def _build_item(invoice_id: UUID, position: int, item: LineItemInput) -> InvoiceLineItem:
        return InvoiceLineItem(
            invoice_id=invoice_id,
            position=position,
            item_code=item_code_for(invoice_id, position),
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total=line_total(item.quantity, item.unit_price),
        )

    @staticmethod
    def _find_item(invoice: Invoice, item_code: str) -> InvoiceLineItem:
        for line in invoice.items:
            if line.item_code == item_code:
                return line
        raise ItemNotFoundError(str(invoice.id), item_code)

    def _retotal(self, invoice: Invoice) -> Invoice:
        """Store the exact item sum; re-check credit when the total grows."""
        new_total = items_total(invoice.items)
        if new_total <= ZERO:
            raise ValidationError("total_amount", "must be greater than zero")
        previous_total = invoice.total_amount
        if new_total > previous_total:
            account = self.accounts.get(invoice.client_id)
            self.accounts.reserve_credit(account, new_total - previous_total)
        invoice.total_amount = new_total
        invoice.touch()
        invoice.updated_at = self.clock.now()
        self.session.flush()
        logger.info(
            "invoice_items_changed",
            extra={
                "invoice_id": str(invoice.id),
                "previous_total": str(previous_total),
                "total_amount": str(new_total),
            },
        )
        return invoice
