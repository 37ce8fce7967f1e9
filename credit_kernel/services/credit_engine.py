"""
CreditEngine -- public entry point of the credit kernel.

Responsibility:
    Exposes every operation of the kernel to the surrounding API layer.
    Each mutating call validates its input, runs its reads, invariant
    checks and writes as one LedgerStore transaction, returns frozen DTOs,
    and only after commit hands an entry to the activity log.

Architecture position:
    Kernel > Services -- orchestrator.  The only service that owns
    transaction boundaries (through LedgerStore); the services it drives
    are flush-only.

Invariants enforced:
    - Validation errors are raised before any transaction starts.
    - Every state-mutating operation is a single atomic LedgerStore
      callback; losing a compare-and-swap re-runs it from its first read.
    - Activity logging happens strictly after commit and never affects the
      outcome of the operation.
    - Identity is explicit: ``actor_id`` / ``decided_by`` are parameters;
      the engine never reads an ambient "current user".

Usage:
    engine = CreditEngine.from_config(get_active_config())
    client = engine.create_client_account("provider-1", "Acme", Decimal("1000"))
    invoice = engine.create_invoice(InvoiceDraft(...), actor_id="provider-1")
    engine.record_payment(invoice.id, Decimal("500"), PaymentMethod.CASH, date.today())
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Callable, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from credit_config.schema import KernelConfig
from credit_kernel.domain.clock import Clock, SystemClock
from credit_kernel.domain.credit_request import CreditDecision
from credit_kernel.domain.dtos import (
    ActivityEntry,
    ActivityType,
    ClientAccountInfo,
    ClientAccountStatus,
    CreditLimitRequestInfo,
    CreditRequestStatus,
    EntityType,
    InvoiceDraft,
    InvoiceCommentInfo,
    InvoiceInfo,
    InvoiceStats,
    InvoiceStatus,
    InvoiceSummary,
    LineItemInput,
    PaymentInfo,
    PaymentMethod,
    PaymentStats,
    PaymentUpdate,
)
from credit_kernel.domain.values import DEFAULT_AMOUNT_EPSILON, ZERO, to_decimal
from credit_kernel.exceptions import (
    ClientNotFoundError,
    CreditRequestNotFoundError,
    InvalidLimitError,
    InvoiceNotFoundError,
    PaymentNotFoundError,
    ValidationError,
)
from credit_kernel.logging_config import LogContext, get_logger
from credit_kernel.selectors.activity_log_selector import ActivityLogSelector
from credit_kernel.selectors.client_account_selector import ClientAccountSelector
from credit_kernel.selectors.credit_request_selector import CreditRequestSelector
from credit_kernel.selectors.invoice_selector import InvoiceSelector
from credit_kernel.selectors.payment_selector import PaymentSelector
from credit_kernel.services.activity_log import (
    ActivityLog,
    ActivityLogEmitter,
    DatabaseActivityLog,
)
from credit_kernel.services.client_account_service import ClientAccountService
from credit_kernel.services.credit_request_service import CreditRequestService
from credit_kernel.services.invoice_service import (
    InvoiceService,
    validate_draft,
    validate_line_item,
)
from credit_kernel.services.ledger_store import LedgerStore
from credit_kernel.services.payment_service import (
    PaymentService,
    coerce_amount,
    coerce_method,
)

logger = get_logger("services.credit_engine")

T = TypeVar("T")

_UNSET: Any = object()


class CreditEngine:
    """
    Credit-limit-aware invoicing, payment reconciliation and credit
    request workflow.

    Contract:
        All public methods accept plain values and return frozen DTOs from
        ``credit_kernel.domain.dtos``.  No ORM instance is ever returned.

    Guarantees:
        - Credit invariant: a client's pending invoice total never exceeds
          its credit limit, under any interleaving of concurrent calls.
        - Amount-sum invariant on creation and on every item mutation.
        - Paid and cancelled invoices are immutable.
        - Re-deciding a request with the decision it already carries is a
          no-op.

    Non-goals:
        - Does NOT authenticate callers.
        - Does NOT store receipt files; ``receipt_ref`` is opaque.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        activity_log: ActivityLog | None = None,
        amount_epsilon: Decimal = DEFAULT_AMOUNT_EPSILON,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._audit_log = ActivityLogEmitter(activity_log)
        self._amount_epsilon = amount_epsilon

    @classmethod
    def from_config(
        cls,
        config: KernelConfig,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        activity_log: ActivityLog | None = _UNSET,
    ) -> CreditEngine:
        """
        Wire an engine from configuration.

        Without an explicit ``session_factory`` the module-level engine is
        initialized from ``config.ledger``.  Without an explicit
        ``activity_log`` entries go to the ``activity_log`` table.
        """
        if session_factory is None:
            from credit_kernel.db.engine import get_session_factory, init_engine_from_url

            init_engine_from_url(config.ledger.database_url, echo=config.ledger.echo_sql)
            session_factory = get_session_factory()
        if activity_log is _UNSET:
            activity_log = DatabaseActivityLog(session_factory)
        return cls(
            store=LedgerStore.from_settings(session_factory, config.transactions),
            clock=clock,
            activity_log=activity_log,
            amount_epsilon=config.invoicing.amount_epsilon,
        )

    @property
    def clock(self) -> Clock:
        return self._clock

    # =================================================================
    # Client accounts
    # =================================================================

    def create_client_account(
        self,
        provider_id: str,
        name: str,
        credit_limit: Decimal,
        actor_id: str | None = None,
    ) -> ClientAccountInfo:
        if not provider_id:
            raise ValidationError("provider_id", "is required")
        if not (name or "").strip():
            raise ValidationError("name", "is required")
        limit = to_decimal(credit_limit, "credit_limit")
        if limit < ZERO:
            raise InvalidLimitError(limit, "must not be negative")

        def _tx(session: Session) -> ClientAccountInfo:
            return self._accounts(session).create(provider_id, name.strip(), limit).to_dto()

        info = self._run("create_client_account", _tx, actor_id)
        self._audit(
            actor_id,
            ActivityType.CREATE,
            EntityType.CLIENT,
            info.id,
            f"Created client account {info.name}",
            {"credit_limit": str(info.credit_limit)},
        )
        return info

    def get_client_account(self, client_id: UUID) -> ClientAccountInfo:
        info = self._store.read(lambda s: ClientAccountSelector(s).get(client_id))
        if info is None:
            raise ClientNotFoundError(str(client_id))
        return info

    def available_credit(self, client_id: UUID) -> Decimal:
        """``credit_limit`` minus the total of the client's pending invoices."""

        def _read(session: Session) -> Decimal:
            accounts = self._accounts(session)
            return accounts.available_credit(accounts.get(client_id))

        return self._store.read(_read)

    def apply_limit_change(
        self,
        client_id: UUID,
        new_limit: Decimal,
        actor_id: str | None = None,
        deadline_seconds: float | None = None,
    ) -> ClientAccountInfo:
        """
        Administratively set a client's credit limit.

        Raises:
            InvalidLimitError: ``new_limit`` is negative.
            CreditLimitBelowExposureError: ``new_limit`` is below the
                client's pending invoice total.
        """
        limit = to_decimal(new_limit, "credit_limit")
        if limit < ZERO:
            raise InvalidLimitError(limit, "must not be negative")

        def _tx(session: Session) -> tuple[ClientAccountInfo, Decimal]:
            accounts = self._accounts(session)
            account = accounts.get(client_id)
            previous = accounts.change_limit(account, limit)
            return account.to_dto(), previous

        info, previous = self._run("apply_limit_change", _tx, actor_id, deadline_seconds)
        self._audit(
            actor_id,
            ActivityType.UPDATE,
            EntityType.CREDIT_LIMIT,
            info.id,
            f"Updated credit limit for {info.name} from {previous} to {info.credit_limit}",
            {"previous_limit": str(previous), "new_limit": str(info.credit_limit)},
        )
        return info

    def update_account_status(
        self,
        client_id: UUID,
        status: ClientAccountStatus,
        actor_id: str | None = None,
    ) -> ClientAccountInfo:
        try:
            status = ClientAccountStatus(status)
        except ValueError as exc:
            raise ValidationError("status", f"unknown account status {status!r}") from exc

        def _tx(session: Session) -> ClientAccountInfo:
            return self._accounts(session).set_status(client_id, status).to_dto()

        info = self._run("update_account_status", _tx, actor_id)
        self._audit(
            actor_id,
            ActivityType.UPDATE,
            EntityType.CLIENT,
            info.id,
            f"Set client account {info.name} to {info.status.value}",
            {"status": info.status.value},
        )
        return info

    def delete_client_account(self, client_id: UUID, actor_id: str | None = None) -> None:
        """
        Delete a client account that has never been invoiced.

        Raises:
            ClientHasInvoicesError: the account owns invoices; suspend or
                close it instead.
        """

        def _tx(session: Session) -> str:
            return self._accounts(session).delete(client_id).name

        name = self._run("delete_client_account", _tx, actor_id)
        self._audit(
            actor_id,
            ActivityType.DELETE,
            EntityType.CLIENT,
            client_id,
            f"Deleted client account {name}",
        )

    def clients_for_provider(
        self,
        provider_id: str,
        status: ClientAccountStatus | None = None,
    ) -> list[ClientAccountInfo]:
        return self._store.read(lambda s: ClientAccountSelector(s).for_provider(provider_id, status))

    def search_clients(self, provider_id: str, term: str) -> list[ClientAccountInfo]:
        return self._store.read(lambda s: ClientAccountSelector(s).search(provider_id, term))

    # =================================================================
    # Invoices
    # =================================================================

    def create_invoice(
        self,
        draft: InvoiceDraft,
        actor_id: str | None = None,
        deadline_seconds: float | None = None,
    ) -> InvoiceInfo:
        """
        Create a pending invoice against the client's available credit.

        Raises:
            ValidationError, AmountMismatchError: before any transaction.
            ClientNotFoundError, ClientAccountInactiveError,
            CreditLimitExceededError: inside it; nothing is written.
        """
        draft = validate_draft(draft, self._amount_epsilon)

        def _tx(session: Session) -> InvoiceInfo:
            return self._invoices(session).create(draft).to_dto()

        info = self._run("create_invoice", _tx, actor_id, deadline_seconds)
        self._audit(
            actor_id,
            ActivityType.CREATE,
            EntityType.INVOICE,
            info.id,
            f"Created invoice for {info.total_amount}",
            {
                "client_id": str(info.client_id),
                "total_amount": str(info.total_amount),
                "item_count": len(info.items),
            },
        )
        return info

    def get_invoice(self, invoice_id: UUID) -> InvoiceInfo:
        info = self._store.read(lambda s: InvoiceSelector(s).get(invoice_id))
        if info is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return info

    def add_item(
        self,
        invoice_id: UUID,
        item: LineItemInput,
        actor_id: str | None = None,
        deadline_seconds: float | None = None,
    ) -> InvoiceInfo:
        item = validate_line_item(item)

        def _tx(session: Session) -> InvoiceInfo:
            return self._invoices(session).add_item(invoice_id, item).to_dto()

        info = self._run("add_item", _tx, actor_id, deadline_seconds)
        self._audit_invoice_change(actor_id, info, "Added item to invoice")
        return info

    def remove_item(
        self,
        invoice_id: UUID,
        item_code: str,
        actor_id: str | None = None,
        deadline_seconds: float | None = None,
    ) -> InvoiceInfo:
        def _tx(session: Session) -> InvoiceInfo:
            return self._invoices(session).remove_item(invoice_id, item_code).to_dto()

        info = self._run("remove_item", _tx, actor_id, deadline_seconds)
        self._audit_invoice_change(actor_id, info, f"Removed item {item_code} from invoice")
        return info

    def update_item(
        self,
        invoice_id: UUID,
        item_code: str,
        description: str | None = None,
        quantity: Decimal | None = None,
        unit_price: Decimal | None = None,
        actor_id: str | None = None,
        deadline_seconds: float | None = None,
    ) -> InvoiceInfo:
        if description is None and quantity is None and unit_price is None:
            raise ValidationError("item", "no changes given")
        if quantity is not None:
            quantity = to_decimal(quantity, "quantity")
        if unit_price is not None:
            unit_price = to_decimal(unit_price, "unit_price")

        def _tx(session: Session) -> InvoiceInfo:
            return (
                self._invoices(session)
                .update_item(invoice_id, item_code, description, quantity, unit_price)
                .to_dto()
            )

        info = self._run("update_item", _tx, actor_id, deadline_seconds)
        self._audit_invoice_change(actor_id, info, f"Updated item {item_code} on invoice")
        return info

    def update_due_date(
        self,
        invoice_id: UUID,
        due_date: date,
        actor_id: str | None = None,
    ) -> InvoiceInfo:
        if due_date is None:
            raise ValidationError("due_date", "is required")

        def _tx(session: Session) -> InvoiceInfo:
            return self._invoices(session).update_due_date(invoice_id, due_date).to_dto()

        info = self._run("update_due_date", _tx, actor_id)
        self._audit_invoice_change(actor_id, info, f"Moved invoice due date to {due_date}")
        return info

    def cancel_invoice(
        self,
        invoice_id: UUID,
        reason: str,
        actor_id: str | None = None,
        deadline_seconds: float | None = None,
    ) -> InvoiceInfo:
        """
        Cancel a pending invoice, releasing its reserved credit.

        Raises:
            InvoiceNotPendingError: the invoice is paid or already cancelled.
        """
        if not (reason or "").strip():
            raise ValidationError("reason", "is required")

        def _tx(session: Session) -> InvoiceInfo:
            return self._invoices(session).cancel(invoice_id, reason.strip(), actor_id).to_dto()

        info = self._run("cancel_invoice", _tx, actor_id, deadline_seconds)
        self._audit(
            actor_id,
            ActivityType.UPDATE,
            EntityType.INVOICE,
            info.id,
            "Cancelled invoice",
            {"reason": info.cancellation_reason, "status": info.status.value},
        )
        return info

    def add_invoice_comment(
        self,
        invoice_id: UUID,
        text: str,
        actor_id: str,
    ) -> InvoiceCommentInfo:
        """
        Leave a note on an invoice; allowed whatever its status.

        Raises:
            ValidationError: empty text or no author.
            InvoiceNotFoundError: no such invoice.
        """
        text = (text or "").strip()
        if not text:
            raise ValidationError("text", "is required")
        if not actor_id:
            raise ValidationError("actor_id", "is required")

        def _tx(session: Session) -> InvoiceCommentInfo:
            return self._invoices(session).add_comment(invoice_id, text, actor_id).to_dto()

        info = self._run("add_invoice_comment", _tx, actor_id)
        self._audit(
            actor_id,
            ActivityType.UPDATE,
            EntityType.INVOICE,
            invoice_id,
            "Added comment to invoice",
            {"comment_id": str(info.id)},
        )
        return info

    def invoices_for_client(
        self,
        client_id: UUID,
        status: InvoiceStatus | None = None,
    ) -> list[InvoiceInfo]:
        today = self._clock.today()
        return self._store.read(lambda s: InvoiceSelector(s).for_client(client_id, status, today))

    def invoices_for_provider(
        self,
        provider_id: str,
        status: InvoiceStatus | None = None,
    ) -> list[InvoiceInfo]:
        today = self._clock.today()
        return self._store.read(lambda s: InvoiceSelector(s).for_provider(provider_id, status, today))

    def search_invoices(self, provider_id: str, term: str) -> list[InvoiceInfo]:
        return self._store.read(lambda s: InvoiceSelector(s).search(provider_id, term))

    def overdue_invoices(self, provider_id: str | None = None) -> list[InvoiceInfo]:
        today = self._clock.today()
        return self._store.read(lambda s: InvoiceSelector(s).overdue(today, provider_id))

    def invoice_summary(self, provider_id: str) -> InvoiceSummary:
        today = self._clock.today()
        return self._store.read(lambda s: InvoiceSelector(s).summary(provider_id, today))

    def invoice_stats(self, provider_id: str) -> InvoiceStats:
        today = self._clock.today()
        return self._store.read(lambda s: InvoiceSelector(s).stats(provider_id, today))

    # =================================================================
    # Payments
    # =================================================================

    def record_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        payment_date: date,
        receipt_ref: str | None = None,
        actor_id: str | None = None,
        idempotency_key: str | None = None,
        deadline_seconds: float | None = None,
    ) -> PaymentInfo:
        """
        Apply a payment; settles the invoice once payments cover its total.

        A repeated ``idempotency_key`` returns the payment already recorded
        under it and writes nothing.

        Raises:
            ValidationError: before any transaction.
            InvoiceNotFoundError, InvoiceAlreadySettledError,
            InvoiceNotPayableError: inside it; nothing is written.
        """
        amount = coerce_amount(amount)
        method = coerce_method(method)
        if payment_date is None:
            raise ValidationError("payment_date", "is required")

        def _tx(session: Session) -> tuple[PaymentInfo, bool, bool]:
            outcome = self._payments(session).record(
                invoice_id,
                amount,
                method,
                payment_date,
                receipt_ref=receipt_ref,
                actor_id=actor_id,
                idempotency_key=idempotency_key,
            )
            settled = outcome.status_changed and outcome.invoice.status == InvoiceStatus.PAID.value
            return outcome.payment.to_dto(), outcome.created, settled

        info, created, settled = self._run("record_payment", _tx, actor_id, deadline_seconds)
        if created:
            self._audit(
                actor_id,
                ActivityType.CREATE,
                EntityType.PAYMENT,
                info.id,
                f"Recorded {info.method.value} payment of {info.amount}",
                {
                    "invoice_id": str(info.invoice_id),
                    "amount": str(info.amount),
                    "invoice_settled": settled,
                },
            )
        return info

    def get_payment(self, payment_id: UUID) -> PaymentInfo:
        info = self._store.read(lambda s: PaymentSelector(s).get(payment_id))
        if info is None:
            raise PaymentNotFoundError(str(payment_id))
        return info

    def update_payment(
        self,
        payment_id: UUID,
        updates: PaymentUpdate,
        actor_id: str | None = None,
        deadline_seconds: float | None = None,
    ) -> PaymentInfo:
        """
        Amend a payment and re-derive its invoice's status in the same
        transaction.

        Raises:
            PaymentNotFoundError, ValidationError.
        """
        if updates.is_empty():
            raise ValidationError("updates", "no changes given")
        if updates.amount is not None:
            coerce_amount(updates.amount)
        if updates.method is not None:
            coerce_method(updates.method)

        def _tx(session: Session) -> tuple[PaymentInfo, InvoiceStatus, str]:
            outcome = self._payments(session).update(payment_id, updates)
            return outcome.payment.to_dto(), outcome.previous_status, outcome.invoice.status

        info, previous, current = self._run("update_payment", _tx, actor_id, deadline_seconds)
        self._audit(
            actor_id,
            ActivityType.UPDATE,
            EntityType.PAYMENT,
            info.id,
            "Updated payment",
            {
                "invoice_id": str(info.invoice_id),
                "amount": str(info.amount),
                "previous_invoice_status": previous.value,
                "invoice_status": current,
            },
        )
        return info

    def void_payment(
        self,
        payment_id: UUID,
        reason: str,
        actor_id: str | None = None,
    ) -> PaymentInfo:
        if not (reason or "").strip():
            raise ValidationError("reason", "is required")

        def _tx(session: Session) -> PaymentInfo:
            return self._payments(session).void(payment_id, reason.strip()).payment.to_dto()

        info = self._run("void_payment", _tx, actor_id)
        self._audit(
            actor_id,
            ActivityType.UPDATE,
            EntityType.PAYMENT,
            info.id,
            "Voided payment",
            {"invoice_id": str(info.invoice_id), "reason": info.void_reason},
        )
        return info

    def payments_for_invoice(self, invoice_id: UUID) -> list[PaymentInfo]:
        return self._store.read(lambda s: PaymentSelector(s).for_invoice(invoice_id))

    def payments_for_client(self, client_id: UUID) -> list[PaymentInfo]:
        return self._store.read(lambda s: PaymentSelector(s).for_client(client_id))

    def payments_for_provider(self, provider_id: str) -> list[PaymentInfo]:
        return self._store.read(lambda s: PaymentSelector(s).for_provider(provider_id))

    def payment_stats(
        self,
        provider_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> PaymentStats:
        return self._store.read(lambda s: PaymentSelector(s).stats(provider_id, start, end))

    # =================================================================
    # Credit limit requests
    # =================================================================

    def request_credit_limit_change(
        self,
        client_id: UUID,
        requested_limit: Decimal,
        requested_by: str | None = None,
        notes: str | None = None,
    ) -> CreditLimitRequestInfo:
        """
        File a request to raise a client's credit limit.

        Raises:
            InvalidLimitError: negative, or not above the current limit.
            ClientNotFoundError, DuplicateCreditRequestError.
        """
        limit = to_decimal(requested_limit, "requested_limit")
        if limit < ZERO:
            raise InvalidLimitError(limit, "must not be negative")

        def _tx(session: Session) -> CreditLimitRequestInfo:
            return self._requests(session).submit(client_id, limit, requested_by, notes).to_dto()

        info = self._run("request_credit_limit_change", _tx, requested_by)
        self._audit(
            requested_by,
            ActivityType.CREATE,
            EntityType.CREDIT_LIMIT,
            info.id,
            f"Requested credit limit increase from {info.current_limit} to {info.requested_limit}",
            {"client_id": str(info.client_id)},
        )
        return info

    def decide_credit_limit_request(
        self,
        request_id: UUID,
        decision: CreditDecision,
        decided_by: str,
        notes: str | None = None,
        deadline_seconds: float | None = None,
    ) -> CreditLimitRequestInfo:
        """
        Approve or reject a pending request.

        Approval raises the client's credit limit to the requested limit in
        the same transaction.  A limit that already reached the requested
        amount is left untouched; approval never lowers it.  Repeating the
        decision a request already carries returns it unchanged.

        Raises:
            CreditRequestNotFoundError, RequestNotPendingError.
        """
        try:
            decision = CreditDecision(decision)
        except ValueError as exc:
            raise ValidationError("decision", f"unknown decision {decision!r}") from exc
        if not decided_by:
            raise ValidationError("decided_by", "is required")

        def _tx(session: Session):
            outcome = self._requests(session).decide(request_id, decision, decided_by, notes)
            return outcome.request.to_dto(), outcome.applied, outcome.previous_limit, outcome.new_limit

        info, applied, previous_limit, new_limit = self._run(
            "decide_credit_limit_request", _tx, decided_by, deadline_seconds
        )
        if applied:
            approved = info.status == CreditRequestStatus.APPROVED
            metadata: dict[str, Any] = {"client_id": str(info.client_id)}
            if approved:
                metadata["previous_limit"] = str(previous_limit)
                metadata["new_limit"] = str(new_limit)
                metadata["limit_changed"] = new_limit != previous_limit
            self._audit(
                decided_by,
                ActivityType.APPROVE if approved else ActivityType.REJECT,
                EntityType.CREDIT_LIMIT,
                info.id,
                f"{'Approved' if approved else 'Rejected'} credit limit request "
                f"for {info.requested_limit}",
                metadata,
            )
        return info

    def get_credit_request(self, request_id: UUID) -> CreditLimitRequestInfo:
        info = self._store.read(lambda s: CreditRequestSelector(s).get(request_id))
        if info is None:
            raise CreditRequestNotFoundError(str(request_id))
        return info

    def credit_requests_for_client(self, client_id: UUID) -> list[CreditLimitRequestInfo]:
        return self._store.read(lambda s: CreditRequestSelector(s).for_client(client_id))

    def credit_requests_for_provider(
        self,
        provider_id: str,
        status: CreditRequestStatus | None = None,
    ) -> list[CreditLimitRequestInfo]:
        return self._store.read(lambda s: CreditRequestSelector(s).for_provider(provider_id, status))

    # =================================================================
    # Activity log reads
    # =================================================================

    def activity_for_entity(self, entity_type: EntityType, entity_id: UUID | str) -> list[ActivityEntry]:
        return self._store.read(lambda s: ActivityLogSelector(s).for_entity(entity_type, str(entity_id)))

    def activity_for_actor(self, actor_id: str, limit: int = 50) -> list[ActivityEntry]:
        return self._store.read(lambda s: ActivityLogSelector(s).for_actor(actor_id, limit))

    # =================================================================
    # Internals
    # =================================================================

    def _accounts(self, session: Session) -> ClientAccountService:
        return ClientAccountService(session, self._clock)

    def _invoices(self, session: Session) -> InvoiceService:
        return InvoiceService(session, self._clock, self._accounts(session))

    def _payments(self, session: Session) -> PaymentService:
        return PaymentService(session, self._clock, self._accounts(session))

    def _requests(self, session: Session) -> CreditRequestService:
        return CreditRequestService(session, self._clock, self._accounts(session))

    def _run(
        self,
        operation: str,
        fn: Callable[[Session], T],
        actor_id: str | None = None,
        deadline_seconds: float | None = None,
    ) -> T:
        with LogContext.bind(actor_id=actor_id):
            return self._store.run(operation, fn, deadline_seconds=deadline_seconds)

    def _audit_invoice_change(self, actor_id: str | None, info: InvoiceInfo, description: str) -> None:
        self._audit(
            actor_id,
            ActivityType.UPDATE,
            EntityType.INVOICE,
            info.id,
            description,
            {"total_amount": str(info.total_amount), "item_count": len(info.items)},
        )

    def _audit(
        self,
        actor_id: str | None,
        activity_type: ActivityType,
        entity_type: EntityType,
        entity_id: UUID | str,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._audit_log.emit(
            ActivityEntry(
                actor_id=actor_id,
                activity_type=activity_type,
                entity_type=entity_type,
                entity_id=str(entity_id),
                description=description,
                occurred_at=self._clock.now(),
                metadata=metadata or {},
            )
        )
