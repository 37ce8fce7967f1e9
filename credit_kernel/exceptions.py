"""
Typed Exception Hierarchy for the Credit Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (an API layer, a mobile backend, a batch job) must be
able to tell *why* an operation was refused without parsing message text:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (e.g. the available credit)

Example:
    try:
        engine.create_invoice(draft)
    except CreditLimitExceededError as e:
        api_response(code=e.code, available=str(e.available))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CreditKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidLimitError
    |       +-- CreditLimitBelowExposureError
    |
    +-- NotFoundError
    |   +-- ClientNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- ItemNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- CreditRequestNotFoundError
    |
    +-- InvariantViolationError
    |   +-- CreditLimitExceededError
    |   +-- AmountMismatchError
    |   +-- ImmutableInvoiceError
    |   +-- InvoiceNotPendingError
    |   +-- InvoiceAlreadySettledError
    |   +-- InvoiceNotPayableError
    |   +-- RequestNotPendingError
    |   +-- DuplicateCreditRequestError
    |   +-- ClientAccountInactiveError
    |   +-- ClientHasInvoicesError
    |
    +-- ConcurrencyError
    |   +-- OperationConflictedError
    |   +-- OperationTimedOutError
    |
    +-- StoreUnavailableError

===============================================================================
HANDLING PATTERNS
===============================================================================

* ValidationError: caught before any transaction starts; the caller fixes
  its input.
* InvariantViolationError: the transaction aborted with zero writes.
* OperationConflictedError: the bounded retry loop gave up; safe to retry
  the whole request later.
* OperationTimedOutError: nothing was written.
* StoreUnavailableError: the Ledger Store could not be reached.

Activity-log failures never surface as exceptions.
"""

from decimal import Decimal


class CreditKernelError(Exception):
    """
    Base exception for all credit kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CREDIT_KERNEL_ERROR"


# Validation exceptions


class ValidationError(CreditKernelError):
    """Malformed input, rejected before any transaction starts."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidLimitError(ValidationError):
    """Credit limit value is not acceptable."""

    code: str = "INVALID_LIMIT"

    def __init__(self, limit: Decimal, reason: str):
        self.limit = limit
        super().__init__("credit_limit", f"{limit} ({reason})")


class CreditLimitBelowExposureError(InvalidLimitError):
    """New limit would not cover the client's pending invoices."""

    code: str = "LIMIT_BELOW_EXPOSURE"

    def __init__(self, limit: Decimal, pending_total: Decimal):
        self.pending_total = pending_total
        super().__init__(
            limit,
            f"below pending invoice total {pending_total}",
        )


# Not-found exceptions


class NotFoundError(CreditKernelError):
    """Base exception for missing documents."""

    code: str = "NOT_FOUND"


class ClientNotFoundError(NotFoundError):
    """Client account with given ID was not found."""

    code: str = "CLIENT_NOT_FOUND"

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client not found: {client_id}")


class InvoiceNotFoundError(NotFoundError):
    """Invoice with given ID was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class ItemNotFoundError(NotFoundError):
    """Line item is not part of the invoice."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, invoice_id: str, item_code: str):
        self.invoice_id = invoice_id
        self.item_code = item_code
        super().__init__(f"Item {item_code} not found in invoice {invoice_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class CreditRequestNotFoundError(NotFoundError):
    """Credit limit request with given ID was not found."""

    code: str = "CREDIT_REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Credit limit request not found: {request_id}")


# Invariant violations


class InvariantViolationError(CreditKernelError):
    """Base exception for refused state changes (zero writes)."""

    code: str = "INVARIANT_VIOLATION"


class CreditLimitExceededError(InvariantViolationError):
    """Invoice amount exceeds the client's available credit."""

    code: str = "CREDIT_LIMIT_EXCEEDED"

    def __init__(self, client_id: str, requested: Decimal, available: Decimal):
        self.client_id = client_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Invoice amount ({requested}) exceeds available credit "
            f"({available}) for client {client_id}"
        )


class AmountMismatchError(InvariantViolationError):
    """Declared total does not match the sum of the line items."""

    code: str = "AMOUNT_MISMATCH"

    def __init__(self, declared: Decimal, computed: Decimal):
        self.declared = declared
        self.computed = computed
        super().__init__(
            f"Invoice total amount ({declared}) doesn't match the sum of "
            f"item totals ({computed})"
        )


class ImmutableInvoiceError(InvariantViolationError):
    """Invoice is no longer pending; items and amounts are frozen."""

    code: str = "IMMUTABLE_INVOICE"

    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(f"Cannot modify invoice {invoice_id} with status: {status}")


class InvoiceNotPendingError(InvariantViolationError):
    """Operation requires a pending invoice."""

    code: str = "INVOICE_NOT_PENDING"

    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(f"Cannot cancel invoice {invoice_id} with status: {status}")


class InvoiceAlreadySettledError(InvariantViolationError):
    """Invoice is already paid."""

    code: str = "already-paid"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice is already paid: {invoice_id}")


class InvoiceNotPayableError(InvariantViolationError):
    """Invoice cannot receive payments (cancelled)."""

    code: str = "INVOICE_NOT_PAYABLE"

    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(f"Invoice {invoice_id} with status {status} cannot be paid")


class RequestNotPendingError(InvariantViolationError):
    """Credit limit request has already been decided."""

    code: str = "REQUEST_NOT_PENDING"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Credit limit request {request_id} is already {status}")


class DuplicateCreditRequestError(InvariantViolationError):
    """Client already has a pending credit limit request."""

    code: str = "DUPLICATE_CREDIT_REQUEST"

    def __init__(self, client_id: str, existing_request_id: str):
        self.client_id = client_id
        self.existing_request_id = existing_request_id
        super().__init__(
            f"Client {client_id} already has pending credit limit request "
            f"{existing_request_id}"
        )


class ClientAccountInactiveError(InvariantViolationError):
    """Client account is suspended or closed."""

    code: str = "CLIENT_ACCOUNT_INACTIVE"

    def __init__(self, client_id: str, status: str):
        self.client_id = client_id
        self.status = status
        super().__init__(f"Client {client_id} is {status} and cannot be invoiced")


class ClientHasInvoicesError(InvariantViolationError):
    """Client account still owns invoices and cannot be deleted."""

    code: str = "CLIENT_HAS_INVOICES"

    def __init__(self, client_id: str, invoice_count: int):
        self.client_id = client_id
        self.invoice_count = invoice_count
        super().__init__(
            f"Cannot delete client {client_id} with {invoice_count} existing "
            "invoices. Deactivate the account instead."
        )


# Concurrency-related exceptions


class ConcurrencyError(CreditKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OperationConflictedError(ConcurrencyError):
    """Retry budget exhausted; every attempt lost a write conflict."""

    code: str = "OPERATION_CONFLICTED"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Operation {operation} conflicted on all {attempts} attempts"
        )


class OperationTimedOutError(ConcurrencyError):
    """Deadline passed before the transaction could commit; nothing written."""

    code: str = "OPERATION_TIMED_OUT"

    def __init__(self, operation: str, deadline_seconds: float):
        self.operation = operation
        self.deadline_seconds = deadline_seconds
        super().__init__(
            f"Operation {operation} exceeded its deadline of {deadline_seconds}s"
        )


# Collaborator failures


class StoreUnavailableError(CreditKernelError):
    """The Ledger Store could not be reached or failed mid-transaction."""

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Ledger store unavailable during {operation}: {detail}")
