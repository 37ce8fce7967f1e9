"""Kernel services: flush-only domain writers plus the transactional engine."""

from credit_kernel.services.activity_log import (
    ActivityLog,
    ActivityLogEmitter,
    DatabaseActivityLog,
)
from credit_kernel.services.client_account_service import ClientAccountService
from credit_kernel.services.credit_engine import CreditEngine
from credit_kernel.services.credit_request_service import CreditRequestService
from credit_kernel.services.invoice_service import InvoiceService, validate_draft
from credit_kernel.services.ledger_store import LedgerStore
from credit_kernel.services.payment_service import PaymentService

__all__ = [
    "ActivityLog",
    "ActivityLogEmitter",
    "ClientAccountService",
    "CreditEngine",
    "CreditRequestService",
    "DatabaseActivityLog",
    "InvoiceService",
    "LedgerStore",
    "PaymentService",
    "validate_draft",
]
