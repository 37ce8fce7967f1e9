"""SQLAlchemy ORM models for the credit kernel."""

from credit_kernel.models.activity_log import ActivityLogRecord
from credit_kernel.models.client_account import ClientAccount
from credit_kernel.models.credit_request import CreditLimitRequest
from credit_kernel.models.invoice import Invoice, InvoiceComment, InvoiceLineItem
from credit_kernel.models.payment import Payment

__all__ = [
    "ActivityLogRecord",
    "ClientAccount",
    "CreditLimitRequest",
    "Invoice",
    "InvoiceComment",
    "InvoiceLineItem",
    "Payment",
]
