"""Read-only reporting selectors."""

from credit_kernel.selectors.activity_log_selector import ActivityLogSelector
from credit_kernel.selectors.client_account_selector import ClientAccountSelector
from credit_kernel.selectors.credit_request_selector import CreditRequestSelector
from credit_kernel.selectors.invoice_selector import InvoiceSelector
from credit_kernel.selectors.payment_selector import PaymentSelector

__all__ = [
    "ActivityLogSelector",
    "ClientAccountSelector",
    "CreditRequestSelector",
    "InvoiceSelector",
    "PaymentSelector",
]
