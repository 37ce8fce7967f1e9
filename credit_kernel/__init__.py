"""
Credit Kernel

A transactional domain engine for B2B invoicing on trade credit:
- Invoices are admitted only within a client's available credit
- Payments settle invoices atomically with their status
- Credit-limit increase requests move through a small approval workflow
- Every mutation runs as one optimistic transaction with bounded retry
"""

__version__ = "0.1.0"
