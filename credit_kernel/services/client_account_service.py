"""
ClientAccountService -- client accounts and the credit invariant.

Responsibility:
    Creates and loads client accounts, computes available credit, and is
    the single place where credit is reserved against an account.

Architecture position:
    Kernel > Services -- imperative shell, flush-only (see BaseService).

Invariants enforced:
    - Credit invariant: for every client, the sum of pending invoice
      totals never exceeds ``credit_limit``.  ``reserve_credit`` checks the
      amount against freshly read pending invoices and then advances the
      account revision, so a concurrent reservation that read the same
      state loses its compare-and-swap on commit.
    - ``credit_limit`` is never lowered below current pending exposure.
    - Accounts that still own invoices are never deleted.

Failure modes:
    - ClientNotFoundError, ClientAccountInactiveError,
      CreditLimitExceededError, InvalidLimitError,
      CreditLimitBelowExposureError, ClientHasInvoicesError.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from credit_kernel.domain.dtos import ClientAccountStatus, InvoiceStatus
from credit_kernel.domain.values import ZERO
from credit_kernel.exceptions import (
    ClientAccountInactiveError,
    ClientHasInvoicesError,
    ClientNotFoundError,
    CreditLimitBelowExposureError,
    CreditLimitExceededError,
    InvalidLimitError,
)
from credit_kernel.logging_config import get_logger
from credit_kernel.models.client_account import ClientAccount
from credit_kernel.models.credit_request import CreditLimitRequest
from credit_kernel.models.invoice import Invoice
from credit_kernel.services.base import BaseService

logger = get_logger("services.client_account")


class ClientAccountService(BaseService[ClientAccount]):
    """
    Client account lifecycle and credit arithmetic.

    Guarantees:
        - Pending totals are summed in Python over loaded Decimal values,
          so every backend sees identical arithmetic.
        - Every mutation advances the account revision via ``touch()``.
    """

    def create(
        self,
        provider_id: str,
        name: str,
        credit_limit: Decimal,
    ) -> ClientAccount:
        if credit_limit < ZERO:
            raise InvalidLimitError(credit_limit, "must not be negative")
        now = self.clock.now()
        account = ClientAccount(
            provider_id=provider_id,
            name=name,
            credit_limit=credit_limit,
            status=ClientAccountStatus.ACTIVE.value,
            revision=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(account)
        self.session.flush()
        logger.info(
            "client_account_created",
            extra={"client_id": str(account.id), "credit_limit": str(credit_limit)},
        )
        return account

    def get(self, client_id: UUID) -> ClientAccount:
        account = self.session.get(ClientAccount, client_id)
        if account is None:
            raise ClientNotFoundError(str(client_id))
        return account

    def pending_total(self, client_id: UUID) -> Decimal:
        """Sum of ``total_amount`` over the client's pending invoices."""
        amounts = self.session.scalars(
            select(Invoice.total_amount).where(
                Invoice.client_id == client_id,
                Invoice.status == InvoiceStatus.PENDING.value,
            )
        ).all()
        return sum(amounts, ZERO)

    def available_credit(self, account: ClientAccount) -> Decimal:
        """``credit_limit`` minus the client's pending exposure."""
        return account.credit_limit - self.pending_total(account.id)

    def reserve_credit(
        self,
        account: ClientAccount,
        amount: Decimal,
        require_active: bool = True,
    ) -> Decimal:
        """
        Claim ``amount`` of the account's available credit.

        Must be called *before* the invoice row carrying ``amount`` is
        flushed as pending, so the pending total read here excludes it.
        ``require_active=False`` is for exposure coming back (a paid
        invoice reopened by a payment amendment) rather than new business.

        Returns:
            Available credit before the reservation.

        Raises:
            ClientAccountInactiveError: the account is suspended or closed.
            CreditLimitExceededError: ``amount`` exceeds available credit.
        """
        if require_active and account.status != ClientAccountStatus.ACTIVE.value:
            raise ClientAccountInactiveError(str(account.id), account.status)
        available = self.available_credit(account)
        if amount > available:
            logger.info(
                "credit_limit_exceeded",
                extra={
                    "client_id": str(account.id),
                    "requested": str(amount),
                    "available": str(available),
                },
            )
            raise CreditLimitExceededError(str(account.id), amount, available)
        account.touch()
        account.updated_at = self.clock.now()
        return available

    def change_limit(self, account: ClientAccount, new_limit: Decimal) -> Decimal:
        """
        Set ``credit_limit``; returns the previous limit.

        Raises:
            InvalidLimitError: ``new_limit`` is negative.
            CreditLimitBelowExposureError: ``new_limit`` would not cover
                the client's pending invoices.
        """
        if new_limit < ZERO:
            raise InvalidLimitError(new_limit, "must not be negative")
        pending = self.pending_total(account.id)
        if new_limit < pending:
            raise CreditLimitBelowExposureError(new_limit, pending)
        previous = account.credit_limit
        account.credit_limit = new_limit
        account.touch()
        account.updated_at = self.clock.now()
        self.session.flush()
        logger.info(
            "credit_limit_changed",
            extra={
                "client_id": str(account.id),
                "previous_limit": str(previous),
                "new_limit": str(new_limit),
            },
        )
        return previous

    def set_status(self, client_id: UUID, status: ClientAccountStatus) -> ClientAccount:
        account = self.get(client_id)
        if account.status != status.value:
            account.status = status.value
            account.touch()
            account.updated_at = self.clock.now()
            self.session.flush()
        return account

    def delete(self, client_id: UUID) -> ClientAccount:
        """
        Hard-delete an account that never invoiced.

        Credit requests belong to the account and go with it.
        """
        account = self.get(client_id)
        invoice_count = self.session.scalar(
            select(func.count()).select_from(Invoice).where(Invoice.client_id == client_id)
        )
        if invoice_count:
            raise ClientHasInvoicesError(str(client_id), invoice_count)
        for request in self.session.scalars(
            select(CreditLimitRequest).where(CreditLimitRequest.client_id == client_id)
        ):
            self.session.delete(request)
        self.session.delete(account)
        self.session.flush()
        return account
