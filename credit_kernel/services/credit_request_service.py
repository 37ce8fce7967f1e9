"""
CreditRequestService -- credit-limit-increase request workflow.

Responsibility:
    Files credit limit increase requests and applies decisions.  Approval
    raises the client's ``credit_limit`` in the same transaction that marks
    the request approved.

Architecture position:
    Kernel > Services -- imperative shell, flush-only (see BaseService).
    Transition rules live in domain/credit_request.py.

Invariants enforced:
    - At most one pending request per client.
    - Idempotent decisions: repeating the decision a request already
      carries writes nothing, so a retried approval never raises the limit
      twice.
    - Only pending requests transition; both outcomes are terminal.
    - Approval never lowers a limit.  If the account's limit already
      reached ``requested_limit`` by decision time (an explicit limit change
      in between), the request is approved and the limit left as it is.
      The account revision still moves, so a concurrent limit change makes
      the approval re-run.

Failure modes:
    - ClientNotFoundError, InvalidLimitError, DuplicateCreditRequestError,
      CreditRequestNotFoundError, RequestNotPendingError.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from credit_kernel.domain.clock import Clock
from credit_kernel.domain.credit_request import CreditDecision, resolve_decision
from credit_kernel.domain.dtos import CreditRequestStatus
from credit_kernel.exceptions import (
    CreditRequestNotFoundError,
    DuplicateCreditRequestError,
    InvalidLimitError,
)
from credit_kernel.logging_config import get_logger
from credit_kernel.models.credit_request import CreditLimitRequest
from credit_kernel.services.base import BaseService
from credit_kernel.services.client_account_service import ClientAccountService

logger = get_logger("services.credit_request")


@dataclass(frozen=True)
class DecisionOutcome:
    request: CreditLimitRequest
    applied: bool
    previous_limit: Decimal | None = None
    new_limit: Decimal | None = None


class CreditRequestService(BaseService[CreditLimitRequest]):
    """Credit request writes inside one LedgerStore attempt."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        accounts: ClientAccountService | None = None,
    ):
        super().__init__(session, clock)
        self.accounts = accounts or ClientAccountService(session, self.clock)

    def submit(
        self,
        client_id: UUID,
        requested_limit: Decimal,
        requested_by: str | None = None,
        notes: str | None = None,
    ) -> CreditLimitRequest:
        """
        File a request to raise ``client_id``'s credit limit.

        The current limit is snapshotted on the request.

        Raises:
            ClientNotFoundError: no such client.
            InvalidLimitError: requested limit does not exceed the current.
            DuplicateCreditRequestError: a pending request already exists.
        """
        account = self.accounts.get(client_id)
        if requested_limit <= account.credit_limit:
            raise InvalidLimitError(
                requested_limit,
                f"must exceed current limit {account.credit_limit}",
            )
        existing = self.pending_for_client(client_id)
        if existing is not None:
            raise DuplicateCreditRequestError(str(client_id), str(existing.id))

        now = self.clock.now()
        request = CreditLimitRequest(
            client_id=account.id,
            provider_id=account.provider_id,
            current_limit=account.credit_limit,
            requested_limit=requested_limit,
            status=CreditRequestStatus.PENDING.value,
            requested_by=requested_by,
            notes=notes,
            revision=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(request)
        self.session.flush()
        logger.info(
            "credit_request_submitted",
            extra={
                "request_id": str(request.id),
                "client_id": str(account.id),
                "current_limit": str(account.credit_limit),
                "requested_limit": str(requested_limit),
            },
        )
        return request

    def get(self, request_id: UUID) -> CreditLimitRequest:
        request = self.session.get(CreditLimitRequest, request_id)
        if request is None:
            raise CreditRequestNotFoundError(str(request_id))
        return request

    def pending_for_client(self, client_id: UUID) -> CreditLimitRequest | None:
        return self.session.scalar(
            select(CreditLimitRequest).where(
                CreditLimitRequest.client_id == client_id,
                CreditLimitRequest.status == CreditRequestStatus.PENDING.value,
            )
        )

    def decide(
        self,
        request_id: UUID,
        decision: CreditDecision,
        decided_by: str,
        notes: str | None = None,
    ) -> DecisionOutcome:
        """
        Approve or reject a pending request.

        Returns:
            DecisionOutcome with ``applied=False`` when the request already
            carried this decision.
        """
        request = self.get(request_id)
        target = resolve_decision(
            str(request_id), CreditRequestStatus(request.status), decision
        )
        if target is None:
            logger.info(
                "credit_request_decision_repeated",
                extra={"request_id": str(request_id), "status": request.status},
            )
            return DecisionOutcome(request=request, applied=False)

        previous_limit = new_limit = None
        if target == CreditRequestStatus.APPROVED:
            account = self.accounts.get(request.client_id)
            if request.requested_limit > account.credit_limit:
                previous_limit = self.accounts.change_limit(account, request.requested_limit)
            else:
                previous_limit = account.credit_limit
                account.touch()
                account.updated_at = self.clock.now()
                logger.info(
                    "credit_request_already_satisfied",
                    extra={
                        "request_id": str(request.id),
                        "credit_limit": str(account.credit_limit),
                        "requested_limit": str(request.requested_limit),
                    },
                )
            new_limit = account.credit_limit

        now = self.clock.now()
        request.status = target.value
        request.decided_by = decided_by
        request.decided_at = now
        if notes is not None:
            request.notes = notes
        request.updated_at = now
        request.touch()
        self.session.flush()

        logger.info(
            "credit_request_decided",
            extra={
                "request_id": str(request.id),
                "client_id": str(request.client_id),
                "status": request.status,
                "decided_by": decided_by,
            },
        )
        return DecisionOutcome(
            request=request,
            applied=True,
            previous_limit=previous_limit,
            new_limit=new_limit,
        )
