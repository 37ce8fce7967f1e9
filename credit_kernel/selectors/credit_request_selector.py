"""Read-only access to credit limit requests."""

from uuid import UUID

from sqlalchemy import select

from credit_kernel.domain.dtos import CreditLimitRequestInfo, CreditRequestStatus
from credit_kernel.models.credit_request import CreditLimitRequest
from credit_kernel.selectors.base import BaseSelector


class CreditRequestSelector(BaseSelector[CreditLimitRequest]):

    def get(self, request_id: UUID) -> CreditLimitRequestInfo | None:
        request = self.session.get(CreditLimitRequest, request_id)
        return request.to_dto() if request is not None else None

    def for_client(self, client_id: UUID) -> list[CreditLimitRequestInfo]:
        stmt = (
            select(CreditLimitRequest)
            .where(CreditLimitRequest.client_id == client_id)
            .order_by(CreditLimitRequest.created_at.desc())
        )
        return [r.to_dto() for r in self.session.scalars(stmt)]

    def for_provider(
        self,
        provider_id: str,
        status: CreditRequestStatus | None = None,
    ) -> list[CreditLimitRequestInfo]:
        """Requests from the provider's clients; pending queue when filtered."""
        stmt = select(CreditLimitRequest).where(CreditLimitRequest.provider_id == provider_id)
        if status is not None:
            stmt = stmt.where(CreditLimitRequest.status == status.value)
        stmt = stmt.order_by(CreditLimitRequest.created_at.desc())
        return [r.to_dto() for r in self.session.scalars(stmt)]
