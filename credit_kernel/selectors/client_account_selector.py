"""Read-only access to client accounts."""

from uuid import UUID

from sqlalchemy import func, select

from credit_kernel.domain.dtos import ClientAccountInfo, ClientAccountStatus
from credit_kernel.models.client_account import ClientAccount
from credit_kernel.selectors.base import BaseSelector


class ClientAccountSelector(BaseSelector[ClientAccount]):

    def get(self, client_id: UUID) -> ClientAccountInfo | None:
        account = self.session.get(ClientAccount, client_id)
        return account.to_dto() if account is not None else None

    def for_provider(
        self,
        provider_id: str,
        status: ClientAccountStatus | None = None,
    ) -> list[ClientAccountInfo]:
        """Accounts held with ``provider_id``, sorted by name."""
        stmt = select(ClientAccount).where(ClientAccount.provider_id == provider_id)
        if status is not None:
            stmt = stmt.where(ClientAccount.status == status.value)
        stmt = stmt.order_by(ClientAccount.name, ClientAccount.created_at)
        return [a.to_dto() for a in self.session.scalars(stmt)]

    def search(self, provider_id: str, term: str) -> list[ClientAccountInfo]:
        """Accounts of ``provider_id`` whose name contains ``term``, ignoring case."""
        stmt = select(ClientAccount).where(ClientAccount.provider_id == provider_id)
        needle = (term or "").strip().lower()
        if needle:
            stmt = stmt.where(func.lower(ClientAccount.name).contains(needle, autoescape=True))
        stmt = stmt.order_by(ClientAccount.name, ClientAccount.created_at)
        return [a.to_dto() for a in self.session.scalars(stmt)]
