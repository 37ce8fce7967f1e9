"""
Module: credit_kernel.models.invoice
Responsibility: ORM persistence for invoices, their line items and their
    comment threads.
Architecture position: Kernel > Models.  May import from db/ only (domain
    DTOs are imported lazily inside ``to_dto``).

Invariants enforced:
    - total_amount > 0 (DB check constraint); equality with the line item
      sum is enforced by InvoiceService on every write.
    - Stored status is one of pending / paid / cancelled.  "overdue" is a
      read-time derivation and never stored.
    - Line items are owned exclusively by their invoice
      (cascade="all, delete-orphan").
    - Comments are append-only notes; they never move ``revision`` and are
      accepted on invoices in any status.
    - ``revision`` is the compare-and-swap column for the invoice and
      everything it owns (items, payments).

Failure modes:
    - StaleDataError on flush if another transaction moved ``revision``.
    - IntegrityError on a non-positive total or a dangling client_id.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_kernel.db.base import Base, UUIDString, VersionedMixin
from credit_kernel.db.types import ExternalId, LongText, Money, Quantity, StatusCode

if TYPE_CHECKING:
    from credit_kernel.domain.dtos import InvoiceCommentInfo, InvoiceInfo, LineItemInfo


class Invoice(VersionedMixin, Base):
    """A provider's invoice to one client."""

    __tablename__ = "invoices"

    __table_args__ = (
        CheckConstraint("total_amount > 0", name="ck_invoices_total_positive"),
        CheckConstraint(
            "status IN ('pending', 'paid', 'cancelled')",
            name="ck_invoices_valid_status",
        ),
        CheckConstraint("due_date >= invoice_date", name="ck_invoices_due_after_issue"),
        Index("idx_invoices_client_status", "client_id", "status"),
        Index("idx_invoices_provider_status", "provider_id", "status"),
    )

    client_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("client_accounts.id"),
        nullable=False,
    )
    provider_id: Mapped[ExternalId] = mapped_column(nullable=False)
    invoice_date: Mapped[date] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(nullable=False)
    total_amount: Mapped[Money] = mapped_column(nullable=False)
    status: Mapped[StatusCode] = mapped_column(nullable=False, default="pending")
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_item_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    settled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by: Mapped[ExternalId | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[LongText | None] = mapped_column(nullable=True)

    items: Mapped[list["InvoiceLineItem"]] = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.position",
        lazy="selectin",
    )
    comments: Mapped[list["InvoiceComment"]] = relationship(
        "InvoiceComment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceComment.created_at",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": revision, "version_id_generator": False}

    def __repr__(self) -> str:
        return f"<Invoice {self.id} total={self.total_amount} status={self.status}>"

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"

    def next_position(self) -> int:
        """Claim the position for a newly added item; removed ones stay retired."""
        self.last_item_position = (self.last_item_position or 0) + 1
        return self.last_item_position

    def to_dto(self) -> InvoiceInfo:
        """Convert ORM model to frozen domain DTO."""
        from credit_kernel.domain.dtos import InvoiceInfo, InvoiceStatus

        return InvoiceInfo(
            id=self.id,
            client_id=self.client_id,
            provider_id=self.provider_id,
            invoice_date=self.invoice_date,
            due_date=self.due_date,
            total_amount=self.total_amount,
            status=InvoiceStatus(self.status),
            items=tuple(item.to_dto() for item in self.items),
            comments=tuple(comment.to_dto() for comment in self.comments),
            revision=self.revision,
            created_at=self.created_at,
            updated_at=self.updated_at,
            settled_at=self.settled_at,
            cancelled_at=self.cancelled_at,
            cancelled_by=self.cancelled_by,
            cancellation_reason=self.cancellation_reason,
        )


class InvoiceLineItem(Base):
    """
    One line of an invoice.

    ``item_code`` is the stable per-item identifier
    ``"<invoice-id>-item-<position>"`` used by item mutations.
    """

    __tablename__ = "invoice_line_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_items_price_non_negative"),
        UniqueConstraint("invoice_id", "position", name="uq_invoice_items_position"),
        UniqueConstraint("item_code", name="uq_invoice_items_code"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    item_code: Mapped[str] = mapped_column(String(80), nullable=False)
    description: Mapped[LongText] = mapped_column(nullable=False)
    quantity: Mapped[Quantity] = mapped_column(nullable=False)
    unit_price: Mapped[Money] = mapped_column(nullable=False)
    total: Mapped[Money] = mapped_column(nullable=False)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")

    def __repr__(self) -> str:
        return f"<InvoiceLineItem {self.item_code} total={self.total}>"

    def to_dto(self) -> LineItemInfo:
        from credit_kernel.domain.dtos import LineItemInfo

        return LineItemInfo(
            item_code=self.item_code,
            position=self.position,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total=self.total,
        )


class InvoiceComment(Base):
    """A note left on an invoice by a provider user."""

    __tablename__ = "invoice_comments"

    __table_args__ = (
        Index("idx_invoice_comments_invoice", "invoice_id", "created_at"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )
    text: Mapped[LongText] = mapped_column(nullable=False)
    created_by: Mapped[ExternalId] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="comments")

    def __repr__(self) -> str:
        return f"<InvoiceComment {self.id} by={self.created_by}>"

    def to_dto(self) -> InvoiceCommentInfo:
        from credit_kernel.domain.dtos import InvoiceCommentInfo

        return InvoiceCommentInfo(
            id=self.id,
            invoice_id=self.invoice_id,
            text=self.text,
            created_by=self.created_by,
            created_at=self.created_at,
        )
