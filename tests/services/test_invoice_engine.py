"""
Tests for invoice creation, item mutations and cancellation.

Verifies:
- Draft validation happens before any transaction
- Credit invariant on creation and on invoice growth
- Amount-sum invariant after every item mutation
- Paid and cancelled invoices are immutable
- Comments append to any invoice without touching its revision
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from conftest import make_draft
from credit_kernel.domain.dtos import (
    ActivityType,
    ClientAccountStatus,
    InvoiceStatus,
    LineItemInput,
    PaymentMethod,
)
from credit_kernel.exceptions import (
    AmountMismatchError,
    ClientAccountInactiveError,
    ClientNotFoundError,
    CreditLimitExceededError,
    ImmutableInvoiceError,
    InvoiceNotFoundError,
    InvoiceNotPendingError,
    ItemNotFoundError,
    ValidationError,
)
from credit_kernel.models.invoice import Invoice


def _invoice_count(session_factory) -> int:
    with session_factory() as s:
        return s.scalar(select(func.count()).select_from(Invoice))


class TestCreateInvoiceValidation:
    """Malformed drafts never reach the store."""

    def test_empty_items_rejected(self, credit_engine, client, session_factory):
        draft = make_draft(client.id, "100", items=())
        with pytest.raises(ValidationError) as exc_info:
            credit_engine.create_invoice(draft)
        assert exc_info.value.field == "items"
        assert _invoice_count(session_factory) == 0

    def test_due_date_before_invoice_date_rejected(self, credit_engine, client):
        draft = make_draft(client.id, "100", due_days=-1)
        with pytest.raises(ValidationError) as exc_info:
            credit_engine.create_invoice(draft)
        assert exc_info.value.field == "due_date"

    def test_blank_description_rejected(self, credit_engine, client):
        draft = make_draft(client.id, "100", items=[LineItemInput("  ", Decimal("1"), Decimal("100"))])
        with pytest.raises(ValidationError):
            credit_engine.create_invoice(draft)

    def test_zero_quantity_rejected(self, credit_engine, client):
        draft = make_draft(client.id, "100", items=[LineItemInput("x", Decimal("0"), Decimal("100"))])
        with pytest.raises(ValidationError):
            credit_engine.create_invoice(draft)

    def test_negative_price_rejected(self, credit_engine, client):
        draft = make_draft(client.id, "100", items=[LineItemInput("x", Decimal("1"), Decimal("-5"))])
        with pytest.raises(ValidationError):
            credit_engine.create_invoice(draft)

    def test_amount_mismatch_carries_both_totals(self, credit_engine, client, session_factory):
        items = [
            LineItemInput("a", Decimal("2"), Decimal("30")),
            LineItemInput("b", Decimal("1"), Decimal("40")),
        ]
        draft = make_draft(client.id, "105", items=items)
        with pytest.raises(AmountMismatchError) as exc_info:
            credit_engine.create_invoice(draft)
        assert exc_info.value.declared == Decimal("105")
        assert exc_info.value.computed == Decimal("100")
        assert "doesn't match the sum of item totals" in str(exc_info.value)
        assert _invoice_count(session_factory) == 0

    def test_mismatch_within_epsilon_accepted(self, credit_engine, client):
        items = [LineItemInput("a", Decimal("3"), Decimal("33.33"))]
        info = credit_engine.create_invoice(make_draft(client.id, "100.00", items=items))
        assert info.total_amount == Decimal("100.00")


class TestCreateInvoice:

    def test_creates_pending_invoice_with_stable_item_codes(self, credit_engine, client, deterministic_clock):
        items = [
            LineItemInput("Widgets", Decimal("10"), Decimal("5")),
            LineItemInput("Shipping", Decimal("1"), Decimal("25")),
        ]
        info = credit_engine.create_invoice(make_draft(client.id, "75", items=items))

        assert info.status == InvoiceStatus.PENDING
        assert info.total_amount == Decimal("75")
        assert [i.item_code for i in info.items] == [
            f"{info.id}-item-1",
            f"{info.id}-item-2",
        ]
        assert info.items[0].total == Decimal("50")
        assert info.created_at == deterministic_clock.now()
        assert info.updated_at == deterministic_clock.now()

    def test_unknown_client(self, credit_engine):
        with pytest.raises(ClientNotFoundError):
            credit_engine.create_invoice(make_draft(uuid4(), "10"))

    def test_reduces_available_credit(self, credit_engine, client, create_invoice):
        create_invoice(client.id, "400")
        assert credit_engine.available_credit(client.id) == Decimal("600")

    def test_exceeding_credit_writes_nothing(self, credit_engine, client, create_invoice, session_factory):
        create_invoice(client.id, "700")
        with pytest.raises(CreditLimitExceededError) as exc_info:
            create_invoice(client.id, "301")
        assert exc_info.value.available == Decimal("300")
        assert exc_info.value.requested == Decimal("301")
        assert exc_info.value.code == "CREDIT_LIMIT_EXCEEDED"
        assert _invoice_count(session_factory) == 1

    def test_paid_and_cancelled_invoices_free_credit(self, credit_engine, client, create_invoice, today):
        paid = create_invoice(client.id, "500")
        cancelled = create_invoice(client.id, "500")
        credit_engine.record_payment(paid.id, Decimal("500"), PaymentMethod.CASH, today)
        credit_engine.cancel_invoice(cancelled.id, "duplicate")

        assert credit_engine.available_credit(client.id) == Decimal("1000")
        create_invoice(client.id, "1000")

    def test_overdue_invoices_still_count(self, credit_engine, client, create_invoice, deterministic_clock):
        create_invoice(client.id, "800", due_days=1)
        deterministic_clock.advance_days(10)
        assert credit_engine.available_credit(client.id) == Decimal("200")

    def test_inactive_account_cannot_be_invoiced(self, credit_engine, client):
        credit_engine.update_account_status(client.id, ClientAccountStatus.SUSPENDED)
        with pytest.raises(ClientAccountInactiveError):
            credit_engine.create_invoice(make_draft(client.id, "10"))

    def test_logs_creation_after_commit(self, credit_engine, client, activity_log, test_actor_id):
        info = credit_engine.create_invoice(make_draft(client.id, "10"), actor_id=test_actor_id)
        entries = [e for e in activity_log.of_type(ActivityType.CREATE) if e.entity_id == str(info.id)]
        assert len(entries) == 1
        assert entries[0].actor_id == test_actor_id


class TestItemMutations:

    @pytest.fixture
    def invoice(self, create_invoice, client):
        items = [
            LineItemInput("Widgets", Decimal("2"), Decimal("50")),
            LineItemInput("Bolts", Decimal("10"), Decimal("5")),
        ]
        return create_invoice(client.id, "150", items=items)

    def test_add_item_recomputes_total(self, credit_engine, invoice):
        info = credit_engine.add_item(invoice.id, LineItemInput("Nuts", Decimal("4"), Decimal("2.5")))
        assert info.total_amount == Decimal("160")
        assert info.items[-1].item_code == f"{invoice.id}-item-3"
        assert info.revision > invoice.revision

    def test_remove_item_recomputes_total(self, credit_engine, invoice):
        info = credit_engine.remove_item(invoice.id, f"{invoice.id}-item-2")
        assert info.total_amount == Decimal("100")
        assert len(info.items) == 1

    def test_item_codes_never_reused(self, credit_engine, invoice):
        credit_engine.remove_item(invoice.id, f"{invoice.id}-item-2")
        info = credit_engine.add_item(invoice.id, LineItemInput("Nuts", Decimal("1"), Decimal("1")))
        assert [i.item_code for i in info.items] == [
            f"{invoice.id}-item-1",
            f"{invoice.id}-item-3",
        ]

    def test_update_item_recomputes_total(self, credit_engine, invoice):
        info = credit_engine.update_item(
            invoice.id, f"{invoice.id}-item-1", quantity=Decimal("3")
        )
        assert info.item(f"{invoice.id}-item-1").total == Decimal("150")
        assert info.total_amount == Decimal("200")

    def test_removing_last_item_refused(self, credit_engine, invoice):
        credit_engine.remove_item(invoice.id, f"{invoice.id}-item-2")
        with pytest.raises(ValidationError):
            credit_engine.remove_item(invoice.id, f"{invoice.id}-item-1")

    def test_unknown_item(self, credit_engine, invoice):
        with pytest.raises(ItemNotFoundError):
            credit_engine.remove_item(invoice.id, "nope")

    def test_unknown_invoice(self, credit_engine):
        with pytest.raises(InvoiceNotFoundError):
            credit_engine.add_item(uuid4(), LineItemInput("x", Decimal("1"), Decimal("1")))

    def test_invalid_quantity(self, credit_engine, invoice):
        with pytest.raises(ValidationError):
            credit_engine.update_item(invoice.id, f"{invoice.id}-item-1", quantity=Decimal("-1"))

    def test_growth_checked_against_credit(self, credit_engine, invoice):
        """An invoice cannot be grown past the client's available credit."""
        with pytest.raises(CreditLimitExceededError) as exc_info:
            credit_engine.add_item(invoice.id, LineItemInput("Big", Decimal("1"), Decimal("851")))
        assert exc_info.value.available == Decimal("850")
        assert credit_engine.get_invoice(invoice.id).total_amount == Decimal("150")

    def test_growth_within_credit_allowed(self, credit_engine, invoice):
        info = credit_engine.add_item(invoice.id, LineItemInput("Big", Decimal("1"), Decimal("850")))
        assert info.total_amount == Decimal("1000")

    def test_paid_invoice_is_immutable(self, credit_engine, invoice, today):
        credit_engine.record_payment(invoice.id, Decimal("150"), PaymentMethod.CASH, today)
        with pytest.raises(ImmutableInvoiceError) as exc_info:
            credit_engine.add_item(invoice.id, LineItemInput("x", Decimal("1"), Decimal("1")))
        assert exc_info.value.status == "paid"
        with pytest.raises(ImmutableInvoiceError):
            credit_engine.update_item(invoice.id, f"{invoice.id}-item-1", description="changed")
        with pytest.raises(ImmutableInvoiceError):
            credit_engine.update_due_date(invoice.id, today + timedelta(days=60))

    def test_cancelled_invoice_is_immutable(self, credit_engine, invoice):
        credit_engine.cancel_invoice(invoice.id, "client request")
        with pytest.raises(ImmutableInvoiceError):
            credit_engine.remove_item(invoice.id, f"{invoice.id}-item-1")


class TestUpdateDueDate:

    def test_moves_due_date(self, credit_engine, client, create_invoice):
        invoice = create_invoice(client.id, "10")
        info = credit_engine.update_due_date(invoice.id, date(2024, 3, 1))
        assert info.due_date == date(2024, 3, 1)

    def test_before_invoice_date_refused(self, credit_engine, client, create_invoice):
        invoice = create_invoice(client.id, "10")
        with pytest.raises(ValidationError):
            credit_engine.update_due_date(invoice.id, date(2023, 12, 1))


class TestCancelInvoice:

    def test_records_reason_actor_and_time(self, credit_engine, client, create_invoice, deterministic_clock, test_actor_id):
        invoice = create_invoice(client.id, "250")
        deterministic_clock.advance(60)
        info = credit_engine.cancel_invoice(invoice.id, "ordered twice", actor_id=test_actor_id)

        assert info.status == InvoiceStatus.CANCELLED
        assert info.cancellation_reason == "ordered twice"
        assert info.cancelled_by == test_actor_id
        assert info.cancelled_at == deterministic_clock.now()

    def test_cancel_twice_refused(self, credit_engine, client, create_invoice):
        invoice = create_invoice(client.id, "250")
        credit_engine.cancel_invoice(invoice.id, "first")
        with pytest.raises(InvoiceNotPendingError):
            credit_engine.cancel_invoice(invoice.id, "second")

    def test_reason_required(self, credit_engine, client, create_invoice):
        invoice = create_invoice(client.id, "250")
        with pytest.raises(ValidationError):
            credit_engine.cancel_invoice(invoice.id, "  ")


class TestInvoiceComments:

    def test_comment_thread_in_order(self, credit_engine, client, create_invoice, deterministic_clock, test_actor_id):
        invoice = create_invoice(client.id, "250")
        first = credit_engine.add_invoice_comment(invoice.id, "  Sent reminder  ", test_actor_id)
        deterministic_clock.advance(60)
        second = credit_engine.add_invoice_comment(invoice.id, "Client promised Friday", "user-456")

        assert first.text == "Sent reminder"
        assert first.created_by == test_actor_id
        assert second.created_at == deterministic_clock.now()
        thread = credit_engine.get_invoice(invoice.id).comments
        assert [c.id for c in thread] == [first.id, second.id]

    def test_comment_leaves_invoice_revision(self, credit_engine, client, create_invoice, test_actor_id):
        invoice = create_invoice(client.id, "250")
        credit_engine.add_invoice_comment(invoice.id, "Looks fine", test_actor_id)
        after = credit_engine.get_invoice(invoice.id)
        assert after.revision == invoice.revision
        assert after.updated_at == invoice.updated_at

    def test_allowed_on_settled_and_cancelled(self, credit_engine, client, create_invoice, today, test_actor_id):
        paid = create_invoice(client.id, "100")
        credit_engine.record_payment(paid.id, Decimal("100"), PaymentMethod.CASH, today)
        cancelled = create_invoice(client.id, "100")
        credit_engine.cancel_invoice(cancelled.id, "duplicate")

        credit_engine.add_invoice_comment(paid.id, "Receipt filed", test_actor_id)
        credit_engine.add_invoice_comment(cancelled.id, "Reissued as new invoice", test_actor_id)

        assert len(credit_engine.get_invoice(paid.id).comments) == 1
        assert len(credit_engine.get_invoice(cancelled.id).comments) == 1

    def test_logged_as_invoice_update(self, credit_engine, client, create_invoice, activity_log, test_actor_id):
        invoice = create_invoice(client.id, "250")
        comment = credit_engine.add_invoice_comment(invoice.id, "Checked", test_actor_id)

        entry = activity_log.of_type(ActivityType.UPDATE)[-1]
        assert entry.entity_id == str(invoice.id)
        assert entry.actor_id == test_actor_id
        assert entry.metadata["comment_id"] == str(comment.id)

    @pytest.mark.parametrize("text, author", [("   ", "user-123"), ("note", "")])
    def test_text_and_author_required(self, credit_engine, client, create_invoice, text, author):
        invoice = create_invoice(client.id, "250")
        with pytest.raises(ValidationError):
            credit_engine.add_invoice_comment(invoice.id, text, author)

    def test_unknown_invoice(self, credit_engine, test_actor_id):
        with pytest.raises(InvoiceNotFoundError):
            credit_engine.add_invoice_comment(uuid4(), "hello", test_actor_id)
