"""
Tests for the credit limit request workflow.

Verifies:
- Requests snapshot the current limit and must ask for more
- One pending request per client
- Approval applies the requested limit in the same transaction and
  never lowers a limit that was raised meanwhile
- Repeating a decision is a no-op; reversing one is refused
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from credit_kernel.domain.credit_request import CreditDecision
from credit_kernel.domain.dtos import ActivityType, CreditRequestStatus
from credit_kernel.exceptions import (
    ClientNotFoundError,
    CreditRequestNotFoundError,
    DuplicateCreditRequestError,
    InvalidLimitError,
    RequestNotPendingError,
    ValidationError,
)


class TestSubmitRequest:

    def test_snapshots_current_limit(self, credit_engine, client):
        info = credit_engine.request_credit_limit_change(
            client.id, Decimal("1500"), requested_by="client-user", notes="seasonal stock"
        )
        assert info.status == CreditRequestStatus.PENDING
        assert info.current_limit == Decimal("1000")
        assert info.requested_limit == Decimal("1500")
        assert info.provider_id == client.provider_id
        assert info.notes == "seasonal stock"

    @pytest.mark.parametrize("limit", [Decimal("1000"), Decimal("900")])
    def test_must_exceed_current_limit(self, credit_engine, client, limit):
        with pytest.raises(InvalidLimitError):
            credit_engine.request_credit_limit_change(client.id, limit)

    def test_negative_rejected_before_transaction(self, credit_engine, client):
        with pytest.raises(InvalidLimitError):
            credit_engine.request_credit_limit_change(client.id, Decimal("-1"))

    def test_unknown_client(self, credit_engine):
        with pytest.raises(ClientNotFoundError):
            credit_engine.request_credit_limit_change(uuid4(), Decimal("10"))

    def test_second_pending_request_refused(self, credit_engine, client):
        first = credit_engine.request_credit_limit_change(client.id, Decimal("1500"))
        with pytest.raises(DuplicateCreditRequestError) as exc_info:
            credit_engine.request_credit_limit_change(client.id, Decimal("2000"))
        assert exc_info.value.existing_request_id == str(first.id)

    def test_new_request_after_decision(self, credit_engine, client, test_actor_id):
        first = credit_engine.request_credit_limit_change(client.id, Decimal("1500"))
        credit_engine.decide_credit_limit_request(first.id, CreditDecision.REJECT, test_actor_id)
        second = credit_engine.request_credit_limit_change(client.id, Decimal("1200"))
        assert second.status == CreditRequestStatus.PENDING


class TestDecideRequest:

    @pytest.fixture
    def request_info(self, credit_engine, client):
        return credit_engine.request_credit_limit_change(client.id, Decimal("1800"), requested_by="c-1")

    def test_approve_applies_limit(self, credit_engine, client, request_info, test_actor_id, deterministic_clock):
        decided = credit_engine.decide_credit_limit_request(
            request_info.id, CreditDecision.APPROVE, test_actor_id, notes="good history"
        )

        assert decided.status == CreditRequestStatus.APPROVED
        assert decided.decided_by == test_actor_id
        assert decided.decided_at == deterministic_clock.now()
        assert decided.notes == "good history"
        assert credit_engine.get_client_account(client.id).credit_limit == Decimal("1800")
        assert credit_engine.available_credit(client.id) == Decimal("1800")

    def test_reject_leaves_limit(self, credit_engine, client, request_info, test_actor_id):
        decided = credit_engine.decide_credit_limit_request(
            request_info.id, CreditDecision.REJECT, test_actor_id
        )
        assert decided.status == CreditRequestStatus.REJECTED
        assert credit_engine.get_client_account(client.id).credit_limit == Decimal("1000")

    def test_decision_as_string(self, credit_engine, request_info, test_actor_id):
        decided = credit_engine.decide_credit_limit_request(request_info.id, "approve", test_actor_id)
        assert decided.status == CreditRequestStatus.APPROVED

    def test_unknown_decision(self, credit_engine, request_info, test_actor_id):
        with pytest.raises(ValidationError):
            credit_engine.decide_credit_limit_request(request_info.id, "maybe", test_actor_id)

    def test_decider_required(self, credit_engine, request_info):
        with pytest.raises(ValidationError):
            credit_engine.decide_credit_limit_request(request_info.id, CreditDecision.APPROVE, "")

    def test_unknown_request(self, credit_engine, test_actor_id):
        with pytest.raises(CreditRequestNotFoundError):
            credit_engine.decide_credit_limit_request(uuid4(), CreditDecision.APPROVE, test_actor_id)

    def test_repeated_approval_is_noop(self, credit_engine, client, request_info, test_actor_id, activity_log):
        first = credit_engine.decide_credit_limit_request(
            request_info.id, CreditDecision.APPROVE, test_actor_id
        )
        approvals = len(activity_log.of_type(ActivityType.APPROVE))
        again = credit_engine.decide_credit_limit_request(
            request_info.id, CreditDecision.APPROVE, "someone-else"
        )

        assert again.decided_by == test_actor_id
        assert again.decided_at == first.decided_at
        assert len(activity_log.of_type(ActivityType.APPROVE)) == approvals
        assert credit_engine.get_client_account(client.id).credit_limit == Decimal("1800")

    def test_reversing_decision_refused(self, credit_engine, request_info, test_actor_id):
        credit_engine.decide_credit_limit_request(request_info.id, CreditDecision.REJECT, test_actor_id)
        with pytest.raises(RequestNotPendingError) as exc_info:
            credit_engine.decide_credit_limit_request(
                request_info.id, CreditDecision.APPROVE, test_actor_id
            )
        assert exc_info.value.status == "rejected"

    def test_approve_never_lowers_limit_raised_meanwhile(
        self, credit_engine, client, request_info, test_actor_id, activity_log
    ):
        credit_engine.apply_limit_change(client.id, Decimal("3000"), test_actor_id)

        decided = credit_engine.decide_credit_limit_request(
            request_info.id, CreditDecision.APPROVE, test_actor_id
        )

        assert decided.status == CreditRequestStatus.APPROVED
        assert credit_engine.get_client_account(client.id).credit_limit == Decimal("3000")
        entry = activity_log.of_type(ActivityType.APPROVE)[-1]
        assert Decimal(entry.metadata["new_limit"]) == Decimal("3000")
        assert entry.metadata["limit_changed"] is False

    def test_approve_with_exposure_above_requested_limit(
        self, credit_engine, client, request_info, create_invoice, test_actor_id
    ):
        credit_engine.apply_limit_change(client.id, Decimal("3000"), test_actor_id)
        create_invoice(client.id, "2500")

        decided = credit_engine.decide_credit_limit_request(
            request_info.id, CreditDecision.APPROVE, test_actor_id
        )

        assert decided.status == CreditRequestStatus.APPROVED
        assert credit_engine.get_client_account(client.id).credit_limit == Decimal("3000")
        assert credit_engine.available_credit(client.id) == Decimal("500")

    def test_decision_logged_with_limits(self, credit_engine, request_info, test_actor_id, activity_log):
        credit_engine.decide_credit_limit_request(request_info.id, CreditDecision.APPROVE, test_actor_id)
        entry = activity_log.of_type(ActivityType.APPROVE)[-1]
        assert entry.actor_id == test_actor_id
        assert Decimal(entry.metadata["previous_limit"]) == Decimal("1000")
        assert Decimal(entry.metadata["new_limit"]) == Decimal("1800")


class TestRequestQueries:

    def test_for_provider_filters_status(self, credit_engine, create_client, test_actor_id):
        a = create_client("100", name="A")
        b = create_client("100", name="B")
        ra = credit_engine.request_credit_limit_change(a.id, Decimal("200"))
        rb = credit_engine.request_credit_limit_change(b.id, Decimal("300"))
        credit_engine.decide_credit_limit_request(rb.id, CreditDecision.APPROVE, test_actor_id)

        pending = credit_engine.credit_requests_for_provider("provider-1", CreditRequestStatus.PENDING)
        assert [r.id for r in pending] == [ra.id]
        assert len(credit_engine.credit_requests_for_provider("provider-1")) == 2

    def test_get_request(self, credit_engine, client):
        info = credit_engine.request_credit_limit_change(client.id, Decimal("1100"))
        assert credit_engine.get_credit_request(info.id) == info
