"""
Credit request workflow -- pure state machine.

Responsibility:
    Transition rules for credit-limit-increase requests.  A request starts
    pending and is decided exactly once, to approved or rejected.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Only a pending request may transition.
    - Both terminal transitions are idempotent on retry: re-applying the
      decision that produced the current terminal state is a no-op, which
      is how a retried approval avoids a second limit increase.
    - Any other move out of a terminal state is refused with
      RequestNotPendingError.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType

from credit_kernel.domain.dtos import CreditRequestStatus
from credit_kernel.exceptions import RequestNotPendingError


class CreditDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


DECISION_TARGETS: MappingProxyType[CreditDecision, CreditRequestStatus] = MappingProxyType(
    {
        CreditDecision.APPROVE: CreditRequestStatus.APPROVED,
        CreditDecision.REJECT: CreditRequestStatus.REJECTED,
    }
)

CREDIT_REQUEST_TRANSITIONS: MappingProxyType[
    CreditRequestStatus, frozenset[CreditRequestStatus]
] = MappingProxyType(
    {
        CreditRequestStatus.PENDING: frozenset(
            {CreditRequestStatus.APPROVED, CreditRequestStatus.REJECTED}
        ),
        CreditRequestStatus.APPROVED: frozenset(),
        CreditRequestStatus.REJECTED: frozenset(),
    }
)


def can_transition(current: CreditRequestStatus, target: CreditRequestStatus) -> bool:
    return target in CREDIT_REQUEST_TRANSITIONS[current]


def resolve_decision(
    request_id: str,
    current: CreditRequestStatus,
    decision: CreditDecision,
) -> CreditRequestStatus | None:
    """
    Target status for ``decision`` applied to a request in ``current``.

    Returns:
        The new status, or ``None`` when the request already carries the
        outcome of this decision (nothing to write).

    Raises:
        RequestNotPendingError: the request was decided the other way.
    """
    target = DECISION_TARGETS[decision]
    if current == target:
        return None
    if not can_transition(current, target):
        raise RequestNotPendingError(request_id, current.value)
    return target
