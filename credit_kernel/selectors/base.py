"""
Module: credit_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    are the reporting side of the kernel: invoice listings, overdue views,
    payment aggregation and request queues.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    the frozen DTOs in domain/dtos.py.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
    - Session ownership: the caller owns the session (LedgerStore.read).

Failure modes:
    - Lookups by id return None when absent; they never raise.

Reporting views are not part of the transactional core and may lag a
concurrent writer by one commit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from credit_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session
