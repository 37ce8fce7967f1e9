"""
LedgerStore -- atomic, retried, deadline-bounded transactions.

Responsibility:
    Runs one state-mutating operation as a single transactional callback.
    Each attempt opens a fresh session, lets the callback read, validate and
    write (flush only), then commits.  A lost compare-and-swap rolls the
    attempt back and re-runs the *whole* callback from its first read.

Architecture position:
    Kernel > Services -- imperative shell.  The only place in the kernel
    that calls ``session.commit()`` for domain writes.

Invariants enforced:
    - All or nothing: an attempt either commits every write of the callback
      or none of them.
    - Bounded retry: at most ``max_attempts`` attempts, then
      OperationConflictedError.
    - Deadline: checked before every attempt and again right before commit;
      on expiry the attempt is rolled back and OperationTimedOutError raised.

Failure modes:
    - OperationConflictedError -- every attempt lost a write conflict
      (StaleDataError on a revision check, or a unique-key IntegrityError
      raced by a concurrent insert).
    - IntegrityError -- any other constraint violation (check, not-null,
      foreign key) is deterministic; it is rolled back and re-raised on the
      first attempt.
    - OperationTimedOutError -- deadline passed; nothing was written.
    - StoreUnavailableError -- connection-level failure
      (OperationalError / InterfaceError); not retried.
    - Any CreditKernelError from the callback propagates unchanged after
      rollback.

Usage:
    store = LedgerStore(get_session_factory(), max_attempts=5)
    info = store.run("create_invoice", lambda s: InvoiceService(s, ...).create(draft))
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from credit_config.schema import TransactionSettings
from credit_kernel.exceptions import (
    OperationConflictedError,
    OperationTimedOutError,
    StoreUnavailableError,
)
from credit_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.ledger_store")

T = TypeVar("T")

_UNIQUE_VIOLATION_SQLSTATE = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when ``exc`` is a duplicate key rather than a broken row rule."""
    orig = exc.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate:
        return sqlstate == _UNIQUE_VIOLATION_SQLSTATE
    message = str(orig).lower()
    return "unique constraint" in message or "duplicate key" in message


class LedgerStore:
    """
    Transactional document read/write primitive with optimistic retry.

    Contract:
        ``run(operation, fn)`` calls ``fn(session)`` inside a fresh
        transaction and returns its result after a successful commit.
        ``fn`` must be safe to re-run from scratch: it may not keep state
        between attempts.

    Non-goals:
        - Does NOT emit activity log entries (the engine does that after
          ``run`` returns).
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        max_attempts: int = 5,
        retry_backoff_seconds: float = 0.05,
        default_deadline_seconds: float | None = None,
        timer: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        self._retry_backoff_seconds = retry_backoff_seconds
        self._default_deadline_seconds = default_deadline_seconds
        self._timer = timer
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        session_factory: sessionmaker[Session],
        settings: TransactionSettings,
        **kwargs,
    ) -> LedgerStore:
        """Build a store from the ``transactions`` config section."""
        return cls(
            session_factory,
            max_attempts=settings.max_attempts,
            retry_backoff_seconds=settings.retry_backoff_seconds,
            default_deadline_seconds=settings.default_deadline_seconds,
            **kwargs,
        )

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def run(
        self,
        operation: str,
        fn: Callable[[Session], T],
        deadline_seconds: float | None = None,
    ) -> T:
        """
        Execute ``fn`` atomically, retrying on write conflicts.

        Args:
            operation: Name used in logs and errors.
            fn: Transactional callback; reads, validates and flushes.
            deadline_seconds: Budget for the whole operation including
                retries.  Falls back to the configured default.

        Returns:
            Whatever ``fn`` returned on the committed attempt.
        """
        deadline = (
            deadline_seconds
            if deadline_seconds is not None
            else self._default_deadline_seconds
        )
        started = self._timer()

        with LogContext.bind(operation=operation):
            last_conflict: Exception | None = None
            for attempt in range(1, self._max_attempts + 1):
                self._check_deadline(operation, started, deadline)
                session = self._session_factory()
                try:
                    result = fn(session)
                    session.flush()
                    self._check_deadline(operation, started, deadline)
                    session.commit()
                except (StaleDataError, IntegrityError) as exc:
                    self._rollback(session)
                    if isinstance(exc, IntegrityError) and not is_unique_violation(exc):
                        logger.error(
                            "transaction_integrity_violation",
                            extra={"attempt": attempt, "detail": str(exc.orig)},
                        )
                        raise
                    last_conflict = exc
                    logger.warning(
                        "transaction_conflict_retry",
                        extra={
                            "attempt": attempt,
                            "max_attempts": self._max_attempts,
                            "error_type": type(exc).__name__,
                        },
                    )
                    if attempt < self._max_attempts and self._retry_backoff_seconds:
                        self._sleep(self._retry_backoff_seconds * attempt)
                    continue
                except (OperationalError, InterfaceError) as exc:
                    self._rollback(session)
                    logger.error(
                        "ledger_store_unavailable",
                        extra={"attempt": attempt},
                        exc_info=True,
                    )
                    raise StoreUnavailableError(operation, str(exc.orig or exc)) from exc
                except Exception:
                    self._rollback(session)
                    logger.info("transaction_rolled_back", extra={"attempt": attempt})
                    raise
                else:
                    logger.debug(
                        "transaction_committed",
                        extra={"attempt": attempt},
                    )
                    return result
                finally:
                    session.close()

            logger.error(
                "transaction_conflicted",
                extra={"attempts": self._max_attempts},
            )
            raise OperationConflictedError(operation, self._max_attempts) from last_conflict

    def read(self, fn: Callable[[Session], T]) -> T:
        """
        Run a read-only callback in a short-lived session.

        No retry and no commit; reporting views tolerate eventual
        consistency.
        """
        session = self._session_factory()
        try:
            return fn(session)
        except (OperationalError, InterfaceError) as exc:
            raise StoreUnavailableError("read", str(exc.orig or exc)) from exc
        finally:
            session.rollback()
            session.close()

    def _check_deadline(
        self,
        operation: str,
        started: float,
        deadline: float | None,
    ) -> None:
        if deadline is None:
            return
        if self._timer() - started > deadline:
            logger.warning(
                "transaction_deadline_exceeded",
                extra={"deadline_seconds": deadline},
            )
            raise OperationTimedOutError(operation, deadline)

    @staticmethod
    def _rollback(session: Session) -> None:
        try:
            session.rollback()
        except SQLAlchemyError:
            # Connection already gone; close() releases what is left.
            logger.warning("transaction_rollback_failed", exc_info=True)
