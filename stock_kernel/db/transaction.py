"""
Module: stock_kernel.db.transaction
Responsibility: Run one unit of work in its own transaction, retrying
    transient lock conflicts a bounded number of times.
Architecture position: Kernel > DB.  Used by every service that mutates the
    ledger.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - One call to run() is exactly one committed transaction or none.
    - Only transient conflicts are retried: PostgreSQL serialization failure
      (40001), deadlock (40P01), lock not available (55P03), and SQLite
      "database is locked".  Everything else propagates unchanged.
    - Retries are bounded by max_attempts, after which
      ConcurrentModificationError is raised.

Failure modes:
    - ConcurrentModificationError when retries are exhausted.
    - Any StockKernelError raised by the unit of work propagates after
      rollback, without retry.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.exceptions import ConcurrentModificationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.transaction")

T = TypeVar("T")

TRANSIENT_PGCODES = frozenset({"40001", "40P01", "55P03"})
_SQLITE_TRANSIENT_MESSAGES = ("database is locked", "database table is locked")


def is_transient_error(exc: DBAPIError) -> bool:
    """True if the driver error is a lock conflict worth retrying."""
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None)
    if pgcode in TRANSIENT_PGCODES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(m in message for m in _SQLITE_TRANSIENT_MESSAGES)


class TransactionRunner:
    """
    Executes units of work in fresh sessions with bounded retry.

    Contract:
        run(operation, work) opens a session, calls work(session), commits,
        and returns work's result.  work must be safe to call more than once:
        it re-reads and re-locks everything it needs on each attempt.

    Guarantees:
        - The session is closed on every path.
        - A failed attempt is rolled back before the next one starts.

    Non-goals:
        - Does NOT retry domain errors (insufficient stock, access denied).
    """

    DEFAULT_MAX_ATTEMPTS = 3
    DEFAULT_BACKOFF_SECONDS = 0.05

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def run(self, operation: str, work: Callable[[Session], T]) -> T:
        """Run work in one transaction, retrying transient lock conflicts."""
        last_error: DBAPIError | None = None
        for attempt in range(1, self._max_attempts + 1):
            session = self._session_factory()
            try:
                result = work(session)
                session.commit()
                if attempt > 1:
                    logger.info(
                        "transaction_succeeded_after_retry",
                        extra={"operation": operation, "attempt": attempt},
                    )
                return result
            except DBAPIError as exc:
                session.rollback()
                if not is_transient_error(exc):
                    raise
                last_error = exc
                logger.warning(
                    "transaction_conflict_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                        "error": str(exc.orig),
                    },
                )
                if attempt < self._max_attempts:
                    self._sleep(self._backoff_seconds * attempt)
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()

        logger.error(
            "transaction_retries_exhausted",
            extra={"operation": operation, "attempts": self._max_attempts},
        )
        raise ConcurrentModificationError(operation, self._max_attempts) from last_error

    def read(self, work: Callable[[Session], T]) -> T:
        """Run a read-only unit of work; the session is rolled back, never committed."""
        session = self._session_factory()
        try:
            return work(session)
        finally:
            session.rollback()
            session.close()
