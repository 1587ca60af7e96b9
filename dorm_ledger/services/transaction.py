"""
TransactionRunner -- transaction boundary with bounded retry.

Responsibility:
    Runs a unit of work in a fresh session and transaction, commits it, and
    retries it when the database reports lock contention or a serialization
    failure.  Services that own their transaction boundary (admission,
    outgoing workflow, insurance, expenses, catalog) all go through here.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Every attempt starts from a new session; nothing read in a failed
      attempt leaks into the next.
    - A failed attempt is rolled back completely before the next one.
    - Only errors accepted by ``retryable`` are retried.  Domain errors
      (validation, invalid operation, invalid state) propagate at once.

Failure modes:
    - ConflictError after ``max_attempts`` retryable failures.  The last
      driver error is chained as ``__cause__``.

Usage:
    runner = TransactionRunner(get_session_factory(), max_attempts=5)
    result = runner.run("submit_payment", lambda session: do_work(session))
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.orm import Session, sessionmaker

from dorm_ledger.db.locking import apply_lock_timeout, is_transient_db_error
from dorm_ledger.exceptions import ConflictError
from dorm_ledger.logging_config import get_logger

logger = get_logger("services.transaction")

T = TypeVar("T")


class TransactionRunner:
    """Commit-or-rollback wrapper with exponential backoff.

    Contract:
        ``work`` receives an open Session inside an active transaction.  It
        may flush but must not commit or roll back; the runner does both.

    Guarantees:
        - On success the transaction is committed before ``run`` returns.
        - Backoff before attempt n+1 is min(max_backoff, base_backoff * 2**(n-1)),
          scaled by a random factor in [0.5, 1.0).
    """

    DEFAULT_MAX_ATTEMPTS = 5

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_backoff_seconds: float = 0.02,
        max_backoff_seconds: float = 0.5,
        lock_timeout_seconds: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        self._base_backoff = base_backoff_seconds
        self._max_backoff = max_backoff_seconds
        self._lock_timeout = lock_timeout_seconds
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def backoff(self, attempt: int) -> float:
        delay = min(self._max_backoff, self._base_backoff * (2 ** (attempt - 1)))
        return delay * (0.5 + random.random() / 2)

    def run(
        self,
        operation: str,
        work: Callable[[Session], T],
        *,
        retryable: Callable[[BaseException], bool] = is_transient_db_error,
    ) -> T:
        """
        Run ``work`` in a transaction, retrying transient failures.

        Raises:
            ConflictError: If every attempt failed with a retryable error.
            Exception: Any non-retryable error raised by ``work`` or COMMIT.
        """
        for attempt in range(1, self._max_attempts + 1):
            session = self._session_factory()
            try:
                with session.begin():
                    apply_lock_timeout(session, self._lock_timeout)
                    result = work(session)
                return result
            except Exception as exc:
                if not retryable(exc):
                    raise
                if attempt >= self._max_attempts:
                    logger.warning(
                        "transaction_conflict",
                        extra={
                            "operation": operation,
                            "attempts": attempt,
                            "error": type(exc).__name__,
                        },
                    )
                    raise ConflictError(
                        operation=operation,
                        attempts=attempt,
                        reason=type(exc).__name__,
                    ) from exc
                delay = self.backoff(attempt)
                logger.info(
                    "transaction_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                        "delay_seconds": round(delay, 4),
                        "error": type(exc).__name__,
                    },
                )
                self._sleep(delay)
            finally:
                session.close()

        raise AssertionError("unreachable")  # pragma: no cover
