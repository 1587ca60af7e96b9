"""
Module: dorm_ledger.db.locking
Responsibility: Backend-aware lock helpers and transient-error classification.
Architecture position: Kernel > DB.  Used by services/ inside a transaction.

PostgreSQL:
    - Row locks come from SELECT ... FOR UPDATE (issued by the services).
    - The cash ledger has no row of its own, so it is serialized with a
      transaction-scoped advisory lock released at COMMIT/ROLLBACK.
    - Lock waits are bounded with SET LOCAL lock_timeout.
SQLite:
    - Every transaction already starts with BEGIN IMMEDIATE (see db.engine),
      so FOR UPDATE and advisory locks are no-ops; waits are bounded by the
      connection busy timeout.
"""

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

# Arbitrary 64-bit key shared by every process that moves cash out
CASH_LEDGER_LOCK_KEY = 7_104_220_301

# serialization_failure, deadlock_detected, lock_not_available, query_canceled
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "55P03", "57014"})

_SQLITE_TRANSIENT_MARKERS = (
    "database is locked",
    "database table is locked",
    "database schema has changed",
)


def _dialect_name(session: Session) -> str:
    return session.get_bind().dialect.name


def apply_lock_timeout(session: Session, seconds: float) -> None:
    """Bound lock waits for the rest of the current transaction."""
    if _dialect_name(session) == "postgresql":
        millis = max(1, int(seconds * 1000))
        session.execute(text(f"SET LOCAL lock_timeout = '{millis}ms'"))


def lock_cash_ledger(session: Session) -> None:
    """
    Serialize every operation that reads the cash balance to move cash out.

    Held until the surrounding transaction ends.
    """
    if _dialect_name(session) == "postgresql":
        session.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": CASH_LEDGER_LOCK_KEY},
        )


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_transient_db_error(exc: BaseException) -> bool:
    """
    True for lock contention and serialization failures worth retrying.

    Covers PostgreSQL serialization failures, deadlocks and lock timeouts,
    and SQLite busy errors.  Constraint violations are not transient.
    """
    if not isinstance(exc, DBAPIError) or isinstance(exc, IntegrityError):
        return False
    if _sqlstate(exc) in TRANSIENT_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    return any(marker in message for marker in _SQLITE_TRANSIENT_MARKERS)


def is_unique_violation(exc: BaseException, *markers: str) -> bool:
    """
    True if exc is a unique violation mentioning any of ``markers``.

    Markers are matched against the driver message, which carries the
    constraint name on PostgreSQL and the column list on SQLite.
    """
    if not isinstance(exc, IntegrityError):
        return False
    sqlstate = _sqlstate(exc)
    message = str(exc.orig)
    if sqlstate is not None and sqlstate != "23505":
        return False
    if sqlstate is None and "UNIQUE constraint failed" not in message:
        return False
    return any(marker in message for marker in markers)
