"""
BaseService -- abstract base for ledger write services.

Responsibility:
    Common constructor and transaction plumbing for every service that owns
    its transaction boundary.  A service receives a session factory (not a
    session) because each retry attempt, and each concurrent caller, must
    work in a fresh session.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - All writes run through TransactionRunner: commit on success, full
      rollback on failure, bounded retry on lock contention.
    - Side effects go through SideEffectDispatcher only after commit.
"""

from __future__ import annotations

from abc import ABC
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from dorm_ledger.domain.clock import Clock, SystemClock
from dorm_ledger.exceptions import StudentNotFoundError
from dorm_ledger.models.student import Student
from dorm_ledger.services.side_effects import SideEffectDispatcher
from dorm_ledger.services.transaction import TransactionRunner


class BaseService(ABC):
    """
    Abstract base class for write services.

    Contract:
        Public operations build a closure over a Session and hand it to
        ``self._runner.run()``; the closure flushes but never commits.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        side_effects: SideEffectDispatcher | None = None,
        runner: TransactionRunner | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._side_effects = side_effects or SideEffectDispatcher()
        self._runner = runner or TransactionRunner(session_factory)

    @staticmethod
    def _lock_student(session: Session, student_id: UUID) -> Student:
        """
        Load the student row with SELECT ... FOR UPDATE.

        Every write that must be linearized per student takes this lock
        first.  It is held until the transaction ends.

        Raises:
            StudentNotFoundError: If no student has this id.
        """
        student = session.scalars(
            select(Student)
            .where(Student.id == student_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()
        if student is None:
            raise StudentNotFoundError(str(student_id))
        return student
