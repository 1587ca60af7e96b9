"""
InsuranceService -- student insurance deposits.

Responsibility:
    Opens a deposit when a housed student pays insurance, and closes it when
    the student leaves: RETURNED with the refunded amount, or FORFEITED when
    nothing is refunded.  Deposits feed the available cash balance.

Invariants enforced:
    - At most one ACTIVE deposit per student (checked under the student row
      lock; the partial unique index backs it up).
    - Only students assigned to a room can open a deposit.
    - 0 <= amount_returned <= amount_paid.
    - Only ACTIVE deposits can be returned.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from dorm_ledger.db.locking import lock_cash_ledger
from dorm_ledger.db.types import ZERO
from dorm_ledger.domain.dtos import InsuranceDepositInfo, InsuranceStatus, PaymentMethod
from dorm_ledger.domain.money import parse_money
from dorm_ledger.domain.permissions import Actor, Permission, require_permission
from dorm_ledger.exceptions import (
    ActiveDepositExistsError,
    InsuranceDepositNotFoundError,
    InvalidStateError,
    RefundExceedsDepositError,
    StudentNotHousedError,
    ValidationFailedError,
)
from dorm_ledger.logging_config import LogContext, get_logger
from dorm_ledger.models.audit_log import AuditAction
from dorm_ledger.models.insurance import InsuranceDeposit
from dorm_ledger.services.base import BaseService

logger = get_logger("services.insurance")

_ENTITY = "InsuranceDeposit"


class InsuranceService(BaseService):
    """Opens and returns insurance deposits."""

    def open_deposit(
        self,
        actor: Actor,
        student_id: UUID,
        amount_paid: object,
        method: PaymentMethod | str = PaymentMethod.CASH,
    ) -> InsuranceDepositInfo:
        """
        Record an insurance deposit for a housed student.

        Raises:
            StudentNotFoundError, StudentNotHousedError, ActiveDepositExistsError
        """
        require_permission(actor, Permission.INSURANCE_CREATE)
        amount = parse_money(amount_paid, "amount_paid")
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise ValidationFailedError("method", f"unknown method {method!r}") from None

        def work(session: Session) -> InsuranceDepositInfo:
            student = self._lock_student(session, student_id)
            if student.room_id is None:
                raise StudentNotHousedError(str(student_id))
            active = session.scalars(
                select(InsuranceDeposit).where(
                    InsuranceDeposit.student_id == student_id,
                    InsuranceDeposit.status == InsuranceStatus.ACTIVE.value,
                )
            ).first()
            if active is not None:
                raise ActiveDepositExistsError(str(student_id), str(active.id))

            row = InsuranceDeposit(
                student_id=student_id,
                amount_paid=amount,
                method=method.value,
                status=InsuranceStatus.ACTIVE.value,
                paid_at=self._clock.now_utc(),
                created_by_id=actor.actor_id,
            )
            session.add(row)
            session.flush()
            return InsuranceDepositInfo.from_model(row)

        with LogContext.bind(
            actor_id=actor.actor_id, student_id=student_id, operation="open_deposit"
        ):
            info = self._runner.run("open_deposit", work)
            logger.info(
                "insurance_deposit_opened",
                extra={"deposit_id": str(info.deposit_id), "amount_paid": str(info.amount_paid)},
            )

        self._side_effects.audit(
            AuditAction.INSURANCE_CREATED,
            _ENTITY,
            info.deposit_id,
            actor.actor_id,
            new_values={
                "student_id": info.student_id,
                "amount_paid": info.amount_paid,
                "method": info.method,
                "status": info.status,
            },
            description=f"Insurance deposit of {info.amount_paid} received",
        )
        return info

    def return_deposit(
        self,
        actor: Actor,
        deposit_id: UUID,
        amount_returned: object,
        note: str | None = None,
    ) -> InsuranceDepositInfo:
        """
        Close an ACTIVE deposit.  A zero refund forfeits it.

        Raises:
            InsuranceDepositNotFoundError, InvalidStateError,
            RefundExceedsDepositError
        """
        require_permission(actor, Permission.INSURANCE_UPDATE)
        refund = parse_money(amount_returned, "amount_returned", allow_zero=True)

        def work(session: Session) -> tuple[InsuranceDepositInfo, InsuranceDepositInfo]:
            lock_cash_ledger(session)
            row = session.scalars(
                select(InsuranceDeposit)
                .where(InsuranceDeposit.id == deposit_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).one_or_none()
            if row is None:
                raise InsuranceDepositNotFoundError(str(deposit_id))
            if row.status != InsuranceStatus.ACTIVE.value:
                raise InvalidStateError(_ENTITY, str(deposit_id), row.status, "return")
            if refund > row.amount_paid:
                raise RefundExceedsDepositError(
                    amount_paid=row.amount_paid, amount_returned=refund
                )

            before = InsuranceDepositInfo.from_model(row)
            row.status = (
                InsuranceStatus.FORFEITED.value if refund == ZERO
                else InsuranceStatus.RETURNED.value
            )
            row.amount_returned = refund
            row.return_note = note
            row.returned_by_id = actor.actor_id
            row.returned_at = self._clock.now_utc()
            row.updated_by_id = actor.actor_id
            session.flush()
            return before, InsuranceDepositInfo.from_model(row)

        with LogContext.bind(actor_id=actor.actor_id, operation="return_deposit"):
            before, after = self._runner.run("return_deposit", work)
            logger.info(
                "insurance_deposit_closed",
                extra={
                    "deposit_id": str(deposit_id),
                    "status": after.status.value,
                    "amount_returned": str(after.amount_returned),
                },
            )

        self._side_effects.audit(
            AuditAction.INSURANCE_RETURNED,
            _ENTITY,
            deposit_id,
            actor.actor_id,
            old_values={"status": before.status},
            new_values={
                "status": after.status,
                "amount_returned": after.amount_returned,
                "return_note": after.return_note,
            },
            description=f"Insurance deposit {after.status.value.lower()}",
        )
        return after

    def deposits_for_student(self, student_id: UUID) -> list[InsuranceDepositInfo]:
        session = self._session_factory()
        try:
            rows = session.scalars(
                select(InsuranceDeposit)
                .where(InsuranceDeposit.student_id == student_id)
                .order_by(InsuranceDeposit.paid_at.desc())
            ).all()
            return [InsuranceDepositInfo.from_model(r) for r in rows]
        finally:
            session.close()
