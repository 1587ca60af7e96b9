"""
PaymentAdmissionService -- the only writer of payment events.

Responsibility:
    Accepts a RECEIVE, RETURN or DISCOUNT for a (student, installment) pair,
    decides whether it may be admitted against the pair's current totals,
    appends it, and emits the audit record and confirmation notification
    after commit.

Architecture position:
    Kernel > Services -- imperative shell around domain.admission.

Invariants enforced (per pair, after every admitted write):
    - net_paid + discount <= installment amount
    - net_paid >= 0
    - DISCOUNT carries a receipt reference and a percent in (0, 100] or an
      explicit amount >= 0

Concurrency:
    Each submission runs in one transaction that first locks the student row
    (SELECT ... FOR UPDATE on PostgreSQL, BEGIN IMMEDIATE on SQLite), then
    re-reads the pair's events.  Two concurrent submissions for the same
    student are therefore evaluated one after the other, each against the
    other's committed write.  pair_seq uniqueness is a second line of
    defence: a collision raises IntegrityError and the attempt is retried.

Idempotency:
    An optional client-supplied idempotency_key de-duplicates retries after
    an ambiguous timeout.  Same key and same parameters returns the original
    payment (replayed=True, no side effects); same key with different
    parameters raises IdempotencyKeyReuseError.

Failure modes:
    - UnauthorizedError, ValidationFailedError: before any database access.
    - StudentNotFoundError, InstallmentNotFoundError.
    - ReturnExceedsPaidError, PaymentExceedsDueError, DiscountExceedsDueError,
      NegativeDiscountError: nothing written.
    - ConflictError: lock contention persisted through every retry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from dorm_ledger.db.locking import is_transient_db_error, is_unique_violation
from dorm_ledger.domain.admission import (
    PaymentRequest,
    evaluate_admission,
    validate_payment_request,
)
from dorm_ledger.domain.aggregation import PairAggregate, aggregate_pair
from dorm_ledger.domain.clock import Clock
from dorm_ledger.domain.dtos import (
    InstallmentInfo,
    PaymentEventInfo,
    PaymentKind,
    PaymentMethod,
    StudentInfo,
)
from dorm_ledger.domain.permissions import Actor, Permission, require_permission
from dorm_ledger.exceptions import (
    DormLedgerError,
    IdempotencyKeyReuseError,
    InstallmentNotFoundError,
    ValidationFailedError,
)
from dorm_ledger.logging_config import LogContext, get_logger
from dorm_ledger.models.audit_log import AuditAction
from dorm_ledger.models.installment import Installment
from dorm_ledger.models.payment import PaymentEvent
from dorm_ledger.selectors.ledger_selector import LedgerSelector
from dorm_ledger.services.base import BaseService
from dorm_ledger.services.side_effects import SideEffectDispatcher
from dorm_ledger.services.transaction import TransactionRunner

logger = get_logger("services.payment_admission")

MAX_IDEMPOTENCY_KEY_LENGTH = 200

_KIND_LABELS = {
    PaymentKind.RECEIVE: "Received",
    PaymentKind.RETURN: "Returned",
    PaymentKind.DISCOUNT: "Discounted",
}


@dataclass(frozen=True)
class PaymentRecord:
    """Result of submit_payment.

    ``aggregate`` is the pair's state including this payment.  ``replayed``
    is True when an idempotency key matched an earlier submission.
    """

    payment: PaymentEventInfo
    aggregate: PairAggregate
    replayed: bool = False


@dataclass(frozen=True)
class _Admitted:
    record: PaymentRecord
    student: StudentInfo
    installment: InstallmentInfo


def _is_retryable(exc: BaseException) -> bool:
    return is_transient_db_error(exc) or is_unique_violation(
        exc,
        "uq_payment_events_pair_seq",
        "payment_events.pair_seq",
        "uq_payment_events_idempotency_key",
        "payment_events.idempotency_key",
    )


def _same_submission(
    existing: PaymentEventInfo,
    student_id: UUID,
    installment_id: UUID,
    request: PaymentRequest,
) -> bool:
    if (
        existing.student_id != student_id
        or existing.installment_id != installment_id
        or existing.kind != request.kind
        or existing.method != request.method
        or existing.receipt_url != request.receipt_url
    ):
        return False
    if request.kind != PaymentKind.DISCOUNT:
        return existing.amount == request.amount
    if request.discount_percent is not None:
        return existing.discount_percent == request.discount_percent
    return existing.discount_percent is None and existing.amount == request.discount_amount


def build_payment_confirmation(
    student: StudentInfo,
    installment: InstallmentInfo,
    record: PaymentRecord,
    currency: str,
) -> dict[str, Any]:
    """Template data for the payment confirmation message."""
    payment = record.payment
    data: dict[str, Any] = {
        "template": "payment_confirmation",
        "student_name": student.full_name,
        "student_code": student.student_code,
        "kind": payment.kind.value,
        "kind_label": _KIND_LABELS[payment.kind],
        "amount": str(payment.amount),
        "currency": currency,
        "method": payment.method.value,
        "installment_title": installment.title,
        "installment_no": installment.installment_no,
        "paid_at": payment.paid_at.isoformat(),
        "status": record.aggregate.derived_status.value,
        "remaining": str(record.aggregate.remaining),
    }
    if payment.kind == PaymentKind.DISCOUNT:
        data["discount_percent"] = (
            str(payment.discount_percent) if payment.discount_percent is not None else None
        )
        data["discount_amount"] = str(payment.amount)
    return data


class PaymentAdmissionService(BaseService):
    """Admits payment events.

    Contract:
        submit_payment() either commits exactly one new event and returns it,
        returns an earlier event for a replayed idempotency key, or raises
        without writing anything.

    Non-goals:
        - Does NOT upload receipts; it stores the URL it is given.
        - Does NOT retry failed notifications.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        side_effects: SideEffectDispatcher | None = None,
        runner: TransactionRunner | None = None,
        *,
        currency: str = "IQD",
        notify_students: bool = True,
    ):
        super().__init__(session_factory, clock, side_effects, runner)
        self._currency = currency
        self._notify_students = notify_students

    def submit_payment(
        self,
        actor: Actor,
        student_id: UUID,
        installment_id: UUID,
        kind: PaymentKind | str,
        method: PaymentMethod | str,
        *,
        amount: object = None,
        discount_percent: object = None,
        discount_amount: object = None,
        receipt_url: str | None = None,
        idempotency_key: str | None = None,
    ) -> PaymentRecord:
        """Admit one payment event.

        Args:
            actor: Acting user; must hold ``payments:create``.
            student_id: Student the payment is for.
            installment_id: Installment the payment is applied to.
            kind: RECEIVE, RETURN or DISCOUNT.
            method: CASH, FIB or FASTPAY.
            amount: Positive amount for RECEIVE and RETURN.
            discount_percent: DISCOUNT percent in (0, 100]; wins over
                ``discount_amount`` when both are given.
            discount_amount: Explicit DISCOUNT amount >= 0.
            receipt_url: Receipt reference; required for DISCOUNT.
            idempotency_key: Optional client token for safe retries.

        Returns:
            PaymentRecord with the stored event and the pair's new aggregate.
        """
        require_permission(actor, Permission.PAYMENTS_CREATE)
        request = validate_payment_request(
            kind,
            method,
            amount=amount,
            discount_percent=discount_percent,
            discount_amount=discount_amount,
            receipt_url=receipt_url,
        )
        key = self._normalize_key(idempotency_key)

        with LogContext.bind(
            actor_id=actor.actor_id,
            student_id=student_id,
            installment_id=installment_id,
            operation="submit_payment",
        ):
            try:
                admitted = self._runner.run(
                    "submit_payment",
                    lambda session: self._admit(
                        session, actor, student_id, installment_id, request, key
                    ),
                    retryable=_is_retryable,
                )
            except DormLedgerError as exc:
                logger.info(
                    "payment_rejected",
                    extra={
                        "kind": request.kind.value,
                        "error_code": exc.code,
                        "reason": str(exc),
                    },
                )
                raise

            record = admitted.record
            if record.replayed:
                logger.info(
                    "payment_replayed",
                    extra={
                        "payment_id": str(record.payment.payment_id),
                        "idempotency_key": key,
                    },
                )
                return record

            logger.info(
                "payment_admitted",
                extra={
                    "payment_id": str(record.payment.payment_id),
                    "kind": record.payment.kind.value,
                    "amount": str(record.payment.amount),
                    "pair_seq": record.payment.pair_seq,
                    "status": record.aggregate.derived_status.value,
                    "remaining": str(record.aggregate.remaining),
                },
            )
            self._after_commit(actor, admitted)
            return record

    @staticmethod
    def _normalize_key(idempotency_key: str | None) -> str | None:
        if idempotency_key is None:
            return None
        key = idempotency_key.strip()
        if not key:
            raise ValidationFailedError("idempotency_key", "must not be blank")
        if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValidationFailedError(
                "idempotency_key",
                f"at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters",
            )
        return key

    def _admit(
        self,
        session: Session,
        actor: Actor,
        student_id: UUID,
        installment_id: UUID,
        request: PaymentRequest,
        idempotency_key: str | None,
    ) -> _Admitted:
        student = self._lock_student(session, student_id)

        installment = session.get(Installment, installment_id, populate_existing=True)
        if installment is None:
            raise InstallmentNotFoundError(str(installment_id))
        installment_info = InstallmentInfo.from_model(installment)
        student_info = StudentInfo.from_model(student)

        ledger = LedgerSelector(session)

        if idempotency_key is not None:
            existing = ledger.find_by_idempotency_key(idempotency_key)
            if existing is not None:
                if not _same_submission(existing, student_id, installment_id, request):
                    raise IdempotencyKeyReuseError(
                        idempotency_key, str(existing.payment_id)
                    )
                aggregate = aggregate_pair(
                    existing.student_id,
                    existing.installment_id,
                    session.get(Installment, existing.installment_id).amount,
                    ledger.pair_events(existing.student_id, existing.installment_id),
                )
                return _Admitted(
                    record=PaymentRecord(payment=existing, aggregate=aggregate, replayed=True),
                    student=student_info,
                    installment=installment_info,
                )

        events = ledger.pair_events(student_id, installment_id)
        current = aggregate_pair(student_id, installment_id, installment.amount, events)
        decision = evaluate_admission(request, installment.amount, current)

        row = PaymentEvent(
            student_id=student_id,
            installment_id=installment_id,
            kind=decision.kind.value,
            method=request.method.value,
            amount=decision.amount,
            discount_percent=decision.discount_percent,
            receipt_url=request.receipt_url,
            status=decision.status.value,
            paid_at=self._clock.now_utc(),
            pair_seq=max((e.pair_seq for e in events), default=0) + 1,
            idempotency_key=idempotency_key,
            created_by_id=actor.actor_id,
        )
        session.add(row)
        session.flush()

        payment = PaymentEventInfo.from_model(row)
        aggregate = aggregate_pair(
            student_id, installment_id, installment.amount, [*events, payment]
        )
        return _Admitted(
            record=PaymentRecord(payment=payment, aggregate=aggregate),
            student=student_info,
            installment=installment_info,
        )

    def _after_commit(self, actor: Actor, admitted: _Admitted) -> None:
        record = admitted.record
        payment = record.payment
        self._side_effects.audit(
            AuditAction.PAYMENT_CREATED,
            "PaymentEvent",
            payment.payment_id,
            actor.actor_id,
            new_values={
                "student_id": payment.student_id,
                "installment_id": payment.installment_id,
                "kind": payment.kind,
                "method": payment.method,
                "amount": payment.amount,
                "discount_percent": payment.discount_percent,
                "receipt_url": payment.receipt_url,
                "status": record.aggregate.derived_status,
                "pair_seq": payment.pair_seq,
            },
            description=(
                f"{_KIND_LABELS[payment.kind]} {payment.amount} {self._currency} "
                f"for {admitted.installment.title} ({admitted.student.full_name})"
            ),
        )
        if self._notify_students:
            self._side_effects.notify(
                admitted.student.email,
                build_payment_confirmation(
                    admitted.student, admitted.installment, record, self._currency
                ),
            )
