"""
OutgoingPaymentService -- hand-over requests gated by the cash balance.

Responsibility:
    Drives an outgoing payment request through PENDING -> APPROVED |
    REJECTED, or deletes it while PENDING, as defined by
    OUTGOING_PAYMENT_WORKFLOW.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - amount_to_hand_over <= available balance at submission, checked inside
      the inserting transaction under the cash ledger lock.
    - The balance is checked again at approval, since other requests may
      have been approved in between.  Only APPROVED requests reduce the
      balance, so this keeps the approved total within collected cash.
    - Transitions fire only from PENDING; anything else is InvalidStateError.
    - Every transition records the acting user and the clock time.

Failure modes:
    - UnauthorizedError: actor lacks the transition's permission.
    - ValidationFailedError: bad amount, missing rejection note, bad period.
    - InsufficientBalanceError: hand-over larger than cash on hand.
    - OutgoingRequestNotFoundError, InvalidStateError, ConflictError.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from dorm_ledger.db.locking import lock_cash_ledger
from dorm_ledger.domain.dtos import OutgoingRequestInfo, OutgoingStatus, PaymentMethod
from dorm_ledger.domain.money import parse_money
from dorm_ledger.domain.permissions import Actor, Permission, require_permission
from dorm_ledger.domain.workflow import (
    OUTGOING_PAYMENT_WORKFLOW,
    Transition,
    resolve_transition,
)
from dorm_ledger.exceptions import (
    InsufficientBalanceError,
    OutgoingRequestNotFoundError,
    ValidationFailedError,
)
from dorm_ledger.logging_config import LogContext, get_logger
from dorm_ledger.models.audit_log import AuditAction, LogSeverity
from dorm_ledger.models.outgoing import OutgoingPaymentRequest
from dorm_ledger.selectors.balance_selector import CashBalanceSelector
from dorm_ledger.services.base import BaseService

logger = get_logger("services.outgoing_payment")

_ENTITY = "OutgoingPaymentRequest"


class OutgoingPaymentService(BaseService):
    """Creates, approves, rejects and deletes hand-over requests.

    Contract:
        Each operation is one transaction.  Side effects (audit) run after
        commit.
    """

    def create_request(
        self,
        actor: Actor,
        amount_to_hand_over: object,
        method: PaymentMethod | str = PaymentMethod.CASH,
        note: str | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> OutgoingRequestInfo:
        """Submit a PENDING hand-over request.

        The available balance is recomputed server-side inside the same
        transaction; total_collected and remaining_float snapshot it.

        Raises:
            InsufficientBalanceError: amount_to_hand_over > available balance.
        """
        require_permission(actor, Permission.OUTGOING_CREATE)
        amount = parse_money(amount_to_hand_over, "amount_to_hand_over")
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise ValidationFailedError("method", f"unknown method {method!r}") from None
        if period_start and period_end and period_start > period_end:
            raise ValidationFailedError(
                "period", f"period_start {period_start} is after period_end {period_end}"
            )

        def work(session: Session) -> OutgoingRequestInfo:
            lock_cash_ledger(session)
            balance = CashBalanceSelector(session).available_balance()
            if amount > balance:
                raise InsufficientBalanceError(
                    available_balance=balance,
                    requested_amount=amount,
                    operation="outgoing hand-over",
                )
            row = OutgoingPaymentRequest(
                total_collected=balance,
                amount_to_hand_over=amount,
                remaining_float=balance - amount,
                method=method.value,
                note=note,
                period_start=period_start,
                period_end=period_end,
                status=OutgoingStatus.PENDING.value,
                submitted_by_id=actor.actor_id,
                submitted_at=self._clock.now_utc(),
            )
            session.add(row)
            session.flush()
            return OutgoingRequestInfo.from_model(row)

        with LogContext.bind(actor_id=actor.actor_id, operation="create_outgoing_request"):
            try:
                info = self._runner.run("create_outgoing_request", work)
            except InsufficientBalanceError as exc:
                logger.info(
                    "outgoing_request_rejected",
                    extra={
                        "error_code": exc.code,
                        "available_balance": str(exc.available_balance),
                        "requested_amount": str(exc.requested_amount),
                    },
                )
                raise

            logger.info(
                "outgoing_request_created",
                extra={
                    "request_id": str(info.request_id),
                    "amount_to_hand_over": str(info.amount_to_hand_over),
                    "total_collected": str(info.total_collected),
                    "remaining_float": str(info.remaining_float),
                },
            )
        self._side_effects.audit(
            AuditAction.OUTGOING_CREATED,
            _ENTITY,
            info.request_id,
            actor.actor_id,
            new_values={
                "amount_to_hand_over": info.amount_to_hand_over,
                "total_collected": info.total_collected,
                "remaining_float": info.remaining_float,
                "method": info.method,
                "status": info.status,
            },
            description=f"Outgoing payment request of {info.amount_to_hand_over} submitted",
        )
        return info

    def approve_request(self, actor: Actor, request_id: UUID) -> OutgoingRequestInfo:
        """PENDING -> APPROVED, after re-validating the balance."""
        return self._transition(actor, request_id, "approve")

    def reject_request(self, actor: Actor, request_id: UUID, note: str) -> OutgoingRequestInfo:
        """PENDING -> REJECTED.  ``note`` is required."""
        if not note or not note.strip():
            raise ValidationFailedError("rejection_note", "is required to reject a request")
        return self._transition(actor, request_id, "reject", note=note.strip())

    def delete_request(self, actor: Actor, request_id: UUID) -> OutgoingRequestInfo:
        """Remove a PENDING request.  Returns the request as it was."""
        return self._transition(actor, request_id, "delete")

    def get_request(self, request_id: UUID) -> OutgoingRequestInfo:
        session = self._session_factory()
        try:
            row = session.get(OutgoingPaymentRequest, request_id)
            if row is None:
                raise OutgoingRequestNotFoundError(str(request_id))
            return OutgoingRequestInfo.from_model(row)
        finally:
            session.close()

    def list_requests(self, status: OutgoingStatus | None = None) -> list[OutgoingRequestInfo]:
        """Requests, newest first, optionally filtered by status."""
        session = self._session_factory()
        try:
            stmt = select(OutgoingPaymentRequest)
            if status is not None:
                stmt = stmt.where(OutgoingPaymentRequest.status == OutgoingStatus(status).value)
            rows = session.scalars(
                stmt.order_by(OutgoingPaymentRequest.submitted_at.desc())
            ).all()
            return [OutgoingRequestInfo.from_model(r) for r in rows]
        finally:
            session.close()

    def _transition(
        self,
        actor: Actor,
        request_id: UUID,
        action: str,
        note: str | None = None,
    ) -> OutgoingRequestInfo:
        # Permission depends only on the action
        permission = next(
            t.permission for t in OUTGOING_PAYMENT_WORKFLOW.transitions if t.action == action
        )
        require_permission(actor, permission)

        def work(session: Session) -> tuple[OutgoingRequestInfo, OutgoingRequestInfo, Transition]:
            if action == "approve":
                lock_cash_ledger(session)
            row = session.scalars(
                select(OutgoingPaymentRequest)
                .where(OutgoingPaymentRequest.id == request_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).one_or_none()
            if row is None:
                raise OutgoingRequestNotFoundError(str(request_id))

            transition = resolve_transition(
                OUTGOING_PAYMENT_WORKFLOW, _ENTITY, str(request_id), row.status, action
            )
            before = OutgoingRequestInfo.from_model(row)

            if transition.moves_cash:
                balance = CashBalanceSelector(session).available_balance()
                if row.amount_to_hand_over > balance:
                    raise InsufficientBalanceError(
                        available_balance=balance,
                        requested_amount=row.amount_to_hand_over,
                        operation="approval of hand-over",
                    )

            if action == "delete":
                session.delete(row)
                session.flush()
                return before, before, transition

            row.status = transition.to_state
            row.decided_by_id = actor.actor_id
            row.decided_at = self._clock.now_utc()
            if note is not None:
                row.rejection_note = note
            session.flush()
            return before, OutgoingRequestInfo.from_model(row), transition

        with LogContext.bind(
            actor_id=actor.actor_id,
            request_id=request_id,
            operation=f"{action}_outgoing_request",
        ):
            before, after, transition = self._runner.run(f"{action}_outgoing_request", work)
            logger.info(
                "outgoing_request_transitioned",
                extra={
                    "action": action,
                    "from_state": transition.from_state,
                    "to_state": transition.to_state,
                    "amount_to_hand_over": str(before.amount_to_hand_over),
                },
            )

        audit_action = {
            "approve": AuditAction.OUTGOING_APPROVED,
            "reject": AuditAction.OUTGOING_REJECTED,
            "delete": AuditAction.OUTGOING_DELETED,
        }[action]
        self._side_effects.audit(
            audit_action,
            _ENTITY,
            request_id,
            actor.actor_id,
            old_values={"status": before.status},
            new_values=None if action == "delete" else {
                "status": after.status,
                "rejection_note": after.rejection_note,
            },
            severity=LogSeverity.WARNING if action == "delete" else LogSeverity.INFO,
            description=f"Outgoing payment request {transition.to_state.lower()}",
        )
        return after
