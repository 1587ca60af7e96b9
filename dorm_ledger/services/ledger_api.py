"""
dorm_ledger.services.ledger_api -- DormLedger, the public facade.

Responsibility:
    Creates every ledger service exactly once, wires them to one session
    factory, clock, transaction runner and side-effect dispatcher, and
    exposes the ledger operations callers use.  Request handlers hold one
    DormLedger per process and call it from any thread.

Architecture position:
    Kernel > Services -- top of the service layer.  ``from_config`` is the
    bridge from a ``dorm_config.LedgerConfig`` to a running ledger.

Invariants enforced:
    - Single-instance lifecycle: each service is constructed once, here.
    - Reads open a short-lived session of their own and never take locks.
    - Writes go through the owning service, which owns its transaction.

Usage:
    from dorm_config import get_active_config
    from dorm_ledger.services import DormLedger

    ledger = DormLedger.from_config(get_active_config())
    accountant = ledger.actor(user_id, ["ACCOUNTANT"])
    record = ledger.submit_payment(
        accountant, student_id, installment_id, "RECEIVE", "CASH", amount="500000",
    )
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from dorm_ledger.db.engine import get_session_factory, init_engine_from_url
from dorm_ledger.domain.aggregation import PairAggregate, StatusDrift, StudentAggregate
from dorm_ledger.domain.balance import CashFlowTotals
from dorm_ledger.domain.clock import Clock, SystemClock
from dorm_ledger.domain.dtos import (
    ExpenseInfo,
    InstallmentInfo,
    InsuranceDepositInfo,
    OutgoingRequestInfo,
    OutgoingStatus,
    PaymentEventInfo,
    PaymentKind,
    PaymentMethod,
    PaymentStatus,
)
from dorm_ledger.domain.permissions import (
    DEFAULT_ROLE_GRANTS,
    Actor,
    Permission,
    Role,
    require_permission,
)
from dorm_ledger.logging_config import get_logger
from dorm_ledger.selectors.balance_selector import CashBalanceSelector
from dorm_ledger.selectors.catalog_selector import CatalogSelector
from dorm_ledger.selectors.ledger_selector import LedgerSelector, PaymentReport
from dorm_ledger.services.expense_service import ExpenseService
from dorm_ledger.services.installment_catalog_service import InstallmentCatalogService
from dorm_ledger.services.insurance_service import InsuranceService
from dorm_ledger.services.outgoing_payment_service import OutgoingPaymentService
from dorm_ledger.services.payment_admission import PaymentAdmissionService, PaymentRecord
from dorm_ledger.services.side_effects import (
    AuditSink,
    DatabaseAuditSink,
    LoggingAuditSink,
    NotificationSink,
    SideEffectDispatcher,
)
from dorm_ledger.services.transaction import TransactionRunner

if TYPE_CHECKING:
    from dorm_config.schema import LedgerConfig

logger = get_logger("services.ledger_api")

T = TypeVar("T")


def grants_from_config(
    role_grants: Mapping[str, Iterable[str]],
) -> dict[Role, frozenset[Permission]]:
    """Convert configured role grants into the Role -> Permission map."""
    if not role_grants:
        return dict(DEFAULT_ROLE_GRANTS)
    return {
        Role(role): frozenset(Permission(p) for p in permissions)
        for role, permissions in role_grants.items()
    }


class DormLedger:
    """Facade over the dormitory payment ledger.

    Contract:
        Write operations take the acting ``Actor`` first and raise
        UnauthorizedError when it lacks the required permission.  Reads of
        aggregates and balance take no actor; history and report reads
        require ``payments:read``.

    Non-goals:
        - Does NOT authenticate users; callers build the Actor.
        - Does NOT own the engine when constructed directly.
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
        role_grants: Mapping[Role, frozenset[Permission]] | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._side_effects = side_effects or SideEffectDispatcher()
        self._runner = runner or TransactionRunner(session_factory)
        self._role_grants = dict(role_grants or DEFAULT_ROLE_GRANTS)
        self._executor = executor
        self.currency = currency

        common = (self._session_factory, self._clock, self._side_effects, self._runner)
        self.admission = PaymentAdmissionService(
            *common, currency=currency, notify_students=notify_students
        )
        self.outgoing = OutgoingPaymentService(*common)
        self.insurance = InsuranceService(*common)
        self.expenses = ExpenseService(*common)
        self.catalog = InstallmentCatalogService(*common)

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        notifier: NotificationSink | None = None,
    ) -> DormLedger:
        """Initialize the engine and build a ledger from a configuration set."""
        db = config.database
        init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            lock_timeout_seconds=config.locking.lock_timeout_seconds,
        )
        session_factory = get_session_factory()
        clock = clock or SystemClock()

        if audit_sink is None:
            audit_sink = (
                DatabaseAuditSink(session_factory, clock)
                if config.audit_sink == "database"
                else LoggingAuditSink()
            )
        executor = None
        if config.notifications.enabled and config.notifications.async_delivery:
            executor = ThreadPoolExecutor(
                max_workers=config.notifications.max_workers,
                thread_name_prefix="dorm-ledger-notify",
            )
        side_effects = SideEffectDispatcher(audit_sink, notifier, executor)
        runner = TransactionRunner(
            session_factory,
            max_attempts=config.retry.max_attempts,
            base_backoff_seconds=config.retry.base_backoff_seconds,
            max_backoff_seconds=config.retry.max_backoff_seconds,
            lock_timeout_seconds=config.locking.lock_timeout_seconds,
        )
        ledger = cls(
            session_factory,
            clock,
            side_effects,
            runner,
            currency=config.currency,
            notify_students=config.notifications.enabled,
            role_grants=grants_from_config(config.role_grants),
            executor=executor,
        )
        logger.info(
            "ledger_started",
            extra={
                "config_id": config.config_id,
                "checksum": config.checksum,
                "audit_sink": config.audit_sink,
                "async_notifications": executor is not None,
            },
        )
        return ledger

    def close(self) -> None:
        """Wait for queued notifications and release the executor."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def actor(self, actor_id: UUID, roles: Iterable[Role | str]) -> Actor:
        """Build an Actor from role names using the configured grants."""
        return Actor.with_roles(actor_id, roles, self._role_grants)

    def _read(self, fn: Callable[[Session], T]) -> T:
        session = self._session_factory()
        try:
            return fn(session)
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

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
        return self.admission.submit_payment(
            actor,
            student_id,
            installment_id,
            kind,
            method,
            amount=amount,
            discount_percent=discount_percent,
            discount_amount=discount_amount,
            receipt_url=receipt_url,
            idempotency_key=idempotency_key,
        )

    def aggregate_pair(self, student_id: UUID, installment_id: UUID) -> PairAggregate:
        return self._read(lambda s: LedgerSelector(s).aggregate_pair(student_id, installment_id))

    def aggregate_student(self, student_id: UUID) -> StudentAggregate:
        return self._read(lambda s: LedgerSelector(s).aggregate_student(student_id))

    def student_payments(self, actor: Actor, student_id: UUID) -> list[PaymentEventInfo]:
        require_permission(actor, Permission.PAYMENTS_READ)
        return self._read(lambda s: LedgerSelector(s).student_payments(student_id))

    def payment_report(
        self,
        actor: Actor,
        installment_id: UUID | None = None,
        entrance_year: str | None = None,
        status: PaymentStatus | str | None = None,
        page: int = 1,
        page_size: int = 50,
        *,
        department: str | None = None,
        student_name: str | None = None,
        student_code: str | None = None,
    ) -> PaymentReport:
        require_permission(actor, Permission.PAYMENTS_READ)
        return self._read(
            lambda s: LedgerSelector(s).payment_report(
                installment_id=installment_id,
                entrance_year=entrance_year,
                status=status,
                page=page,
                page_size=page_size,
                department=department,
                student_name=student_name,
                student_code=student_code,
            )
        )

    def status_drift(
        self, actor: Actor, student_id: UUID, installment_id: UUID
    ) -> list[StatusDrift]:
        require_permission(actor, Permission.PAYMENTS_READ)
        return self._read(lambda s: LedgerSelector(s).status_drift(student_id, installment_id))

    # ------------------------------------------------------------------
    # Cash balance and outgoing requests
    # ------------------------------------------------------------------

    def available_balance(self) -> Decimal:
        return self._read(lambda s: CashBalanceSelector(s).available_balance())

    def cash_flow_totals(self) -> CashFlowTotals:
        return self._read(lambda s: CashBalanceSelector(s).cash_flow_totals())

    def create_outgoing_request(
        self,
        actor: Actor,
        amount_to_hand_over: object,
        method: PaymentMethod | str = PaymentMethod.CASH,
        note: str | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> OutgoingRequestInfo:
        return self.outgoing.create_request(
            actor, amount_to_hand_over, method, note, period_start, period_end
        )

    def approve_outgoing_request(self, actor: Actor, request_id: UUID) -> OutgoingRequestInfo:
        return self.outgoing.approve_request(actor, request_id)

    def reject_outgoing_request(
        self, actor: Actor, request_id: UUID, note: str
    ) -> OutgoingRequestInfo:
        return self.outgoing.reject_request(actor, request_id, note)

    def delete_outgoing_request(self, actor: Actor, request_id: UUID) -> OutgoingRequestInfo:
        return self.outgoing.delete_request(actor, request_id)

    def list_outgoing_requests(
        self, status: OutgoingStatus | str | None = None
    ) -> list[OutgoingRequestInfo]:
        return self.outgoing.list_requests(status)

    # ------------------------------------------------------------------
    # Insurance, expenses, catalog
    # ------------------------------------------------------------------

    def open_insurance_deposit(
        self,
        actor: Actor,
        student_id: UUID,
        amount_paid: object,
        method: PaymentMethod | str = PaymentMethod.CASH,
    ) -> InsuranceDepositInfo:
        return self.insurance.open_deposit(actor, student_id, amount_paid, method)

    def return_insurance_deposit(
        self,
        actor: Actor,
        deposit_id: UUID,
        amount_returned: object,
        note: str | None = None,
    ) -> InsuranceDepositInfo:
        return self.insurance.return_deposit(actor, deposit_id, amount_returned, note)

    def record_expense(
        self,
        actor: Actor,
        title: str,
        amount: object,
        category: str | None = None,
        spent_at: date | None = None,
        description: str | None = None,
    ) -> ExpenseInfo:
        return self.expenses.record_expense(actor, title, amount, category, spent_at, description)

    def update_expense(
        self,
        actor: Actor,
        expense_id: UUID,
        *,
        title: str | None = None,
        amount: object = None,
        category: str | None = None,
        spent_at: date | None = None,
        description: str | None = None,
    ) -> ExpenseInfo:
        return self.expenses.update_expense(
            actor,
            expense_id,
            title=title,
            amount=amount,
            category=category,
            spent_at=spent_at,
            description=description,
        )

    def delete_expense(self, actor: Actor, expense_id: UUID) -> ExpenseInfo:
        return self.expenses.delete_expense(actor, expense_id)

    def installments_for_cohort(self, entrance_year: str) -> list[InstallmentInfo]:
        return self._read(lambda s: CatalogSelector(s).installments_for_cohort(entrance_year))

    def active_installments(
        self, on_date: date | None = None, entrance_year: str | None = None
    ) -> list[InstallmentInfo]:
        day = on_date or self._clock.today()
        return self._read(lambda s: CatalogSelector(s).active_installments(day, entrance_year))
