"""
Module: dorm_ledger.selectors.ledger_selector
Responsibility: Read-only payment ledger queries: pair and student histories,
    derived aggregates, the payment report and stored-status drift.
Architecture position: Kernel > Selectors.  Loads events and hands them to
    the pure aggregator; it never computes paid state on its own.

Invariants enforced:
    - Paid state is derived from the full event history at query time.  The
      status column of payment_events is only compared against, never used.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from dorm_ledger.db.types import ZERO
from dorm_ledger.domain.aggregation import (
    PairAggregate,
    StatusDrift,
    StudentAggregate,
    aggregate_pair,
    aggregate_student,
    find_status_drift,
)
from dorm_ledger.domain.dtos import (
    InstallmentInfo,
    PaymentEventInfo,
    PaymentStatus,
    StudentInfo,
)
from dorm_ledger.exceptions import ValidationFailedError
from dorm_ledger.models.installment import Installment
from dorm_ledger.models.payment import PaymentEvent
from dorm_ledger.selectors.base import BaseSelector
from dorm_ledger.selectors.catalog_selector import CatalogSelector


@dataclass(frozen=True)
class PaymentReportRow:
    """One (student, installment) line of the payment report."""

    student: StudentInfo
    installment: InstallmentInfo
    aggregate: PairAggregate

    @property
    def status(self) -> PaymentStatus:
        return self.aggregate.derived_status


@dataclass(frozen=True)
class PaymentReportTotals:
    """Grand totals over every row matching the filters (not only the page)."""

    total_installment_amount: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_returned: Decimal = ZERO
    total_discount: Decimal = ZERO
    total_remaining: Decimal = ZERO


@dataclass(frozen=True)
class PaymentReport:
    rows: tuple[PaymentReportRow, ...]
    totals: PaymentReportTotals
    page: int
    page_size: int
    total_rows: int
    status_counts: dict[PaymentStatus, int] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return max(1, -(-self.total_rows // self.page_size))


class LedgerSelector(BaseSelector):
    """Payment history and derived paid state."""

    def _events(self, *criteria) -> list[PaymentEventInfo]:
        rows = self.session.scalars(
            select(PaymentEvent)
            .where(*criteria)
            .order_by(PaymentEvent.installment_id, PaymentEvent.pair_seq)
            .execution_options(populate_existing=True)
        ).all()
        return [PaymentEventInfo.from_model(r) for r in rows]

    def pair_events(self, student_id: UUID, installment_id: UUID) -> list[PaymentEventInfo]:
        """Events of one pair in admission (pair_seq) order."""
        return self._events(
            PaymentEvent.student_id == student_id,
            PaymentEvent.installment_id == installment_id,
        )

    def student_events(self, student_id: UUID) -> list[PaymentEventInfo]:
        return self._events(PaymentEvent.student_id == student_id)

    def find_by_idempotency_key(self, idempotency_key: str) -> PaymentEventInfo | None:
        row = self.session.scalars(
            select(PaymentEvent).where(PaymentEvent.idempotency_key == idempotency_key)
        ).one_or_none()
        return PaymentEventInfo.from_model(row) if row is not None else None

    def student_payments(self, student_id: UUID) -> list[PaymentEventInfo]:
        """A student's payment history, most recent first."""
        CatalogSelector(self.session).get_student(student_id)
        events = self.student_events(student_id)
        return sorted(events, key=lambda e: (e.paid_at, e.pair_seq), reverse=True)

    def aggregate_pair(self, student_id: UUID, installment_id: UUID) -> PairAggregate:
        """
        Raises:
            StudentNotFoundError, InstallmentNotFoundError
        """
        catalog = CatalogSelector(self.session)
        catalog.get_student(student_id)
        installment = catalog.get_installment(installment_id)
        return aggregate_pair(
            student_id,
            installment_id,
            installment.amount,
            self.pair_events(student_id, installment_id),
        )

    def aggregate_student(self, student_id: UUID) -> StudentAggregate:
        """
        Per-installment breakdown for a student.

        Covers every installment of the student's cohort plus any other
        installment the student has events against.

        Raises:
            StudentNotFoundError
        """
        catalog = CatalogSelector(self.session)
        student = catalog.get_student(student_id)
        events = self.student_events(student_id)

        installments = {
            i.installment_id: i
            for i in catalog.installments_for_cohort(student.entrance_year)
        }
        for installment_id in {e.installment_id for e in events} - installments.keys():
            installments[installment_id] = catalog.get_installment(installment_id)

        return aggregate_student(student_id, installments.values(), events)

    def status_drift(self, student_id: UUID, installment_id: UUID) -> list[StatusDrift]:
        """Stored status snapshots of a pair that disagree with a replay."""
        installment = CatalogSelector(self.session).get_installment(installment_id)
        return find_status_drift(
            installment.amount, self.pair_events(student_id, installment_id)
        )

    def payment_report(
        self,
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
        """
        Paid/owed figures for every active student against every installment
        of their cohort, filtered, sorted by student name then installment
        number, and paginated.

        Student filters: ``department`` (name or code), ``student_name`` and
        ``student_code`` (case-insensitive substrings).

        Raises:
            ValidationFailedError: On page < 1, page_size < 1 or unknown status.
        """
        if page < 1:
            raise ValidationFailedError("page", f"must be >= 1, got {page}")
        if page_size < 1:
            raise ValidationFailedError("page_size", f"must be >= 1, got {page_size}")
        if status is not None and not isinstance(status, PaymentStatus):
            try:
                status = PaymentStatus(status)
            except ValueError:
                raise ValidationFailedError("status", f"unknown status {status!r}") from None

        inst_stmt = select(Installment)
        if installment_id is not None:
            inst_stmt = inst_stmt.where(Installment.id == installment_id)
        if entrance_year is not None:
            inst_stmt = inst_stmt.where(Installment.entrance_year == entrance_year)
        installments = [
            InstallmentInfo.from_model(i)
            for i in self.session.scalars(
                inst_stmt.order_by(Installment.installment_no)
            ).all()
        ]
        by_cohort: dict[str, list[InstallmentInfo]] = {}
        for inst in installments:
            by_cohort.setdefault(inst.entrance_year, []).append(inst)

        students = CatalogSelector(self.session).find_students(
            entrance_years=by_cohort,
            department=department,
            name_contains=student_name,
            code_contains=student_code,
        ) if by_cohort else []

        events_by_pair: dict[tuple[UUID, UUID], list[PaymentEventInfo]] = {}
        if installments:
            for event in self._events(
                PaymentEvent.installment_id.in_([i.installment_id for i in installments])
            ):
                events_by_pair.setdefault(
                    (event.student_id, event.installment_id), []
                ).append(event)

        rows: list[PaymentReportRow] = []
        for student in students:
            for inst in by_cohort.get(student.entrance_year, []):
                aggregate = aggregate_pair(
                    student.student_id,
                    inst.installment_id,
                    inst.amount,
                    events_by_pair.get((student.student_id, inst.installment_id), []),
                )
                if status is not None and aggregate.derived_status != status:
                    continue
                rows.append(PaymentReportRow(student=student, installment=inst, aggregate=aggregate))

        totals = PaymentReportTotals(
            total_installment_amount=sum((r.installment.amount for r in rows), ZERO),
            total_paid=sum((r.aggregate.net_paid for r in rows), ZERO),
            total_returned=sum((r.aggregate.returned for r in rows), ZERO),
            total_discount=sum((r.aggregate.discount for r in rows), ZERO),
            total_remaining=sum((r.aggregate.remaining for r in rows), ZERO),
        )
        status_counts: dict[PaymentStatus, int] = {}
        for r in rows:
            status_counts[r.status] = status_counts.get(r.status, 0) + 1

        start = (page - 1) * page_size
        return PaymentReport(
            rows=tuple(rows[start:start + page_size]),
            totals=totals,
            page=page,
            page_size=page_size,
            total_rows=len(rows),
            status_counts=status_counts,
        )
