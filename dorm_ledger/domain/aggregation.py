"""
Ledger Aggregator -- pure derivation of paid/owed state from event history.

Responsibility:
    Folds payment events into per-pair (student, installment) and
    per-student figures.  This is the single definition of paid state;
    admission, reports and drift checks all call into it.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - net_paid = sum(RECEIVE) - sum(RETURN).
    - remaining = max(0, installment_amount - net_paid - discount).
    - Derived status: UNPAID if net_paid == 0 and discount == 0; PAID if
      remaining == 0; PARTIALLY_PAID otherwise.
    - Totals are sums and therefore independent of event order.  Only
      last_paid_at depends on timestamps, and it is a max over paid_at,
      never "the last row".
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from dorm_ledger.db.types import ZERO
from dorm_ledger.domain.dtos import (
    InstallmentInfo,
    PaymentEventInfo,
    PaymentKind,
    PaymentStatus,
)


@dataclass(frozen=True)
class PairAggregate:
    """Paid/owed figures of one (student, installment) pair."""

    student_id: UUID
    installment_id: UUID
    installment_amount: Decimal
    paid: Decimal
    returned: Decimal
    discount: Decimal
    net_paid: Decimal
    remaining: Decimal
    derived_status: PaymentStatus
    last_paid_at: datetime | None
    event_count: int

    @property
    def net_due(self) -> Decimal:
        """What the student owes in total once discounts are applied."""
        return max(ZERO, self.installment_amount - self.discount)


@dataclass(frozen=True)
class InstallmentBalance:
    """One line of a student's per-installment breakdown."""

    installment: InstallmentInfo
    aggregate: PairAggregate


@dataclass(frozen=True)
class StudentAggregate:
    """All installments of one student, with totals."""

    student_id: UUID
    total_amount: Decimal
    total_paid: Decimal
    total_returned: Decimal
    total_discount: Decimal
    total_remaining: Decimal
    installments: tuple[InstallmentBalance, ...]

    @property
    def is_fully_paid(self) -> bool:
        return self.total_remaining == ZERO


@dataclass(frozen=True)
class StatusDrift:
    """A stored status snapshot that differs from the replayed one."""

    payment_id: UUID
    pair_seq: int
    stored_status: PaymentStatus
    replayed_status: PaymentStatus


def _sum_kind(events: Iterable[PaymentEventInfo], kind: PaymentKind) -> Decimal:
    return sum((e.amount for e in events if e.kind == kind), ZERO)


def derive_status(
    net_paid: Decimal,
    discount: Decimal,
    remaining: Decimal,
) -> PaymentStatus:
    """Status of a pair from its totals."""
    if net_paid == 0 and discount == 0:
        return PaymentStatus.UNPAID
    if remaining == 0:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIALLY_PAID


def remaining_due(
    installment_amount: Decimal,
    net_paid: Decimal,
    discount: Decimal,
) -> Decimal:
    return max(ZERO, installment_amount - net_paid - discount)


def aggregate_pair(
    student_id: UUID,
    installment_id: UUID,
    installment_amount: Decimal,
    events: Iterable[PaymentEventInfo],
) -> PairAggregate:
    """
    Fold the events of one pair into a PairAggregate.

    Events that belong to another student or installment are ignored, so
    callers may pass a student's whole history.
    """
    pair_events = [
        e for e in events
        if e.student_id == student_id and e.installment_id == installment_id
    ]

    paid = _sum_kind(pair_events, PaymentKind.RECEIVE)
    returned = _sum_kind(pair_events, PaymentKind.RETURN)
    discount = _sum_kind(pair_events, PaymentKind.DISCOUNT)
    net_paid = paid - returned
    remaining = remaining_due(installment_amount, net_paid, discount)

    return PairAggregate(
        student_id=student_id,
        installment_id=installment_id,
        installment_amount=installment_amount,
        paid=paid,
        returned=returned,
        discount=discount,
        net_paid=net_paid,
        remaining=remaining,
        derived_status=derive_status(net_paid, discount, remaining),
        last_paid_at=max((e.paid_at for e in pair_events), default=None),
        event_count=len(pair_events),
    )


def aggregate_student(
    student_id: UUID,
    installments: Iterable[InstallmentInfo],
    events: Iterable[PaymentEventInfo],
) -> StudentAggregate:
    """
    Per-installment breakdown of a student, ordered by installment_no.

    Installments without events appear as UNPAID with the full amount
    remaining.
    """
    student_events = [e for e in events if e.student_id == student_id]
    lines = tuple(
        InstallmentBalance(
            installment=inst,
            aggregate=aggregate_pair(
                student_id, inst.installment_id, inst.amount, student_events
            ),
        )
        for inst in sorted(installments, key=lambda i: i.installment_no)
    )

    return StudentAggregate(
        student_id=student_id,
        total_amount=sum((line.installment.amount for line in lines), ZERO),
        total_paid=sum((line.aggregate.net_paid for line in lines), ZERO),
        total_returned=sum((line.aggregate.returned for line in lines), ZERO),
        total_discount=sum((line.aggregate.discount for line in lines), ZERO),
        total_remaining=sum((line.aggregate.remaining for line in lines), ZERO),
        installments=lines,
    )


def replay_pair_statuses(
    installment_amount: Decimal,
    events: Sequence[PaymentEventInfo],
) -> list[tuple[PaymentEventInfo, PaymentStatus]]:
    """
    Status after each event, replaying one pair's events in pair_seq order.
    """
    paid = returned = discount = ZERO
    replayed: list[tuple[PaymentEventInfo, PaymentStatus]] = []
    for event in sorted(events, key=lambda e: e.pair_seq):
        if event.kind == PaymentKind.RECEIVE:
            paid += event.amount
        elif event.kind == PaymentKind.RETURN:
            returned += event.amount
        else:
            discount += event.amount
        net_paid = paid - returned
        status = derive_status(
            net_paid, discount, remaining_due(installment_amount, net_paid, discount)
        )
        replayed.append((event, status))
    return replayed


def find_status_drift(
    installment_amount: Decimal,
    events: Sequence[PaymentEventInfo],
) -> list[StatusDrift]:
    """
    Events whose stored status snapshot differs from the replayed status.

    Drift is expected after an installment amount is edited; anything else
    points at a bug or a manual database change.
    """
    return [
        StatusDrift(
            payment_id=event.payment_id,
            pair_seq=event.pair_seq,
            stored_status=event.status,
            replayed_status=status,
        )
        for event, status in replay_pair_statuses(installment_amount, events)
        if event.status != status
    ]
