"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the enums and immutable records that flow between the services,
    the selectors and the pure domain functions: payment events,
    installments, outgoing hand-over requests, insurance deposits, expenses.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers (never from domain logic).

Invariants enforced:
    - Domain logic accepts/returns DTOs, never ORM entities.
    - Every monetary field is a Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from dorm_ledger.models.expense import Expense as ExpenseModel
    from dorm_ledger.models.installment import Installment as InstallmentModel
    from dorm_ledger.models.insurance import InsuranceDeposit as InsuranceDepositModel
    from dorm_ledger.models.outgoing import OutgoingPaymentRequest as OutgoingModel
    from dorm_ledger.models.payment import PaymentEvent as PaymentEventModel
    from dorm_ledger.models.student import Student as StudentModel


class PaymentKind(str, Enum):
    """
    Kind of a payment event.

    RECEIVE adds to net paid, RETURN subtracts from it, DISCOUNT reduces what
    is owed without moving cash toward the installment.
    """

    RECEIVE = "RECEIVE"
    RETURN = "RETURN"
    DISCOUNT = "DISCOUNT"


class PaymentMethod(str, Enum):
    """Channel the money moved through. Informational only."""

    CASH = "CASH"
    FIB = "FIB"
    FASTPAY = "FASTPAY"


class PaymentStatus(str, Enum):
    """
    Paid state of a (student, installment) pair.

    NOT_PAID is an alias of UNPAID; both names resolve to the same member.
    """

    PAID = "PAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    UNPAID = "UNPAID"
    NOT_PAID = "UNPAID"


class OutgoingStatus(str, Enum):
    """Lifecycle status of a hand-over request."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class InsuranceStatus(str, Enum):
    """Lifecycle status of an insurance deposit.

    ACTIVE -> RETURNED (refund > 0) or ACTIVE -> FORFEITED (refund == 0).
    """

    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    FORFEITED = "FORFEITED"


@dataclass(frozen=True)
class InstallmentInfo:
    """Immutable view of a catalog installment."""

    installment_id: UUID
    entrance_year: str
    installment_no: int
    title: str
    amount: Decimal
    start_date: date
    end_date: date

    @classmethod
    def from_model(cls, model: InstallmentModel) -> InstallmentInfo:
        return cls(
            installment_id=model.id,
            entrance_year=model.entrance_year,
            installment_no=model.installment_no,
            title=model.title,
            amount=model.amount,
            start_date=model.start_date,
            end_date=model.end_date,
        )


@dataclass(frozen=True)
class PaymentEventInfo:
    """
    Immutable view of one admitted payment event.

    ``status`` is the snapshot stored at admission time; it is a cache of
    the derived status and is never authoritative.
    """

    payment_id: UUID
    student_id: UUID
    installment_id: UUID
    kind: PaymentKind
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    paid_at: datetime
    pair_seq: int
    discount_percent: Decimal | None = None
    receipt_url: str | None = None
    idempotency_key: str | None = None
    created_by_id: UUID | None = None

    @classmethod
    def from_model(cls, model: PaymentEventModel) -> PaymentEventInfo:
        return cls(
            payment_id=model.id,
            student_id=model.student_id,
            installment_id=model.installment_id,
            kind=PaymentKind(model.kind),
            amount=model.amount,
            method=PaymentMethod(model.method),
            status=PaymentStatus(model.status),
            paid_at=model.paid_at,
            pair_seq=model.pair_seq,
            discount_percent=model.discount_percent,
            receipt_url=model.receipt_url,
            idempotency_key=model.idempotency_key,
            created_by_id=model.created_by_id,
        )


@dataclass(frozen=True)
class OutgoingRequestInfo:
    """Immutable view of a hand-over request."""

    request_id: UUID
    total_collected: Decimal
    amount_to_hand_over: Decimal
    remaining_float: Decimal
    method: PaymentMethod
    status: OutgoingStatus
    submitted_by_id: UUID
    submitted_at: datetime
    note: str | None = None
    period_start: date | None = None
    period_end: date | None = None
    rejection_note: str | None = None
    decided_by_id: UUID | None = None
    decided_at: datetime | None = None

    @classmethod
    def from_model(cls, model: OutgoingModel) -> OutgoingRequestInfo:
        return cls(
            request_id=model.id,
            total_collected=model.total_collected,
            amount_to_hand_over=model.amount_to_hand_over,
            remaining_float=model.remaining_float,
            method=PaymentMethod(model.method),
            status=OutgoingStatus(model.status),
            submitted_by_id=model.submitted_by_id,
            submitted_at=model.submitted_at,
            note=model.note,
            period_start=model.period_start,
            period_end=model.period_end,
            rejection_note=model.rejection_note,
            decided_by_id=model.decided_by_id,
            decided_at=model.decided_at,
        )


@dataclass(frozen=True)
class InsuranceDepositInfo:
    """Immutable view of an insurance deposit."""

    deposit_id: UUID
    student_id: UUID
    amount_paid: Decimal
    method: PaymentMethod
    status: InsuranceStatus
    paid_at: datetime
    amount_returned: Decimal | None = None
    return_note: str | None = None
    returned_by_id: UUID | None = None
    returned_at: datetime | None = None

    @classmethod
    def from_model(cls, model: InsuranceDepositModel) -> InsuranceDepositInfo:
        return cls(
            deposit_id=model.id,
            student_id=model.student_id,
            amount_paid=model.amount_paid,
            method=PaymentMethod(model.method),
            status=InsuranceStatus(model.status),
            paid_at=model.paid_at,
            amount_returned=model.amount_returned,
            return_note=model.return_note,
            returned_by_id=model.returned_by_id,
            returned_at=model.returned_at,
        )


@dataclass(frozen=True)
class ExpenseInfo:
    """Immutable view of a recorded expense."""

    expense_id: UUID
    title: str
    amount: Decimal
    category: str
    spent_at: date
    description: str | None = None

    @classmethod
    def from_model(cls, model: ExpenseModel) -> ExpenseInfo:
        return cls(
            expense_id=model.id,
            title=model.title,
            amount=model.amount,
            category=model.category,
            spent_at=model.spent_at,
            description=model.description,
        )


@dataclass(frozen=True)
class StudentInfo:
    """Immutable view of a student."""

    student_id: UUID
    student_code: str
    full_name: str
    entrance_year: str
    email: str | None = None
    room_id: UUID | None = None
    is_active: bool = True

    @classmethod
    def from_model(cls, model: StudentModel) -> StudentInfo:
        return cls(
            student_id=model.id,
            student_code=model.student_code,
            full_name=model.full_name,
            entrance_year=model.entrance_year,
            email=model.email,
            room_id=model.room_id,
            is_active=model.is_active,
        )
