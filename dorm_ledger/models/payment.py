"""
Module: dorm_ledger.models.payment
Responsibility: ORM persistence for payment events -- the append-only history
    every paid/owed figure is derived from.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.

Invariants enforced:
    - Append-only: events are never updated or deleted.  Corrections are new
      RETURN or DISCOUNT events.
    - pair_seq is unique per (student, installment).  Admission assigns
      previous count + 1 under the student lock; the constraint turns a lost
      update into an IntegrityError instead of a silent over-payment.
    - idempotency_key is unique when present.
    - amount >= 0; discount_percent in (0, 100] when present.

Failure modes:
    - IntegrityError on pair_seq collision (retried by the admission service).
    - IntegrityError on idempotency_key collision.

Audit relevance:
    ``status`` is a snapshot of the derived status at admission time.  It is
    a cache; the aggregator's derived status is authoritative and
    LedgerSelector.status_drift() reports any divergence.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from dorm_ledger.db.base import Base, UTCDateTime, UUIDString
from dorm_ledger.domain.dtos import PaymentKind, PaymentMethod, PaymentStatus


class PaymentEvent(Base):
    """
    One admitted payment event for a (student, installment) pair.

    Contract:
        Only PaymentAdmissionService inserts rows.  For DISCOUNT events,
        ``amount`` holds the computed discount amount and ``receipt_url``
        is required.
    """

    __tablename__ = "payment_events"

    __table_args__ = (
        UniqueConstraint(
            "student_id", "installment_id", "pair_seq",
            name="uq_payment_events_pair_seq",
        ),
        UniqueConstraint("idempotency_key", name="uq_payment_events_idempotency_key"),
        CheckConstraint("amount >= 0", name="ck_payment_events_amount_non_negative"),
        CheckConstraint(
            "kind IN ('RECEIVE', 'RETURN', 'DISCOUNT')",
            name="ck_payment_events_valid_kind",
        ),
        CheckConstraint(
            "status IN ('PAID', 'PARTIALLY_PAID', 'UNPAID')",
            name="ck_payment_events_valid_status",
        ),
        CheckConstraint(
            "discount_percent IS NULL OR (discount_percent > 0 AND discount_percent <= 100)",
            name="ck_payment_events_discount_percent_range",
        ),
        Index("idx_payment_events_pair", "student_id", "installment_id"),
        Index("idx_payment_events_installment", "installment_id"),
        Index("idx_payment_events_paid_at", "paid_at"),
    )

    student_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("students.id"),
        nullable=False,
    )
    installment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("installments.id"),
        nullable=False,
    )

    kind: Mapped[PaymentKind] = mapped_column(String(20), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    discount_percent: Mapped[Decimal | None] = mapped_column(
        Numeric(7, 4), nullable=True,
    )
    receipt_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    # Derived status snapshot at admission time
    status: Mapped[PaymentStatus] = mapped_column(String(20), nullable=False)

    paid_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # 1-based admission order within the pair
    pair_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<PaymentEvent {self.kind} {self.amount} "
            f"student={self.student_id} installment={self.installment_id} "
            f"seq={self.pair_seq}>"
        )
