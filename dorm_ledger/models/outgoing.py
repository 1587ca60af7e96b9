"""
Module: dorm_ledger.models.outgoing
Responsibility: ORM persistence for outgoing (hand-over) payment requests --
    cash collected at the dormitory that is handed to the central office.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.

Invariants enforced:
    - status is one of PENDING, APPROVED, REJECTED (check constraint);
      transitions are enforced by OutgoingPaymentService.
    - amount_to_hand_over > 0.
    - remaining_float = total_collected - amount_to_hand_over, both captured
      at submission time.

Audit relevance:
    total_collected is a snapshot of the available balance when the request
    was submitted, kept for review even though the live balance moves on.
    Only APPROVED requests reduce the available balance.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dorm_ledger.db.base import Base, UTCDateTime, UUIDString
from dorm_ledger.domain.dtos import OutgoingStatus, PaymentMethod


class OutgoingPaymentRequest(Base):
    """A request to hand collected cash over, pending admin approval."""

    __tablename__ = "outgoing_payment_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_outgoing_valid_status",
        ),
        CheckConstraint(
            "amount_to_hand_over > 0", name="ck_outgoing_amount_positive"
        ),
        Index("idx_outgoing_status", "status"),
        Index("idx_outgoing_submitted_at", "submitted_at"),
    )

    total_collected: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    amount_to_hand_over: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    remaining_float: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[OutgoingStatus] = mapped_column(
        String(20),
        default=OutgoingStatus.PENDING.value,
        nullable=False,
    )
    rejection_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitted_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    decided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<OutgoingPaymentRequest {self.amount_to_hand_over} status={self.status}>"

    @property
    def is_pending(self) -> bool:
        return self.status == OutgoingStatus.PENDING.value
