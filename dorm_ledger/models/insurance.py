"""
Module: dorm_ledger.models.insurance
Responsibility: ORM persistence for student insurance (damage) deposits.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.

Invariants enforced:
    - At most one ACTIVE deposit per student.  InsuranceService checks it
      under the student row lock; the partial unique index is the backstop.
    - amount_returned <= amount_paid once returned.

Cash effect:
    amount_paid counts toward the available balance whatever the status;
    amount_returned is subtracted only for RETURNED deposits.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from dorm_ledger.db.base import TrackedBase, UTCDateTime, UUIDString
from dorm_ledger.domain.dtos import InsuranceStatus, PaymentMethod


class InsuranceDeposit(TrackedBase):
    """A refundable deposit taken when a student moves into a room."""

    __tablename__ = "insurance_deposits"

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'RETURNED', 'FORFEITED')",
            name="ck_insurance_valid_status",
        ),
        CheckConstraint("amount_paid > 0", name="ck_insurance_amount_positive"),
        CheckConstraint(
            "amount_returned IS NULL OR (amount_returned >= 0 AND amount_returned <= amount_paid)",
            name="ck_insurance_refund_range",
        ),
        Index(
            "ix_insurance_one_active_per_student",
            "student_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
        Index("idx_insurance_status", "status"),
    )

    student_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("students.id"),
        nullable=False,
    )
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)
    status: Mapped[InsuranceStatus] = mapped_column(
        String(20),
        default=InsuranceStatus.ACTIVE.value,
        nullable=False,
    )
    paid_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    amount_returned: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    return_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    returned_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    returned_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<InsuranceDeposit {self.amount_paid} status={self.status}>"
