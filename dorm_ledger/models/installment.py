"""
Module: dorm_ledger.models.installment
Responsibility: ORM persistence for the installment catalog -- the amounts a
    cohort (entrance year) owes, one row per installment number.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (entrance_year, installment_no) is unique.
    - amount >= 0, installment_no >= 1, start_date <= end_date (check
      constraints; the catalog service validates first).

Non-goals:
    - Amounts are not locked once payments exist.  Changing the amount of a
      paid installment is allowed and logged; derived status follows the
      new amount.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from dorm_ledger.db.base import TrackedBase


class Installment(TrackedBase):
    """One installment obligation of a cohort."""

    __tablename__ = "installments"

    __table_args__ = (
        UniqueConstraint(
            "entrance_year", "installment_no", name="uq_installment_cohort_no"
        ),
        CheckConstraint("amount >= 0", name="ck_installment_amount_non_negative"),
        CheckConstraint("installment_no >= 1", name="ck_installment_no_positive"),
        CheckConstraint("start_date <= end_date", name="ck_installment_dates"),
        Index("idx_installment_dates", "start_date", "end_date"),
    )

    entrance_year: Mapped[str] = mapped_column(String(20), nullable=False)
    installment_no: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<Installment {self.entrance_year}#{self.installment_no}: {self.amount}>"

    def covers(self, on_date: date) -> bool:
        """True if on_date falls inside the installment window (inclusive)."""
        return self.start_date <= on_date <= self.end_date
