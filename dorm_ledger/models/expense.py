"""
Module: dorm_ledger.models.expense
Responsibility: ORM persistence for operating expenses paid out of the
    dormitory cash box.  Every expense reduces the available balance.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dorm_ledger.db.base import TrackedBase


class Expense(TrackedBase):
    """A cash expense."""

    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
        Index("idx_expense_spent_at", "spent_at"),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="GENERAL")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    spent_at: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<Expense {self.title}: {self.amount}>"
