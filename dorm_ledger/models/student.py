"""
Module: dorm_ledger.models.student
Responsibility: ORM persistence for students and the dormitory reference data
    they point at (departments, rooms).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - student_code is unique.
    - A student's id never changes; is_active is the only lifecycle flag.

Concurrency:
    The student row is the lock target for payment admission: every
    submit_payment for a student runs SELECT ... FOR UPDATE on this row, so
    admissions for one student are linearized by the database.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dorm_ledger.db.base import TrackedBase, UUIDString


class Department(TrackedBase):
    """Academic department a student belongs to."""

    __tablename__ = "departments"

    __table_args__ = (
        UniqueConstraint("code", name="uq_department_code"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    def __repr__(self) -> str:
        return f"<Department {self.code}>"


class Room(TrackedBase):
    """A bed-space container inside a dormitory building."""

    __tablename__ = "rooms"

    __table_args__ = (
        UniqueConstraint("dormitory", "room_number", name="uq_room_number"),
    )

    dormitory: Mapped[str] = mapped_column(String(100), nullable=False)
    room_number: Mapped[str] = mapped_column(String(20), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=2)

    def __repr__(self) -> str:
        return f"<Room {self.dormitory}/{self.room_number}>"


class Student(TrackedBase):
    """
    A dormitory resident who owes installments.

    Contract:
        entrance_year is the cohort label that selects the installment
        catalog the student is billed against.  room_id is optional; an
        unhoused student can still pay installments but cannot open an
        insurance deposit.
    """

    __tablename__ = "students"

    __table_args__ = (
        UniqueConstraint("student_code", name="uq_student_code"),
        Index("idx_student_cohort", "entrance_year"),
    )

    student_code: Mapped[str] = mapped_column(String(50), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(254), nullable=True)
    entrance_year: Mapped[str] = mapped_column(String(20), nullable=False)

    department_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("departments.id"),
        nullable=True,
    )
    room_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("rooms.id"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    department: Mapped[Department | None] = relationship()
    room: Mapped[Room | None] = relationship()

    def __repr__(self) -> str:
        return f"<Student {self.student_code}: {self.full_name}>"
