"""
Module: dorm_ledger.selectors.catalog_selector
Responsibility: Read-only access to the installment catalog and to students.
Architecture position: Kernel > Selectors.

The catalog is reference data: read without locks.  Admission reads the
installment amount inside its own transaction, after the student lock.
"""

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import or_, select

from dorm_ledger.domain.dtos import InstallmentInfo, StudentInfo
from dorm_ledger.exceptions import InstallmentNotFoundError, StudentNotFoundError
from dorm_ledger.models.installment import Installment
from dorm_ledger.models.student import Department, Student
from dorm_ledger.selectors.base import BaseSelector


class CatalogSelector(BaseSelector):
    """Installments and students."""

    def get_installment(self, installment_id: UUID) -> InstallmentInfo:
        """
        Raises:
            InstallmentNotFoundError: If no installment has this id.
        """
        installment = self.session.get(Installment, installment_id)
        if installment is None:
            raise InstallmentNotFoundError(str(installment_id))
        return InstallmentInfo.from_model(installment)

    def installments_for_cohort(self, entrance_year: str) -> list[InstallmentInfo]:
        """All installments of a cohort, ordered by installment_no."""
        rows = self.session.scalars(
            select(Installment)
            .where(Installment.entrance_year == entrance_year)
            .order_by(Installment.installment_no)
        ).all()
        return [InstallmentInfo.from_model(r) for r in rows]

    def active_installments(
        self,
        on_date: date,
        entrance_year: str | None = None,
    ) -> list[InstallmentInfo]:
        """Installments whose [start_date, end_date] window contains on_date."""
        stmt = select(Installment).where(
            Installment.start_date <= on_date,
            Installment.end_date >= on_date,
        )
        if entrance_year is not None:
            stmt = stmt.where(Installment.entrance_year == entrance_year)
        rows = self.session.scalars(
            stmt.order_by(Installment.entrance_year, Installment.installment_no)
        ).all()
        return [InstallmentInfo.from_model(r) for r in rows]

    def get_student(self, student_id: UUID) -> StudentInfo:
        """
        Raises:
            StudentNotFoundError: If no student has this id.
        """
        student = self.session.get(Student, student_id)
        if student is None:
            raise StudentNotFoundError(str(student_id))
        return StudentInfo.from_model(student)

    def find_students(
        self,
        entrance_years: Iterable[str] | None = None,
        department: str | None = None,
        name_contains: str | None = None,
        code_contains: str | None = None,
        active_only: bool = True,
    ) -> list[StudentInfo]:
        """
        Students ordered by name then code.

        ``department`` matches a department name or code exactly; name and
        code filters are case-insensitive substring matches.
        """
        stmt = select(Student)
        if entrance_years is not None:
            stmt = stmt.where(Student.entrance_year.in_(list(entrance_years)))
        if department:
            stmt = stmt.join(Department, Student.department_id == Department.id).where(
                or_(Department.name == department, Department.code == department)
            )
        if name_contains:
            stmt = stmt.where(Student.full_name.icontains(name_contains, autoescape=True))
        if code_contains:
            stmt = stmt.where(Student.student_code.icontains(code_contains, autoescape=True))
        if active_only:
            stmt = stmt.where(Student.is_active.is_(True))
        rows = self.session.scalars(
            stmt.order_by(Student.full_name, Student.student_code)
        ).all()
        return [StudentInfo.from_model(r) for r in rows]
