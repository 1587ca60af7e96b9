"""
ExpenseService -- cash expenses paid out of the dormitory box.

Responsibility:
    Records, edits and deletes expenses.  Every recorded expense reduces
    the available balance; editing its amount moves the balance by the
    difference and deleting one restores it.

Invariants enforced:
    - amount > 0 with at most two decimal places.
    - Expenses are never gated by the balance: a bill already paid is
      recorded even if the box goes negative.
    - Every expense write holds the cash ledger lock, the same lock
      outgoing approvals check the balance under.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from dorm_ledger.db.locking import lock_cash_ledger
from dorm_ledger.domain.dtos import ExpenseInfo
from dorm_ledger.domain.money import parse_money
from dorm_ledger.domain.permissions import Actor, Permission, require_permission
from dorm_ledger.exceptions import (
    ExpenseNotFoundError,
    ValidationFailedError,
)
from dorm_ledger.logging_config import LogContext, get_logger
from dorm_ledger.models.audit_log import AuditAction, LogSeverity
from dorm_ledger.models.expense import Expense
from dorm_ledger.services.base import BaseService

logger = get_logger("services.expense")

_ENTITY = "Expense"

DEFAULT_CATEGORY = "GENERAL"


class ExpenseService(BaseService):
    """Records and deletes expenses."""

    def record_expense(
        self,
        actor: Actor,
        title: str,
        amount: object,
        category: str | None = None,
        spent_at: date | None = None,
        description: str | None = None,
    ) -> ExpenseInfo:
        """
        Record an expense dated ``spent_at`` (today by default).

        Raises:
            ValidationFailedError: blank title or bad amount.
        """
        require_permission(actor, Permission.EXPENSES_CREATE)
        if not title or not title.strip():
            raise ValidationFailedError("title", "is required")
        value = parse_money(amount)
        category = (category or DEFAULT_CATEGORY).strip().upper()
        spent_on = spent_at or self._clock.today()

        def work(session: Session) -> ExpenseInfo:
            lock_cash_ledger(session)
            row = Expense(
                title=title.strip(),
                amount=value,
                category=category,
                description=description,
                spent_at=spent_on,
                created_by_id=actor.actor_id,
            )
            session.add(row)
            session.flush()
            return ExpenseInfo.from_model(row)

        with LogContext.bind(actor_id=actor.actor_id, operation="record_expense"):
            info = self._runner.run("record_expense", work)
            logger.info(
                "expense_recorded",
                extra={
                    "expense_id": str(info.expense_id),
                    "amount": str(info.amount),
                    "category": info.category,
                },
            )

        self._side_effects.audit(
            AuditAction.EXPENSE_CREATED,
            _ENTITY,
            info.expense_id,
            actor.actor_id,
            new_values={
                "title": info.title,
                "amount": info.amount,
                "category": info.category,
                "spent_at": info.spent_at,
            },
            description=f"Expense '{info.title}' of {info.amount} recorded",
        )
        return info

    def update_expense(
        self,
        actor: Actor,
        expense_id: UUID,
        *,
        title: str | None = None,
        amount: object = None,
        category: str | None = None,
        spent_at: date | None = None,
        description: str | None = None,
    ) -> ExpenseInfo:
        """
        Edit an expense.  Omitted fields keep their value.

        Raises:
            ExpenseNotFoundError, ValidationFailedError
        """
        require_permission(actor, Permission.EXPENSES_UPDATE)
        if title is not None and not title.strip():
            raise ValidationFailedError("title", "is required")
        new_amount = parse_money(amount) if amount is not None else None
        new_category = category.strip().upper() if category is not None else None
        if new_category == "":
            raise ValidationFailedError("category", "must not be blank")

        def work(session: Session) -> tuple[ExpenseInfo, ExpenseInfo]:
            lock_cash_ledger(session)
            row = session.get(
                Expense, expense_id, with_for_update=True, populate_existing=True
            )
            if row is None:
                raise ExpenseNotFoundError(str(expense_id))
            before = ExpenseInfo.from_model(row)
            if title is not None:
                row.title = title.strip()
            if new_amount is not None:
                row.amount = new_amount
            if new_category is not None:
                row.category = new_category
            if spent_at is not None:
                row.spent_at = spent_at
            if description is not None:
                row.description = description
            row.updated_by_id = actor.actor_id
            session.flush()
            return before, ExpenseInfo.from_model(row)

        with LogContext.bind(actor_id=actor.actor_id, operation="update_expense"):
            before, after = self._runner.run("update_expense", work)
            logger.info(
                "expense_updated",
                extra={
                    "expense_id": str(expense_id),
                    "old_amount": str(before.amount),
                    "new_amount": str(after.amount),
                },
            )

        changed = {
            field: (getattr(before, field), getattr(after, field))
            for field in ("title", "amount", "category", "spent_at", "description")
            if getattr(before, field) != getattr(after, field)
        }
        self._side_effects.audit(
            AuditAction.EXPENSE_UPDATED,
            _ENTITY,
            expense_id,
            actor.actor_id,
            old_values={k: v[0] for k, v in changed.items()},
            new_values={k: v[1] for k, v in changed.items()},
            description=f"Expense '{after.title}' updated",
        )
        return after

    def delete_expense(self, actor: Actor, expense_id: UUID) -> ExpenseInfo:
        """Delete an expense.  Returns it as it was."""
        require_permission(actor, Permission.EXPENSES_DELETE)

        def work(session: Session) -> ExpenseInfo:
            lock_cash_ledger(session)
            row = session.get(Expense, expense_id, with_for_update=True)
            if row is None:
                raise ExpenseNotFoundError(str(expense_id))
            info = ExpenseInfo.from_model(row)
            session.delete(row)
            session.flush()
            return info

        with LogContext.bind(actor_id=actor.actor_id, operation="delete_expense"):
            info = self._runner.run("delete_expense", work)
            logger.info(
                "expense_deleted",
                extra={"expense_id": str(expense_id), "amount": str(info.amount)},
            )

        self._side_effects.audit(
            AuditAction.EXPENSE_DELETED,
            _ENTITY,
            expense_id,
            actor.actor_id,
            old_values={"title": info.title, "amount": info.amount},
            severity=LogSeverity.WARNING,
            description=f"Expense '{info.title}' deleted",
        )
        return info

    def list_expenses(
        self,
        start: date | None = None,
        end: date | None = None,
    ) -> list[ExpenseInfo]:
        """Expenses in [start, end], newest first."""
        session = self._session_factory()
        try:
            stmt = select(Expense)
            if start is not None:
                stmt = stmt.where(Expense.spent_at >= start)
            if end is not None:
                stmt = stmt.where(Expense.spent_at <= end)
            rows = session.scalars(
                stmt.order_by(Expense.spent_at.desc(), Expense.created_at.desc())
            ).all()
            return [ExpenseInfo.from_model(r) for r in rows]
        finally:
            session.close()
