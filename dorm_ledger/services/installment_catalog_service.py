"""
InstallmentCatalogService -- maintenance of the installment catalog.

Responsibility:
    Creates and updates the installments a cohort owes.  Reads go through
    CatalogSelector.

Invariants enforced:
    - (entrance_year, installment_no) is unique: DuplicateInstallmentError.
    - installment_no >= 1, amount >= 0, start_date <= end_date, non-blank
      title and entrance_year: ValidationFailedError.

Non-goals:
    - Amounts of installments that already have payments are not frozen.
      The change is applied and logged as a warning; derived status follows
      the new amount and stored status snapshots may drift (see
      LedgerSelector.status_drift).
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dorm_ledger.db.locking import is_unique_violation
from dorm_ledger.domain.dtos import InstallmentInfo
from dorm_ledger.domain.money import parse_money
from dorm_ledger.domain.permissions import Actor, Permission, require_permission
from dorm_ledger.exceptions import (
    DuplicateInstallmentError,
    InstallmentNotFoundError,
    ValidationFailedError,
)
from dorm_ledger.logging_config import LogContext, get_logger
from dorm_ledger.models.audit_log import AuditAction
from dorm_ledger.models.installment import Installment
from dorm_ledger.models.payment import PaymentEvent
from dorm_ledger.services.base import BaseService

logger = get_logger("services.installment_catalog")

_ENTITY = "Installment"

_DUPLICATE_MARKERS = ("uq_installment_cohort_no", "installments.entrance_year")


def _require_text(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationFailedError(field, "is required")
    return str(value).strip()


def _check_installment_no(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationFailedError("installment_no", f"must be an integer, got {value!r}")
    if value < 1:
        raise ValidationFailedError("installment_no", f"must be >= 1, got {value}")
    return value


def _check_window(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationFailedError(
            "start_date", f"{start_date} is after end_date {end_date}"
        )


class InstallmentCatalogService(BaseService):
    """Creates and updates catalog installments."""

    def create_installment(
        self,
        actor: Actor,
        entrance_year: str,
        installment_no: int,
        title: str,
        amount: object,
        start_date: date,
        end_date: date,
    ) -> InstallmentInfo:
        require_permission(actor, Permission.INSTALLMENTS_MANAGE)
        cohort = _require_text(entrance_year, "entrance_year")
        number = _check_installment_no(installment_no)
        name = _require_text(title, "title")
        value = parse_money(amount, allow_zero=True)
        _check_window(start_date, end_date)

        def work(session: Session) -> InstallmentInfo:
            existing = session.scalars(
                select(Installment.id).where(
                    Installment.entrance_year == cohort,
                    Installment.installment_no == number,
                )
            ).first()
            if existing is not None:
                raise DuplicateInstallmentError(cohort, number)
            row = Installment(
                entrance_year=cohort,
                installment_no=number,
                title=name,
                amount=value,
                start_date=start_date,
                end_date=end_date,
                created_by_id=actor.actor_id,
            )
            session.add(row)
            session.flush()
            return InstallmentInfo.from_model(row)

        with LogContext.bind(actor_id=actor.actor_id, operation="create_installment"):
            try:
                info = self._runner.run("create_installment", work)
            except IntegrityError as exc:
                if is_unique_violation(exc, *_DUPLICATE_MARKERS):
                    raise DuplicateInstallmentError(cohort, number) from exc
                raise
            logger.info(
                "installment_created",
                extra={
                    "installment_id": str(info.installment_id),
                    "entrance_year": info.entrance_year,
                    "installment_no": info.installment_no,
                    "amount": str(info.amount),
                },
            )

        self._side_effects.audit(
            AuditAction.INSTALLMENT_CREATED,
            _ENTITY,
            info.installment_id,
            actor.actor_id,
            new_values={
                "entrance_year": info.entrance_year,
                "installment_no": info.installment_no,
                "title": info.title,
                "amount": info.amount,
                "start_date": info.start_date,
                "end_date": info.end_date,
            },
            description=f"Installment {info.entrance_year}#{info.installment_no} created",
        )
        return info

    def update_installment(
        self,
        actor: Actor,
        installment_id: UUID,
        *,
        title: str | None = None,
        amount: object = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> InstallmentInfo:
        """
        Change title, amount or date window.  Omitted fields keep their value.

        Raises:
            InstallmentNotFoundError, ValidationFailedError
        """
        require_permission(actor, Permission.INSTALLMENTS_MANAGE)
        new_title = _require_text(title, "title") if title is not None else None
        new_amount = parse_money(amount, allow_zero=True) if amount is not None else None

        def work(session: Session) -> tuple[InstallmentInfo, InstallmentInfo, int]:
            row = session.get(
                Installment, installment_id, with_for_update=True, populate_existing=True
            )
            if row is None:
                raise InstallmentNotFoundError(str(installment_id))
            before = InstallmentInfo.from_model(row)
            _check_window(start_date or row.start_date, end_date or row.end_date)

            if new_title is not None:
                row.title = new_title
            if new_amount is not None:
                row.amount = new_amount
            if start_date is not None:
                row.start_date = start_date
            if end_date is not None:
                row.end_date = end_date
            row.updated_by_id = actor.actor_id
            session.flush()

            payment_count = session.scalar(
                select(func.count())
                .select_from(PaymentEvent)
                .where(PaymentEvent.installment_id == installment_id)
            )
            return before, InstallmentInfo.from_model(row), payment_count or 0

        with LogContext.bind(
            actor_id=actor.actor_id,
            installment_id=installment_id,
            operation="update_installment",
        ):
            before, after, payment_count = self._runner.run("update_installment", work)
            amount_changed = before.amount != after.amount
            if amount_changed and payment_count:
                logger.warning(
                    "installment_amount_changed_with_payments",
                    extra={
                        "old_amount": str(before.amount),
                        "new_amount": str(after.amount),
                        "payment_count": payment_count,
                    },
                )
            logger.info("installment_updated", extra={"amount_changed": amount_changed})

        changed = {
            field: (getattr(before, field), getattr(after, field))
            for field in ("title", "amount", "start_date", "end_date")
            if getattr(before, field) != getattr(after, field)
        }
        self._side_effects.audit(
            AuditAction.INSTALLMENT_UPDATED,
            _ENTITY,
            installment_id,
            actor.actor_id,
            old_values={k: v[0] for k, v in changed.items()},
            new_values={k: v[1] for k, v in changed.items()},
            description=f"Installment {after.entrance_year}#{after.installment_no} updated",
        )
        return after
