"""
Post-commit side effects: audit records and notifications.

Responsibility:
    Delivers audit records and user notifications after a business
    transaction has committed.  Both are best-effort: a failing sink is
    logged (audit_sink_failed, notification_failed) and swallowed, never
    retried synchronously, and never undoes the committed change.

Architecture position:
    Kernel > Services.  Sinks are collaborator interfaces; the ledger ships
    logging implementations and a database audit sink.

Guarantees:
    - SideEffectDispatcher never raises from audit() or notify().
    - With an executor, notify() returns immediately; delivery runs on the
      executor's threads.
"""

from __future__ import annotations

from collections.abc import Mapping
from concurrent.futures import Executor, Future
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from dorm_ledger.db.engine import session_scope
from dorm_ledger.domain.clock import Clock, SystemClock
from dorm_ledger.logging_config import get_logger
from dorm_ledger.models.audit_log import AuditAction, AuditLogEntry, LogSeverity

logger = get_logger("services.side_effects")


class AuditSink(Protocol):
    def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        actor_id: UUID | None,
        old_values: Mapping[str, Any] | None = None,
        new_values: Mapping[str, Any] | None = None,
        severity: LogSeverity = LogSeverity.INFO,
        description: str | None = None,
    ) -> None: ...


class NotificationSink(Protocol):
    def notify(self, recipient_address: str, template_data: Mapping[str, Any]) -> None: ...


def to_jsonable(values: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Convert Decimal, UUID, dates and enums to JSON-safe strings."""
    if values is None:
        return None
    out: dict[str, Any] = {}
    for key, val in values.items():
        if isinstance(val, Enum):
            out[key] = val.value
        elif isinstance(val, (Decimal, UUID)):
            out[key] = str(val)
        elif isinstance(val, (datetime, date)):
            out[key] = val.isoformat()
        else:
            out[key] = val
    return out


class LoggingAuditSink:
    """Writes audit records to the structured log."""

    def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        actor_id: UUID | None,
        old_values: Mapping[str, Any] | None = None,
        new_values: Mapping[str, Any] | None = None,
        severity: LogSeverity = LogSeverity.INFO,
        description: str | None = None,
    ) -> None:
        logger.info(
            "audit_recorded",
            extra={
                "audit_action": action.value,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "audit_actor_id": str(actor_id) if actor_id else None,
                "old_values": to_jsonable(old_values),
                "new_values": to_jsonable(new_values),
                "severity": severity.value,
                "description": description,
            },
        )


class DatabaseAuditSink:
    """Persists audit records to ``audit_logs`` in a transaction of their own."""

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock | None = None):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        actor_id: UUID | None,
        old_values: Mapping[str, Any] | None = None,
        new_values: Mapping[str, Any] | None = None,
        severity: LogSeverity = LogSeverity.INFO,
        description: str | None = None,
    ) -> None:
        with session_scope(self._session_factory) as session:
            session.add(
                AuditLogEntry(
                    action=action.value,
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    actor_id=actor_id,
                    old_values=to_jsonable(old_values),
                    new_values=to_jsonable(new_values),
                    severity=severity.value,
                    description=description,
                    occurred_at=self._clock.now_utc(),
                )
            )


class LoggingNotificationSink:
    """Logs notifications instead of sending them."""

    def notify(self, recipient_address: str, template_data: Mapping[str, Any]) -> None:
        logger.info(
            "notification_sent",
            extra={
                "recipient": recipient_address,
                "template": template_data.get("template"),
            },
        )


class SideEffectDispatcher:
    """
    Fan-out point for post-commit side effects.

    Contract:
        Call only after the business transaction committed.  Failures are
        logged with the sink's exception and swallowed.
    """

    def __init__(
        self,
        audit_sink: AuditSink | None = None,
        notifier: NotificationSink | None = None,
        executor: Executor | None = None,
    ):
        self._audit_sink = audit_sink or LoggingAuditSink()
        self._notifier = notifier or LoggingNotificationSink()
        self._executor = executor

    def audit(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: Any,
        actor_id: UUID | None,
        *,
        old_values: Mapping[str, Any] | None = None,
        new_values: Mapping[str, Any] | None = None,
        severity: LogSeverity = LogSeverity.INFO,
        description: str | None = None,
    ) -> bool:
        """Record an audit entry.  Returns False if the sink failed."""
        try:
            self._audit_sink.record(
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                actor_id=actor_id,
                old_values=old_values,
                new_values=new_values,
                severity=severity,
                description=description,
            )
        except Exception:
            logger.warning(
                "audit_sink_failed",
                extra={
                    "audit_action": action.value,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                },
                exc_info=True,
            )
            return False
        return True

    def notify(
        self,
        recipient_address: str | None,
        template_data: Mapping[str, Any],
    ) -> Future | None:
        """
        Deliver a notification, on the executor when one is configured.

        A missing recipient address is logged and skipped.
        """
        if not recipient_address:
            logger.info(
                "notification_skipped",
                extra={"reason": "no_recipient", "template": template_data.get("template")},
            )
            return None
        if self._executor is not None:
            return self._executor.submit(self._deliver, recipient_address, dict(template_data))
        self._deliver(recipient_address, dict(template_data))
        return None

    def _deliver(self, recipient_address: str, template_data: dict[str, Any]) -> bool:
        try:
            self._notifier.notify(recipient_address, template_data)
        except Exception:
            logger.warning(
                "notification_failed",
                extra={
                    "recipient": recipient_address,
                    "template": template_data.get("template"),
                },
                exc_info=True,
            )
            return False
        return True
