"""
Module: dorm_ledger.models.audit_log
Responsibility: ORM persistence for the default database audit sink.
Architecture position: Kernel > Models.  May import from db/ only.

Audit relevance:
    Written only after the business transaction has committed, in a
    transaction of its own.  A missing row means the sink failed (logged as
    audit_sink_failed); it never means the business change was rolled back.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dorm_ledger.db.base import Base, UTCDateTime, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    PAYMENT_CREATED = "PAYMENT_CREATED"

    OUTGOING_CREATED = "OUTGOING_CREATED"
    OUTGOING_APPROVED = "OUTGOING_APPROVED"
    OUTGOING_REJECTED = "OUTGOING_REJECTED"
    OUTGOING_DELETED = "OUTGOING_DELETED"

    INSURANCE_CREATED = "INSURANCE_CREATED"
    INSURANCE_RETURNED = "INSURANCE_RETURNED"

    EXPENSE_CREATED = "EXPENSE_CREATED"
    EXPENSE_UPDATED = "EXPENSE_UPDATED"
    EXPENSE_DELETED = "EXPENSE_DELETED"

    INSTALLMENT_CREATED = "INSTALLMENT_CREATED"
    INSTALLMENT_UPDATED = "INSTALLMENT_UPDATED"


class LogSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuditLogEntry(Base):
    """One audit record."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_occurred_at", "occurred_at"),
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    old_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    severity: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LogSeverity.INFO.value
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry {self.action} {self.entity_type}:{self.entity_id}>"
