"""Domain models for the dorm ledger."""

from dorm_ledger.models.audit_log import AuditAction, AuditLogEntry, LogSeverity
from dorm_ledger.models.expense import Expense
from dorm_ledger.models.installment import Installment
from dorm_ledger.models.insurance import InsuranceDeposit
from dorm_ledger.models.outgoing import OutgoingPaymentRequest
from dorm_ledger.models.payment import PaymentEvent
from dorm_ledger.models.student import Department, Room, Student

__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "Department",
    "Expense",
    "Installment",
    "InsuranceDeposit",
    "LogSeverity",
    "OutgoingPaymentRequest",
    "PaymentEvent",
    "Room",
    "Student",
]
