"""Write services for the dorm ledger (imperative shell)."""

from dorm_ledger.services.expense_service import ExpenseService
from dorm_ledger.services.installment_catalog_service import InstallmentCatalogService
from dorm_ledger.services.insurance_service import InsuranceService
from dorm_ledger.services.ledger_api import DormLedger, grants_from_config
from dorm_ledger.services.outgoing_payment_service import OutgoingPaymentService
from dorm_ledger.services.payment_admission import (
    PaymentAdmissionService,
    PaymentRecord,
    build_payment_confirmation,
)
from dorm_ledger.services.side_effects import (
    AuditSink,
    DatabaseAuditSink,
    LoggingAuditSink,
    LoggingNotificationSink,
    NotificationSink,
    SideEffectDispatcher,
)
from dorm_ledger.services.transaction import TransactionRunner

__all__ = [
    "AuditSink",
    "DatabaseAuditSink",
    "DormLedger",
    "ExpenseService",
    "InstallmentCatalogService",
    "InsuranceService",
    "LoggingAuditSink",
    "LoggingNotificationSink",
    "NotificationSink",
    "OutgoingPaymentService",
    "PaymentAdmissionService",
    "PaymentRecord",
    "SideEffectDispatcher",
    "TransactionRunner",
    "build_payment_confirmation",
    "grants_from_config",
]
