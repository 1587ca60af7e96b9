"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy sessions)
- Database
- Time/clock (except the injectable Clock itself)
- I/O

All domain objects are immutable and deterministic.
"""

from dorm_ledger.domain.admission import (
    AdmissionDecision,
    PaymentRequest,
    evaluate_admission,
    validate_payment_request,
)
from dorm_ledger.domain.aggregation import (
    InstallmentBalance,
    PairAggregate,
    StatusDrift,
    StudentAggregate,
    aggregate_pair,
    aggregate_student,
    derive_status,
    find_status_drift,
    replay_pair_statuses,
)
from dorm_ledger.domain.balance import CashFlowTotals, compute_available_balance
from dorm_ledger.domain.clock import Clock, DeterministicClock, SystemClock
from dorm_ledger.domain.dtos import (
    ExpenseInfo,
    InstallmentInfo,
    InsuranceDepositInfo,
    InsuranceStatus,
    OutgoingRequestInfo,
    OutgoingStatus,
    PaymentEventInfo,
    PaymentKind,
    PaymentMethod,
    PaymentStatus,
    StudentInfo,
)
from dorm_ledger.domain.permissions import Actor, Permission, Role, require_permission
from dorm_ledger.domain.workflow import OUTGOING_PAYMENT_WORKFLOW, Transition, Workflow

__all__ = [
    "Actor",
    "AdmissionDecision",
    "CashFlowTotals",
    "Clock",
    "DeterministicClock",
    "ExpenseInfo",
    "InstallmentBalance",
    "InstallmentInfo",
    "InsuranceDepositInfo",
    "InsuranceStatus",
    "OUTGOING_PAYMENT_WORKFLOW",
    "OutgoingRequestInfo",
    "OutgoingStatus",
    "PairAggregate",
    "PaymentEventInfo",
    "PaymentKind",
    "PaymentMethod",
    "PaymentRequest",
    "PaymentStatus",
    "Permission",
    "Role",
    "StatusDrift",
    "StudentAggregate",
    "StudentInfo",
    "SystemClock",
    "Transition",
    "Workflow",
    "aggregate_pair",
    "aggregate_student",
    "compute_available_balance",
    "derive_status",
    "evaluate_admission",
    "find_status_drift",
    "replay_pair_statuses",
    "require_permission",
    "validate_payment_request",
]
