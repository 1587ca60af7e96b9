"""
Tests for the cash balance and hand-over requests.

Verifies:
- Available balance over a month of mixed activity
- Requests above the balance are rejected at submission and at approval
- PENDING -> APPROVED | REJECTED | deleted, terminal states stay terminal
- Permissions per transition and audit severity
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from dorm_ledger.domain.dtos import OutgoingStatus
from dorm_ledger.exceptions import (
    InsufficientBalanceError,
    InvalidStateError,
    OutgoingRequestNotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)


@pytest.fixture
def funded(ledger, accountant, student_id, installment_id):
    """Collect 100,000 in cash."""
    ledger.submit_payment(
        accountant, student_id, installment_id, "RECEIVE", "CASH", amount="100000"
    )
    return Decimal("100000")


class TestAvailableBalance:

    def test_empty_ledger(self, ledger, engine):
        assert ledger.available_balance() == 0

    def test_month_of_activity(self, ledger, accountant, admin, make_student, make_installment,
                               deterministic_clock):
        students = [make_student() for _ in range(4)]
        first = make_installment("300000", installment_no=1)
        second = make_installment("200000", installment_no=2)

        # 1,000,000 received
        for student in students[:2]:
            ledger.submit_payment(accountant, student, first, "RECEIVE", "CASH", amount="300000")
        for student in students[:2]:
            ledger.submit_payment(accountant, student, second, "RECEIVE", "FIB", amount="200000")
        ledger.submit_payment(
            accountant, students[0], second, "RETURN", "CASH", amount="50000"
        )
        ledger.submit_payment(
            accountant, students[2], first, "DISCOUNT", "CASH",
            discount_amount="30000", receipt_url="r/discount.pdf",
        )

        ledger.open_insurance_deposit(accountant, students[2], "100000")
        deposit = ledger.open_insurance_deposit(accountant, students[3], "100000")
        ledger.return_insurance_deposit(accountant, deposit.deposit_id, "50000")

        ledger.record_expense(accountant, "Boiler repair", "100000")

        request = ledger.create_outgoing_request(accountant, "400000")
        deterministic_clock.tick()
        ledger.approve_outgoing_request(admin, request.request_id)

        totals = ledger.cash_flow_totals()
        assert totals.received == Decimal("1000000")
        assert totals.returned == Decimal("50000")
        assert totals.discounted == Decimal("30000")
        assert totals.insurance_paid == Decimal("200000")
        assert totals.insurance_returned == Decimal("50000")
        assert totals.approved_outgoing == Decimal("400000")
        assert totals.expenses == Decimal("100000")
        assert ledger.available_balance() == Decimal("570000")

        with pytest.raises(InsufficientBalanceError) as exc_info:
            ledger.create_outgoing_request(accountant, "600000")
        assert exc_info.value.available_balance == Decimal("570000")

    def test_pending_and_rejected_do_not_count(self, ledger, accountant, admin, funded):
        pending = ledger.create_outgoing_request(accountant, "10000")
        rejected = ledger.create_outgoing_request(accountant, "20000")
        ledger.reject_outgoing_request(admin, rejected.request_id, "wrong period")
        assert pending.status == OutgoingStatus.PENDING
        assert ledger.available_balance() == funded

    def test_forfeited_deposit_keeps_cash(self, ledger, accountant, student_id):
        deposit = ledger.open_insurance_deposit(accountant, student_id, "75000")
        ledger.return_insurance_deposit(accountant, deposit.deposit_id, "0")
        assert ledger.available_balance() == Decimal("75000")


class TestCreateRequest:

    def test_snapshot_of_balance(self, ledger, accountant, funded, audit_sink):
        info = ledger.create_outgoing_request(accountant, "60000", note="weekly hand-over")
        assert info.status == OutgoingStatus.PENDING
        assert info.total_collected == funded
        assert info.remaining_float == Decimal("40000")
        assert info.submitted_by_id == accountant.actor_id
        assert audit_sink.actions() == ["PAYMENT_CREATED", "OUTGOING_CREATED"]

    def test_exact_balance_allowed(self, ledger, accountant, funded):
        info = ledger.create_outgoing_request(accountant, "100000")
        assert info.remaining_float == 0

    def test_above_balance_rejected(self, ledger, accountant, funded, captured_logs):
        with pytest.raises(InsufficientBalanceError):
            ledger.create_outgoing_request(accountant, "100000.01")
        assert ledger.list_outgoing_requests() == []
        assert any(r["message"] == "outgoing_request_rejected" for r in captured_logs())

    def test_admin_cannot_create(self, ledger, admin, funded):
        with pytest.raises(UnauthorizedError):
            ledger.create_outgoing_request(admin, "100")

    def test_bad_period(self, ledger, accountant, funded):
        with pytest.raises(ValidationFailedError):
            ledger.create_outgoing_request(
                accountant, "100",
                period_start=date(2024, 10, 1), period_end=date(2024, 9, 1),
            )


class TestTransitions:

    def test_approve(self, ledger, accountant, admin, funded, deterministic_clock):
        request = ledger.create_outgoing_request(accountant, "60000")
        deterministic_clock.tick()
        approved = ledger.approve_outgoing_request(admin, request.request_id)
        assert approved.status == OutgoingStatus.APPROVED
        assert approved.decided_by_id == admin.actor_id
        assert approved.decided_at == deterministic_clock.now_utc()
        assert ledger.available_balance() == Decimal("40000")

    def test_approved_is_terminal(self, ledger, accountant, admin, super_admin, funded):
        request = ledger.create_outgoing_request(accountant, "60000")
        ledger.approve_outgoing_request(admin, request.request_id)

        with pytest.raises(InvalidStateError):
            ledger.reject_outgoing_request(admin, request.request_id, "changed my mind")
        with pytest.raises(InvalidStateError):
            ledger.delete_outgoing_request(super_admin, request.request_id)
        with pytest.raises(InvalidStateError):
            ledger.approve_outgoing_request(admin, request.request_id)

    def test_approval_rechecks_balance(self, ledger, accountant, admin, funded):
        first = ledger.create_outgoing_request(accountant, "70000")
        second = ledger.create_outgoing_request(accountant, "70000")
        ledger.approve_outgoing_request(admin, first.request_id)
        with pytest.raises(InsufficientBalanceError) as exc_info:
            ledger.approve_outgoing_request(admin, second.request_id)
        assert exc_info.value.available_balance == Decimal("30000")
        statuses = {r.request_id: r.status for r in ledger.list_outgoing_requests()}
        assert statuses[second.request_id] == OutgoingStatus.PENDING

    def test_reject_requires_note(self, ledger, accountant, admin, funded):
        request = ledger.create_outgoing_request(accountant, "100")
        with pytest.raises(ValidationFailedError):
            ledger.reject_outgoing_request(admin, request.request_id, "  ")

    def test_reject(self, ledger, accountant, admin, funded, audit_sink):
        request = ledger.create_outgoing_request(accountant, "100")
        rejected = ledger.reject_outgoing_request(admin, request.request_id, "duplicate")
        assert rejected.status == OutgoingStatus.REJECTED
        assert rejected.rejection_note == "duplicate"
        assert audit_sink.records[-1]["new_values"]["rejection_note"] == "duplicate"
        with pytest.raises(InvalidStateError):
            ledger.delete_outgoing_request(accountant, request.request_id)

    def test_accountant_cannot_approve(self, ledger, accountant, funded):
        request = ledger.create_outgoing_request(accountant, "100")
        with pytest.raises(UnauthorizedError):
            ledger.approve_outgoing_request(accountant, request.request_id)

    def test_delete_pending(self, ledger, accountant, funded, audit_sink):
        request = ledger.create_outgoing_request(accountant, "100")
        deleted = ledger.delete_outgoing_request(accountant, request.request_id)
        assert deleted.request_id == request.request_id
        assert ledger.list_outgoing_requests() == []
        assert audit_sink.records[-1]["severity"].value == "WARNING"
        with pytest.raises(OutgoingRequestNotFoundError):
            ledger.delete_outgoing_request(accountant, request.request_id)

    def test_unknown_request(self, ledger, admin, engine):
        with pytest.raises(OutgoingRequestNotFoundError):
            ledger.approve_outgoing_request(admin, uuid4())

    def test_list_by_status(self, ledger, accountant, admin, funded, deterministic_clock):
        a = ledger.create_outgoing_request(accountant, "100")
        deterministic_clock.tick()
        b = ledger.create_outgoing_request(accountant, "200")
        ledger.approve_outgoing_request(admin, a.request_id)

        assert [r.request_id for r in ledger.list_outgoing_requests()] == [
            b.request_id, a.request_id,
        ]
        assert [r.request_id for r in ledger.list_outgoing_requests("APPROVED")] == [a.request_id]
        assert [r.request_id for r in ledger.list_outgoing_requests(OutgoingStatus.PENDING)] == [
            b.request_id,
        ]
