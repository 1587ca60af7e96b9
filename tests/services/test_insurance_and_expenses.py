"""Tests for insurance deposits and expenses."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from dorm_ledger.domain.dtos import InsuranceStatus
from dorm_ledger.exceptions import (
    ActiveDepositExistsError,
    ExpenseNotFoundError,
    InsufficientBalanceError,
    InsuranceDepositNotFoundError,
    InvalidStateError,
    RefundExceedsDepositError,
    StudentNotFoundError,
    StudentNotHousedError,
    UnauthorizedError,
    ValidationFailedError,
)


class TestInsuranceDeposits:

    def test_open(self, ledger, accountant, student_id, audit_sink, deterministic_clock):
        deposit = ledger.open_insurance_deposit(accountant, student_id, "100000", "FASTPAY")
        assert deposit.status == InsuranceStatus.ACTIVE
        assert deposit.amount_paid == Decimal("100000")
        assert deposit.paid_at == deterministic_clock.now_utc()
        assert audit_sink.actions() == ["INSURANCE_CREATED"]

    def test_one_active_deposit_per_student(self, ledger, accountant, student_id):
        first = ledger.open_insurance_deposit(accountant, student_id, "100000")
        with pytest.raises(ActiveDepositExistsError) as exc_info:
            ledger.open_insurance_deposit(accountant, student_id, "100000")
        assert exc_info.value.deposit_id == str(first.deposit_id)

    def test_new_deposit_after_return(self, ledger, accountant, student_id):
        first = ledger.open_insurance_deposit(accountant, student_id, "100000")
        ledger.return_insurance_deposit(accountant, first.deposit_id, "100000")
        second = ledger.open_insurance_deposit(accountant, student_id, "120000")
        assert second.status == InsuranceStatus.ACTIVE
        statuses = sorted(d.status.value for d in ledger.insurance.deposits_for_student(student_id))
        assert statuses == ["ACTIVE", "RETURNED"]

    def test_student_must_be_housed(self, ledger, accountant, make_student):
        student = make_student(housed=False)
        with pytest.raises(StudentNotHousedError):
            ledger.open_insurance_deposit(accountant, student, "100000")

    def test_unknown_student(self, ledger, accountant, engine):
        with pytest.raises(StudentNotFoundError):
            ledger.open_insurance_deposit(accountant, uuid4(), "100000")

    def test_partial_refund(self, ledger, accountant, student_id):
        deposit = ledger.open_insurance_deposit(accountant, student_id, "100000")
        closed = ledger.return_insurance_deposit(
            accountant, deposit.deposit_id, "50000", note="damaged desk"
        )
        assert closed.status == InsuranceStatus.RETURNED
        assert closed.amount_returned == Decimal("50000")
        assert closed.return_note == "damaged desk"
        assert closed.returned_by_id == accountant.actor_id

    def test_zero_refund_forfeits(self, ledger, accountant, student_id):
        deposit = ledger.open_insurance_deposit(accountant, student_id, "100000")
        closed = ledger.return_insurance_deposit(accountant, deposit.deposit_id, "0")
        assert closed.status == InsuranceStatus.FORFEITED

    def test_refund_above_deposit(self, ledger, accountant, student_id):
        deposit = ledger.open_insurance_deposit(accountant, student_id, "100000")
        with pytest.raises(RefundExceedsDepositError):
            ledger.return_insurance_deposit(accountant, deposit.deposit_id, "100000.01")

    def test_closed_deposit_cannot_be_returned_again(self, ledger, accountant, student_id):
        deposit = ledger.open_insurance_deposit(accountant, student_id, "100000")
        ledger.return_insurance_deposit(accountant, deposit.deposit_id, "100000")
        with pytest.raises(InvalidStateError):
            ledger.return_insurance_deposit(accountant, deposit.deposit_id, "1")

    def test_unknown_deposit(self, ledger, accountant, engine):
        with pytest.raises(InsuranceDepositNotFoundError):
            ledger.return_insurance_deposit(accountant, uuid4(), "1")

    def test_student_actor_cannot_open(self, ledger, student_actor, student_id):
        with pytest.raises(UnauthorizedError):
            ledger.open_insurance_deposit(student_actor, student_id, "100000")


class TestExpenses:

    @pytest.fixture
    def funded(self, ledger, accountant, student_id, installment_id):
        ledger.submit_payment(
            accountant, student_id, installment_id, "RECEIVE", "CASH", amount="100000"
        )

    def test_record(self, ledger, accountant, funded, audit_sink, deterministic_clock):
        expense = ledger.record_expense(accountant, " Cleaning supplies ", "25000", "supplies")
        assert expense.title == "Cleaning supplies"
        assert expense.category == "SUPPLIES"
        assert expense.spent_at == deterministic_clock.today()
        assert ledger.available_balance() == Decimal("75000")
        assert audit_sink.actions()[-1] == "EXPENSE_CREATED"

    def test_default_category(self, ledger, accountant, funded):
        assert ledger.record_expense(accountant, "Water", "100").category == "GENERAL"

    def test_blank_title(self, ledger, accountant, funded):
        with pytest.raises(ValidationFailedError):
            ledger.record_expense(accountant, "  ", "100")

    def test_expense_above_balance_is_recorded(self, ledger, accountant, funded):
        expense = ledger.record_expense(accountant, "New roof", "100000.01")
        assert expense.amount == Decimal("100000.01")
        assert ledger.available_balance() == Decimal("-0.01")
        with pytest.raises(InsufficientBalanceError, match="outgoing hand-over"):
            ledger.create_outgoing_request(accountant, "1", "CASH")

    def test_expense_on_empty_box(self, ledger, accountant, engine):
        ledger.record_expense(accountant, "Electricity bill", "5000")
        assert ledger.available_balance() == Decimal("-5000")

    def test_update_moves_balance_by_difference(self, ledger, accountant, admin, funded,
                                                audit_sink, captured_logs):
        expense = ledger.record_expense(accountant, "Water", "40000")
        assert ledger.available_balance() == Decimal("60000")

        updated = ledger.update_expense(
            admin, expense.expense_id, amount="25000", category="utilities",
            spent_at=date(2024, 9, 20),
        )
        assert updated.amount == Decimal("25000")
        assert updated.category == "UTILITIES"
        assert updated.title == "Water"
        assert updated.spent_at == date(2024, 9, 20)
        assert ledger.available_balance() == Decimal("75000")

        entry = audit_sink.records[-1]
        assert entry["action"].value == "EXPENSE_UPDATED"
        assert entry["old_values"]["amount"] == Decimal("40000")
        assert entry["new_values"]["amount"] == Decimal("25000")
        assert "title" not in entry["new_values"]
        assert any(r["message"] == "expense_updated" for r in captured_logs())

    def test_update_unknown_expense(self, ledger, admin, engine):
        with pytest.raises(ExpenseNotFoundError):
            ledger.update_expense(admin, uuid4(), amount="10")

    def test_update_rejects_bad_values(self, ledger, admin, accountant, funded):
        expense = ledger.record_expense(accountant, "Water", "100")
        with pytest.raises(ValidationFailedError):
            ledger.update_expense(admin, expense.expense_id, amount="0")
        with pytest.raises(ValidationFailedError):
            ledger.update_expense(admin, expense.expense_id, title="  ")
        assert ledger.available_balance() == Decimal("99900")

    def test_accountant_cannot_update(self, ledger, accountant, funded):
        expense = ledger.record_expense(accountant, "Water", "100")
        with pytest.raises(UnauthorizedError):
            ledger.update_expense(accountant, expense.expense_id, amount="50")

    def test_delete_restores_balance(self, ledger, accountant, admin, funded, audit_sink):
        expense = ledger.record_expense(accountant, "Water", "40000")
        ledger.delete_expense(admin, expense.expense_id)
        assert ledger.available_balance() == Decimal("100000")
        assert audit_sink.records[-1]["severity"].value == "WARNING"
        with pytest.raises(ExpenseNotFoundError):
            ledger.delete_expense(admin, expense.expense_id)

    def test_accountant_cannot_delete(self, ledger, accountant, funded):
        expense = ledger.record_expense(accountant, "Water", "100")
        with pytest.raises(UnauthorizedError):
            ledger.delete_expense(accountant, expense.expense_id)

    def test_list_by_date(self, ledger, accountant, funded):
        ledger.record_expense(accountant, "September", "100", spent_at=date(2024, 9, 15))
        ledger.record_expense(accountant, "October", "100", spent_at=date(2024, 10, 15))
        ledger.record_expense(accountant, "November", "100", spent_at=date(2024, 11, 15))

        titles = [e.title for e in ledger.expenses.list_expenses()]
        assert titles == ["November", "October", "September"]
        window = ledger.expenses.list_expenses(date(2024, 10, 1), date(2024, 10, 31))
        assert [e.title for e in window] == ["October"]
