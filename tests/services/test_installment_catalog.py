"""Tests for installment catalog maintenance and status drift."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from dorm_ledger.domain.dtos import PaymentStatus
from dorm_ledger.exceptions import (
    DuplicateInstallmentError,
    InstallmentNotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)

SEPT = date(2024, 9, 1)
DEC = date(2024, 12, 31)


class TestCreateInstallment:

    def test_create(self, ledger, admin, engine, audit_sink):
        info = ledger.catalog.create_installment(
            admin, "2024", 1, "First semester", "100000", SEPT, DEC
        )
        assert info.amount == Decimal("100000")
        assert [i.installment_id for i in ledger.installments_for_cohort("2024")] == [
            info.installment_id,
        ]
        assert audit_sink.actions() == ["INSTALLMENT_CREATED"]

    def test_zero_amount_allowed(self, ledger, admin, engine):
        info = ledger.catalog.create_installment(admin, "2024", 1, "Waived", "0", SEPT, DEC)
        assert info.amount == 0

    def test_duplicate(self, ledger, admin, engine):
        ledger.catalog.create_installment(admin, "2024", 1, "First", "100", SEPT, DEC)
        with pytest.raises(DuplicateInstallmentError):
            ledger.catalog.create_installment(admin, "2024", 1, "Again", "100", SEPT, DEC)
        # Same number, another cohort
        ledger.catalog.create_installment(admin, "2025", 1, "First", "100", SEPT, DEC)

    @pytest.mark.parametrize("number", [0, -1, True, "1"])
    def test_bad_installment_no(self, ledger, admin, engine, number):
        with pytest.raises(ValidationFailedError):
            ledger.catalog.create_installment(admin, "2024", number, "T", "100", SEPT, DEC)

    def test_window_must_be_ordered(self, ledger, admin, engine):
        with pytest.raises(ValidationFailedError):
            ledger.catalog.create_installment(admin, "2024", 1, "T", "100", DEC, SEPT)

    def test_accountant_cannot_manage(self, ledger, accountant, engine):
        with pytest.raises(UnauthorizedError):
            ledger.catalog.create_installment(accountant, "2024", 1, "T", "100", SEPT, DEC)

    def test_ordered_by_number(self, ledger, admin, engine):
        ledger.catalog.create_installment(admin, "2024", 2, "Second", "100", SEPT, DEC)
        ledger.catalog.create_installment(admin, "2024", 1, "First", "100", SEPT, DEC)
        assert [i.title for i in ledger.installments_for_cohort("2024")] == ["First", "Second"]


class TestActiveInstallments:

    def test_window_contains_date(self, ledger, make_installment):
        autumn = make_installment("100", installment_no=1)
        make_installment("100", installment_no=2,
                         start_date=date(2025, 1, 1), end_date=date(2025, 5, 31))
        make_installment("100", installment_no=1, entrance_year="2025")

        active = ledger.active_installments(date(2024, 10, 1), entrance_year="2024")
        assert [i.installment_id for i in active] == [autumn]
        assert len(ledger.active_installments(date(2024, 12, 31))) == 2
        assert ledger.active_installments(date(2025, 6, 1)) == []

    def test_defaults_to_clock_date(self, ledger, make_installment):
        make_installment("100")
        assert len(ledger.active_installments()) == 1


class TestUpdateInstallment:

    def test_update_fields(self, ledger, admin, installment_id, audit_sink):
        info = ledger.catalog.update_installment(
            admin, installment_id, title="Autumn", end_date=date(2025, 1, 15)
        )
        assert info.title == "Autumn"
        assert info.end_date == date(2025, 1, 15)
        entry = audit_sink.records[-1]
        assert set(entry["new_values"]) == {"title", "end_date"}

    def test_unknown(self, ledger, admin, engine):
        with pytest.raises(InstallmentNotFoundError):
            ledger.catalog.update_installment(admin, uuid4(), title="x")

    def test_window_checked_against_stored_dates(self, ledger, admin, installment_id):
        with pytest.raises(ValidationFailedError):
            ledger.catalog.update_installment(admin, installment_id, start_date=date(2025, 3, 1))

    def test_amount_change_with_payments(self, ledger, admin, accountant, student_id,
                                         installment_id, captured_logs):
        ledger.submit_payment(
            accountant, student_id, installment_id, "RECEIVE", "CASH", amount="60000"
        )
        ledger.submit_payment(
            accountant, student_id, installment_id, "RECEIVE", "CASH", amount="40000"
        )
        ledger.catalog.update_installment(admin, installment_id, amount="150000")

        warnings = [
            r for r in captured_logs()
            if r["message"] == "installment_amount_changed_with_payments"
        ]
        assert len(warnings) == 1
        assert warnings[0]["payment_count"] == 2

        agg = ledger.aggregate_pair(student_id, installment_id)
        assert agg.remaining == Decimal("50000")
        assert agg.derived_status == PaymentStatus.PARTIALLY_PAID

        drift = ledger.status_drift(admin, student_id, installment_id)
        assert [d.pair_seq for d in drift] == [2]
        assert drift[0].stored_status == PaymentStatus.PAID
        assert drift[0].replayed_status == PaymentStatus.PARTIALLY_PAID

    def test_amount_change_without_payments_is_quiet(self, ledger, admin, installment_id,
                                                     captured_logs):
        ledger.catalog.update_installment(admin, installment_id, amount="90000")
        messages = [r["message"] for r in captured_logs()]
        assert "installment_amount_changed_with_payments" not in messages
        assert "installment_updated" in messages
