"""
Tests for the pure admission rules.

Verifies:
- Request validation (kinds, methods, discount fields, receipts)
- Discount computation from percent (half-up) and explicit amounts
- Each rejection rule and the corrective figure it carries
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from dorm_ledger.domain.admission import (
    discount_value,
    evaluate_admission,
    validate_payment_request,
)
from dorm_ledger.domain.aggregation import aggregate_pair
from dorm_ledger.domain.dtos import (
    PaymentEventInfo,
    PaymentKind,
    PaymentMethod,
    PaymentStatus,
)
from dorm_ledger.exceptions import (
    DiscountExceedsDueError,
    PaymentExceedsDueError,
    ReturnExceedsPaidError,
    ValidationFailedError,
)

STUDENT = uuid4()
INSTALLMENT = uuid4()


def _pair(amount, paid="0", returned="0", discount="0"):
    """Current pair totals, built through the real aggregator."""
    events = [
        PaymentEventInfo(
            payment_id=uuid4(),
            student_id=STUDENT,
            installment_id=INSTALLMENT,
            kind=kind,
            amount=Decimal(value),
            method=PaymentMethod.CASH,
            status=PaymentStatus.PARTIALLY_PAID,
            paid_at=datetime(2024, 9, 1, tzinfo=timezone.utc),
            pair_seq=seq,
        )
        for seq, (kind, value) in enumerate(
            [
                (PaymentKind.RECEIVE, paid),
                (PaymentKind.RETURN, returned),
                (PaymentKind.DISCOUNT, discount),
            ],
            start=1,
        )
        if Decimal(value)
    ]
    return aggregate_pair(STUDENT, INSTALLMENT, Decimal(amount), events)


def _receive(amount):
    return validate_payment_request("RECEIVE", "CASH", amount=amount)


class TestValidatePaymentRequest:

    def test_receive_normalized(self):
        request = validate_payment_request("RECEIVE", "FIB", amount="60000")
        assert request.kind == PaymentKind.RECEIVE
        assert request.method == PaymentMethod.FIB
        assert request.amount == Decimal("60000")
        assert request.receipt_url is None

    def test_unknown_kind(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_payment_request("REFUND", "CASH", amount="1")
        assert exc_info.value.field == "kind"

    def test_unknown_method(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_payment_request("RECEIVE", "CHEQUE", amount="1")
        assert exc_info.value.field == "method"

    def test_receive_requires_positive_amount(self):
        with pytest.raises(ValidationFailedError):
            validate_payment_request("RECEIVE", "CASH", amount="0")
        with pytest.raises(ValidationFailedError):
            validate_payment_request("RETURN", "CASH")

    def test_discount_fields_rejected_on_receive(self):
        with pytest.raises(ValidationFailedError, match="only allowed for DISCOUNT"):
            validate_payment_request("RECEIVE", "CASH", amount="10", discount_percent="5")

    def test_discount_requires_receipt(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_payment_request("DISCOUNT", "CASH", discount_percent="20")
        assert exc_info.value.field == "receipt_url"

    def test_discount_blank_receipt_rejected(self):
        with pytest.raises(ValidationFailedError):
            validate_payment_request(
                "DISCOUNT", "CASH", discount_percent="20", receipt_url="   "
            )

    def test_discount_requires_percent_or_amount(self):
        with pytest.raises(ValidationFailedError, match="discount_percent or discount_amount"):
            validate_payment_request("DISCOUNT", "CASH", receipt_url="r.pdf")

    def test_discount_rejects_plain_amount(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_payment_request(
                "DISCOUNT", "CASH", amount="100", receipt_url="r.pdf"
            )
        assert exc_info.value.field == "amount"

    def test_percent_wins_over_amount(self):
        request = validate_payment_request(
            "DISCOUNT", "CASH", discount_percent="20", discount_amount="1",
            receipt_url="r.pdf",
        )
        assert request.discount_percent == Decimal("20")
        assert request.discount_amount is None

    @pytest.mark.parametrize("percent", ["0", "100.5", "-1"])
    def test_percent_out_of_range(self, percent):
        with pytest.raises(ValidationFailedError):
            validate_payment_request(
                "DISCOUNT", "CASH", discount_percent=percent, receipt_url="r.pdf"
            )

    def test_explicit_zero_discount_amount_allowed(self):
        request = validate_payment_request(
            "DISCOUNT", "CASH", discount_amount="0", receipt_url="r.pdf"
        )
        assert request.discount_amount == Decimal("0")


class TestDiscountValue:

    def test_percent_of_installment(self):
        request = validate_payment_request(
            "DISCOUNT", "CASH", discount_percent="20", receipt_url="r.pdf"
        )
        assert discount_value(request, Decimal("50000")) == Decimal("10000.00")

    def test_percent_rounds_half_up(self):
        request = validate_payment_request(
            "DISCOUNT", "CASH", discount_percent="12.5", receipt_url="r.pdf"
        )
        assert discount_value(request, Decimal("333.33")) == Decimal("41.67")

    def test_explicit_amount(self):
        request = validate_payment_request(
            "DISCOUNT", "CASH", discount_amount="2500.50", receipt_url="r.pdf"
        )
        assert discount_value(request, Decimal("50000")) == Decimal("2500.50")


class TestEvaluateAdmission:

    def test_receive_within_due(self):
        decision = evaluate_admission(_receive("60000"), Decimal("100000"), _pair("100000"))
        assert decision.effective_delta == Decimal("60000")
        assert decision.net_paid == Decimal("60000")
        assert decision.remaining == Decimal("40000")
        assert decision.status == PaymentStatus.PARTIALLY_PAID

    def test_receive_exactly_due(self):
        decision = evaluate_admission(
            _receive("40000"), Decimal("100000"), _pair("100000", paid="60000")
        )
        assert decision.status == PaymentStatus.PAID
        assert decision.remaining == 0

    def test_overpayment_reports_remaining_due(self):
        with pytest.raises(PaymentExceedsDueError) as exc_info:
            evaluate_admission(
                _receive("50000"), Decimal("100000"), _pair("100000", paid="60000")
            )
        assert exc_info.value.remaining_due == Decimal("40000")
        assert exc_info.value.attempted_amount == Decimal("50000")

    def test_overpayment_on_paid_pair_reports_zero(self):
        with pytest.raises(PaymentExceedsDueError) as exc_info:
            evaluate_admission(_receive("1"), Decimal("100000"), _pair("100000", paid="100000"))
        assert exc_info.value.remaining_due == 0

    def test_overpayment_accounts_for_discount(self):
        with pytest.raises(PaymentExceedsDueError) as exc_info:
            evaluate_admission(
                _receive("45000"), Decimal("50000"), _pair("50000", discount="10000")
            )
        assert exc_info.value.remaining_due == Decimal("40000")

    def test_return_beyond_net_paid(self):
        request = validate_payment_request("RETURN", "CASH", amount="50000")
        with pytest.raises(ReturnExceedsPaidError) as exc_info:
            evaluate_admission(request, Decimal("100000"), _pair("100000", paid="30000"))
        assert exc_info.value.net_paid == Decimal("30000")

    def test_return_to_zero(self):
        request = validate_payment_request("RETURN", "CASH", amount="30000")
        decision = evaluate_admission(request, Decimal("100000"), _pair("100000", paid="30000"))
        assert decision.net_paid == 0
        assert decision.effective_delta == Decimal("-30000")
        assert decision.status == PaymentStatus.UNPAID

    def test_return_allowed_after_installment_lowered(self):
        request = validate_payment_request("RETURN", "CASH", amount="10000")
        decision = evaluate_admission(request, Decimal("80000"), _pair("80000", paid="100000"))
        assert decision.net_paid == Decimal("90000")
        assert decision.status == PaymentStatus.PAID

    def test_discount_percent(self):
        request = validate_payment_request(
            "DISCOUNT", "CASH", discount_percent="20", receipt_url="r.pdf"
        )
        decision = evaluate_admission(request, Decimal("50000"), _pair("50000"))
        assert decision.amount == Decimal("10000.00")
        assert decision.effective_delta == 0
        assert decision.discount_percent == Decimal("20")
        assert decision.remaining == Decimal("40000")
        assert decision.status == PaymentStatus.PARTIALLY_PAID

    def test_discount_beyond_open_amount(self):
        request = validate_payment_request(
            "DISCOUNT", "CASH", discount_amount="20000", receipt_url="r.pdf"
        )
        with pytest.raises(DiscountExceedsDueError) as exc_info:
            evaluate_admission(request, Decimal("50000"), _pair("50000", paid="40000"))
        assert exc_info.value.remaining_due == Decimal("10000")

    def test_full_discount(self):
        request = validate_payment_request(
            "DISCOUNT", "CASH", discount_percent="100", receipt_url="r.pdf"
        )
        decision = evaluate_admission(request, Decimal("50000"), _pair("50000"))
        assert decision.status == PaymentStatus.PAID
