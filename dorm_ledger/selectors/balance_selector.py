"""
Module: dorm_ledger.selectors.balance_selector
Responsibility: SQL sums behind the available cash balance.
Architecture position: Kernel > Selectors.  The formula itself lives in
    domain.balance; this module only gathers the totals.

Concurrency:
    Runs in the caller's transaction.  OutgoingPaymentService calls it after
    taking the cash ledger lock so that the balance it validates against
    cannot change before its own write commits.
"""

from decimal import Decimal

from sqlalchemy import func, select

from dorm_ledger.db.types import ZERO, round_money
from dorm_ledger.domain.balance import CashFlowTotals, compute_available_balance
from dorm_ledger.domain.dtos import InsuranceStatus, OutgoingStatus, PaymentKind
from dorm_ledger.models.expense import Expense
from dorm_ledger.models.insurance import InsuranceDeposit
from dorm_ledger.models.outgoing import OutgoingPaymentRequest
from dorm_ledger.models.payment import PaymentEvent
from dorm_ledger.selectors.base import BaseSelector


def _as_money(value) -> Decimal:
    # SQLite returns SUM() as float or int
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return round_money(value)


class CashBalanceSelector(BaseSelector):
    """Cash-on-hand totals."""

    def _sum(self, column, *criteria) -> Decimal:
        return _as_money(
            self.session.scalar(select(func.sum(column)).where(*criteria))
        )

    def cash_flow_totals(self) -> CashFlowTotals:
        by_kind = {
            kind: _as_money(total)
            for kind, total in self.session.execute(
                select(PaymentEvent.kind, func.sum(PaymentEvent.amount))
                .group_by(PaymentEvent.kind)
            ).all()
        }
        return CashFlowTotals(
            received=by_kind.get(PaymentKind.RECEIVE.value, ZERO),
            returned=by_kind.get(PaymentKind.RETURN.value, ZERO),
            discounted=by_kind.get(PaymentKind.DISCOUNT.value, ZERO),
            insurance_paid=self._sum(InsuranceDeposit.amount_paid),
            insurance_returned=self._sum(
                InsuranceDeposit.amount_returned,
                InsuranceDeposit.status == InsuranceStatus.RETURNED.value,
            ),
            approved_outgoing=self._sum(
                OutgoingPaymentRequest.amount_to_hand_over,
                OutgoingPaymentRequest.status == OutgoingStatus.APPROVED.value,
            ),
            expenses=self._sum(Expense.amount),
        )

    def available_balance(self) -> Decimal:
        return compute_available_balance(self.cash_flow_totals())
