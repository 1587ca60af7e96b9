"""
Cash balance formula.

    available = received + insurance_paid
              - returned - discounted
              - approved_outgoing - expenses - insurance_returned

DISCOUNT events are subtracted like RETURN events.  Only APPROVED outgoing requests count; insurance amount_paid counts whatever the
deposit status, amount_returned only for RETURNED deposits.
"""

from dataclasses import dataclass
from decimal import Decimal

from dorm_ledger.db.types import ZERO


@dataclass(frozen=True)
class CashFlowTotals:
    """Sums of every cash flow that feeds the available balance."""

    received: Decimal = ZERO
    returned: Decimal = ZERO
    discounted: Decimal = ZERO
    insurance_paid: Decimal = ZERO
    insurance_returned: Decimal = ZERO
    approved_outgoing: Decimal = ZERO
    expenses: Decimal = ZERO

    @property
    def inflow(self) -> Decimal:
        return self.received + self.insurance_paid

    @property
    def outflow(self) -> Decimal:
        return (
            self.returned
            + self.discounted
            + self.approved_outgoing
            + self.expenses
            + self.insurance_returned
        )


def compute_available_balance(totals: CashFlowTotals) -> Decimal:
    """Cash currently on hand.  May be negative if the books are inconsistent."""
    return totals.inflow - totals.outflow
