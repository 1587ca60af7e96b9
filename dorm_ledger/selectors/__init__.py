"""Selectors for the dorm ledger (read side)."""

from dorm_ledger.selectors.balance_selector import CashBalanceSelector
from dorm_ledger.selectors.catalog_selector import CatalogSelector
from dorm_ledger.selectors.ledger_selector import (
    LedgerSelector,
    PaymentReport,
    PaymentReportRow,
    PaymentReportTotals,
)

__all__ = [
    "CashBalanceSelector",
    "CatalogSelector",
    "LedgerSelector",
    "PaymentReport",
    "PaymentReportRow",
    "PaymentReportTotals",
]
