"""
Dorm Ledger - Payment Ledger & Balance Reconciliation Engine

Back-office kernel for a dormitory that:
- Admits student payments (receive / return / discount) against installments
- Derives per-installment and per-student paid/owed state from event history
- Computes the cash-on-hand balance that gates outgoing hand-over requests
- Serializes admissions per student through storage-level locks
"""

__version__ = "0.1.0"
