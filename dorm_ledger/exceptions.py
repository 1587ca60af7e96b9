"""
Typed Exception Hierarchy for the Dorm Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (request handlers, admin screens, batch jobs) must be able to tell a
rejected payment from a missing student from a lock timeout without parsing
message strings. Every error therefore:
  1. Has its own exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (the corrective figure included)

Example:
    try:
        admission.submit_payment(actor, student_id, installment_id, ...)
    except PaymentExceedsDueError as e:
        api_response(code=e.code, remaining_due=str(e.remaining_due))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    DormLedgerError (base)
    |
    +-- NotFoundError
    |   +-- StudentNotFoundError
    |   +-- InstallmentNotFoundError
    |   +-- OutgoingRequestNotFoundError
    |   +-- InsuranceDepositNotFoundError
    |   +-- ExpenseNotFoundError
    |
    +-- ValidationFailedError
    |   +-- IdempotencyKeyReuseError
    |
    +-- InvalidOperationError
    |   +-- ReturnExceedsPaidError
    |   +-- PaymentExceedsDueError
    |   +-- DiscountExceedsDueError
    |   +-- NegativeDiscountError
    |   +-- InsufficientBalanceError
    |   +-- ActiveDepositExistsError
    |   +-- StudentNotHousedError
    |   +-- RefundExceedsDepositError
    |   +-- DuplicateInstallmentError
    |
    +-- InvalidStateError
    |
    +-- ConflictError
    |
    +-- UnauthorizedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | STUDENT_NOT_FOUND           | Student ID doesn't exist
                | INSTALLMENT_NOT_FOUND       | Installment ID doesn't exist
                | OUTGOING_REQUEST_NOT_FOUND  | Hand-over request doesn't exist
                | INSURANCE_DEPOSIT_NOT_FOUND | Deposit ID doesn't exist
                | EXPENSE_NOT_FOUND           | Expense ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | Malformed input (amount, percent, ...)
                | IDEMPOTENCY_KEY_REUSE       | Same key, different parameters
----------------|-----------------------------|-----------------------------------------
Operation       | RETURN_EXCEEDS_PAID         | Return would make net paid negative
                | PAYMENT_EXCEEDS_DUE         | Receive larger than what is still due
                | DISCOUNT_EXCEEDS_DUE        | Discount larger than the open balance
                | NEGATIVE_DISCOUNT           | Discount total would go below zero
                | INSUFFICIENT_BALANCE        | Hand-over larger than cash on hand
                | ACTIVE_DEPOSIT_EXISTS       | Student already has an ACTIVE deposit
                | STUDENT_NOT_HOUSED          | Deposit for a student without a room
                | REFUND_EXCEEDS_DEPOSIT      | Refund larger than the deposit
                | DUPLICATE_INSTALLMENT       | (entrance_year, installment_no) taken
----------------|-----------------------------|-----------------------------------------
State           | INVALID_STATE               | Transition from a non-PENDING state
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONFLICT                    | Retries exhausted on lock contention
----------------|-----------------------------|-----------------------------------------
Authorization   | UNAUTHORIZED                | Actor lacks the required permission

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ConflictError is the only category a caller may blindly retry; every other
   error is deterministic for the same inputs and ledger state.

2. InvalidOperationError subclasses carry the figures needed to correct the
   request (remaining_due, available_balance, amount_paid, ...).

3. Nothing is clamped or coerced: an over-payment is rejected, not truncated.

===============================================================================
"""

from decimal import Decimal


class DormLedgerError(Exception):
    """
    Base exception for all dorm ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "DORM_LEDGER_ERROR"


# Not-found exceptions


class NotFoundError(DormLedgerError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class StudentNotFoundError(NotFoundError):
    code: str = "STUDENT_NOT_FOUND"

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__("Student", student_id)


class InstallmentNotFoundError(NotFoundError):
    code: str = "INSTALLMENT_NOT_FOUND"

    def __init__(self, installment_id: str):
        self.installment_id = installment_id
        super().__init__("Installment", installment_id)


class OutgoingRequestNotFoundError(NotFoundError):
    code: str = "OUTGOING_REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__("Outgoing payment request", request_id)


class InsuranceDepositNotFoundError(NotFoundError):
    code: str = "INSURANCE_DEPOSIT_NOT_FOUND"

    def __init__(self, deposit_id: str):
        self.deposit_id = deposit_id
        super().__init__("Insurance deposit", deposit_id)


class ExpenseNotFoundError(NotFoundError):
    code: str = "EXPENSE_NOT_FOUND"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__("Expense", expense_id)


# Validation exceptions


class ValidationFailedError(DormLedgerError):
    """Input is malformed: missing field, bad amount, percent out of range."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class IdempotencyKeyReuseError(ValidationFailedError):
    """
    Idempotency key was already used for a payment with different parameters.

    Retrying with the same key and the same parameters is a replay and
    returns the original payment; changing any parameter is a client bug.
    """

    code: str = "IDEMPOTENCY_KEY_REUSE"

    def __init__(self, idempotency_key: str, existing_payment_id: str):
        self.idempotency_key = idempotency_key
        self.existing_payment_id = existing_payment_id
        super().__init__(
            "idempotency_key",
            f"key {idempotency_key!r} already used by payment "
            f"{existing_payment_id} with different parameters",
        )


# Invalid-operation exceptions


class InvalidOperationError(DormLedgerError):
    """The request is well-formed but the ledger state does not allow it."""

    code: str = "INVALID_OPERATION"


class ReturnExceedsPaidError(InvalidOperationError):
    """A RETURN would make the pair's net paid amount negative."""

    code: str = "RETURN_EXCEEDS_PAID"

    def __init__(self, net_paid: Decimal, return_amount: Decimal):
        self.net_paid = net_paid
        self.return_amount = return_amount
        super().__init__(
            f"Return amount cannot make total paid negative: "
            f"net paid is {net_paid}, return requested {return_amount}"
        )


class PaymentExceedsDueError(InvalidOperationError):
    """A RECEIVE is larger than what is still due on the installment."""

    code: str = "PAYMENT_EXCEEDS_DUE"

    def __init__(self, remaining_due: Decimal, attempted_amount: Decimal):
        self.remaining_due = remaining_due
        self.attempted_amount = attempted_amount
        super().__init__(
            f"Payment exceeds remaining due. Remaining due is {remaining_due}"
        )


class DiscountExceedsDueError(InvalidOperationError):
    """A DISCOUNT is larger than the part of the installment still open."""

    code: str = "DISCOUNT_EXCEEDS_DUE"

    def __init__(self, remaining_due: Decimal, discount_amount: Decimal):
        self.remaining_due = remaining_due
        self.discount_amount = discount_amount
        super().__init__(
            f"Discount of {discount_amount} exceeds remaining due of {remaining_due}"
        )


class NegativeDiscountError(InvalidOperationError):
    code: str = "NEGATIVE_DISCOUNT"

    def __init__(self, discount_total: Decimal):
        self.discount_total = discount_total
        super().__init__(f"Total discount cannot be negative: {discount_total}")


class InsufficientBalanceError(InvalidOperationError):
    """A cash-out is larger than the cash currently on hand."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        available_balance: Decimal,
        requested_amount: Decimal,
        operation: str = "cash-out",
    ):
        self.available_balance = available_balance
        self.requested_amount = requested_amount
        self.operation = operation
        super().__init__(
            f"Requested {operation} of {requested_amount} exceeds available "
            f"balance of {available_balance}"
        )


class ActiveDepositExistsError(InvalidOperationError):
    code: str = "ACTIVE_DEPOSIT_EXISTS"

    def __init__(self, student_id: str, deposit_id: str):
        self.student_id = student_id
        self.deposit_id = deposit_id
        super().__init__(
            f"Student {student_id} already has an active insurance deposit {deposit_id}"
        )


class StudentNotHousedError(InvalidOperationError):
    code: str = "STUDENT_NOT_HOUSED"

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"Student {student_id} is not assigned to a room")


class RefundExceedsDepositError(InvalidOperationError):
    code: str = "REFUND_EXCEEDS_DEPOSIT"

    def __init__(self, amount_paid: Decimal, amount_returned: Decimal):
        self.amount_paid = amount_paid
        self.amount_returned = amount_returned
        super().__init__(
            f"Returned amount {amount_returned} cannot exceed deposit of {amount_paid}"
        )


class DuplicateInstallmentError(InvalidOperationError):
    code: str = "DUPLICATE_INSTALLMENT"

    def __init__(self, entrance_year: str, installment_no: int):
        self.entrance_year = entrance_year
        self.installment_no = installment_no
        super().__init__(
            f"Installment {installment_no} already exists for entrance year {entrance_year}"
        )


# State exceptions


class InvalidStateError(DormLedgerError):
    """Workflow transition attempted from a state that does not allow it."""

    code: str = "INVALID_STATE"

    def __init__(self, entity_type: str, entity_id: str, current_state: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id}: status is {current_state}"
        )


# Concurrency exceptions


class ConflictError(DormLedgerError):
    """
    Lock contention or serialization failure persisted through every retry.

    No partial write was made. Safe to retry later.
    """

    code: str = "CONFLICT"

    def __init__(self, operation: str, attempts: int, reason: str = ""):
        self.operation = operation
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"{operation} failed after {attempts} attempt(s) due to concurrent access"
            + (f": {reason}" if reason else "")
        )


# Authorization exceptions


class UnauthorizedError(DormLedgerError):
    code: str = "UNAUTHORIZED"

    def __init__(self, actor_id: str, permission: str):
        self.actor_id = actor_id
        self.permission = permission
        super().__init__(f"Actor {actor_id} lacks permission {permission}")
