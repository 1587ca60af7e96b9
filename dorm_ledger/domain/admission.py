"""
Payment admission rules -- pure evaluation of a payment against pair totals.

Responsibility:
    Two pure steps used by PaymentAdmissionService:

    1. validate_payment_request() normalizes caller input into a
       PaymentRequest and rejects malformed input (ValidationFailedError)
       before any database access.
    2. evaluate_admission() decides whether the request may be appended to a
       pair whose current totals are given, and returns the figures to
       persist.  It raises the InvalidOperationError subclass naming the
       violated rule, with the corrective figure attached.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The caller is
    responsible for holding the student lock while the PairAggregate it
    passes in is current.

Rules (after the write, per pair):
    - net_paid >= 0                                   (ReturnExceedsPaidError)
    - discount >= 0                                   (NegativeDiscountError)
    - net_paid + discount <= installment amount       (DiscountExceedsDueError
                                                       for DISCOUNT,
                                                       PaymentExceedsDueError
                                                       for RECEIVE)
    RETURN never increases what is owed, so it is only checked against
    net_paid.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from dorm_ledger.db.types import ZERO, round_money
from dorm_ledger.domain.aggregation import PairAggregate, derive_status, remaining_due
from dorm_ledger.domain.dtos import PaymentKind, PaymentMethod, PaymentStatus
from dorm_ledger.domain.money import parse_money, parse_percent
from dorm_ledger.exceptions import (
    DiscountExceedsDueError,
    NegativeDiscountError,
    PaymentExceedsDueError,
    ReturnExceedsPaidError,
    ValidationFailedError,
)


@dataclass(frozen=True)
class PaymentRequest:
    """
    A validated payment submission.

    For RECEIVE and RETURN, ``amount`` is set.  For DISCOUNT, exactly one of
    ``discount_percent`` (takes precedence) or ``discount_amount`` is set.
    """

    kind: PaymentKind
    method: PaymentMethod
    amount: Decimal | None = None
    discount_percent: Decimal | None = None
    discount_amount: Decimal | None = None
    receipt_url: str | None = None


@dataclass(frozen=True)
class AdmissionDecision:
    """What to persist for an admitted payment, and the resulting pair state."""

    kind: PaymentKind
    amount: Decimal
    effective_delta: Decimal
    net_paid: Decimal
    discount: Decimal
    remaining: Decimal
    status: PaymentStatus
    discount_percent: Decimal | None = None


def _coerce_enum(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationFailedError(field, f"{value!r} is not one of {allowed}") from None


def validate_payment_request(
    kind: PaymentKind | str,
    method: PaymentMethod | str,
    *,
    amount: object = None,
    discount_percent: object = None,
    discount_amount: object = None,
    receipt_url: str | None = None,
) -> PaymentRequest:
    """
    Normalize and validate a payment submission.

    Raises:
        ValidationFailedError: On an unknown kind or method, a bad amount,
            a percent outside (0, 100], a DISCOUNT without a receipt, or
            discount fields on a RECEIVE/RETURN.
    """
    kind = _coerce_enum(PaymentKind, kind, "kind")
    method = _coerce_enum(PaymentMethod, method, "method")
    receipt = receipt_url.strip() if isinstance(receipt_url, str) else receipt_url

    if kind != PaymentKind.DISCOUNT:
        if discount_percent is not None or discount_amount is not None:
            raise ValidationFailedError(
                "discount", f"discount fields are only allowed for DISCOUNT, not {kind.value}"
            )
        return PaymentRequest(
            kind=kind,
            method=method,
            amount=parse_money(amount, "amount"),
            receipt_url=receipt or None,
        )

    if amount is not None:
        raise ValidationFailedError(
            "amount", "DISCOUNT takes discount_percent or discount_amount, not amount"
        )
    if not receipt:
        raise ValidationFailedError("receipt_url", "is required for DISCOUNT")

    if discount_percent is not None:
        return PaymentRequest(
            kind=kind,
            method=method,
            discount_percent=parse_percent(discount_percent),
            receipt_url=receipt,
        )
    if discount_amount is not None:
        return PaymentRequest(
            kind=kind,
            method=method,
            discount_amount=parse_money(discount_amount, "discount_amount", allow_zero=True),
            receipt_url=receipt,
        )
    raise ValidationFailedError(
        "discount", "DISCOUNT requires discount_percent or discount_amount"
    )


def discount_value(request: PaymentRequest, installment_amount: Decimal) -> Decimal:
    """Discount amount of a DISCOUNT request, computed half-up from the percent."""
    if request.discount_percent is not None:
        return round_money(installment_amount * request.discount_percent / Decimal(100))
    return request.discount_amount if request.discount_amount is not None else ZERO


def evaluate_admission(
    request: PaymentRequest,
    installment_amount: Decimal,
    current: PairAggregate,
) -> AdmissionDecision:
    """
    Decide whether ``request`` may be appended to a pair with totals ``current``.

    Raises:
        ReturnExceedsPaidError: RETURN larger than net paid.
        NegativeDiscountError: Discount total would fall below zero.
        DiscountExceedsDueError: DISCOUNT larger than what is still open.
        PaymentExceedsDueError: RECEIVE larger than what is still due; carries
            remaining_due = max(0, net_due - net_paid_so_far).
    """
    if request.kind == PaymentKind.DISCOUNT:
        amount = discount_value(request, installment_amount)
        delta = ZERO
        added_discount = amount
    else:
        amount = request.amount
        delta = amount if request.kind == PaymentKind.RECEIVE else -amount
        added_discount = ZERO

    new_net_paid = current.net_paid + delta
    new_discount = current.discount + added_discount

    if new_net_paid < 0:
        raise ReturnExceedsPaidError(net_paid=current.net_paid, return_amount=amount)

    if new_discount < 0:
        raise NegativeDiscountError(discount_total=new_discount)

    if request.kind == PaymentKind.DISCOUNT and new_discount + new_net_paid > installment_amount:
        raise DiscountExceedsDueError(
            remaining_due=remaining_due(installment_amount, current.net_paid, current.discount),
            discount_amount=amount,
        )

    net_due = max(ZERO, installment_amount - new_discount)
    if request.kind == PaymentKind.RECEIVE and new_net_paid > net_due:
        raise PaymentExceedsDueError(
            remaining_due=max(ZERO, net_due - current.net_paid),
            attempted_amount=amount,
        )

    remaining = remaining_due(installment_amount, new_net_paid, new_discount)
    return AdmissionDecision(
        kind=request.kind,
        amount=amount,
        effective_delta=delta,
        net_paid=new_net_paid,
        discount=new_discount,
        remaining=remaining,
        status=derive_status(new_net_paid, new_discount, remaining),
        discount_percent=request.discount_percent,
    )
