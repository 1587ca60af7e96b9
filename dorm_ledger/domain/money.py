"""
Money input parsing.

Every amount entering the ledger goes through parse_money().  Accepted
inputs are Decimal, int and numeric strings; float and bool are rejected,
as are non-finite values and values with more than two decimal places
(four for discount percentages).
Nothing is rounded or clamped on the way in.
"""

from decimal import Decimal, InvalidOperation

from dorm_ledger.db.types import (
    MONEY_DECIMAL_PLACES,
    PERCENT_DECIMAL_PLACES,
    has_money_precision,
)
from dorm_ledger.exceptions import ValidationFailedError


def parse_money(
    value: object,
    field: str = "amount",
    *,
    allow_zero: bool = False,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> Decimal:
    """
    Convert a caller-supplied amount to a Decimal.

    Raises:
        ValidationFailedError: On a missing, float, non-numeric, non-finite,
            negative (or zero unless ``allow_zero``) amount, or an amount with
            more than ``decimal_places`` decimal places.
    """
    if value is None:
        raise ValidationFailedError(field, "is required")
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationFailedError(
            field, f"must be a Decimal, int or numeric string, got {type(value).__name__}"
        )
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation:
            raise ValidationFailedError(field, f"not a number: {value!r}") from None
    else:
        raise ValidationFailedError(
            field, f"must be a Decimal, int or numeric string, got {type(value).__name__}"
        )

    if not amount.is_finite():
        raise ValidationFailedError(field, f"must be finite, got {amount}")
    if not has_money_precision(amount, decimal_places):
        raise ValidationFailedError(
            field, f"at most {decimal_places} decimal places allowed, got {amount}"
        )
    if amount < 0 or (amount == 0 and not allow_zero):
        bound = "zero or positive" if allow_zero else "positive"
        raise ValidationFailedError(field, f"must be {bound}, got {amount}")
    return amount


def parse_percent(value: object, field: str = "discount_percent") -> Decimal:
    """
    Convert a discount percentage to a Decimal in (0, 100].

    Up to four decimal places are kept as given (33.3333 is fine); the
    discount amount derived from it is rounded to cents.

    Raises:
        ValidationFailedError: On float input, more than four decimal places
            or a value outside (0, 100].
    """
    percent = parse_money(
        value, field, allow_zero=True, decimal_places=PERCENT_DECIMAL_PLACES
    )
    if percent <= 0 or percent > 100:
        raise ValidationFailedError(field, f"must be in (0, 100], got {percent}")
    return percent
