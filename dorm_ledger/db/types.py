"""
Module: dorm_ledger.db.types
Responsibility: Precision and rounding for money.  Centralizes both so that
    every model, service and report uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - MONEY_DECIMAL_PLACES is the canonical precision for monetary amounts,
      PERCENT_DECIMAL_PLACES for discount percentages.
      round_money() is the ONLY sanctioned rounding function.
    - No floats anywhere in the ledger.  All monetary amounts use Decimal.
"""

from decimal import ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
PERCENT_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Half-up rounding matches how discount amounts are computed from
    percentages.
    """
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)


def has_money_precision(value: Decimal, decimal_places: int = MONEY_DECIMAL_PLACES) -> bool:
    """True when value has no more than ``decimal_places`` fractional digits."""
    exponent = value.normalize().as_tuple().exponent
    return not isinstance(exponent, int) or exponent >= -decimal_places
