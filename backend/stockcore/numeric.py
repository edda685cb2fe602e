"""
Decimal handling for quantities and money.

No floats cross into the ledger: every quantity and amount is a Decimal,
and column types carry an explicit scale so persisted values round-trip
exactly. Rounding for display happens at the presentation layer only.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from .extensions import db


# Stock quantities in base units; wide enough for 1/n sub-unit multipliers
QUANTITY_DECIMAL_PLACES = 6

# Transaction totals and paid amounts
MONEY_DECIMAL_PLACES = 2

ZERO = Decimal("0")


def quantity_type():
    return db.Numeric(18, QUANTITY_DECIMAL_PLACES, asdecimal=True)


def money_type():
    return db.Numeric(18, MONEY_DECIMAL_PLACES, asdecimal=True)


def to_decimal(value) -> Decimal:
    """
    Coerce int/str/Decimal (and float, via its repr) into a finite Decimal.

    Raises ValueError for anything that is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return result


def exceeds_places(value: Decimal, places: int) -> bool:
    """True when value carries more significant decimal places than allowed."""
    normalized = value.normalize()
    exponent = normalized.as_tuple().exponent
    return isinstance(exponent, int) and -exponent > places


def is_integral(value: Decimal) -> bool:
    return value == value.to_integral_value()
