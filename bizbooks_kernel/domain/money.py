"""
Module: bizbooks_kernel.domain.money
Responsibility: Decimal coercion and rounding shared by every layer.
Architecture position: Kernel > Domain.  Pure; no ORM, no I/O.

Invariants enforced:
    - No floats: to_decimal() converts through str.
    - round_money() (half-up, 2 places by default) is the only sanctioned
      rounding function for displayed and posted amounts.
    - MONEY_TOLERANCE (0.01) is the single epsilon for balance checks.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
MONEY_TOLERANCE = Decimal("0.01")
ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to ``decimal_places`` using half-up by default.

    All posted and displayed amounts go through this function.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce caller input to Decimal without passing through float.

    Raises:
        ValueError: if the value is not numeric or not finite.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"{field} must be numeric, got bool")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"{field} is not a number: {value!r}") from exc
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValueError(f"{field} must be numeric, got {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"{field} must be finite, got {value!r}")
    return result


def is_within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal = MONEY_TOLERANCE) -> bool:
    """True when |a - b| is strictly below ``tolerance``."""
    return abs(a - b) < tolerance
