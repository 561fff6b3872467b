# settlement/utils/money.py
"""
Fixed-decimal money helpers.

Every amount that reaches the database passes through round_amount().
Half-up rounding at a fixed scale; percentages are rounded right after
the multiplication, never carried unrounded into the next step.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

# Scale for user-facing ledger postings (deposit bonuses, team rewards)
LEDGER_DECIMALS = 2

# Scale for platform-internal amounts (daily mining accrual)
PLATFORM_DECIMALS = 4

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a loosely typed number to Decimal.

    Floats go through str() so 33.335 stays 33.335 instead of its binary
    approximation. None, NaN, infinities and garbage become 0.

    Args:
        value: Decimal, int, float, numeric string or None

    Returns:
        Finite Decimal
    """
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO

    if not result.is_finite():
        return ZERO

    return result


def _quantum(decimals: int) -> Decimal:
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    return Decimal(1).scaleb(-decimals)


def round_amount(amount: Any, decimals: int = LEDGER_DECIMALS) -> Decimal:
    """
    Round half-up to a fixed number of decimals.

    Example:
        round_amount(33.335, 2) -> Decimal("33.34")
        round_amount(float("nan"), 2) -> Decimal("0.00")
    """
    return to_decimal(amount).quantize(_quantum(decimals), rounding=ROUND_HALF_UP)


def percent_of(base: Any, pct: Any, decimals: int = LEDGER_DECIMALS) -> Decimal:
    """
    Compute pct% of base, rounded immediately.

    Args:
        base: Base amount
        pct: Percentage in percent units (1.5 = 1.5%)
        decimals: Result scale

    Returns:
        Rounded Decimal
    """
    return round_amount(to_decimal(base) * to_decimal(pct) / HUNDRED, decimals)


def is_positive(amount: Any) -> bool:
    return to_decimal(amount) > ZERO
