"""
Money helpers for the Match Fee Allocation Engine.

All fees are rounded to whole currency units with the same rule everywhere:
nearest integer, halves rounded up.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional


def round_fee(value: Optional[float]) -> Optional[int]:
    """
    Round a fee to a whole currency unit.

    Args:
        value: Fee amount, or None

    Returns:
        Rounded integer amount, or None when value is None

    Example:
        >>> round_fee(12.5)
        13
        >>> round_fee(15.45)
        15
    """
    if value is None:
        return None
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def rounded_total(components: Iterable[float]) -> int:
    """Sum of individually rounded fee components."""
    return sum(round_fee(component) for component in components)


def format_coefficient(coefficient: float) -> str:
    """
    Format a fee coefficient for display.

    Example:
        >>> format_coefficient(250 / 90)
        '2.78'
    """
    return f"{coefficient:.2f}"
