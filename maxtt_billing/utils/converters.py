"""Type conversion utilities for safely handling form and API values.

This module is the single source of truth for safe type conversion and
half-up rounding. All other modules should import from here instead of
defining their own.
"""

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


def safe_float(val: Any, default: float = 0.0) -> float:
    """Safely convert a value to a finite float.

    Args:
        val: Value to convert (can be str, int, float, None, etc.)
        default: Value to return if conversion fails or the result is NaN/inf

    Returns:
        Converted float or default value

    Examples:
        >>> safe_float("185")
        185.0
        >>> safe_float(None)
        0.0
        >>> safe_float("nan", default=-1.0)
        -1.0
    """
    if val is None or val == "" or isinstance(val, bool):
        return default
    try:
        result = float(val)
    except (ValueError, TypeError):
        return default
    if not math.isfinite(result):
        return default
    return result


def safe_int(val: Any, default: int = 0) -> int:
    """Safely convert a value to int.

    Examples:
        >>> safe_int("4")
        4
        >>> safe_int("4.0")
        4
        >>> safe_int(None)
        0
    """
    if val is None or val == "":
        return default
    try:
        result = float(val)
    except (ValueError, TypeError):
        return default
    if not math.isfinite(result):
        return default
    return int(result)


def to_decimal(val: Any, default: str = "0") -> Decimal:
    """Convert a value to Decimal through its string form (no binary noise)."""
    try:
        return Decimal(str(safe_float(val, float(default))))
    except InvalidOperation:
        return Decimal(default)


def round_half_up(val: Any, ndigits: int = 0) -> Decimal:
    """Round half away from zero, the way the billing forms always have.

    Python's round() is banker's rounding, which disagrees with printed
    invoices on .5 boundaries.

    Examples:
        >>> round_half_up(2.5)
        Decimal('3')
        >>> round_half_up("1.005", 2)
        Decimal('1.01')
    """
    d = val if isinstance(val, Decimal) else to_decimal(val)
    quantum = Decimal(1).scaleb(-ndigits)
    return d.quantize(quantum, rounding=ROUND_HALF_UP)


def round_to_multiple(val: float, multiple: int) -> int:
    """Round to the nearest multiple, halves going up."""
    if multiple <= 0:
        return int(round_half_up(val))
    steps = round_half_up(Decimal(repr(val)) / Decimal(multiple))
    return int(steps) * multiple


def is_blank(val: Any) -> bool:
    """True for None, empty strings and whitespace-only strings."""
    return val is None or (isinstance(val, str) and not val.strip())
