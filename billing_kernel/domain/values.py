"""
Values -- Decimal helpers for money and quantities.

Responsibility:
    Converts loose numeric input (int, str, Decimal) into ``Decimal`` and
    applies the two rounding rules of the ledger: half-up to the paisa for
    every computed amount, half-up to the whole rupee for document totals.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Money is never a float.  ``to_decimal`` rejects float input.
    - Rounding is ROUND_HALF_UP (away from zero on ties), the standard
      currency rounding.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")
ONE = Decimal("1")


def to_decimal(value: Any, *, field: str = "value") -> Decimal:
    """
    Coerce ``value`` to Decimal.

    Raises:
        ValueError: If value is a float, None, or not a parseable number.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float) or value is None:
        raise ValueError(f"{field} must be a Decimal, int or numeric string, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field} is not a number: {value!r}") from exc


def round_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_whole(value: Decimal) -> Decimal:
    """Round to whole units, half away from zero, keeping 2 decimal places."""
    return value.quantize(ONE, rounding=ROUND_HALF_UP).quantize(CENT)
