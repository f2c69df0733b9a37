"""
Pure domain layer.

Value helpers, the injectable clock and the GST state table.  No ORM, no
database, no I/O (except SystemClock).
"""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.states import GST_STATES, is_inter_state, normalize_state
from billing_kernel.domain.values import (
    HUNDRED,
    ZERO,
    round_money,
    round_whole,
    to_decimal,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "GST_STATES",
    "is_inter_state",
    "normalize_state",
    "HUNDRED",
    "ZERO",
    "round_money",
    "round_whole",
    "to_decimal",
]
