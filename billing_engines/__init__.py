"""
Module: billing_engines
Responsibility:
    Pure calculation layer.  Re-exports the GST tax engine.

Architecture position:
    Engines -- zero I/O.  May only import billing_kernel.domain and
    billing_kernel.logging_config.  MUST NOT import billing_modules or
    billing_services.

Invariants enforced:
    - Purity: engines never read the clock or the database.
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.
"""

from billing_engines.tax import (
    DiscountExceedsAmountError,
    DiscountSpec,
    DocumentTotals,
    GSTTaxCalculator,
    LineAmounts,
    LineSpec,
    TaxDescriptor,
)

__all__ = [
    "DiscountExceedsAmountError",
    "DiscountSpec",
    "DocumentTotals",
    "GSTTaxCalculator",
    "LineAmounts",
    "LineSpec",
    "TaxDescriptor",
]
