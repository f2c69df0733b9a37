"""
GST Tax Engine - line-level GST splits and document totals.

Pure functions with no I/O.  The tax descriptor, the interstate flag and
the DiscountSpec are all passed in; nothing is looked up.

Line algorithm:
    line_amount    = quantity * rate
    discount       = line_amount * value / 100   (PERCENTAGE)
                   = value                       (FIXED)
    taxable        = line_amount - discount
    cess           = taxable * cess_rate / 100   (always)
    inter-state:     igst = taxable * (igst_rate or rate) / 100
    intra-state:     cgst = taxable * (cgst_rate or rate / 2) / 100
                     sgst = taxable * (sgst_rate or rate / 2) / 100
    total          = taxable + cgst + sgst + igst + cess

Every amount is rounded half-up to 2 decimals per line, so document totals
are sums of already-rounded lines.

Document algorithm:
    subtotal       = sum(line.taxable)
    discount       = document discount on subtotal (same rule as a line)
    taxable        = subtotal - discount
    total_tax      = sum of line taxes
    precise_total  = taxable + total_tax + shipping + adjustment
    total          = round(precise_total) to whole units
    round_off      = total - precise_total

Usage:
    from billing_engines.tax import GSTTaxCalculator, LineSpec, TaxDescriptor
    from decimal import Decimal

    calc = GSTTaxCalculator()
    amounts = calc.calculate_line(
        LineSpec(quantity=Decimal("2"), rate=Decimal("120")),
        TaxDescriptor(rate=Decimal("5")),
        is_inter_state=False,
    )
    print(amounts.cgst_amount)  # 6.00
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from billing_kernel.domain.dtos import DiscountType
from billing_kernel.domain.values import HUNDRED, ZERO, round_money, round_whole
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

_TWO = Decimal("2")


@dataclass(frozen=True)
class TaxDescriptor:
    """
    GST rate descriptor, in percent.

    Component rates are optional.  A zero component rate counts as unset
    and falls back to the combined rate.
    """

    rate: Decimal
    cgst_rate: Decimal | None = None
    sgst_rate: Decimal | None = None
    igst_rate: Decimal | None = None
    cess_rate: Decimal | None = None

    def __post_init__(self) -> None:
        for name in ("rate", "cgst_rate", "sgst_rate", "igst_rate", "cess_rate"):
            value = getattr(self, name)
            if value is not None and value < ZERO:
                raise ValueError(f"Tax {name} cannot be negative")

    def resolved_igst(self) -> Decimal:
        return self.igst_rate or self.rate

    def resolved_cgst(self) -> Decimal:
        return self.cgst_rate or self.rate / _TWO

    def resolved_sgst(self) -> Decimal:
        return self.sgst_rate or self.rate / _TWO

    def resolved_cess(self) -> Decimal:
        return self.cess_rate or ZERO


@dataclass(frozen=True)
class DiscountSpec:
    """A FIXED amount or a PERCENTAGE of the base it applies to."""

    discount_type: DiscountType = DiscountType.FIXED
    value: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.value < ZERO:
            raise ValueError("Discount value cannot be negative")
        if self.discount_type == DiscountType.PERCENTAGE and self.value > HUNDRED:
            raise ValueError("Percentage discount cannot exceed 100")


@dataclass(frozen=True)
class LineSpec:
    """Normalized line input.  Aliases are resolved before this point."""

    quantity: Decimal
    rate: Decimal
    discount: DiscountSpec = DiscountSpec()

    def __post_init__(self) -> None:
        if self.quantity <= ZERO:
            raise ValueError("Quantity must be positive")
        if self.rate < ZERO:
            raise ValueError("Rate cannot be negative")


@dataclass(frozen=True)
class LineAmounts:
    """Computed amounts for one line, plus the rates actually applied."""

    line_amount: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_rate: Decimal
    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal
    cess_rate: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    total_amount: Decimal

    @property
    def total_tax(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount + self.cess_amount


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    total_tax: Decimal
    shipping_charge: Decimal
    adjustment_amount: Decimal
    round_off: Decimal
    total_amount: Decimal


class DiscountExceedsAmountError(ValueError):
    """A FIXED discount larger than the amount it applies to."""

    def __init__(self, discount: Decimal, base: Decimal):
        self.discount = discount
        self.base = base
        super().__init__(f"Discount {discount} exceeds amount {base}")


class GSTTaxCalculator:
    """
    Calculate GST splits and document totals.

    Pure functions - no I/O, no database access.

    Args:
        clamp_discounts: When True a FIXED discount larger than its base is
            clamped to the base (taxable becomes zero).  When False it is
            rejected with DiscountExceedsAmountError.
        round_total_to_whole: When False the document total keeps its
            paisa and round_off is always zero.
    """

    def __init__(self, *, clamp_discounts: bool = False, round_total_to_whole: bool = True):
        self.clamp_discounts = clamp_discounts
        self.round_total_to_whole = round_total_to_whole

    def calculate_discount(self, base: Decimal, discount: DiscountSpec | None) -> Decimal:
        """Discount amount on ``base``, rounded to 2 decimals."""
        if discount is None or not discount.value:
            return ZERO
        if discount.discount_type == DiscountType.PERCENTAGE:
            amount = base * discount.value / HUNDRED
        else:
            amount = discount.value
        if amount > base:
            if not self.clamp_discounts:
                raise DiscountExceedsAmountError(amount, base)
            amount = base
        return round_money(amount)

    def calculate_line(
        self,
        spec: LineSpec,
        tax: TaxDescriptor | None,
        *,
        is_inter_state: bool,
    ) -> LineAmounts:
        """
        Compute one line.

        A missing tax descriptor yields zero tax; untaxed and exempt items
        carry no descriptor.
        """
        line_amount = spec.quantity * spec.rate
        discount_amount = self.calculate_discount(line_amount, spec.discount)
        taxable = line_amount - discount_amount

        cgst_rate = sgst_rate = igst_rate = cess_rate = ZERO
        tax_rate = ZERO
        if tax is not None:
            tax_rate = tax.rate
            cess_rate = tax.resolved_cess()
            if is_inter_state:
                igst_rate = tax.resolved_igst()
            else:
                cgst_rate = tax.resolved_cgst()
                sgst_rate = tax.resolved_sgst()

        cgst = round_money(taxable * cgst_rate / HUNDRED)
        sgst = round_money(taxable * sgst_rate / HUNDRED)
        igst = round_money(taxable * igst_rate / HUNDRED)
        cess = round_money(taxable * cess_rate / HUNDRED)
        taxable = round_money(taxable)

        amounts = LineAmounts(
            line_amount=round_money(line_amount),
            discount_amount=discount_amount,
            taxable_amount=taxable,
            tax_rate=tax_rate,
            cgst_rate=cgst_rate,
            sgst_rate=sgst_rate,
            igst_rate=igst_rate,
            cess_rate=cess_rate,
            cgst_amount=cgst,
            sgst_amount=sgst,
            igst_amount=igst,
            cess_amount=cess,
            total_amount=taxable + cgst + sgst + igst + cess,
        )
        logger.debug(
            "tax_line_calculated",
            extra={
                "taxable_amount": str(amounts.taxable_amount),
                "total_tax": str(amounts.total_tax),
                "is_inter_state": is_inter_state,
            },
        )
        return amounts

    def calculate_document(
        self,
        lines: Sequence[LineAmounts],
        *,
        discount: DiscountSpec | None = None,
        shipping_charge: Decimal = ZERO,
        adjustment_amount: Decimal = ZERO,
    ) -> DocumentTotals:
        """Aggregate already-rounded lines into document totals."""
        subtotal = sum((line.taxable_amount for line in lines), ZERO)
        cgst = sum((line.cgst_amount for line in lines), ZERO)
        sgst = sum((line.sgst_amount for line in lines), ZERO)
        igst = sum((line.igst_amount for line in lines), ZERO)
        cess = sum((line.cess_amount for line in lines), ZERO)
        total_tax = cgst + sgst + igst + cess

        discount_amount = self.calculate_discount(subtotal, discount)
        taxable = subtotal - discount_amount

        shipping_charge = round_money(shipping_charge)
        adjustment_amount = round_money(adjustment_amount)
        precise_total = taxable + total_tax + shipping_charge + adjustment_amount
        total = round_whole(precise_total) if self.round_total_to_whole else precise_total
        round_off = total - precise_total

        totals = DocumentTotals(
            subtotal=subtotal,
            discount_amount=discount_amount,
            taxable_amount=taxable,
            cgst_amount=cgst,
            sgst_amount=sgst,
            igst_amount=igst,
            cess_amount=cess,
            total_tax=total_tax,
            shipping_charge=shipping_charge,
            adjustment_amount=adjustment_amount,
            round_off=round_off,
            total_amount=total,
        )
        logger.info(
            "document_totals_calculated",
            extra={
                "line_count": len(lines),
                "subtotal": str(subtotal),
                "total_tax": str(total_tax),
                "round_off": str(round_off),
                "total_amount": str(total),
            },
        )
        return totals
