"""
Document input models.

Normalized, immutable inputs for invoice, estimate and credit-note writes.
Client payloads arrive in several shapes (camelCase or snake_case keys,
``rate`` or ``price``, ``discount`` or ``discountValue``); ``from_payload``
resolves every alias once, here, so the builder and the tax engine only
ever see one shape.

Money and quantities become ``Decimal``.  JSON floats are accepted at this
boundary and converted through their shortest decimal representation;
nothing past this module handles a float.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from billing_engines.tax import DiscountSpec
from billing_kernel.domain.dtos import CreditNoteReason, DiscountType, ItemType
from billing_kernel.domain.values import ONE, ZERO, to_decimal
from billing_kernel.exceptions import ValidationFailureError

_CAMEL = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")

# Several client versions name the same line field differently
_RATE_KEYS = ("rate", "price", "unit_price")
_DISCOUNT_VALUE_KEYS = ("discount_value", "discount")


def snake_keys(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``payload`` with camelCase keys in snake_case."""
    return {_CAMEL.sub("_", key).lower(): value for key, value in payload.items()}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        return to_decimal(value, field=field_name)
    except ValueError as exc:
        raise ValidationFailureError(str(exc), field=field_name) from exc


def parse_optional_decimal(value: Any, field_name: str) -> Decimal | None:
    if value is None or value == "":
        return None
    return parse_decimal(value, field_name)


def parse_uuid(value: Any, field_name: str) -> UUID | None:
    """UUID from a UUID or its string form.  Empty values mean "absent"."""
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationFailureError(
            f"{field_name} is not a valid identifier: {value!r}", field=field_name
        ) from exc


def parse_date(value: Any, field_name: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValidationFailureError(
            f"{field_name} is not an ISO date: {value!r}", field=field_name
        ) from exc


def enum_text(value: Any) -> str:
    """Upper-cased name of a status or enum member given as text or Enum."""
    if isinstance(value, Enum):
        return str(value.value).upper()
    return str(value).strip().upper()


def parse_enum(enum_type, value: Any, field_name: str):
    if value is None or value == "":
        return None
    try:
        return enum_type(enum_text(value))
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_type)
        raise ValidationFailureError(
            f"{field_name} must be one of {allowed}, got {value!r}", field=field_name
        ) from exc


def parse_discount(
    discount_type: Any, discount_value: Any, field_name: str
) -> DiscountSpec | None:
    """Build a DiscountSpec; FIXED when the type is omitted."""
    value = parse_optional_decimal(discount_value, field_name)
    if value is None:
        return None
    kind = parse_enum(DiscountType, discount_type, f"{field_name}_type") or DiscountType.FIXED
    try:
        return DiscountSpec(discount_type=kind, value=value)
    except ValueError as exc:
        raise ValidationFailureError(str(exc), field=field_name) from exc


def _first_present(data: Mapping[str, Any], keys: tuple[str, ...]) -> list[tuple[str, Any]]:
    return [(key, data[key]) for key in keys if data.get(key) not in (None, "")]


def discount_from(data: Mapping[str, Any]) -> DiscountSpec | None:
    """
    Resolve the discount aliases of a snake_cased payload.

    Accepts ``discount_value`` or ``discount`` (a number, or a mapping with
    ``type``/``value``), with ``discount_type`` alongside.  When both value
    keys are present they must agree.
    """
    found = _first_present(data, _DISCOUNT_VALUE_KEYS)
    if not found:
        return None
    specs = []
    for key, raw in found:
        if isinstance(raw, Mapping):
            nested = snake_keys(raw)
            specs.append(
                parse_discount(
                    nested.get("type") or nested.get("discount_type"),
                    nested.get("value"),
                    key,
                )
            )
        else:
            specs.append(parse_discount(data.get("discount_type"), raw, key))
    if any(spec != specs[0] for spec in specs[1:]):
        raise ValidationFailureError(
            f"Conflicting discounts: {found!r}", field="discount"
        )
    return specs[0]


@dataclass(frozen=True)
class LineItemInput:
    """
    One requested line.

    ``rate`` may be None for product lines; the builder then uses the
    product's selling price.  ``tax_id`` picks a tax rate for lines that
    have no product (a product line always uses its product's tax).
    """

    quantity: Decimal = ONE
    product_id: UUID | None = None
    rate: Decimal | None = None
    name: str | None = None
    description: str | None = None
    item_type: ItemType | None = None
    hsn_code: str | None = None
    sac_code: str | None = None
    unit: str | None = None
    discount: DiscountSpec | None = None
    tax_id: UUID | None = None

    def __post_init__(self) -> None:
        if self.quantity <= ZERO:
            raise ValidationFailureError("Quantity must be positive", field="quantity")
        if self.rate is not None and self.rate < ZERO:
            raise ValidationFailureError("Rate cannot be negative", field="rate")
        if self.product_id is None and not (self.name and self.name.strip()):
            raise ValidationFailureError(
                "A line without a product needs a name", field="name"
            )
        if self.product_id is None and self.rate is None:
            raise ValidationFailureError(
                "A line without a product needs a rate", field="rate"
            )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> LineItemInput:
        data = snake_keys(payload)

        rates = _first_present(data, _RATE_KEYS)
        rate = None
        for key, raw in rates:
            value = parse_decimal(raw, key)
            if rate is not None and value != rate:
                raise ValidationFailureError(
                    f"Conflicting line rates: {rates!r}", field="rate"
                )
            rate = value

        quantity = data.get("quantity")
        return cls(
            quantity=ONE if quantity in (None, "") else parse_decimal(quantity, "quantity"),
            product_id=parse_uuid(data.get("product_id"), "product_id"),
            rate=rate,
            name=data.get("name") or data.get("product_name"),
            description=data.get("description"),
            item_type=parse_enum(ItemType, data.get("item_type"), "item_type"),
            hsn_code=data.get("hsn_code"),
            sac_code=data.get("sac_code"),
            unit=data.get("unit"),
            discount=discount_from(data),
            tax_id=parse_uuid(data.get("tax_id"), "tax_id"),
        )


@dataclass(frozen=True)
class DocumentInput:
    """
    A document request, already normalized.

    ``customer_id`` None means a walk-in document carrying the free-text
    ``customer_name``/``customer_phone``/``customer_email`` instead.
    ``status`` is only honoured for invoices (DRAFT or SENT at creation);
    ``reason`` and ``invoice_id`` only for credit notes; ``expiry_date``
    only for estimates.
    """

    items: tuple[LineItemInput, ...]
    customer_id: UUID | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    document_date: date | None = None
    due_date: date | None = None
    expiry_date: date | None = None
    place_of_supply: str | None = None
    discount: DiscountSpec | None = None
    shipping_charge: Decimal = ZERO
    adjustment_amount: Decimal = ZERO
    notes: str | None = None
    terms: str | None = None
    status: str | None = None
    reason: CreditNoteReason | None = None
    invoice_id: UUID | None = None

    def __post_init__(self) -> None:
        if not self.items:
            raise ValidationFailureError("A document needs at least one line", field="items")
        if self.shipping_charge < ZERO:
            raise ValidationFailureError(
                "Shipping charge cannot be negative", field="shipping_charge"
            )
        if self.status is not None:
            object.__setattr__(self, "status", enum_text(self.status))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> DocumentInput:
        data = snake_keys(payload)

        raw_items = data.get("items") or data.get("line_items") or ()
        if isinstance(raw_items, (str, bytes)) or not hasattr(raw_items, "__iter__"):
            raise ValidationFailureError("items must be a list", field="items")
        items = tuple(
            item if isinstance(item, LineItemInput) else LineItemInput.from_payload(item)
            for item in raw_items
        )

        customer_ref = data.get("customer_id", data.get("customer"))
        if isinstance(customer_ref, Mapping):
            customer_ref = snake_keys(customer_ref).get("id")

        return cls(
            items=items,
            customer_id=parse_uuid(customer_ref, "customer_id"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            customer_email=data.get("customer_email"),
            document_date=parse_date(
                data.get("document_date")
                or data.get("invoice_date")
                or data.get("estimate_date")
                or data.get("credit_note_date"),
                "document_date",
            ),
            due_date=parse_date(data.get("due_date"), "due_date"),
            expiry_date=parse_date(data.get("expiry_date"), "expiry_date"),
            place_of_supply=data.get("place_of_supply"),
            discount=discount_from(data),
            shipping_charge=parse_optional_decimal(
                data.get("shipping_charge"), "shipping_charge"
            ) or ZERO,
            adjustment_amount=parse_optional_decimal(
                data.get("adjustment_amount"), "adjustment_amount"
            ) or ZERO,
            notes=data.get("notes") or data.get("customer_notes"),
            terms=data.get("terms") or data.get("terms_conditions"),
            status=enum_text(data["status"]) if data.get("status") else None,
            reason=parse_enum(CreditNoteReason, data.get("reason"), "reason"),
            invoice_id=parse_uuid(data.get("invoice_id"), "invoice_id"),
        )


@dataclass(frozen=True)
class ReturnLineInput:
    """Quantity of one invoice line being returned on a credit note."""

    invoice_item_id: UUID
    quantity: Decimal

    def __post_init__(self) -> None:
        if self.quantity <= ZERO:
            raise ValidationFailureError("Return quantity must be positive", field="quantity")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ReturnLineInput:
        data = snake_keys(payload)
        item_id = parse_uuid(data.get("invoice_item_id") or data.get("item_id"), "invoice_item_id")
        if item_id is None:
            raise ValidationFailureError("invoice_item_id is required", field="invoice_item_id")
        return cls(
            invoice_item_id=item_id,
            quantity=parse_decimal(data.get("quantity"), "quantity"),
        )


@dataclass(frozen=True)
class BulkAllocationInput:
    """Share of a bulk payment applied to one invoice."""

    invoice_id: UUID
    amount: Decimal

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> BulkAllocationInput:
        data = snake_keys(payload)
        invoice_id = parse_uuid(data.get("invoice_id"), "invoice_id")
        if invoice_id is None:
            raise ValidationFailureError("invoice_id is required", field="invoice_id")
        return cls(invoice_id=invoice_id, amount=parse_decimal(data.get("amount"), "amount"))
