"""
Document builder - shared creation path for invoices, estimates and credit notes.

Resolves the party and place of supply, loads (and locks) the referenced
products, runs the GST engine per line and writes the resulting line items
and totals onto a document.  Stock is not touched here; the owning module
service applies stock deltas through the InventoryLedger once the
document is built.

Lock order: callers lock the tenant row first; ``load_products`` then
locks product rows in id order.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_engines.tax import (
    DiscountSpec,
    GSTTaxCalculator,
    LineAmounts,
    LineSpec,
    TaxDescriptor,
)
from billing_kernel.domain.dtos import DiscountType, ItemType
from billing_kernel.domain.states import is_inter_state
from billing_kernel.domain.values import ZERO, round_money
from billing_kernel.exceptions import (
    CustomerNotFoundError,
    InsufficientStockError,
    NotFoundError,
    ProductInactiveError,
    ProductNotFoundError,
    ValidationFailureError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.customer import Customer
from billing_kernel.models.document import Document, LineItem
from billing_kernel.models.product import Product, ProductType, TaxRate
from billing_kernel.models.tenant import Tenant
from billing_kernel.services.inventory_ledger import InventoryLedger
from billing_modules.documents.models import DocumentInput, LineItemInput

logger = get_logger("modules.documents.builder")

DEFAULT_UNIT = "NOS"


def descriptor_for(tax: TaxRate | None) -> TaxDescriptor | None:
    if tax is None:
        return None
    return TaxDescriptor(
        rate=tax.rate,
        cgst_rate=tax.cgst_rate,
        sgst_rate=tax.sgst_rate,
        igst_rate=tax.igst_rate,
        cess_rate=tax.cess_rate,
    )


class DocumentBuilder:
    """Builds line items and totals for a document in the caller's transaction."""

    def __init__(
        self,
        session: Session,
        ledger: InventoryLedger,
        calculator: GSTTaxCalculator,
        actor_id: UUID,
    ):
        self._session = session
        self._ledger = ledger
        self._calculator = calculator
        self._actor_id = actor_id

    # ------------------------------------------------------------------
    # Party
    # ------------------------------------------------------------------

    def get_customer(self, tenant_id: UUID, customer_id: UUID) -> Customer:
        customer = self._session.execute(
            select(Customer).where(
                Customer.id == customer_id,
                Customer.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        return customer

    def assign_party(
        self,
        document: Document,
        tenant: Tenant,
        data: DocumentInput,
        *,
        fallback_place: str | None = None,
    ) -> Customer | None:
        """
        Set the customer (or walk-in) fields and the place of supply.

        Place of supply is the explicit one, else the customer's, else
        ``fallback_place``, else the tenant's home state.
        """
        customer = None
        if data.customer_id is not None:
            customer = self.get_customer(tenant.id, data.customer_id)
            document.customer_id = customer.id
            document.customer_name = customer.display_name
            document.customer_phone = data.customer_phone or customer.phone
            document.customer_email = data.customer_email or customer.email
        else:
            document.customer_id = None
            document.customer_name = data.customer_name
            document.customer_phone = data.customer_phone
            document.customer_email = data.customer_email

        document.place_of_supply = (
            data.place_of_supply
            or (customer.place_of_supply if customer else None)
            or fallback_place
            or tenant.state
        )
        document.is_inter_state = is_inter_state(document.place_of_supply, tenant.state)
        return customer

    # ------------------------------------------------------------------
    # Products and stock
    # ------------------------------------------------------------------

    def load_products(
        self,
        tenant_id: UUID,
        items: Iterable[LineItemInput | LineItem],
        *,
        require_active: bool = True,
    ) -> dict[UUID, Product]:
        """
        Load and lock every product referenced by ``items``.

        ``require_active`` is off when restoring stock for existing lines: a
        product deactivated since the sale still takes its stock back.

        Raises:
            ProductNotFoundError: A product is missing or in another tenant.
            ProductInactiveError: A product is deactivated.
        """
        wanted = {item.product_id for item in items if item.product_id is not None}
        products = self._ledger.lock_products(tenant_id, sorted(wanted, key=str))
        for product_id in wanted:
            product = products.get(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            if require_active and not product.is_active:
                raise ProductInactiveError(product.id, product.name)
        return products

    @staticmethod
    def stocked_quantities(
        lines: Iterable[LineItem], products: dict[UUID, Product]
    ) -> dict[UUID, Decimal]:
        """Total quantity per stock-tracked product across ``lines``."""
        totals: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for line in lines:
            product = products.get(line.product_id) if line.product_id else None
            if product is not None and product.is_stocked:
                totals[product.id] += line.quantity
        return dict(totals)

    @staticmethod
    def check_stock(requested: dict[UUID, Decimal], products: dict[UUID, Product]) -> None:
        """
        Verify every tracked product can cover the requested quantity.

        Runs before any stock is written, so a shortfall on any line aborts
        the whole document with nothing changed.
        """
        for product_id, quantity in sorted(requested.items(), key=lambda kv: str(kv[0])):
            product = products[product_id]
            if product.stock_quantity < quantity:
                logger.warning(
                    "insufficient_stock",
                    extra={
                        "product_id": str(product_id),
                        "available": product.stock_quantity,
                        "requested": quantity,
                    },
                )
                raise InsufficientStockError(
                    product_id, product.name, product.stock_quantity, quantity
                )

    # ------------------------------------------------------------------
    # Lines and totals
    # ------------------------------------------------------------------

    def _tax_for(self, tenant_id: UUID, item: LineItemInput, product: Product | None):
        if product is not None:
            return product.tax
        if item.tax_id is None:
            return None
        tax = self._session.execute(
            select(TaxRate).where(TaxRate.id == item.tax_id, TaxRate.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if tax is None:
            raise NotFoundError("TaxRate", item.tax_id)
        return tax

    def build_lines(
        self,
        tenant_id: UUID,
        items: Sequence[LineItemInput],
        products: dict[UUID, Product],
        *,
        is_inter_state: bool,
    ) -> tuple[list[LineItem], list[LineAmounts]]:
        """Run the tax engine per line and return unattached LineItem rows."""
        lines: list[LineItem] = []
        amounts: list[LineAmounts] = []
        for position, item in enumerate(items):
            product = products.get(item.product_id) if item.product_id else None
            rate = item.rate if item.rate is not None else product.selling_price
            tax = self._tax_for(tenant_id, item, product)
            try:
                computed = self._calculator.calculate_line(
                    LineSpec(
                        quantity=item.quantity,
                        rate=rate,
                        discount=item.discount or DiscountSpec(),
                    ),
                    descriptor_for(tax),
                    is_inter_state=is_inter_state,
                )
            except ValueError as exc:
                raise ValidationFailureError(
                    f"Line {position + 1}: {exc}", field=f"items[{position}]"
                ) from exc

            item_type = item.item_type or (
                ItemType(ProductType(product.type).value)
                if product is not None
                else ItemType.GOODS
            )
            lines.append(
                LineItem(
                    position=position,
                    product_id=product.id if product is not None else None,
                    tax_id=tax.id if tax is not None else None,
                    item_type=item_type.value,
                    name=item.name or product.name,
                    description=item.description,
                    hsn_code=item.hsn_code or (product.hsn_code if product else None),
                    sac_code=item.sac_code or (product.sac_code if product else None),
                    unit=item.unit or (product.unit if product else DEFAULT_UNIT),
                    quantity=item.quantity,
                    rate=rate,
                    discount_type=(
                        item.discount.discount_type.value if item.discount else None
                    ),
                    discount_value=item.discount.value if item.discount else ZERO,
                    discount_amount=computed.discount_amount,
                    taxable_amount=computed.taxable_amount,
                    tax_rate=computed.tax_rate,
                    cgst_rate=computed.cgst_rate,
                    sgst_rate=computed.sgst_rate,
                    igst_rate=computed.igst_rate,
                    cess_rate=computed.cess_rate,
                    cgst_amount=computed.cgst_amount,
                    sgst_amount=computed.sgst_amount,
                    igst_amount=computed.igst_amount,
                    cess_amount=computed.cess_amount,
                    total_amount=computed.total_amount,
                    created_by_id=self._actor_id,
                )
            )
            amounts.append(computed)
        return lines, amounts

    def apply_totals(
        self,
        document: Document,
        data: DocumentInput,
        lines: list[LineItem],
        amounts: list[LineAmounts],
    ) -> None:
        """Attach ``lines`` to the document and write its totals."""
        try:
            totals = self._calculator.calculate_document(
                amounts,
                discount=data.discount,
                shipping_charge=data.shipping_charge,
                adjustment_amount=data.adjustment_amount,
            )
        except ValueError as exc:
            raise ValidationFailureError(str(exc), field="discount") from exc
        if totals.total_amount < ZERO:
            raise ValidationFailureError(
                "Total amount cannot be negative", field="adjustment_amount"
            )

        document.line_items = lines
        document.discount_type = (
            data.discount.discount_type.value if data.discount else DiscountType.FIXED.value
        )
        document.discount_value = data.discount.value if data.discount else ZERO
        document.subtotal = totals.subtotal
        document.discount_amount = totals.discount_amount
        document.taxable_amount = totals.taxable_amount
        document.cgst_amount = totals.cgst_amount
        document.sgst_amount = totals.sgst_amount
        document.igst_amount = totals.igst_amount
        document.cess_amount = totals.cess_amount
        document.total_tax = totals.total_tax
        document.shipping_charge = totals.shipping_charge
        document.adjustment_amount = totals.adjustment_amount
        document.round_off = totals.round_off
        document.total_amount = totals.total_amount

    @staticmethod
    def line_input(line: LineItem, quantity: Decimal | None = None) -> LineItemInput:
        """
        Re-express a persisted line as input, optionally with a new quantity.

        A FIXED discount is prorated to the new quantity.
        """
        discount = None
        if line.discount_value:
            kind = DiscountType(line.discount_type or DiscountType.FIXED.value)
            value = line.discount_value
            if quantity is not None and kind == DiscountType.FIXED:
                value = round_money(value * quantity / line.quantity)
            discount = DiscountSpec(discount_type=kind, value=value)
        return LineItemInput(
            quantity=quantity if quantity is not None else line.quantity,
            product_id=line.product_id,
            rate=line.rate,
            name=line.name,
            description=line.description,
            item_type=ItemType(line.item_type),
            hsn_code=line.hsn_code,
            sac_code=line.sac_code,
            unit=line.unit,
            discount=discount,
            tax_id=line.tax_id,
        )

    @classmethod
    def input_from(cls, document: Document, **overrides) -> DocumentInput:
        """Re-express a persisted document as input for the creation path."""
        discount = None
        if document.discount_value:
            discount = DiscountSpec(
                discount_type=DiscountType(document.discount_type or DiscountType.FIXED.value),
                value=document.discount_value,
            )
        fields = dict(
            items=tuple(cls.line_input(line) for line in document.line_items),
            customer_id=document.customer_id,
            customer_name=document.customer_name,
            customer_phone=document.customer_phone,
            customer_email=document.customer_email,
            place_of_supply=document.place_of_supply,
            discount=discount,
            shipping_charge=document.shipping_charge,
            adjustment_amount=document.adjustment_amount,
            notes=document.notes,
            terms=document.terms,
        )
        fields.update(overrides)
        return DocumentInput(**fields)

    def populate(
        self,
        document: Document,
        tenant: Tenant,
        data: DocumentInput,
        products: dict[UUID, Product],
    ) -> None:
        """Build lines for ``data.items`` and write totals onto ``document``."""
        lines, amounts = self.build_lines(
            tenant.id, data.items, products, is_inter_state=document.is_inter_state
        )
        self.apply_totals(document, data, lines, amounts)


__all__ = ["DEFAULT_UNIT", "DocumentBuilder", "descriptor_for"]
