"""
Inventory Module Service - product registration and manual stock moves.

Every stock change goes through InventoryLedger.apply_delta, so the
product's stock and its log can never disagree.  A new tracked product
with opening stock starts its chain with an OPENING entry.

Usage:
    service = InventoryService(session, actor_id, clock)
    product = service.create_product(tenant_id, name="Widget", opening_stock="10",
                                     track_inventory=True)
    service.adjust_stock(tenant_id, product.id, "-2", "ADJUSTMENT", "Damaged in transit")
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select

from billing_kernel.domain.dtos import ProductRecord
from billing_kernel.domain.values import ZERO
from billing_kernel.exceptions import (
    InventoryNotTrackedError,
    NotFoundError,
    ProductNotFoundError,
    ValidationFailureError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.inventory_log import InventoryTransactionType
from billing_kernel.models.product import Product, ProductType, TaxRate
from billing_modules.base import ModuleService
from billing_modules.documents.builder import DEFAULT_UNIT
from billing_modules.documents.models import (
    parse_decimal,
    parse_enum,
    parse_optional_decimal,
    parse_uuid,
)

logger = get_logger("modules.inventory.service")

# Reasons a user may give for a manual adjustment
ADJUSTMENT_REASONS = frozenset(
    {
        InventoryTransactionType.RESTOCK,
        InventoryTransactionType.ADJUSTMENT,
        InventoryTransactionType.RETURN,
        InventoryTransactionType.TRANSFER,
    }
)


class InventoryService(ModuleService):
    """Products and stock adjustments.  Commits on success, rolls back on failure."""

    def create_product(
        self,
        tenant_id: UUID,
        *,
        name: str,
        type: Any = ProductType.GOODS,
        selling_price: Any = ZERO,
        tax_id: Any = None,
        track_inventory: bool = False,
        opening_stock: Any = ZERO,
        sku: str | None = None,
        hsn_code: str | None = None,
        sac_code: str | None = None,
        unit: str | None = None,
    ) -> ProductRecord:
        """
        Register a product.  Services never track inventory.

        Raises:
            ValidationFailureError: missing name, negative price or stock,
                or opening stock on an untracked product.
            NotFoundError: ``tax_id`` is not a tax rate of the tenant.
        """
        if not name or not str(name).strip():
            raise ValidationFailureError("Product name is required", field="name")
        product_type = parse_enum(ProductType, type, "type") or ProductType.GOODS
        price = parse_decimal(selling_price, "selling_price")
        opening = parse_optional_decimal(opening_stock, "opening_stock") or ZERO
        tax_uuid = parse_uuid(tax_id, "tax_id")
        tracked = bool(track_inventory) and product_type == ProductType.GOODS
        if price < ZERO:
            raise ValidationFailureError("selling_price cannot be negative", field="selling_price")
        if opening < ZERO:
            raise ValidationFailureError("opening_stock cannot be negative", field="opening_stock")
        if opening and not tracked:
            raise ValidationFailureError(
                "Opening stock needs inventory tracking on a GOODS product",
                field="opening_stock",
            )

        try:
            self._sequences.lock_tenant(tenant_id)
            if tax_uuid is not None:
                found = self._session.execute(
                    select(TaxRate.id).where(TaxRate.id == tax_uuid, TaxRate.tenant_id == tenant_id)
                ).scalar_one_or_none()
                if found is None:
                    raise NotFoundError("TaxRate", tax_uuid)

            product = Product(
                tenant_id=tenant_id,
                name=str(name).strip(),
                type=product_type.value,
                sku=sku,
                hsn_code=hsn_code,
                sac_code=sac_code,
                unit=unit or DEFAULT_UNIT,
                selling_price=price,
                tax_id=tax_uuid,
                track_inventory=tracked,
                opening_stock=opening,
                stock_quantity=opening,
                is_active=True,
                created_by_id=self._actor_id,
            )
            self._session.add(product)
            self._session.flush()
            self._ledger.record_opening(product)

            logger.info(
                "product_created",
                extra={
                    "product_id": str(product.id),
                    "type": product.type,
                    "track_inventory": product.track_inventory,
                    "opening_stock": opening,
                },
            )
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise
        return product.to_dto()

    def adjust_stock(
        self,
        tenant_id: UUID,
        product_id: UUID,
        delta: Any,
        reason: Any = InventoryTransactionType.ADJUSTMENT,
        notes: str | None = None,
    ) -> ProductRecord:
        """
        Apply a signed manual stock change.

        Raises:
            ValidationFailureError: zero delta or an unknown reason.
            ProductNotFoundError: product missing or in another tenant.
            InventoryNotTrackedError: the product does not track stock.
            InvalidStockStateError: the result would be negative.
        """
        quantity = parse_decimal(delta, "quantity")
        if quantity == ZERO:
            raise ValidationFailureError("Adjustment quantity cannot be zero", field="quantity")
        transaction_type = parse_enum(InventoryTransactionType, reason, "reason")
        if transaction_type not in ADJUSTMENT_REASONS:
            allowed = sorted(r.value for r in ADJUSTMENT_REASONS)
            raise ValidationFailureError(
                f"reason must be one of {allowed}, got {reason!r}", field="reason"
            )

        try:
            product = self._ledger.lock_products(tenant_id, [product_id]).get(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            if not product.is_stocked:
                raise InventoryNotTrackedError(product.id, product.name)

            self._ledger.apply_delta(
                tenant_id,
                product_id,
                quantity,
                transaction_type,
                reference_type="ADJUSTMENT",
                notes=notes,
            )
            product.updated_by_id = self._actor_id
            self._session.flush()
            logger.info(
                "stock_adjusted",
                extra={
                    "product_id": str(product_id),
                    "reason": transaction_type.value,
                    "quantity_change": quantity,
                    "new_stock": product.stock_quantity,
                },
            )
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise
        return product.to_dto()
