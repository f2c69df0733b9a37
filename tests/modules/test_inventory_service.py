"""
Tests for InventoryService: product registration and manual adjustments.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from billing_kernel.exceptions import (
    InvalidStockStateError,
    InventoryNotTrackedError,
    NotFoundError,
    ProductNotFoundError,
    ValidationFailureError,
)


class TestCreateProduct:

    def test_tracked_goods_with_opening_stock(self, inventory_service, inventory_selector, tenant, gst_5):
        product = inventory_service.create_product(
            tenant.id,
            name="  Copper Bottle ",
            type="goods",
            selling_price="450",
            tax_id=str(gst_5.id),
            track_inventory=True,
            opening_stock="12",
            sku="CB-1L",
        )

        assert product.name == "Copper Bottle"
        assert product.type == "GOODS"
        assert product.track_inventory is True
        assert product.stock_quantity == Decimal("12")
        assert product.opening_stock == Decimal("12")
        (opening,) = inventory_selector.history(tenant.id, product.id)
        assert opening.transaction_type == "OPENING"

    def test_services_never_track_stock(self, inventory_service, tenant):
        product = inventory_service.create_product(
            tenant.id, name="Delivery", type="SERVICE", selling_price="50", track_inventory=True
        )

        assert product.track_inventory is False

    def test_opening_stock_needs_tracking(self, inventory_service, tenant):
        with pytest.raises(ValidationFailureError) as exc_info:
            inventory_service.create_product(
                tenant.id, name="Gift Wrap", selling_price="20", opening_stock="10"
            )
        assert exc_info.value.field == "opening_stock"

    @pytest.mark.parametrize(
        "fields, field",
        [
            ({"name": " "}, "name"),
            ({"name": "Lamp", "selling_price": "-1"}, "selling_price"),
            ({"name": "Lamp", "track_inventory": True, "opening_stock": "-2"}, "opening_stock"),
            ({"name": "Lamp", "type": "DIGITAL"}, "type"),
        ],
    )
    def test_invalid_products(self, inventory_service, tenant, fields, field):
        with pytest.raises(ValidationFailureError) as exc_info:
            inventory_service.create_product(tenant.id, **fields)
        assert exc_info.value.field == field

    def test_unknown_tax_rate(self, inventory_service, tenant):
        with pytest.raises(NotFoundError) as exc_info:
            inventory_service.create_product(tenant.id, name="Lamp", tax_id=uuid4())
        assert exc_info.value.entity == "TaxRate"

    def test_logs_creation(self, make_product, captured_logs):
        make_product("Brass Lamp")

        record = next(r for r in captured_logs() if r["message"] == "product_created")
        assert record["track_inventory"] is True


class TestAdjustStock:

    @pytest.mark.parametrize("reason", ["RESTOCK", "adjustment", "RETURN", "TRANSFER"])
    def test_allowed_reasons(self, inventory_service, inventory_selector, tenant, product, reason):
        updated = inventory_service.adjust_stock(tenant.id, product.id, "3", reason, "Recount")

        assert updated.stock_quantity == Decimal("8")
        last = inventory_selector.history(tenant.id, product.id)[-1]
        assert last.transaction_type == reason.upper()
        assert last.reference_type == "ADJUSTMENT"
        assert last.notes == "Recount"

    def test_negative_adjustment(self, inventory_service, tenant, product):
        updated = inventory_service.adjust_stock(tenant.id, product.id, "-5")

        assert updated.stock_quantity == Decimal("0")

    def test_below_zero_rejected(self, inventory_service, inventory_selector, tenant, product):
        with pytest.raises(InvalidStockStateError):
            inventory_service.adjust_stock(tenant.id, product.id, "-6")

        assert inventory_selector.reconstruct_stock(tenant.id, product.id) == Decimal("5")

    def test_zero_delta_rejected(self, inventory_service, tenant, product):
        with pytest.raises(ValidationFailureError):
            inventory_service.adjust_stock(tenant.id, product.id, "0")

    @pytest.mark.parametrize("reason", ["SALE", "OPENING", "THEFT"])
    def test_reserved_or_unknown_reasons(self, inventory_service, tenant, product, reason):
        with pytest.raises(ValidationFailureError) as exc_info:
            inventory_service.adjust_stock(tenant.id, product.id, "1", reason)
        assert exc_info.value.field == "reason"

    def test_untracked_product(self, inventory_service, make_product, tenant):
        untracked = make_product("Gift Wrap", price="20", track_inventory=False)

        with pytest.raises(InventoryNotTrackedError):
            inventory_service.adjust_stock(tenant.id, untracked.id, "1")

    def test_unknown_product(self, inventory_service, tenant):
        with pytest.raises(ProductNotFoundError):
            inventory_service.adjust_stock(tenant.id, uuid4(), "1")

    def test_chain_stays_consistent(self, inventory_service, make_invoice, inventory_selector, tenant, product):
        inventory_service.adjust_stock(tenant.id, product.id, "10", "RESTOCK")
        make_invoice("4")
        inventory_service.adjust_stock(tenant.id, product.id, "-1")

        assert inventory_selector.reconstruct_stock(tenant.id, product.id) == Decimal("10")
        assert inventory_selector.chain_is_consistent(tenant.id, product.id)
