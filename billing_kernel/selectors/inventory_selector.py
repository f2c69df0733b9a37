"""
InventorySelector -- stock history and chain verification.
"""

from decimal import Decimal

from sqlalchemy import func, select

from billing_kernel.db.base import UUID
from billing_kernel.domain.dtos import InventoryLogRecord
from billing_kernel.exceptions import ProductNotFoundError
from billing_kernel.models.inventory_log import InventoryLogEntry, InventoryTransactionType
from billing_kernel.models.product import Product
from billing_kernel.selectors.base import BaseSelector


class InventorySelector(BaseSelector):
    """Read-only queries over the inventory log."""

    def history(self, tenant_id: UUID, product_id: UUID) -> list[InventoryLogRecord]:
        """All log entries of a product in chain order."""
        rows = self.session.execute(
            select(InventoryLogEntry)
            .where(
                InventoryLogEntry.tenant_id == tenant_id,
                InventoryLogEntry.product_id == product_id,
            )
            .order_by(InventoryLogEntry.entry_seq)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def reconstruct_stock(self, tenant_id: UUID, product_id: UUID) -> Decimal:
        """
        Rebuild stock from the log: opening_stock plus every non-OPENING delta.

        For a consistent ledger this equals ``Product.stock_quantity``.
        """
        product = self.session.execute(
            select(Product).where(Product.id == product_id, Product.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(product_id)

        deltas = self.session.execute(
            select(func.coalesce(func.sum(InventoryLogEntry.quantity_change), 0)).where(
                InventoryLogEntry.product_id == product_id,
                InventoryLogEntry.transaction_type != InventoryTransactionType.OPENING.value,
            )
        ).scalar()
        return product.opening_stock + Decimal(str(deltas))

    def chain_is_consistent(self, tenant_id: UUID, product_id: UUID) -> bool:
        """True when every entry links to its predecessor and ends at current stock."""
        entries = self.history(tenant_id, product_id)
        running = Decimal("0")
        for entry in entries:
            if entry.previous_stock != running:
                return False
            if entry.new_stock != entry.previous_stock + entry.quantity_change:
                return False
            running = entry.new_stock
        stock = self.session.execute(
            select(Product.stock_quantity).where(Product.id == product_id)
        ).scalar_one()
        return running == stock
