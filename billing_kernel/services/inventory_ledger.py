"""
InventoryLedger -- the only writer of product stock.

Responsibility:
    Applies a signed stock delta to a product and appends the matching
    immutable InventoryLogEntry, in the caller's transaction.

Architecture position:
    Kernel > Services.  Called by the invoicing, credit-note and inventory
    module services.  Has no transactional boundary of its own.

Invariants enforced:
    - The product row is locked (SELECT ... FOR UPDATE) before the read of
      the current stock, so two concurrent sales of the last unit cannot
      both succeed.
    - new_stock = previous_stock + quantity_change, and new_stock >= 0.
    - entry_seq is contiguous per product (assigned under the row lock).

Failure modes:
    - ProductNotFoundError: product missing or in another tenant.
    - InvalidStockStateError: the delta would drive stock below zero.
"""

from decimal import Decimal

from sqlalchemy import func, select

from billing_kernel.db.base import UUID
from billing_kernel.exceptions import InvalidStockStateError, ProductNotFoundError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.inventory_log import InventoryLogEntry, InventoryTransactionType
from billing_kernel.models.product import Product
from billing_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")


class InventoryLedger(BaseService):
    """Applies stock deltas with an append-only audit trail."""

    def __init__(self, session, actor_id: UUID):
        super().__init__(session)
        self._actor_id = actor_id

    def lock_products(self, tenant_id: UUID, product_ids: list[UUID]) -> dict[UUID, Product]:
        """
        Lock and return the given products, keyed by id.

        Rows are locked in id order so that two transactions touching the
        same products never deadlock.  Missing ids are simply absent from
        the result; callers decide whether that is an error.
        """
        if not product_ids:
            return {}
        rows = self.session.execute(
            select(Product)
            .where(Product.tenant_id == tenant_id, Product.id.in_(set(product_ids)))
            .order_by(Product.id)
            .with_for_update(of=Product)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return {row.id: row for row in rows}

    def apply_delta(
        self,
        tenant_id: UUID,
        product_id: UUID,
        quantity_change: Decimal,
        transaction_type: InventoryTransactionType,
        *,
        reference_type: str | None = None,
        reference_id: UUID | None = None,
        notes: str | None = None,
    ) -> InventoryLogEntry:
        """
        Apply ``quantity_change`` to the product's stock and log it.

        Postconditions:
            - product.stock_quantity == entry.new_stock
            - entry.new_stock == entry.previous_stock + quantity_change
        """
        product = self.lock_products(tenant_id, [product_id]).get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        previous = product.stock_quantity
        new_stock = previous + quantity_change
        if new_stock < 0:
            logger.warning(
                "stock_delta_rejected",
                extra={
                    "product_id": str(product_id),
                    "previous_stock": previous,
                    "quantity_change": quantity_change,
                },
            )
            raise InvalidStockStateError(product_id, previous, quantity_change)

        last_seq = self.session.execute(
            select(func.max(InventoryLogEntry.entry_seq)).where(
                InventoryLogEntry.product_id == product_id
            )
        ).scalar()

        product.stock_quantity = new_stock
        entry = InventoryLogEntry(
            tenant_id=tenant_id,
            product_id=product_id,
            entry_seq=(last_seq or 0) + 1,
            transaction_type=transaction_type.value,
            quantity_change=quantity_change,
            previous_stock=previous,
            new_stock=new_stock,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            created_by_id=self._actor_id,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "stock_delta_applied",
            extra={
                "product_id": str(product_id),
                "transaction_type": transaction_type.value,
                "quantity_change": quantity_change,
                "previous_stock": previous,
                "new_stock": new_stock,
                "reference_type": reference_type,
                "reference_id": str(reference_id) if reference_id else None,
            },
        )
        return entry

    def record_opening(self, product: Product) -> InventoryLogEntry | None:
        """
        Log the opening stock of a freshly inserted product.

        The product row already carries ``stock_quantity = opening_stock``;
        this appends the OPENING entry (0 -> opening) that starts the chain.
        """
        if not product.is_stocked or product.opening_stock == 0:
            return None
        entry = InventoryLogEntry(
            tenant_id=product.tenant_id,
            product_id=product.id,
            entry_seq=1,
            transaction_type=InventoryTransactionType.OPENING.value,
            quantity_change=product.opening_stock,
            previous_stock=Decimal("0"),
            new_stock=product.opening_stock,
            reference_type="PRODUCT",
            reference_id=product.id,
            notes="Opening stock",
            created_by_id=self._actor_id,
        )
        self.session.add(entry)
        self.session.flush()
        logger.info(
            "opening_stock_recorded",
            extra={"product_id": str(product.id), "opening_stock": product.opening_stock},
        )
        return entry
