"""
Module: billing_kernel.models.inventory_log
Responsibility: Append-only record of every stock delta.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - new_stock = previous_stock + quantity_change on every row
      (checked by InventoryLedger before insert).
    - Rows are never updated or deleted (db/immutability.py).
    - For a tracked product, opening_stock plus the sum of quantity_change
      over all non-OPENING rows equals stock_quantity.

Audit relevance:
    reference_type/reference_id point at the document that caused the
    delta (invoice, credit note, manual adjustment), so the stock history
    of any product can be walked back to its source documents.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base, UUID, UUIDString
from billing_kernel.domain.dtos import InventoryLogRecord


class InventoryTransactionType(str, Enum):
    SALE = "SALE"
    RETURN = "RETURN"
    ADJUSTMENT = "ADJUSTMENT"
    PURCHASE = "PURCHASE"
    OPENING = "OPENING"
    RESTOCK = "RESTOCK"
    TRANSFER = "TRANSFER"


class InventoryLogEntry(Base):
    """Immutable record of one stock delta."""

    __tablename__ = "inventory_logs"

    __table_args__ = (
        UniqueConstraint("product_id", "entry_seq", name="uq_inventory_log_product_seq"),
        Index("idx_inventory_log_reference", "reference_type", "reference_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Position in the product's chain, 1-based; assigned under the product row lock
    entry_seq: Mapped[int] = mapped_column(nullable=False)

    transaction_type: Mapped[InventoryTransactionType] = mapped_column(
        String(20), nullable=False
    )

    quantity_change: Mapped[Decimal] = mapped_column(nullable=False)
    previous_stock: Mapped[Decimal] = mapped_column(nullable=False)
    new_stock: Mapped[Decimal] = mapped_column(nullable=False)

    # Polymorphic link to the causing document
    reference_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def to_dto(self) -> InventoryLogRecord:
        return InventoryLogRecord(
            id=self.id,
            product_id=self.product_id,
            entry_seq=self.entry_seq,
            transaction_type=InventoryTransactionType(self.transaction_type).value,
            quantity_change=self.quantity_change,
            previous_stock=self.previous_stock,
            new_stock=self.new_stock,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            notes=self.notes,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryLogEntry {self.transaction_type} {self.quantity_change} "
            f"{self.previous_stock}->{self.new_stock}>"
        )
