"""
Module: billing_kernel.models.product
Responsibility: ORM persistence for products and their GST rate descriptors.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - stock_quantity is mutated exclusively by InventoryLedger.apply_delta,
      which writes an InventoryLogEntry for every change.
    - SERVICE products never track inventory (ck_product_service_untracked).
    - stock_quantity >= 0 (ck_product_stock_non_negative).

Failure modes:
    - IntegrityError if a direct write bypasses the ledger and drives stock
      negative.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUID
from billing_kernel.domain.dtos import ProductRecord


class ProductType(str, Enum):
    GOODS = "GOODS"
    SERVICE = "SERVICE"


class TaxRate(TrackedBase):
    """
    GST rate descriptor.

    ``rate`` is the combined rate.  The component rates are optional; when
    absent the calculator splits ``rate`` evenly for CGST/SGST and uses it
    whole for IGST.
    """

    __tablename__ = "tax_rates"

    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    rate: Mapped[Decimal] = mapped_column(nullable=False)
    cgst_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    sgst_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    igst_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    cess_rate: Mapped[Decimal | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<TaxRate {self.name} {self.rate}%>"


class Product(TrackedBase):
    """Sellable item.  Goods may track stock; services never do."""

    __tablename__ = "products"

    __table_args__ = (
        Index("idx_product_tenant", "tenant_id"),
        CheckConstraint("stock_quantity >= 0", name="ck_product_stock_non_negative"),
        CheckConstraint(
            "type <> 'SERVICE' OR track_inventory = false",
            name="ck_product_service_untracked",
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    hsn_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sac_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="NOS")

    type: Mapped[ProductType] = mapped_column(
        String(20), nullable=False, default=ProductType.GOODS
    )

    selling_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    tax_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tax_rates.id"),
        nullable=True,
    )

    track_inventory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    stock_quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    opening_stock: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    tax: Mapped[TaxRate | None] = relationship(lazy="joined")

    def to_dto(self) -> ProductRecord:
        return ProductRecord(
            id=self.id,
            tenant_id=self.tenant_id,
            name=self.name,
            type=ProductType(self.type).value,
            track_inventory=self.track_inventory,
            stock_quantity=self.stock_quantity,
            opening_stock=self.opening_stock,
            is_active=self.is_active,
        )

    @property
    def is_stocked(self) -> bool:
        """True when sales of this product move stock."""
        return self.type == ProductType.GOODS and self.track_inventory

    def __repr__(self) -> str:
        return f"<Product {self.name}>"
