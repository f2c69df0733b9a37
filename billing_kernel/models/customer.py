"""
Module: billing_kernel.models.customer
Responsibility: ORM persistence for tenant-scoped customers and the cached
    ``current_balance`` maintained by the BalanceReconciler.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - current_balance is derived, never authoritative: it always equals
      opening_balance plus the balance due of the customer's open, issued
      invoices as of the last reconciliation.  Only BalanceReconciler
      writes it.
"""

from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUID


class Customer(TrackedBase):
    """Tenant-scoped customer with a reconciler-maintained balance."""

    __tablename__ = "customers"

    __table_args__ = (
        Index("idx_customer_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )

    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)

    # Default place of supply for this customer's documents
    place_of_supply: Mapped[str | None] = mapped_column(String(100), nullable=True)

    opening_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Cache refreshed by BalanceReconciler
    current_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Customer {self.display_name}>"
