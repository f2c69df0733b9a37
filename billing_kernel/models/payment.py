"""
Module: billing_kernel.models.payment
Responsibility: ORM persistence for payments received against invoices,
    including bulk (umbrella) payments and synthetic payments recorded when
    a credit note is applied.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/dtos.py.

Bulk payments are stored as one umbrella row (``is_bulk`` true, no invoice)
plus one child row per invoice allocation whose ``parent_payment_id``
points at the umbrella.  The child rows also carry a human-readable note
naming the umbrella's number.

Invariants enforced:
    - amount > 0 (ck_payment_amount_positive).
    - payment_number is unique per tenant (uq_payment_number).
    - Only payment_date, reference and notes may change after creation
      (db/immutability.py field guard).
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUID
from billing_kernel.domain.dtos import PaymentMode, PaymentRecord

PAYMENT_MUTABLE_FIELDS = frozenset({"payment_date", "reference", "notes"})


class Payment(TrackedBase):
    """Money received from a customer, optionally linked to one invoice."""

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("tenant_id", "payment_number", name="uq_payment_number"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_invoice", "invoice_id"),
        Index("idx_payment_customer", "tenant_id", "customer_id"),
        Index("idx_payment_parent", "parent_payment_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )

    payment_number: Mapped[str] = mapped_column(String(50), nullable=False)

    customer_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("customers.id"),
        nullable=True,
    )

    invoice_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("documents.id"),
        nullable=True,
    )

    # Umbrella payment for bulk allocations
    parent_payment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payments.id"),
        nullable=True,
    )

    # Set on synthetic payments created by credit-note application
    credit_note_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("documents.id"),
        nullable=True,
    )

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment_mode: Mapped[PaymentMode] = mapped_column(String(20), nullable=False)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_bulk: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Child allocations of a bulk payment; deleted with it
    allocations: Mapped[list["Payment"]] = relationship(
        cascade="all, delete-orphan",
        order_by="Payment.payment_number",
        lazy="selectin",
    )

    def to_dto(self) -> PaymentRecord:
        """Convert ORM model to frozen record."""
        return PaymentRecord(
            id=self.id,
            tenant_id=self.tenant_id,
            payment_number=self.payment_number,
            customer_id=self.customer_id,
            invoice_id=self.invoice_id,
            parent_payment_id=self.parent_payment_id,
            credit_note_id=self.credit_note_id,
            payment_date=self.payment_date,
            amount=self.amount,
            payment_mode=PaymentMode(self.payment_mode),
            reference=self.reference,
            notes=self.notes,
            is_bulk=self.is_bulk,
            allocations=tuple(child.to_dto() for child in self.allocations),
        )

    def __repr__(self) -> str:
        return f"<Payment {self.payment_number}: {self.amount}>"
