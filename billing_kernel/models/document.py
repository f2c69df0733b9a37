"""
Module: billing_kernel.models.document
Responsibility: ORM persistence for financial documents (invoices,
    estimates, credit notes) and their line items.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/dtos.py.  Services build rows; selectors read them.

Single-table inheritance: every document lives in ``documents`` with a
``document_type`` discriminator.  Type-specific columns (balance_due,
payment_status, expiry_date, balance_amount, reason, ...) are nullable and
only populated for their own type.

Invariants enforced:
    - (tenant_id, document_type, number) is unique (uq_document_number).
      Numbers are human-facing and never used as keys.
    - total_amount = taxable_amount + total_tax + shipping_charge
      + adjustment_amount + round_off, all computed by billing_engines.tax
      and never edited independently.
    - Line items snapshot name/HSN/SAC/unit/rate and the tax rates at
      creation time; later product edits do not touch them.
    - Line items are only created or deleted together with their document
      (delete-and-recreate on update).
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUID
from billing_kernel.domain.dtos import (
    CreditNoteReason,
    DiscountType,
    DocumentRecord,
    DocumentType,
    ItemType,
    LineItemRecord,
    PaymentStatus,
)

_ZERO = Decimal("0")


class Document(TrackedBase):
    """Base row for every numbered document."""

    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "document_type", "number", name="uq_document_number"
        ),
        Index("idx_document_customer", "tenant_id", "customer_id"),
        Index("idx_document_status", "tenant_id", "document_type", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )

    document_type: Mapped[DocumentType] = mapped_column(String(20), nullable=False)

    number: Mapped[str] = mapped_column(String(50), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    # Linked customer, or None for walk-in documents
    customer_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("customers.id"),
        nullable=True,
    )

    # Free-text walk-in fields (also a snapshot of the customer's name)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    document_date: Mapped[date] = mapped_column(Date, nullable=False)

    place_of_supply: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_inter_state: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Document-level discount spec
    discount_type: Mapped[DiscountType | None] = mapped_column(String(20), nullable=True)
    discount_value: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    taxable_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    cgst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    sgst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    igst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    cess_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    total_tax: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    shipping_charge: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    adjustment_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    round_off: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True)

    line_items: Mapped[list["LineItem"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="LineItem.position",
        lazy="selectin",
    )

    __mapper_args__ = {
        "polymorphic_on": "document_type",
    }

    def to_dto(self) -> DocumentRecord:
        """Convert ORM model to frozen record."""
        return DocumentRecord(
            id=self.id,
            tenant_id=self.tenant_id,
            document_type=DocumentType(self.document_type),
            number=self.number,
            status=self.status,
            customer_id=self.customer_id,
            customer_name=self.customer_name,
            document_date=self.document_date,
            place_of_supply=self.place_of_supply,
            is_inter_state=self.is_inter_state,
            subtotal=self.subtotal,
            discount_amount=self.discount_amount,
            taxable_amount=self.taxable_amount,
            cgst_amount=self.cgst_amount,
            sgst_amount=self.sgst_amount,
            igst_amount=self.igst_amount,
            cess_amount=self.cess_amount,
            total_tax=self.total_tax,
            shipping_charge=self.shipping_charge,
            adjustment_amount=self.adjustment_amount,
            round_off=self.round_off,
            total_amount=self.total_amount,
            line_items=tuple(item.to_dto() for item in self.line_items),
            notes=self.notes,
            terms=self.terms,
            **self._type_fields(),
        )

    def _type_fields(self) -> dict:
        return {}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.number} {self.status}>"


class Invoice(Document):
    """Sales invoice.  Moves stock and carries a balance due."""

    __mapper_args__ = {"polymorphic_identity": DocumentType.INVOICE.value}

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    payment_status: Mapped[PaymentStatus | None] = mapped_column(
        String(20), nullable=True
    )

    balance_due: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Estimate this invoice was converted from
    estimate_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("documents.id"),
        nullable=True,
    )

    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def _type_fields(self) -> dict:
        return {
            "payment_status": PaymentStatus(self.payment_status),
            "balance_due": self.balance_due,
            "due_date": self.due_date,
            "estimate_id": self.estimate_id,
        }


class Estimate(Document):
    """Quotation.  Never moves stock; may be converted into an invoice."""

    __mapper_args__ = {"polymorphic_identity": DocumentType.ESTIMATE.value}

    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def _type_fields(self) -> dict:
        return {"expiry_date": self.expiry_date}


class CreditNote(Document):
    """Credit note.  RETURN notes restock goods; the balance is applied to invoices."""

    __mapper_args__ = {"polymorphic_identity": DocumentType.CREDIT_NOTE.value}

    reason: Mapped[CreditNoteReason | None] = mapped_column(String(30), nullable=True)

    balance_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Invoice the credit was raised against
    invoice_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("documents.id"),
        nullable=True,
    )

    def _type_fields(self) -> dict:
        return {
            "balance_amount": self.balance_amount,
            "reason": CreditNoteReason(self.reason),
            "invoice_id": self.invoice_id,
        }


class LineItem(TrackedBase):
    """One line of a document with its tax snapshot and computed amounts."""

    __tablename__ = "line_items"

    __table_args__ = (
        Index("idx_line_item_document", "document_id"),
    )

    document_id: Mapped[UUID] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("products.id"),
        nullable=True,
    )

    # Tax rate the snapshot below was taken from
    tax_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tax_rates.id"),
        nullable=True,
    )

    item_type: Mapped[ItemType] = mapped_column(String(20), nullable=False)

    # Snapshot of the product at creation time
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    hsn_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sac_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    rate: Mapped[Decimal] = mapped_column(nullable=False)

    discount_type: Mapped[DiscountType | None] = mapped_column(String(20), nullable=True)
    discount_value: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    taxable_amount: Mapped[Decimal] = mapped_column(nullable=False)

    # Tax rate snapshot
    tax_rate: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    cgst_rate: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    sgst_rate: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    igst_rate: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    cess_rate: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)

    cgst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    sgst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    igst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    cess_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    document: Mapped[Document] = relationship(back_populates="line_items")

    def to_dto(self) -> LineItemRecord:
        """Convert ORM model to frozen record."""
        return LineItemRecord(
            id=self.id,
            position=self.position,
            product_id=self.product_id,
            item_type=ItemType(self.item_type),
            name=self.name,
            description=self.description,
            hsn_code=self.hsn_code,
            sac_code=self.sac_code,
            unit=self.unit,
            quantity=self.quantity,
            rate=self.rate,
            discount_type=DiscountType(self.discount_type) if self.discount_type else None,
            discount_value=self.discount_value,
            discount_amount=self.discount_amount,
            taxable_amount=self.taxable_amount,
            tax_rate=self.tax_rate,
            cgst_rate=self.cgst_rate,
            sgst_rate=self.sgst_rate,
            igst_rate=self.igst_rate,
            cess_rate=self.cess_rate,
            cgst_amount=self.cgst_amount,
            sgst_amount=self.sgst_amount,
            igst_amount=self.igst_amount,
            cess_amount=self.cess_amount,
            total_amount=self.total_amount,
        )

    def __repr__(self) -> str:
        return f"<LineItem {self.position}: {self.name} x{self.quantity}>"
