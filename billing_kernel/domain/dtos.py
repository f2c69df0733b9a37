"""
DTOs -- Enumerations and immutable records for the billing ledger.

Responsibility:
    Defines the document, payment and inventory enums shared by the ORM and
    the services, and the frozen records that services return to callers
    (DocumentRecord, LineItemRecord, PaymentRecord, ProductRecord).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ORM models convert themselves into these records via ``to_dto()``;
    callers outside the kernel never receive ORM entities.

Invariants enforced:
    - All monetary fields are Decimal, never float.
    - Records are frozen; line items are carried as tuples.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class DocumentType(str, Enum):
    INVOICE = "INVOICE"
    ESTIMATE = "ESTIMATE"
    CREDIT_NOTE = "CREDIT_NOTE"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle.  PAID/PARTIALLY_PAID here are never set by direct edit."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    VIEWED = "VIEWED"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    VOID = "VOID"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class EstimateStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    VIEWED = "VIEWED"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"
    INVOICED = "INVOICED"


class CreditNoteStatus(str, Enum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    VOID = "VOID"


class CreditNoteReason(str, Enum):
    RETURN = "RETURN"
    DISCOUNT = "DISCOUNT"
    QUALITY_ISSUE = "QUALITY_ISSUE"
    PRICING_ERROR = "PRICING_ERROR"
    DUPLICATE = "DUPLICATE"
    ORDER_CANCELLATION = "ORDER_CANCELLATION"
    OTHER = "OTHER"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class ItemType(str, Enum):
    GOODS = "GOODS"
    SERVICE = "SERVICE"


class PaymentMode(str, Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    UPI = "UPI"
    CHEQUE = "CHEQUE"
    CARD = "CARD"
    NETBANKING = "NETBANKING"
    CREDIT_NOTE = "CREDIT_NOTE"
    OTHER = "OTHER"


@dataclass(frozen=True)
class LineItemRecord:
    """Persisted line item with its tax snapshot and computed amounts."""

    id: UUID
    position: int
    product_id: UUID | None
    item_type: ItemType
    name: str
    description: str | None
    hsn_code: str | None
    sac_code: str | None
    unit: str | None
    quantity: Decimal
    rate: Decimal
    discount_type: DiscountType | None
    discount_value: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_rate: Decimal
    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal
    cess_rate: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class DocumentRecord:
    """
    Persisted invoice, estimate or credit note.

    ``balance_due``/``payment_status`` are set for invoices,
    ``balance_amount``/``reason`` for credit notes and ``expiry_date`` for
    estimates; the rest are None for other document types.
    """

    id: UUID
    tenant_id: UUID
    document_type: DocumentType
    number: str
    status: str
    customer_id: UUID | None
    customer_name: str | None
    document_date: date
    place_of_supply: str | None
    is_inter_state: bool
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    total_tax: Decimal
    shipping_charge: Decimal
    adjustment_amount: Decimal
    round_off: Decimal
    total_amount: Decimal
    line_items: tuple[LineItemRecord, ...] = field(default_factory=tuple)
    payment_status: PaymentStatus | None = None
    balance_due: Decimal | None = None
    due_date: date | None = None
    expiry_date: date | None = None
    balance_amount: Decimal | None = None
    reason: CreditNoteReason | None = None
    invoice_id: UUID | None = None
    estimate_id: UUID | None = None
    notes: str | None = None
    terms: str | None = None


@dataclass(frozen=True)
class PaymentRecord:
    id: UUID
    tenant_id: UUID
    payment_number: str
    customer_id: UUID | None
    invoice_id: UUID | None
    parent_payment_id: UUID | None
    credit_note_id: UUID | None
    payment_date: date
    amount: Decimal
    payment_mode: PaymentMode
    reference: str | None
    notes: str | None
    is_bulk: bool
    allocations: tuple[PaymentRecord, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ProductRecord:
    id: UUID
    tenant_id: UUID
    name: str
    type: str
    track_inventory: bool
    stock_quantity: Decimal
    opening_stock: Decimal
    is_active: bool


@dataclass(frozen=True)
class InventoryLogRecord:
    id: UUID
    product_id: UUID
    entry_seq: int
    transaction_type: str
    quantity_change: Decimal
    previous_stock: Decimal
    new_stock: Decimal
    reference_type: str | None
    reference_id: UUID | None
    notes: str | None
    created_at: datetime | None
