"""ORM models for the billing kernel."""

from billing_kernel.models.customer import Customer
from billing_kernel.models.document import (
    CreditNote,
    Document,
    Estimate,
    Invoice,
    LineItem,
)
from billing_kernel.models.inventory_log import InventoryLogEntry, InventoryTransactionType
from billing_kernel.models.payment import Payment
from billing_kernel.models.product import Product, ProductType, TaxRate
from billing_kernel.models.tenant import DocumentSequence, SequenceKind, Tenant

__all__ = [
    "CreditNote",
    "Customer",
    "Document",
    "DocumentSequence",
    "Estimate",
    "InventoryLogEntry",
    "InventoryTransactionType",
    "Invoice",
    "LineItem",
    "Payment",
    "Product",
    "ProductType",
    "SequenceKind",
    "TaxRate",
    "Tenant",
]
