"""
Billing Modules.

Orchestration layers over the Billing Kernel and Engines.  Each module
service owns its transaction: it locks what it touches, composes the
kernel services (sequence allocator, inventory ledger, balance
reconciler), commits on success and rolls back on failure.

Modules:
- Documents: normalized inputs and the shared line/total builder
- Invoicing: invoices, stock out on issue, void and delete
- Estimates: quotations and their conversion into invoices
- Credit Notes: credits, return restock, application to invoices
- Payments: single and bulk payments, edits and reversal
- Inventory: products, opening stock and manual adjustments
"""

from billing_modules import (
    documents,
    invoicing,
    estimates,
    payments,
    credit_notes,
    inventory,
)

__all__ = [
    "documents",
    "invoicing",
    "estimates",
    "payments",
    "credit_notes",
    "inventory",
]
