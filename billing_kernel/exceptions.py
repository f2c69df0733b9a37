"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BillingError:

    BillingError (base)
    |
    +-- NotFoundError
    |   +-- TenantNotFoundError
    |   +-- CustomerNotFoundError
    |   +-- ProductNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- InvalidStateError
    |   +-- DocumentNotEditableError
    |   +-- DocumentNotVoidableError
    |   +-- InvalidStatusTransitionError
    |   +-- InvoiceNotPayableError
    |   +-- CreditNoteNotOpenError
    |   +-- CustomerMismatchError
    |   +-- ProductInactiveError
    |   +-- InventoryNotTrackedError
    |
    +-- InsufficientStockError
    +-- InvalidStockStateError
    +-- InvalidAmountError
    +-- ValidationFailureError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | TENANT_NOT_FOUND            | Tenant missing (sequence allocation aborts)
                | CUSTOMER_NOT_FOUND          | Customer missing or in another tenant
                | PRODUCT_NOT_FOUND           | Product missing or in another tenant
                | DOCUMENT_NOT_FOUND          | Invoice/estimate/credit note missing
                | PAYMENT_NOT_FOUND           | Payment missing
----------------|-----------------------------|-----------------------------------------
State           | DOCUMENT_NOT_EDITABLE       | Update/delete outside DRAFT
                | DOCUMENT_NOT_VOIDABLE       | Void with payments recorded, or already void
                | INVALID_STATUS_TRANSITION   | Status edit not allowed from current status
                | INVOICE_NOT_PAYABLE         | Payment against VOID or PAID invoice
                | CREDIT_NOTE_NOT_OPEN        | Applying a credit note that is not OPEN
                | CUSTOMER_MISMATCH           | Credit note / invoice belong to different customers
                | PRODUCT_INACTIVE            | Selling a deactivated product
                | INVENTORY_NOT_TRACKED       | Stock adjustment on untracked product
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Requested quantity exceeds available stock
                | INVALID_STOCK_STATE         | Ledger delta would make stock negative
----------------|-----------------------------|-----------------------------------------
Amount          | INVALID_AMOUNT              | Non-positive or over-limit amount
----------------|-----------------------------|-----------------------------------------
Input           | VALIDATION_FAILURE          | Malformed input caught before any write
----------------|-----------------------------|-----------------------------------------
Integrity       | IMMUTABILITY_VIOLATION      | Update/delete of an inventory log row, or a
                |                             | financial field of a recorded payment

===============================================================================
HANDLING PATTERNS
===============================================================================

Every error is raised before or during the enclosing transaction; the
module service that owns the transaction rolls back and re-raises.  The
HTTP collaborator maps ``code`` to a client-facing message:

    try:
        engine.record_payment(...)
    except InvalidAmountError as e:
        return {"error": e.code, "amount": e.amount, "limit": e.limit}
    except NotFoundError as e:
        return 404, {"error": e.code}

Nothing in the kernel is retried automatically.
"""

from decimal import Decimal


class BillingError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "BILLING_ERROR"


# Not-found errors


class NotFoundError(BillingError):
    """Base exception for missing (or cross-tenant) records."""

    code: str = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = str(entity_id)
        super().__init__(f"{entity} not found: {entity_id}")


class TenantNotFoundError(NotFoundError):
    """Tenant does not exist."""

    code: str = "TENANT_NOT_FOUND"

    def __init__(self, tenant_id: object):
        super().__init__("Tenant", tenant_id)


class CustomerNotFoundError(NotFoundError):
    """Customer does not exist in the tenant."""

    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: object):
        super().__init__("Customer", customer_id)


class ProductNotFoundError(NotFoundError):
    """Product does not exist in the tenant."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: object):
        super().__init__("Product", product_id)


class DocumentNotFoundError(NotFoundError):
    """Invoice, estimate or credit note does not exist in the tenant."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_type: str, document_id: object):
        self.document_type = document_type
        super().__init__(document_type, document_id)


class PaymentNotFoundError(NotFoundError):
    """Payment does not exist in the tenant."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: object):
        super().__init__("Payment", payment_id)


# State errors


class InvalidStateError(BillingError):
    """Base exception for operations not permitted in the current state."""

    code: str = "INVALID_STATE"


class DocumentNotEditableError(InvalidStateError):
    """Document can only be edited or deleted while in DRAFT."""

    code: str = "DOCUMENT_NOT_EDITABLE"

    def __init__(self, document_number: str, status: str):
        self.document_number = document_number
        self.status = status
        super().__init__(
            f"Document {document_number} is {status}; only DRAFT documents can be changed"
        )


class DocumentNotVoidableError(InvalidStateError):
    """Document cannot be voided (payments recorded, or already void)."""

    code: str = "DOCUMENT_NOT_VOIDABLE"

    def __init__(self, document_number: str, reason: str):
        self.document_number = document_number
        self.reason = reason
        super().__init__(f"Cannot void {document_number}: {reason}")


class InvalidStatusTransitionError(InvalidStateError):
    """Requested status change is not an allowed transition."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, document_number: str, from_status: str, to_status: str):
        self.document_number = document_number
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot move {document_number} from {from_status} to {to_status}"
        )


class InvoiceNotPayableError(InvalidStateError):
    """Invoice is VOID or already fully paid."""

    code: str = "INVOICE_NOT_PAYABLE"

    def __init__(self, invoice_number: str, reason: str):
        self.invoice_number = invoice_number
        self.reason = reason
        super().__init__(f"Invoice {invoice_number} cannot accept payment: {reason}")


class CreditNoteNotOpenError(InvalidStateError):
    """Credit note must be OPEN to be applied."""

    code: str = "CREDIT_NOTE_NOT_OPEN"

    def __init__(self, credit_note_number: str, status: str):
        self.credit_note_number = credit_note_number
        self.status = status
        super().__init__(
            f"Credit note {credit_note_number} is {status}; it must be OPEN to apply"
        )


class CustomerMismatchError(InvalidStateError):
    """Two linked documents belong to different customers."""

    code: str = "CUSTOMER_MISMATCH"

    def __init__(self, left: str, right: str):
        self.left = left
        self.right = right
        super().__init__(f"{left} and {right} must belong to the same customer")


class ProductInactiveError(InvalidStateError):
    """Product is deactivated and cannot be sold."""

    code: str = "PRODUCT_INACTIVE"

    def __init__(self, product_id: object, name: str):
        self.product_id = str(product_id)
        self.name = name
        super().__init__(f"Product '{name}' is inactive")


class InventoryNotTrackedError(InvalidStateError):
    """Stock adjustments require inventory tracking on the product."""

    code: str = "INVENTORY_NOT_TRACKED"

    def __init__(self, product_id: object, name: str):
        self.product_id = str(product_id)
        self.name = name
        super().__init__(f"Inventory tracking is disabled for '{name}'")


# Stock errors


class InsufficientStockError(BillingError):
    """Requested quantity exceeds the product's available stock."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: object, name: str, available: Decimal, requested: Decimal):
        self.product_id = str(product_id)
        self.name = name
        self.available = str(available)
        self.requested = str(requested)
        super().__init__(
            f"Insufficient stock for '{name}'. "
            f"Available: {available}, Requested: {requested}"
        )


class InvalidStockStateError(BillingError):
    """A ledger delta would drive stock below zero."""

    code: str = "INVALID_STOCK_STATE"

    def __init__(self, product_id: object, current: Decimal, change: Decimal):
        self.product_id = str(product_id)
        self.current = str(current)
        self.change = str(change)
        super().__init__(
            f"Stock for product {product_id} cannot go negative: "
            f"{current} + ({change})"
        )


# Amount and input errors


class InvalidAmountError(BillingError):
    """Amount is non-positive or exceeds the permitted limit."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Decimal, reason: str, limit: Decimal | None = None):
        self.amount = str(amount)
        self.reason = reason
        self.limit = str(limit) if limit is not None else None
        super().__init__(f"Invalid amount {amount}: {reason}")


class ValidationFailureError(BillingError):
    """Malformed input detected before any transaction starts."""

    code: str = "VALIDATION_FAILURE"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Integrity errors


class ImmutabilityViolationError(BillingError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
