"""
LedgerEngine -- the operations the HTTP collaborator calls.

Responsibility:
    Turns request payloads into normalized inputs, opens one session per
    call from the injected ``Database`` and dispatches to the module
    service that owns the transaction.  Reads go through the selectors.

Architecture position:
    Services -- the outermost layer of the core.  Request shaping, auth
    and tenant resolution happen in front of it; it never converts or
    swallows the typed BillingError subclasses the modules raise.

Usage:
    engine = LedgerEngine(database, actor_id, settings=settings.ledger)
    invoice = engine.create_document("INVOICE", tenant_id, payload)
    engine.record_payment(tenant_id, invoice.id, "100.00", "UPI")
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from billing_config.schema import LedgerSettings
from billing_kernel.db.engine import Database
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.dtos import (
    CreditNoteStatus,
    DocumentRecord,
    DocumentType,
    InventoryLogRecord,
    PaymentRecord,
    ProductRecord,
)
from billing_kernel.exceptions import InvalidStateError, ValidationFailureError
from billing_kernel.logging_config import LogContext
from billing_kernel.selectors.inventory_selector import InventorySelector
from billing_kernel.selectors.ledger_selector import LedgerSelector
from billing_modules.credit_notes.service import CreditNoteService
from billing_modules.documents.models import (
    BulkAllocationInput,
    DocumentInput,
    ReturnLineInput,
    parse_date,
    parse_enum,
    parse_optional_decimal,
    snake_keys,
)
from billing_modules.estimates.service import EstimateService
from billing_modules.inventory.service import InventoryService
from billing_modules.invoicing.service import InvoiceService
from billing_modules.payments.service import PaymentService


def _items(payloads: Sequence[Mapping[str, Any]] | None, parse) -> list:
    if not payloads:
        raise ValidationFailureError("At least one entry is required", field="items")
    return [parse(payload) for payload in payloads]


class LedgerEngine:
    """
    Façade over the billing modules for one acting user.

    Cheap to construct; build one per request with the authenticated
    actor.  The ``Database`` is shared and owned by the process.
    """

    def __init__(
        self,
        database: Database,
        actor_id: UUID,
        *,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        correlation_id: str | None = None,
    ):
        self._db = database
        self._actor_id = actor_id
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings()
        self._correlation_id = correlation_id

    @contextmanager
    def _session(self, tenant_id: UUID, document_id: UUID | None = None) -> Iterator[Session]:
        session = self._db.session()
        with LogContext.bind(
            correlation_id=self._correlation_id,
            tenant_id=str(tenant_id),
            actor_id=str(self._actor_id),
            document_id=str(document_id) if document_id else None,
        ):
            try:
                yield session
            finally:
                session.close()

    def _service(self, cls, session: Session):
        return cls(session, self._actor_id, self._clock, self._settings)

    @staticmethod
    def _document_type(value: Any) -> DocumentType:
        document_type = parse_enum(DocumentType, value, "document_type")
        if document_type is None:
            raise ValidationFailureError("document_type is required", field="document_type")
        return document_type

    # =========================================================================
    # Documents
    # =========================================================================

    def create_document(
        self, document_type: Any, tenant_id: UUID, payload: Mapping[str, Any]
    ) -> DocumentRecord:
        """Create an invoice, estimate or credit note from a client payload."""
        document_type = self._document_type(document_type)
        data = DocumentInput.from_payload(payload)
        with self._session(tenant_id) as session:
            if document_type == DocumentType.INVOICE:
                return self._service(InvoiceService, session).create_invoice(tenant_id, data)
            if document_type == DocumentType.ESTIMATE:
                return self._service(EstimateService, session).create_estimate(tenant_id, data)
            return self._service(CreditNoteService, session).create_credit_note(tenant_id, data)

    def update_document(
        self, tenant_id: UUID, document_id: UUID, payload: Mapping[str, Any]
    ) -> DocumentRecord:
        """
        Replace a document's party, items and totals.

        Invoices must be DRAFT; estimates must not be INVOICED.  Credit
        notes are not edited in place: void or delete and raise a new one.
        """
        data = DocumentInput.from_payload(payload)
        with self._session(tenant_id, document_id) as session:
            document_type = LedgerSelector(session).find_document_type(tenant_id, document_id)
            if document_type == DocumentType.INVOICE:
                return self._service(InvoiceService, session).update_invoice(
                    tenant_id, document_id, data
                )
            if document_type == DocumentType.ESTIMATE:
                return self._service(EstimateService, session).update_estimate(
                    tenant_id, document_id, data
                )
            raise InvalidStateError("Credit notes cannot be edited; void or delete them instead")

    def void_document(self, tenant_id: UUID, document_id: UUID) -> DocumentRecord:
        """Void an unpaid invoice or an unapplied credit note."""
        with self._session(tenant_id, document_id) as session:
            document_type = LedgerSelector(session).find_document_type(tenant_id, document_id)
            if document_type == DocumentType.INVOICE:
                return self._service(InvoiceService, session).void_invoice(tenant_id, document_id)
            if document_type == DocumentType.CREDIT_NOTE:
                return self._service(CreditNoteService, session).update_status(
                    tenant_id, document_id, CreditNoteStatus.VOID.value
                )
            raise InvalidStateError("Estimates cannot be voided; decline or delete them instead")

    def delete_document(self, tenant_id: UUID, document_id: UUID) -> None:
        with self._session(tenant_id, document_id) as session:
            document_type = LedgerSelector(session).find_document_type(tenant_id, document_id)
            if document_type == DocumentType.INVOICE:
                self._service(InvoiceService, session).delete_invoice(tenant_id, document_id)
            elif document_type == DocumentType.ESTIMATE:
                self._service(EstimateService, session).delete_estimate(tenant_id, document_id)
            else:
                self._service(CreditNoteService, session).delete_credit_note(
                    tenant_id, document_id
                )

    def get_document(self, tenant_id: UUID, document_id: UUID) -> DocumentRecord:
        with self._session(tenant_id, document_id) as session:
            selector = LedgerSelector(session)
            document_type = selector.find_document_type(tenant_id, document_id)
            return selector.get_document(tenant_id, document_type, document_id)

    def mark_invoice_sent(self, tenant_id: UUID, invoice_id: UUID) -> DocumentRecord:
        with self._session(tenant_id, invoice_id) as session:
            return self._service(InvoiceService, session).mark_sent(tenant_id, invoice_id)

    def mark_invoice_viewed(self, tenant_id: UUID, invoice_id: UUID) -> DocumentRecord:
        with self._session(tenant_id, invoice_id) as session:
            return self._service(InvoiceService, session).mark_viewed(tenant_id, invoice_id)

    # =========================================================================
    # Estimates
    # =========================================================================

    def update_estimate_status(self, tenant_id: UUID, estimate_id: UUID, status: Any) -> DocumentRecord:
        with self._session(tenant_id, estimate_id) as session:
            return self._service(EstimateService, session).update_status(
                tenant_id, estimate_id, status
            )

    def duplicate_estimate(self, tenant_id: UUID, estimate_id: UUID) -> DocumentRecord:
        with self._session(tenant_id, estimate_id) as session:
            return self._service(EstimateService, session).duplicate_estimate(
                tenant_id, estimate_id
            )

    def convert_estimate(
        self,
        tenant_id: UUID,
        estimate_id: UUID,
        *,
        status: Any = None,
        due_date: Any = None,
    ) -> DocumentRecord:
        """Issue an invoice from an estimate.  Returns the new invoice."""
        due = parse_date(due_date, "due_date")
        with self._session(tenant_id, estimate_id) as session:
            return self._service(EstimateService, session).convert_to_invoice(
                tenant_id, estimate_id, status=status, due_date=due
            )

    # =========================================================================
    # Credit notes
    # =========================================================================

    def create_credit_note_from_invoice(
        self,
        tenant_id: UUID,
        invoice_id: UUID,
        returns: Sequence[Mapping[str, Any]],
        *,
        status: Any = None,
    ) -> DocumentRecord:
        lines = _items(returns, ReturnLineInput.from_payload)
        with self._session(tenant_id, invoice_id) as session:
            return self._service(CreditNoteService, session).create_from_invoice(
                tenant_id, invoice_id, lines, status=status
            )

    def update_credit_note_status(
        self, tenant_id: UUID, credit_note_id: UUID, status: Any
    ) -> DocumentRecord:
        with self._session(tenant_id, credit_note_id) as session:
            return self._service(CreditNoteService, session).update_status(
                tenant_id, credit_note_id, status
            )

    def apply_credit_note(
        self,
        tenant_id: UUID,
        credit_note_id: UUID,
        invoice_id: UUID,
        amount: Any = None,
    ) -> PaymentRecord:
        """Apply an OPEN credit note to an invoice.  Returns the synthetic payment."""
        value = parse_optional_decimal(amount, "amount")
        with self._session(tenant_id, credit_note_id) as session:
            return self._service(CreditNoteService, session).apply_to_invoice(
                tenant_id, credit_note_id, invoice_id, value
            )

    # =========================================================================
    # Payments
    # =========================================================================

    def record_payment(
        self,
        tenant_id: UUID,
        invoice_id: UUID,
        amount: Any,
        mode: Any = None,
        meta: Mapping[str, Any] | None = None,
    ) -> PaymentRecord:
        """``meta`` may carry payment_date, reference and notes."""
        meta = meta or {}
        with self._session(tenant_id, invoice_id) as session:
            return self._service(PaymentService, session).record_payment(
                tenant_id,
                invoice_id,
                amount,
                mode,
                payment_date=meta.get("payment_date"),
                reference=meta.get("reference"),
                notes=meta.get("notes"),
            )

    def record_bulk_payment(
        self,
        tenant_id: UUID,
        customer_id: UUID,
        allocations: Sequence[Mapping[str, Any]],
        *,
        total_amount: Any = None,
        mode: Any = None,
        meta: Mapping[str, Any] | None = None,
    ) -> PaymentRecord:
        """
        Record one payment split across invoices.  Returns the umbrella payment.

        ``total_amount`` defaults to the sum of the allocations; when given
        it must match that sum exactly.
        """
        lines = _items(allocations, BulkAllocationInput.from_payload)
        if total_amount is None:
            total_amount = sum((line.amount for line in lines), Decimal("0"))
        meta = meta or {}
        with self._session(tenant_id) as session:
            return self._service(PaymentService, session).record_bulk_payment(
                tenant_id,
                customer_id,
                total_amount,
                lines,
                mode,
                payment_date=meta.get("payment_date"),
                reference=meta.get("reference"),
                notes=meta.get("notes"),
            )

    def update_payment(
        self, tenant_id: UUID, payment_id: UUID, changes: Mapping[str, Any]
    ) -> PaymentRecord:
        with self._session(tenant_id) as session:
            return self._service(PaymentService, session).update_payment(
                tenant_id, payment_id, changes
            )

    def delete_payment(self, tenant_id: UUID, payment_id: UUID) -> None:
        with self._session(tenant_id) as session:
            self._service(PaymentService, session).delete_payment(tenant_id, payment_id)

    def payments_for_invoice(self, tenant_id: UUID, invoice_id: UUID) -> list[PaymentRecord]:
        with self._session(tenant_id, invoice_id) as session:
            return LedgerSelector(session).payments_for_invoice(tenant_id, invoice_id)

    # =========================================================================
    # Inventory
    # =========================================================================

    def create_product(self, tenant_id: UUID, payload: Mapping[str, Any]) -> ProductRecord:
        data = snake_keys(payload)
        with self._session(tenant_id) as session:
            return self._service(InventoryService, session).create_product(
                tenant_id,
                name=data.get("name"),
                type=data.get("type") or data.get("product_type"),
                selling_price=data.get("selling_price", data.get("price", "0")),
                tax_id=data.get("tax_id"),
                track_inventory=bool(data.get("track_inventory", False)),
                opening_stock=data.get("opening_stock"),
                sku=data.get("sku"),
                hsn_code=data.get("hsn_code"),
                sac_code=data.get("sac_code"),
                unit=data.get("unit"),
            )

    def adjust_stock(
        self,
        tenant_id: UUID,
        product_id: UUID,
        delta: Any,
        reason: Any = "ADJUSTMENT",
        notes: str | None = None,
    ) -> ProductRecord:
        with self._session(tenant_id) as session:
            return self._service(InventoryService, session).adjust_stock(
                tenant_id, product_id, delta, reason, notes
            )

    def inventory_history(self, tenant_id: UUID, product_id: UUID) -> list[InventoryLogRecord]:
        with self._session(tenant_id) as session:
            return InventorySelector(session).history(tenant_id, product_id)

    # =========================================================================
    # Customers
    # =========================================================================

    def get_customer_balance(self, tenant_id: UUID, customer_id: UUID) -> Decimal:
        """Cached balance as last written by the reconciler."""
        with self._session(tenant_id) as session:
            return LedgerSelector(session).customer_balance(tenant_id, customer_id)

    def outstanding_invoices(self, tenant_id: UUID, customer_id: UUID) -> list[DocumentRecord]:
        with self._session(tenant_id) as session:
            return LedgerSelector(session).outstanding_invoices(tenant_id, customer_id)
