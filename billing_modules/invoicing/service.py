"""
Invoicing Module Service - issues, edits, voids and deletes invoices.

Thin glue layer that:
1. Locks the tenant row (sequence allocation) and the product rows
2. Calls DocumentBuilder/GSTTaxCalculator for lines and totals
3. Calls InventoryLedger for every stock movement (SALE out, ADJUSTMENT back)
4. Calls BalanceReconciler for the customer after commit

Stock is decremented when the invoice is created, whether DRAFT or SENT,
and restored when a DRAFT is edited or deleted or an unpaid invoice is
voided.

Usage:
    service = InvoiceService(session, actor_id, clock)
    record = service.create_invoice(tenant_id, DocumentInput.from_payload(payload))
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from billing_kernel.domain.dtos import (
    CreditNoteStatus,
    DocumentRecord,
    DocumentType,
    EstimateStatus,
    InvoiceStatus,
    PaymentStatus,
)
from billing_kernel.domain.values import ZERO
from billing_kernel.exceptions import (
    DocumentNotEditableError,
    DocumentNotFoundError,
    DocumentNotVoidableError,
    InvalidStateError,
    InvalidStatusTransitionError,
    ValidationFailureError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.document import CreditNote, Estimate, Invoice
from billing_kernel.models.inventory_log import InventoryTransactionType
from billing_kernel.models.payment import Payment
from billing_kernel.models.tenant import SequenceKind, Tenant
from billing_modules.base import ModuleService
from billing_modules.documents.models import DocumentInput

logger = get_logger("modules.invoicing.service")

_CREATABLE_STATUSES = (InvoiceStatus.DRAFT.value, InvoiceStatus.SENT.value)


class InvoiceService(ModuleService):
    """
    Orchestrates the invoice lifecycle.

    Transaction boundary: every public method commits on success and rolls
    back on failure.  ``issue_invoice`` is the exception: it only flushes,
    so estimate conversion can run it inside its own transaction.
    """

    def _lock_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        return self._lock(
            Invoice,
            tenant_id,
            invoice_id,
            lambda: DocumentNotFoundError(DocumentType.INVOICE.value, invoice_id),
        )

    # =========================================================================
    # Create
    # =========================================================================

    def issue_invoice(
        self,
        tenant: Tenant,
        data: DocumentInput,
        *,
        estimate_id: UUID | None = None,
    ) -> Invoice:
        """
        Build, number and persist an invoice and take its stock.  Flush only.

        Preconditions: the tenant row is locked by the caller.
        """
        status = data.status or InvoiceStatus.DRAFT.value
        if status not in _CREATABLE_STATUSES:
            raise ValidationFailureError(
                f"A new invoice must be DRAFT or SENT, got {status}", field="status"
            )

        invoice = Invoice(
            tenant_id=tenant.id,
            status=status,
            payment_status=PaymentStatus.UNPAID.value,
            document_date=data.document_date or self._clock.today(),
            due_date=data.due_date,
            estimate_id=estimate_id,
            notes=data.notes,
            terms=data.terms,
            created_by_id=self._actor_id,
        )
        self._builder.assign_party(invoice, tenant, data)
        products = self._builder.load_products(tenant.id, data.items)
        self._builder.populate(invoice, tenant, data, products)
        self._builder.check_stock(
            self._builder.stocked_quantities(invoice.line_items, products), products
        )

        invoice.number = self._sequences.next_number(
            tenant.id,
            SequenceKind.INVOICE,
            seed=self._count(
                Invoice, tenant.id, Invoice.document_type == DocumentType.INVOICE.value
            ),
        )
        invoice.balance_due = invoice.total_amount
        if status == InvoiceStatus.SENT.value:
            invoice.sent_at = self._clock.now()

        self._session.add(invoice)
        self._session.flush()

        self._move_stock(
            invoice,
            products,
            InventoryTransactionType.SALE,
            f"Sale via Invoice {invoice.number}",
            sign=-1,
        )
        logger.info(
            "invoice_created",
            extra={
                "invoice_number": invoice.number,
                "status": invoice.status,
                "customer_id": str(invoice.customer_id) if invoice.customer_id else None,
                "line_count": len(invoice.line_items),
                "total_amount": str(invoice.total_amount),
                "is_inter_state": invoice.is_inter_state,
            },
        )
        return invoice

    def create_invoice(self, tenant_id: UUID, data: DocumentInput) -> DocumentRecord:
        """
        Create an invoice in DRAFT (default) or SENT.

        Raises:
            TenantNotFoundError, CustomerNotFoundError, ProductNotFoundError,
            ProductInactiveError, InsufficientStockError, ValidationFailureError.
        """
        try:
            tenant = self._sequences.lock_tenant(tenant_id)
            invoice = self.issue_invoice(tenant, data)
            self._commit(tenant_id, [invoice.customer_id])
        except Exception:
            self._session.rollback()
            raise
        return invoice.to_dto()

    # =========================================================================
    # Update (delete-and-recreate)
    # =========================================================================

    def update_invoice(self, tenant_id: UUID, invoice_id: UUID, data: DocumentInput) -> DocumentRecord:
        """
        Replace a DRAFT invoice's party, items and totals.

        The old lines' stock is restored, the lines are deleted, and the new
        lines run through the creation path again.  The number is kept.
        """
        try:
            tenant = self._sequences.lock_tenant(tenant_id)
            invoice = self._lock_invoice(tenant_id, invoice_id)
            if invoice.status != InvoiceStatus.DRAFT.value:
                raise DocumentNotEditableError(invoice.number, invoice.status)
            if data.status not in (None, InvoiceStatus.DRAFT.value):
                raise ValidationFailureError(
                    "Use mark_sent to change an invoice's status", field="status"
                )
            previous_customer = invoice.customer_id

            old_ids = {line.product_id for line in invoice.line_items if line.product_id}
            new_ids = {item.product_id for item in data.items if item.product_id}
            products = self._ledger.lock_products(tenant_id, sorted(old_ids | new_ids, key=str))

            self._move_stock(
                invoice,
                products,
                InventoryTransactionType.ADJUSTMENT,
                f"Restored on update of Invoice {invoice.number}",
                sign=1,
            )

            self._builder.assign_party(invoice, tenant, data)
            products.update(self._builder.load_products(tenant_id, data.items))
            self._builder.populate(invoice, tenant, data, products)
            self._builder.check_stock(
                self._builder.stocked_quantities(invoice.line_items, products), products
            )

            invoice.document_date = data.document_date or invoice.document_date
            invoice.due_date = data.due_date
            invoice.notes = data.notes
            invoice.terms = data.terms
            invoice.balance_due = invoice.total_amount
            invoice.updated_by_id = self._actor_id
            self._session.flush()

            self._move_stock(
                invoice,
                products,
                InventoryTransactionType.SALE,
                f"Sale via Invoice {invoice.number}",
                sign=-1,
            )
            logger.info(
                "invoice_updated",
                extra={
                    "invoice_number": invoice.number,
                    "line_count": len(invoice.line_items),
                    "total_amount": str(invoice.total_amount),
                },
            )
            self._commit(tenant_id, [previous_customer, invoice.customer_id])
        except Exception:
            self._session.rollback()
            raise
        return invoice.to_dto()

    # =========================================================================
    # Void / delete
    # =========================================================================

    def void_invoice(self, tenant_id: UUID, invoice_id: UUID) -> DocumentRecord:
        """
        Void an invoice with no payments and no live credit notes.

        Stock for every tracked line comes back through ADJUSTMENT entries
        and the balance due drops to zero.
        """
        try:
            invoice = self._lock_invoice(tenant_id, invoice_id)
            if invoice.status == InvoiceStatus.VOID.value:
                raise DocumentNotVoidableError(invoice.number, "already void")
            has_payments = self._session.execute(
                select(func.count(Payment.id)).where(Payment.invoice_id == invoice.id)
            ).scalar_one()
            if invoice.payment_status != PaymentStatus.UNPAID.value or has_payments:
                raise DocumentNotVoidableError(invoice.number, "payments have been recorded")
            credited = self._session.execute(
                select(func.count(CreditNote.id)).where(
                    CreditNote.invoice_id == invoice.id,
                    CreditNote.status != CreditNoteStatus.VOID.value,
                )
            ).scalar_one()
            if credited:
                raise DocumentNotVoidableError(
                    invoice.number, "credit notes have been raised against it"
                )

            products = self._builder.load_products(
                tenant_id, invoice.line_items, require_active=False
            )
            self._move_stock(
                invoice,
                products,
                InventoryTransactionType.ADJUSTMENT,
                f"Restored on void of Invoice {invoice.number}",
                sign=1,
            )
            invoice.status = InvoiceStatus.VOID.value
            invoice.balance_due = ZERO
            invoice.voided_at = self._clock.now()
            invoice.updated_by_id = self._actor_id
            self._session.flush()

            logger.info(
                "invoice_voided",
                extra={"invoice_number": invoice.number, "total_amount": str(invoice.total_amount)},
            )
            self._commit(tenant_id, [invoice.customer_id])
        except Exception:
            self._session.rollback()
            raise
        return invoice.to_dto()

    def delete_invoice(self, tenant_id: UUID, invoice_id: UUID) -> None:
        """Delete a DRAFT invoice, restoring its stock."""
        try:
            invoice = self._lock_invoice(tenant_id, invoice_id)
            if invoice.status != InvoiceStatus.DRAFT.value:
                raise DocumentNotEditableError(invoice.number, invoice.status)
            credited = self._session.execute(
                select(func.count(CreditNote.id)).where(CreditNote.invoice_id == invoice.id)
            ).scalar_one()
            if credited:
                raise InvalidStateError(
                    f"Invoice {invoice.number} has credit notes raised against it"
                )

            products = self._builder.load_products(
                tenant_id, invoice.line_items, require_active=False
            )
            self._move_stock(
                invoice,
                products,
                InventoryTransactionType.ADJUSTMENT,
                f"Restored on deletion of Invoice {invoice.number}",
                sign=1,
            )

            if invoice.estimate_id is not None:
                estimate = self._session.get(Estimate, invoice.estimate_id)
                if estimate is not None and estimate.status == EstimateStatus.INVOICED.value:
                    estimate.status = EstimateStatus.ACCEPTED.value
                    estimate.updated_by_id = self._actor_id

            customer_id = invoice.customer_id
            number = invoice.number
            self._session.delete(invoice)
            self._session.flush()

            logger.info("invoice_deleted", extra={"invoice_number": number})
            self._commit(tenant_id, [customer_id])
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Status
    # =========================================================================

    def _advance(self, tenant_id: UUID, invoice_id: UUID, to_status: InvoiceStatus, allowed_from):
        try:
            invoice = self._lock_invoice(tenant_id, invoice_id)
            if invoice.status == to_status.value:
                self._session.rollback()
                return invoice.to_dto()
            if invoice.status not in allowed_from:
                raise InvalidStatusTransitionError(invoice.number, invoice.status, to_status.value)

            invoice.status = to_status.value
            if to_status == InvoiceStatus.SENT:
                invoice.sent_at = self._clock.now()
            else:
                invoice.viewed_at = self._clock.now()
            invoice.updated_by_id = self._actor_id
            self._session.flush()

            logger.info(
                "invoice_status_changed",
                extra={"invoice_number": invoice.number, "status": invoice.status},
            )
            self._commit(tenant_id, [invoice.customer_id])
        except Exception:
            self._session.rollback()
            raise
        return invoice.to_dto()

    def mark_sent(self, tenant_id: UUID, invoice_id: UUID) -> DocumentRecord:
        """DRAFT -> SENT.  The invoice starts counting towards the customer balance."""
        return self._advance(
            tenant_id, invoice_id, InvoiceStatus.SENT, (InvoiceStatus.DRAFT.value,)
        )

    def mark_viewed(self, tenant_id: UUID, invoice_id: UUID) -> DocumentRecord:
        """SENT -> VIEWED."""
        return self._advance(
            tenant_id, invoice_id, InvoiceStatus.VIEWED, (InvoiceStatus.SENT.value,)
        )
