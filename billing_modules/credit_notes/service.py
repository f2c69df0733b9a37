"""
Credit Notes Module Service - credits raised against a customer.

A credit note carries its own ``balance_amount`` that is drawn down as it
is applied to the customer's invoices.  Each application records a
synthetic CREDIT_NOTE payment on the invoice so the invoice's payment
history stays complete.

RETURN credit notes put the returned goods back in stock when created;
deleting a DRAFT note or voiding one takes that stock out again.

Lock order: tenant, credit note, invoice, products.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from billing_kernel.domain.dtos import (
    CreditNoteReason,
    CreditNoteStatus,
    DocumentRecord,
    DocumentType,
    InvoiceStatus,
    PaymentMode,
    PaymentRecord,
)
from billing_kernel.domain.values import ZERO
from billing_kernel.exceptions import (
    CreditNoteNotOpenError,
    CustomerMismatchError,
    DocumentNotEditableError,
    DocumentNotFoundError,
    InvalidAmountError,
    InvalidStateError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationFailureError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.document import CreditNote, Invoice
from billing_kernel.models.inventory_log import InventoryTransactionType
from billing_kernel.models.tenant import SequenceKind, Tenant
from billing_modules.base import ModuleService
from billing_modules.documents.models import DocumentInput, ReturnLineInput, enum_text
from billing_modules.payments.allocator import PaymentAllocator

logger = get_logger("modules.credit_notes.service")

_CREATABLE_STATUSES = (CreditNoteStatus.DRAFT.value, CreditNoteStatus.OPEN.value)

TRANSITIONS: dict[str, frozenset[str]] = {
    CreditNoteStatus.DRAFT.value: frozenset({CreditNoteStatus.OPEN.value, CreditNoteStatus.VOID.value}),
    CreditNoteStatus.OPEN.value: frozenset({CreditNoteStatus.CLOSED.value, CreditNoteStatus.VOID.value}),
    CreditNoteStatus.CLOSED.value: frozenset({CreditNoteStatus.VOID.value}),
    CreditNoteStatus.VOID.value: frozenset(),
}


class CreditNoteService(ModuleService):
    """Orchestrates credit notes.  Commits on success, rolls back on failure."""

    def __init__(self, session, actor_id, clock=None, settings=None):
        super().__init__(session, actor_id, clock, settings)
        self._allocator = PaymentAllocator(session, self._sequences, self._clock, actor_id)

    def _lock_credit_note(self, tenant_id: UUID, credit_note_id: UUID) -> CreditNote:
        return self._lock(
            CreditNote,
            tenant_id,
            credit_note_id,
            lambda: DocumentNotFoundError(DocumentType.CREDIT_NOTE.value, credit_note_id),
        )

    def _lock_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        return self._lock(
            Invoice,
            tenant_id,
            invoice_id,
            lambda: DocumentNotFoundError(DocumentType.INVOICE.value, invoice_id),
        )

    def _is_return(self, credit_note: CreditNote) -> bool:
        return credit_note.reason == CreditNoteReason.RETURN.value

    # =========================================================================
    # Create
    # =========================================================================

    def _issue(self, tenant: Tenant, data: DocumentInput, invoice: Invoice | None) -> CreditNote:
        status = data.status or CreditNoteStatus.DRAFT.value
        if status not in _CREATABLE_STATUSES:
            raise ValidationFailureError(
                f"A new credit note must be DRAFT or OPEN, got {status}", field="status"
            )
        reason = data.reason or CreditNoteReason.RETURN

        credit_note = CreditNote(
            tenant_id=tenant.id,
            status=status,
            reason=reason.value,
            invoice_id=invoice.id if invoice is not None else None,
            document_date=data.document_date or self._clock.today(),
            notes=data.notes,
            terms=data.terms,
            created_by_id=self._actor_id,
        )
        self._builder.assign_party(
            credit_note,
            tenant,
            data,
            fallback_place=invoice.place_of_supply if invoice is not None else None,
        )
        products = self._builder.load_products(tenant.id, data.items, require_active=False)
        self._builder.populate(credit_note, tenant, data, products)

        credit_note.number = self._sequences.next_number(
            tenant.id,
            SequenceKind.CREDIT_NOTE,
            seed=self._count(
                CreditNote,
                tenant.id,
                CreditNote.document_type == DocumentType.CREDIT_NOTE.value,
            ),
        )
        credit_note.balance_amount = credit_note.total_amount
        self._session.add(credit_note)
        self._session.flush()

        if self._is_return(credit_note):
            self._move_stock(
                credit_note,
                products,
                InventoryTransactionType.RETURN,
                f"Return via Credit Note {credit_note.number}",
                sign=1,
            )

        logger.info(
            "credit_note_created",
            extra={
                "credit_note_number": credit_note.number,
                "reason": credit_note.reason,
                "invoice_id": str(credit_note.invoice_id) if credit_note.invoice_id else None,
                "total_amount": str(credit_note.total_amount),
            },
        )
        return credit_note

    def create_credit_note(self, tenant_id: UUID, data: DocumentInput) -> DocumentRecord:
        """
        Create a credit note for a customer, optionally against one of its invoices.

        Raises:
            ValidationFailureError: no customer given.
            CustomerMismatchError: the invoice belongs to another customer.
        """
        if data.customer_id is None:
            raise ValidationFailureError("A credit note needs a customer", field="customer_id")
        try:
            tenant = self._sequences.lock_tenant(tenant_id)
            invoice = None
            if data.invoice_id is not None:
                invoice = self._lock_invoice(tenant_id, data.invoice_id)
                if invoice.customer_id != data.customer_id:
                    raise CustomerMismatchError("Credit note", f"Invoice {invoice.number}")
            credit_note = self._issue(tenant, data, invoice)
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise
        return credit_note.to_dto()

    def create_from_invoice(
        self,
        tenant_id: UUID,
        invoice_id: UUID,
        returns: Sequence[ReturnLineInput],
        *,
        status: str | None = None,
    ) -> DocumentRecord:
        """
        Raise a RETURN credit note for part of an invoice.

        Each returned line copies the invoice line's snapshot (rate, tax,
        discount prorated to the returned quantity).
        """
        if not returns:
            raise ValidationFailureError("Nothing to return", field="items")
        try:
            tenant = self._sequences.lock_tenant(tenant_id)
            invoice = self._lock_invoice(tenant_id, invoice_id)
            if invoice.customer_id is None:
                raise ValidationFailureError(
                    f"Invoice {invoice.number} has no customer to credit", field="invoice_id"
                )
            if invoice.status == InvoiceStatus.VOID.value:
                raise InvalidStateError(f"Invoice {invoice.number} is void")

            lines = {line.id: line for line in invoice.line_items}
            items = []
            for requested in returns:
                line = lines.get(requested.invoice_item_id)
                if line is None:
                    raise NotFoundError("InvoiceItem", requested.invoice_item_id)
                if requested.quantity > line.quantity:
                    raise ValidationFailureError(
                        f"Return quantity exceeds original quantity for {line.name}",
                        field="quantity",
                    )
                items.append(self._builder.line_input(line, requested.quantity))

            data = DocumentInput(
                items=tuple(items),
                customer_id=invoice.customer_id,
                place_of_supply=invoice.place_of_supply,
                invoice_id=invoice.id,
                reason=CreditNoteReason.RETURN,
                status=status,
                notes=f"Return for Invoice {invoice.number}",
            )
            credit_note = self._issue(tenant, data, invoice)
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise
        return credit_note.to_dto()

    # =========================================================================
    # Status / delete
    # =========================================================================

    def update_status(self, tenant_id: UUID, credit_note_id: UUID, status: str) -> DocumentRecord:
        """
        Move a credit note along DRAFT -> OPEN -> CLOSED, or to VOID.

        VOID is terminal and only allowed while nothing has been applied.
        Voiding a RETURN note takes the returned stock back out.
        """
        status = enum_text(status)
        if status not in TRANSITIONS:
            raise ValidationFailureError(
                f"Credit note status must be one of {sorted(TRANSITIONS)}, got {status}",
                field="status",
            )
        try:
            credit_note = self._lock_credit_note(tenant_id, credit_note_id)
            if status not in TRANSITIONS[credit_note.status]:
                raise InvalidStatusTransitionError(credit_note.number, credit_note.status, status)

            if status == CreditNoteStatus.VOID.value:
                if credit_note.balance_amount != credit_note.total_amount:
                    raise InvalidStateError(
                        f"Credit note {credit_note.number} has been applied to invoices"
                    )
                if self._is_return(credit_note):
                    products = self._builder.load_products(
                        tenant_id, credit_note.line_items, require_active=False
                    )
                    self._move_stock(
                        credit_note,
                        products,
                        InventoryTransactionType.ADJUSTMENT,
                        f"Reversed on void of Credit Note {credit_note.number}",
                        sign=-1,
                    )
                credit_note.balance_amount = ZERO

            previous = credit_note.status
            credit_note.status = status
            credit_note.updated_by_id = self._actor_id
            self._session.flush()
            logger.info(
                "credit_note_status_changed",
                extra={
                    "credit_note_number": credit_note.number,
                    "from_status": previous,
                    "to_status": status,
                },
            )
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise
        return credit_note.to_dto()

    def delete_credit_note(self, tenant_id: UUID, credit_note_id: UUID) -> None:
        """Delete a DRAFT credit note, reversing any RETURN restock."""
        try:
            credit_note = self._lock_credit_note(tenant_id, credit_note_id)
            if credit_note.status != CreditNoteStatus.DRAFT.value:
                raise DocumentNotEditableError(credit_note.number, credit_note.status)

            if self._is_return(credit_note):
                products = self._builder.load_products(
                    tenant_id, credit_note.line_items, require_active=False
                )
                self._move_stock(
                    credit_note,
                    products,
                    InventoryTransactionType.ADJUSTMENT,
                    f"Reversed on deletion of Credit Note {credit_note.number}",
                    sign=-1,
                )
            number = credit_note.number
            self._session.delete(credit_note)
            self._session.flush()
            logger.info("credit_note_deleted", extra={"credit_note_number": number})
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Apply
    # =========================================================================

    def apply_to_invoice(
        self,
        tenant_id: UUID,
        credit_note_id: UUID,
        invoice_id: UUID,
        amount: Decimal | None = None,
    ) -> PaymentRecord:
        """
        Apply part or all of an OPEN credit note to one of the customer's invoices.

        ``amount`` defaults to the smaller of the credit note balance and the
        invoice balance due.  The note closes when its balance reaches zero.

        Raises:
            CreditNoteNotOpenError, CustomerMismatchError,
            InvoiceNotPayableError, InvalidAmountError.
        """
        try:
            self._sequences.lock_tenant(tenant_id)
            credit_note = self._lock_credit_note(tenant_id, credit_note_id)
            invoice = self._lock_invoice(tenant_id, invoice_id)

            if credit_note.status != CreditNoteStatus.OPEN.value:
                raise CreditNoteNotOpenError(credit_note.number, credit_note.status)
            if credit_note.customer_id != invoice.customer_id:
                raise CustomerMismatchError(
                    f"Credit note {credit_note.number}", f"Invoice {invoice.number}"
                )
            self._allocator.check_open(invoice)

            if amount is None:
                amount = min(credit_note.balance_amount, invoice.balance_due)
            if amount <= ZERO:
                raise InvalidAmountError(amount, "amount must be positive")
            if amount > credit_note.balance_amount:
                raise InvalidAmountError(
                    amount,
                    "amount exceeds credit note balance",
                    limit=credit_note.balance_amount,
                )

            payment = self._allocator.record(
                invoice,
                amount,
                PaymentMode.CREDIT_NOTE,
                reference=credit_note.number,
                notes=f"Applied from Credit Note {credit_note.number}",
                credit_note_id=credit_note.id,
            )

            credit_note.balance_amount = credit_note.balance_amount - amount
            credit_note.status = (
                CreditNoteStatus.CLOSED.value
                if credit_note.balance_amount == ZERO
                else CreditNoteStatus.OPEN.value
            )
            credit_note.updated_by_id = self._actor_id
            self._session.flush()

            logger.info(
                "credit_note_applied",
                extra={
                    "credit_note_number": credit_note.number,
                    "invoice_number": invoice.number,
                    "amount": str(amount),
                    "credit_note_balance": str(credit_note.balance_amount),
                    "invoice_balance_due": str(invoice.balance_due),
                },
            )
            self._commit(tenant_id, [invoice.customer_id])
        except Exception:
            self._session.rollback()
            raise
        return payment.to_dto()
