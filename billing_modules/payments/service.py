"""
Payments Module Service - money received against invoices.

Single payments, bulk payments split across several invoices, metadata
edits and deletion.  Amount checks and the balance/status arithmetic live
in PaymentAllocator; this layer owns locking and the transaction boundary.

Bulk payments:
    One umbrella row (``is_bulk``, no invoice) carries the declared total.
    Every allocation becomes a child payment linked through
    ``parent_payment_id`` and noted "Part of bulk payment PAY-...".

Lock order: tenant, credit note, invoices (id order).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any
from uuid import UUID

from billing_kernel.domain.dtos import (
    CreditNoteStatus,
    DocumentType,
    PaymentMode,
    PaymentRecord,
)
from billing_kernel.domain.values import ZERO
from billing_kernel.exceptions import (
    CustomerMismatchError,
    DocumentNotFoundError,
    InvalidAmountError,
    InvalidStateError,
    PaymentNotFoundError,
    ValidationFailureError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.document import CreditNote, Invoice
from billing_kernel.models.payment import PAYMENT_MUTABLE_FIELDS, Payment
from billing_modules.base import ModuleService
from billing_modules.documents.models import (
    BulkAllocationInput,
    parse_date,
    parse_decimal,
    parse_enum,
    snake_keys,
)
from billing_modules.payments.allocator import PaymentAllocator

logger = get_logger("modules.payments.service")


def parse_mode(value: Any) -> PaymentMode:
    """Payment mode for a manual payment.  CREDIT_NOTE is reserved for applications."""
    mode = parse_enum(PaymentMode, value, "payment_mode") or PaymentMode.CASH
    if mode == PaymentMode.CREDIT_NOTE:
        raise ValidationFailureError(
            "Apply the credit note instead of recording a CREDIT_NOTE payment",
            field="payment_mode",
        )
    return mode


class PaymentService(ModuleService):
    """Records, edits and deletes payments.  Commits on success, rolls back on failure."""

    def __init__(self, session, actor_id, clock=None, settings=None):
        super().__init__(session, actor_id, clock, settings)
        self._allocator = PaymentAllocator(session, self._sequences, self._clock, actor_id)

    def _lock_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        return self._lock(
            Invoice,
            tenant_id,
            invoice_id,
            lambda: DocumentNotFoundError(DocumentType.INVOICE.value, invoice_id),
        )

    def _lock_payment(self, tenant_id: UUID, payment_id: UUID) -> Payment:
        return self._lock(
            Payment, tenant_id, payment_id, lambda: PaymentNotFoundError(payment_id)
        )

    # =========================================================================
    # Record
    # =========================================================================

    def record_payment(
        self,
        tenant_id: UUID,
        invoice_id: UUID,
        amount: Any,
        mode: Any = PaymentMode.CASH,
        *,
        payment_date: Any = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> PaymentRecord:
        """
        Record one payment against an invoice.

        Raises:
            DocumentNotFoundError: invoice missing or in another tenant.
            InvoiceNotPayableError: invoice is VOID or already PAID.
            InvalidAmountError: amount <= 0, finer than a paisa, or above the balance due.
        """
        amount = parse_decimal(amount, "amount")
        mode = parse_mode(mode)
        paid_on = parse_date(payment_date, "payment_date")
        try:
            self._sequences.lock_tenant(tenant_id)
            invoice = self._lock_invoice(tenant_id, invoice_id)
            payment = self._allocator.record(
                invoice,
                amount,
                mode,
                payment_date=paid_on,
                reference=reference,
                notes=notes,
            )
            self._commit(tenant_id, [invoice.customer_id])
        except Exception:
            self._session.rollback()
            raise
        return payment.to_dto()

    def record_bulk_payment(
        self,
        tenant_id: UUID,
        customer_id: UUID,
        total_amount: Any,
        allocations: Sequence[BulkAllocationInput],
        mode: Any = PaymentMode.CASH,
        *,
        payment_date: Any = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> PaymentRecord:
        """
        Split one receipt across several invoices of the same customer.

        All allocations are validated and applied in one transaction; if any
        of them fails nothing is recorded.

        Raises:
            InvalidAmountError: allocations do not add up to the total, or
                one of them exceeds its invoice's balance due.
            CustomerMismatchError: an invoice belongs to another customer.
            InvoiceNotPayableError: an invoice is VOID or already PAID.
        """
        total_amount = parse_decimal(total_amount, "total_amount")
        mode = parse_mode(mode)
        paid_on = parse_date(payment_date, "payment_date")
        if not allocations:
            raise ValidationFailureError("A bulk payment needs allocations", field="allocations")
        invoice_ids = [allocation.invoice_id for allocation in allocations]
        if len(set(invoice_ids)) != len(invoice_ids):
            raise ValidationFailureError(
                "Each invoice may appear only once in a bulk payment", field="allocations"
            )
        allocated = sum((allocation.amount for allocation in allocations), ZERO)
        if total_amount <= ZERO:
            raise InvalidAmountError(total_amount, "amount must be positive")
        if allocated != total_amount:
            raise InvalidAmountError(
                total_amount, f"allocations add up to {allocated}", limit=allocated
            )

        try:
            self._sequences.lock_tenant(tenant_id)
            self._builder.get_customer(tenant_id, customer_id)
            invoices = {
                invoice_id: self._lock_invoice(tenant_id, invoice_id)
                for invoice_id in sorted(invoice_ids, key=str)
            }
            for invoice in invoices.values():
                if invoice.customer_id != customer_id:
                    raise CustomerMismatchError("Bulk payment", f"Invoice {invoice.number}")
            for allocation in allocations:
                self._allocator.check_payable(invoices[allocation.invoice_id], allocation.amount)

            umbrella = Payment(
                tenant_id=tenant_id,
                payment_number=self._allocator.next_payment_number(tenant_id),
                customer_id=customer_id,
                invoice_id=None,
                payment_date=paid_on or self._clock.today(),
                amount=total_amount,
                payment_mode=mode.value,
                reference=reference,
                notes=notes,
                is_bulk=True,
                created_by_id=self._actor_id,
            )
            self._session.add(umbrella)
            self._session.flush()

            for allocation in allocations:
                self._allocator.record(
                    invoices[allocation.invoice_id],
                    allocation.amount,
                    mode,
                    payment_date=umbrella.payment_date,
                    reference=reference,
                    notes=f"Part of bulk payment {umbrella.payment_number}",
                    parent=umbrella,
                )

            logger.info(
                "bulk_payment_recorded",
                extra={
                    "payment_number": umbrella.payment_number,
                    "customer_id": str(customer_id),
                    "amount": str(total_amount),
                    "allocation_count": len(allocations),
                },
            )
            self._commit(tenant_id, [customer_id])
        except Exception:
            self._session.rollback()
            raise
        return umbrella.to_dto()

    # =========================================================================
    # Edit / delete
    # =========================================================================

    def update_payment(
        self, tenant_id: UUID, payment_id: UUID, changes: Mapping[str, Any]
    ) -> PaymentRecord:
        """Change payment_date, reference or notes.  Anything else is rejected."""
        data = snake_keys(changes)
        unknown = sorted(set(data) - PAYMENT_MUTABLE_FIELDS)
        if unknown:
            raise ValidationFailureError(
                f"Only {sorted(PAYMENT_MUTABLE_FIELDS)} can be changed, got {unknown}",
                field=unknown[0],
            )
        payment_date: date | None = None
        if "payment_date" in data:
            payment_date = parse_date(data["payment_date"], "payment_date")
            if payment_date is None:
                raise ValidationFailureError("payment_date cannot be cleared", field="payment_date")

        try:
            payment = self._lock_payment(tenant_id, payment_id)
            if payment_date is not None:
                payment.payment_date = payment_date
            if "reference" in data:
                payment.reference = data["reference"]
            if "notes" in data:
                payment.notes = data["notes"]
            payment.updated_by_id = self._actor_id
            self._session.flush()
            logger.info(
                "payment_updated",
                extra={"payment_number": payment.payment_number, "fields": sorted(data)},
            )
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise
        return payment.to_dto()

    def delete_payment(self, tenant_id: UUID, payment_id: UUID) -> None:
        """
        Delete a payment and put its amount back on the invoice.

        Deleting a bulk payment reverses every allocation.  Deleting a
        credit-note application restores the credit note's balance and
        reopens it.  A single allocation of a bulk payment cannot be
        deleted on its own.
        """
        try:
            self._sequences.lock_tenant(tenant_id)
            payment = self._lock_payment(tenant_id, payment_id)
            if payment.parent_payment_id is not None:
                raise InvalidStateError(
                    f"Payment {payment.payment_number} is part of a bulk payment; "
                    "delete the bulk payment instead"
                )

            if payment.credit_note_id is not None:
                credit_note = self._lock(
                    CreditNote,
                    tenant_id,
                    payment.credit_note_id,
                    lambda: DocumentNotFoundError(
                        DocumentType.CREDIT_NOTE.value, payment.credit_note_id
                    ),
                )
                credit_note.balance_amount = credit_note.balance_amount + payment.amount
                if credit_note.status == CreditNoteStatus.CLOSED.value:
                    credit_note.status = CreditNoteStatus.OPEN.value
                credit_note.updated_by_id = self._actor_id

            reversed_rows = payment.allocations if payment.is_bulk else [payment]
            for row in sorted(reversed_rows, key=lambda r: str(r.invoice_id)):
                if row.invoice_id is None:
                    continue
                invoice = self._lock_invoice(tenant_id, row.invoice_id)
                self._allocator.unsettle(invoice, row.amount)

            customer_id = payment.customer_id
            number = payment.payment_number
            self._session.delete(payment)
            self._session.flush()

            logger.info(
                "payment_deleted",
                extra={
                    "payment_number": number,
                    "is_bulk": payment.is_bulk,
                    "reversed_count": len(reversed_rows),
                },
            )
            self._commit(tenant_id, [customer_id])
        except Exception:
            self._session.rollback()
            raise
