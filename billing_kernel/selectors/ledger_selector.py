"""
LedgerSelector -- read side of documents, balances and payments.

All queries are tenant-scoped: a record belonging to another tenant is
reported exactly as a missing one.
"""

from decimal import Decimal

from sqlalchemy import select

from billing_kernel.db.base import UUID
from billing_kernel.domain.dtos import DocumentRecord, DocumentType, PaymentRecord
from billing_kernel.exceptions import (
    CustomerNotFoundError,
    DocumentNotFoundError,
    PaymentNotFoundError,
)
from billing_kernel.models.customer import Customer
from billing_kernel.models.document import CreditNote, Document, Estimate, Invoice
from billing_kernel.models.payment import Payment
from billing_kernel.selectors.base import BaseSelector
from billing_kernel.services.balance_reconciler import (
    EXCLUDED_INVOICE_STATUSES,
    OPEN_PAYMENT_STATUSES,
)

_DOCUMENT_CLASSES: dict[DocumentType, type[Document]] = {
    DocumentType.INVOICE: Invoice,
    DocumentType.ESTIMATE: Estimate,
    DocumentType.CREDIT_NOTE: CreditNote,
}


class LedgerSelector(BaseSelector):
    """Read-only queries over customers, documents and payments."""

    def customer_balance(self, tenant_id: UUID, customer_id: UUID) -> Decimal:
        """Cached, reconciler-maintained balance of the customer."""
        balance = self.session.execute(
            select(Customer.current_balance).where(
                Customer.id == customer_id,
                Customer.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if balance is None:
            raise CustomerNotFoundError(customer_id)
        return balance

    def get_document(
        self, tenant_id: UUID, document_type: DocumentType, document_id: UUID
    ) -> DocumentRecord:
        model = _DOCUMENT_CLASSES[document_type]
        document = self.session.execute(
            select(model).where(model.id == document_id, model.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(document_type.value, document_id)
        return document.to_dto()

    def find_document_type(self, tenant_id: UUID, document_id: UUID) -> DocumentType:
        """Return the type of a document, for callers that only hold its id."""
        value = self.session.execute(
            select(Document.document_type).where(
                Document.id == document_id, Document.tenant_id == tenant_id
            )
        ).scalar_one_or_none()
        if value is None:
            raise DocumentNotFoundError("Document", document_id)
        return DocumentType(value)

    def outstanding_invoices(self, tenant_id: UUID, customer_id: UUID) -> list[DocumentRecord]:
        """Issued, unpaid or partially paid invoices, oldest first."""
        rows = self.session.execute(
            select(Invoice)
            .where(
                Invoice.tenant_id == tenant_id,
                Invoice.customer_id == customer_id,
                Invoice.payment_status.in_(OPEN_PAYMENT_STATUSES),
                Invoice.status.not_in(EXCLUDED_INVOICE_STATUSES),
            )
            .order_by(Invoice.document_date, Invoice.number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def payments_for_invoice(self, tenant_id: UUID, invoice_id: UUID) -> list[PaymentRecord]:
        rows = self.session.execute(
            select(Payment)
            .where(Payment.tenant_id == tenant_id, Payment.invoice_id == invoice_id)
            .order_by(Payment.payment_date, Payment.payment_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def get_payment(self, tenant_id: UUID, payment_id: UUID) -> PaymentRecord:
        payment = self.session.execute(
            select(Payment).where(Payment.id == payment_id, Payment.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment.to_dto()
