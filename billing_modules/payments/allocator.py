"""
PaymentAllocator - moves money onto and off invoice balances.

Flush-only helper shared by the payment and credit-note services.  It
validates an amount against an invoice, writes the Payment row, and keeps
``balance_due``/``payment_status`` in step:

    balance_due == 0            -> PAID
    0 < balance_due < total     -> PARTIALLY_PAID
    balance_due == total        -> UNPAID

The invoice ``status`` itself is only ever promoted DRAFT -> SENT here;
paid-ness lives in ``payment_status``.

Preconditions: the caller holds the tenant lock (for the payment number)
and the invoice row lock.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock
from billing_kernel.domain.dtos import InvoiceStatus, PaymentMode, PaymentStatus
from billing_kernel.domain.values import ZERO, round_money
from billing_kernel.exceptions import InvalidAmountError, InvoiceNotPayableError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.document import Invoice
from billing_kernel.models.payment import Payment
from billing_kernel.models.tenant import SequenceKind
from billing_kernel.services.sequence_service import SequenceAllocator

logger = get_logger("modules.payments.allocator")


class PaymentAllocator:
    """Applies and reverses payments against locked invoices."""

    def __init__(
        self,
        session: Session,
        sequences: SequenceAllocator,
        clock: Clock,
        actor_id: UUID,
    ):
        self._session = session
        self._sequences = sequences
        self._clock = clock
        self._actor_id = actor_id

    def next_payment_number(self, tenant_id: UUID) -> str:
        def seed() -> int:
            return self._session.execute(
                select(func.count(Payment.id)).where(Payment.tenant_id == tenant_id)
            ).scalar_one()

        return self._sequences.next_number(tenant_id, SequenceKind.PAYMENT, seed=seed)

    @staticmethod
    def check_open(invoice: Invoice) -> None:
        """Raises InvoiceNotPayableError when the invoice is VOID or already PAID."""
        if invoice.status == InvoiceStatus.VOID.value:
            raise InvoiceNotPayableError(invoice.number, "invoice is void")
        if invoice.payment_status == PaymentStatus.PAID.value:
            raise InvoiceNotPayableError(invoice.number, "invoice is already paid")

    @classmethod
    def check_payable(cls, invoice: Invoice, amount: Decimal) -> None:
        """
        Raises:
            InvoiceNotPayableError: invoice is VOID or already PAID.
            InvalidAmountError: amount <= 0, finer than a paisa, or above
                the balance due.
        """
        cls.check_open(invoice)
        if amount <= ZERO:
            raise InvalidAmountError(amount, "amount must be positive")
        if amount != round_money(amount):
            raise InvalidAmountError(amount, "amount has more than 2 decimal places")
        if amount > invoice.balance_due:
            raise InvalidAmountError(
                amount, "amount exceeds invoice balance due", limit=invoice.balance_due
            )

    def settle(self, invoice: Invoice, amount: Decimal) -> None:
        """Take ``amount`` off the balance due and re-derive payment status."""
        invoice.balance_due = invoice.balance_due - amount
        invoice.payment_status = (
            PaymentStatus.PAID.value
            if invoice.balance_due == ZERO
            else PaymentStatus.PARTIALLY_PAID.value
        )
        if invoice.status == InvoiceStatus.DRAFT.value:
            invoice.status = InvoiceStatus.SENT.value
            invoice.sent_at = self._clock.now()
        invoice.updated_by_id = self._actor_id

    def unsettle(self, invoice: Invoice, amount: Decimal) -> None:
        """Put ``amount`` back on the balance due and re-derive payment status."""
        invoice.balance_due = invoice.balance_due + amount
        if invoice.balance_due >= invoice.total_amount:
            invoice.payment_status = PaymentStatus.UNPAID.value
        elif invoice.balance_due > ZERO:
            invoice.payment_status = PaymentStatus.PARTIALLY_PAID.value
        invoice.updated_by_id = self._actor_id

    def record(
        self,
        invoice: Invoice,
        amount: Decimal,
        mode: PaymentMode,
        *,
        payment_date: date | None = None,
        reference: str | None = None,
        notes: str | None = None,
        parent: Payment | None = None,
        credit_note_id: UUID | None = None,
    ) -> Payment:
        """Validate, settle and persist one payment against ``invoice``."""
        self.check_payable(invoice, amount)
        payment = Payment(
            tenant_id=invoice.tenant_id,
            payment_number=self.next_payment_number(invoice.tenant_id),
            customer_id=invoice.customer_id,
            invoice_id=invoice.id,
            credit_note_id=credit_note_id,
            payment_date=payment_date or self._clock.today(),
            amount=amount,
            payment_mode=mode.value,
            reference=reference,
            notes=notes,
            is_bulk=False,
            created_by_id=self._actor_id,
        )
        self.settle(invoice, amount)
        if parent is not None:
            parent.allocations.append(payment)
        self._session.add(payment)
        self._session.flush()

        logger.info(
            "payment_recorded",
            extra={
                "payment_number": payment.payment_number,
                "invoice_number": invoice.number,
                "amount": str(amount),
                "payment_mode": mode.value,
                "balance_due": str(invoice.balance_due),
                "payment_status": invoice.payment_status,
            },
        )
        return payment
