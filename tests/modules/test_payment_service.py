"""
Tests for PaymentService: single and bulk payments, edits and deletion.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from billing_kernel.domain.dtos import DocumentType, PaymentMode, PaymentStatus
from billing_kernel.exceptions import (
    CustomerMismatchError,
    DocumentNotFoundError,
    ImmutabilityViolationError,
    InvalidAmountError,
    InvalidStateError,
    InvoiceNotPayableError,
    PaymentNotFoundError,
    ValidationFailureError,
)
from billing_kernel.models.payment import Payment
from billing_modules.documents.models import BulkAllocationInput
from billing_modules.payments.service import parse_mode


@pytest.fixture
def flat_invoice(make_invoice, flat_item):
    """A DRAFT invoice for 150.00 with no tax and no stock."""
    return make_invoice(item=flat_item)


def _invoice(ledger_selector, tenant, invoice_id):
    return ledger_selector.get_document(tenant.id, DocumentType.INVOICE, invoice_id)


class TestRecordPayment:

    def test_partial_payment(self, payment_service, ledger_selector, tenant, customer, flat_invoice):
        payment = payment_service.record_payment(tenant.id, flat_invoice.id, "100")

        invoice = _invoice(ledger_selector, tenant, flat_invoice.id)
        assert payment.payment_number == "PAY-2024-0001"
        assert payment.amount == Decimal("100")
        assert payment.payment_mode == PaymentMode.CASH
        assert payment.payment_date == date(2024, 6, 15)
        assert invoice.balance_due == Decimal("50")
        assert invoice.payment_status == PaymentStatus.PARTIALLY_PAID
        assert ledger_selector.customer_balance(tenant.id, customer.id) == Decimal("50")

    def test_payment_promotes_draft_to_sent(self, payment_service, ledger_selector, tenant, flat_invoice):
        payment_service.record_payment(tenant.id, flat_invoice.id, "10")

        assert _invoice(ledger_selector, tenant, flat_invoice.id).status == "SENT"

    def test_full_payment(self, payment_service, ledger_selector, tenant, customer, flat_invoice):
        payment_service.record_payment(tenant.id, flat_invoice.id, "100")
        payment_service.record_payment(tenant.id, flat_invoice.id, "50", "UPI", reference="UTR123")

        invoice = _invoice(ledger_selector, tenant, flat_invoice.id)
        assert invoice.balance_due == Decimal("0")
        assert invoice.payment_status == PaymentStatus.PAID
        assert invoice.status == "SENT"
        assert ledger_selector.customer_balance(tenant.id, customer.id) == Decimal("0")

    def test_overpayment_rejected(self, payment_service, ledger_selector, tenant, flat_invoice):
        with pytest.raises(InvalidAmountError) as exc_info:
            payment_service.record_payment(tenant.id, flat_invoice.id, "150.01")

        assert Decimal(exc_info.value.limit) == Decimal("150")
        assert ledger_selector.payments_for_invoice(tenant.id, flat_invoice.id) == []

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_amount_rejected(self, payment_service, tenant, flat_invoice, amount):
        with pytest.raises(InvalidAmountError):
            payment_service.record_payment(tenant.id, flat_invoice.id, amount)

    @pytest.mark.parametrize("amount", ["149.999", "0.001"])
    def test_sub_paisa_amount_rejected(self, payment_service, ledger_selector, tenant, flat_invoice, amount):
        with pytest.raises(InvalidAmountError) as exc_info:
            payment_service.record_payment(tenant.id, flat_invoice.id, amount)

        assert exc_info.value.reason == "amount has more than 2 decimal places"
        invoice = _invoice(ledger_selector, tenant, flat_invoice.id)
        assert invoice.balance_due == Decimal("150")
        assert invoice.payment_status == PaymentStatus.UNPAID

    def test_whole_rupee_amount_with_trailing_zeros(self, payment_service, ledger_selector, tenant, flat_invoice):
        payment_service.record_payment(tenant.id, flat_invoice.id, "150.000")

        assert _invoice(ledger_selector, tenant, flat_invoice.id).payment_status == PaymentStatus.PAID

    def test_paid_invoice_rejects_more(self, payment_service, tenant, flat_invoice):
        payment_service.record_payment(tenant.id, flat_invoice.id, "150")

        with pytest.raises(InvoiceNotPayableError):
            payment_service.record_payment(tenant.id, flat_invoice.id, "1")

    def test_void_invoice_rejects_payment(self, payment_service, invoice_service, tenant, flat_invoice):
        invoice_service.void_invoice(tenant.id, flat_invoice.id)

        with pytest.raises(InvoiceNotPayableError):
            payment_service.record_payment(tenant.id, flat_invoice.id, "1")

    def test_unknown_invoice(self, payment_service, tenant):
        with pytest.raises(DocumentNotFoundError):
            payment_service.record_payment(tenant.id, uuid4(), "1")

    def test_explicit_payment_date(self, payment_service, tenant, flat_invoice):
        payment = payment_service.record_payment(
            tenant.id, flat_invoice.id, "1", "cheque", payment_date="2024-06-01"
        )

        assert payment.payment_date == date(2024, 6, 1)
        assert payment.payment_mode == PaymentMode.CHEQUE

    def test_credit_note_mode_rejected(self, payment_service, tenant, flat_invoice):
        with pytest.raises(ValidationFailureError) as exc_info:
            payment_service.record_payment(tenant.id, flat_invoice.id, "1", "CREDIT_NOTE")
        assert exc_info.value.field == "payment_mode"

    def test_parse_mode_defaults_to_cash(self):
        assert parse_mode(None) == PaymentMode.CASH
        assert parse_mode("bank_transfer") == PaymentMode.BANK_TRANSFER

    def test_logs_payment(self, payment_service, tenant, flat_invoice, captured_logs):
        payment_service.record_payment(tenant.id, flat_invoice.id, "100")

        record = next(r for r in captured_logs() if r["message"] == "payment_recorded")
        assert record["payment_number"] == "PAY-2024-0001"
        assert record["payment_status"] == "PARTIALLY_PAID"


class TestBulkPayment:

    @pytest.fixture
    def two_invoices(self, make_invoice, flat_item):
        return make_invoice(item=flat_item), make_invoice(item=flat_item, status="SENT")

    def test_split_across_invoices(
        self, payment_service, ledger_selector, tenant, customer, two_invoices
    ):
        first, second = two_invoices

        umbrella = payment_service.record_bulk_payment(
            tenant.id,
            customer.id,
            "200",
            [
                BulkAllocationInput(invoice_id=first.id, amount=Decimal("150")),
                BulkAllocationInput(invoice_id=second.id, amount=Decimal("50")),
            ],
            "NETBANKING",
        )

        assert umbrella.is_bulk is True
        assert umbrella.invoice_id is None
        assert umbrella.amount == Decimal("200")
        assert len(umbrella.allocations) == 2
        for child in umbrella.allocations:
            assert child.parent_payment_id == umbrella.id
            assert child.notes == f"Part of bulk payment {umbrella.payment_number}"
        assert {p.payment_number for p in umbrella.allocations} == {
            "PAY-2024-0002",
            "PAY-2024-0003",
        }
        assert _invoice(ledger_selector, tenant, first.id).payment_status == PaymentStatus.PAID
        assert _invoice(ledger_selector, tenant, second.id).balance_due == Decimal("100")
        assert ledger_selector.customer_balance(tenant.id, customer.id) == Decimal("100")

    def test_allocations_must_add_up(self, payment_service, tenant, customer, two_invoices):
        first, second = two_invoices

        with pytest.raises(InvalidAmountError):
            payment_service.record_bulk_payment(
                tenant.id,
                customer.id,
                "300",
                [
                    BulkAllocationInput(invoice_id=first.id, amount=Decimal("150")),
                    BulkAllocationInput(invoice_id=second.id, amount=Decimal("50")),
                ],
            )

    def test_one_bad_allocation_records_nothing(
        self, payment_service, ledger_selector, tenant, customer, two_invoices
    ):
        first, second = two_invoices

        with pytest.raises(InvalidAmountError):
            payment_service.record_bulk_payment(
                tenant.id,
                customer.id,
                "250",
                [
                    BulkAllocationInput(invoice_id=first.id, amount=Decimal("50")),
                    BulkAllocationInput(invoice_id=second.id, amount=Decimal("200")),
                ],
            )

        assert ledger_selector.payments_for_invoice(tenant.id, first.id) == []
        assert _invoice(ledger_selector, tenant, first.id).balance_due == Decimal("150")

    def test_other_customers_invoice(
        self, payment_service, make_invoice, make_customer, flat_item, tenant, customer
    ):
        stranger = make_customer("Farah Khan")
        theirs = make_invoice(item=flat_item, customer_id=stranger.id)

        with pytest.raises(CustomerMismatchError):
            payment_service.record_bulk_payment(
                tenant.id,
                customer.id,
                "10",
                [BulkAllocationInput(invoice_id=theirs.id, amount=Decimal("10"))],
            )

    def test_duplicate_invoice_rejected(self, payment_service, tenant, customer, two_invoices):
        first, _ = two_invoices

        with pytest.raises(ValidationFailureError):
            payment_service.record_bulk_payment(
                tenant.id,
                customer.id,
                "20",
                [
                    BulkAllocationInput(invoice_id=first.id, amount=Decimal("10")),
                    BulkAllocationInput(invoice_id=first.id, amount=Decimal("10")),
                ],
            )

    def test_empty_allocations_rejected(self, payment_service, tenant, customer):
        with pytest.raises(ValidationFailureError):
            payment_service.record_bulk_payment(tenant.id, customer.id, "10", [])


class TestEditAndDelete:

    def test_update_metadata(self, payment_service, ledger_selector, tenant, flat_invoice):
        payment = payment_service.record_payment(tenant.id, flat_invoice.id, "100")

        updated = payment_service.update_payment(
            tenant.id,
            payment.id,
            {"paymentDate": "2024-06-10", "reference": "CHQ-991", "notes": "Cleared"},
        )

        assert updated.payment_date == date(2024, 6, 10)
        assert updated.reference == "CHQ-991"
        assert updated.notes == "Cleared"
        assert updated.amount == Decimal("100")

    def test_update_amount_rejected(self, payment_service, tenant, flat_invoice):
        payment = payment_service.record_payment(tenant.id, flat_invoice.id, "100")

        with pytest.raises(ValidationFailureError) as exc_info:
            payment_service.update_payment(tenant.id, payment.id, {"amount": "120"})
        assert exc_info.value.field == "amount"

    def test_orm_guard_blocks_amount_change(self, session, payment_service, tenant, flat_invoice):
        record = payment_service.record_payment(tenant.id, flat_invoice.id, "100")
        row = session.get(Payment, record.id)
        row.amount = Decimal("1")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        session.rollback()

        assert exc_info.value.entity_type == "Payment"

    def test_delete_restores_balance(
        self, payment_service, ledger_selector, tenant, customer, flat_invoice
    ):
        first = payment_service.record_payment(tenant.id, flat_invoice.id, "100")
        payment_service.record_payment(tenant.id, flat_invoice.id, "50")

        payment_service.delete_payment(tenant.id, first.id)

        invoice = _invoice(ledger_selector, tenant, flat_invoice.id)
        assert invoice.balance_due == Decimal("100")
        assert invoice.payment_status == PaymentStatus.PARTIALLY_PAID
        assert ledger_selector.customer_balance(tenant.id, customer.id) == Decimal("100")
        with pytest.raises(PaymentNotFoundError):
            ledger_selector.get_payment(tenant.id, first.id)

    def test_delete_last_payment_makes_unpaid(self, payment_service, ledger_selector, tenant, flat_invoice):
        payment = payment_service.record_payment(tenant.id, flat_invoice.id, "150")

        payment_service.delete_payment(tenant.id, payment.id)

        invoice = _invoice(ledger_selector, tenant, flat_invoice.id)
        assert invoice.payment_status == PaymentStatus.UNPAID
        assert invoice.balance_due == Decimal("150")

    def test_delete_bulk_reverses_every_allocation(
        self, payment_service, make_invoice, flat_item, ledger_selector, tenant, customer
    ):
        first = make_invoice(item=flat_item)
        second = make_invoice(item=flat_item)
        umbrella = payment_service.record_bulk_payment(
            tenant.id,
            customer.id,
            "200",
            [
                BulkAllocationInput(invoice_id=first.id, amount=Decimal("100")),
                BulkAllocationInput(invoice_id=second.id, amount=Decimal("100")),
            ],
        )

        payment_service.delete_payment(tenant.id, umbrella.id)

        for invoice_id in (first.id, second.id):
            assert _invoice(ledger_selector, tenant, invoice_id).balance_due == Decimal("150")
            assert ledger_selector.payments_for_invoice(tenant.id, invoice_id) == []

    def test_child_payment_cannot_be_deleted_alone(
        self, payment_service, make_invoice, flat_item, tenant, customer
    ):
        invoice = make_invoice(item=flat_item)
        umbrella = payment_service.record_bulk_payment(
            tenant.id,
            customer.id,
            "40",
            [BulkAllocationInput(invoice_id=invoice.id, amount=Decimal("40"))],
        )

        with pytest.raises(InvalidStateError):
            payment_service.delete_payment(tenant.id, umbrella.allocations[0].id)

    def test_delete_unknown_payment(self, payment_service, tenant):
        with pytest.raises(PaymentNotFoundError):
            payment_service.delete_payment(tenant.id, uuid4())
