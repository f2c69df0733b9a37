"""
Tests for CreditNoteService.

RETURN credit notes restock goods; every credit note carries a balance
that is drawn down by applying it to the customer's invoices.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from billing_kernel.domain.dtos import (
    CreditNoteReason,
    CreditNoteStatus,
    DiscountType,
    DocumentType,
    PaymentMode,
    PaymentStatus,
)
from billing_kernel.exceptions import (
    CreditNoteNotOpenError,
    CustomerMismatchError,
    DocumentNotEditableError,
    DocumentNotVoidableError,
    InvalidAmountError,
    InvalidStateError,
    InvalidStatusTransitionError,
    InvoiceNotPayableError,
    NotFoundError,
    ValidationFailureError,
)
from billing_kernel.models.product import Product
from billing_engines.tax import DiscountSpec
from billing_modules.documents.models import LineItemInput, ReturnLineInput


def _stock(session, product_id) -> Decimal:
    session.expire_all()
    return session.get(Product, product_id).stock_quantity


def _credit_note(ledger_selector, tenant, credit_note_id):
    return ledger_selector.get_document(tenant.id, DocumentType.CREDIT_NOTE, credit_note_id)


@pytest.fixture
def sold_invoice(make_invoice):
    """SENT invoice for 2 x Steel Tumbler (252.00); 3 units left in stock."""
    return make_invoice("2", status="SENT")


@pytest.fixture
def return_one(credit_note_service, tenant, sold_invoice):
    """Factory: a RETURN credit note for one unit of ``sold_invoice``."""

    def _make(status=None):
        return credit_note_service.create_from_invoice(
            tenant.id,
            sold_invoice.id,
            [ReturnLineInput(invoice_item_id=sold_invoice.line_items[0].id, quantity=Decimal("1"))],
            status=status,
        )

    return _make


class TestCreateFromInvoice:

    def test_partial_return_restocks(self, return_one, session, product, sold_invoice):
        credit_note = return_one()

        assert credit_note.number == "CN-2024-0001"
        assert credit_note.status == CreditNoteStatus.DRAFT.value
        assert credit_note.reason == CreditNoteReason.RETURN
        assert credit_note.invoice_id == sold_invoice.id
        assert credit_note.total_amount == Decimal("126")
        assert credit_note.balance_amount == Decimal("126")
        assert credit_note.notes == f"Return for Invoice {sold_invoice.number}"
        assert _stock(session, product.id) == Decimal("4")

    def test_return_logged_as_return_entry(self, return_one, inventory_selector, tenant, product):
        credit_note = return_one()

        last = inventory_selector.history(tenant.id, product.id)[-1]
        assert last.transaction_type == "RETURN"
        assert last.reference_id == credit_note.id
        assert last.notes == f"Return via Credit Note {credit_note.number}"

    def test_return_more_than_sold(self, credit_note_service, tenant, sold_invoice):
        with pytest.raises(ValidationFailureError) as exc_info:
            credit_note_service.create_from_invoice(
                tenant.id,
                sold_invoice.id,
                [ReturnLineInput(invoice_item_id=sold_invoice.line_items[0].id, quantity=Decimal("3"))],
            )
        assert exc_info.value.field == "quantity"

    def test_unknown_line(self, credit_note_service, tenant, sold_invoice):
        with pytest.raises(NotFoundError):
            credit_note_service.create_from_invoice(
                tenant.id,
                sold_invoice.id,
                [ReturnLineInput(invoice_item_id=uuid4(), quantity=Decimal("1"))],
            )

    def test_nothing_to_return(self, credit_note_service, tenant, sold_invoice):
        with pytest.raises(ValidationFailureError):
            credit_note_service.create_from_invoice(tenant.id, sold_invoice.id, [])

    def test_void_invoice_cannot_be_credited(
        self, credit_note_service, invoice_service, make_invoice, tenant
    ):
        invoice = make_invoice("1")
        invoice_service.void_invoice(tenant.id, invoice.id)

        with pytest.raises(InvalidStateError):
            credit_note_service.create_from_invoice(
                tenant.id,
                invoice.id,
                [ReturnLineInput(invoice_item_id=invoice.line_items[0].id, quantity=Decimal("1"))],
            )

    def test_fixed_discount_is_prorated(self, credit_note_service, make_invoice, product, tenant):
        invoice = make_invoice(
            item=LineItemInput(
                product_id=product.id,
                quantity=Decimal("2"),
                discount=DiscountSpec(DiscountType.FIXED, Decimal("20")),
            )
        )

        credit_note = credit_note_service.create_from_invoice(
            tenant.id,
            invoice.id,
            [ReturnLineInput(invoice_item_id=invoice.line_items[0].id, quantity=Decimal("1"))],
        )

        (line,) = credit_note.line_items
        assert line.discount_value == Decimal("10")
        assert line.taxable_amount == Decimal("110")

    def test_inter_state_invoice_credits_igst(
        self, credit_note_service, make_invoice, make_customer, tenant
    ):
        buyer = make_customer("Anil Rao", place_of_supply="29")
        invoice = make_invoice("1", customer_id=buyer.id)

        credit_note = credit_note_service.create_from_invoice(
            tenant.id,
            invoice.id,
            [ReturnLineInput(invoice_item_id=invoice.line_items[0].id, quantity=Decimal("1"))],
        )

        assert credit_note.is_inter_state is True
        assert credit_note.igst_amount == Decimal("6")


class TestCreateCreditNote:

    def test_discount_credit_moves_no_stock(
        self, credit_note_service, document_input, tenant, customer, product, session
    ):
        credit_note = credit_note_service.create_credit_note(
            tenant.id,
            document_input((product, "1"), customer_id=customer.id, reason=CreditNoteReason.DISCOUNT),
        )

        assert credit_note.reason == CreditNoteReason.DISCOUNT
        assert _stock(session, product.id) == Decimal("5")

    def test_customer_is_required(self, credit_note_service, document_input, tenant, flat_item):
        with pytest.raises(ValidationFailureError) as exc_info:
            credit_note_service.create_credit_note(tenant.id, document_input(flat_item))
        assert exc_info.value.field == "customer_id"

    def test_invoice_of_another_customer(
        self, credit_note_service, document_input, make_customer, tenant, flat_item, sold_invoice
    ):
        stranger = make_customer("Farah Khan")

        with pytest.raises(CustomerMismatchError):
            credit_note_service.create_credit_note(
                tenant.id,
                document_input(flat_item, customer_id=stranger.id, invoice_id=sold_invoice.id),
            )

    def test_only_draft_or_open(self, credit_note_service, document_input, tenant, customer, flat_item):
        with pytest.raises(ValidationFailureError):
            credit_note_service.create_credit_note(
                tenant.id, document_input(flat_item, customer_id=customer.id, status="CLOSED")
            )


class TestStatusAndDelete:

    def test_draft_to_open(self, return_one, credit_note_service, tenant):
        credit_note = return_one()

        opened = credit_note_service.update_status(tenant.id, credit_note.id, "open")

        assert opened.status == CreditNoteStatus.OPEN.value

    def test_open_cannot_go_back_to_draft(self, return_one, credit_note_service, tenant):
        credit_note = return_one(status="OPEN")

        with pytest.raises(InvalidStatusTransitionError):
            credit_note_service.update_status(tenant.id, credit_note.id, "DRAFT")

    def test_unknown_status(self, return_one, credit_note_service, tenant):
        credit_note = return_one()

        with pytest.raises(ValidationFailureError):
            credit_note_service.update_status(tenant.id, credit_note.id, "SETTLED")

    def test_void_takes_returned_stock_back_out(
        self, return_one, credit_note_service, session, tenant, product
    ):
        credit_note = return_one(status="OPEN")

        voided = credit_note_service.update_status(tenant.id, credit_note.id, "VOID")

        assert voided.status == CreditNoteStatus.VOID.value
        assert voided.balance_amount == Decimal("0")
        assert _stock(session, product.id) == Decimal("3")

    def test_void_after_application_fails(
        self, return_one, credit_note_service, tenant, sold_invoice
    ):
        credit_note = return_one(status="OPEN")
        credit_note_service.apply_to_invoice(
            tenant.id, credit_note.id, sold_invoice.id, Decimal("10")
        )

        with pytest.raises(InvalidStateError):
            credit_note_service.update_status(tenant.id, credit_note.id, "VOID")

    def test_delete_draft_reverses_restock(
        self, return_one, credit_note_service, ledger_selector, session, tenant, product
    ):
        credit_note = return_one()

        credit_note_service.delete_credit_note(tenant.id, credit_note.id)

        assert _stock(session, product.id) == Decimal("3")
        with pytest.raises(NotFoundError):
            _credit_note(ledger_selector, tenant, credit_note.id)

    def test_open_cannot_be_deleted(self, return_one, credit_note_service, tenant):
        credit_note = return_one(status="OPEN")

        with pytest.raises(DocumentNotEditableError):
            credit_note_service.delete_credit_note(tenant.id, credit_note.id)

    def test_credited_invoice_cannot_be_deleted(
        self, credit_note_service, invoice_service, make_invoice, tenant
    ):
        invoice = make_invoice("1")
        credit_note_service.create_from_invoice(
            tenant.id,
            invoice.id,
            [ReturnLineInput(invoice_item_id=invoice.line_items[0].id, quantity=Decimal("1"))],
        )

        with pytest.raises(InvalidStateError):
            invoice_service.delete_invoice(tenant.id, invoice.id)


class TestApplyToInvoice:

    def test_apply_full_balance(
        self, return_one, credit_note_service, ledger_selector, tenant, customer, sold_invoice
    ):
        credit_note = return_one(status="OPEN")

        payment = credit_note_service.apply_to_invoice(tenant.id, credit_note.id, sold_invoice.id)

        assert payment.amount == Decimal("126")
        assert payment.payment_mode == PaymentMode.CREDIT_NOTE
        assert payment.reference == credit_note.number
        assert payment.credit_note_id == credit_note.id
        invoice = ledger_selector.get_document(tenant.id, DocumentType.INVOICE, sold_invoice.id)
        assert invoice.balance_due == Decimal("126")
        assert invoice.payment_status == PaymentStatus.PARTIALLY_PAID
        refreshed = _credit_note(ledger_selector, tenant, credit_note.id)
        assert refreshed.balance_amount == Decimal("0")
        assert refreshed.status == CreditNoteStatus.CLOSED.value
        assert ledger_selector.customer_balance(tenant.id, customer.id) == Decimal("126")

    def test_partial_application_stays_open(
        self, return_one, credit_note_service, ledger_selector, tenant, sold_invoice
    ):
        credit_note = return_one(status="OPEN")

        credit_note_service.apply_to_invoice(
            tenant.id, credit_note.id, sold_invoice.id, Decimal("26")
        )

        refreshed = _credit_note(ledger_selector, tenant, credit_note.id)
        assert refreshed.balance_amount == Decimal("100")
        assert refreshed.status == CreditNoteStatus.OPEN.value

    def test_default_amount_capped_by_invoice_balance(
        self, credit_note_service, document_input, make_invoice, flat_item, tenant, customer
    ):
        small = make_invoice(
            item=LineItemInput(name="Packing", rate=Decimal("40")), status="SENT"
        )
        credit_note = credit_note_service.create_credit_note(
            tenant.id,
            document_input(
                flat_item, customer_id=customer.id, reason=CreditNoteReason.OTHER, status="OPEN"
            ),
        )

        payment = credit_note_service.apply_to_invoice(tenant.id, credit_note.id, small.id)

        assert payment.amount == Decimal("40")

    def test_draft_credit_note_cannot_be_applied(
        self, return_one, credit_note_service, tenant, sold_invoice
    ):
        credit_note = return_one()

        with pytest.raises(CreditNoteNotOpenError):
            credit_note_service.apply_to_invoice(tenant.id, credit_note.id, sold_invoice.id)

    def test_amount_above_credit_balance(
        self, return_one, credit_note_service, tenant, sold_invoice
    ):
        credit_note = return_one(status="OPEN")

        with pytest.raises(InvalidAmountError):
            credit_note_service.apply_to_invoice(
                tenant.id, credit_note.id, sold_invoice.id, Decimal("127")
            )

    def test_other_customers_invoice(
        self, return_one, credit_note_service, make_invoice, make_customer, flat_item, tenant
    ):
        credit_note = return_one(status="OPEN")
        stranger = make_customer("Farah Khan")
        theirs = make_invoice(item=flat_item, customer_id=stranger.id)

        with pytest.raises(CustomerMismatchError):
            credit_note_service.apply_to_invoice(tenant.id, credit_note.id, theirs.id)

    def test_paid_invoice_cannot_take_credit(
        self, return_one, credit_note_service, payment_service, tenant, sold_invoice
    ):
        credit_note = return_one(status="OPEN")
        payment_service.record_payment(tenant.id, sold_invoice.id, "252")

        with pytest.raises(InvoiceNotPayableError):
            credit_note_service.apply_to_invoice(tenant.id, credit_note.id, sold_invoice.id)

    def test_deleting_application_reopens_credit_note(
        self, return_one, credit_note_service, payment_service, ledger_selector, tenant, sold_invoice
    ):
        credit_note = return_one(status="OPEN")
        payment = credit_note_service.apply_to_invoice(tenant.id, credit_note.id, sold_invoice.id)

        payment_service.delete_payment(tenant.id, payment.id)

        refreshed = _credit_note(ledger_selector, tenant, credit_note.id)
        assert refreshed.status == CreditNoteStatus.OPEN.value
        assert refreshed.balance_amount == Decimal("126")
        invoice = ledger_selector.get_document(tenant.id, DocumentType.INVOICE, sold_invoice.id)
        assert invoice.balance_due == Decimal("252")


class TestInvoiceWithCreditNotes:
    """A returned invoice cannot give its stock back a second time."""

    def test_void_refused_after_return(
        self, return_one, invoice_service, inventory_selector, session, tenant, product, sold_invoice
    ):
        credit_note = return_one()

        with pytest.raises(DocumentNotVoidableError):
            invoice_service.void_invoice(tenant.id, sold_invoice.id)

        assert credit_note.invoice_id == sold_invoice.id
        assert _stock(session, product.id) == Decimal("4")
        assert inventory_selector.reconstruct_stock(tenant.id, product.id) == Decimal("4")

    def test_void_refused_after_full_return(
        self, credit_note_service, invoice_service, inventory_selector, session, tenant, product, sold_invoice
    ):
        credit_note_service.create_from_invoice(
            tenant.id,
            sold_invoice.id,
            [ReturnLineInput(invoice_item_id=sold_invoice.line_items[0].id, quantity=Decimal("2"))],
        )

        with pytest.raises(DocumentNotVoidableError):
            invoice_service.void_invoice(tenant.id, sold_invoice.id)

        assert _stock(session, product.id) == Decimal("5")
        assert inventory_selector.reconstruct_stock(tenant.id, product.id) == Decimal("5")

    def test_void_allowed_once_the_return_is_voided(
        self, return_one, credit_note_service, invoice_service, inventory_selector, session, tenant, product, sold_invoice
    ):
        credit_note = return_one()
        credit_note_service.update_status(tenant.id, credit_note.id, "VOID")

        invoice_service.void_invoice(tenant.id, sold_invoice.id)

        assert _stock(session, product.id) == Decimal("5")
        assert inventory_selector.reconstruct_stock(tenant.id, product.id) == Decimal("5")
        assert inventory_selector.chain_is_consistent(tenant.id, product.id)

    def test_delete_refused_after_return(
        self, make_invoice, credit_note_service, invoice_service, inventory_selector, session, tenant, product
    ):
        draft = make_invoice("2")
        credit_note_service.create_from_invoice(
            tenant.id,
            draft.id,
            [ReturnLineInput(invoice_item_id=draft.line_items[0].id, quantity=Decimal("1"))],
        )

        with pytest.raises(InvalidStateError):
            invoice_service.delete_invoice(tenant.id, draft.id)

        assert _stock(session, product.id) == Decimal("4")
        assert inventory_selector.reconstruct_stock(tenant.id, product.id) == Decimal("4")
