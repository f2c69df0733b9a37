"""
Tests for the cached customer balance.

current_balance = opening_balance + balance due of issued, unpaid or
partially paid invoices.  DRAFT and VOID invoices never count.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from billing_config.schema import LedgerSettings
from billing_kernel.exceptions import CustomerNotFoundError
from billing_kernel.models.customer import Customer
from billing_kernel.services.balance_reconciler import BalanceReconciler
from billing_modules.invoicing.service import InvoiceService


@pytest.fixture
def reconciler(session):
    return BalanceReconciler(session)


class TestRecompute:

    def test_opening_balance_only(self, session, reconciler, tenant, make_customer):
        customer = make_customer("Meena Iyer", opening_balance=Decimal("500"))

        assert reconciler.recompute_balance(tenant.id, customer.id) == Decimal("500")

    def test_sent_invoice_counts(self, make_invoice, reconciler, tenant, customer, ledger_selector):
        make_invoice("2", status="SENT")

        balance = reconciler.recompute_balance(tenant.id, customer.id)

        assert balance == Decimal("252")
        assert ledger_selector.customer_balance(tenant.id, customer.id) == Decimal("252")

    def test_draft_invoice_does_not_count(self, make_invoice, reconciler, tenant, customer):
        make_invoice("2")

        assert reconciler.outstanding(tenant.id, customer.id) == Decimal("0")

    def test_partially_paid_counts_its_balance_due(
        self, make_invoice, payment_service, reconciler, tenant, customer
    ):
        invoice = make_invoice("2", status="SENT")
        payment_service.record_payment(tenant.id, invoice.id, "100")

        assert reconciler.outstanding(tenant.id, customer.id) == Decimal("152")

    def test_void_invoice_does_not_count(self, make_invoice, invoice_service, reconciler, tenant, customer):
        invoice = make_invoice("1", status="SENT")
        invoice_service.void_invoice(tenant.id, invoice.id)

        assert reconciler.outstanding(tenant.id, customer.id) == Decimal("0")

    def test_idempotent(self, session, make_invoice, reconciler, tenant, customer):
        make_invoice("1", status="SENT")

        first = reconciler.recompute_balance(tenant.id, customer.id)
        session.commit()
        second = reconciler.recompute_balance(tenant.id, customer.id)

        assert first == second == Decimal("126")

    def test_repairs_a_stale_cache(self, session, make_invoice, reconciler, tenant, customer):
        make_invoice("1", status="SENT")
        row = session.get(Customer, customer.id)
        row.current_balance = Decimal("0")
        session.commit()

        reconciler.recompute_balance(tenant.id, customer.id)
        session.commit()

        assert session.get(Customer, customer.id).current_balance == Decimal("126")

    def test_unknown_customer(self, reconciler, tenant):
        with pytest.raises(CustomerNotFoundError):
            reconciler.recompute_balance(tenant.id, uuid4())

    def test_other_tenant_customer_is_not_found(self, reconciler, customer):
        with pytest.raises(CustomerNotFoundError):
            reconciler.recompute_balance(uuid4(), customer.id)


class TestReconcileTiming:
    """Module services refresh the cache after every balance-moving commit."""

    def test_follow_up_transaction_by_default(self, make_invoice, ledger_selector, tenant, customer):
        make_invoice("1", status="SENT")

        assert ledger_selector.customer_balance(tenant.id, customer.id) == Decimal("126")

    def test_in_transaction_when_configured(
        self, session, actor_id, clock, tenant, customer, product, document_input, ledger_selector
    ):
        service = InvoiceService(
            session, actor_id, clock, LedgerSettings(reconcile_in_transaction=True)
        )

        service.create_invoice(
            tenant.id, document_input((product, "1"), customer_id=customer.id, status="SENT")
        )

        assert ledger_selector.customer_balance(tenant.id, customer.id) == Decimal("126")

    def test_draft_then_sent_moves_balance(
        self, make_invoice, invoice_service, ledger_selector, tenant, customer
    ):
        invoice = make_invoice("1")
        assert ledger_selector.customer_balance(tenant.id, customer.id) == Decimal("0")

        invoice_service.mark_sent(tenant.id, invoice.id)

        assert ledger_selector.customer_balance(tenant.id, customer.id) == Decimal("126")
