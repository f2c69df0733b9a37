"""
BalanceReconciler -- refreshes the cached customer balance.

Responsibility:
    Recomputes ``Customer.current_balance`` as opening_balance plus the
    balance due of the customer's open, issued invoices, and overwrites
    the cached value.

Architecture position:
    Kernel > Services.  Invoked by module services after every mutation
    that can move a customer balance: invoice create/void/delete, payment
    create/delete, bulk payment, credit-note application.

Invariants enforced:
    - Open invoices are those with payment_status in {UNPAID,
      PARTIALLY_PAID} and status not in {VOID, DRAFT}.
    - Idempotent: two recomputes with no intervening mutation write the
      same value.

Consistency:
    This is a last-write-wins cache refresh, not a locked counter.  By
    default module services run it in a follow-up transaction right after
    the triggering mutation commits, which leaves a short window in which
    a concurrent reader may see the previous value.  With
    ``LedgerSettings.reconcile_in_transaction`` it runs inside the
    mutating transaction instead.
"""

from decimal import Decimal

from sqlalchemy import func, select

from billing_kernel.db.base import UUID
from billing_kernel.domain.dtos import InvoiceStatus, PaymentStatus
from billing_kernel.exceptions import CustomerNotFoundError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.customer import Customer
from billing_kernel.models.document import Invoice
from billing_kernel.services.base import BaseService

logger = get_logger("services.balance_reconciler")

OPEN_PAYMENT_STATUSES = (PaymentStatus.UNPAID.value, PaymentStatus.PARTIALLY_PAID.value)
EXCLUDED_INVOICE_STATUSES = (InvoiceStatus.VOID.value, InvoiceStatus.DRAFT.value)


class BalanceReconciler(BaseService):
    """Recomputes and stores a customer's outstanding balance."""

    def outstanding(self, tenant_id: UUID, customer_id: UUID) -> Decimal:
        """Sum of balance due over the customer's open, issued invoices."""
        total = self.session.execute(
            select(func.coalesce(func.sum(Invoice.balance_due), 0)).where(
                Invoice.tenant_id == tenant_id,
                Invoice.customer_id == customer_id,
                Invoice.payment_status.in_(OPEN_PAYMENT_STATUSES),
                Invoice.status.not_in(EXCLUDED_INVOICE_STATUSES),
            )
        ).scalar()
        return Decimal(str(total))

    def recompute_balance(self, tenant_id: UUID, customer_id: UUID) -> Decimal:
        """
        Recompute and overwrite ``current_balance``.

        Returns:
            The new balance.

        Raises:
            CustomerNotFoundError: customer missing or in another tenant.
        """
        customer = self.session.execute(
            select(Customer).where(
                Customer.id == customer_id,
                Customer.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if customer is None:
            raise CustomerNotFoundError(customer_id)

        balance = (customer.opening_balance or Decimal("0")) + self.outstanding(
            tenant_id, customer_id
        )
        if customer.current_balance != balance:
            customer.current_balance = balance
        self.session.flush()

        logger.info(
            "customer_balance_recomputed",
            extra={"customer_id": str(customer_id), "current_balance": balance},
        )
        return balance
