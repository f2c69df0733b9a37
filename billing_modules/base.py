"""
ModuleService - shared wiring for the document and payment modules.

Every module service owns its transaction boundary: it commits on success,
rolls back on any failure and re-raises.  Kernel services it composes
(SequenceAllocator, InventoryLedger, BalanceReconciler) only flush.

Customer balances are refreshed by ``_commit``:
    - default: the mutation commits first, then the BalanceReconciler runs
      in a short follow-up transaction.  A concurrent reader may briefly
      see the previous cached balance.
    - ``LedgerSettings.reconcile_in_transaction``: the recompute runs
      before the single commit.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from billing_config.schema import LedgerSettings
from billing_engines.tax import GSTTaxCalculator
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.logging_config import get_logger
from billing_kernel.services.balance_reconciler import BalanceReconciler
from billing_kernel.services.inventory_ledger import InventoryLedger
from billing_kernel.services.sequence_service import SequenceAllocator
from billing_modules.documents.builder import DocumentBuilder

logger = get_logger("modules.base")


class ModuleService:
    """Base for module services.  Owns commit/rollback for each operation."""

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._session = session
        self._actor_id = actor_id
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings()

        self._sequences = SequenceAllocator(session, self._clock)
        self._ledger = InventoryLedger(session, actor_id)
        self._reconciler = BalanceReconciler(session)
        self._calculator = GSTTaxCalculator(
            clamp_discounts=self._settings.clamp_discounts,
            round_total_to_whole=self._settings.round_total_to_whole,
        )
        self._builder = DocumentBuilder(session, self._ledger, self._calculator, actor_id)

    def _lock(self, model, tenant_id: UUID, entity_id: UUID, not_found):
        """Load ``model`` by id within the tenant, locked FOR UPDATE."""
        row = self._session.execute(
            select(model)
            .where(model.id == entity_id, model.tenant_id == tenant_id)
            .with_for_update(of=model)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise not_found()
        return row

    def _move_stock(
        self,
        document,
        products,
        transaction_type,
        note: str,
        *,
        sign: int,
    ) -> None:
        """Apply ``sign * quantity`` for every stock-tracked line of ``document``."""
        quantities = self._builder.stocked_quantities(document.line_items, products)
        for product_id, quantity in sorted(quantities.items(), key=lambda kv: str(kv[0])):
            self._ledger.apply_delta(
                document.tenant_id,
                product_id,
                quantity * sign,
                transaction_type,
                reference_type=document.document_type,
                reference_id=document.id,
                notes=note,
            )

    def _count(self, model, tenant_id: UUID, *criteria):
        """Seed callable for SequenceAllocator: existing rows of ``model``."""

        def seed() -> int:
            return self._session.execute(
                select(func.count(model.id)).where(model.tenant_id == tenant_id, *criteria)
            ).scalar_one()

        return seed

    def _commit(self, tenant_id: UUID, customer_ids: Iterable[UUID | None] = ()) -> None:
        """
        Commit the pending mutation and refresh the affected balances.

        If the follow-up recompute fails the mutation stays committed; the
        follow-up is rolled back and its error re-raised.
        """
        affected = sorted({cid for cid in customer_ids if cid is not None}, key=str)

        if self._settings.reconcile_in_transaction:
            for customer_id in affected:
                self._reconciler.recompute_balance(tenant_id, customer_id)
            self._session.commit()
            return

        self._session.commit()
        if not affected:
            return
        try:
            for customer_id in affected:
                self._reconciler.recompute_balance(tenant_id, customer_id)
            self._session.commit()
        except Exception:
            self._session.rollback()
            logger.error(
                "balance_reconcile_failed",
                extra={"customer_ids": [str(cid) for cid in affected]},
                exc_info=True,
            )
            raise
