"""
Estimates Module Service - quotations and their conversion into invoices.

Estimates run the same line and tax path as invoices but never move
stock and never count towards a customer's balance.  Converting an
estimate runs the full invoice path (stock check and SALE entries
included) and marks the estimate INVOICED in the same transaction.
"""

from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from billing_kernel.domain.dtos import (
    DocumentRecord,
    DocumentType,
    EstimateStatus,
    InvoiceStatus,
)
from billing_kernel.exceptions import (
    DocumentNotEditableError,
    DocumentNotFoundError,
    InvalidStatusTransitionError,
    ValidationFailureError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.document import Estimate
from billing_kernel.models.tenant import SequenceKind, Tenant
from billing_modules.base import ModuleService
from billing_modules.documents.models import DocumentInput, enum_text
from billing_modules.invoicing.service import InvoiceService

logger = get_logger("modules.estimates.service")

# Statuses a user may set directly; INVOICED is only reached by conversion
SETTABLE_STATUSES = frozenset(
    status.value for status in EstimateStatus if status != EstimateStatus.INVOICED
)
NOT_CONVERTIBLE = frozenset(
    {
        EstimateStatus.INVOICED.value,
        EstimateStatus.DECLINED.value,
        EstimateStatus.EXPIRED.value,
    }
)


class EstimateService(ModuleService):
    """Orchestrates estimates.  Commits on success, rolls back on failure."""

    def __init__(self, session, actor_id, clock=None, settings=None):
        super().__init__(session, actor_id, clock, settings)
        self._invoices = InvoiceService(session, actor_id, self._clock, self._settings)

    def _lock_estimate(self, tenant_id: UUID, estimate_id: UUID) -> Estimate:
        return self._lock(
            Estimate,
            tenant_id,
            estimate_id,
            lambda: DocumentNotFoundError(DocumentType.ESTIMATE.value, estimate_id),
        )

    def _issue(self, tenant: Tenant, data: DocumentInput) -> Estimate:
        document_date = data.document_date or self._clock.today()
        estimate = Estimate(
            tenant_id=tenant.id,
            status=EstimateStatus.DRAFT.value,
            document_date=document_date,
            expiry_date=data.expiry_date
            or document_date + timedelta(days=self._settings.estimate_validity_days),
            notes=data.notes,
            terms=data.terms,
            created_by_id=self._actor_id,
        )
        self._builder.assign_party(estimate, tenant, data)
        products = self._builder.load_products(tenant.id, data.items)
        self._builder.populate(estimate, tenant, data, products)
        estimate.number = self._sequences.next_number(
            tenant.id,
            SequenceKind.ESTIMATE,
            seed=self._count(
                Estimate, tenant.id, Estimate.document_type == DocumentType.ESTIMATE.value
            ),
        )
        self._session.add(estimate)
        self._session.flush()
        return estimate

    def create_estimate(self, tenant_id: UUID, data: DocumentInput) -> DocumentRecord:
        """Create a DRAFT estimate.  Expiry defaults to the configured validity."""
        try:
            tenant = self._sequences.lock_tenant(tenant_id)
            estimate = self._issue(tenant, data)
            logger.info(
                "estimate_created",
                extra={
                    "estimate_number": estimate.number,
                    "total_amount": str(estimate.total_amount),
                },
            )
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise
        return estimate.to_dto()

    def update_estimate(
        self, tenant_id: UUID, estimate_id: UUID, data: DocumentInput
    ) -> DocumentRecord:
        """Replace party, items and totals of any estimate not yet invoiced."""
        try:
            tenant = self._sequences.lock_tenant(tenant_id)
            estimate = self._lock_estimate(tenant_id, estimate_id)
            if estimate.status == EstimateStatus.INVOICED.value:
                raise DocumentNotEditableError(estimate.number, estimate.status)

            self._builder.assign_party(estimate, tenant, data)
            products = self._builder.load_products(tenant_id, data.items)
            self._builder.populate(estimate, tenant, data, products)
            estimate.document_date = data.document_date or estimate.document_date
            estimate.expiry_date = data.expiry_date or estimate.expiry_date
            estimate.notes = data.notes
            estimate.terms = data.terms
            estimate.updated_by_id = self._actor_id
            self._session.flush()

            logger.info(
                "estimate_updated",
                extra={
                    "estimate_number": estimate.number,
                    "total_amount": str(estimate.total_amount),
                },
            )
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise
        return estimate.to_dto()

    def update_status(self, tenant_id: UUID, estimate_id: UUID, status: str) -> DocumentRecord:
        """Set any status except INVOICED.  An invoiced estimate is final."""
        status = enum_text(status)
        if status not in SETTABLE_STATUSES:
            raise ValidationFailureError(
                f"Estimate status must be one of {sorted(SETTABLE_STATUSES)}, got {status}",
                field="status",
            )
        try:
            estimate = self._lock_estimate(tenant_id, estimate_id)
            if estimate.status == EstimateStatus.INVOICED.value:
                raise InvalidStatusTransitionError(estimate.number, estimate.status, status)
            previous = estimate.status
            estimate.status = status
            estimate.updated_by_id = self._actor_id
            self._session.flush()
            logger.info(
                "estimate_status_changed",
                extra={
                    "estimate_number": estimate.number,
                    "from_status": previous,
                    "to_status": status,
                },
            )
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise
        return estimate.to_dto()

    def delete_estimate(self, tenant_id: UUID, estimate_id: UUID) -> None:
        try:
            estimate = self._lock_estimate(tenant_id, estimate_id)
            if estimate.status == EstimateStatus.INVOICED.value:
                raise DocumentNotEditableError(estimate.number, estimate.status)
            number = estimate.number
            self._session.delete(estimate)
            self._session.flush()
            logger.info("estimate_deleted", extra={"estimate_number": number})
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise

    def duplicate_estimate(self, tenant_id: UUID, estimate_id: UUID) -> DocumentRecord:
        """Copy an estimate into a new DRAFT dated today, taxed at current rates."""
        try:
            tenant = self._sequences.lock_tenant(tenant_id)
            source = self._lock_estimate(tenant_id, estimate_id)
            copy = self._issue(tenant, self._builder.input_from(source))
            logger.info(
                "estimate_duplicated",
                extra={"source_number": source.number, "estimate_number": copy.number},
            )
            self._commit(tenant_id)
        except Exception:
            self._session.rollback()
            raise
        return copy.to_dto()

    def convert_to_invoice(
        self,
        tenant_id: UUID,
        estimate_id: UUID,
        *,
        status: str | None = None,
        due_date: date | None = None,
    ) -> DocumentRecord:
        """
        Issue an invoice from an estimate and mark the estimate INVOICED.

        Raises:
            InvalidStatusTransitionError: estimate already INVOICED,
                DECLINED or EXPIRED.
            InsufficientStockError: the invoice path rejects the stock.
        """
        try:
            tenant = self._sequences.lock_tenant(tenant_id)
            estimate = self._lock_estimate(tenant_id, estimate_id)
            if estimate.status in NOT_CONVERTIBLE:
                raise InvalidStatusTransitionError(
                    estimate.number, estimate.status, EstimateStatus.INVOICED.value
                )

            data = self._builder.input_from(
                estimate,
                status=status or InvoiceStatus.DRAFT.value,
                due_date=due_date,
            )
            invoice = self._invoices.issue_invoice(tenant, data, estimate_id=estimate.id)

            estimate.status = EstimateStatus.INVOICED.value
            estimate.updated_by_id = self._actor_id
            self._session.flush()

            logger.info(
                "estimate_converted",
                extra={"estimate_number": estimate.number, "invoice_number": invoice.number},
            )
            self._commit(tenant_id, [invoice.customer_id])
        except Exception:
            self._session.rollback()
            raise
        return invoice.to_dto()
