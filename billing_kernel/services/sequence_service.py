"""
SequenceAllocator -- human-facing document numbers.

Responsibility:
    Produces ``{prefix}-{FY}-{NNNN}`` numbers per tenant and document
    family.  The counter is a ``document_sequences`` row locked with
    ``SELECT ... FOR UPDATE`` inside the caller's transaction.

Architecture position:
    Kernel > Services.  Called by the document and payment module services
    while they hold an open write transaction.

Invariants enforced:
    - The tenant row is locked first, so concurrent allocations for one
      tenant (including the first-use creation of a counter row) are
      serialized.
    - On first use the counter is seeded from the number of existing
      documents of the family, so ``number = start_number + count``.
      Afterwards the counter only grows: deleting a DRAFT never recycles
      its number.
    - Allocation is only visible once the caller commits.  On rollback the
      number is returned.

Failure modes:
    - TenantNotFoundError: the document creation aborts.
"""

from collections.abc import Callable
from datetime import date

from sqlalchemy import select

from billing_kernel.db.base import UUID
from billing_kernel.domain.clock import Clock
from billing_kernel.exceptions import TenantNotFoundError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.tenant import DocumentSequence, SequenceKind, Tenant
from billing_kernel.services.base import BaseService

logger = get_logger("services.sequence")


def financial_year(today: date, start_month: int) -> int:
    """
    Return the financial year label for ``today``.

    FY is the calendar year when the month is on or after the start month,
    otherwise the previous year (April start: 2024-03-31 -> 2023).
    """
    return today.year if today.month >= start_month else today.year - 1


def format_number(prefix: str, fy: int, value: int) -> str:
    return f"{prefix}-{fy}-{value:04d}"


class SequenceAllocator(BaseService):
    """
    Allocates document numbers under a tenant row lock.

    Usage:
        allocator = SequenceAllocator(session, clock)
        number = allocator.next_number(
            tenant_id, SequenceKind.INVOICE, seed=lambda: existing_count,
        )
    """

    def __init__(self, session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def lock_tenant(self, tenant_id: UUID) -> Tenant:
        """Load and lock the tenant row.  Raises TenantNotFoundError."""
        tenant = self.session.execute(
            select(Tenant)
            .where(Tenant.id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return tenant

    def next_number(
        self,
        tenant_id: UUID,
        kind: SequenceKind,
        *,
        seed: Callable[[], int],
    ) -> str:
        """
        Allocate the next number for ``kind``.

        Preconditions:
            - The caller is within an active write transaction.
            - ``seed`` returns the count of existing documents of the
              family for this tenant; it is only called on first use.

        Postconditions:
            - Returns a number strictly greater (by counter) than any
              previously issued for (tenant, kind).
        """
        tenant = self.lock_tenant(tenant_id)

        counter = self.session.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.tenant_id == tenant_id,
                DocumentSequence.kind == kind.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            counter = DocumentSequence(
                tenant_id=tenant_id,
                kind=kind.value,
                issued_count=seed(),
            )
            self.session.add(counter)
            logger.debug(
                "sequence_counter_seeded",
                extra={"kind": kind.value, "seed": counter.issued_count},
            )

        prefix, start = tenant.numbering_for(kind)
        fy = financial_year(self._clock.today(), tenant.fiscal_year_start_month or 4)
        number = format_number(prefix, fy, start + counter.issued_count)

        counter.issued_count += 1
        self.session.flush()

        logger.debug(
            "sequence_allocated",
            extra={"kind": kind.value, "number": number},
        )
        return number
