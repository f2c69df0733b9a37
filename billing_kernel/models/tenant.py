"""
Module: billing_kernel.models.tenant
Responsibility: ORM persistence for the tenant (organization) row that owns
    every document, customer and product, and for the per-tenant document
    sequence counters.
Architecture position: Kernel > Models.  May import from db/base.py only.
    Tenant CRUD belongs to an external collaborator; the kernel reads the
    home state, fiscal-year start month and numbering settings, and locks
    the row while allocating document numbers.

Invariants enforced:
    - One DocumentSequence row per (tenant, sequence kind)
      (uq_document_sequence).  The row is only ever incremented.
    - fiscal_year_start_month is 1..12 (ck_tenant_fy_start).

Failure modes:
    - IntegrityError on a duplicate counter row (serialized by the tenant
      row lock in SequenceAllocator).
"""

from enum import Enum

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base, TrackedBase, UUID


class SequenceKind(str, Enum):
    """Numbered document families.  Each has its own prefix and counter."""

    INVOICE = "INVOICE"
    ESTIMATE = "ESTIMATE"
    CREDIT_NOTE = "CREDIT_NOTE"
    PAYMENT = "PAYMENT"


class Tenant(TrackedBase):
    """
    Organization that issues documents.

    The numbering columns fall back to INV/EST/CN/PAY starting at 1 when
    left unset by the tenant-settings collaborator.
    """

    __tablename__ = "tenants"

    __table_args__ = (
        CheckConstraint(
            "fiscal_year_start_month BETWEEN 1 AND 12",
            name="ck_tenant_fy_start",
        ),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)

    # Home state: GST code or name, see billing_kernel.domain.states
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)

    fiscal_year_start_month: Mapped[int] = mapped_column(
        Integer, nullable=False, default=4
    )

    invoice_prefix: Mapped[str | None] = mapped_column(String(20), nullable=True)
    invoice_start_number: Mapped[int | None] = mapped_column(nullable=True)
    estimate_prefix: Mapped[str | None] = mapped_column(String(20), nullable=True)
    estimate_start_number: Mapped[int | None] = mapped_column(nullable=True)
    credit_note_prefix: Mapped[str | None] = mapped_column(String(20), nullable=True)
    credit_note_start_number: Mapped[int | None] = mapped_column(nullable=True)
    payment_prefix: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_start_number: Mapped[int | None] = mapped_column(nullable=True)

    _DEFAULT_PREFIXES = {
        SequenceKind.INVOICE: "INV",
        SequenceKind.ESTIMATE: "EST",
        SequenceKind.CREDIT_NOTE: "CN",
        SequenceKind.PAYMENT: "PAY",
    }

    def numbering_for(self, kind: SequenceKind) -> tuple[str, int]:
        """Return ``(prefix, start_number)`` for a document family."""
        column = kind.value.lower()
        prefix = getattr(self, f"{column}_prefix") or self._DEFAULT_PREFIXES[kind]
        start = getattr(self, f"{column}_start_number") or 1
        return prefix, start

    def __repr__(self) -> str:
        return f"<Tenant {self.name}>"


class DocumentSequence(Base):
    """
    Locked counter row for one (tenant, sequence kind).

    ``issued_count`` is the number of numbers handed out so far.  It is
    seeded from the count of existing documents on first use and never
    decremented, so deleting a DRAFT does not recycle its number.
    """

    __tablename__ = "document_sequences"

    __table_args__ = (
        UniqueConstraint("tenant_id", "kind", name="uq_document_sequence"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )

    kind: Mapped[SequenceKind] = mapped_column(String(20), nullable=False)

    issued_count: Mapped[int] = mapped_column(nullable=False, default=0)
