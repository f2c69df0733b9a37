"""
Module: billing_kernel.db.base
Responsibility: Declarative bases for every ledger table.  Fixes the key
    type, the column type for each Python annotation and the audit columns
    shared by tenant-owned rows.
Architecture position: Kernel > DB.  Imported by models/ and by nothing
    below it.  MUST NOT import from models/, services/, selectors/ or outer
    layers.

Invariants enforced:
    - Every row is keyed by a uuid4.  Document numbers are display values.
    - Money and quantities are Numeric(38, 9); floats never reach a column.
    - Constraint names are deterministic so PostgreSQL and SQLite agree.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

__all__ = ["UUID", "UUIDString", "Base", "TrackedBase"]

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUIDs as 36-character strings, identical on SQLite and PostgreSQL."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Root of the mapped hierarchy; supplies the uuid4 primary key."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Rows that record who wrote them and when.

    Timestamps come from the database clock; the actor columns are filled
    by the service that performs the write.  Document dates use the
    injected Clock instead.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[UUID]
    updated_by_id: Mapped[UUID | None]
