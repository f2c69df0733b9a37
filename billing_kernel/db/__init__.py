"""Database layer - engine handle and declarative base classes."""

from billing_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from billing_kernel.db.engine import Database

__all__ = [
    "Database",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
