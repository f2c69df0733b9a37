"""Kernel write services.  Each flushes within the caller's transaction."""

from billing_kernel.services.balance_reconciler import BalanceReconciler
from billing_kernel.services.base import BaseService
from billing_kernel.services.inventory_ledger import InventoryLedger
from billing_kernel.services.sequence_service import SequenceAllocator, financial_year

__all__ = [
    "BalanceReconciler",
    "BaseService",
    "InventoryLedger",
    "SequenceAllocator",
    "financial_year",
]
