"""Read-only selectors."""

from billing_kernel.selectors.base import BaseSelector
from billing_kernel.selectors.inventory_selector import InventorySelector
from billing_kernel.selectors.ledger_selector import LedgerSelector

__all__ = ["BaseSelector", "InventorySelector", "LedgerSelector"]
