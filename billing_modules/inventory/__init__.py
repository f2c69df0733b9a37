"""Inventory Module."""

from billing_modules.inventory.service import InventoryService

__all__ = ["InventoryService"]
