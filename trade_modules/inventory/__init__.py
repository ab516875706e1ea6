"""Inventory Module (``trade_modules.inventory``)."""

from trade_modules.inventory.service import InventoryService

__all__ = ["InventoryService"]
