"""
Trade Modules.

Thin orchestration layers over the Trade Kernel.  Each module is a
service facade whose public methods are single coordinator batches.

Modules:
- Sales: Bills and bill payments
- Purchasing: Purchases and supplier payments
- Returns: Bill/purchase returns and damage write-offs
- Cash: Cash accounts, transfers, seller and transport payments
- Inventory: Products, opening stock, stock history
- Parties: Hand-kept customer and supplier accounts

Processing logic lives in the kernel; modules only sequence it.
"""

from trade_modules.cash.service import CashService
from trade_modules.inventory.service import InventoryService
from trade_modules.parties.service import PartiesService
from trade_modules.purchasing.service import PurchasingService
from trade_modules.returns.service import ReturnsService
from trade_modules.sales.service import SalesService

__all__ = [
    "CashService",
    "InventoryService",
    "PartiesService",
    "PurchasingService",
    "ReturnsService",
    "SalesService",
]
