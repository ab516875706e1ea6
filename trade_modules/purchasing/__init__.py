"""
Purchasing Module (``trade_modules.purchasing``).

Purchases: stock receipt, supplier and seller billing, purchase payments.
"""

from trade_modules.purchasing.service import PurchasingService

__all__ = ["PurchasingService"]
