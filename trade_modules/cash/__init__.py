"""
Cash Module (``trade_modules.cash``).

Cash accounts, account-to-account transfers, seller and transport
payments, and the daily movement listing.
"""

from trade_modules.cash.service import CashService

__all__ = ["CashService"]
