"""
Sales Module (``trade_modules.sales``).

Bills: stock deduction, customer billing and three-copy bill payments.
"""

from trade_modules.sales.service import SalesService

__all__ = ["SalesService"]
