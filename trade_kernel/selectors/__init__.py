"""Read-only query selectors over committed ledger state."""

from trade_kernel.selectors.account_selector import AccountSelector, DailyMovement
from trade_kernel.selectors.base import BaseSelector
from trade_kernel.selectors.document_selector import DocumentSelector

__all__ = [
    "AccountSelector",
    "BaseSelector",
    "DailyMovement",
    "DocumentSelector",
]
