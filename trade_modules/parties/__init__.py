"""
Parties Module (``trade_modules.parties``).

Customer and supplier accounts kept by hand: manual bills and payments,
renames, and removal of unused accounts.
"""

from trade_modules.parties.service import PartiesService

__all__ = ["PartiesService"]
