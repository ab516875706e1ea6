"""
Trade Kernel - ledger consistency engine for a trading back office.

Keeps per-party account aggregates and per-product stock counts mutually
consistent while business documents are created, edited and deleted:
- Atomic coordinator batches (all-or-nothing)
- Explicit, pure balance recalculation
- Linked payment movements with symmetric reversal
- Locked per-namespace document sequences
- Append-only stock ledger
"""

__version__ = "0.1.0"
