"""Returns & Damages Module (``trade_modules.returns``)."""

from trade_modules.returns.service import ReturnsService

__all__ = ["ReturnsService"]
