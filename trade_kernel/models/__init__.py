"""ORM models for the trade kernel."""

from trade_kernel.models.account import (
    AccountAggregateModel,
    BillingLineModel,
    PaymentLineModel,
)
from trade_kernel.models.document import (
    BusinessDocumentModel,
    DocumentLineModel,
    DocumentPaymentModel,
)
from trade_kernel.models.product import ProductModel, StockLedgerEntryModel

__all__ = [
    "AccountAggregateModel",
    "BillingLineModel",
    "PaymentLineModel",
    "BusinessDocumentModel",
    "DocumentLineModel",
    "DocumentPaymentModel",
    "ProductModel",
    "StockLedgerEntryModel",
]
