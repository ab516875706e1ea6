"""Services for the trade kernel (write side)."""

from trade_kernel.services.aggregate_store import AccountAggregateStore
from trade_kernel.services.document_store import DocumentStore
from trade_kernel.services.reference_linker import ReferenceLinker, ReferenceMinter
from trade_kernel.services.sequence_service import SequenceService
from trade_kernel.services.stock_ledger import StockLedger
from trade_kernel.services.transaction_coordinator import (
    BatchBuilder,
    BatchContext,
    BatchResult,
    ErrorResult,
    TransactionCoordinator,
    error_result,
)

__all__ = [
    "AccountAggregateStore",
    "BatchBuilder",
    "BatchContext",
    "BatchResult",
    "DocumentStore",
    "ErrorResult",
    "ReferenceLinker",
    "ReferenceMinter",
    "SequenceService",
    "StockLedger",
    "TransactionCoordinator",
    "error_result",
]
