"""
Pure domain layer.

Value enums, the ledger policy, the balance recalculator, reference and
document-number helpers, the document lifecycle and DTOs.  Nothing here
touches the database, the clock or any other I/O.
"""

from trade_kernel.domain.balance import (
    EMPTY_TOTALS,
    AggregateTotals,
    enforce_policy,
    payment_status,
    recalculate,
)
from trade_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from trade_kernel.domain.documents import can_transition, check_transition
from trade_kernel.domain.policy import LedgerPolicy
from trade_kernel.domain.references import (
    ParsedReference,
    format_reference,
    paired_reference,
    parse_reference,
)
from trade_kernel.domain.sequence import (
    extract_suffix,
    format_document_number,
    max_suffix,
    natural_key,
)
from trade_kernel.domain.values import (
    AggregateKind,
    DocumentKind,
    DocumentState,
    OverdraftPolicy,
    PaymentDirection,
    ReferenceKind,
    ReturnType,
    StockSource,
)

__all__ = [
    "AggregateKind",
    "AggregateTotals",
    "Clock",
    "DeterministicClock",
    "DocumentKind",
    "DocumentState",
    "EMPTY_TOTALS",
    "LedgerPolicy",
    "OverdraftPolicy",
    "ParsedReference",
    "PaymentDirection",
    "ReferenceKind",
    "ReturnType",
    "StockSource",
    "SystemClock",
    "can_transition",
    "check_transition",
    "enforce_policy",
    "extract_suffix",
    "format_document_number",
    "format_reference",
    "max_suffix",
    "natural_key",
    "paired_reference",
    "parse_reference",
    "payment_status",
    "recalculate",
]
