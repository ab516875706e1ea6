"""
Typed Exception Hierarchy for the Trade Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A batch that touches several aggregates can fail for very different
reasons: a bad input field, a missing account, a balance that would go
negative, a product with too little stock, a concurrent writer.  The
boundary layer has to tell these apart without parsing message text, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from TradeKernelError:

    TradeKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- AggregateNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- ProductNotFoundError
    |   +-- ReferenceNotFoundError
    |
    +-- InvariantViolation
    |   +-- NegativePendingError
    |   +-- DuplicateDocumentNumberError
    |   +-- InsufficientStockError
    |   +-- DocumentStateError
    |   +-- InvalidLineError
    |   +-- AccountInUseError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- InternalError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed or missing input field
----------------|-----------------------------|-----------------------------------------
Not found       | AGGREGATE_NOT_FOUND         | No account for (kind, owner)
                | DOCUMENT_NOT_FOUND          | No document for (kind, number)
                | PRODUCT_NOT_FOUND           | Unknown item_id
                | REFERENCE_NOT_FOUND         | No copy holds the reference id
----------------|-----------------------------|-----------------------------------------
Invariant       | NEGATIVE_PENDING            | pending < 0 on a non-overdraft kind
                | DUPLICATE_DOCUMENT_NUMBER   | Document number already taken
                | INSUFFICIENT_STOCK          | Stock count would go below zero
                | DOCUMENT_STATE              | Illegal lifecycle transition
                | INVALID_LINE                | Line not allowed on this aggregate
                | ACCOUNT_IN_USE              | Account still referenced by documents
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Aggregate changed by another batch
----------------|-----------------------------|-----------------------------------------
Internal        | INTERNAL_ERROR              | Unexpected store or I/O failure

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        sales.add_bill_payment("KK12", request)
    except NegativePendingError as e:
        respond(409, code=e.code, owner=e.owner_id, pending=str(e.pending))
    except NotFoundError as e:
        respond(404, code=e.code)

Boundary layers that only need a serializable shape call
``trade_kernel.services.transaction_coordinator.error_result(exc)``.
"""

from decimal import Decimal


class TradeKernelError(Exception):
    """Base exception for all trade kernel errors."""

    code: str = "TRADE_KERNEL_ERROR"
    kind: str = "InternalError"

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


# =============================================================================
# Validation
# =============================================================================


class ValidationError(TradeKernelError):
    """Malformed or missing input field. No state was changed."""

    code: str = "VALIDATION_ERROR"
    kind: str = "ValidationError"

    def __init__(self, field: str | None, message: str):
        self.field = field
        super().__init__(f"{field}: {message}" if field else message)


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(TradeKernelError):
    """An id did not resolve to an existing aggregate, document or product."""

    code: str = "NOT_FOUND"
    kind: str = "NotFoundError"


class AggregateNotFoundError(NotFoundError):
    """No account aggregate exists for the given kind and owner."""

    code: str = "AGGREGATE_NOT_FOUND"

    def __init__(self, kind: str, owner_id: str):
        self.aggregate_kind = kind
        self.owner_id = owner_id
        super().__init__(f"{kind} account not found: {owner_id}")


class DocumentNotFoundError(NotFoundError):
    """No business document exists for the given kind and number."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_kind: str, doc_number: str):
        self.document_kind = document_kind
        self.doc_number = doc_number
        super().__init__(f"{document_kind} not found: {doc_number}")


class ProductNotFoundError(NotFoundError):
    """Product item_id is unknown."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Product not found: {item_id}")


class ReferenceNotFoundError(NotFoundError):
    """No aggregate or document copy holds the reference id."""

    code: str = "REFERENCE_NOT_FOUND"

    def __init__(self, reference_id: str):
        self.reference_id = reference_id
        super().__init__(f"Payment reference not found: {reference_id}")


# =============================================================================
# Invariant violations
# =============================================================================


class InvariantViolation(TradeKernelError):
    """A commit would break a consistency rule; the batch is aborted."""

    code: str = "INVARIANT_VIOLATION"
    kind: str = "InvariantViolation"


class NegativePendingError(InvariantViolation):
    """Pending balance would go negative on a kind that forbids overdraft."""

    code: str = "NEGATIVE_PENDING"

    def __init__(self, kind: str, owner_id: str, pending: Decimal):
        self.aggregate_kind = kind
        self.owner_id = owner_id
        self.pending = pending
        super().__init__(
            f"{kind} account {owner_id} would have negative pending amount {pending}"
        )


class DuplicateDocumentNumberError(InvariantViolation):
    """Document number is already taken in its namespace."""

    code: str = "DUPLICATE_DOCUMENT_NUMBER"

    def __init__(self, document_kind: str, doc_number: str):
        self.document_kind = document_kind
        self.doc_number = doc_number
        super().__init__(f"Duplicate {document_kind} number: {doc_number}")


class InsufficientStockError(InvariantViolation):
    """Applying the delta would take the product's stock below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, item_id: str, available: int, requested_delta: int):
        self.item_id = item_id
        self.available = available
        self.requested_delta = requested_delta
        super().__init__(
            f"Insufficient stock for {item_id}: "
            f"available {available}, change {requested_delta}"
        )


class DocumentStateError(InvariantViolation):
    """Illegal business document lifecycle transition."""

    code: str = "DOCUMENT_STATE"

    def __init__(self, doc_number: str, current_state: str, target_state: str):
        self.doc_number = doc_number
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Document {doc_number} cannot move from {current_state} to {target_state}"
        )


class InvalidLineError(InvariantViolation):
    """A line is not allowed on the target aggregate."""

    code: str = "INVALID_LINE"

    def __init__(self, kind: str, owner_id: str, reason: str):
        self.aggregate_kind = kind
        self.owner_id = owner_id
        self.reason = reason
        super().__init__(f"Invalid line for {kind} account {owner_id}: {reason}")


class AccountInUseError(InvariantViolation):
    """The account is still referenced by documents or linked movements."""

    code: str = "ACCOUNT_IN_USE"

    def __init__(self, kind: str, owner_id: str, references: list[str]):
        self.aggregate_kind = kind
        self.owner_id = owner_id
        self.references = references
        super().__init__(
            f"{kind} account {owner_id} is still referenced by: {', '.join(references)}"
        )


# =============================================================================
# Concurrency
# =============================================================================


class ConcurrencyError(TradeKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    kind: str = "ConcurrencyConflict"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# =============================================================================
# Internal
# =============================================================================


class InternalError(TradeKernelError):
    """Unexpected store or I/O failure. The original error is chained."""

    code: str = "INTERNAL_ERROR"
    kind: str = "InternalError"

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")
