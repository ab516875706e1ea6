"""
Business document lifecycle.

    DRAFT --> ACTIVE --> EDITED --+--> DELETED
                 |          ^     |
                 |          +-----+
                 +-----------------> DELETED

EDITED may repeat.  DELETED is terminal.
"""

from trade_kernel.domain.values import AggregateKind, DocumentKind, DocumentState
from trade_kernel.exceptions import DocumentStateError

# Account billed by a payable document; its billing line mirrors the
# document's payment status.
PARTY_KIND: dict[DocumentKind, AggregateKind] = {
    DocumentKind.BILL: AggregateKind.CUSTOMER,
    DocumentKind.PURCHASE: AggregateKind.SUPPLIER,
}

VALID_TRANSITIONS: dict[DocumentState, frozenset[DocumentState]] = {
    DocumentState.DRAFT: frozenset({DocumentState.ACTIVE}),
    DocumentState.ACTIVE: frozenset({DocumentState.EDITED, DocumentState.DELETED}),
    DocumentState.EDITED: frozenset({DocumentState.EDITED, DocumentState.DELETED}),
    DocumentState.DELETED: frozenset(),
}


def can_transition(current: DocumentState, target: DocumentState) -> bool:
    return DocumentState(target) in VALID_TRANSITIONS[DocumentState(current)]


def check_transition(doc_number: str, current: DocumentState, target: DocumentState) -> DocumentState:
    """Return ``target`` if the move is legal, else raise DocumentStateError."""
    current = DocumentState(current)
    target = DocumentState(target)
    if not can_transition(current, target):
        raise DocumentStateError(doc_number, current.value, target.value)
    return target
