"""
Shared step helpers for module services (``trade_modules._batch_helpers``).

Every helper runs inside a coordinator step and works only through the
BatchContext services, so its effects join the caller's batch.
"""

from __future__ import annotations

from datetime import datetime

from trade_kernel.domain.documents import PARTY_KIND
from trade_kernel.domain.dtos import MovementCopy, PaymentRequest
from trade_kernel.domain.values import AggregateKind, DocumentKind, PaymentDirection, ReferenceKind
from trade_kernel.exceptions import ReferenceNotFoundError
from trade_kernel.models.document import BusinessDocumentModel
from trade_kernel.services.transaction_coordinator import BatchContext, TransactionCoordinator

CASH_DIRECTION: dict[DocumentKind, PaymentDirection] = {
    DocumentKind.BILL: PaymentDirection.IN,
    DocumentKind.PURCHASE: PaymentDirection.OUT,
}


class ModuleService:
    """Base for module facades: every public operation is one coordinator batch."""

    def __init__(self, coordinator: TransactionCoordinator):
        self._coordinator = coordinator

    @property
    def coordinator(self) -> TransactionCoordinator:
        return self._coordinator


def record_document_payment(
    ctx: BatchContext,
    document: BusinessDocumentModel,
    request: PaymentRequest,
) -> str:
    """
    Post one PAY movement against a bill or purchase.

    Writes three copies under one reference id: the cash account line
    (IN for bills, OUT for purchases), the document payment, and the
    customer or supplier payment line.  The cash account is the one the
    payment method names and must already exist.
    """
    kind = DocumentKind(document.kind)
    cash = ctx.aggregates.get(AggregateKind.CASH, request.method)
    party = ctx.aggregates.get_or_create(PARTY_KIND[kind], document.party_id, document.party_name)
    reference_id = ctx.references.create(ReferenceKind.PAY)
    date = request.date or ctx.clock.now_utc()

    ctx.aggregates.add_payment_line(
        cash,
        reference_id=reference_id,
        amount=request.amount,
        date=date,
        method=request.method,
        submitted_by=request.submitted_by,
        remark=request.remark,
        linked_doc_ref=document.doc_number,
        direction=CASH_DIRECTION[kind],
    )
    ctx.documents.add_payment(
        document,
        reference_id=reference_id,
        amount=request.amount,
        date=date,
        method=request.method,
        submitted_by=request.submitted_by,
        remark=request.remark,
    )
    ctx.aggregates.add_payment_line(
        party,
        reference_id=reference_id,
        amount=request.amount,
        date=date,
        method=request.method,
        submitted_by=request.submitted_by,
        remark=request.remark,
        linked_doc_ref=document.doc_number,
    )
    return reference_id


def document_copy(ctx: BatchContext, reference_id: str, kind: DocumentKind) -> MovementCopy:
    """The document copy of ``reference_id``; the id must belong to a ``kind`` document."""
    for copy in ctx.references.resolve(reference_id):
        if copy.holder == "document" and copy.document_kind is kind:
            return copy
    raise ReferenceNotFoundError(reference_id)


def entry_date(ctx: BatchContext, date: datetime | None) -> datetime:
    return date or ctx.clock.now_utc()
