"""
Returns & Damages Module Service (``trade_modules.returns.service``).

Responsibility
--------------
Returns move goods back against an earlier bill (the customer hands them
back, stock goes up) or an earlier purchase (goods go back to the
supplier, stock goes down).  Damages write stock off.  Both are business
documents with their own number sequence and can be deleted, which
reverses their stock entries.

Returns carry a ``return_amount`` for the record but post no account
lines; refunds are recorded as explicit payments.

Invariants enforced
-------------------
* Every returned item appears on the original document, in no greater
  quantity than it was sold or bought.
* A purchase return or damage never takes stock below zero.
"""

from __future__ import annotations

from trade_kernel.domain.dtos import DamageRequest, ReturnRequest
from trade_kernel.domain.values import DocumentKind, DocumentState, ReturnType, StockSource
from trade_kernel.exceptions import ValidationError
from trade_kernel.logging_config import LogContext, get_logger
from trade_kernel.models.document import BusinessDocumentModel
from trade_kernel.services.transaction_coordinator import BatchContext, BatchResult
from trade_modules._batch_helpers import ModuleService

logger = get_logger("modules.returns.service")

_ORIGINAL_KIND = {
    ReturnType.BILL: DocumentKind.BILL,
    ReturnType.PURCHASE: DocumentKind.PURCHASE,
}

# Stock sign of a returned unit
_RETURN_SIGN = {
    ReturnType.BILL: 1,
    ReturnType.PURCHASE: -1,
}


def _check_against_original(request: ReturnRequest, original: BusinessDocumentModel) -> None:
    quantities = {line.item_id: line.quantity for line in original.lines}
    for i, line in enumerate(request.lines):
        if line.item_id not in quantities:
            raise ValidationError(
                f"lines[{i}].item_id",
                f"{line.item_id} is not on {original.kind} {original.doc_number}",
            )
        if line.quantity > quantities[line.item_id]:
            raise ValidationError(
                f"lines[{i}].quantity",
                f"returns {line.quantity} of {line.item_id} but "
                f"{original.doc_number} has {quantities[line.item_id]}",
            )


class ReturnsService(ModuleService):
    """Return and damage documents."""

    # =========================================================================
    # Returns
    # =========================================================================

    def create_return(self, request: ReturnRequest, actor_id: str | None = None) -> BatchResult:
        """
        Record a bill or purchase return.

        Returns:
            BatchResult whose ``value`` is the return number.
        """

        def create(ctx: BatchContext) -> str:
            original = ctx.documents.get(_ORIGINAL_KIND[request.return_type], request.original_doc_ref)
            _check_against_original(request, original)

            return_no = ctx.next_document_number(DocumentKind.RETURN, request.return_no)
            LogContext.set(document_ref=return_no)
            date = request.date or ctx.clock.now_utc()

            document = ctx.documents.create(
                DocumentKind.RETURN,
                return_no,
                request.lines,
                total_amount=request.return_amount,
                party_id=request.party_id or original.party_id,
                party_name=request.party_name or original.party_name,
                date=date,
                submitted_by=request.submitted_by,
                return_type=request.return_type,
                original_doc_ref=original.doc_number,
            )
            sign = _RETURN_SIGN[request.return_type]
            for line in request.lines:
                ctx.stock.apply(
                    line.item_id,
                    sign * line.quantity,
                    StockSource.RETURN,
                    return_no,
                    submitted_by=request.submitted_by,
                    entry_date=date,
                )
            ctx.documents.transition(document, DocumentState.ACTIVE)
            return return_no

        logger.info(
            "create_return_started",
            extra={
                "return_type": request.return_type.value,
                "original_doc_ref": request.original_doc_ref,
            },
        )
        return self._coordinator.batch("create_return", actor_id).step("return", create).execute()

    def delete_return(self, return_no: str, actor_id: str | None = None) -> BatchResult:
        def delete(ctx: BatchContext) -> str:
            LogContext.set(document_ref=return_no)
            document = ctx.documents.get(DocumentKind.RETURN, return_no)
            ctx.stock.reverse(return_no, StockSource.RETURN)
            ctx.documents.delete(document)
            return return_no

        return self._coordinator.batch("delete_return", actor_id).step("return", delete).execute()

    # =========================================================================
    # Damages
    # =========================================================================

    def record_damage(self, request: DamageRequest, actor_id: str | None = None) -> BatchResult:
        """Write off damaged stock.  ``value`` is the damage number."""

        def create(ctx: BatchContext) -> str:
            damage_no = ctx.next_document_number(DocumentKind.DAMAGE, request.damage_no)
            LogContext.set(document_ref=damage_no)
            date = request.date or ctx.clock.now_utc()

            document = ctx.documents.create(
                DocumentKind.DAMAGE,
                damage_no,
                request.lines,
                date=date,
                submitted_by=request.submitted_by,
                remark=request.remark,
            )
            for line in request.lines:
                ctx.stock.apply(
                    line.item_id,
                    -line.quantity,
                    StockSource.DAMAGE,
                    damage_no,
                    submitted_by=request.submitted_by,
                    remark=request.remark,
                    entry_date=date,
                )
            ctx.documents.transition(document, DocumentState.ACTIVE)
            return damage_no

        return self._coordinator.batch("record_damage", actor_id).step("damage", create).execute()

    def delete_damage(self, damage_no: str, actor_id: str | None = None) -> BatchResult:
        def delete(ctx: BatchContext) -> str:
            LogContext.set(document_ref=damage_no)
            document = ctx.documents.get(DocumentKind.DAMAGE, damage_no)
            ctx.stock.reverse(damage_no, StockSource.DAMAGE)
            ctx.documents.delete(document)
            return damage_no

        return self._coordinator.batch("delete_damage", actor_id).step("damage", delete).execute()
