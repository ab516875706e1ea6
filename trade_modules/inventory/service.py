"""
Inventory Module Service (``trade_modules.inventory.service``).

Responsibility
--------------
Product registration, opening stock corrections and the stock history
listing.  Opening corrections are stock entries of source ``opening``
linked to an ``SO<n>`` adjustment reference; deleting the reference
reverts the count.

Invariants enforced
-------------------
* A correction never takes a count below zero.
* History rows come out in (date, sequence) order across every source.
"""

from __future__ import annotations

from itertools import islice

from sqlalchemy import select

from trade_kernel.domain.dtos import HistoryCursor, ProductInfo, StockAdjustmentRequest, StockHistoryRow
from trade_kernel.domain.sequence import max_suffix
from trade_kernel.domain.values import StockSource
from trade_kernel.exceptions import DocumentNotFoundError, ValidationError
from trade_kernel.logging_config import LogContext, get_logger
from trade_kernel.models.product import StockLedgerEntryModel
from trade_kernel.services.sequence_service import SequenceService
from trade_kernel.services.stock_ledger import StockLedger
from trade_kernel.services.transaction_coordinator import BatchContext, BatchResult
from trade_modules._batch_helpers import ModuleService, entry_date

logger = get_logger("modules.inventory.service")

OPENING_PREFIX = "SO"
OPENING_SEQUENCE = "stock_opening"


def _next_opening_ref(ctx: BatchContext) -> str:
    def seed() -> int:
        refs = ctx.session.execute(
            select(StockLedgerEntryModel.linked_doc_ref)
            .where(StockLedgerEntryModel.source_type == StockSource.OPENING.value)
            .where(StockLedgerEntryModel.linked_doc_ref.like(f"{OPENING_PREFIX}%"))
        ).scalars()
        return max_suffix(OPENING_PREFIX, (r for r in refs if r))

    return f"{OPENING_PREFIX}{ctx.sequences.next_value(OPENING_SEQUENCE, seed)}"


class InventoryService(ModuleService):
    """Products and opening stock."""

    def register_product(
        self,
        item_id: str,
        name: str | None = None,
        brand: str | None = None,
        category: str | None = None,
        actor_id: str | None = None,
    ) -> BatchResult:
        """
        Create a product at zero stock, or fill in a known product's blank
        identity fields.  ``value`` is the resulting ``ProductInfo``.
        """
        if not item_id or not item_id.strip():
            raise ValidationError("item_id", "is required")

        def register(ctx: BatchContext) -> ProductInfo:
            ctx.stock.ensure_product(item_id.strip(), name, brand, category)
            return ctx.stock.product_info(item_id.strip())

        return self._coordinator.batch("register_product", actor_id).step("product", register).execute()

    def adjust_opening_stock(
        self,
        request: StockAdjustmentRequest,
        actor_id: str | None = None,
    ) -> BatchResult:
        """Correct a product's opening count.  ``value`` is the ``SO<n>`` reference."""

        def adjust(ctx: BatchContext) -> str:
            ctx.stock.get_product(request.item_id)
            ref = _next_opening_ref(ctx)
            LogContext.set(document_ref=ref)
            ctx.stock.apply(
                request.item_id,
                request.quantity_delta,
                StockSource.OPENING,
                ref,
                submitted_by=request.submitted_by,
                remark=request.remark,
                entry_date=entry_date(ctx, request.date),
            )
            return ref

        logger.info(
            "opening_adjustment_started",
            extra={"item_id": request.item_id, "quantity_delta": request.quantity_delta},
        )
        return self._coordinator.batch("adjust_opening_stock", actor_id).step("adjustment", adjust).execute()

    def delete_opening_adjustment(self, ref: str, actor_id: str | None = None) -> BatchResult:
        def revert(ctx: BatchContext) -> str:
            LogContext.set(document_ref=ref)
            if not ctx.stock.entries_for(ref, StockSource.OPENING):
                raise DocumentNotFoundError("opening adjustment", ref)
            ctx.stock.reverse(ref, StockSource.OPENING)
            return ref

        return self._coordinator.batch("delete_opening_adjustment", actor_id).step("adjustment", revert).execute()

    def product(self, item_id: str) -> ProductInfo:
        with self._coordinator.reader() as session:
            return StockLedger(session, SequenceService(session)).product_info(item_id)

    def stock_history(
        self,
        item_id: str | None = None,
        after: HistoryCursor | None = None,
        limit: int | None = None,
    ) -> list[StockHistoryRow]:
        """
        Stock movements oldest first, optionally for one item.

        Resume a listing by passing the ``cursor`` of its last row as
        ``after``.
        """
        if limit is not None and limit <= 0:
            raise ValidationError("limit", "must be positive")
        page_size = self._coordinator.policy.history_page_size
        with self._coordinator.reader() as session:
            ledger = StockLedger(session, SequenceService(session), page_size=page_size)
            rows = ledger.history(item_id=item_id, after=after)
            return list(islice(rows, limit) if limit is not None else rows)
