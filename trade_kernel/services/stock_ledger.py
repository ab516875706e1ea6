"""
StockLedger -- append-only log of signed quantity changes per product.

Responsibility:
    Applies quantity deltas to product stock counts and records each one
    as a StockLedgerEntry carrying the resulting count; reverses every
    entry of a document when it is edited or deleted; serves the merged,
    date-ordered stock history.

Architecture position:
    Kernel > Services.  Used by business modules through the batch
    context.  Entry ordering comes from SequenceService.

Invariants enforced:
    - A product's count never goes below zero.  Sale-side deductions may
      reach exactly zero.  The same floor applies to reversals, so
      deleting a purchase whose goods were already sold is rejected
      instead of being clamped.
    - The product row is locked (``SELECT ... FOR UPDATE``) and carries an
      optimistic version, so concurrent deltas serialize or fail.
    - Entries are never updated.  reverse() removes a document's entries
      after restoring the counts they changed; replace() swaps them for a
      new set, checking the floor on the net change per product.

Failure modes:
    - ProductNotFoundError for an unknown item_id.
    - InsufficientStockError when a delta or reversal would take a count
      below zero.
"""

import heapq
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Iterator

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from trade_kernel.domain.clock import Clock
from trade_kernel.domain.dtos import (
    HistoryCursor,
    ProductInfo,
    StockEntry,
    StockHistoryRow,
)
from trade_kernel.domain.values import StockSource
from trade_kernel.exceptions import InsufficientStockError, ProductNotFoundError
from trade_kernel.logging_config import get_logger
from trade_kernel.models.product import ProductModel, StockLedgerEntryModel
from trade_kernel.services.base import BaseService
from trade_kernel.services.sequence_service import SequenceService

logger = get_logger("services.stock_ledger")

DEFAULT_PAGE_SIZE = 200


def _entry_dto(row: StockLedgerEntryModel) -> StockEntry:
    return StockEntry(
        item_id=row.item_id,
        quantity_delta=row.quantity_delta,
        source_type=StockSource(row.source_type),
        linked_doc_ref=row.linked_doc_ref,
        entry_date=row.entry_date,
        seq=row.seq,
        stock_after=row.stock_after,
        submitted_by=row.submitted_by,
        remark=row.remark,
    )


class StockLedger(BaseService[StockLedgerEntryModel]):
    """
    Batch-scoped stock operations.

    Contract:
        ``apply`` and ``reverse`` flush but never commit.  ``history`` is
        read-only and may be used outside a batch.
    """

    def __init__(
        self,
        session: Session,
        sequences: SequenceService,
        clock: Clock | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        super().__init__(session, clock)
        self.sequences = sequences
        self.page_size = page_size

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def find_product(self, item_id: str, lock: bool = False) -> ProductModel | None:
        stmt = select(ProductModel).where(ProductModel.item_id == item_id)
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def get_product(self, item_id: str, lock: bool = False) -> ProductModel:
        product = self.find_product(item_id, lock=lock)
        if product is None:
            raise ProductNotFoundError(item_id)
        return product

    def ensure_product(
        self,
        item_id: str,
        name: str | None = None,
        brand: str | None = None,
        category: str | None = None,
    ) -> ProductModel:
        """Existing product (identity fields filled in if blank) or a new one at zero stock."""
        product = self.find_product(item_id)
        if product is None:
            product = ProductModel(
                item_id=item_id,
                name=name,
                brand=brand,
                category=category,
                count_in_stock=0,
            )
            self.session.add(product)
            self.session.flush()
            logger.info("product_registered", extra={"item_id": item_id})
            return product
        if name and not product.name:
            product.name = name
        if brand and not product.brand:
            product.brand = brand
        if category and not product.category:
            product.category = category
        return product

    def current_stock(self, item_id: str) -> int:
        return self.get_product(item_id).count_in_stock

    def product_info(self, item_id: str) -> ProductInfo:
        product = self.get_product(item_id)
        return ProductInfo(
            item_id=product.item_id,
            name=product.name,
            brand=product.brand,
            category=product.category,
            count_in_stock=product.count_in_stock,
        )

    # ------------------------------------------------------------------
    # Apply / reverse
    # ------------------------------------------------------------------

    def _next_seq(self) -> int:
        def seed() -> int:
            return self.session.execute(
                select(func.coalesce(func.max(StockLedgerEntryModel.seq), 0))
            ).scalar_one()

        return self.sequences.next_value(SequenceService.STOCK_ENTRY, seed)

    def _move(self, product: ProductModel, quantity_delta: int) -> int:
        new_count = product.count_in_stock + quantity_delta
        if new_count < 0:
            raise InsufficientStockError(product.item_id, product.count_in_stock, quantity_delta)
        product.count_in_stock = new_count
        return new_count

    def _entry_model(
        self,
        item_id: str,
        quantity_delta: int,
        source_type: StockSource,
        linked_doc_ref: str | None,
        submitted_by: str | None,
        remark: str | None,
        entry_date: datetime | None,
        stock_after: int,
    ) -> StockLedgerEntryModel:
        return StockLedgerEntryModel(
            item_id=item_id,
            quantity_delta=quantity_delta,
            source_type=StockSource(source_type).value,
            linked_doc_ref=linked_doc_ref,
            submitted_by=submitted_by,
            remark=remark,
            entry_date=entry_date or self.clock.now_utc(),
            seq=self._next_seq(),
            stock_after=stock_after,
        )

    def apply(
        self,
        item_id: str,
        quantity_delta: int,
        source_type: StockSource,
        linked_doc_ref: str | None,
        submitted_by: str | None = None,
        remark: str | None = None,
        entry_date: datetime | None = None,
    ) -> StockEntry:
        """
        Change a product's count by ``quantity_delta`` and log it.

        Postconditions:
            - count_in_stock >= 0.
            - One new entry with stock_after == the new count.
        """
        product = self.get_product(item_id, lock=True)
        stock_after = self._move(product, quantity_delta)

        entry = self._entry_model(
            item_id, quantity_delta, source_type, linked_doc_ref,
            submitted_by, remark, entry_date, stock_after,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "stock_applied",
            extra={
                "item_id": item_id,
                "quantity_delta": quantity_delta,
                "source_type": entry.source_type,
                "linked_doc_ref": linked_doc_ref,
                "stock_after": stock_after,
            },
        )
        return _entry_dto(entry)

    def _linked(self, linked_doc_ref: str, source_type: StockSource | None):
        stmt = select(StockLedgerEntryModel).where(
            StockLedgerEntryModel.linked_doc_ref == linked_doc_ref
        )
        if source_type is not None:
            stmt = stmt.where(StockLedgerEntryModel.source_type == StockSource(source_type).value)
        return stmt

    def entries_for(
        self, linked_doc_ref: str, source_type: StockSource | None = None
    ) -> list[StockEntry]:
        rows = self.session.execute(
            self._linked(linked_doc_ref, source_type).order_by(StockLedgerEntryModel.seq)
        ).scalars()
        return [_entry_dto(row) for row in rows]

    def reverse(
        self, linked_doc_ref: str, source_type: StockSource | None = None
    ) -> list[StockEntry]:
        """
        Undo every entry tied to ``linked_doc_ref`` (of ``source_type``, if given).

        Applies the negated deltas (newest first) and removes the entries.
        Raises InsufficientStockError, aborting the batch, if any count
        would go negative.
        """
        rows = list(
            self.session.execute(
                self._linked(linked_doc_ref, source_type).order_by(StockLedgerEntryModel.seq.desc())
            ).scalars()
        )
        reversed_entries = []
        for row in rows:
            product = self.get_product(row.item_id, lock=True)
            self._move(product, -row.quantity_delta)
            reversed_entries.append(_entry_dto(row))
            self.session.delete(row)
        self.session.flush()

        if rows:
            logger.info(
                "stock_reversed",
                extra={"linked_doc_ref": linked_doc_ref, "entries": len(rows)},
            )
        return reversed_entries

    def replace(
        self,
        linked_doc_ref: str,
        source_type: StockSource,
        deltas: Iterable[tuple[str, int]],
        submitted_by: str | None = None,
        entry_date: datetime | None = None,
    ) -> list[StockEntry]:
        """
        Swap a document's entries for ``deltas`` (item_id, quantity_delta).

        The floor is checked on each product's net change, so an edit that
        only trims a purchase whose goods were partly sold still passes
        when enough stock is left.  Each new entry's ``stock_after`` is the
        count the product ends the batch step with.
        """
        deltas = list(deltas)
        rows = list(self.session.execute(self._linked(linked_doc_ref, source_type)).scalars())

        net: dict[str, int] = defaultdict(int)
        for row in rows:
            net[row.item_id] -= row.quantity_delta
        for item_id, delta in deltas:
            net[item_id] += delta

        products: dict[str, ProductModel] = {}
        for item_id in sorted(net):
            product = self.get_product(item_id, lock=True)
            if product.count_in_stock + net[item_id] < 0:
                raise InsufficientStockError(item_id, product.count_in_stock, net[item_id])
            products[item_id] = product

        for row in rows:
            self.session.delete(row)
        for item_id, change in net.items():
            products[item_id].count_in_stock += change

        # walk back from the final counts so repeated items stay consistent
        running = {item_id: product.count_in_stock for item_id, product in products.items()}
        stock_after = []
        for item_id, delta in reversed(deltas):
            stock_after.append(running[item_id])
            running[item_id] -= delta
        stock_after.reverse()

        models = [
            self._entry_model(
                item_id, delta, source_type, linked_doc_ref, submitted_by, None, entry_date, after
            )
            for (item_id, delta), after in zip(deltas, stock_after)
        ]
        self.session.add_all(models)
        self.session.flush()

        logger.info(
            "stock_replaced",
            extra={"linked_doc_ref": linked_doc_ref, "removed": len(rows), "added": len(models)},
        )
        return [_entry_dto(model) for model in models]

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _source_stream(
        self,
        source: StockSource,
        item_id: str | None,
        after: HistoryCursor | None,
        page_size: int,
    ) -> Iterator[StockHistoryRow]:
        """Keyset-paged rows of one source type, ordered by (date, seq)."""
        cursor = after
        while True:
            stmt = (
                select(StockLedgerEntryModel, ProductModel)
                .join(ProductModel, ProductModel.item_id == StockLedgerEntryModel.item_id)
                .where(StockLedgerEntryModel.source_type == source.value)
                .order_by(StockLedgerEntryModel.entry_date, StockLedgerEntryModel.seq)
                .limit(page_size)
            )
            if item_id is not None:
                stmt = stmt.where(StockLedgerEntryModel.item_id == item_id)
            if cursor is not None:
                stmt = stmt.where(
                    or_(
                        StockLedgerEntryModel.entry_date > cursor.entry_date,
                        and_(
                            StockLedgerEntryModel.entry_date == cursor.entry_date,
                            StockLedgerEntryModel.seq > cursor.seq,
                        ),
                    )
                )
            page = self.session.execute(stmt).all()
            for entry, product in page:
                cursor = HistoryCursor(entry.entry_date, entry.seq)
                yield StockHistoryRow(
                    item_id=entry.item_id,
                    name=product.name,
                    brand=product.brand,
                    category=product.category,
                    quantity=entry.quantity_delta,
                    source_type=StockSource(entry.source_type),
                    linked_doc_ref=entry.linked_doc_ref,
                    submitted_by=entry.submitted_by,
                    remark=entry.remark,
                    date=entry.entry_date,
                    stock_after=entry.stock_after,
                    cursor=cursor,
                )
            if len(page) < page_size:
                return

    def history(
        self,
        item_id: str | None = None,
        after: HistoryCursor | None = None,
        page_size: int | None = None,
    ) -> Iterator[StockHistoryRow]:
        """
        Stock movements across all five source types, oldest first.

        Lazily merges one keyset-paged stream per source type, so only a
        page per source is held in memory.  Pass the ``cursor`` of the
        last row consumed as ``after`` to resume.
        """
        size = page_size or self.page_size
        streams = [self._source_stream(source, item_id, after, size) for source in StockSource]
        return heapq.merge(*streams, key=lambda row: (row.cursor.entry_date, row.cursor.seq))
