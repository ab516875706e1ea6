"""
Purchasing Module Service (``trade_modules.purchasing.service``).

Responsibility
--------------
Purchases and their payments.  Creating a purchase adds stock (creating
products seen for the first time) and bills the supplier twice over: on
the supplier account and on the seller account, both owned by the
supplier id.  Editing replaces its lines, stock and billed total;
deleting a purchase reverses all of it.  Purchase payments
are three-copy PAY movements (cash OUT, purchase payment, supplier
payment).

Architecture position
---------------------
**Modules layer** -- thin glue over one ``TransactionCoordinator`` batch
per public method.

Invariants enforced
-------------------
* Deleting a purchase whose goods have since been sold or written off
  would take stock below zero; the delete is rejected with
  ``InsufficientStockError`` rather than clamping the count.
* After delete every product count, the supplier account and the seller
  account are exactly as if the purchase had never existed.
* An edit checks the stock floor on the net change per product, so
  trimming a purchase whose goods were partly sold passes only while the
  remaining count covers it.
"""

from __future__ import annotations

from trade_kernel.domain.dtos import PaymentEdit, PaymentRequest, PurchaseEdit, PurchaseRequest
from trade_kernel.domain.values import AggregateKind, DocumentKind, DocumentState, StockSource
from trade_kernel.logging_config import LogContext, get_logger
from trade_kernel.services.transaction_coordinator import BatchContext, BatchResult
from trade_modules._batch_helpers import (
    ModuleService,
    document_copy,
    record_document_payment,
)

logger = get_logger("modules.purchasing.service")


class PurchasingService(ModuleService):
    """Purchase lifecycle and purchase payments."""

    # =========================================================================
    # Purchases
    # =========================================================================

    def create_purchase(self, request: PurchaseRequest, actor_id: str | None = None) -> BatchResult:
        """
        Record goods bought from a supplier.

        Returns:
            BatchResult whose ``value`` is the purchase number.
        """

        def create(ctx: BatchContext) -> str:
            purchase_no = ctx.next_document_number(DocumentKind.PURCHASE, request.purchase_no)
            LogContext.set(document_ref=purchase_no)
            date = request.date or ctx.clock.now_utc()

            document = ctx.documents.create(
                DocumentKind.PURCHASE,
                purchase_no,
                request.lines,
                total_amount=request.total_amount,
                party_id=request.supplier_id,
                party_name=request.supplier_name,
                date=date,
                submitted_by=request.submitted_by,
                supplier_invoice_no=request.supplier_invoice_no,
            )
            for line in request.lines:
                ctx.stock.ensure_product(line.item_id, line.name, line.brand, line.category)
                ctx.stock.apply(
                    line.item_id,
                    line.quantity,
                    StockSource.PURCHASE,
                    purchase_no,
                    submitted_by=request.submitted_by,
                    entry_date=date,
                )

            for kind in (AggregateKind.SUPPLIER, AggregateKind.SELLER):
                account = ctx.aggregates.get_or_create(kind, request.supplier_id, request.supplier_name)
                ctx.aggregates.add_billing_line(account, purchase_no, request.total_amount, date)

            ctx.documents.transition(document, DocumentState.ACTIVE)
            return purchase_no

        logger.info(
            "create_purchase_started",
            extra={
                "supplier_id": request.supplier_id,
                "line_count": len(request.lines),
                "total_amount": request.total_amount,
            },
        )
        return self._coordinator.batch("create_purchase", actor_id).step("purchase", create).execute()

    def edit_purchase(self, purchase_no: str, edit: PurchaseEdit, actor_id: str | None = None) -> BatchResult:
        """
        Replace a purchase's lines and total.

        Stock follows the net change per product (new products are
        registered, dropped lines give their quantity back), so an edit
        that would take a count below zero is rejected.  The supplier and
        seller billing lines both take the new total; a total below what
        has already been paid on the purchase is rejected.
        """

        def edit_step(ctx: BatchContext) -> str:
            LogContext.set(document_ref=purchase_no)
            document = ctx.documents.get(DocumentKind.PURCHASE, purchase_no)

            kept = edit.kept_lines
            for line in kept:
                ctx.stock.ensure_product(line.item_id, line.name, line.brand, line.category)
            ctx.stock.replace(
                purchase_no,
                StockSource.PURCHASE,
                [(line.item_id, line.quantity) for line in kept],
                submitted_by=edit.submitted_by or document.submitted_by,
                entry_date=document.document_date,
            )

            ctx.documents.replace_lines(document, kept)
            ctx.documents.set_total(document, edit.total_amount)
            if edit.supplier_invoice_no is not None:
                document.supplier_invoice_no = edit.supplier_invoice_no
            for kind in (AggregateKind.SUPPLIER, AggregateKind.SELLER):
                account = ctx.aggregates.get(kind, document.party_id)
                ctx.aggregates.update_billing_line(account, purchase_no, amount=edit.total_amount)
            ctx.documents.transition(document, DocumentState.EDITED)
            return purchase_no

        logger.info(
            "edit_purchase_started",
            extra={"purchase_no": purchase_no, "line_count": len(edit.kept_lines)},
        )
        return self._coordinator.batch("edit_purchase", actor_id).step("purchase", edit_step).execute()

    def delete_purchase(self, purchase_no: str, actor_id: str | None = None) -> BatchResult:
        """Remove a purchase: reverse its stock, billing lines and payment movements."""

        def delete(ctx: BatchContext) -> str:
            LogContext.set(document_ref=purchase_no)
            document = ctx.documents.get(DocumentKind.PURCHASE, purchase_no)

            for reference_id in [p.reference_id for p in document.payments]:
                ctx.references.delete(reference_id)
            ctx.stock.reverse(purchase_no, StockSource.PURCHASE)

            for kind in (AggregateKind.SUPPLIER, AggregateKind.SELLER):
                account = ctx.aggregates.find(kind, document.party_id)
                if account is not None:
                    ctx.aggregates.remove_billing_line(account, purchase_no, missing_ok=True)
            ctx.documents.delete(document)
            return purchase_no

        return self._coordinator.batch("delete_purchase", actor_id).step("purchase", delete).execute()

    # =========================================================================
    # Payments
    # =========================================================================

    def add_purchase_payment(
        self,
        purchase_no: str,
        request: PaymentRequest,
        actor_id: str | None = None,
    ) -> BatchResult:
        """Pay a supplier against a purchase from the cash account ``request.method``."""

        def pay(ctx: BatchContext) -> str:
            LogContext.set(document_ref=purchase_no)
            document = ctx.documents.get(DocumentKind.PURCHASE, purchase_no)
            return record_document_payment(ctx, document, request)

        return self._coordinator.batch("add_purchase_payment", actor_id).step("payment", pay).execute()

    def edit_purchase_payment(
        self,
        reference_id: str,
        edit: PaymentEdit,
        actor_id: str | None = None,
    ) -> BatchResult:
        def change(ctx: BatchContext) -> str:
            LogContext.set(reference_id=reference_id)
            document_copy(ctx, reference_id, DocumentKind.PURCHASE)
            ctx.references.update(
                reference_id,
                amount=edit.amount,
                date=edit.date,
                method=edit.method,
                remark=edit.remark,
            )
            return reference_id

        return self._coordinator.batch("edit_purchase_payment", actor_id).step("payment", change).execute()

    def delete_purchase_payment(self, reference_id: str, actor_id: str | None = None) -> BatchResult:
        def remove(ctx: BatchContext) -> str:
            LogContext.set(reference_id=reference_id)
            document_copy(ctx, reference_id, DocumentKind.PURCHASE)
            ctx.references.delete(reference_id)
            return reference_id

        return self._coordinator.batch("delete_purchase_payment", actor_id).step("payment", remove).execute()
