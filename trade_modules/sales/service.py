"""
Sales Module Service (``trade_modules.sales.service``).

Responsibility
--------------
Bills and their payments: creating a bill deducts stock and bills the
customer; editing re-applies stock and the billed amount; deleting
restores stock and removes every payment movement and the customer's
billing line.  Bill payments are three-copy PAY movements (cash IN,
bill payment, customer payment).

Architecture position
---------------------
**Modules layer** -- thin glue.  Every public method is exactly one
``TransactionCoordinator`` batch; this module never commits.

Invariants enforced
-------------------
* Stock never goes negative: a bill asking for more than is on hand is
  rejected with ``InsufficientStockError``; exactly zero is allowed.
* A bill's received amount never exceeds its total.
* The customer's billing line for an invoice always carries the bill's
  current total and payment status.

Failure modes
-------------
* ``ProductNotFoundError`` for a line naming an unknown item.
* ``AggregateNotFoundError`` when a payment names an unknown cash account.
* ``DocumentNotFoundError`` / ``ReferenceNotFoundError`` for unknown ids.
* ``NegativePendingError`` when payments would exceed what is billed.

Usage::

    sales = SalesService(coordinator)
    result = sales.create_bill(BillRequest(
        customer_id="C1", customer_name="Ravi",
        lines=(ProductLineRequest("P1", 2, unit_price=Decimal("50")),),
    ), actor_id="u1")
    invoice_no = result.value
"""

from __future__ import annotations

from trade_kernel.domain.dtos import BillEdit, BillRequest, PaymentEdit, PaymentRequest
from trade_kernel.domain.values import AggregateKind, DocumentKind, DocumentState, StockSource
from trade_kernel.logging_config import LogContext, get_logger
from trade_kernel.services.transaction_coordinator import BatchContext, BatchResult
from trade_modules._batch_helpers import (
    ModuleService,
    document_copy,
    record_document_payment,
)

logger = get_logger("modules.sales.service")


class SalesService(ModuleService):
    """
    Bill lifecycle and bill payments.

    Contract
    --------
    * Each method returns the committed ``BatchResult``; ``value`` is the
      invoice number or reference id the operation produced.
    * Errors abort the batch and propagate as ``TradeKernelError``.
    """

    # =========================================================================
    # Bills
    # =========================================================================

    def create_bill(self, request: BillRequest, actor_id: str | None = None) -> BatchResult:
        """
        Record a sale.

        Allocates the invoice number (the request's candidate if free),
        deducts stock per line, bills the customer (creating the customer
        account on first sale) and posts the initial payment if any.
        """

        def create(ctx: BatchContext) -> str:
            invoice_no = ctx.next_document_number(DocumentKind.BILL, request.invoice_no)
            LogContext.set(document_ref=invoice_no)
            date = request.date or ctx.clock.now_utc()

            document = ctx.documents.create(
                DocumentKind.BILL,
                invoice_no,
                request.lines,
                total_amount=request.total_amount,
                party_id=request.customer_id,
                party_name=request.customer_name,
                date=date,
                submitted_by=request.submitted_by,
            )
            for line in request.lines:
                ctx.stock.apply(
                    line.item_id,
                    -line.quantity,
                    StockSource.SALE,
                    invoice_no,
                    submitted_by=request.submitted_by,
                    entry_date=date,
                )

            customer = ctx.aggregates.get_or_create(
                AggregateKind.CUSTOMER, request.customer_id, request.customer_name
            )
            ctx.aggregates.add_billing_line(customer, invoice_no, request.total_amount, date)
            ctx.documents.transition(document, DocumentState.ACTIVE)

            if request.initial_payment is not None:
                record_document_payment(ctx, document, request.initial_payment)
            return invoice_no

        logger.info(
            "create_bill_started",
            extra={
                "customer_id": request.customer_id,
                "line_count": len(request.lines),
                "total_amount": request.total_amount,
            },
        )
        return self._coordinator.batch("create_bill", actor_id).step("bill", create).execute()

    def edit_bill(self, invoice_no: str, edit: BillEdit, actor_id: str | None = None) -> BatchResult:
        """
        Replace a bill's lines and total.

        The bill's previous stock entries are reversed and the new lines
        applied; quantity 0 drops a line.  The customer billing line takes
        the new total.  Rejected if existing payments exceed it.
        """

        def edit_step(ctx: BatchContext) -> str:
            LogContext.set(document_ref=invoice_no)
            document = ctx.documents.get(DocumentKind.BILL, invoice_no)
            date = document.document_date

            kept = edit.kept_lines
            ctx.stock.replace(
                invoice_no,
                StockSource.SALE,
                [(line.item_id, -line.quantity) for line in kept],
                submitted_by=edit.submitted_by or document.submitted_by,
                entry_date=date,
            )

            ctx.documents.replace_lines(document, kept)
            ctx.documents.set_total(document, edit.total_amount)
            customer = ctx.aggregates.get(AggregateKind.CUSTOMER, document.party_id)
            ctx.aggregates.update_billing_line(customer, invoice_no, amount=edit.total_amount)
            ctx.documents.transition(document, DocumentState.EDITED)
            return invoice_no

        return self._coordinator.batch("edit_bill", actor_id).step("bill", edit_step).execute()

    def delete_bill(self, invoice_no: str, actor_id: str | None = None) -> BatchResult:
        """Remove a bill and every effect it introduced."""

        def delete(ctx: BatchContext) -> str:
            LogContext.set(document_ref=invoice_no)
            document = ctx.documents.get(DocumentKind.BILL, invoice_no)

            for reference_id in [p.reference_id for p in document.payments]:
                ctx.references.delete(reference_id)
            ctx.stock.reverse(invoice_no, StockSource.SALE)

            customer = ctx.aggregates.find(AggregateKind.CUSTOMER, document.party_id)
            if customer is not None:
                ctx.aggregates.remove_billing_line(customer, invoice_no, missing_ok=True)
            ctx.documents.delete(document)
            return invoice_no

        return self._coordinator.batch("delete_bill", actor_id).step("bill", delete).execute()

    # =========================================================================
    # Payments
    # =========================================================================

    def add_bill_payment(
        self,
        invoice_no: str,
        request: PaymentRequest,
        actor_id: str | None = None,
    ) -> BatchResult:
        """Receive money against a bill into the cash account ``request.method``."""

        def pay(ctx: BatchContext) -> str:
            LogContext.set(document_ref=invoice_no)
            document = ctx.documents.get(DocumentKind.BILL, invoice_no)
            return record_document_payment(ctx, document, request)

        return self._coordinator.batch("add_bill_payment", actor_id).step("payment", pay).execute()

    def edit_bill_payment(
        self,
        reference_id: str,
        edit: PaymentEdit,
        actor_id: str | None = None,
    ) -> BatchResult:
        """Change amount, date, method or remark on all three copies of a bill payment."""

        def change(ctx: BatchContext) -> str:
            LogContext.set(reference_id=reference_id)
            document_copy(ctx, reference_id, DocumentKind.BILL)
            ctx.references.update(
                reference_id,
                amount=edit.amount,
                date=edit.date,
                method=edit.method,
                remark=edit.remark,
            )
            return reference_id

        return self._coordinator.batch("edit_bill_payment", actor_id).step("payment", change).execute()

    def delete_bill_payment(self, reference_id: str, actor_id: str | None = None) -> BatchResult:
        """Remove all three copies of a bill payment."""

        def remove(ctx: BatchContext) -> str:
            LogContext.set(reference_id=reference_id)
            document_copy(ctx, reference_id, DocumentKind.BILL)
            ctx.references.delete(reference_id)
            return reference_id

        return self._coordinator.batch("delete_bill_payment", actor_id).step("payment", remove).execute()
