"""
Cash Module Service (``trade_modules.cash.service``).

Responsibility
--------------
Cash and bank accounts, the movements between them, and the payments
made from them to sellers and transport companies:

* one-copy PAY movements straight into or out of a cash account,
* transfers, stored as an ``OUT<t>`` line in the source account and an
  ``IN<t>`` line in the destination,
* two-copy seller / transport payments (party line + cash OUT line),
* transport billing lines,
* the per-day listing of every cash IN/OUT line.

Architecture position
---------------------
**Modules layer** -- each public write is one ``TransactionCoordinator``
batch; reads go through ``coordinator.reader()`` and the selectors.

Invariants enforced
-------------------
* Cash balances may go negative (overdraft allowed); seller and
  transport pending amounts may not.
* Deleting any copy of a movement deletes every copy, including a
  transfer's counterpart.
"""

from __future__ import annotations

from datetime import date as date_type
from datetime import datetime
from decimal import Decimal

from trade_kernel.db.types import ZERO, coerce_money
from trade_kernel.domain.dtos import AggregateSnapshot, PaymentEdit, PaymentRequest, TransferRequest
from trade_kernel.domain.values import AggregateKind, PaymentDirection, ReferenceKind
from trade_kernel.exceptions import ValidationError
from trade_kernel.logging_config import LogContext, get_logger
from trade_kernel.selectors.account_selector import AccountSelector, DailyMovement
from trade_kernel.services.transaction_coordinator import BatchContext, BatchResult
from trade_modules._batch_helpers import ModuleService, entry_date

logger = get_logger("modules.cash.service")


def _party_payment(
    ctx: BatchContext,
    kind: AggregateKind,
    owner_id: str,
    request: PaymentRequest,
) -> str:
    """Pay a seller or transport company from the cash account ``request.method``."""
    party = ctx.aggregates.get(kind, owner_id)
    cash = ctx.aggregates.get(AggregateKind.CASH, request.method)
    reference_id = ctx.references.create(ReferenceKind.PAY)
    LogContext.set(reference_id=reference_id)
    when = entry_date(ctx, request.date)

    ctx.aggregates.add_payment_line(
        party,
        reference_id=reference_id,
        amount=request.amount,
        date=when,
        method=request.method,
        submitted_by=request.submitted_by,
        remark=request.remark,
    )
    ctx.aggregates.add_payment_line(
        cash,
        reference_id=reference_id,
        amount=request.amount,
        date=when,
        method=request.method,
        submitted_by=request.submitted_by,
        remark=request.remark,
        direction=PaymentDirection.OUT,
    )
    return reference_id


class CashService(ModuleService):
    """
    Cash accounts, transfers and party payments.

    Contract
    --------
    * Write methods return the committed ``BatchResult``; ``value`` is the
      reference id (or account id) the operation produced.
    * ``daily_movements`` and ``account`` read committed state only.
    """

    # =========================================================================
    # Accounts
    # =========================================================================

    def open_account(
        self,
        account_id: str,
        name: str | None = None,
        opening_balance: Decimal | int | str = ZERO,
        date: datetime | None = None,
        submitted_by: str | None = None,
        actor_id: str | None = None,
    ) -> BatchResult:
        """
        Create a cash account with an opening IN line.

        Raises:
            ValidationError: The balance is negative or the account exists.
        """
        try:
            balance = coerce_money(opening_balance)
        except ValueError as exc:
            raise ValidationError("opening_balance", str(exc)) from exc
        if balance < ZERO:
            raise ValidationError("opening_balance", "must not be negative")

        def open_step(ctx: BatchContext) -> str:
            reference_id = ctx.references.create(ReferenceKind.IN)
            ctx.aggregates.open_cash_account(
                account_id,
                name,
                balance,
                reference_id,
                date=entry_date(ctx, date),
                submitted_by=submitted_by,
            )
            return account_id

        logger.info("open_account_started", extra={"account_id": account_id})
        return self._coordinator.batch("open_cash_account", actor_id).step("account", open_step).execute()

    def account(self, kind: AggregateKind, owner_id: str) -> AggregateSnapshot:
        """Committed snapshot of any aggregate."""
        with self._coordinator.reader() as session:
            return AccountSelector(session).get_snapshot(kind, owner_id)

    def daily_movements(self, day: date_type) -> list[DailyMovement]:
        with self._coordinator.reader() as session:
            return AccountSelector(session).daily_movements(day)

    # =========================================================================
    # Movements
    # =========================================================================

    def record_payment(
        self,
        request: PaymentRequest,
        direction: PaymentDirection,
        actor_id: str | None = None,
    ) -> BatchResult:
        """Money straight into (IN) or out of (OUT) the cash account ``request.method``."""
        direction = PaymentDirection(direction)

        def pay(ctx: BatchContext) -> str:
            cash = ctx.aggregates.get(AggregateKind.CASH, request.method)
            reference_id = ctx.references.create(ReferenceKind.PAY)
            LogContext.set(reference_id=reference_id)
            ctx.aggregates.add_payment_line(
                cash,
                reference_id=reference_id,
                amount=request.amount,
                date=entry_date(ctx, request.date),
                method=request.method,
                submitted_by=request.submitted_by,
                remark=request.remark,
                direction=direction,
            )
            return reference_id

        return self._coordinator.batch("record_cash_payment", actor_id).step("payment", pay).execute()

    def transfer(self, request: TransferRequest, actor_id: str | None = None) -> BatchResult:
        """
        Move money between two cash accounts.

        Returns:
            BatchResult whose ``value`` is the ``(OUT<t>, IN<t>)`` pair.
        """

        def move(ctx: BatchContext) -> tuple[str, str]:
            source = ctx.aggregates.get(AggregateKind.CASH, request.source)
            destination = ctx.aggregates.get(AggregateKind.CASH, request.destination)
            out_id, in_id = ctx.references.create_pair()
            LogContext.set(reference_id=out_id)
            when = entry_date(ctx, request.date)

            ctx.aggregates.add_payment_line(
                source,
                reference_id=out_id,
                amount=request.amount,
                date=when,
                method=request.source,
                submitted_by=request.submitted_by,
                remark=request.remark,
                direction=PaymentDirection.OUT,
            )
            ctx.aggregates.add_payment_line(
                destination,
                reference_id=in_id,
                amount=request.amount,
                date=when,
                method=request.destination,
                submitted_by=request.submitted_by,
                remark=request.remark,
                direction=PaymentDirection.IN,
            )
            return out_id, in_id

        logger.info(
            "transfer_started",
            extra={"source": request.source, "destination": request.destination, "amount": request.amount},
        )
        return self._coordinator.batch("cash_transfer", actor_id).step("transfer", move).execute()

    def edit_movement(self, reference_id: str, edit: PaymentEdit, actor_id: str | None = None) -> BatchResult:
        def change(ctx: BatchContext) -> str:
            LogContext.set(reference_id=reference_id)
            ctx.references.update(
                reference_id,
                amount=edit.amount,
                date=edit.date,
                method=edit.method,
                remark=edit.remark,
            )
            return reference_id

        return self._coordinator.batch("edit_movement", actor_id).step("movement", change).execute()

    def delete_movement(self, reference_id: str, actor_id: str | None = None) -> BatchResult:
        """Remove every copy of a movement; for a transfer, both sides."""

        def remove(ctx: BatchContext) -> str:
            LogContext.set(reference_id=reference_id)
            ctx.references.delete(reference_id)
            return reference_id

        return self._coordinator.batch("delete_movement", actor_id).step("movement", remove).execute()

    # =========================================================================
    # Sellers and transport
    # =========================================================================

    def record_seller_payment(
        self, seller_id: str, request: PaymentRequest, actor_id: str | None = None
    ) -> BatchResult:
        def pay(ctx: BatchContext) -> str:
            return _party_payment(ctx, AggregateKind.SELLER, seller_id, request)

        return self._coordinator.batch("record_seller_payment", actor_id).step("payment", pay).execute()

    def record_transport_payment(
        self, transport_id: str, request: PaymentRequest, actor_id: str | None = None
    ) -> BatchResult:
        def pay(ctx: BatchContext) -> str:
            return _party_payment(ctx, AggregateKind.TRANSPORT, transport_id, request)

        return self._coordinator.batch("record_transport_payment", actor_id).step("payment", pay).execute()

    def add_transport_billing(
        self,
        transport_id: str,
        invoice_no: str,
        amount: Decimal | int | str,
        name: str | None = None,
        date: datetime | None = None,
        actor_id: str | None = None,
    ) -> BatchResult:
        """Bill a transport company; creates the transport account on first use."""
        if not invoice_no or not invoice_no.strip():
            raise ValidationError("invoice_no", "is required")
        try:
            billed = coerce_money(amount)
        except ValueError as exc:
            raise ValidationError("amount", str(exc)) from exc
        if billed < ZERO:
            raise ValidationError("amount", "must not be negative")

        def bill(ctx: BatchContext) -> str:
            LogContext.set(document_ref=invoice_no)
            transport = ctx.aggregates.get_or_create(AggregateKind.TRANSPORT, transport_id, name)
            ctx.aggregates.add_billing_line(transport, invoice_no, billed, entry_date(ctx, date))
            return invoice_no

        return self._coordinator.batch("add_transport_billing", actor_id).step("billing", bill).execute()

    def remove_transport_billing(
        self, transport_id: str, invoice_no: str, actor_id: str | None = None
    ) -> BatchResult:
        def remove(ctx: BatchContext) -> str:
            LogContext.set(document_ref=invoice_no)
            transport = ctx.aggregates.get(AggregateKind.TRANSPORT, transport_id)
            ctx.aggregates.remove_billing_line(transport, invoice_no)
            return invoice_no

        return self._coordinator.batch("remove_transport_billing", actor_id).step("billing", remove).execute()
