"""
Parties Module Service (``trade_modules.parties.service``).

Responsibility
--------------
Customer and supplier accounts kept by hand: opening an account with
bills and payments typed in from paper records, correcting its name and
manual lines later, and removing an account nobody uses any more.

Architecture position
---------------------
**Modules layer** -- each public write is one ``TransactionCoordinator``
batch.  Line changes are pure ``mutate`` steps over ``AggregateState``;
a preparing step before them does the lookups and mints PAY ids.

Invariants enforced
-------------------
* Invoice numbers are unique per account; a clash raises
  ``DuplicateDocumentNumberError``.
* Lines written by bills, purchases or linked payment movements are never
  touched here; they change only through their own operations.
* The account's pending amount may not go below zero (checked by the
  coordinator before commit).
* An account still referenced by documents or linked movements cannot be
  deleted.
"""

from __future__ import annotations

from dataclasses import replace

from trade_kernel.domain.documents import PARTY_KIND
from trade_kernel.domain.dtos import (
    PARTY_ACCOUNT_KINDS,
    AggregateSnapshot,
    AggregateState,
    BillingLineView,
    ManualBill,
    ManualPayment,
    PartyAccountEdit,
    PartyAccountRequest,
    PaymentLineView,
)
from trade_kernel.domain.values import AggregateKind, DocumentKind, ReferenceKind
from trade_kernel.exceptions import (
    AccountInUseError,
    DuplicateDocumentNumberError,
    ReferenceNotFoundError,
    ValidationError,
)
from trade_kernel.logging_config import get_logger
from trade_kernel.selectors.account_selector import AccountSelector
from trade_kernel.services.transaction_coordinator import BatchContext, BatchResult
from trade_modules._batch_helpers import ModuleService

logger = get_logger("modules.parties.service")

DOCUMENT_KIND: dict[AggregateKind, DocumentKind] = {party: doc for doc, party in PARTY_KIND.items()}


def _party_kind(kind: AggregateKind | str) -> AggregateKind:
    try:
        kind = AggregateKind(kind)
    except ValueError as exc:
        raise ValidationError("kind", "must be 'customer' or 'supplier'") from exc
    if kind not in PARTY_ACCOUNT_KINDS:
        raise ValidationError("kind", "must be 'customer' or 'supplier'")
    return kind


def _with_manual_bills(
    state: AggregateState,
    bills: tuple[ManualBill, ...],
    protected: set[str],
) -> tuple[BillingLineView, ...]:
    """Protected lines stay; the manual ones become ``bills``, keeping ids of matching invoices."""
    existing = {b.external_doc_ref: b for b in state.bills}
    result = [b for b in state.bills if b.external_doc_ref in protected]
    taken = set(protected)
    for bill in bills:
        if bill.invoice_no in taken:
            raise DuplicateDocumentNumberError(f"{state.kind.value} billing", bill.invoice_no)
        taken.add(bill.invoice_no)
        old = existing.get(bill.invoice_no)
        result.append(
            BillingLineView(
                external_doc_ref=bill.invoice_no,
                amount=bill.amount,
                date=bill.date or (old.date if old else None),
                status=old.status if old else None,
                line_id=old.line_id if old else None,
            )
        )
    return tuple(result)


def _with_manual_payments(
    state: AggregateState,
    payments: tuple[ManualPayment, ...],
    protected: set[str],
    minted: list[str],
) -> tuple[PaymentLineView, ...]:
    existing = {p.reference_id: p for p in state.payments}
    result = [p for p in state.payments if p.reference_id in protected]
    new_ids = iter(minted)
    for payment in payments:
        old = existing.get(payment.reference_id) if payment.reference_id else None
        result.append(
            PaymentLineView(
                reference_id=old.reference_id if old else next(new_ids),
                amount=payment.amount,
                date=payment.date or (old.date if old else None),
                method=old.method if old else None,
                submitted_by=payment.submitted_by,
                remark=payment.remark,
                line_id=old.line_id if old else None,
            )
        )
    return tuple(result)


class PartiesService(ModuleService):
    """Hand-kept customer and supplier accounts."""

    # =========================================================================
    # Reads
    # =========================================================================

    def account(self, kind: AggregateKind, owner_id: str) -> AggregateSnapshot:
        with self._coordinator.reader() as session:
            return AccountSelector(session).get_snapshot(_party_kind(kind), owner_id)

    def accounts(self, kind: AggregateKind) -> list[AggregateSnapshot]:
        with self._coordinator.reader() as session:
            return AccountSelector(session).list_snapshots(_party_kind(kind))

    # =========================================================================
    # Writes
    # =========================================================================

    def create_account(self, request: PartyAccountRequest, actor_id: str | None = None) -> BatchResult:
        """
        Open an account with its manual bills and payments.

        Returns:
            BatchResult whose ``value`` is the resulting AggregateState.
        """
        kind = request.kind
        minted: list[str] = []

        def prepare(ctx: BatchContext) -> list[str]:
            if ctx.aggregates.find(kind, request.owner_id) is not None:
                raise ValidationError("owner_id", f"{kind.value} account {request.owner_id} already exists")
            ctx.aggregates.get_or_create(kind, request.owner_id, request.owner_name)
            minted.extend(ctx.references.create(ReferenceKind.PAY) for _ in request.payments)
            return list(minted)

        def fill(state: AggregateState) -> AggregateState:
            return replace(
                state,
                bills=_with_manual_bills(state, request.bills, set()),
                payments=_with_manual_payments(state, request.payments, set(), minted),
            )

        logger.info(
            "create_party_account_started",
            extra={
                "aggregate_kind": kind.value,
                "owner_id": request.owner_id,
                "bill_count": len(request.bills),
                "payment_count": len(request.payments),
            },
        )
        return (
            self._coordinator.batch("create_party_account", actor_id)
            .step("prepare", prepare)
            .mutate("lines", kind, request.owner_id, fill)
            .execute()
        )

    def update_account(
        self,
        kind: AggregateKind,
        owner_id: str,
        edit: PartyAccountEdit,
        actor_id: str | None = None,
    ) -> BatchResult:
        """
        Rename an account and/or replace its manual lines.

        A payment in ``edit.payments`` that carries a ``reference_id`` must
        be one of the account's manual payments; it keeps its id and
        line.  Manual lines left out of the new lists are removed.
        """
        kind = _party_kind(kind)
        protected_bills: set[str] = set()
        protected_payments: set[str] = set()
        minted: list[str] = []

        def prepare(ctx: BatchContext) -> None:
            aggregate = ctx.aggregates.get(kind, owner_id)
            protected_bills.update(ctx.documents.numbers_for_party(DOCUMENT_KIND[kind], owner_id))
            for line in aggregate.payment_lines:
                if len(ctx.references.resolve(line.reference_id)) > 1:
                    protected_payments.add(line.reference_id)
            if edit.payments is None:
                return
            manual = {line.reference_id for line in aggregate.payment_lines} - protected_payments
            seen: set[str] = set()
            for payment in edit.payments:
                if payment.reference_id in seen:
                    raise ValidationError("payments", f"{payment.reference_id} listed twice")
                if payment.reference_id is None:
                    minted.append(ctx.references.create(ReferenceKind.PAY))
                elif payment.reference_id in protected_payments:
                    raise ValidationError(
                        "payments", f"{payment.reference_id} is a linked movement; edit it where it was made"
                    )
                elif payment.reference_id not in manual:
                    raise ReferenceNotFoundError(payment.reference_id)
                else:
                    seen.add(payment.reference_id)

        def rewrite(state: AggregateState) -> AggregateState:
            if edit.owner_name is not None:
                state = replace(state, owner_name=edit.owner_name)
            if edit.bills is not None:
                state = replace(state, bills=_with_manual_bills(state, edit.bills, protected_bills))
            if edit.payments is not None:
                state = replace(
                    state,
                    payments=_with_manual_payments(state, edit.payments, protected_payments, minted),
                )
            return state

        return (
            self._coordinator.batch("update_party_account", actor_id)
            .step("prepare", prepare)
            .mutate("lines", kind, owner_id, rewrite)
            .execute()
        )

    def delete_account(self, kind: AggregateKind, owner_id: str, actor_id: str | None = None) -> BatchResult:
        """Remove an account no document or linked movement refers to."""
        kind = _party_kind(kind)

        def delete(ctx: BatchContext) -> AggregateSnapshot:
            aggregate = ctx.aggregates.get(kind, owner_id)
            in_use = ctx.documents.numbers_for_party(DOCUMENT_KIND[kind], owner_id)
            in_use += [
                line.reference_id
                for line in aggregate.payment_lines
                if len(ctx.references.resolve(line.reference_id)) > 1
            ]
            if in_use:
                raise AccountInUseError(kind.value, owner_id, in_use)
            return ctx.aggregates.delete(aggregate)

        return self._coordinator.batch("delete_party_account", actor_id).step("account", delete).execute()
