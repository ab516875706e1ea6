"""
AccountAggregateStore -- holds customer, supplier, cash, seller and
transport aggregates and their line items.

Responsibility:
    Loads, creates and mutates account aggregates inside the current
    coordinator batch: billing lines keyed by external document ref,
    payment lines keyed by reference id.  Tracks every aggregate it
    touches so the coordinator can recalculate and check all of them
    before commit.

Architecture position:
    Kernel > Services.  Used by the ReferenceLinker and by business
    modules through the batch context.  Totals are computed only by
    ``trade_kernel.domain.balance.recalculate``.

Invariants enforced:
    - Cash aggregates carry payment lines with a direction and no
      billing lines; other kinds carry no direction.
    - One billing line per external document per aggregate; a second one
      is rejected as a duplicate document number (the database constraint
      uq_billing_line_doc backs this up).
    - Line amounts are stored rounded to the policy's
      money_decimal_places (half-up).
    - Any recalculation marks the aggregate row dirty so its optimistic
      version is bumped and checked at flush.

Failure modes:
    - AggregateNotFoundError for unknown (kind, owner_id) on get().
    - DuplicateDocumentNumberError for a second billing line per document.
    - InvalidLineError for lines that do not fit the aggregate kind.
    - NegativePendingError from check_touched().
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from trade_kernel.db.types import round_money
from trade_kernel.domain.balance import AggregateTotals, enforce_policy, recalculate
from trade_kernel.domain.clock import Clock
from trade_kernel.domain.dtos import (
    AggregateSnapshot,
    AggregateState,
    BillingLineView,
    PaymentLineView,
)
from trade_kernel.domain.policy import LedgerPolicy
from trade_kernel.domain.values import AggregateKind, PaymentDirection
from trade_kernel.exceptions import (
    AggregateNotFoundError,
    DocumentNotFoundError,
    DuplicateDocumentNumberError,
    InvalidLineError,
    ReferenceNotFoundError,
    ValidationError,
)
from trade_kernel.logging_config import get_logger
from trade_kernel.models.account import (
    AccountAggregateModel,
    BillingLineModel,
    PaymentLineModel,
)
from trade_kernel.services.base import BaseService

logger = get_logger("services.aggregate_store")

OPENING_METHOD = "Opening Account"
OPENING_REMARK = "Initial Balance"

_UNSET = object()


class AccountAggregateStore(BaseService[AccountAggregateModel]):
    """
    Batch-scoped access to account aggregates.

    Contract:
        Every mutation goes through this store so the aggregate is
        registered as touched.  The store flushes but never commits.

    Guarantees:
        - ``check_touched()`` recalculates every touched aggregate from its
          lines and enforces the kind's overdraft policy.
        - Snapshots are immutable DTOs, safe to hand out after commit.
    """

    def __init__(
        self,
        session: Session,
        policy: LedgerPolicy,
        clock: Clock | None = None,
        actor_id: str | None = None,
    ):
        super().__init__(session, clock)
        self.policy = policy
        self.actor_id = actor_id
        self._touched: dict[tuple[str, str], AccountAggregateModel] = {}

    # ------------------------------------------------------------------
    # Lookup / creation
    # ------------------------------------------------------------------

    def find(self, kind: AggregateKind, owner_id: str) -> AccountAggregateModel | None:
        kind = AggregateKind(kind)
        return self.session.execute(
            select(AccountAggregateModel)
            .where(AccountAggregateModel.kind == kind.value)
            .where(AccountAggregateModel.owner_id == owner_id)
        ).scalar_one_or_none()

    def get(self, kind: AggregateKind, owner_id: str) -> AccountAggregateModel:
        aggregate = self.find(kind, owner_id)
        if aggregate is None:
            raise AggregateNotFoundError(AggregateKind(kind).value, owner_id)
        return aggregate

    def get_or_create(
        self,
        kind: AggregateKind,
        owner_id: str,
        owner_name: str | None = None,
    ) -> AccountAggregateModel:
        """Existing aggregate, or a new empty one with zero totals."""
        kind = AggregateKind(kind)
        aggregate = self.find(kind, owner_id)
        if aggregate is not None:
            if owner_name and not aggregate.owner_name:
                aggregate.owner_name = owner_name
            return aggregate

        aggregate = AccountAggregateModel(
            kind=kind.value,
            owner_id=owner_id,
            owner_name=owner_name,
            created_by=self.actor_id,
        )
        self.session.add(aggregate)
        self.session.flush()
        self._touch(aggregate)
        logger.info(
            "aggregate_created",
            extra={"aggregate_kind": kind.value, "owner_id": owner_id},
        )
        return aggregate

    def open_cash_account(
        self,
        owner_id: str,
        owner_name: str | None,
        opening_balance: Decimal,
        reference_id: str,
        date: datetime | None = None,
        submitted_by: str | None = None,
    ) -> AccountAggregateModel:
        """New cash account whose first line is the opening IN balance."""
        if self.find(AggregateKind.CASH, owner_id) is not None:
            raise ValidationError("owner_id", f"cash account {owner_id} already exists")
        aggregate = self.get_or_create(AggregateKind.CASH, owner_id, owner_name)
        self.add_payment_line(
            aggregate,
            reference_id=reference_id,
            amount=opening_balance,
            date=date,
            method=OPENING_METHOD,
            submitted_by=submitted_by,
            remark=OPENING_REMARK,
            direction=PaymentDirection.IN,
        )
        return aggregate

    def delete(self, aggregate: AccountAggregateModel) -> AggregateSnapshot:
        """Remove the aggregate with all its lines; returns its last snapshot."""
        snapshot = self.snapshot(aggregate)
        self._touched.pop((aggregate.kind, aggregate.owner_id), None)
        self.session.delete(aggregate)
        self.session.flush()
        logger.info(
            "aggregate_deleted",
            extra={"aggregate_kind": aggregate.kind, "owner_id": aggregate.owner_id},
        )
        return snapshot

    # ------------------------------------------------------------------
    # Billing lines
    # ------------------------------------------------------------------

    def find_billing_line(
        self, aggregate: AccountAggregateModel, external_doc_ref: str
    ) -> BillingLineModel | None:
        for line in aggregate.billing_lines:
            if line.external_doc_ref == external_doc_ref:
                return line
        return None

    def add_billing_line(
        self,
        aggregate: AccountAggregateModel,
        external_doc_ref: str,
        amount: Decimal,
        date: datetime | None = None,
        status: str | None = None,
    ) -> BillingLineModel:
        if aggregate.kind == AggregateKind.CASH.value:
            raise InvalidLineError(aggregate.kind, aggregate.owner_id, "cash accounts carry no billing lines")
        if self.find_billing_line(aggregate, external_doc_ref) is not None:
            raise DuplicateDocumentNumberError(f"{aggregate.kind} billing", external_doc_ref)

        line = BillingLineModel(
            external_doc_ref=external_doc_ref,
            amount=self._money(amount),
            line_date=date or self.clock.now_utc(),
            status=status,
            position=self._next_position(aggregate.billing_lines),
        )
        aggregate.billing_lines.append(line)
        self._touch(aggregate)
        self.session.flush()
        logger.debug(
            "billing_line_added",
            extra={
                "aggregate_kind": aggregate.kind,
                "owner_id": aggregate.owner_id,
                "external_doc_ref": external_doc_ref,
                "amount": amount,
            },
        )
        return line

    def update_billing_line(
        self,
        aggregate: AccountAggregateModel,
        external_doc_ref: str,
        amount: Decimal | None = None,
        date: datetime | None = None,
        status: object = _UNSET,
    ) -> BillingLineModel:
        line = self.find_billing_line(aggregate, external_doc_ref)
        if line is None:
            raise DocumentNotFoundError(f"{aggregate.kind} billing line", external_doc_ref)
        if amount is not None:
            line.amount = self._money(amount)
        if date is not None:
            line.line_date = date
        if status is not _UNSET:
            line.status = status
        self._touch(aggregate)
        self.session.flush()
        return line

    def remove_billing_line(
        self,
        aggregate: AccountAggregateModel,
        external_doc_ref: str,
        missing_ok: bool = False,
    ) -> BillingLineView | None:
        line = self.find_billing_line(aggregate, external_doc_ref)
        if line is None:
            if missing_ok:
                return None
            raise DocumentNotFoundError(f"{aggregate.kind} billing line", external_doc_ref)
        view = BillingLineView.from_line(line)
        aggregate.billing_lines.remove(line)
        self._touch(aggregate)
        self.session.flush()
        logger.debug(
            "billing_line_removed",
            extra={
                "aggregate_kind": aggregate.kind,
                "owner_id": aggregate.owner_id,
                "external_doc_ref": external_doc_ref,
            },
        )
        return view

    # ------------------------------------------------------------------
    # Payment lines
    # ------------------------------------------------------------------

    def find_payment_line(
        self, aggregate: AccountAggregateModel, reference_id: str
    ) -> PaymentLineModel | None:
        for line in aggregate.payment_lines:
            if line.reference_id == reference_id:
                return line
        return None

    def _check_direction(
        self, aggregate: AccountAggregateModel, direction: PaymentDirection | None
    ) -> str | None:
        if aggregate.kind == AggregateKind.CASH.value:
            if direction is None:
                raise InvalidLineError(aggregate.kind, aggregate.owner_id, "cash payment line needs a direction")
            return PaymentDirection(direction).value
        if direction is not None:
            raise InvalidLineError(aggregate.kind, aggregate.owner_id, "only cash lines carry a direction")
        return None

    def add_payment_line(
        self,
        aggregate: AccountAggregateModel,
        reference_id: str,
        amount: Decimal,
        date: datetime | None = None,
        method: str | None = None,
        submitted_by: str | None = None,
        remark: str | None = None,
        linked_doc_ref: str | None = None,
        direction: PaymentDirection | None = None,
    ) -> PaymentLineModel:
        direction_value = self._check_direction(aggregate, direction)
        if self.find_payment_line(aggregate, reference_id) is not None:
            raise InvalidLineError(
                aggregate.kind, aggregate.owner_id, f"reference {reference_id} already present"
            )

        line = PaymentLineModel(
            reference_id=reference_id,
            amount=self._money(amount),
            line_date=date or self.clock.now_utc(),
            method=method,
            submitted_by=submitted_by,
            remark=remark,
            linked_doc_ref=linked_doc_ref,
            direction=direction_value,
            position=self._next_position(aggregate.payment_lines),
        )
        aggregate.payment_lines.append(line)
        self._touch(aggregate)
        self.session.flush()
        logger.debug(
            "payment_line_added",
            extra={
                "aggregate_kind": aggregate.kind,
                "owner_id": aggregate.owner_id,
                "reference_id": reference_id,
                "amount": amount,
                "direction": direction_value,
            },
        )
        return line

    def update_payment_line(
        self,
        aggregate: AccountAggregateModel,
        reference_id: str,
        amount: Decimal | None = None,
        date: datetime | None = None,
        method: str | None = None,
        remark: str | None = None,
    ) -> PaymentLineModel:
        line = self.find_payment_line(aggregate, reference_id)
        if line is None:
            raise ReferenceNotFoundError(reference_id)
        if amount is not None:
            line.amount = self._money(amount)
        if date is not None:
            line.line_date = date
        if method is not None:
            line.method = method
        if remark is not None:
            line.remark = remark
        self._touch(aggregate)
        self.session.flush()
        return line

    def remove_payment_line(
        self,
        aggregate: AccountAggregateModel,
        reference_id: str,
        missing_ok: bool = False,
    ) -> PaymentLineView | None:
        line = self.find_payment_line(aggregate, reference_id)
        if line is None:
            if missing_ok:
                return None
            raise ReferenceNotFoundError(reference_id)
        view = PaymentLineView.from_line(line)
        aggregate.payment_lines.remove(line)
        self._touch(aggregate)
        self.session.flush()
        logger.debug(
            "payment_line_removed",
            extra={
                "aggregate_kind": aggregate.kind,
                "owner_id": aggregate.owner_id,
                "reference_id": reference_id,
            },
        )
        return view

    # ------------------------------------------------------------------
    # Pure-step support
    # ------------------------------------------------------------------

    def load_state(self, aggregate: AccountAggregateModel) -> AggregateState:
        return AggregateState(
            kind=AggregateKind(aggregate.kind),
            owner_id=aggregate.owner_id,
            owner_name=aggregate.owner_name,
            bills=tuple(BillingLineView.from_line(b) for b in aggregate.billing_lines),
            payments=tuple(PaymentLineView.from_line(p) for p in aggregate.payment_lines),
        )

    def apply_state(self, aggregate: AccountAggregateModel, state: AggregateState) -> None:
        """
        Write a pure step's result back onto the aggregate.

        Lines are matched by ``line_id``: missing ids are removed, new
        lines (no id) are added, and matched lines take the new values.
        """
        if state.kind.value != aggregate.kind or state.owner_id != aggregate.owner_id:
            raise ValidationError("state", "step returned a different aggregate")

        keep_bills = {b.line_id for b in state.bills if b.line_id is not None}
        keep_payments = {p.line_id for p in state.payments if p.line_id is not None}

        for line in [b for b in aggregate.billing_lines if b.id not in keep_bills]:
            aggregate.billing_lines.remove(line)
        for line in [p for p in aggregate.payment_lines if p.id not in keep_payments]:
            aggregate.payment_lines.remove(line)
        # Deletes must reach the database before re-inserts of the same key
        self.session.flush()

        by_id_bills = {b.id: b for b in aggregate.billing_lines}
        by_id_payments = {p.id: p for p in aggregate.payment_lines}

        for view in state.bills:
            if view.line_id is None:
                self.add_billing_line(aggregate, view.external_doc_ref, view.amount, view.date, view.status)
            else:
                line = by_id_bills[view.line_id]
                line.external_doc_ref = view.external_doc_ref
                line.amount = self._money(view.amount)
                line.line_date = view.date
                line.status = view.status

        for view in state.payments:
            if view.line_id is None:
                self.add_payment_line(
                    aggregate,
                    reference_id=view.reference_id,
                    amount=view.amount,
                    date=view.date,
                    method=view.method,
                    submitted_by=view.submitted_by,
                    remark=view.remark,
                    linked_doc_ref=view.linked_doc_ref,
                    direction=view.direction,
                )
            else:
                line = by_id_payments[view.line_id]
                line.amount = self._money(view.amount)
                line.line_date = view.date
                line.method = view.method
                line.submitted_by = view.submitted_by
                line.remark = view.remark
                line.linked_doc_ref = view.linked_doc_ref
                line.direction = self._check_direction(aggregate, view.direction)

        aggregate.owner_name = state.owner_name
        self._touch(aggregate)
        self.session.flush()

    # ------------------------------------------------------------------
    # Recalculation
    # ------------------------------------------------------------------

    def recalculate(self, aggregate: AccountAggregateModel) -> AggregateTotals:
        """Recompute cached totals from the lines and bump the version."""
        totals = recalculate(
            AggregateKind(aggregate.kind),
            aggregate.billing_lines,
            aggregate.payment_lines,
            owner_id=aggregate.owner_id,
        )
        aggregate.total_billed = totals.total_billed
        aggregate.total_paid = totals.total_paid
        aggregate.pending = totals.pending
        aggregate.updated_by = self.actor_id
        # Always emit an UPDATE so the version check runs
        flag_modified(aggregate, "pending")
        return totals

    def check_touched(self) -> list[AggregateSnapshot]:
        """Recalculate and policy-check every aggregate touched in this batch."""
        snapshots = []
        for aggregate in self._touched.values():
            totals = self.recalculate(aggregate)
            enforce_policy(AggregateKind(aggregate.kind), aggregate.owner_id, totals, self.policy)
        self.session.flush()
        for aggregate in self._touched.values():
            snapshots.append(self.snapshot(aggregate))
        return snapshots

    @property
    def touched(self) -> list[AccountAggregateModel]:
        return list(self._touched.values())

    def snapshot(self, aggregate: AccountAggregateModel) -> AggregateSnapshot:
        return AggregateSnapshot.from_aggregate(aggregate)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _money(self, amount: Decimal) -> Decimal:
        return round_money(amount, self.policy.money_decimal_places)

    def _touch(self, aggregate: AccountAggregateModel) -> None:
        self._touched[(aggregate.kind, aggregate.owner_id)] = aggregate

    @staticmethod
    def _next_position(lines: list) -> int:
        return max((line.position for line in lines), default=-1) + 1
