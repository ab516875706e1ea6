"""
Module: trade_kernel.selectors.account_selector
Responsibility: Read-only queries over account aggregates: committed
    snapshots, the per-day cash movement listing, and a consistency scan
    that compares cached totals with the totals their lines produce.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Cached totals are reported as-is; recalculation here never writes.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from trade_kernel.domain.balance import AggregateTotals, recalculate
from trade_kernel.domain.dtos import AggregateSnapshot
from trade_kernel.domain.values import AggregateKind, PaymentDirection
from trade_kernel.exceptions import AggregateNotFoundError
from trade_kernel.models.account import AccountAggregateModel, PaymentLineModel
from trade_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class DailyMovement:
    """One IN or OUT line of a cash account on a given day."""

    account_id: str
    account_name: str | None
    reference_id: str
    direction: PaymentDirection
    amount: Decimal
    date: datetime
    method: str | None
    submitted_by: str | None
    remark: str | None
    linked_doc_ref: str | None


@dataclass(frozen=True)
class TotalsDrift:
    """An aggregate whose cached totals disagree with its lines."""

    kind: AggregateKind
    owner_id: str
    cached: AggregateTotals
    computed: AggregateTotals


class AccountSelector(BaseSelector[AccountAggregateModel]):
    """Snapshots and listings of account aggregates."""

    def _load(self, kind: AggregateKind, owner_id: str) -> AccountAggregateModel | None:
        return self.session.execute(
            select(AccountAggregateModel)
            .where(AccountAggregateModel.kind == AggregateKind(kind).value)
            .where(AccountAggregateModel.owner_id == owner_id)
        ).scalar_one_or_none()

    def find_snapshot(self, kind: AggregateKind, owner_id: str) -> AggregateSnapshot | None:
        aggregate = self._load(kind, owner_id)
        return AggregateSnapshot.from_aggregate(aggregate) if aggregate is not None else None

    def get_snapshot(self, kind: AggregateKind, owner_id: str) -> AggregateSnapshot:
        snapshot = self.find_snapshot(kind, owner_id)
        if snapshot is None:
            raise AggregateNotFoundError(AggregateKind(kind).value, owner_id)
        return snapshot

    def list_snapshots(self, kind: AggregateKind) -> list[AggregateSnapshot]:
        """All aggregates of one kind, ordered by owner id."""
        aggregates = self.session.execute(
            select(AccountAggregateModel)
            .where(AccountAggregateModel.kind == AggregateKind(kind).value)
            .options(
                selectinload(AccountAggregateModel.billing_lines),
                selectinload(AccountAggregateModel.payment_lines),
            )
            .order_by(AccountAggregateModel.owner_id)
        ).scalars()
        return [AggregateSnapshot.from_aggregate(a) for a in aggregates]

    def daily_movements(self, day: date) -> list[DailyMovement]:
        """
        Every cash IN/OUT line dated within ``day`` (UTC), oldest first.

        Returns:
            DailyMovement rows across all cash accounts.
        """
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
        rows = self.session.execute(
            select(PaymentLineModel, AccountAggregateModel)
            .join(AccountAggregateModel, PaymentLineModel.aggregate_id == AccountAggregateModel.id)
            .where(AccountAggregateModel.kind == AggregateKind.CASH.value)
            .where(PaymentLineModel.line_date >= start)
            .where(PaymentLineModel.line_date < end)
            .order_by(PaymentLineModel.line_date, AccountAggregateModel.owner_id, PaymentLineModel.position)
        ).all()
        return [
            DailyMovement(
                account_id=account.owner_id,
                account_name=account.owner_name,
                reference_id=line.reference_id,
                direction=PaymentDirection(line.direction),
                amount=line.amount,
                date=line.line_date,
                method=line.method,
                submitted_by=line.submitted_by,
                remark=line.remark,
                linked_doc_ref=line.linked_doc_ref,
            )
            for line, account in rows
        ]

    def find_drift(self, kind: AggregateKind | None = None) -> list[TotalsDrift]:
        """Aggregates whose stored totals differ from a fresh recalculation."""
        stmt = select(AccountAggregateModel).options(
            selectinload(AccountAggregateModel.billing_lines),
            selectinload(AccountAggregateModel.payment_lines),
        )
        if kind is not None:
            stmt = stmt.where(AccountAggregateModel.kind == AggregateKind(kind).value)

        drift = []
        for aggregate in self.session.execute(stmt).scalars():
            agg_kind = AggregateKind(aggregate.kind)
            computed = recalculate(
                agg_kind, aggregate.billing_lines, aggregate.payment_lines, owner_id=aggregate.owner_id
            )
            cached = AggregateTotals(aggregate.total_billed, aggregate.total_paid, aggregate.pending)
            if cached != computed:
                drift.append(TotalsDrift(agg_kind, aggregate.owner_id, cached, computed))
        return drift
