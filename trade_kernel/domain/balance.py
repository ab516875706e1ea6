"""
Balance Recalculator -- derives aggregate totals from line items.

Responsibility:
    Computes ``total_billed``, ``total_paid`` and ``pending`` for one account
    aggregate from its authoritative billing and payment lines, enforces
    the aggregate kind's overdraft policy, and derives a business
    document's payment status from its total and received amount.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by the
    AccountAggregateStore and the TransactionCoordinator after every
    structural change, before commit.  Nothing computes totals as a side
    effect of persisting a row.

Invariants enforced:
    - total_billed == sum(billing.amount)
    - total_paid == sum(payment.amount)
    - pending == total_billed - total_paid
    - Cash aggregates: total_billed = sum(IN), total_paid = sum(OUT),
      pending is the account balance.
    - pending >= 0 for every kind whose policy is NON_NEGATIVE.

Failure modes:
    - NegativePendingError from enforce_policy().
    - InvalidLineError when a cash aggregate carries billing lines or a
      payment line without a direction.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol

from trade_kernel.db.types import ZERO
from trade_kernel.domain.policy import LedgerPolicy
from trade_kernel.domain.values import (
    AggregateKind,
    BillPaymentStatus,
    DocumentKind,
    OverdraftPolicy,
    PaymentDirection,
    PurchasePaymentStatus,
)
from trade_kernel.exceptions import InvalidLineError, NegativePendingError


class AmountLine(Protocol):
    amount: Decimal


class DirectedLine(Protocol):
    amount: Decimal
    direction: PaymentDirection | str | None


@dataclass(frozen=True)
class AggregateTotals:
    """Derived totals of one aggregate."""

    total_billed: Decimal
    total_paid: Decimal
    pending: Decimal

    def __post_init__(self) -> None:
        if self.pending != self.total_billed - self.total_paid:
            raise ValueError(
                f"pending {self.pending} != billed {self.total_billed} - paid {self.total_paid}"
            )


EMPTY_TOTALS = AggregateTotals(ZERO, ZERO, ZERO)


def recalculate(
    kind: AggregateKind,
    billing_lines: Iterable[AmountLine],
    payment_lines: Iterable[DirectedLine],
    owner_id: str = "",
) -> AggregateTotals:
    """
    Derive totals from line lists.

    Pure and deterministic: the same lines always give the same totals,
    regardless of order.
    """
    kind = AggregateKind(kind)
    bills = list(billing_lines)
    payments = list(payment_lines)

    if kind is AggregateKind.CASH:
        if bills:
            raise InvalidLineError(kind.value, owner_id, "cash accounts carry no billing lines")
        total_in = ZERO
        total_out = ZERO
        for line in payments:
            if line.direction is None:
                raise InvalidLineError(kind.value, owner_id, "cash payment line needs a direction")
            if PaymentDirection(line.direction) is PaymentDirection.IN:
                total_in += line.amount
            else:
                total_out += line.amount
        return AggregateTotals(total_in, total_out, total_in - total_out)

    total_billed = sum((line.amount for line in bills), ZERO)
    total_paid = sum((line.amount for line in payments), ZERO)
    return AggregateTotals(total_billed, total_paid, total_billed - total_paid)


def enforce_policy(
    kind: AggregateKind,
    owner_id: str,
    totals: AggregateTotals,
    policy: LedgerPolicy,
) -> None:
    """Raise NegativePendingError if the kind forbids a negative pending."""
    if (
        policy.overdraft_for(kind) is OverdraftPolicy.NON_NEGATIVE
        and totals.pending < ZERO
    ):
        raise NegativePendingError(AggregateKind(kind).value, owner_id, totals.pending)


def payment_status(
    document_kind: DocumentKind,
    total: Decimal,
    received: Decimal,
) -> str:
    """
    Collection status of a bill or purchase.

    Bills read Unpaid/Partial/Paid; purchases read Pending/Partial/Paid.
    """
    document_kind = DocumentKind(document_kind)
    if document_kind is DocumentKind.BILL:
        unpaid, partial, paid = (
            BillPaymentStatus.UNPAID,
            BillPaymentStatus.PARTIAL,
            BillPaymentStatus.PAID,
        )
    elif document_kind is DocumentKind.PURCHASE:
        unpaid, partial, paid = (
            PurchasePaymentStatus.PENDING,
            PurchasePaymentStatus.PARTIAL,
            PurchasePaymentStatus.PAID,
        )
    else:
        raise ValueError(f"{document_kind.value} documents carry no payment status")

    if received <= ZERO:
        return unpaid.value
    if received >= total:
        return paid.value
    return partial.value
