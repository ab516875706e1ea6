"""
Unit tests for the balance recalculator.

Verifies:
- Totals are sums of line amounts, pending is billed minus paid
- Cash aggregates split payment lines by direction
- Overdraft policy per kind
- Bill and purchase payment status
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from trade_kernel.domain.balance import (
    EMPTY_TOTALS,
    AggregateTotals,
    enforce_policy,
    payment_status,
    recalculate,
)
from trade_kernel.domain.dtos import BillingLineView, PaymentLineView
from trade_kernel.domain.policy import LedgerPolicy
from trade_kernel.domain.values import (
    AggregateKind,
    DocumentKind,
    OverdraftPolicy,
    PaymentDirection,
)
from trade_kernel.exceptions import InvalidLineError, NegativePendingError

WHEN = datetime(2024, 1, 1, tzinfo=timezone.utc)


def bill(ref: str, amount: str) -> BillingLineView:
    return BillingLineView(external_doc_ref=ref, amount=Decimal(amount), date=WHEN)


def pay(ref: str, amount: str, direction: PaymentDirection | None = None) -> PaymentLineView:
    return PaymentLineView(reference_id=ref, amount=Decimal(amount), date=WHEN, direction=direction)


class TestRecalculate:
    """Totals derived from line lists."""

    def test_bills_and_payments(self):
        totals = recalculate(
            AggregateKind.CUSTOMER,
            [bill("KK1", "100"), bill("KK2", "50")],
            [pay("PAY1", "80")],
        )
        assert totals == AggregateTotals(Decimal("150"), Decimal("80"), Decimal("70"))

    def test_no_lines_gives_zero_totals(self):
        assert recalculate(AggregateKind.SUPPLIER, [], []) == EMPTY_TOTALS

    def test_order_does_not_matter(self):
        lines = [bill("A", "10.10"), bill("B", "0.20"), bill("C", "3")]
        forward = recalculate(AggregateKind.SELLER, lines, [])
        backward = recalculate(AggregateKind.SELLER, list(reversed(lines)), [])
        assert forward == backward
        assert forward.total_billed == Decimal("13.30")

    def test_cash_splits_by_direction(self):
        totals = recalculate(
            AggregateKind.CASH,
            [],
            [
                pay("IN1", "1000", PaymentDirection.IN),
                pay("OUT2", "250", PaymentDirection.OUT),
                pay("PAY3", "50", PaymentDirection.IN),
            ],
        )
        assert totals.total_billed == Decimal("1050")
        assert totals.total_paid == Decimal("250")
        assert totals.pending == Decimal("800")

    def test_cash_balance_may_be_negative(self):
        totals = recalculate(AggregateKind.CASH, [], [pay("OUT1", "500", PaymentDirection.OUT)])
        assert totals.pending == Decimal("-500")

    def test_cash_rejects_billing_lines(self):
        with pytest.raises(InvalidLineError):
            recalculate(AggregateKind.CASH, [bill("KK1", "10")], [])

    def test_cash_line_needs_direction(self):
        with pytest.raises(InvalidLineError):
            recalculate(AggregateKind.CASH, [], [pay("PAY1", "10")])

    def test_direction_accepts_plain_strings(self):
        line = PaymentLineView(reference_id="PAY1", amount=Decimal("10"), date=WHEN, direction="OUT")
        totals = recalculate(AggregateKind.CASH, [], [line])
        assert totals.total_paid == Decimal("10")


class TestAggregateTotals:
    """The pending identity is checked at construction."""

    def test_inconsistent_pending_rejected(self):
        with pytest.raises(ValueError):
            AggregateTotals(Decimal("10"), Decimal("3"), Decimal("6"))


class TestEnforcePolicy:
    """Overdraft policy per kind."""

    def test_customer_negative_pending_rejected(self):
        totals = AggregateTotals(Decimal("150"), Decimal("170"), Decimal("-20"))
        with pytest.raises(NegativePendingError) as exc_info:
            enforce_policy(AggregateKind.CUSTOMER, "C1", totals, LedgerPolicy())
        assert exc_info.value.owner_id == "C1"
        assert exc_info.value.pending == Decimal("-20")

    def test_zero_pending_allowed(self):
        totals = AggregateTotals(Decimal("150"), Decimal("150"), Decimal("0"))
        enforce_policy(AggregateKind.CUSTOMER, "C1", totals, LedgerPolicy())

    def test_cash_overdraft_allowed(self):
        totals = AggregateTotals(Decimal("0"), Decimal("500"), Decimal("-500"))
        enforce_policy(AggregateKind.CASH, "A", totals, LedgerPolicy())

    def test_policy_can_allow_customer_overdraft(self):
        overdraft = {kind: OverdraftPolicy.OVERDRAFT_ALLOWED for kind in AggregateKind}
        totals = AggregateTotals(Decimal("150"), Decimal("240"), Decimal("-90"))
        enforce_policy(AggregateKind.CUSTOMER, "C1", totals, LedgerPolicy(overdraft=overdraft))


class TestPaymentStatus:
    """Bills read Unpaid/Partial/Paid, purchases Pending/Partial/Paid."""

    @pytest.mark.parametrize(
        "received, expected",
        [("0", "Unpaid"), ("40", "Partial"), ("100", "Paid")],
    )
    def test_bill(self, received, expected):
        assert payment_status(DocumentKind.BILL, Decimal("100"), Decimal(received)) == expected

    @pytest.mark.parametrize(
        "received, expected",
        [("0", "Pending"), ("99.99", "Partial"), ("100", "Paid")],
    )
    def test_purchase(self, received, expected):
        assert payment_status(DocumentKind.PURCHASE, Decimal("100"), Decimal(received)) == expected

    def test_nothing_received_is_unpaid_even_for_zero_total(self):
        assert payment_status(DocumentKind.BILL, Decimal("0"), Decimal("0")) == "Unpaid"

    def test_returns_carry_no_status(self):
        with pytest.raises(ValueError):
            payment_status(DocumentKind.RETURN, Decimal("10"), Decimal("0"))
