"""
Property-based tests for the ledger sum invariants.

Verifies:
- pending == total_billed - total_paid for any line set, in any order
- Cash totals split payment lines by direction
- Document numbers sort numerically
- Minted reference tokens strictly increase whatever the clock does
- Against the database: any sequence of bill payments either commits or
  leaves every copy untouched, and the committed totals always agree
"""

from datetime import datetime, timezone
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import delete

from trade_kernel.db.base import Base
from trade_kernel.db.engine import get_engine, get_session_factory
from trade_kernel.domain.balance import recalculate
from trade_kernel.domain.clock import DeterministicClock
from trade_kernel.domain.dtos import (
    BillingLineView,
    BillRequest,
    PaymentLineView,
    PaymentRequest,
    ProductLineRequest,
    PurchaseRequest,
)
from trade_kernel.domain.policy import LedgerPolicy
from trade_kernel.domain.sequence import natural_key
from trade_kernel.domain.values import AggregateKind, DocumentKind, PaymentDirection
from trade_kernel.exceptions import NegativePendingError
from trade_kernel.selectors.account_selector import AccountSelector
from trade_kernel.selectors.document_selector import DocumentSelector
from trade_kernel.services.reference_linker import ReferenceMinter
from trade_kernel.services.transaction_coordinator import TransactionCoordinator
from trade_modules import CashService, PurchasingService, SalesService

WHEN = datetime(2024, 6, 1, tzinfo=timezone.utc)

amounts = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2)

# Autouse fixtures are function scoped.
fuzz_settings = settings(suppress_health_check=[HealthCheck.function_scoped_fixture])


class TestRecalculateProperties:
    """Pure recalculation over generated line sets."""

    @fuzz_settings
    @given(bills=st.lists(amounts, max_size=20), payments=st.lists(amounts, max_size=20))
    def test_pending_identity(self, bills, payments):
        totals = recalculate(
            AggregateKind.SUPPLIER,
            [BillingLineView(f"KP{i}", a, WHEN) for i, a in enumerate(bills)],
            [PaymentLineView(f"PAY{i}", a, WHEN) for i, a in enumerate(payments)],
        )
        assert totals.total_billed == sum(bills, Decimal("0"))
        assert totals.total_paid == sum(payments, Decimal("0"))
        assert totals.pending == totals.total_billed - totals.total_paid

    @fuzz_settings
    @given(bills=st.lists(amounts, min_size=1, max_size=20), data=st.data())
    def test_order_independent(self, bills, data):
        lines = [BillingLineView(f"KK{i}", a, WHEN) for i, a in enumerate(bills)]
        shuffled = data.draw(st.permutations(lines))
        assert recalculate(AggregateKind.CUSTOMER, lines, []) == recalculate(
            AggregateKind.CUSTOMER, shuffled, []
        )

    @fuzz_settings
    @given(lines=st.lists(st.tuples(amounts, st.sampled_from(list(PaymentDirection))), max_size=30))
    def test_cash_balance(self, lines):
        views = [PaymentLineView(f"PAY{i}", a, WHEN, direction=d) for i, (a, d) in enumerate(lines)]
        totals = recalculate(AggregateKind.CASH, [], views)
        ins = sum((a for a, d in lines if d is PaymentDirection.IN), Decimal("0"))
        outs = sum((a for a, d in lines if d is PaymentDirection.OUT), Decimal("0"))
        assert (totals.total_billed, totals.total_paid, totals.pending) == (ins, outs, ins - outs)


class TestIdentifierProperties:
    @fuzz_settings
    @given(st.lists(st.integers(min_value=0, max_value=10**9), min_size=1, max_size=50))
    def test_natural_order_is_numeric(self, numbers):
        ordered = sorted((f"KK{n}" for n in numbers), key=natural_key)
        assert [int(x[2:]) for x in ordered] == sorted(numbers)

    @fuzz_settings
    @given(st.lists(st.integers(min_value=0, max_value=2**41), min_size=1, max_size=50))
    def test_minter_strictly_increasing(self, clock_readings):
        minter = ReferenceMinter()
        tokens = [minter.next_token(millis) for millis in clock_readings]
        assert all(b > a for a, b in zip(tokens, tokens[1:]))
        assert all(t >= m for t, m in zip(tokens, clock_readings))


def _reset_rows():
    with get_engine().begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(delete(table))


class TestBillPaymentSequences:
    """Random payment sequences against one bill, checked after every batch."""

    @settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        total=st.decimals(min_value=Decimal("1"), max_value=Decimal("500"), places=2),
        payments=st.lists(st.decimals(min_value=Decimal("0.01"), max_value=Decimal("300"), places=2), max_size=8),
    )
    def test_payments_commit_or_vanish(self, db_tables, total, payments):
        _reset_rows()
        coordinator = TransactionCoordinator(
            get_session_factory(), LedgerPolicy(), DeterministicClock(WHEN)
        )
        CashService(coordinator).open_account("CASH", opening_balance=0)
        PurchasingService(coordinator).create_purchase(
            PurchaseRequest(supplier_id="S1", supplier_name=None, lines=(ProductLineRequest("P1", 1),))
        )
        sales = SalesService(coordinator)
        invoice_no = sales.create_bill(
            BillRequest(
                customer_id="C1",
                customer_name=None,
                lines=(ProductLineRequest("P1", 1),),
                total_amount=total,
            )
        ).value

        accepted = Decimal("0")
        for amount in payments:
            try:
                sales.add_bill_payment(invoice_no, PaymentRequest(amount=amount, method="CASH"))
                accepted += amount
            except NegativePendingError:
                assert accepted + amount > total

            with coordinator.reader() as session:
                customer = AccountSelector(session).get_snapshot(AggregateKind.CUSTOMER, "C1")
                cash = AccountSelector(session).get_snapshot(AggregateKind.CASH, "CASH")
                bill = DocumentSelector(session).get(DocumentKind.BILL, invoice_no)
                assert AccountSelector(session).find_drift() == []

            assert customer.total_paid == accepted
            assert customer.pending == total - accepted
            assert cash.pending == accepted
            assert bill.amount_received == accepted
            assert len(bill.payments) == len(customer.payments)

        _reset_rows()
