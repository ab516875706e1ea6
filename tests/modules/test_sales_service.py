"""
SalesService tests.

Verifies:
- Creating a bill deducts stock, bills the customer and numbers the bill
- Bill payments are three copies (cash IN, bill, customer) kept in step
- Payment status follows the received amount: Unpaid, Partial, Paid
- Editing re-applies stock and the billed amount
- Deleting a bill removes every effect it introduced
- Failed operations leave no partial state behind
"""

from decimal import Decimal

import pytest

from trade_kernel.domain.dtos import (
    BillEdit,
    BillRequest,
    PaymentEdit,
    PaymentRequest,
    ProductLineRequest,
)
from trade_kernel.domain.values import AggregateKind, DocumentKind, DocumentState, PaymentDirection
from trade_kernel.exceptions import (
    AggregateNotFoundError,
    DocumentNotFoundError,
    InsufficientStockError,
    NegativePendingError,
    ProductNotFoundError,
    ReferenceNotFoundError,
)


@pytest.fixture
def shop(stock_items, open_cash_account):
    """P1 x10 and P2 x5 in stock, an empty CASH account and a BANK account."""
    stock_items({"P1": 10, "P2": 5})
    open_cash_account("CASH", 0)
    open_cash_account("BANK", 0)


def bill_request(*lines, customer_id="C1", **kwargs) -> BillRequest:
    lines = lines or (("P1", 2, "50"),)
    return BillRequest(
        customer_id=customer_id,
        customer_name="Ravi",
        lines=tuple(ProductLineRequest(i, q, unit_price=Decimal(p)) for i, q, p in lines),
        **kwargs,
    )


class TestCreateBill:
    """Stock, customer and numbering effects of a sale."""

    def test_effects(self, shop, sales, account, document, stock_of):
        result = sales.create_bill(bill_request())

        assert result.value == "KK1"
        assert stock_of("P1") == 8
        customer = account(AggregateKind.CUSTOMER, "C1")
        assert customer.owner_name == "Ravi"
        assert customer.pending == Decimal("100")
        assert customer.bills[0].external_doc_ref == "KK1"
        assert customer.bills[0].status == "Unpaid"

        bill = document(DocumentKind.BILL, "KK1")
        assert bill.state is DocumentState.ACTIVE
        assert bill.total_amount == Decimal("100")
        assert bill.payment_status == "Unpaid"
        assert [(line.item_id, line.quantity) for line in bill.lines] == [("P1", 2)]

    def test_numbers_increase(self, shop, sales):
        numbers = [sales.create_bill(bill_request(("P1", 1, "10"))).value for _ in range(3)]
        assert numbers == ["KK1", "KK2", "KK3"]

    def test_candidate_number(self, shop, sales):
        assert sales.create_bill(bill_request(invoice_no="KK40")).value == "KK40"
        assert sales.create_bill(bill_request(("P1", 1, "1"))).value == "KK41"

    def test_result_snapshots(self, shop, sales):
        result = sales.create_bill(bill_request())
        assert result.snapshot(AggregateKind.CUSTOMER, "C1").pending == Decimal("100")
        assert result.document(DocumentKind.BILL, "KK1").payment_status == "Unpaid"

    def test_selling_exactly_the_stock(self, shop, sales, stock_of):
        sales.create_bill(bill_request(("P1", 10, "5")))
        assert stock_of("P1") == 0

    def test_insufficient_stock_leaves_nothing(self, shop, sales, account, document, stock_of):
        with pytest.raises(InsufficientStockError):
            sales.create_bill(bill_request(("P1", 2, "50"), ("P2", 6, "10")))

        assert stock_of("P1") == 10
        assert stock_of("P2") == 5
        assert account(AggregateKind.CUSTOMER, "C1") is None
        assert document(DocumentKind.BILL, "KK1") is None
        assert sales.create_bill(bill_request()).value == "KK1"

    def test_unknown_product(self, shop, sales):
        with pytest.raises(ProductNotFoundError):
            sales.create_bill(bill_request(("GHOST", 1, "1")))

    def test_initial_payment(self, shop, sales, account, document):
        result = sales.create_bill(
            bill_request(initial_payment=PaymentRequest(amount="40", method="CASH"))
        )
        (payment,) = document(DocumentKind.BILL, result.value).payments
        reference_id = payment.reference_id
        assert reference_id.startswith("PAY")

        cash = account(AggregateKind.CASH, "CASH")
        cash_line = [p for p in cash.payments if p.reference_id == reference_id][0]
        assert cash_line.direction is PaymentDirection.IN
        assert cash_line.linked_doc_ref == "KK1"
        assert cash.pending == Decimal("40")

        customer = account(AggregateKind.CUSTOMER, "C1")
        assert customer.payments[0].reference_id == reference_id
        assert customer.pending == Decimal("60")
        assert customer.bills[0].status == "Partial"


class TestBillPayments:
    """Three-copy payments against a bill."""

    @pytest.fixture
    def bill(self, shop, sales):
        return sales.create_bill(bill_request()).value

    def test_partial_then_paid(self, bill, sales, document):
        sales.add_bill_payment(bill, PaymentRequest(amount="30", method="CASH"))
        assert document(DocumentKind.BILL, bill).payment_status == "Partial"

        sales.add_bill_payment(bill, PaymentRequest(amount="70", method="BANK"))
        snap = document(DocumentKind.BILL, bill)
        assert snap.payment_status == "Paid"
        assert snap.amount_received == Decimal("100")

    def test_overpayment_rejected(self, bill, sales, account):
        with pytest.raises(NegativePendingError):
            sales.add_bill_payment(bill, PaymentRequest(amount="120", method="CASH"))
        assert account(AggregateKind.CASH, "CASH").pending == Decimal("0")
        assert account(AggregateKind.CUSTOMER, "C1").total_paid == Decimal("0")

    def test_unknown_cash_account(self, bill, sales):
        with pytest.raises(AggregateNotFoundError):
            sales.add_bill_payment(bill, PaymentRequest(amount="10", method="SAFE"))

    def test_edit_amount_updates_every_copy(self, bill, sales, account, document):
        reference_id = sales.add_bill_payment(bill, PaymentRequest(amount="30", method="CASH")).value

        sales.edit_bill_payment(reference_id, PaymentEdit(amount="100"))

        assert document(DocumentKind.BILL, bill).payment_status == "Paid"
        assert account(AggregateKind.CASH, "CASH").pending == Decimal("100")
        customer = account(AggregateKind.CUSTOMER, "C1")
        assert customer.total_paid == Decimal("100")
        assert customer.bills[0].status == "Paid"

    def test_edit_method_moves_cash(self, bill, sales, account):
        reference_id = sales.add_bill_payment(bill, PaymentRequest(amount="30", method="CASH")).value

        sales.edit_bill_payment(reference_id, PaymentEdit(method="BANK"))

        assert account(AggregateKind.CASH, "CASH").pending == Decimal("0")
        assert account(AggregateKind.CASH, "BANK").pending == Decimal("30")
        assert account(AggregateKind.CUSTOMER, "C1").payments[0].method == "BANK"

    def test_edit_beyond_total_rejected(self, bill, sales, account):
        reference_id = sales.add_bill_payment(bill, PaymentRequest(amount="30", method="CASH")).value
        with pytest.raises(NegativePendingError):
            sales.edit_bill_payment(reference_id, PaymentEdit(amount="101"))
        assert account(AggregateKind.CASH, "CASH").pending == Decimal("30")

    def test_delete_payment(self, bill, sales, account, document):
        reference_id = sales.add_bill_payment(bill, PaymentRequest(amount="30", method="CASH")).value

        sales.delete_bill_payment(reference_id)

        snap = document(DocumentKind.BILL, bill)
        assert snap.payments == ()
        assert snap.payment_status == "Unpaid"
        assert account(AggregateKind.CASH, "CASH").pending == Decimal("0")
        assert account(AggregateKind.CUSTOMER, "C1").payments == ()

    def test_delete_payment_not_on_a_bill(self, bill, sales, cash):
        reference_id = cash.record_payment(
            PaymentRequest(amount="5", method="CASH"), PaymentDirection.IN
        ).value
        with pytest.raises(ReferenceNotFoundError):
            sales.delete_bill_payment(reference_id)


class TestEditBill:
    """Replacing lines and total."""

    def test_stock_and_total_follow(self, shop, sales, account, document, stock_of):
        sales.create_bill(bill_request(("P1", 2, "50"), ("P2", 1, "20")))

        sales.edit_bill("KK1", BillEdit(lines=(
            ProductLineRequest("P1", 3, unit_price=Decimal("50")),
            ProductLineRequest("P2", 0, unit_price=Decimal("20")),
        )))

        assert stock_of("P1") == 7
        assert stock_of("P2") == 5
        assert account(AggregateKind.CUSTOMER, "C1").pending == Decimal("150")
        snap = document(DocumentKind.BILL, "KK1")
        assert snap.state is DocumentState.EDITED
        assert snap.edit_count == 1
        assert [line.item_id for line in snap.lines] == ["P1"]

    def test_edit_cannot_exceed_stock(self, shop, sales, stock_of):
        sales.create_bill(bill_request(("P1", 2, "50")))
        with pytest.raises(InsufficientStockError):
            sales.edit_bill("KK1", BillEdit(lines=(ProductLineRequest("P1", 11, unit_price=Decimal("1")),)))
        assert stock_of("P1") == 8

    def test_total_below_payments_rejected(self, shop, sales, account):
        sales.create_bill(bill_request(initial_payment=PaymentRequest(amount="80", method="CASH")))
        with pytest.raises(NegativePendingError):
            sales.edit_bill("KK1", BillEdit(lines=(ProductLineRequest("P1", 1, unit_price=Decimal("50")),)))
        assert account(AggregateKind.CUSTOMER, "C1").total_billed == Decimal("100")

    def test_unknown_bill(self, shop, sales):
        with pytest.raises(DocumentNotFoundError):
            sales.edit_bill("KK9", BillEdit(lines=(ProductLineRequest("P1", 1),)))


class TestDeleteBill:
    def test_every_effect_removed(self, shop, sales, account, document, stock_of):
        sales.create_bill(bill_request(initial_payment=PaymentRequest(amount="40", method="CASH")))
        sales.add_bill_payment("KK1", PaymentRequest(amount="10", method="BANK"))

        sales.delete_bill("KK1")

        assert document(DocumentKind.BILL, "KK1") is None
        assert stock_of("P1") == 10
        customer = account(AggregateKind.CUSTOMER, "C1")
        assert customer.bills == ()
        assert customer.payments == ()
        assert customer.pending == Decimal("0")
        assert account(AggregateKind.CASH, "CASH").pending == Decimal("0")
        assert account(AggregateKind.CASH, "BANK").pending == Decimal("0")

    def test_number_not_reused(self, shop, sales):
        sales.create_bill(bill_request(("P1", 1, "1")))
        sales.delete_bill("KK1")
        assert sales.create_bill(bill_request(("P1", 1, "1"))).value == "KK2"

    def test_unknown_bill(self, shop, sales):
        with pytest.raises(DocumentNotFoundError):
            sales.delete_bill("KK1")


class TestMoneyRounding:
    """Amounts are stored at the policy's decimal places (2 by default)."""

    def test_bill_total_rounded(self, shop, sales, account, document):
        invoice_no = sales.create_bill(bill_request(("P1", 1, "10.123456"))).value

        assert document(DocumentKind.BILL, invoice_no).total_amount == Decimal("10.12")
        customer = account(AggregateKind.CUSTOMER, "C1")
        assert customer.bills[0].amount == Decimal("10.12")
        assert customer.pending == Decimal("10.12")

    def test_payment_rounded_on_every_copy(self, shop, sales, account, document):
        invoice_no = sales.create_bill(bill_request()).value
        reference_id = sales.add_bill_payment(invoice_no, PaymentRequest(amount="3.335", method="CASH")).value

        bill = document(DocumentKind.BILL, invoice_no)
        assert bill.payments[0].amount == Decimal("3.34")
        assert bill.amount_received == Decimal("3.34")
        customer = account(AggregateKind.CUSTOMER, "C1")
        assert customer.payments[0].amount == Decimal("3.34")
        assert customer.pending == Decimal("96.66")
        cash_line = [p for p in account(AggregateKind.CASH, "CASH").payments if p.reference_id == reference_id]
        assert cash_line[0].amount == Decimal("3.34")

    def test_edit_rounds_new_amount(self, shop, sales, account):
        invoice_no = sales.create_bill(bill_request()).value
        reference_id = sales.add_bill_payment(invoice_no, PaymentRequest(amount="10", method="CASH")).value

        sales.edit_bill_payment(reference_id, PaymentEdit(amount="20.005"))

        assert account(AggregateKind.CUSTOMER, "C1").total_paid == Decimal("20.01")
        assert account(AggregateKind.CASH, "CASH").pending == Decimal("20.01")
