"""
ReferenceLinker tests.

Verifies:
- Minted ids are <KIND><millis> and never repeat, even on a frozen clock
- resolve() finds every copy of a movement
- update() changes all copies together and moves the cash copy when the
  method changes, but never onto the account holding the other side of
  a transfer
- delete() removes every copy and a transfer's counterpart
"""

from decimal import Decimal

import pytest

from trade_kernel.domain.references import parse_reference
from trade_kernel.domain.values import AggregateKind, PaymentDirection, ReferenceKind
from trade_kernel.exceptions import (
    AggregateNotFoundError,
    NegativePendingError,
    ReferenceNotFoundError,
    ValidationError,
)


@pytest.fixture
def two_copy_payment(run_in_batch, open_cash_account):
    """A PAY movement held by a seller and by cash account CASH (OUT)."""
    open_cash_account("CASH", 1000)
    open_cash_account("BANK", 1000)

    def step(ctx):
        seller = ctx.aggregates.get_or_create(AggregateKind.SELLER, "SEL1")
        ctx.aggregates.add_billing_line(seller, "KP1", Decimal("300"))
        cash = ctx.aggregates.get(AggregateKind.CASH, "CASH")
        reference_id = ctx.references.create(ReferenceKind.PAY)
        ctx.aggregates.add_payment_line(seller, reference_id, Decimal("100"), method="CASH")
        ctx.aggregates.add_payment_line(
            cash, reference_id, Decimal("100"), method="CASH", direction=PaymentDirection.OUT
        )
        return reference_id

    return run_in_batch(step)


class TestMinting:
    """Reference id format and uniqueness."""

    def test_format(self, run_in_batch, deterministic_clock):
        reference_id = run_in_batch(lambda ctx: ctx.references.create())
        parsed = parse_reference(reference_id)
        assert parsed.kind is ReferenceKind.PAY
        assert parsed.token >= deterministic_clock.epoch_millis()

    def test_unique_on_frozen_clock(self, run_in_batch):
        def step(ctx):
            return [ctx.references.create() for _ in range(5)] + list(ctx.references.create_pair())

        ids = run_in_batch(step)
        tokens = [parse_reference(i).token for i in ids]
        assert len(set(tokens[:5])) == 5
        assert tokens[5] == tokens[6]
        assert tokens[5] > max(tokens[:5])

    def test_pair_shape(self, run_in_batch):
        out_id, in_id = run_in_batch(lambda ctx: ctx.references.create_pair())
        assert out_id.startswith("OUT")
        assert in_id.startswith("IN")
        assert out_id[3:] == in_id[2:]


class TestResolve:
    def test_all_copies(self, coordinator, two_copy_payment):
        with coordinator.reader() as session:
            copies = coordinator.context(session).references.resolve(two_copy_payment)
        holders = sorted((c.aggregate_kind.value, c.owner_id) for c in copies)
        assert holders == [("cash", "CASH"), ("seller", "SEL1")]
        assert {c.amount for c in copies} == {Decimal("100")}

    def test_unknown_id_has_no_copies(self, coordinator):
        with coordinator.reader() as session:
            assert coordinator.context(session).references.resolve("PAY1") == []


class TestUpdate:
    """Edits reach every copy."""

    def test_amount(self, run_in_batch, account, two_copy_payment):
        run_in_batch(lambda ctx: ctx.references.update(two_copy_payment, amount=Decimal("150")))

        assert account(AggregateKind.SELLER, "SEL1").pending == Decimal("150")
        assert account(AggregateKind.CASH, "CASH").pending == Decimal("850")

    def test_method_change_moves_cash_copy(self, run_in_batch, account, two_copy_payment):
        run_in_batch(lambda ctx: ctx.references.update(two_copy_payment, method="BANK"))

        cash = account(AggregateKind.CASH, "CASH")
        bank = account(AggregateKind.CASH, "BANK")
        assert cash.pending == Decimal("1000")
        assert bank.pending == Decimal("900")
        moved = [p for p in bank.payments if p.reference_id == two_copy_payment]
        assert moved[0].direction is PaymentDirection.OUT
        assert moved[0].method == "BANK"
        seller_line = account(AggregateKind.SELLER, "SEL1").payments[0]
        assert seller_line.method == "BANK"

    def test_method_to_unknown_account(self, run_in_batch, account, two_copy_payment):
        with pytest.raises(AggregateNotFoundError):
            run_in_batch(lambda ctx: ctx.references.update(two_copy_payment, method="NOWHERE"))
        assert account(AggregateKind.CASH, "CASH").pending == Decimal("900")

    def test_unknown_reference(self, run_in_batch, two_copy_payment):
        with pytest.raises(ReferenceNotFoundError):
            run_in_batch(lambda ctx: ctx.references.update("PAY42", amount=Decimal("1")))

    def test_overpaying_party_rejected(self, run_in_batch, account, two_copy_payment):
        with pytest.raises(NegativePendingError):
            run_in_batch(lambda ctx: ctx.references.update(two_copy_payment, amount=Decimal("301")))
        assert account(AggregateKind.SELLER, "SEL1").pending == Decimal("200")

    def test_method_onto_transfer_counterpart_rejected(self, run_in_batch, account, open_cash_account):
        open_cash_account("A", 1000)
        open_cash_account("B", 0)

        def transfer(ctx):
            out_id, in_id = ctx.references.create_pair()
            source = ctx.aggregates.get(AggregateKind.CASH, "A")
            destination = ctx.aggregates.get(AggregateKind.CASH, "B")
            ctx.aggregates.add_payment_line(
                source, out_id, Decimal("500"), method="A", direction=PaymentDirection.OUT
            )
            ctx.aggregates.add_payment_line(
                destination, in_id, Decimal("500"), method="B", direction=PaymentDirection.IN
            )
            return out_id, in_id

        out_id, in_id = run_in_batch(transfer)

        with pytest.raises(ValidationError) as exc_info:
            run_in_batch(lambda ctx: ctx.references.update(out_id, method="B"))
        assert exc_info.value.field == "method"
        with pytest.raises(ValidationError):
            run_in_batch(lambda ctx: ctx.references.update(in_id, method="A"))

        assert account(AggregateKind.CASH, "A").pending == Decimal("500")
        assert account(AggregateKind.CASH, "B").pending == Decimal("500")


class TestDelete:
    def test_all_copies_removed(self, run_in_batch, account, two_copy_payment):
        removed = run_in_batch(lambda ctx: ctx.references.delete(two_copy_payment))
        assert len(removed) == 2
        assert account(AggregateKind.SELLER, "SEL1").payments == ()
        assert account(AggregateKind.CASH, "CASH").pending == Decimal("1000")

    def test_transfer_counterpart_removed(self, run_in_batch, account, open_cash_account):
        open_cash_account("A", 0)
        open_cash_account("B", 0)

        def transfer(ctx):
            out_id, in_id = ctx.references.create_pair()
            source = ctx.aggregates.get(AggregateKind.CASH, "A")
            destination = ctx.aggregates.get(AggregateKind.CASH, "B")
            ctx.aggregates.add_payment_line(source, out_id, Decimal("500"), direction=PaymentDirection.OUT)
            ctx.aggregates.add_payment_line(destination, in_id, Decimal("500"), direction=PaymentDirection.IN)
            return out_id, in_id

        out_id, in_id = run_in_batch(transfer)
        assert account(AggregateKind.CASH, "A").pending == Decimal("-500")

        removed = run_in_batch(lambda ctx: ctx.references.delete(in_id))
        assert {c.reference_id for c in removed} == {out_id, in_id}
        assert account(AggregateKind.CASH, "A").pending == Decimal("0")
        assert account(AggregateKind.CASH, "B").pending == Decimal("0")

    def test_unknown_reference(self, run_in_batch):
        with pytest.raises(ReferenceNotFoundError):
            run_in_batch(lambda ctx: ctx.references.delete("PAY42"))
