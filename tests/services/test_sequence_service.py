"""
SequenceService tests.

Verifies:
- N sequential allocations yield <PREFIX>1 .. <PREFIX>N
- Namespaces count independently
- Free candidates are accepted and move the counter past them
- Taken candidates and numbers written around the counter are skipped
- Seeding from existing numbers is numeric-aware (KK10 after KK9)
- A rolled back batch does not consume its number
"""

import pytest

from trade_kernel.domain.values import DocumentKind
from trade_kernel.exceptions import InternalError
from trade_kernel.services.sequence_service import SequenceService


def _bill_number(candidate=None):
    def step(ctx):
        return ctx.next_document_number(DocumentKind.BILL, candidate)

    return step


def _insert_bill(doc_number):
    def step(ctx):
        ctx.documents.create(DocumentKind.BILL, doc_number, ())
        return doc_number

    return step


class TestSequentialNumbers:
    """Plain allocation."""

    def test_first_numbers(self, run_in_batch):
        numbers = [run_in_batch(_bill_number()) for _ in range(3)]
        assert numbers == ["KK1", "KK2", "KK3"]

    def test_many_in_one_batch(self, run_in_batch):
        def step(ctx):
            return [ctx.next_document_number(DocumentKind.BILL) for _ in range(12)]

        assert run_in_batch(step) == [f"KK{n}" for n in range(1, 13)]

    def test_namespaces_are_independent(self, run_in_batch):
        def step(ctx):
            return (
                ctx.next_document_number(DocumentKind.BILL),
                ctx.next_document_number(DocumentKind.PURCHASE),
                ctx.next_document_number(DocumentKind.BILL),
                ctx.next_document_number(DocumentKind.RETURN),
                ctx.next_document_number(DocumentKind.DAMAGE),
            )

        assert run_in_batch(step) == ("KK1", "KP1", "KK2", "KR1", "KD1")

    def test_rolled_back_number_is_reissued(self, coordinator, run_in_batch):
        def allocate_then_fail(ctx):
            ctx.next_document_number(DocumentKind.BILL)
            raise RuntimeError("abort")

        with pytest.raises(InternalError):
            coordinator.batch("failing").step("s", allocate_then_fail).execute()
        assert run_in_batch(_bill_number()) == "KK1"


class TestCandidates:
    """Caller-supplied document numbers."""

    def test_free_candidate_accepted(self, run_in_batch):
        assert run_in_batch(_bill_number("KK7")) == "KK7"
        assert run_in_batch(_bill_number()) == "KK8"

    def test_foreign_candidate_does_not_move_counter(self, run_in_batch):
        assert run_in_batch(_bill_number("INV-2024-01")) == "INV-2024-01"
        assert run_in_batch(_bill_number()) == "KK1"

    def test_taken_candidate_skipped(self, run_in_batch):
        run_in_batch(_insert_bill("KK1"))
        assert run_in_batch(_bill_number("KK1")) == "KK2"

    def test_candidate_taken_only_in_other_namespace(self, run_in_batch):
        def step(ctx):
            ctx.documents.create(DocumentKind.PURCHASE, "X1", ())
            return ctx.next_document_number(DocumentKind.BILL, "X1")

        assert run_in_batch(step) == "X1"


class TestSeeding:
    """Counters created over existing data."""

    def test_seeded_numerically(self, run_in_batch):
        for number in ("KK9", "KK10", "KK2"):
            run_in_batch(_insert_bill(number))
        assert run_in_batch(_bill_number()) == "KK11"

    def test_number_written_around_counter_is_skipped(self, run_in_batch):
        assert run_in_batch(_bill_number()) == "KK1"
        run_in_batch(_insert_bill("KK2"))
        assert run_in_batch(_bill_number()) == "KK3"


class TestNamedCounters:
    """next_value / advance_to / reset on arbitrary sequence names."""

    def test_next_value_and_current(self, coordinator, run_in_batch):
        def step(ctx):
            return [ctx.sequences.next_value("widgets") for _ in range(3)]

        assert run_in_batch(step) == [1, 2, 3]
        with coordinator.reader() as session:
            assert SequenceService(session).current_value("widgets") == 3
            assert SequenceService(session).current_value("unknown") is None

    def test_seed_used_once(self, run_in_batch):
        calls = []

        def seed():
            calls.append(1)
            return 40

        def step(ctx):
            return ctx.sequences.next_value("seeded", seed), ctx.sequences.next_value("seeded", seed)

        assert run_in_batch(step) == (41, 42)
        assert len(calls) == 1

    def test_advance_never_lowers(self, run_in_batch):
        def step(ctx):
            ctx.sequences.advance_to("widgets", 10)
            ctx.sequences.advance_to("widgets", 4)
            return ctx.sequences.next_value("widgets")

        assert run_in_batch(step) == 11

    def test_reset(self, run_in_batch):
        def step(ctx):
            ctx.sequences.next_value("widgets")
            ctx.sequences.reset("widgets", 100)
            return ctx.sequences.next_value("widgets")

        assert run_in_batch(step) == 101

    def test_document_counter_name(self):
        assert SequenceService.document_counter_name(DocumentKind.BILL, "KK") == "doc:bill:KK"
