"""
TransactionCoordinator -- all-or-nothing execution of one business operation.

Responsibility:
    Runs an ordered list of steps against a single session, then
    recalculates and checks every aggregate and document the steps
    touched, then commits.  Any failure rolls the whole batch back.

Architecture position:
    Kernel > Services -- the only component that commits.  Business
    modules (``trade_modules``) build every operation as one batch; the
    services it wires into the BatchContext only flush.

Batch flow:
    coordinator.batch(operation, actor_id)
        .step(name, fn)                 fn(ctx) -> value
        .mutate(name, kind, owner, fn)  fn(AggregateState) -> AggregateState
        .execute()
      1. Open a session and bind correlation_id/operation/actor_id to logs
      2. Run the steps in order; each result is kept in ctx.results
      3. Refresh received amounts of touched documents and copy each
         bill/purchase payment status onto its customer/supplier line
      4. Recalculate touched aggregates and enforce overdraft policy
      5. Commit, or roll back and raise

Invariants enforced:
    - Either every step's effect is committed or none is.
    - No aggregate is committed with cached totals that differ from its
      lines, or with a pending amount its overdraft policy forbids.
    - Aggregates written by another batch since they were read are not
      overwritten: the stale write aborts as OptimisticLockError.

Failure modes:
    - TradeKernelError subclasses propagate unchanged.
    - StaleDataError -> OptimisticLockError.
    - IntegrityError on the document number constraint ->
      DuplicateDocumentNumberError.
    - Anything else -> InternalError with the original chained.
"""

import re
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from trade_kernel.domain.clock import Clock, SystemClock
from trade_kernel.domain.documents import PARTY_KIND
from trade_kernel.domain.dtos import AggregateSnapshot, AggregateState, DocumentSnapshot
from trade_kernel.domain.policy import LedgerPolicy
from trade_kernel.domain.values import AggregateKind, DocumentKind
from trade_kernel.exceptions import (
    DuplicateDocumentNumberError,
    InternalError,
    OptimisticLockError,
    TradeKernelError,
    ValidationError,
)
from trade_kernel.logging_config import LogContext, get_logger
from trade_kernel.services.aggregate_store import AccountAggregateStore
from trade_kernel.services.document_store import DocumentStore
from trade_kernel.services.reference_linker import ReferenceLinker, ReferenceMinter
from trade_kernel.services.sequence_service import SequenceService
from trade_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.transaction_coordinator")

_STALE_TABLE = re.compile(r"table '(\w+)'")
_DOCUMENT_CONSTRAINT_MARKERS = ("uq_document_kind_number", "business_documents.doc_number")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BatchResult:
    """Outcome of a committed batch."""

    operation: str
    value: Any
    snapshots: tuple[AggregateSnapshot, ...] = ()
    documents: tuple[DocumentSnapshot, ...] = ()
    correlation_id: str | None = None

    def snapshot(self, kind: AggregateKind, owner_id: str) -> AggregateSnapshot | None:
        kind = AggregateKind(kind)
        for snap in self.snapshots:
            if snap.kind is kind and snap.owner_id == owner_id:
                return snap
        return None

    def document(self, kind: DocumentKind, doc_number: str) -> DocumentSnapshot | None:
        kind = DocumentKind(kind)
        for doc in self.documents:
            if doc.kind is kind and doc.doc_number == doc_number:
                return doc
        return None


@dataclass(frozen=True)
class ErrorResult:
    """Serializable failure shape for the boundary layer."""

    kind: str
    code: str
    message: str
    field: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result = {"kind": self.kind, "code": self.code, "message": self.message}
        if self.field is not None:
            result["field"] = self.field
        return result


def error_result(exc: BaseException) -> ErrorResult:
    """Map any exception raised by a batch to an ErrorResult."""
    if isinstance(exc, TradeKernelError):
        return ErrorResult(
            kind=exc.kind,
            code=exc.code,
            message=exc.message,
            field=getattr(exc, "field", None),
        )
    return ErrorResult(
        kind=InternalError.kind,
        code=InternalError.code,
        message=str(exc) or type(exc).__name__,
    )


# ---------------------------------------------------------------------------
# Batch context
# ---------------------------------------------------------------------------


@dataclass
class BatchContext:
    """Services and state shared by the steps of one batch."""

    session: Session
    clock: Clock
    policy: LedgerPolicy
    actor_id: str | None
    sequences: SequenceService
    references: ReferenceLinker
    aggregates: AccountAggregateStore
    stock: StockLedger
    documents: DocumentStore
    results: dict[str, Any] = field(default_factory=dict)

    def next_document_number(self, kind: DocumentKind, candidate: str | None = None) -> str:
        return self.sequences.next_document_number(kind, self.policy.prefix_for(kind), candidate)


StepFn = Callable[[BatchContext], Any]


class BatchBuilder:
    """Collects the ordered steps of one batch; ``execute()`` runs them."""

    def __init__(self, coordinator: "TransactionCoordinator", operation: str, actor_id: str | None):
        self._coordinator = coordinator
        self.operation = operation
        self.actor_id = actor_id
        self._steps: list[tuple[str, StepFn]] = []

    def step(self, name: str, fn: StepFn) -> "BatchBuilder":
        if any(existing == name for existing, _ in self._steps):
            raise ValidationError("step", f"duplicate step name {name!r}")
        self._steps.append((name, fn))
        return self

    def mutate(
        self,
        name: str,
        kind: AggregateKind,
        owner_id: str,
        fn: Callable[[AggregateState], AggregateState],
        create: bool = False,
    ) -> "BatchBuilder":
        """
        Add a pure step over one aggregate.

        ``fn`` receives the aggregate's current lines and returns the
        lines it should have; the difference is written back.  With
        ``create`` a missing aggregate starts empty instead of raising
        AggregateNotFoundError.
        """

        def run(ctx: BatchContext) -> AggregateState:
            if create:
                aggregate = ctx.aggregates.get_or_create(kind, owner_id)
            else:
                aggregate = ctx.aggregates.get(kind, owner_id)
            state = fn(ctx.aggregates.load_state(aggregate))
            ctx.aggregates.apply_state(aggregate, state)
            return state

        return self.step(name, run)

    def execute(self) -> BatchResult:
        return self._coordinator._run(self)

    @property
    def steps(self) -> list[tuple[str, StepFn]]:
        return list(self._steps)


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class TransactionCoordinator:
    """
    Owns transaction boundaries for every ledger mutation.

    Contract:
        One batch = one session = one database transaction.  Sessions
        come from ``session_factory`` and are closed after each batch.

    Guarantees:
        - Reference ids minted by any batch of this coordinator are
          strictly increasing.
        - No automatic retry; a conflicting caller resubmits.

    Usage:
        coordinator = TransactionCoordinator(get_session_factory(), policy)
        result = (
            coordinator.batch("add_bill_payment", actor_id="u1")
            .step("payment", lambda ctx: ...)
            .execute()
        )
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        policy: LedgerPolicy | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self.policy = policy or LedgerPolicy()
        self.clock = clock or SystemClock()
        self.minter = ReferenceMinter()
        self._lock = threading.Lock()
        self._batches = 0

    def batch(self, operation: str, actor_id: str | None = None) -> BatchBuilder:
        return BatchBuilder(self, operation, actor_id)

    @contextmanager
    def reader(self) -> Iterator[Session]:
        """Session for read-only queries; always rolled back and closed."""
        session = self._session_factory()
        try:
            yield session
        finally:
            session.rollback()
            session.close()

    def context(self, session: Session, actor_id: str | None = None) -> BatchContext:
        """Wire the batch-scoped services around ``session``."""
        sequences = SequenceService(session)
        aggregates = AccountAggregateStore(session, self.policy, self.clock, actor_id)
        documents = DocumentStore(session, self.clock, actor_id, self.policy.money_decimal_places)
        return BatchContext(
            session=session,
            clock=self.clock,
            policy=self.policy,
            actor_id=actor_id,
            sequences=sequences,
            references=ReferenceLinker(session, aggregates, documents, self.minter, self.clock),
            aggregates=aggregates,
            stock=StockLedger(session, sequences, self.clock, self.policy.history_page_size),
            documents=documents,
        )

    def _run(self, builder: BatchBuilder) -> BatchResult:
        correlation_id = str(uuid4())
        with self._lock:
            self._batches += 1

        with LogContext.scoped(), LogContext.bind(
            correlation_id=correlation_id,
            operation=builder.operation,
            actor_id=builder.actor_id,
        ):
            start = time.monotonic()
            session = self._session_factory()
            ctx = self.context(session, builder.actor_id)
            logger.info("batch_started", extra={"steps": len(builder.steps)})
            current = None
            try:
                value = None
                for name, fn in builder.steps:
                    current = name
                    value = fn(ctx)
                    ctx.results[name] = value
                current = None
                documents = ctx.documents.check_touched()
                self._sync_party_status(ctx)
                snapshots = ctx.aggregates.check_touched()
                session.commit()
            except Exception as exc:
                session.rollback()
                error = self._translate(builder.operation, exc)
                logger.warning(
                    "batch_aborted",
                    extra={
                        "step": current,
                        "error_code": getattr(error, "code", type(exc).__name__),
                        "error": str(exc),
                    },
                )
                if error is exc:
                    raise
                raise error from exc
            finally:
                session.close()

            duration_ms = round((time.monotonic() - start) * 1000, 2)
            logger.info(
                "batch_committed",
                extra={
                    "aggregates": len(snapshots),
                    "documents": len(documents),
                    "duration_ms": duration_ms,
                },
            )
            return BatchResult(
                operation=builder.operation,
                value=value,
                snapshots=tuple(snapshots),
                documents=tuple(documents),
                correlation_id=correlation_id,
            )

    @staticmethod
    def _sync_party_status(ctx: BatchContext) -> None:
        for document in ctx.documents.touched:
            party_kind = PARTY_KIND.get(DocumentKind(document.kind))
            if party_kind is None:
                continue
            party = ctx.aggregates.find(party_kind, document.party_id)
            if party is None:
                continue
            line = ctx.aggregates.find_billing_line(party, document.doc_number)
            if line is not None and line.status != document.payment_status:
                ctx.aggregates.update_billing_line(
                    party, document.doc_number, status=document.payment_status
                )

    @staticmethod
    def _translate(operation: str, exc: Exception) -> Exception:
        if isinstance(exc, TradeKernelError):
            return exc
        if isinstance(exc, StaleDataError):
            match = _STALE_TABLE.search(str(exc))
            return OptimisticLockError(match.group(1) if match else "aggregate", operation)
        if isinstance(exc, IntegrityError):
            text = str(exc.orig)
            if any(marker in text for marker in _DOCUMENT_CONSTRAINT_MARKERS):
                return DuplicateDocumentNumberError("document", operation)
        return InternalError(operation, str(exc) or type(exc).__name__)

    @property
    def batches_run(self) -> int:
        return self._batches
