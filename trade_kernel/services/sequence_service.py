"""
SequenceService -- monotonic counters and human-readable document numbers.

Responsibility:
    Provides strictly increasing integers per named sequence using a
    dedicated counter table with row-level locking (``SELECT ... FOR
    UPDATE``), and turns them into ``<PREFIX><n>`` document numbers per
    business document namespace (bill, purchase, return, damage).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by the TransactionCoordinator's batch context (document
    numbers) and by the StockLedger (entry ordering).

Invariants enforced:
    - The locked counter row is the source of truth for the next value.
      Existing document numbers are scanned exactly once per namespace,
      when its counter row is first created, so data that predates the
      counter is never re-issued.
    - Numeric-aware seeding: ``KK10`` counts as 10, not as a string
      that sorts before ``KK2``.
    - A caller-supplied candidate is used only if no document of that
      kind already carries it; an accepted candidate moves the counter
      past its numeric suffix.
    - Transactional: increments become visible only when the caller's
      batch commits.  A rolled back batch returns its number.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and re-select).
    - DuplicateDocumentNumberError is raised by the coordinator if the
      unique constraint on business_documents still fires at flush.
"""

from typing import Callable

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from trade_kernel.db.base import Base
from trade_kernel.domain.sequence import extract_suffix, format_document_number, max_suffix
from trade_kernel.domain.values import DocumentKind
from trade_kernel.logging_config import get_logger
from trade_kernel.models.document import BusinessDocumentModel

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking keeps allocation monotonic under concurrency.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "stock_entry", "doc:bill:KK")
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next strictly increasing
        integer value.  The increment is committed only when the caller's
        transaction commits.

    Non-goals:
        - Does NOT call ``session.commit()``; the coordinator owns the batch.
        - Does NOT reuse numbers freed by deleted documents.

    Usage:
        seq = SequenceService(session)
        invoice_no = seq.next_document_number(DocumentKind.BILL, "KK")
    """

    STOCK_ENTRY = "stock_entry"

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _locked_or_created(
        self,
        sequence_name: str,
        seed: Callable[[], int] | None,
    ) -> tuple[SequenceCounter, bool]:
        """Lock the counter row, creating it (seeded) on first use."""
        counter = self._lock_counter(sequence_name)
        if counter is not None:
            return counter, False

        start = seed() if seed is not None else 0
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=sequence_name, current_value=start)
            self._session.add(counter)
            self._session.flush()
            savepoint.commit()
            logger.info(
                "sequence_counter_created",
                extra={"sequence_name": sequence_name, "seed": start},
            )
            return counter, True
        except IntegrityError:
            # Another transaction created the counter first
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_name": sequence_name},
            )
            savepoint.rollback()
            counter = self._lock_counter(sequence_name)
            if counter is None:
                raise
            return counter, False

    def next_value(
        self,
        sequence_name: str,
        seed: Callable[[], int] | None = None,
    ) -> int:
        """
        Get the next value for a named sequence.

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously returned for this sequence name.

        Args:
            sequence_name: Name of the sequence.
            seed: Called once, when the counter row does not exist yet,
                to obtain the highest value already in use.
        """
        counter, _ = self._locked_or_created(sequence_name, seed)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def advance_to(
        self,
        sequence_name: str,
        value: int,
        seed: Callable[[], int] | None = None,
    ) -> int:
        """Raise the counter to at least ``value``; never lowers it."""
        counter, _ = self._locked_or_created(sequence_name, seed)
        if value > counter.current_value:
            counter.current_value = value
            self._session.flush()
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """
        Get the current value of a sequence without incrementing.

        Returns:
            Current value, or None if sequence doesn't exist.
        """
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Reset a sequence to a specific value.

        WARNING: tests and migration scripts only.
        """
        counter = self._lock_counter(sequence_name)
        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=value)
            self._session.add(counter)
        else:
            counter.current_value = value
        self._session.flush()

    # ------------------------------------------------------------------
    # Document numbers
    # ------------------------------------------------------------------

    @staticmethod
    def document_counter_name(kind: DocumentKind, prefix: str) -> str:
        return f"doc:{DocumentKind(kind).value}:{prefix}"

    def _document_exists(self, kind: DocumentKind, doc_number: str) -> bool:
        return self._session.execute(
            select(BusinessDocumentModel.id)
            .where(BusinessDocumentModel.kind == DocumentKind(kind).value)
            .where(BusinessDocumentModel.doc_number == doc_number)
        ).first() is not None

    def _scan_max_suffix(self, kind: DocumentKind, prefix: str) -> int:
        numbers = self._session.execute(
            select(BusinessDocumentModel.doc_number)
            .where(BusinessDocumentModel.kind == DocumentKind(kind).value)
            .where(BusinessDocumentModel.doc_number.like(f"{prefix}%"))
        ).scalars()
        return max_suffix(prefix, numbers)

    def next_document_number(
        self,
        kind: DocumentKind,
        prefix: str,
        candidate: str | None = None,
    ) -> str:
        """
        Allocate a ``<prefix><n>`` number in the ``kind`` namespace.

        Postconditions:
            - With no documents in the namespace the first number is
              ``<prefix>1``; N sequential calls yield ``<prefix>1`` ..
              ``<prefix>N``.
            - A free candidate is returned unchanged.
        """
        kind = DocumentKind(kind)
        counter_name = self.document_counter_name(kind, prefix)

        def seed() -> int:
            return self._scan_max_suffix(kind, prefix)

        if candidate:
            if not self._document_exists(kind, candidate):
                suffix = extract_suffix(prefix, candidate)
                if suffix is not None:
                    self.advance_to(counter_name, suffix, seed)
                logger.info(
                    "document_number_candidate_accepted",
                    extra={"document_kind": kind.value, "doc_number": candidate},
                )
                return candidate
            logger.info(
                "document_number_candidate_taken",
                extra={"document_kind": kind.value, "doc_number": candidate},
            )

        while True:
            number = format_document_number(prefix, self.next_value(counter_name, seed))
            if not self._document_exists(kind, number):
                return number
            # Taken by a document written around the counter; skip forward.
            logger.warning(
                "document_number_skipped",
                extra={"document_kind": kind.value, "doc_number": number},
            )
