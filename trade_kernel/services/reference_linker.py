"""
ReferenceLinker -- mints, resolves, edits, relocates and deletes payment
movements across every copy that holds them.

Responsibility:
    A payment movement is stored as one to three copies (cash account
    line, business document payment, customer/supplier/seller/transport
    line) that share one reference id; a transfer is a pair of copies
    ``OUT<t>`` / ``IN<t>``.  The linker is the only component that finds
    and changes all copies of a movement together.

Architecture position:
    Kernel > Services.  Works through AccountAggregateStore and
    DocumentStore so every copy it changes is registered as touched and
    recalculated before the batch commits.

Invariants enforced:
    - Reference ids are ``<KIND><epoch-millis>`` and unique: the millis
      token is bumped while it is already minted by this process or
      present in the store under any kind.
    - After update(), every copy of the id carries the same amount, date
      and method; a transfer pair shares amount and date.
    - delete() removes every copy, and the paired transfer counterpart,
      in the same batch.
    - relocate() removes and re-inserts within the same batch, so both
      happen or neither does.

Failure modes:
    - ReferenceNotFoundError when no copy holds the id.
    - ValidationError when a method change would put both sides of a
      transfer in one cash account.
    - AggregateNotFoundError when a relocation target cash account is
      unknown.
"""

import threading
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from trade_kernel.domain.clock import Clock
from trade_kernel.domain.dtos import MovementCopy
from trade_kernel.domain.references import format_reference, paired_reference, parse_reference
from trade_kernel.domain.values import AggregateKind, DocumentKind, PaymentDirection, ReferenceKind
from trade_kernel.exceptions import ReferenceNotFoundError, ValidationError
from trade_kernel.logging_config import get_logger
from trade_kernel.models.account import AccountAggregateModel, PaymentLineModel
from trade_kernel.models.document import BusinessDocumentModel, DocumentPaymentModel
from trade_kernel.services.aggregate_store import AccountAggregateStore
from trade_kernel.services.base import BaseService
from trade_kernel.services.document_store import DocumentStore

logger = get_logger("services.reference_linker")


class ReferenceMinter:
    """
    Monotonic millis tokens shared by every batch of one coordinator.

    Guarantees:
        - Each token is strictly greater than the previous one, even when
          the clock has not moved.
    """

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next_token(self, millis: int) -> int:
        with self._lock:
            token = max(millis, self._last + 1)
            self._last = token
            return token


class ReferenceLinker(BaseService[PaymentLineModel]):
    """
    Batch-scoped movement operations.

    Contract:
        ``create``/``create_pair`` mint ids; ``resolve`` lists copies;
        ``update``/``relocate``/``delete`` change all copies together.
    """

    def __init__(
        self,
        session: Session,
        aggregates: AccountAggregateStore,
        documents: DocumentStore,
        minter: ReferenceMinter,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self.aggregates = aggregates
        self.documents = documents
        self.minter = minter

    # ------------------------------------------------------------------
    # Minting
    # ------------------------------------------------------------------

    def _token_taken(self, token: int) -> bool:
        ids = [format_reference(kind, token) for kind in ReferenceKind]
        if self.session.execute(
            select(PaymentLineModel.id).where(PaymentLineModel.reference_id.in_(ids))
        ).first() is not None:
            return True
        return self.session.execute(
            select(DocumentPaymentModel.id).where(DocumentPaymentModel.reference_id.in_(ids))
        ).first() is not None

    def _mint_token(self) -> int:
        token = self.minter.next_token(self.clock.epoch_millis())
        while self._token_taken(token):
            token = self.minter.next_token(token + 1)
        return token

    def create(self, kind: ReferenceKind = ReferenceKind.PAY) -> str:
        reference_id = format_reference(kind, self._mint_token())
        logger.debug("reference_minted", extra={"reference_id": reference_id})
        return reference_id

    def create_pair(self) -> tuple[str, str]:
        """(OUT<t>, IN<t>) for an account-to-account transfer."""
        token = self._mint_token()
        out_id = format_reference(ReferenceKind.OUT, token)
        in_id = format_reference(ReferenceKind.IN, token)
        logger.debug("reference_pair_minted", extra={"out_id": out_id, "in_id": in_id})
        return out_id, in_id

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _aggregate_lines(self, reference_id: str) -> list[PaymentLineModel]:
        return list(
            self.session.execute(
                select(PaymentLineModel)
                .join(AccountAggregateModel)
                .where(PaymentLineModel.reference_id == reference_id)
                .order_by(AccountAggregateModel.kind, AccountAggregateModel.owner_id)
            ).scalars()
        )

    def _document_payments(self, reference_id: str) -> list[DocumentPaymentModel]:
        return list(
            self.session.execute(
                select(DocumentPaymentModel)
                .join(BusinessDocumentModel)
                .where(DocumentPaymentModel.reference_id == reference_id)
                .order_by(BusinessDocumentModel.kind, BusinessDocumentModel.doc_number)
            ).scalars()
        )

    def resolve(self, reference_id: str) -> list[MovementCopy]:
        """Every aggregate and document copy currently holding ``reference_id``."""
        copies = [
            MovementCopy(
                reference_id=line.reference_id,
                holder="aggregate",
                amount=line.amount,
                date=line.line_date,
                method=line.method,
                aggregate_kind=AggregateKind(line.aggregate.kind),
                owner_id=line.aggregate.owner_id,
                direction=PaymentDirection(line.direction) if line.direction else None,
                linked_doc_ref=line.linked_doc_ref,
            )
            for line in self._aggregate_lines(reference_id)
        ]
        copies.extend(
            MovementCopy(
                reference_id=payment.reference_id,
                holder="document",
                amount=payment.amount,
                date=payment.line_date,
                method=payment.method,
                document_kind=DocumentKind(payment.document.kind),
                doc_number=payment.document.doc_number,
                linked_doc_ref=payment.document.doc_number,
            )
            for payment in self._document_payments(reference_id)
        )
        return copies

    def paired(self, reference_id: str) -> str | None:
        """The transfer counterpart id, if one is stored."""
        other = paired_reference(reference_id)
        if other is None:
            return None
        if self._aggregate_lines(other) or self._document_payments(other):
            return other
        return None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update(
        self,
        reference_id: str,
        amount: Decimal | None = None,
        date: datetime | None = None,
        method: str | None = None,
        remark: str | None = None,
    ) -> list[MovementCopy]:
        """
        Change a movement on every copy.

        When ``method`` changes, the cash-account copy moves to the cash
        account the new method names.  Amount and date also follow onto a
        transfer's paired line.
        """
        lines = self._aggregate_lines(reference_id)
        payments = self._document_payments(reference_id)
        if not lines and not payments:
            raise ReferenceNotFoundError(reference_id)

        if method is not None:
            self._check_transfer_method(reference_id, method)
            for line in lines:
                if line.aggregate.kind == AggregateKind.CASH.value and line.aggregate.owner_id != method:
                    self.relocate(reference_id, line.aggregate.owner_id, method)
            lines = self._aggregate_lines(reference_id)

        for line in lines:
            self.aggregates.update_payment_line(
                line.aggregate, reference_id, amount=amount, date=date, method=method, remark=remark,
            )
        for payment in payments:
            self.documents.update_payment(
                payment.document, reference_id, amount=amount, date=date, method=method, remark=remark,
            )

        pair = self.paired(reference_id)
        if pair is not None and (amount is not None or date is not None):
            for line in self._aggregate_lines(pair):
                self.aggregates.update_payment_line(line.aggregate, pair, amount=amount, date=date)

        logger.info(
            "movement_updated",
            extra={
                "reference_id": reference_id,
                "copies": len(lines) + len(payments),
                "method_changed": method is not None,
            },
        )
        return self.resolve(reference_id)

    def _check_transfer_method(self, reference_id: str, method: str) -> None:
        pair = self.paired(reference_id)
        if pair is None:
            return
        for line in self._aggregate_lines(pair):
            if line.aggregate.kind == AggregateKind.CASH.value and line.aggregate.owner_id == method:
                raise ValidationError(
                    "method", f"{method} already holds the other side of transfer {pair}"
                )

    def relocate(self, reference_id: str, old_owner: str, new_owner: str) -> MovementCopy:
        """Move the cash copy of ``reference_id`` from one cash account to another."""
        source = self.aggregates.get(AggregateKind.CASH, old_owner)
        target = self.aggregates.get(AggregateKind.CASH, new_owner)
        removed = self.aggregates.remove_payment_line(source, reference_id)
        self.aggregates.add_payment_line(
            target,
            reference_id=removed.reference_id,
            amount=removed.amount,
            date=removed.date,
            method=new_owner,
            submitted_by=removed.submitted_by,
            remark=removed.remark,
            linked_doc_ref=removed.linked_doc_ref,
            direction=removed.direction,
        )
        logger.info(
            "movement_relocated",
            extra={"reference_id": reference_id, "from_account": old_owner, "to_account": new_owner},
        )
        return MovementCopy(
            reference_id=reference_id,
            holder="aggregate",
            amount=removed.amount,
            date=removed.date,
            method=new_owner,
            aggregate_kind=AggregateKind.CASH,
            owner_id=new_owner,
            direction=removed.direction,
            linked_doc_ref=removed.linked_doc_ref,
        )

    def delete(self, reference_id: str) -> list[MovementCopy]:
        """Remove every copy of the movement, and its transfer pair."""
        ids = [reference_id]
        pair = self.paired(reference_id)
        if pair is not None:
            ids.append(pair)

        removed: list[MovementCopy] = []
        for ref in ids:
            removed.extend(self.resolve(ref))
            for line in self._aggregate_lines(ref):
                self.aggregates.remove_payment_line(line.aggregate, ref)
            for payment in self._document_payments(ref):
                self.documents.remove_payment(payment.document, ref)

        if not removed:
            raise ReferenceNotFoundError(reference_id)

        logger.info(
            "movement_deleted",
            extra={"reference_id": reference_id, "paired_id": pair, "copies": len(removed)},
        )
        return removed

    @staticmethod
    def is_reference(value: str) -> bool:
        return parse_reference(value) is not None
