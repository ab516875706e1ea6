"""
DocumentStore -- business documents (bill, purchase, return, damage).

Responsibility:
    Creates, looks up, edits and deletes business documents inside the
    current coordinator batch, drives their lifecycle state machine, and
    keeps each bill/purchase's received amount and payment status in
    step with its embedded payment copies.

Architecture position:
    Kernel > Services.  Used by the ReferenceLinker (document payment
    copies) and by business modules through the batch context.

Invariants enforced:
    - Document numbers are unique per kind; a clash at flush is reported
      as DuplicateDocumentNumberError.
    - Lifecycle transitions follow domain/documents.py; DELETED is
      terminal and the rows are removed in the same batch.
    - amount_received == sum(payment copies) and amount_received <=
      total_amount for every touched bill and purchase at batch end.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trade_kernel.db.types import MONEY_DECIMAL_PLACES, ZERO, round_money
from trade_kernel.domain.balance import payment_status
from trade_kernel.domain.clock import Clock
from trade_kernel.domain.documents import check_transition
from trade_kernel.domain.dtos import (
    DocumentSnapshot,
    PaymentLineView,
    ProductLineRequest,
)
from trade_kernel.domain.values import DocumentKind, DocumentState, ReturnType
from trade_kernel.exceptions import (
    DocumentNotFoundError,
    DuplicateDocumentNumberError,
    InvalidLineError,
    NegativePendingError,
    ReferenceNotFoundError,
)
from trade_kernel.logging_config import get_logger
from trade_kernel.models.document import (
    BusinessDocumentModel,
    DocumentLineModel,
    DocumentPaymentModel,
)
from trade_kernel.services.base import BaseService

logger = get_logger("services.document_store")

_PAYABLE_KINDS = (DocumentKind.BILL.value, DocumentKind.PURCHASE.value)


class DocumentStore(BaseService[BusinessDocumentModel]):
    """
    Batch-scoped access to business documents.

    Guarantees:
        - ``check_touched()`` refreshes received amount and payment status
          of every touched bill and purchase and rejects overpayment.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: str | None = None,
        decimal_places: int = MONEY_DECIMAL_PLACES,
    ):
        super().__init__(session, clock)
        self.actor_id = actor_id
        self.decimal_places = decimal_places
        self._touched: dict[tuple[str, str], BusinessDocumentModel] = {}

    def find(self, kind: DocumentKind, doc_number: str) -> BusinessDocumentModel | None:
        return self.session.execute(
            select(BusinessDocumentModel)
            .where(BusinessDocumentModel.kind == DocumentKind(kind).value)
            .where(BusinessDocumentModel.doc_number == doc_number)
        ).scalar_one_or_none()

    def get(self, kind: DocumentKind, doc_number: str) -> BusinessDocumentModel:
        document = self.find(kind, doc_number)
        if document is None:
            raise DocumentNotFoundError(DocumentKind(kind).value, doc_number)
        return document

    def numbers_for_party(self, kind: DocumentKind, party_id: str) -> list[str]:
        return list(
            self.session.execute(
                select(BusinessDocumentModel.doc_number)
                .where(BusinessDocumentModel.kind == DocumentKind(kind).value)
                .where(BusinessDocumentModel.party_id == party_id)
                .order_by(BusinessDocumentModel.doc_number)
            ).scalars()
        )

    def create(
        self,
        kind: DocumentKind,
        doc_number: str,
        lines: Iterable[ProductLineRequest],
        total_amount: Decimal = ZERO,
        party_id: str | None = None,
        party_name: str | None = None,
        date: datetime | None = None,
        submitted_by: str | None = None,
        remark: str | None = None,
        return_type: ReturnType | None = None,
        original_doc_ref: str | None = None,
        supplier_invoice_no: str | None = None,
    ) -> BusinessDocumentModel:
        """Insert a DRAFT document; the module activates it once its effects are applied."""
        kind = DocumentKind(kind)
        if self.find(kind, doc_number) is not None:
            raise DuplicateDocumentNumberError(kind.value, doc_number)

        document = BusinessDocumentModel(
            kind=kind.value,
            doc_number=doc_number,
            state=DocumentState.DRAFT.value,
            party_id=party_id,
            party_name=party_name,
            total_amount=self._money(total_amount),
            amount_received=ZERO,
            payment_status=payment_status(kind, total_amount, ZERO) if kind.value in _PAYABLE_KINDS else None,
            return_type=ReturnType(return_type).value if return_type else None,
            original_doc_ref=original_doc_ref,
            supplier_invoice_no=supplier_invoice_no,
            remark=remark,
            submitted_by=submitted_by,
            document_date=date or self.clock.now_utc(),
            created_by=self.actor_id,
        )
        document.lines = [self._line_model(line, i) for i, line in enumerate(lines)]

        savepoint = self.session.begin_nested()
        try:
            self.session.add(document)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            raise DuplicateDocumentNumberError(kind.value, doc_number) from exc

        self._touch(document)
        logger.info(
            "document_created",
            extra={"document_kind": kind.value, "doc_number": doc_number},
        )
        return document

    def replace_lines(
        self,
        document: BusinessDocumentModel,
        lines: Iterable[ProductLineRequest],
    ) -> None:
        document.lines = [self._line_model(line, i) for i, line in enumerate(lines)]
        self._touch(document)
        self.session.flush()

    def set_total(self, document: BusinessDocumentModel, total_amount: Decimal) -> None:
        document.total_amount = self._money(total_amount)
        self._touch(document)

    def transition(self, document: BusinessDocumentModel, target: DocumentState) -> None:
        target = check_transition(document.doc_number, DocumentState(document.state), target)
        if target is DocumentState.EDITED:
            document.edit_count += 1
        document.state = target.value
        document.updated_by = self.actor_id
        self._touch(document)
        self.session.flush()
        logger.info(
            "document_state_changed",
            extra={
                "document_kind": document.kind,
                "doc_number": document.doc_number,
                "state": target.value,
            },
        )

    def delete(self, document: BusinessDocumentModel) -> None:
        """Move to DELETED and remove the document with its lines and payment copies."""
        self.transition(document, DocumentState.DELETED)
        self._touched.pop((document.kind, document.doc_number), None)
        self.session.delete(document)
        self.session.flush()

    # ------------------------------------------------------------------
    # Payment copies
    # ------------------------------------------------------------------

    def find_payment(
        self, document: BusinessDocumentModel, reference_id: str
    ) -> DocumentPaymentModel | None:
        for payment in document.payments:
            if payment.reference_id == reference_id:
                return payment
        return None

    def add_payment(
        self,
        document: BusinessDocumentModel,
        reference_id: str,
        amount: Decimal,
        date: datetime | None = None,
        method: str | None = None,
        submitted_by: str | None = None,
        remark: str | None = None,
    ) -> DocumentPaymentModel:
        if document.kind not in _PAYABLE_KINDS:
            raise InvalidLineError(document.kind, document.doc_number, "document takes no payments")
        payment = DocumentPaymentModel(
            reference_id=reference_id,
            amount=self._money(amount),
            line_date=date or self.clock.now_utc(),
            method=method,
            submitted_by=submitted_by,
            remark=remark,
            position=max((p.position for p in document.payments), default=-1) + 1,
        )
        document.payments.append(payment)
        self._touch(document)
        self.session.flush()
        return payment

    def update_payment(
        self,
        document: BusinessDocumentModel,
        reference_id: str,
        amount: Decimal | None = None,
        date: datetime | None = None,
        method: str | None = None,
        remark: str | None = None,
    ) -> DocumentPaymentModel:
        payment = self.find_payment(document, reference_id)
        if payment is None:
            raise ReferenceNotFoundError(reference_id)
        if amount is not None:
            payment.amount = self._money(amount)
        if date is not None:
            payment.line_date = date
        if method is not None:
            payment.method = method
        if remark is not None:
            payment.remark = remark
        self._touch(document)
        self.session.flush()
        return payment

    def remove_payment(self, document: BusinessDocumentModel, reference_id: str) -> PaymentLineView:
        payment = self.find_payment(document, reference_id)
        if payment is None:
            raise ReferenceNotFoundError(reference_id)
        view = PaymentLineView(
            reference_id=payment.reference_id,
            amount=payment.amount,
            date=payment.line_date,
            method=payment.method,
            submitted_by=payment.submitted_by,
            remark=payment.remark,
            linked_doc_ref=document.doc_number,
            line_id=payment.id,
        )
        document.payments.remove(payment)
        self._touch(document)
        self.session.flush()
        return view

    # ------------------------------------------------------------------
    # Batch end
    # ------------------------------------------------------------------

    def refresh_received(self, document: BusinessDocumentModel) -> None:
        received = sum((p.amount for p in document.payments), ZERO)
        document.amount_received = received
        if document.kind in _PAYABLE_KINDS:
            if received > document.total_amount:
                raise NegativePendingError(
                    document.kind, document.doc_number, document.total_amount - received
                )
            document.payment_status = payment_status(
                DocumentKind(document.kind), document.total_amount, received
            )

    def check_touched(self) -> list[DocumentSnapshot]:
        snapshots = []
        for document in self._touched.values():
            self.refresh_received(document)
        self.session.flush()
        for document in self._touched.values():
            snapshots.append(self.snapshot(document))
        return snapshots

    def snapshot(self, document: BusinessDocumentModel) -> DocumentSnapshot:
        return DocumentSnapshot.from_document(document)

    @property
    def touched(self) -> list[BusinessDocumentModel]:
        return list(self._touched.values())

    def _money(self, amount: Decimal) -> Decimal:
        return round_money(amount, self.decimal_places)

    def _touch(self, document: BusinessDocumentModel) -> None:
        self._touched[(document.kind, document.doc_number)] = document

    @staticmethod
    def _line_model(line: ProductLineRequest, position: int) -> DocumentLineModel:
        return DocumentLineModel(
            item_id=line.item_id,
            name=line.name,
            brand=line.brand,
            category=line.category,
            quantity=line.quantity,
            unit_price=line.unit_price,
            position=position,
        )
