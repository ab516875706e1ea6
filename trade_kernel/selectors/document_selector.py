"""
Module: trade_kernel.selectors.document_selector
Responsibility: Read-only lookups of business documents by kind and number.
Architecture position: Kernel > Selectors.
"""

from sqlalchemy import select

from trade_kernel.domain.dtos import DocumentSnapshot
from trade_kernel.domain.values import DocumentKind
from trade_kernel.exceptions import DocumentNotFoundError
from trade_kernel.models.document import BusinessDocumentModel
from trade_kernel.selectors.base import BaseSelector


class DocumentSelector(BaseSelector[BusinessDocumentModel]):
    """Document snapshots."""

    def find(self, kind: DocumentKind, doc_number: str) -> DocumentSnapshot | None:
        document = self.session.execute(
            select(BusinessDocumentModel)
            .where(BusinessDocumentModel.kind == DocumentKind(kind).value)
            .where(BusinessDocumentModel.doc_number == doc_number)
        ).scalar_one_or_none()
        return DocumentSnapshot.from_document(document) if document is not None else None

    def get(self, kind: DocumentKind, doc_number: str) -> DocumentSnapshot:
        snapshot = self.find(kind, doc_number)
        if snapshot is None:
            raise DocumentNotFoundError(DocumentKind(kind).value, doc_number)
        return snapshot

    def numbers(self, kind: DocumentKind) -> list[str]:
        """Document numbers of one kind, in creation order."""
        return list(
            self.session.execute(
                select(BusinessDocumentModel.doc_number)
                .where(BusinessDocumentModel.kind == DocumentKind(kind).value)
                .order_by(BusinessDocumentModel.created_at, BusinessDocumentModel.doc_number)
            ).scalars()
        )
