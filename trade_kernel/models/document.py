"""
Module: trade_kernel.models.document
Responsibility: ORM persistence for business documents (bill, purchase,
    return, damage) with their embedded product lines and payment copies.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Document numbers are unique per kind (uq_document_kind_number).
      This is the backstop behind the locked sequence counter.
    - One payment copy per reference id per document
      (uq_document_payment_ref).
    - Deleted documents are removed together with their lines and
      payment copies (cascade delete-orphan); the DELETED state is only
      ever observed inside the deleting batch.

Failure modes:
    - IntegrityError on duplicate document numbers.
    - StaleDataError on concurrent modification (version_id_col).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trade_kernel.db.base import Base, TrackedBase
from trade_kernel.db.types import ZERO
from trade_kernel.domain.values import DocumentState


class BusinessDocumentModel(TrackedBase):
    """
    Authoritative record of one trading event.

    Guarantees:
        - amount_received equals the sum of the document's payment copies
          after every coordinator batch that touches them.
    """

    __tablename__ = "business_documents"

    __table_args__ = (
        UniqueConstraint("kind", "doc_number", name="uq_document_kind_number"),
        Index("idx_document_party", "kind", "party_id"),
        Index("idx_document_date", "document_date"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    doc_number: Mapped[str] = mapped_column(String(64), nullable=False)

    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DocumentState.DRAFT.value,
    )

    # Customer for bills, supplier for purchases, either for returns
    party_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    party_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    amount_received: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    edit_count: Mapped[int] = mapped_column(nullable=False, default=0)

    # Returns only
    return_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    original_doc_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Purchases only: the supplier's own invoice number
    supplier_invoice_no: Mapped[str | None] = mapped_column(String(64), nullable=True)

    remark: Mapped[str | None] = mapped_column(String(500), nullable=True)
    submitted_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    document_date: Mapped[datetime] = mapped_column(nullable=False)

    version: Mapped[int] = mapped_column(nullable=False)

    lines: Mapped[list["DocumentLineModel"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentLineModel.position",
    )

    payments: Mapped[list["DocumentPaymentModel"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentPaymentModel.position",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<BusinessDocument {self.kind}:{self.doc_number} {self.state}>"


class DocumentLineModel(Base):
    """Product line embedded in a document."""

    __tablename__ = "document_lines"

    document_id: Mapped[UUID] = mapped_column(
        ForeignKey("business_documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quantity: Mapped[int] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    document: Mapped[BusinessDocumentModel] = relationship(back_populates="lines")


class DocumentPaymentModel(Base):
    """Payment copy embedded in a bill or purchase."""

    __tablename__ = "document_payments"

    __table_args__ = (
        UniqueConstraint("document_id", "reference_id", name="uq_document_payment_ref"),
        Index("idx_document_payment_ref", "reference_id"),
    )

    document_id: Mapped[UUID] = mapped_column(
        ForeignKey("business_documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    reference_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    line_date: Mapped[datetime] = mapped_column(nullable=False)
    method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    submitted_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    remark: Mapped[str | None] = mapped_column(String(500), nullable=True)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    document: Mapped[BusinessDocumentModel] = relationship(back_populates="payments")
