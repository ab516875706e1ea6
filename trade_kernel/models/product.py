"""
Module: trade_kernel.models.product
Responsibility: ORM persistence for products and the append-only stock
    ledger.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - item_id is unique (uq_product_item_id).
    - count_in_stock >= 0 (ck_product_stock_non_negative); the StockLedger
      rejects first, the check constraint is the backstop.
    - Ledger entries are never updated.  They are removed only when the
      document that introduced them is reversed.
    - seq is unique and strictly increasing (allocated by SequenceService),
      giving a total order for entries sharing a timestamp.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from trade_kernel.db.base import Base, TrackedBase


class ProductModel(TrackedBase):
    """A stock-keeping unit and its current count."""

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("item_id", name="uq_product_item_id"),
        CheckConstraint("count_in_stock >= 0", name="ck_product_stock_non_negative"),
    )

    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    count_in_stock: Mapped[int] = mapped_column(nullable=False, default=0)

    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Product {self.item_id} stock={self.count_in_stock}>"


class StockLedgerEntryModel(Base):
    """One signed quantity change against a product."""

    __tablename__ = "stock_ledger_entries"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_stock_entry_seq"),
        Index("idx_stock_entry_order", "entry_date", "seq"),
        Index("idx_stock_entry_source", "source_type", "entry_date", "seq"),
        Index("idx_stock_entry_item", "item_id", "entry_date", "seq"),
        Index("idx_stock_entry_doc", "linked_doc_ref"),
    )

    item_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("products.item_id"),
        nullable=False,
    )

    quantity_delta: Mapped[int] = mapped_column(nullable=False)

    # purchase | return | damage | opening | sale
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)

    linked_doc_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)

    submitted_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    remark: Mapped[str | None] = mapped_column(String(500), nullable=True)

    entry_date: Mapped[datetime] = mapped_column(nullable=False)

    seq: Mapped[int] = mapped_column(nullable=False)

    # Product count right after this entry was applied
    stock_after: Mapped[int] = mapped_column(nullable=False)
