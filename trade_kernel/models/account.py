"""
Module: trade_kernel.models.account
Responsibility: ORM persistence for account aggregates (customer, supplier,
    cash, seller, transport) and their billing and payment lines.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One aggregate per (kind, owner_id) (uq_aggregate_kind_owner).
    - One billing line per external document per aggregate
      (uq_billing_line_doc).  A second line for the same invoice is a
      duplicate document number.
    - One payment line per reference id per aggregate
      (uq_payment_line_ref).
    - ``version`` is the SQLAlchemy version_id_col: a flush against a
      stale version raises StaleDataError.

    Stored totals are a cache written only by AccountAggregateStore via
    the pure recalculator.  There are no save hooks on these models.

Failure modes:
    - IntegrityError on the unique constraints above.
    - StaleDataError on concurrent modification.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trade_kernel.db.base import Base, TrackedBase
from trade_kernel.db.types import ZERO


class AccountAggregateModel(TrackedBase):
    """
    One denormalized account.

    Guarantees:
        - total_billed, total_paid, pending reflect the lines as of the
          last coordinator recalculation in the committing batch.
    """

    __tablename__ = "account_aggregates"

    __table_args__ = (
        UniqueConstraint("kind", "owner_id", name="uq_aggregate_kind_owner"),
        Index("idx_aggregate_kind", "kind"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    owner_id: Mapped[str] = mapped_column(String(100), nullable=False)

    owner_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Cached totals (see domain/balance.py)
    total_billed: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_paid: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    pending: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    version: Mapped[int] = mapped_column(nullable=False)

    billing_lines: Mapped[list["BillingLineModel"]] = relationship(
        back_populates="aggregate",
        cascade="all, delete-orphan",
        order_by="BillingLineModel.position",
    )

    payment_lines: Mapped[list["PaymentLineModel"]] = relationship(
        back_populates="aggregate",
        cascade="all, delete-orphan",
        order_by="PaymentLineModel.position",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<AccountAggregate {self.kind}:{self.owner_id} pending={self.pending}>"


class BillingLineModel(Base):
    """A charge against an aggregate, keyed by its external document."""

    __tablename__ = "billing_lines"

    __table_args__ = (
        UniqueConstraint("aggregate_id", "external_doc_ref", name="uq_billing_line_doc"),
        Index("idx_billing_line_doc", "external_doc_ref"),
    )

    aggregate_id: Mapped[UUID] = mapped_column(
        ForeignKey("account_aggregates.id", ondelete="CASCADE"),
        nullable=False,
    )

    external_doc_ref: Mapped[str] = mapped_column(String(64), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    line_date: Mapped[datetime] = mapped_column(nullable=False)

    # Free-form line status carried from the document (e.g. "Partial")
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    position: Mapped[int] = mapped_column(nullable=False, default=0)

    aggregate: Mapped[AccountAggregateModel] = relationship(back_populates="billing_lines")


class PaymentLineModel(Base):
    """
    One copy of a payment movement held by an aggregate.

    ``direction`` is set only on cash aggregates (IN or OUT).
    """

    __tablename__ = "payment_lines"

    __table_args__ = (
        UniqueConstraint("aggregate_id", "reference_id", name="uq_payment_line_ref"),
        Index("idx_payment_line_ref", "reference_id"),
        Index("idx_payment_line_date", "line_date"),
    )

    aggregate_id: Mapped[UUID] = mapped_column(
        ForeignKey("account_aggregates.id", ondelete="CASCADE"),
        nullable=False,
    )

    reference_id: Mapped[str] = mapped_column(String(64), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    line_date: Mapped[datetime] = mapped_column(nullable=False)

    # Cash account the money went through (its owner_id)
    method: Mapped[str | None] = mapped_column(String(100), nullable=True)

    submitted_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    remark: Mapped[str | None] = mapped_column(String(500), nullable=True)

    linked_doc_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)

    direction: Mapped[str | None] = mapped_column(String(3), nullable=True)

    position: Mapped[int] = mapped_column(nullable=False, default=0)

    aggregate: Mapped[AccountAggregateModel] = relationship(back_populates="payment_lines")
