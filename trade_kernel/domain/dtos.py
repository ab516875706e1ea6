"""
Data Transfer Objects -- typed, boundary-validated inputs and read models.

Responsibility:
    Inbound request DTOs are validated at construction and raise
    ``ValidationError`` with the offending field; no aggregate is touched
    by malformed input.  Outbound DTOs (aggregate state/snapshots, stock
    entries, movement copies, document snapshots) are what the kernel
    returns instead of ORM instances.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Amounts are Decimal (int/str coerced, float refused), quantities int.
    - Payment amounts are strictly positive.
    - Dates are timezone-aware when supplied.
    - Line tuples are immutable; AggregateState edits return new objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from trade_kernel.db.types import ZERO, coerce_money
from trade_kernel.domain.balance import AggregateTotals
from trade_kernel.domain.values import (
    AggregateKind,
    DocumentKind,
    DocumentState,
    PaymentDirection,
    ReturnType,
    StockSource,
)
from trade_kernel.exceptions import ValidationError

# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------


def _text(field_name: str, value: Any, required: bool = True) -> str | None:
    if value is None:
        if required:
            raise ValidationError(field_name, "is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(field_name, "must be a string")
    value = value.strip()
    if required and not value:
        raise ValidationError(field_name, "must not be empty")
    return value or None


def _money(field_name: str, value: Any, *, positive: bool = False) -> Decimal:
    if value is None:
        raise ValidationError(field_name, "is required")
    try:
        amount = coerce_money(value)
    except ValueError as exc:
        raise ValidationError(field_name, str(exc)) from exc
    if positive and amount <= ZERO:
        raise ValidationError(field_name, "must be greater than zero")
    if not positive and amount < ZERO:
        raise ValidationError(field_name, "must not be negative")
    return amount


def _quantity(field_name: str, value: Any, *, allow_zero: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field_name, "must be an integer")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(field_name, "must be positive")
    return value


def _when(field_name: str, value: Any) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise ValidationError(field_name, "must be a datetime")
    if value.tzinfo is None:
        raise ValidationError(field_name, "must be timezone-aware")
    return value


def _lines(field_name: str, lines: Any, *, allow_zero: bool = False) -> tuple[ProductLineRequest, ...]:
    if not isinstance(lines, (list, tuple)) or not lines:
        raise ValidationError(field_name, "at least one product line is required")
    result = []
    seen: set[str] = set()
    for i, line in enumerate(lines):
        if not isinstance(line, ProductLineRequest):
            raise ValidationError(f"{field_name}[{i}]", "must be a ProductLineRequest")
        if line.item_id in seen:
            raise ValidationError(f"{field_name}[{i}].item_id", f"duplicate item {line.item_id}")
        if line.quantity == 0 and not allow_zero:
            raise ValidationError(f"{field_name}[{i}].quantity", "must be positive")
        seen.add(line.item_id)
        result.append(line)
    return tuple(result)


def _set(obj: Any, name: str, value: Any) -> None:
    object.__setattr__(obj, name, value)


# ---------------------------------------------------------------------------
# Inbound DTOs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentRequest:
    """A payment as submitted by the API layer. ``method`` names the cash account."""

    amount: Decimal
    method: str
    date: datetime | None = None
    submitted_by: str | None = None
    remark: str | None = None

    def __post_init__(self) -> None:
        _set(self, "amount", _money("amount", self.amount, positive=True))
        _set(self, "method", _text("method", self.method))
        _set(self, "date", _when("date", self.date))
        _set(self, "submitted_by", _text("submitted_by", self.submitted_by, required=False))
        _set(self, "remark", _text("remark", self.remark, required=False))


@dataclass(frozen=True)
class PaymentEdit:
    """Fields to change on every copy of a payment movement."""

    amount: Decimal | None = None
    date: datetime | None = None
    method: str | None = None
    remark: str | None = None

    def __post_init__(self) -> None:
        if self.amount is None and self.date is None and self.method is None and self.remark is None:
            raise ValidationError(None, "payment edit changes nothing")
        if self.amount is not None:
            _set(self, "amount", _money("amount", self.amount, positive=True))
        if self.method is not None:
            _set(self, "method", _text("method", self.method))
        _set(self, "date", _when("date", self.date))
        if self.remark is not None:
            _set(self, "remark", _text("remark", self.remark, required=False))


@dataclass(frozen=True)
class ProductLineRequest:
    """One product line of a bill, purchase, return or damage."""

    item_id: str
    quantity: int
    name: str | None = None
    brand: str | None = None
    category: str | None = None
    unit_price: Decimal = ZERO

    def __post_init__(self) -> None:
        _set(self, "item_id", _text("item_id", self.item_id))
        _set(self, "quantity", _quantity("quantity", self.quantity, allow_zero=True))
        _set(self, "name", _text("name", self.name, required=False))
        _set(self, "brand", _text("brand", self.brand, required=False))
        _set(self, "category", _text("category", self.category, required=False))
        _set(self, "unit_price", _money("unit_price", self.unit_price))

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def _lines_total(lines: tuple[ProductLineRequest, ...]) -> Decimal:
    return sum((line.line_total for line in lines), ZERO)


@dataclass(frozen=True)
class BillRequest:
    """A new sale.  ``invoice_no`` is an optional candidate number."""

    customer_id: str
    customer_name: str | None
    lines: tuple[ProductLineRequest, ...]
    total_amount: Decimal | None = None
    invoice_no: str | None = None
    date: datetime | None = None
    submitted_by: str | None = None
    initial_payment: PaymentRequest | None = None

    def __post_init__(self) -> None:
        _set(self, "customer_id", _text("customer_id", self.customer_id))
        _set(self, "customer_name", _text("customer_name", self.customer_name, required=False))
        _set(self, "lines", _lines("lines", self.lines))
        total = self.total_amount if self.total_amount is not None else _lines_total(self.lines)
        _set(self, "total_amount", _money("total_amount", total))
        _set(self, "invoice_no", _text("invoice_no", self.invoice_no, required=False))
        _set(self, "date", _when("date", self.date))
        _set(self, "submitted_by", _text("submitted_by", self.submitted_by, required=False))
        if self.initial_payment is not None and not isinstance(self.initial_payment, PaymentRequest):
            raise ValidationError("initial_payment", "must be a PaymentRequest")


@dataclass(frozen=True)
class DocumentEdit:
    """Replacement lines for a bill or purchase.  Quantity 0 drops a line."""

    lines: tuple[ProductLineRequest, ...]
    total_amount: Decimal | None = None
    submitted_by: str | None = None

    def __post_init__(self) -> None:
        _set(self, "lines", _lines("lines", self.lines, allow_zero=True))
        kept = tuple(line for line in self.lines if line.quantity > 0)
        total = self.total_amount if self.total_amount is not None else _lines_total(kept)
        _set(self, "total_amount", _money("total_amount", total))
        _set(self, "submitted_by", _text("submitted_by", self.submitted_by, required=False))

    @property
    def kept_lines(self) -> tuple[ProductLineRequest, ...]:
        return tuple(line for line in self.lines if line.quantity > 0)


@dataclass(frozen=True)
class BillEdit(DocumentEdit):
    pass


@dataclass(frozen=True)
class PurchaseEdit(DocumentEdit):
    """
    Replacement lines for a purchase.

    At least one line must keep a positive quantity; a purchase with
    nothing left is removed with delete_purchase instead.
    """

    supplier_invoice_no: str | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.kept_lines:
            raise ValidationError("lines", "no line left; delete the purchase instead")
        _set(self, "supplier_invoice_no", _text("supplier_invoice_no", self.supplier_invoice_no, required=False))


@dataclass(frozen=True)
class PurchaseRequest:
    """Goods bought from a supplier (who is also the seller account owner)."""

    supplier_id: str
    supplier_name: str | None
    lines: tuple[ProductLineRequest, ...]
    total_amount: Decimal | None = None
    purchase_no: str | None = None
    supplier_invoice_no: str | None = None
    date: datetime | None = None
    submitted_by: str | None = None

    def __post_init__(self) -> None:
        _set(self, "supplier_id", _text("supplier_id", self.supplier_id))
        _set(self, "supplier_name", _text("supplier_name", self.supplier_name, required=False))
        _set(self, "lines", _lines("lines", self.lines))
        total = self.total_amount if self.total_amount is not None else _lines_total(self.lines)
        _set(self, "total_amount", _money("total_amount", total))
        _set(self, "purchase_no", _text("purchase_no", self.purchase_no, required=False))
        _set(self, "supplier_invoice_no", _text("supplier_invoice_no", self.supplier_invoice_no, required=False))
        _set(self, "date", _when("date", self.date))
        _set(self, "submitted_by", _text("submitted_by", self.submitted_by, required=False))


@dataclass(frozen=True)
class ReturnRequest:
    """Goods returned against a bill (from a customer) or a purchase (to a supplier)."""

    return_type: ReturnType
    original_doc_ref: str
    lines: tuple[ProductLineRequest, ...]
    return_amount: Decimal | None = None
    party_id: str | None = None
    party_name: str | None = None
    return_no: str | None = None
    date: datetime | None = None
    submitted_by: str | None = None

    def __post_init__(self) -> None:
        try:
            _set(self, "return_type", ReturnType(self.return_type))
        except ValueError as exc:
            raise ValidationError("return_type", "must be 'bill' or 'purchase'") from exc
        _set(self, "original_doc_ref", _text("original_doc_ref", self.original_doc_ref))
        _set(self, "lines", _lines("lines", self.lines))
        total = self.return_amount if self.return_amount is not None else _lines_total(self.lines)
        _set(self, "return_amount", _money("return_amount", total))
        _set(self, "party_id", _text("party_id", self.party_id, required=False))
        _set(self, "party_name", _text("party_name", self.party_name, required=False))
        _set(self, "return_no", _text("return_no", self.return_no, required=False))
        _set(self, "date", _when("date", self.date))
        _set(self, "submitted_by", _text("submitted_by", self.submitted_by, required=False))


@dataclass(frozen=True)
class DamageRequest:
    """Stock written off as damaged."""

    lines: tuple[ProductLineRequest, ...]
    submitted_by: str | None = None
    remark: str | None = None
    date: datetime | None = None
    damage_no: str | None = None

    def __post_init__(self) -> None:
        _set(self, "lines", _lines("lines", self.lines))
        _set(self, "submitted_by", _text("submitted_by", self.submitted_by, required=False))
        _set(self, "remark", _text("remark", self.remark, required=False))
        _set(self, "date", _when("date", self.date))
        _set(self, "damage_no", _text("damage_no", self.damage_no, required=False))


@dataclass(frozen=True)
class TransferRequest:
    """Money moved from one cash account to another."""

    source: str
    destination: str
    amount: Decimal
    date: datetime | None = None
    submitted_by: str | None = None
    remark: str | None = None

    def __post_init__(self) -> None:
        _set(self, "source", _text("source", self.source))
        _set(self, "destination", _text("destination", self.destination))
        if self.source == self.destination:
            raise ValidationError("destination", "must differ from source")
        _set(self, "amount", _money("amount", self.amount, positive=True))
        _set(self, "date", _when("date", self.date))
        _set(self, "submitted_by", _text("submitted_by", self.submitted_by, required=False))
        _set(self, "remark", _text("remark", self.remark, required=False))


PARTY_ACCOUNT_KINDS = (AggregateKind.CUSTOMER, AggregateKind.SUPPLIER)


@dataclass(frozen=True)
class ManualBill:
    """A billing line entered by hand on a customer or supplier account."""

    invoice_no: str
    amount: Decimal
    date: datetime | None = None

    def __post_init__(self) -> None:
        _set(self, "invoice_no", _text("invoice_no", self.invoice_no))
        _set(self, "amount", _money("amount", self.amount))
        _set(self, "date", _when("date", self.date))


@dataclass(frozen=True)
class ManualPayment:
    """
    A payment entered by hand on a customer or supplier account.

    ``reference_id`` names an existing manual payment when editing; new
    payments leave it empty and get a PAY id.
    """

    amount: Decimal
    submitted_by: str | None = None
    date: datetime | None = None
    remark: str | None = None
    reference_id: str | None = None

    def __post_init__(self) -> None:
        _set(self, "amount", _money("amount", self.amount, positive=True))
        _set(self, "submitted_by", _text("submitted_by", self.submitted_by, required=False))
        _set(self, "date", _when("date", self.date))
        _set(self, "remark", _text("remark", self.remark, required=False))
        _set(self, "reference_id", _text("reference_id", self.reference_id, required=False))


def _manual(field_name: str, items: Any, item_type: type) -> tuple:
    if isinstance(items, (str, bytes)) or not isinstance(items, (list, tuple)):
        raise ValidationError(field_name, f"must be a sequence of {item_type.__name__}")
    for i, item in enumerate(items):
        if not isinstance(item, item_type):
            raise ValidationError(f"{field_name}[{i}]", f"must be a {item_type.__name__}")
    return tuple(items)


@dataclass(frozen=True)
class PartyAccountRequest:
    """A customer or supplier account opened with hand-entered bills and payments."""

    kind: AggregateKind
    owner_id: str
    owner_name: str | None = None
    bills: tuple[ManualBill, ...] = ()
    payments: tuple[ManualPayment, ...] = ()

    def __post_init__(self) -> None:
        try:
            kind = AggregateKind(self.kind)
        except ValueError as exc:
            raise ValidationError("kind", "must be 'customer' or 'supplier'") from exc
        if kind not in PARTY_ACCOUNT_KINDS:
            raise ValidationError("kind", "must be 'customer' or 'supplier'")
        _set(self, "kind", kind)
        _set(self, "owner_id", _text("owner_id", self.owner_id))
        _set(self, "owner_name", _text("owner_name", self.owner_name, required=False))
        _set(self, "bills", _manual("bills", self.bills, ManualBill))
        _set(self, "payments", _manual("payments", self.payments, ManualPayment))
        if any(p.reference_id for p in self.payments):
            raise ValidationError("payments", "new accounts take no reference ids")


@dataclass(frozen=True)
class PartyAccountEdit:
    """
    New name and/or hand-entered lines for an account.

    ``bills`` and ``payments``, when given, replace the manual lines of
    that kind; lines that belong to business documents or linked
    movements are left alone.
    """

    owner_name: str | None = None
    bills: tuple[ManualBill, ...] | None = None
    payments: tuple[ManualPayment, ...] | None = None

    def __post_init__(self) -> None:
        if self.owner_name is None and self.bills is None and self.payments is None:
            raise ValidationError(None, "account edit changes nothing")
        _set(self, "owner_name", _text("owner_name", self.owner_name, required=False))
        if self.bills is not None:
            _set(self, "bills", _manual("bills", self.bills, ManualBill))
        if self.payments is not None:
            _set(self, "payments", _manual("payments", self.payments, ManualPayment))


@dataclass(frozen=True)
class StockAdjustmentRequest:
    """Opening stock correction.  Negative deltas remove units."""

    item_id: str
    quantity_delta: int
    submitted_by: str | None = None
    remark: str | None = None
    date: datetime | None = None

    def __post_init__(self) -> None:
        _set(self, "item_id", _text("item_id", self.item_id))
        if isinstance(self.quantity_delta, bool) or not isinstance(self.quantity_delta, int):
            raise ValidationError("quantity_delta", "must be an integer")
        if self.quantity_delta == 0:
            raise ValidationError("quantity_delta", "must not be zero")
        _set(self, "submitted_by", _text("submitted_by", self.submitted_by, required=False))
        _set(self, "remark", _text("remark", self.remark, required=False))
        _set(self, "date", _when("date", self.date))


# ---------------------------------------------------------------------------
# Aggregate read models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BillingLineView:
    external_doc_ref: str
    amount: Decimal
    date: datetime
    status: str | None = None
    line_id: UUID | None = None

    @classmethod
    def from_line(cls, line: Any) -> BillingLineView:
        return cls(
            external_doc_ref=line.external_doc_ref,
            amount=line.amount,
            date=line.line_date,
            status=line.status,
            line_id=line.id,
        )


@dataclass(frozen=True)
class PaymentLineView:
    reference_id: str
    amount: Decimal
    date: datetime
    method: str | None = None
    submitted_by: str | None = None
    remark: str | None = None
    linked_doc_ref: str | None = None
    direction: PaymentDirection | None = None
    line_id: UUID | None = None

    @classmethod
    def from_line(cls, line: Any) -> PaymentLineView:
        """View of a stored aggregate payment line."""
        return cls(
            reference_id=line.reference_id,
            amount=line.amount,
            date=line.line_date,
            method=line.method,
            submitted_by=line.submitted_by,
            remark=line.remark,
            linked_doc_ref=line.linked_doc_ref,
            direction=PaymentDirection(line.direction) if line.direction else None,
            line_id=line.id,
        )


@dataclass(frozen=True)
class AggregateState:
    """
    Immutable working copy of an aggregate's lines.

    Pure mutation steps take one and return a new one; the store writes
    the difference back.  Lines without ``line_id`` are new.
    """

    kind: AggregateKind
    owner_id: str
    owner_name: str | None
    bills: tuple[BillingLineView, ...] = ()
    payments: tuple[PaymentLineView, ...] = ()

    def with_bill(self, line: BillingLineView) -> AggregateState:
        return replace(self, bills=self.bills + (line,))

    def without_bill(self, external_doc_ref: str) -> AggregateState:
        return replace(
            self,
            bills=tuple(b for b in self.bills if b.external_doc_ref != external_doc_ref),
        )

    def with_payment(self, line: PaymentLineView) -> AggregateState:
        return replace(self, payments=self.payments + (line,))

    def without_payment(self, reference_id: str) -> AggregateState:
        return replace(
            self,
            payments=tuple(p for p in self.payments if p.reference_id != reference_id),
        )


_TOTAL_NAMES: dict[AggregateKind, tuple[str, str, str]] = {
    AggregateKind.CUSTOMER: ("totalBillAmount", "paidAmount", "pendingAmount"),
    AggregateKind.SUPPLIER: ("totalBillAmount", "paidAmount", "pendingAmount"),
    AggregateKind.SELLER: ("totalAmountBilled", "totalAmountPaid", "paymentRemaining"),
    AggregateKind.TRANSPORT: ("totalAmountBilled", "totalAmountPaid", "paymentRemaining"),
}


@dataclass(frozen=True)
class AggregateSnapshot:
    """Committed view of one aggregate: owner identity, lines and totals."""

    kind: AggregateKind
    owner_id: str
    owner_name: str | None
    bills: tuple[BillingLineView, ...]
    payments: tuple[PaymentLineView, ...]
    totals: AggregateTotals
    version: int

    @classmethod
    def from_aggregate(cls, aggregate: Any) -> AggregateSnapshot:
        return cls(
            kind=AggregateKind(aggregate.kind),
            owner_id=aggregate.owner_id,
            owner_name=aggregate.owner_name,
            bills=tuple(BillingLineView.from_line(b) for b in aggregate.billing_lines),
            payments=tuple(PaymentLineView.from_line(p) for p in aggregate.payment_lines),
            totals=AggregateTotals(aggregate.total_billed, aggregate.total_paid, aggregate.pending),
            version=aggregate.version,
        )

    @property
    def total_billed(self) -> Decimal:
        return self.totals.total_billed

    @property
    def total_paid(self) -> Decimal:
        return self.totals.total_paid

    @property
    def pending(self) -> Decimal:
        return self.totals.pending

    def to_dict(self) -> dict[str, Any]:
        """External shape, with the total field names each kind has always used."""
        out: dict[str, Any] = {
            "kind": self.kind.value,
            "ownerId": self.owner_id,
            "ownerName": self.owner_name,
        }
        if self.kind is AggregateKind.CASH:
            out["paymentsIn"] = [
                _payment_dict(p) for p in self.payments if p.direction is PaymentDirection.IN
            ]
            out["paymentsOut"] = [
                _payment_dict(p) for p in self.payments if p.direction is PaymentDirection.OUT
            ]
            out["balanceAmount"] = str(self.totals.pending)
            return out

        billed, paid, pending = _TOTAL_NAMES[self.kind]
        out["bills"] = [
            {
                "invoiceNo": b.external_doc_ref,
                "amount": str(b.amount),
                "date": b.date.isoformat(),
                "status": b.status,
            }
            for b in self.bills
        ]
        out["payments"] = [_payment_dict(p) for p in self.payments]
        out[billed] = str(self.totals.total_billed)
        out[paid] = str(self.totals.total_paid)
        out[pending] = str(self.totals.pending)
        return out


def _payment_dict(p: PaymentLineView) -> dict[str, Any]:
    return {
        "referenceId": p.reference_id,
        "amount": str(p.amount),
        "date": p.date.isoformat(),
        "method": p.method,
        "submittedBy": p.submitted_by,
        "remark": p.remark,
        "invoiceNo": p.linked_doc_ref,
    }


# ---------------------------------------------------------------------------
# Stock read models
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class HistoryCursor:
    """Position in the stock history; resume strictly after it."""

    entry_date: datetime
    seq: int


@dataclass(frozen=True)
class StockEntry:
    item_id: str
    quantity_delta: int
    source_type: StockSource
    linked_doc_ref: str | None
    entry_date: datetime
    seq: int
    stock_after: int
    submitted_by: str | None = None
    remark: str | None = None


@dataclass(frozen=True)
class StockHistoryRow:
    """A ledger entry joined with the product's current identity."""

    item_id: str
    name: str | None
    brand: str | None
    category: str | None
    quantity: int
    source_type: StockSource
    linked_doc_ref: str | None
    submitted_by: str | None
    remark: str | None
    date: datetime
    stock_after: int
    cursor: HistoryCursor


@dataclass(frozen=True)
class ProductInfo:
    item_id: str
    name: str | None
    brand: str | None
    category: str | None
    count_in_stock: int


# ---------------------------------------------------------------------------
# Movements and documents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MovementCopy:
    """One stored copy of a payment movement."""

    reference_id: str
    holder: str  # "aggregate" or "document"
    amount: Decimal
    date: datetime
    method: str | None
    aggregate_kind: AggregateKind | None = None
    owner_id: str | None = None
    document_kind: DocumentKind | None = None
    doc_number: str | None = None
    direction: PaymentDirection | None = None
    linked_doc_ref: str | None = None


@dataclass(frozen=True)
class DocumentLineView:
    item_id: str
    name: str | None
    quantity: int
    brand: str | None = None
    category: str | None = None
    unit_price: Decimal = ZERO


@dataclass(frozen=True)
class DocumentSnapshot:
    kind: DocumentKind
    doc_number: str
    state: DocumentState
    party_id: str | None
    party_name: str | None
    total_amount: Decimal
    amount_received: Decimal
    payment_status: str | None
    lines: tuple[DocumentLineView, ...] = ()
    payments: tuple[PaymentLineView, ...] = ()
    edit_count: int = 0
    return_type: ReturnType | None = None
    original_doc_ref: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, document: Any) -> DocumentSnapshot:
        """Snapshot of a stored business document with its lines and payment copies."""
        extra = {
            key: value
            for key, value in (
                ("supplier_invoice_no", document.supplier_invoice_no),
                ("remark", document.remark),
                ("submitted_by", document.submitted_by),
            )
            if value is not None
        }
        return cls(
            kind=DocumentKind(document.kind),
            doc_number=document.doc_number,
            state=DocumentState(document.state),
            party_id=document.party_id,
            party_name=document.party_name,
            total_amount=document.total_amount,
            amount_received=document.amount_received,
            payment_status=document.payment_status,
            lines=tuple(
                DocumentLineView(
                    item_id=line.item_id,
                    name=line.name,
                    quantity=line.quantity,
                    brand=line.brand,
                    category=line.category,
                    unit_price=line.unit_price,
                )
                for line in document.lines
            ),
            payments=tuple(
                PaymentLineView(
                    reference_id=payment.reference_id,
                    amount=payment.amount,
                    date=payment.line_date,
                    method=payment.method,
                    submitted_by=payment.submitted_by,
                    remark=payment.remark,
                    linked_doc_ref=document.doc_number,
                    line_id=payment.id,
                )
                for payment in document.payments
            ),
            edit_count=document.edit_count,
            return_type=ReturnType(document.return_type) if document.return_type else None,
            original_doc_ref=document.original_doc_ref,
            extra=extra,
        )
