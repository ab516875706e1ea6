"""
Values -- enumerations shared by every layer of the trade kernel.

Responsibility:
    Names the closed sets the ledger engine reasons about: aggregate kinds,
    payment directions, business document kinds and lifecycle states,
    stock movement sources, overdraft policies and reference id kinds.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Imported by models,
    services, selectors, config and modules alike.
"""

from enum import Enum


class AggregateKind(str, Enum):
    """Kind of account aggregate."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    CASH = "cash"
    SELLER = "seller"
    TRANSPORT = "transport"


class PaymentDirection(str, Enum):
    """Side of a cash account a payment line sits on."""

    IN = "IN"
    OUT = "OUT"


class OverdraftPolicy(str, Enum):
    """
    Floor rule applied to an aggregate's pending amount before commit.

    NON_NEGATIVE: pending (billed - paid) must be >= 0.
    OVERDRAFT_ALLOWED: pending may go negative (cash balance = in - out).
    """

    NON_NEGATIVE = "non_negative"
    OVERDRAFT_ALLOWED = "overdraft_allowed"


class DocumentKind(str, Enum):
    """Kind of business document, one sequence namespace each."""

    BILL = "bill"
    PURCHASE = "purchase"
    RETURN = "return"
    DAMAGE = "damage"


class DocumentState(str, Enum):
    """Business document lifecycle."""

    DRAFT = "draft"
    ACTIVE = "active"
    EDITED = "edited"
    DELETED = "deleted"


class ReturnType(str, Enum):
    """Which side of the business returned goods came from."""

    BILL = "bill"
    PURCHASE = "purchase"


class StockSource(str, Enum):
    """Origin of a stock ledger entry."""

    PURCHASE = "purchase"
    RETURN = "return"
    DAMAGE = "damage"
    OPENING = "opening"
    SALE = "sale"


class ReferenceKind(str, Enum):
    """Prefix of a payment movement reference id."""

    PAY = "PAY"
    IN = "IN"
    OUT = "OUT"


class BillPaymentStatus(str, Enum):
    """Collection status of a bill."""

    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"


class PurchasePaymentStatus(str, Enum):
    """Settlement status of a purchase."""

    PENDING = "Pending"
    PARTIAL = "Partial"
    PAID = "Paid"


RECEIVABLE_PAYABLE_KINDS: frozenset[AggregateKind] = frozenset({
    AggregateKind.CUSTOMER,
    AggregateKind.SUPPLIER,
    AggregateKind.SELLER,
    AggregateKind.TRANSPORT,
})
