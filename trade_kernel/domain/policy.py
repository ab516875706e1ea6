"""
LedgerPolicy -- the runtime policy the kernel enforces.

Responsibility:
    Frozen value object carrying the named per-kind overdraft policy, the
    document number prefix per namespace, and the stock history page size.
    ``trade_config`` builds one from YAML; the kernel never reads files.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Every AggregateKind has exactly one OverdraftPolicy.
    - Every DocumentKind has a non-empty, purely alphabetic prefix, and no
      two namespaces share a prefix.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from trade_kernel.domain.values import AggregateKind, DocumentKind, OverdraftPolicy

DEFAULT_OVERDRAFT: Mapping[AggregateKind, OverdraftPolicy] = MappingProxyType({
    AggregateKind.CUSTOMER: OverdraftPolicy.NON_NEGATIVE,
    AggregateKind.SUPPLIER: OverdraftPolicy.NON_NEGATIVE,
    AggregateKind.SELLER: OverdraftPolicy.NON_NEGATIVE,
    AggregateKind.TRANSPORT: OverdraftPolicy.NON_NEGATIVE,
    AggregateKind.CASH: OverdraftPolicy.OVERDRAFT_ALLOWED,
})

DEFAULT_PREFIXES: Mapping[DocumentKind, str] = MappingProxyType({
    DocumentKind.BILL: "KK",
    DocumentKind.PURCHASE: "KP",
    DocumentKind.RETURN: "KR",
    DocumentKind.DAMAGE: "KD",
})


@dataclass(frozen=True)
class LedgerPolicy:
    """
    Policy the coordinator and services consult.

    Contract:
        Immutable; safe to share between threads and batches.

    Guarantees:
        - ``overdraft_for(kind)`` always returns a policy.
        - ``prefix_for(kind)`` always returns a prefix.
        - Stored money is rounded to ``money_decimal_places`` (0..9, the
          scale of the Numeric columns).
    """

    overdraft: Mapping[AggregateKind, OverdraftPolicy] = field(
        default_factory=lambda: DEFAULT_OVERDRAFT
    )
    prefixes: Mapping[DocumentKind, str] = field(
        default_factory=lambda: DEFAULT_PREFIXES
    )
    history_page_size: int = 200
    money_decimal_places: int = 2
    checksum: str | None = None

    def __post_init__(self) -> None:
        missing = [k.value for k in AggregateKind if k not in self.overdraft]
        if missing:
            raise ValueError(f"Overdraft policy missing for kinds: {missing}")
        missing = [k.value for k in DocumentKind if k not in self.prefixes]
        if missing:
            raise ValueError(f"Document prefix missing for kinds: {missing}")
        for kind, prefix in self.prefixes.items():
            if not prefix or not prefix.isalpha():
                raise ValueError(f"Prefix for {kind.value} must be alphabetic: {prefix!r}")
        if len(set(self.prefixes.values())) != len(self.prefixes):
            raise ValueError("Document prefixes must be distinct")
        if self.history_page_size < 1:
            raise ValueError("history_page_size must be positive")
        if not 0 <= self.money_decimal_places <= 9:
            raise ValueError("money_decimal_places must be between 0 and 9")
        object.__setattr__(self, "overdraft", MappingProxyType(dict(self.overdraft)))
        object.__setattr__(self, "prefixes", MappingProxyType(dict(self.prefixes)))

    def overdraft_for(self, kind: AggregateKind) -> OverdraftPolicy:
        return self.overdraft[AggregateKind(kind)]

    def prefix_for(self, kind: DocumentKind) -> str:
        return self.prefixes[DocumentKind(kind)]
