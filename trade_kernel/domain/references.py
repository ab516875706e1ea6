"""
Reference id scheme for payment movements.

Responsibility:
    Formats and parses ``<KIND><epoch-millis>`` ids (KIND in PAY, IN, OUT)
    and pairs transfer ids: ``OUT<t>`` in the source account and ``IN<t>``
    in the destination share the millis token ``t``.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Minting (which needs the clock and
    the store) lives in ``services/reference_linker.py``.
"""

import re
from dataclasses import dataclass

from trade_kernel.domain.values import ReferenceKind

_REFERENCE_RE = re.compile(r"^(PAY|IN|OUT)(\d+)$")


@dataclass(frozen=True)
class ParsedReference:
    kind: ReferenceKind
    token: int

    def __str__(self) -> str:
        return format_reference(self.kind, self.token)


def format_reference(kind: ReferenceKind, token: int) -> str:
    return f"{ReferenceKind(kind).value}{token}"


def parse_reference(reference_id: str) -> ParsedReference | None:
    """Split a reference id into kind and token, or None if it is not one."""
    match = _REFERENCE_RE.match(reference_id or "")
    if match is None:
        return None
    return ParsedReference(ReferenceKind(match.group(1)), int(match.group(2)))


def paired_reference(reference_id: str) -> str | None:
    """IN<t> <-> OUT<t>.  PAY ids and foreign ids have no pair."""
    parsed = parse_reference(reference_id)
    if parsed is None or parsed.kind is ReferenceKind.PAY:
        return None
    other = ReferenceKind.OUT if parsed.kind is ReferenceKind.IN else ReferenceKind.IN
    return format_reference(other, parsed.token)
