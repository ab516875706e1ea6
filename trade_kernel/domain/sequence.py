"""
Numeric-aware ordering of human-readable document numbers.

``KK10`` sorts after ``KK2``: digit runs compare as integers, text runs
compare as text.  Used to seed a namespace counter from existing numbers
and to present document lists in natural order.
"""

import re
from typing import Iterable

_CHUNK_RE = re.compile(r"(\d+)")


def natural_key(value: str) -> tuple:
    """Sort key splitting ``value`` into text and integer chunks."""
    parts = _CHUNK_RE.split(value)
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part)
        for part in parts
        if part != ""
    )


def extract_suffix(prefix: str, doc_number: str) -> int | None:
    """Numeric suffix of ``<prefix><n>``, or None when the id does not match."""
    match = re.fullmatch(re.escape(prefix) + r"(\d+)", doc_number or "")
    return int(match.group(1)) if match else None


def max_suffix(prefix: str, doc_numbers: Iterable[str]) -> int:
    """Greatest numeric suffix among ids matching ``<prefix>\\d+``; 0 if none."""
    return max(
        (n for n in (extract_suffix(prefix, d) for d in doc_numbers) if n is not None),
        default=0,
    )


def format_document_number(prefix: str, value: int) -> str:
    return f"{prefix}{value}"
