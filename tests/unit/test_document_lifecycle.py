"""Unit tests for the business document state machine."""

import pytest

from trade_kernel.domain.documents import can_transition, check_transition
from trade_kernel.domain.values import DocumentState
from trade_kernel.exceptions import DocumentStateError


class TestTransitions:
    """DRAFT -> ACTIVE -> EDITED* -> DELETED."""

    @pytest.mark.parametrize(
        "current, target",
        [
            (DocumentState.DRAFT, DocumentState.ACTIVE),
            (DocumentState.ACTIVE, DocumentState.EDITED),
            (DocumentState.ACTIVE, DocumentState.DELETED),
            (DocumentState.EDITED, DocumentState.EDITED),
            (DocumentState.EDITED, DocumentState.DELETED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        assert check_transition("KK1", current, target) is target

    @pytest.mark.parametrize(
        "current, target",
        [
            (DocumentState.DRAFT, DocumentState.EDITED),
            (DocumentState.DRAFT, DocumentState.DELETED),
            (DocumentState.ACTIVE, DocumentState.DRAFT),
            (DocumentState.EDITED, DocumentState.ACTIVE),
            (DocumentState.DELETED, DocumentState.ACTIVE),
            (DocumentState.DELETED, DocumentState.DELETED),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(DocumentStateError) as exc_info:
            check_transition("KK1", current, target)
        assert exc_info.value.doc_number == "KK1"
        assert exc_info.value.current_state == current.value

    def test_accepts_string_values(self):
        assert check_transition("KK1", "active", "edited") is DocumentState.EDITED
