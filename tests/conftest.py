"""
Pytest fixtures for the trade kernel test suite.

Provides:
- One engine and one set of tables per test session
- Row cleanup after every test that touched the database
- A DeterministicClock and a TransactionCoordinator wired to it
- Module service fixtures and small data builders
- Structured log capture

Environment Variables:
- TRADE_LEDGER_DATABASE_URL: database to run against.  Defaults to an
  in-memory SQLite database; point it at PostgreSQL to exercise row locks.
"""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy import delete

from trade_kernel.db.base import Base
from trade_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from trade_kernel.domain.clock import DeterministicClock
from trade_kernel.domain.dtos import ProductLineRequest, PurchaseRequest
from trade_kernel.domain.policy import LedgerPolicy
from trade_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from trade_kernel.selectors.account_selector import AccountSelector
from trade_kernel.selectors.document_selector import DocumentSelector
from trade_kernel.services.transaction_coordinator import TransactionCoordinator
from trade_modules import (
    CashService,
    InventoryService,
    PartiesService,
    PurchasingService,
    ReturnsService,
    SalesService,
)

DEFAULT_DATABASE_URL = "sqlite://"

TEST_ACTOR_ID = "test-actor"

FIXED_TIME = datetime(2024, 3, 15, 9, 30, 0, tzinfo=timezone.utc)


def get_database_url() -> str:
    return os.environ.get("TRADE_LEDGER_DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture trade_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, sales):
            sales.create_bill(...)
            logs = captured_logs()
            assert any(r["message"] == "batch_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("trade_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Session-scoped DB infrastructure
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    yield
    drop_tables()


def _delete_all_rows():
    """Remove every row; coordinator batches really commit, so rollback cannot undo them."""
    with get_engine().begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(delete(table))


@pytest.fixture
def clean_db(db_tables):
    yield
    _delete_all_rows()


# =============================================================================
# Kernel fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(FIXED_TIME)


@pytest.fixture
def policy() -> LedgerPolicy:
    return LedgerPolicy()


@pytest.fixture
def coordinator(clean_db, policy, deterministic_clock) -> TransactionCoordinator:
    return TransactionCoordinator(get_session_factory(), policy, deterministic_clock)


@pytest.fixture
def run_in_batch(coordinator):
    """Factory: run one step in its own batch and return the step's value."""

    def _run(fn, operation: str = "test_step"):
        return coordinator.batch(operation, TEST_ACTOR_ID).step("step", fn).execute().value

    return _run


@pytest.fixture
def account(coordinator):
    """Factory: committed snapshot of one aggregate, or None."""

    def _account(kind, owner_id):
        with coordinator.reader() as s:
            return AccountSelector(s).find_snapshot(kind, owner_id)

    return _account


@pytest.fixture
def document(coordinator):
    """Factory: committed snapshot of one business document, or None."""

    def _document(kind, doc_number):
        with coordinator.reader() as s:
            return DocumentSelector(s).find(kind, doc_number)

    return _document


@pytest.fixture
def stock_of(inventory):
    """Factory: committed stock count of one item."""

    def _stock_of(item_id):
        return inventory.product(item_id).count_in_stock

    return _stock_of


# =============================================================================
# Module services
# =============================================================================


@pytest.fixture
def sales(coordinator) -> SalesService:
    return SalesService(coordinator)


@pytest.fixture
def purchasing(coordinator) -> PurchasingService:
    return PurchasingService(coordinator)


@pytest.fixture
def returns(coordinator) -> ReturnsService:
    return ReturnsService(coordinator)


@pytest.fixture
def cash(coordinator) -> CashService:
    return CashService(coordinator)


@pytest.fixture
def inventory(coordinator) -> InventoryService:
    return InventoryService(coordinator)


@pytest.fixture
def parties(coordinator) -> PartiesService:
    return PartiesService(coordinator)


# =============================================================================
# Data builders
# =============================================================================


@pytest.fixture
def open_cash_account(cash):
    """Factory: open a cash account with an opening balance."""

    def _open(account_id: str = "CASH", balance: Decimal | int = Decimal("0"), name: str | None = None):
        cash.open_account(account_id, name or account_id, balance, actor_id=TEST_ACTOR_ID)
        return account_id

    return _open


@pytest.fixture
def stock_items(purchasing):
    """
    Factory: buy items from a supplier so they exist with stock.

    Returns the purchase number.
    """

    def _stock(quantities: dict[str, int], supplier_id: str = "SUP1", unit_price: Decimal = Decimal("10")):
        request = PurchaseRequest(
            supplier_id=supplier_id,
            supplier_name=f"Supplier {supplier_id}",
            lines=tuple(
                ProductLineRequest(item_id, qty, name=f"Item {item_id}", unit_price=unit_price)
                for item_id, qty in quantities.items()
            ),
        )
        return purchasing.create_purchase(request, actor_id=TEST_ACTOR_ID).value

    return _stock
