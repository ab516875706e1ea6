"""
Tests for the YAML policy loader and get_active_config().

Verifies:
- The shipped defaults produce the documented policy
- Partial files fall back to defaults per kind
- Bad keys and values are rejected with ValueError
- Checksums are deterministic
- TRADE_CONFIG_TRACE is logged on every load
"""

import pytest

from trade_config import DEFAULT_CONFIG_PATH, compute_checksum, get_active_config, parse_policy
from trade_config.loader import load_yaml_file
from trade_kernel.domain.policy import LedgerPolicy
from trade_kernel.domain.values import AggregateKind, DocumentKind, OverdraftPolicy


class TestDefaults:
    """trade_config/defaults.yaml."""

    def test_overdraft_per_kind(self):
        policy = get_active_config()
        assert policy.overdraft_for(AggregateKind.CASH) is OverdraftPolicy.OVERDRAFT_ALLOWED
        for kind in (AggregateKind.CUSTOMER, AggregateKind.SUPPLIER, AggregateKind.SELLER, AggregateKind.TRANSPORT):
            assert policy.overdraft_for(kind) is OverdraftPolicy.NON_NEGATIVE

    def test_prefixes(self):
        policy = get_active_config()
        assert policy.prefix_for(DocumentKind.BILL) == "KK"
        assert policy.prefix_for(DocumentKind.PURCHASE) == "KP"
        assert policy.prefix_for(DocumentKind.RETURN) == "KR"
        assert policy.prefix_for(DocumentKind.DAMAGE) == "KD"

    def test_checksum_matches_file(self):
        policy = get_active_config()
        assert policy.checksum == compute_checksum(load_yaml_file(DEFAULT_CONFIG_PATH))

    def test_trace_logged(self, captured_logs):
        policy = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "TRADE_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == policy.checksum
        assert traces[0]["prefixes"]["bill"] == "KK"


class TestParsePolicy:
    """Overrides, fallbacks and validation."""

    def test_empty_document_is_all_defaults(self):
        policy = parse_policy({})
        assert dict(policy.overdraft) == dict(LedgerPolicy().overdraft)
        assert dict(policy.prefixes) == dict(LedgerPolicy().prefixes)
        assert policy.history_page_size == 200

    def test_partial_override(self):
        policy = parse_policy({"overdraft": {"customer": "overdraft_allowed"}, "sequences": {"bill": "INV"}})
        assert policy.overdraft_for(AggregateKind.CUSTOMER) is OverdraftPolicy.OVERDRAFT_ALLOWED
        assert policy.overdraft_for(AggregateKind.SUPPLIER) is OverdraftPolicy.NON_NEGATIVE
        assert policy.prefix_for(DocumentKind.BILL) == "INV"
        assert policy.prefix_for(DocumentKind.PURCHASE) == "KP"

    def test_page_size_and_places(self):
        policy = parse_policy({"stock": {"history_page_size": 50}, "money": {"decimal_places": 3}})
        assert policy.history_page_size == 50
        assert policy.money_decimal_places == 3

    @pytest.mark.parametrize(
        "data",
        [
            {"version": 2},
            {"overdraft": {"vendor": "non_negative"}},
            {"overdraft": {"cash": "sometimes"}},
            {"overdraft": ["cash"]},
            {"sequences": {"invoice": "KK"}},
            {"sequences": {"bill": 12}},
            {"sequences": {"bill": "K1"}},
            {"sequences": {"bill": "KP"}},
            {"stock": {"history_page_size": 0}},
            {"stock": {"history_page_size": "100"}},
            {"money": {"decimal_places": 12}},
        ],
    )
    def test_rejected(self, data):
        with pytest.raises(ValueError):
            parse_policy(data)

    @pytest.mark.parametrize("places", [-1, 10])
    def test_policy_decimal_places_range(self, places):
        with pytest.raises(ValueError):
            LedgerPolicy(money_decimal_places=places)

    def test_checksum_deterministic(self):
        data = {"sequences": {"bill": "KK", "purchase": "KP"}, "version": 1}
        reordered = {"version": 1, "sequences": {"purchase": "KP", "bill": "KK"}}
        assert compute_checksum(data) == compute_checksum(reordered)
        assert compute_checksum(data) != compute_checksum({"version": 1})


class TestLoadFile:
    """get_active_config(path) with an override file."""

    def test_override_file(self, tmp_path):
        path = tmp_path / "policy.yaml"
        path.write_text("version: 1\nsequences:\n  bill: INV\n")
        assert get_active_config(path).prefix_for(DocumentKind.BILL) == "INV"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert get_active_config(path).prefix_for(DocumentKind.BILL) == "KK"

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            get_active_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")
