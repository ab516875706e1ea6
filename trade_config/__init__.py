"""
trade_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the only way to obtain the ledger policy at runtime through
    ``get_active_config()``.  Returns a frozen ``LedgerPolicy``: overdraft
    policy per aggregate kind, document number prefixes, stock history
    page size and money rounding.

Architecture position:
    Configuration -- sits above ``trade_kernel`` and below
    ``trade_modules``.  The kernel never imports from ``trade_config``;
    it receives the policy object.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Validation on load: bad kinds, policies or prefixes raise
      ``ValueError`` before any policy object exists.
    - Deterministic: the same YAML always yields the same checksum.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``TRADE_CONFIG_TRACE`` log entry with the checksum and the policies
    in force.
"""

from __future__ import annotations

import logging
from pathlib import Path

from trade_config.loader import compute_checksum, load_policy, parse_policy
from trade_kernel.domain.policy import LedgerPolicy

_logger = logging.getLogger("trade_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> LedgerPolicy:
    """The only public configuration entrypoint.

    Args:
        path: Override YAML file.  Defaults to trade_config/defaults.yaml.

    Returns:
        LedgerPolicy carrying the source checksum.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    policy = load_policy(config_path)

    _logger.info(
        "TRADE_CONFIG_TRACE",
        extra={
            "trace_type": "TRADE_CONFIG_TRACE",
            "config_path": str(config_path),
            "checksum": policy.checksum,
            "overdraft": {k.value: v.value for k, v in policy.overdraft.items()},
            "prefixes": {k.value: v for k, v in policy.prefixes.items()},
            "history_page_size": policy.history_page_size,
        },
    )
    return policy


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "compute_checksum",
    "get_active_config",
    "parse_policy",
]
