"""
Configuration Loader (``trade_config.loader``).

Responsibility
--------------
Reads the policy YAML file and turns it into a frozen
``trade_kernel.domain.policy.LedgerPolicy``.  Build/test tooling only;
runtime callers go through ``trade_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown aggregate kinds, document kinds or policy names raise
  ``ValueError`` naming the offending key; nothing is silently defaulted
  except sections left out of the file entirely.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from trade_kernel.domain.policy import DEFAULT_OVERDRAFT, DEFAULT_PREFIXES, LedgerPolicy
from trade_kernel.domain.values import AggregateKind, DocumentKind, OverdraftPolicy

SUPPORTED_VERSIONS = (1,)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_enum_map(section: str, raw: Any, key_enum: type, value_parser) -> dict:
    if not isinstance(raw, dict):
        raise ValueError(f"'{section}' must be a mapping")
    parsed = {}
    for key, value in raw.items():
        try:
            enum_key = key_enum(key)
        except ValueError:
            raise ValueError(f"'{section}': unknown key {key!r}") from None
        parsed[enum_key] = value_parser(key, value)
    return parsed


def _parse_overdraft(key: str, value: Any) -> OverdraftPolicy:
    try:
        return OverdraftPolicy(value)
    except ValueError:
        raise ValueError(f"'overdraft.{key}': unknown policy {value!r}") from None


def _parse_prefix(key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"'sequences.{key}': prefix must be a string")
    return value


def _positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"'{name}' must be a positive integer, got {value!r}")
    return value


def parse_policy(data: dict[str, Any]) -> LedgerPolicy:
    """
    Build a LedgerPolicy from parsed YAML.

    Sections left out fall back to the kernel defaults; kinds left out of
    a present section fall back per kind.
    """
    version = data.get("version", 1)
    if version not in SUPPORTED_VERSIONS:
        raise ValueError(f"Unsupported policy version: {version!r}")

    overdraft = dict(DEFAULT_OVERDRAFT)
    if "overdraft" in data:
        overdraft.update(
            _parse_enum_map("overdraft", data["overdraft"], AggregateKind, _parse_overdraft)
        )

    prefixes = dict(DEFAULT_PREFIXES)
    if "sequences" in data:
        prefixes.update(
            _parse_enum_map("sequences", data["sequences"], DocumentKind, _parse_prefix)
        )

    stock = data.get("stock") or {}
    money = data.get("money") or {}
    page_size = _positive_int("stock.history_page_size", stock.get("history_page_size", 200))
    places = money.get("decimal_places", 2)
    if isinstance(places, bool) or not isinstance(places, int) or not 0 <= places <= 9:
        raise ValueError(f"'money.decimal_places' must be an integer 0..9, got {places!r}")

    return LedgerPolicy(
        overdraft=overdraft,
        prefixes=prefixes,
        history_page_size=page_size,
        money_decimal_places=places,
        checksum=compute_checksum(data),
    )


def load_policy(path: Path) -> LedgerPolicy:
    return parse_policy(load_yaml_file(path))
