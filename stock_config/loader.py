"""
Policy Loader (``stock_config.loader``).

Responsibility
--------------
Loads the YAML policy file and parses it into the typed
``stock_config.schema`` dataclasses.  The single public entry point for
runtime config is ``stock_config.get_active_config()``.

Invariants enforced
-------------------
* Bad values raise ``ValueError`` with the offending key; nothing is
  silently clamped.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for policy
  identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from stock_config.schema import (
    AccessSettings,
    CountSettings,
    DatabaseSettings,
    LedgerSettings,
    StockPolicy,
    VarianceThresholds,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, key: str) -> Decimal:
    """Parse a non-negative Decimal; floats go through str() to keep their digits."""
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{key}: expected a number, got {value!r}") from exc
    if not result.is_finite() or result < 0:
        raise ValueError(f"{key}: must be a finite non-negative number, got {value!r}")
    return result


def parse_names(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ValueError(f"{key}: expected a list of non-empty strings")
    names = tuple(v.strip() for v in value)
    if len(set(names)) != len(names):
        raise ValueError(f"{key}: duplicate entries")
    return names


def parse_variance(data: dict[str, Any]) -> VarianceThresholds:
    return VarianceThresholds(
        absolute=parse_decimal(data.get("absolute", "1"), "variance.absolute"),
        relative=parse_decimal(data.get("relative", "0.1"), "variance.relative"),
    )


def parse_access(data: dict[str, Any]) -> AccessSettings:
    """Parse elevated roles and the role -> permissions table."""
    raw = data.get("role_permissions") or {}
    if not isinstance(raw, dict):
        raise ValueError("access.role_permissions: expected a mapping")
    permissions = {
        str(role): parse_names(perms, f"access.role_permissions.{role}")
        for role, perms in raw.items()
    }
    return AccessSettings(
        elevated_roles=parse_names(data.get("elevated_roles"), "access.elevated_roles"),
        role_permissions=MappingProxyType(permissions),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    max_attempts = data.get("max_attempts", 3)
    if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1:
        raise ValueError(f"ledger.max_attempts: must be an integer >= 1, got {max_attempts!r}")
    backoff = parse_decimal(data.get("backoff_seconds", "0.05"), "ledger.backoff_seconds")
    return LedgerSettings(
        max_attempts=max_attempts,
        backoff_seconds=float(backoff),
        low_stock_fallback=parse_decimal(
            data.get("low_stock_fallback", "5"), "ledger.low_stock_fallback"
        ),
    )


def parse_counts(data: dict[str, Any]) -> CountSettings:
    return CountSettings(
        default_areas=parse_names(data.get("default_areas"), "counts.default_areas"),
    )


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    url = data.get("url", "sqlite:///stock.db")
    if not isinstance(url, str) or not url:
        raise ValueError("database.url: expected a non-empty string")
    return DatabaseSettings(
        url=url,
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
    )


def parse_policy(data: dict[str, Any]) -> StockPolicy:
    """
    Parse a whole policy document.

    Raises:
        KeyError: policy_id or version missing.
        ValueError: any section holds an invalid value.
    """
    return StockPolicy(
        policy_id=str(data["policy_id"]),
        version=int(data["version"]),
        variance=parse_variance(data.get("variance") or {}),
        access=parse_access(data.get("access") or {}),
        ledger=parse_ledger(data.get("ledger") or {}),
        counts=parse_counts(data.get("counts") or {}),
        database=parse_database(data.get("database") or {}),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; identical data, identical checksum."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
