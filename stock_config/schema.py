"""
StockPolicy schema.

The human-authored policy for a stock kernel deployment, parsed from YAML by
the loader.  Every type here is a frozen dataclass; bridges.py turns them
into the kernel's own domain objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class VarianceThresholds:
    """When a count line counts as a significant variance."""

    absolute: Decimal = Decimal("1")
    relative: Decimal = Decimal("0.1")


@dataclass(frozen=True)
class AccessSettings:
    """Role configuration: who sees every location, and who may do what."""

    elevated_roles: tuple[str, ...] = ()
    role_permissions: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )


@dataclass(frozen=True)
class LedgerSettings:
    """Transaction retry budget and the low-stock fallback threshold."""

    max_attempts: int = 3
    backoff_seconds: float = 0.05
    low_stock_fallback: Decimal = Decimal("5")


@dataclass(frozen=True)
class CountSettings:
    default_areas: tuple[str, ...] = ()


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///stock.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class StockPolicy:
    """
    The complete, validated policy.

    checksum is the SHA-256 of the canonical source content and identifies
    the policy version in logs.
    """

    policy_id: str
    version: int
    variance: VarianceThresholds
    access: AccessSettings
    ledger: LedgerSettings
    counts: CountSettings
    database: DatabaseSettings
    checksum: str = ""
