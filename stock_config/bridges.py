"""
Config -> Kernel Bridges.

Functions that convert a StockPolicy into kernel-compatible inputs.  These
live in stock_config (the producer) because the kernel must NEVER import
stock_config.

Usage:
    from stock_config.bridges import engine_settings, kernel_settings

    policy = get_active_config()
    init_engine_from_url(**engine_settings(policy))
    session_factory = get_session_factory()
    kernel = build_stock_kernel(session_factory, **kernel_settings(policy))
"""

from __future__ import annotations

from typing import Any

from stock_config.schema import StockPolicy
from stock_kernel.domain.access import AccessPolicy
from stock_kernel.domain.variance import VariancePolicy


def variance_policy_from(policy: StockPolicy) -> VariancePolicy:
    return VariancePolicy(
        absolute_threshold=policy.variance.absolute,
        relative_threshold=policy.variance.relative,
    )


def access_policy_from(policy: StockPolicy) -> AccessPolicy:
    """Elevated roles and role permissions as a kernel AccessPolicy."""
    return AccessPolicy(
        elevated_roles=frozenset(policy.access.elevated_roles),
        role_permissions={
            role: frozenset(perms) for role, perms in policy.access.role_permissions.items()
        },
    )


def kernel_settings(policy: StockPolicy) -> dict[str, Any]:
    """Keyword arguments for ``build_stock_kernel``."""
    settings: dict[str, Any] = {
        "access_policy": access_policy_from(policy),
        "variance_policy": variance_policy_from(policy),
        "max_attempts": policy.ledger.max_attempts,
        "backoff_seconds": policy.ledger.backoff_seconds,
        "low_stock_fallback": policy.ledger.low_stock_fallback,
    }
    if policy.counts.default_areas:
        settings["default_areas"] = policy.counts.default_areas
    return settings


def engine_settings(policy: StockPolicy) -> dict[str, Any]:
    """Keyword arguments for ``init_engine_from_url``."""
    return {
        "database_url": policy.database.url,
        "echo": policy.database.echo,
        "pool_size": policy.database.pool_size,
        "max_overflow": policy.database.max_overflow,
    }
