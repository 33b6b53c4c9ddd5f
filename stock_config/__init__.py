"""
stock_config -- single public entrypoint for stock kernel policy.

Responsibility:
    Provides the ONLY way to obtain policy at runtime through
    ``get_active_config()``.  Returns a frozen, validated ``StockPolicy``.

Architecture position:
    Configuration.  Sits above ``stock_kernel``.  The kernel MUST NEVER
    import from ``stock_config``; ``stock_config.bridges`` translates the
    policy into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the policy file does not exist.
    - ``ValueError`` -- a policy value is invalid.
    - ``KeyError`` -- policy_id or version missing.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``stock_config_loaded`` log entry with the policy id, version and
    checksum.
"""

from __future__ import annotations

from pathlib import Path

from stock_config.loader import load_yaml_file, parse_policy
from stock_config.schema import StockPolicy
from stock_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_POLICY_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> StockPolicy:
    """
    Load and validate the policy at ``path`` (defaults.yaml when omitted).

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    source = Path(path) if path is not None else DEFAULT_POLICY_PATH
    policy = parse_policy(load_yaml_file(source))
    _logger.info(
        "stock_config_loaded",
        extra={
            "policy_id": policy.policy_id,
            "version": policy.version,
            "checksum": policy.checksum,
            "source": str(source),
            "role_count": len(policy.access.role_permissions),
        },
    )
    return policy


__all__ = ["DEFAULT_POLICY_PATH", "StockPolicy", "get_active_config"]
