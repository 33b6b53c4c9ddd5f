"""Selectors for the stock kernel (read side)."""

from stock_kernel.selectors.count_selector import CountSelector
from stock_kernel.selectors.ledger_selector import LedgerSelector

__all__ = [
    "CountSelector",
    "LedgerSelector",
]
