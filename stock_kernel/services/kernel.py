"""
Kernel assembly -- wire the services over one session factory.

Usage:
    factory = get_session_factory()
    kernel = build_stock_kernel(factory)
    kernel.ledger.transfer(product_id, bar_id, cellar_id, Decimal("2"), actor=actor)
    kernel.counts.approve_count(count_id, actor=manager)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Sequence

from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.db.transaction import TransactionRunner
from stock_kernel.domain.access import AccessPolicy
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.variance import DEFAULT_LOW_STOCK_FALLBACK, VariancePolicy
from stock_kernel.services.access_gate import AccessGate
from stock_kernel.services.catalog import DatabaseProductCatalog, ProductCatalog
from stock_kernel.services.count_workflow import DEFAULT_STORAGE_AREAS, CountWorkflow
from stock_kernel.services.reconciliation_applier import ReconciliationApplier
from stock_kernel.services.stock_ledger import StockLedger


@dataclass(frozen=True)
class StockKernel:
    """The public services, sharing one runner, gate, catalog and clock."""

    runner: TransactionRunner
    gate: AccessGate
    catalog: ProductCatalog
    ledger: StockLedger
    counts: CountWorkflow
    applier: ReconciliationApplier
    clock: Clock


def build_stock_kernel(
    session_factory: sessionmaker[Session],
    *,
    access_policy: AccessPolicy | None = None,
    variance_policy: VariancePolicy | None = None,
    max_attempts: int = TransactionRunner.DEFAULT_MAX_ATTEMPTS,
    backoff_seconds: float = TransactionRunner.DEFAULT_BACKOFF_SECONDS,
    sleep: Callable[[float], None] | None = None,
    clock: Clock | None = None,
    catalog: ProductCatalog | None = None,
    default_areas: Sequence[str] = DEFAULT_STORAGE_AREAS,
    low_stock_fallback: Decimal = DEFAULT_LOW_STOCK_FALLBACK,
) -> StockKernel:
    clock = clock or SystemClock()
    runner_kwargs = {"max_attempts": max_attempts, "backoff_seconds": backoff_seconds}
    if sleep is not None:
        runner_kwargs["sleep"] = sleep
    runner = TransactionRunner(session_factory, **runner_kwargs)
    gate = AccessGate(runner, access_policy)
    catalog = catalog or DatabaseProductCatalog(runner)
    applier = ReconciliationApplier(runner, clock)
    ledger = StockLedger(
        runner, gate, catalog, clock, low_stock_fallback=low_stock_fallback
    )
    counts = CountWorkflow(
        runner,
        gate,
        catalog,
        applier,
        clock,
        variance_policy=variance_policy,
        default_areas=default_areas,
    )
    return StockKernel(
        runner=runner,
        gate=gate,
        catalog=catalog,
        ledger=ledger,
        counts=counts,
        applier=applier,
        clock=clock,
    )
