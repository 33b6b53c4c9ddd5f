"""
ReconciliationApplier -- overwrite ledger rows from an approved count.

Responsibility:
    Aggregate an APPROVED count's counted quantities per product across all
    areas and make them the authoritative ledger quantities at the count's
    location, one product per transaction.

Architecture position:
    Kernel > Services.  Invoked by CountWorkflow after approval commits, and
    by CountWorkflow.reapply_count for explicit retries.

Invariants enforced:
    - Only APPROVED counts are applied (CountNotApprovedError otherwise).
    - Re-application converges: quantities are overwritten, not added, and
      an unchanged quantity writes no movement.
    - A failure on one product never rolls back another product.

Failure modes:
    - CountNotFoundError, CountNotApprovedError, LocationNotFoundError:
      raised before any write.
    - Per-product StockKernelError / SQLAlchemyError: recorded in
      ReconciliationResult.failed and logged; other products proceed.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_kernel.db.transaction import TransactionRunner
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import AppliedProduct, FailedProduct, ReconciliationResult
from stock_kernel.domain.values import CountStatus, MovementType
from stock_kernel.exceptions import (
    CountNotApprovedError,
    CountNotFoundError,
    LocationNotFoundError,
    StockKernelError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.location import Location
from stock_kernel.selectors.count_selector import CountSelector
from stock_kernel.services.ledger_writer import LedgerWriter

logger = get_logger("services.reconciliation_applier")


class ReconciliationApplier:
    """
    Applies approved counts to the stock ledger.

    Contract:
        apply() returns a ReconciliationResult listing every product it
        touched, split into applied and failed.  Callers retry failures by
        passing ``product_ids=result.failed_product_ids``.

    Non-goals:
        - Does not authorize; CountWorkflow checks MANAGE access first.
    """

    def __init__(self, runner: TransactionRunner, clock: Clock):
        self._runner = runner
        self._clock = clock

    def apply(
        self,
        organization_id: UUID,
        count_id: UUID,
        *,
        applied_by_id: UUID,
        product_ids: Iterable[UUID] | None = None,
    ) -> ReconciliationResult:
        with LogContext.bind(count_id=count_id, actor_id=applied_by_id):
            location_id, count_name, totals = self._runner.read(
                lambda s: self._load(s, organization_id, count_id)
            )
            wanted = set(product_ids) if product_ids is not None else None

            applied: list[AppliedProduct] = []
            failed: list[FailedProduct] = []
            for product_id in sorted(totals, key=str):
                if wanted is not None and product_id not in wanted:
                    continue
                try:
                    applied.append(
                        self._apply_product(
                            organization_id,
                            count_id,
                            count_name,
                            location_id,
                            product_id,
                            totals[product_id],
                            applied_by_id,
                        )
                    )
                except (StockKernelError, SQLAlchemyError) as exc:
                    code = getattr(exc, "code", type(exc).__name__)
                    logger.warning(
                        "reconciliation_product_failed",
                        extra={
                            "product_id": str(product_id),
                            "location_id": str(location_id),
                            "error_code": code,
                        },
                        exc_info=True,
                    )
                    failed.append(
                        FailedProduct(product_id=product_id, error_code=code, message=str(exc))
                    )

            result = ReconciliationResult(
                count_id=count_id,
                location_id=location_id,
                applied=tuple(applied),
                failed=tuple(failed),
            )
            log = logger.info if result.is_complete else logger.warning
            log(
                "count_reconciled",
                extra={
                    "location_id": str(location_id),
                    "applied_count": len(applied),
                    "changed_count": sum(1 for a in applied if a.movement_id is not None),
                    "failed_count": len(failed),
                },
            )
            return result

    def _load(
        self, session: Session, organization_id: UUID, count_id: UUID
    ) -> tuple[UUID, str, dict[UUID, Decimal]]:
        selector = CountSelector(session)
        count = selector.find_count(organization_id, count_id)
        if count is None:
            raise CountNotFoundError(str(count_id))
        if count.status != CountStatus.APPROVED:
            logger.warning(
                "reconciliation_rejected",
                extra={"code": CountNotApprovedError.code, "status": count.status.value},
            )
            raise CountNotApprovedError(str(count_id), count.status.value)
        location = session.execute(
            select(Location.id).where(
                Location.id == count.location_id,
                Location.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        if location is None:
            raise LocationNotFoundError(str(count.location_id))
        return count.location_id, count.name, selector.aggregate_by_product(count_id)

    def _apply_product(
        self,
        organization_id: UUID,
        count_id: UUID,
        count_name: str,
        location_id: UUID,
        product_id: UUID,
        counted: Decimal,
        applied_by_id: UUID,
    ) -> AppliedProduct:
        def work(session: Session) -> AppliedProduct:
            writer = LedgerWriter(session, applied_by_id)
            item = writer.lock_or_create_item(organization_id, product_id, location_id)
            previous = item.current_quantity
            now = self._clock.now()
            movement = writer.set_quantity(
                item,
                counted,
                movement_type=(
                    MovementType.COUNT_IN if counted > previous else MovementType.COUNT_OUT
                ),
                completed_at=now,
                notes=f"Reconciled from count '{count_name}'",
                count_id=count_id,
            )
            item.last_count_date = now
            item.updated_by_id = applied_by_id
            session.flush()
            return AppliedProduct(
                product_id=product_id,
                previous_quantity=previous,
                new_quantity=counted,
                movement_id=movement.id if movement is not None else None,
            )

        return self._runner.run("apply_count_product", work)
