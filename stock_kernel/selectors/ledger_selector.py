"""
Module: stock_kernel.selectors.ledger_selector
Responsibility: Read-only queries over ledger rows and the movement log:
    levels by location or product, low-stock lists, product totals and
    movement history.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Location scoping is applied by the caller's location_ids; a selector
      never widens it.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import or_, select

from stock_kernel.domain.dtos import InventoryLevel, MovementRecord, ProductLevels
from stock_kernel.domain.quantities import ZERO
from stock_kernel.domain.values import MovementType
from stock_kernel.domain.variance import DEFAULT_LOW_STOCK_FALLBACK
from stock_kernel.models.inventory import InventoryItem
from stock_kernel.models.movement import StockMovement
from stock_kernel.models.product import Product
from stock_kernel.selectors.base import BaseSelector

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 500


class LedgerSelector(BaseSelector):
    """Queries ledger rows and movements for one organization."""

    def __init__(self, session, low_stock_fallback: Decimal = DEFAULT_LOW_STOCK_FALLBACK):
        super().__init__(session)
        self._fallback = low_stock_fallback

    def get_level(
        self, organization_id: UUID, product_id: UUID, location_id: UUID
    ) -> InventoryLevel | None:
        row = self.session.execute(
            select(InventoryItem).where(
                InventoryItem.organization_id == organization_id,
                InventoryItem.product_id == product_id,
                InventoryItem.location_id == location_id,
            )
        ).scalar_one_or_none()
        return row.to_dto(self._fallback) if row is not None else None

    def levels_for_location(
        self,
        organization_id: UUID,
        location_id: UUID,
        *,
        low_stock_only: bool = False,
    ) -> tuple[InventoryLevel, ...]:
        """Ledger rows at one location, ordered by product name."""
        rows = self.session.execute(
            select(InventoryItem)
            .join(Product, Product.id == InventoryItem.product_id)
            .where(
                InventoryItem.organization_id == organization_id,
                InventoryItem.location_id == location_id,
            )
            .order_by(Product.name, InventoryItem.product_id)
        ).scalars()
        levels = tuple(row.to_dto(self._fallback) for row in rows)
        if low_stock_only:
            return tuple(level for level in levels if level.is_low_stock)
        return levels

    def levels_for_product(
        self,
        organization_id: UUID,
        product_id: UUID,
        location_ids: Iterable[UUID],
    ) -> ProductLevels:
        """A product's rows across the given locations, with their total."""
        ids = list(location_ids)
        if not ids:
            return ProductLevels(product_id=product_id, levels=(), total_quantity=ZERO)
        rows = self.session.execute(
            select(InventoryItem)
            .where(
                InventoryItem.organization_id == organization_id,
                InventoryItem.product_id == product_id,
                InventoryItem.location_id.in_(ids),
            )
            .order_by(InventoryItem.location_id)
        ).scalars()
        levels = tuple(row.to_dto(self._fallback) for row in rows)
        total = sum((level.current_quantity for level in levels), ZERO)
        return ProductLevels(product_id=product_id, levels=levels, total_quantity=total)

    def low_stock(
        self, organization_id: UUID, location_ids: Iterable[UUID]
    ) -> tuple[InventoryLevel, ...]:
        ids = list(location_ids)
        if not ids:
            return ()
        rows = self.session.execute(
            select(InventoryItem)
            .where(
                InventoryItem.organization_id == organization_id,
                InventoryItem.location_id.in_(ids),
            )
            .order_by(InventoryItem.location_id, InventoryItem.product_id)
        ).scalars()
        return tuple(
            level for level in (row.to_dto(self._fallback) for row in rows)
            if level.is_low_stock
        )

    def product_total(self, organization_id: UUID, product_id: UUID) -> Decimal:
        """Sum of current_quantity over every location (conservation checks)."""
        # Summed in Decimal; SQLite would sum the stored floats.
        quantities = self.session.execute(
            select(InventoryItem.current_quantity).where(
                InventoryItem.organization_id == organization_id,
                InventoryItem.product_id == product_id,
            )
        ).scalars()
        return sum(quantities, ZERO)

    def movements(
        self,
        organization_id: UUID,
        location_ids: Iterable[UUID],
        *,
        product_id: UUID | None = None,
        movement_type: MovementType | None = None,
        count_id: UUID | None = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> tuple[MovementRecord, ...]:
        """
        Movements touching any of location_ids, newest first.

        A transfer is visible if either end is in location_ids.
        """
        ids = list(location_ids)
        if not ids:
            return ()
        stmt = select(StockMovement).where(
            StockMovement.organization_id == organization_id,
            or_(
                StockMovement.from_location_id.in_(ids),
                StockMovement.to_location_id.in_(ids),
            ),
        )
        if product_id is not None:
            stmt = stmt.where(StockMovement.product_id == product_id)
        if movement_type is not None:
            stmt = stmt.where(StockMovement.movement_type == MovementType(movement_type))
        if count_id is not None:
            stmt = stmt.where(StockMovement.count_id == count_id)
        stmt = (
            stmt.order_by(StockMovement.completed_at.desc(), StockMovement.created_at.desc())
            .limit(max(1, min(limit, MAX_HISTORY_LIMIT)))
            .offset(max(0, offset))
        )
        return tuple(row.to_dto() for row in self.session.execute(stmt).scalars())
