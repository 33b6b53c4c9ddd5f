"""
Module: stock_kernel.selectors.count_selector
Responsibility: Read-only queries over physical counts: count detail with
    areas in canonical order, paginated listing, and per-product aggregation
    of counted quantities for reconciliation.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Areas are returned ordered by (order, name, id); items by
      (counted_at, id).
    - Aggregation sums total_quantity per product across all areas.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.dtos import CountAreaView, CountItemView, CountPage, CountView
from stock_kernel.domain.quantities import ZERO
from stock_kernel.domain.values import CountStatus
from stock_kernel.models.count import CountArea, CountItem, InventoryCount
from stock_kernel.selectors.base import BaseSelector

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class CountSelector(BaseSelector):
    """Queries counts, areas and items."""

    def find_count(self, organization_id: UUID, count_id: UUID) -> CountView | None:
        """Header only, without areas."""
        row = self._count_row(organization_id, count_id)
        return row.to_dto() if row is not None else None

    def get_count(self, organization_id: UUID, count_id: UUID) -> CountView | None:
        """Header with areas and their items."""
        row = self._count_row(organization_id, count_id)
        if row is None:
            return None
        return row.to_dto(areas=self.areas_with_items(count_id))

    def areas_with_items(self, count_id: UUID) -> tuple[CountAreaView, ...]:
        areas = self.session.execute(
            select(CountArea)
            .where(CountArea.count_id == count_id)
            .order_by(CountArea.order, CountArea.name, CountArea.id)
        ).scalars().all()
        if not areas:
            return ()
        items_by_area: dict[UUID, list[CountItemView]] = defaultdict(list)
        for item in self.session.execute(
            select(CountItem)
            .where(CountItem.area_id.in_([a.id for a in areas]))
            .order_by(CountItem.counted_at, CountItem.id)
        ).scalars():
            items_by_area[item.area_id].append(item.to_dto())
        return tuple(area.to_dto(items=tuple(items_by_area[area.id])) for area in areas)

    def list_counts(
        self,
        organization_id: UUID,
        location_ids: Iterable[UUID],
        *,
        status: CountStatus | None = None,
        location_id: UUID | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> CountPage:
        """Counts at the given locations, newest first, without areas."""
        page = max(1, page)
        page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        ids = list(location_ids)
        if location_id is not None:
            ids = [i for i in ids if i == location_id]
        if not ids:
            return CountPage(counts=(), total=0, page=page, page_size=page_size)

        filters = [
            InventoryCount.organization_id == organization_id,
            InventoryCount.location_id.in_(ids),
        ]
        if status is not None:
            filters.append(InventoryCount.status == CountStatus(status))

        total = self.session.execute(
            select(func.count()).select_from(InventoryCount).where(*filters)
        ).scalar_one()
        rows = self.session.execute(
            select(InventoryCount)
            .where(*filters)
            .order_by(InventoryCount.created_at.desc(), InventoryCount.id)
            .limit(page_size)
            .offset((page - 1) * page_size)
        ).scalars()
        return CountPage(
            counts=tuple(row.to_dto() for row in rows),
            total=total,
            page=page,
            page_size=page_size,
        )

    def aggregate_by_product(self, count_id: UUID) -> dict[UUID, Decimal]:
        """Counted quantity per product, summed across every area of the count."""
        totals: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        rows = self.session.execute(
            select(CountItem.product_id, CountItem.total_quantity)
            .join(CountArea, CountArea.id == CountItem.area_id)
            .where(CountArea.count_id == count_id)
        ).all()
        for product_id, quantity in rows:
            totals[product_id] += quantity
        return dict(totals)

    def _count_row(self, organization_id: UUID, count_id: UUID) -> InventoryCount | None:
        return self.session.execute(
            select(InventoryCount).where(
                InventoryCount.id == count_id,
                InventoryCount.organization_id == organization_id,
            )
        ).scalar_one_or_none()
