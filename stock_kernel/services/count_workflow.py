"""
CountWorkflow -- physical count lifecycle.

Responsibility:
    Create counts, lay out storage areas, accept counted lines, keep the
    count's aggregates current, move the count through its lifecycle and,
    on approval, hand it to the ReconciliationApplier.

Architecture position:
    Kernel > Services.  Owns transaction boundaries through a
    TransactionRunner.  Reads through CountSelector, authorizes through
    AccessGate, and consults the COUNT_WORKFLOW state machine for every
    status change.

Invariants enforced:
    - Forward-only lifecycle; APPROVED is terminal and locks the count,
      its areas and its items (CountLockedError).
    - expected_qty and unit_cost are snapshotted on a line's first
      submission and never refreshed.
    - total_value and items_counted equal the sums over all items after
      every item mutation.  Item mutations lock the count row, so two
      counters in different areas cannot interleave the recomputation.
    - approved_at is the clock time at approval, never caller-supplied.

Failure modes:
    - CountNotFoundError / CountAreaNotFoundError / CountItemNotFoundError
    - CountLockedError, CountNotDeletableError, InvalidCountTransitionError
    - InvalidCompletionTimeError, InvalidQuantityError, InvalidCountDataError
    - ProductNotFoundError, AccessDeniedError
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from stock_kernel.db.transaction import TransactionRunner
from stock_kernel.domain.access import PERM_APPROVE_COUNT, PERM_COUNT, PERM_READ
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.count_lifecycle import (
    default_count_name,
    is_deletable,
    is_locked,
    require_transition,
)
from stock_kernel.domain.count_report import build_count_report
from stock_kernel.domain.dtos import (
    ApprovalResult,
    CountAreaView,
    CountItemView,
    CountPage,
    CountReport,
    CountView,
    ReconciliationResult,
)
from stock_kernel.domain.quantities import ZERO
from stock_kernel.domain.values import AccessLevel, Actor, AreaStatus, CountStatus, CountType
from stock_kernel.domain.variance import (
    VariancePolicy,
    compute_item_figures,
    validate_counted_units,
)
from stock_kernel.exceptions import (
    CountAreaNotFoundError,
    CountItemNotFoundError,
    CountLockedError,
    CountNotDeletableError,
    CountNotFoundError,
    InvalidCompletionTimeError,
    InvalidCountDataError,
    InvalidCountTransitionError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.count import CountArea, CountItem, InventoryCount
from stock_kernel.models.inventory import InventoryItem
from stock_kernel.selectors.count_selector import DEFAULT_PAGE_SIZE, CountSelector
from stock_kernel.services.access_gate import AccessGate
from stock_kernel.services.catalog import ProductCatalog, require_product
from stock_kernel.services.reconciliation_applier import ReconciliationApplier

logger = get_logger("services.count_workflow")

T = TypeVar("T")
E = TypeVar("E", bound=Enum)

DEFAULT_STORAGE_AREAS: tuple[str, ...] = (
    "Behind Bar",
    "Back Bar",
    "Liquor Storage",
    "Beer Cooler",
    "Walk-in Cooler",
    "Wine Cellar",
    "Dry Storage",
    "Speed Rail",
    "Display Cooler",
    "Prep Area",
)


def _clean_name(value: str | None, field: str) -> str:
    name = (value or "").strip()
    if not name:
        raise InvalidCountDataError(field, "must not be empty")
    return name


def _member(enum_type: type[E], value: object, field: str) -> E:
    try:
        return enum_type(value)
    except ValueError:
        raise InvalidCountDataError(field, f"unknown value {value!r}") from None


class CountWorkflow:
    """
    Physical count service.

    Contract:
        Every mutation checks WRITE access (MANAGE for approval) at the
        count's location before opening its transaction, then re-reads and
        locks the count row inside the transaction.

    Guarantees:
        - The first item submission moves a DRAFT count to IN_PROGRESS
          through the same guarded transition as an explicit start.
        - A PENDING area becomes IN_PROGRESS on its first item.

    Non-goals:
        - Does not decide when counts are taken.
    """

    def __init__(
        self,
        runner: TransactionRunner,
        gate: AccessGate,
        catalog: ProductCatalog,
        applier: ReconciliationApplier,
        clock: Clock,
        *,
        variance_policy: VariancePolicy | None = None,
        default_areas: Sequence[str] = DEFAULT_STORAGE_AREAS,
    ):
        self._runner = runner
        self._gate = gate
        self._catalog = catalog
        self._applier = applier
        self._clock = clock
        self._variance_policy = variance_policy or VariancePolicy()
        self._default_areas = tuple(default_areas)

    # ------------------------------------------------------------------
    # Count header
    # ------------------------------------------------------------------

    def create_count(
        self,
        location_id: UUID,
        *,
        actor: Actor,
        count_type: CountType = CountType.FULL,
        name: str | None = None,
        notes: str | None = None,
        areas: Sequence[str] | None = None,
    ) -> CountView:
        """Open a DRAFT count, optionally with initial areas in the given order."""
        count_type = _member(CountType, count_type, "count_type")
        area_names = [_clean_name(a, "area name") for a in (areas or ())]
        if name is not None:
            name = _clean_name(name, "count name")

        with LogContext.bind(
            actor_id=actor.id, organization_id=actor.organization_id, location_id=location_id
        ):
            self._gate.require(actor, location_id, AccessLevel.WRITE, PERM_COUNT)

            def work(session: Session) -> CountView:
                count = InventoryCount(
                    organization_id=actor.organization_id,
                    location_id=location_id,
                    name=name or default_count_name(count_type, self._clock.now()),
                    count_type=count_type,
                    status=CountStatus.DRAFT,
                    total_value=ZERO,
                    items_counted=0,
                    notes=notes,
                    created_by_id=actor.id,
                )
                session.add(count)
                session.flush()
                for order, area_name in enumerate(area_names):
                    session.add(
                        CountArea(
                            count_id=count.id,
                            name=area_name,
                            order=order,
                            status=AreaStatus.PENDING,
                            created_by_id=actor.id,
                        )
                    )
                session.flush()
                return count.to_dto(areas=CountSelector(session).areas_with_items(count.id))

            view = self._runner.run("create_count", work)
            logger.info(
                "count_created",
                extra={
                    "count_id": str(view.id),
                    "count_type": view.count_type.value,
                    "area_count": len(view.areas),
                },
            )
            return view

    def update_count(
        self,
        count_id: UUID,
        *,
        actor: Actor,
        name: str | None = None,
        notes: str | None = None,
    ) -> CountView:
        if name is not None:
            name = _clean_name(name, "count name")

        def mutate(session: Session, count: InventoryCount) -> CountView:
            if name is not None:
                count.name = name
            if notes is not None:
                count.notes = notes
            count.updated_by_id = actor.id
            session.flush()
            return count.to_dto()

        return self._mutate_count("update_count", count_id, actor, mutate)

    def start_count(self, count_id: UUID, *, actor: Actor) -> CountView:
        """Explicit DRAFT -> IN_PROGRESS."""

        def mutate(session: Session, count: InventoryCount) -> CountView:
            self._transition(count, CountStatus.IN_PROGRESS, actor)
            session.flush()
            return count.to_dto()

        return self._mutate_count("start_count", count_id, actor, mutate)

    def complete_count(
        self,
        count_id: UUID,
        *,
        actor: Actor,
        completed_at: datetime | None = None,
    ) -> CountView:
        """
        IN_PROGRESS -> COMPLETED.

        A supplied completion time may be in the past but not the future;
        when it precedes started_at, started_at is moved back to match.
        """
        now = self._clock.now()
        if completed_at is not None:
            if completed_at.tzinfo is None:
                raise InvalidCountDataError("completed_at", "must be timezone-aware")
            if completed_at > now:
                logger.warning(
                    "count_completion_rejected",
                    extra={"count_id": str(count_id), "code": InvalidCompletionTimeError.code},
                )
                raise InvalidCompletionTimeError(
                    str(count_id), completed_at.isoformat(), now.isoformat()
                )
        finished = completed_at or now

        def mutate(session: Session, count: InventoryCount) -> CountView:
            self._transition(count, CountStatus.COMPLETED, actor)
            count.completed_at = finished
            if count.started_at is None or finished < count.started_at:
                count.started_at = finished
            session.flush()
            return count.to_dto()

        return self._mutate_count("complete_count", count_id, actor, mutate)

    def delete_count(self, count_id: UUID, *, actor: Actor) -> None:
        """Remove a DRAFT count with its areas and items."""

        def mutate(session: Session, count: InventoryCount) -> None:
            if not is_deletable(count.status):
                logger.warning(
                    "count_delete_rejected",
                    extra={"code": CountNotDeletableError.code, "status": count.status.value},
                )
                raise CountNotDeletableError(str(count.id), count.status.value)
            area_ids = select(CountArea.id).where(CountArea.count_id == count.id)
            session.execute(delete(CountItem).where(CountItem.area_id.in_(area_ids)))
            session.execute(delete(CountArea).where(CountArea.count_id == count.id))
            session.delete(count)
            session.flush()

        self._mutate_count("delete_count", count_id, actor, mutate)
        logger.info("count_deleted", extra={"count_id": str(count_id)})

    def approve_count(self, count_id: UUID, *, actor: Actor) -> ApprovalResult:
        """
        COMPLETED -> APPROVED, then apply the results to the ledger.

        The approval commits on its own; per-product reconciliation
        failures are reported in the result, never by undoing approval.
        """

        def mutate(session: Session, count: InventoryCount) -> CountView:
            self._transition(count, CountStatus.APPROVED, actor)
            count.approved_at = self._clock.now()
            count.approved_by_id = actor.id
            count.updated_by_id = actor.id
            session.flush()
            return count.to_dto()

        with LogContext.bind(count_id=count_id):
            approved = self._mutate_count(
                "approve_count",
                count_id,
                actor,
                mutate,
                level=AccessLevel.MANAGE,
                permission=PERM_APPROVE_COUNT,
            )
            logger.info(
                "count_approved",
                extra={
                    "count_id": str(count_id),
                    "approved_by_id": str(actor.id),
                    "total_value": approved.total_value,
                    "items_counted": approved.items_counted,
                },
            )
            reconciliation = self._applier.apply(
                actor.organization_id, count_id, applied_by_id=actor.id
            )
            return ApprovalResult(count=approved, reconciliation=reconciliation)

    def reapply_count(
        self,
        count_id: UUID,
        *,
        actor: Actor,
        product_ids: Sequence[UUID] | None = None,
    ) -> ReconciliationResult:
        """Re-run reconciliation for an APPROVED count, e.g. for failed products."""
        header = self._header(actor, count_id)
        self._gate.require(actor, header.location_id, AccessLevel.MANAGE, PERM_APPROVE_COUNT)
        return self._applier.apply(
            actor.organization_id, count_id, applied_by_id=actor.id, product_ids=product_ids
        )

    # ------------------------------------------------------------------
    # Areas
    # ------------------------------------------------------------------

    def add_area(
        self,
        count_id: UUID,
        name: str,
        *,
        actor: Actor,
        order: int | None = None,
    ) -> CountAreaView:
        """Append an area; order defaults to the number of existing areas."""
        area_name = _clean_name(name, "area name")
        if order is not None and order < 0:
            raise InvalidCountDataError("order", "must be zero or more")

        def mutate(session: Session, count: InventoryCount) -> CountAreaView:
            existing = self._area_count(session, count.id)
            area = CountArea(
                count_id=count.id,
                name=area_name,
                order=existing if order is None else order,
                status=AreaStatus.PENDING,
                created_by_id=actor.id,
            )
            session.add(area)
            session.flush()
            return area.to_dto()

        return self._mutate_count("add_area", count_id, actor, mutate)

    def add_default_areas(self, count_id: UUID, *, actor: Actor) -> tuple[CountAreaView, ...]:
        """Add one area per configured default storage area, after any existing ones."""

        def mutate(session: Session, count: InventoryCount) -> tuple[CountAreaView, ...]:
            start = self._area_count(session, count.id)
            created = []
            for offset, area_name in enumerate(self._default_areas):
                area = CountArea(
                    count_id=count.id,
                    name=area_name,
                    order=start + offset,
                    status=AreaStatus.PENDING,
                    created_by_id=actor.id,
                )
                session.add(area)
                created.append(area)
            session.flush()
            return tuple(a.to_dto() for a in created)

        return self._mutate_count("add_default_areas", count_id, actor, mutate)

    def update_area(
        self,
        count_id: UUID,
        area_id: UUID,
        *,
        actor: Actor,
        name: str | None = None,
        status: AreaStatus | None = None,
        order: int | None = None,
    ) -> CountAreaView:
        new_name = _clean_name(name, "area name") if name is not None else None
        new_status = _member(AreaStatus, status, "status") if status is not None else None
        if order is not None and order < 0:
            raise InvalidCountDataError("order", "must be zero or more")

        def mutate(session: Session, count: InventoryCount) -> CountAreaView:
            area = self._area_in_count(session, count.id, area_id)
            if new_name is not None:
                area.name = new_name
            if new_status is not None:
                area.status = new_status
            if order is not None:
                area.order = order
            area.updated_by_id = actor.id
            session.flush()
            return area.to_dto()

        return self._mutate_count("update_area", count_id, actor, mutate)

    def delete_area(self, count_id: UUID, area_id: UUID, *, actor: Actor) -> CountView:
        """Remove an area and its items, then recompute the count's aggregates."""

        def mutate(session: Session, count: InventoryCount) -> CountView:
            area = self._area_in_count(session, count.id, area_id)
            session.execute(delete(CountItem).where(CountItem.area_id == area.id))
            session.delete(area)
            session.flush()
            self._recompute_aggregates(session, count)
            return count.to_dto()

        return self._mutate_count("delete_area", count_id, actor, mutate)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def submit_item(
        self,
        area_id: UUID,
        product_id: UUID,
        full_units: int,
        partial_unit: Decimal | int | str = 0,
        *,
        actor: Actor,
        notes: str | None = None,
    ) -> CountItemView:
        """
        Upsert the counted line for (area, product).

        The first submission snapshots the ledger quantity at the count's
        location as expected_qty (0 when no ledger row exists) and the
        catalog cost as unit_cost.
        """
        units, partial = validate_counted_units(full_units, partial_unit)
        count_id = self._runner.read(
            lambda s: self._count_id_for_area(s, actor.organization_id, area_id)
        )
        product = require_product(self._catalog, actor.organization_id, product_id)

        def mutate(session: Session, count: InventoryCount) -> CountItemView:
            area = self._area_in_count(session, count.id, area_id)
            now = self._clock.now()
            if count.status == CountStatus.DRAFT:
                self._transition(count, CountStatus.IN_PROGRESS, actor)
            if area.status == AreaStatus.PENDING:
                area.status = AreaStatus.IN_PROGRESS
                area.updated_by_id = actor.id

            item = session.execute(
                select(CountItem).where(
                    CountItem.area_id == area.id,
                    CountItem.product_id == product_id,
                )
            ).scalar_one_or_none()
            if item is None:
                item = CountItem(
                    area_id=area.id,
                    product_id=product_id,
                    expected_qty=self._ledger_quantity(
                        session, count.organization_id, product_id, count.location_id
                    ),
                    unit_cost=product.cost_per_unit,
                    created_by_id=actor.id,
                )
                session.add(item)
            else:
                item.updated_by_id = actor.id
            self._fill_item(item, units, partial, notes, actor, now)
            session.flush()
            self._recompute_aggregates(session, count)
            return item.to_dto()

        view = self._mutate_count("submit_item", count_id, actor, mutate)
        logger.info(
            "count_item_submitted",
            extra={
                "count_id": str(count_id),
                "area_id": str(area_id),
                "product_id": str(product_id),
                "total_quantity": view.total_quantity,
                "expected_qty": view.expected_qty,
                "variance": view.variance,
            },
        )
        return view

    def update_item(
        self,
        count_id: UUID,
        item_id: UUID,
        *,
        actor: Actor,
        full_units: int | None = None,
        partial_unit: Decimal | int | str | None = None,
        notes: str | None = None,
    ) -> CountItemView:
        """Partial update of a counted line; snapshots are kept."""
        validate_counted_units(
            full_units if full_units is not None else 0,
            partial_unit if partial_unit is not None else 0,
        )

        def mutate(session: Session, count: InventoryCount) -> CountItemView:
            item = self._item_in_count(session, count.id, item_id)
            units, partial = validate_counted_units(
                full_units if full_units is not None else item.full_units,
                partial_unit if partial_unit is not None else item.partial_unit,
            )
            self._fill_item(
                item,
                units,
                partial,
                notes if notes is not None else item.notes,
                actor,
                self._clock.now(),
            )
            item.updated_by_id = actor.id
            session.flush()
            self._recompute_aggregates(session, count)
            return item.to_dto()

        return self._mutate_count("update_item", count_id, actor, mutate)

    def delete_item(self, count_id: UUID, item_id: UUID, *, actor: Actor) -> CountView:
        def mutate(session: Session, count: InventoryCount) -> CountView:
            item = self._item_in_count(session, count.id, item_id)
            session.delete(item)
            session.flush()
            self._recompute_aggregates(session, count)
            return count.to_dto()

        return self._mutate_count("delete_item", count_id, actor, mutate)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_count(self, count_id: UUID, *, actor: Actor) -> CountView:
        """Count with areas in canonical order and their items."""
        header = self._header(actor, count_id)
        self._gate.require(actor, header.location_id, AccessLevel.READ, PERM_READ)
        view = self._runner.read(
            lambda s: CountSelector(s).get_count(actor.organization_id, count_id)
        )
        if view is None:
            raise CountNotFoundError(str(count_id))
        return view

    def list_counts(
        self,
        *,
        actor: Actor,
        status: CountStatus | None = None,
        location_id: UUID | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> CountPage:
        if status is not None:
            status = _member(CountStatus, status, "status")
        if location_id is not None:
            self._gate.require(actor, location_id, AccessLevel.READ, PERM_READ)
            scope = frozenset({location_id})
        else:
            self._gate.require_permission(actor, PERM_READ)
            scope = self._gate.accessible_location_ids(actor, AccessLevel.READ)
        return self._runner.read(
            lambda s: CountSelector(s).list_counts(
                actor.organization_id,
                scope,
                status=status,
                location_id=location_id,
                page=page,
                page_size=page_size,
            )
        )

    def count_report(self, count_id: UUID, *, actor: Actor) -> CountReport:
        return build_count_report(self.get_count(count_id, actor=actor), self._variance_policy)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mutate_count(
        self,
        operation: str,
        count_id: UUID,
        actor: Actor,
        mutate: Callable[[Session, InventoryCount], T],
        *,
        level: AccessLevel = AccessLevel.WRITE,
        permission: str = PERM_COUNT,
    ) -> T:
        """
        Authorize against the count's location, then run mutate on the
        locked count row in one transaction.
        """
        with LogContext.bind(
            actor_id=actor.id, organization_id=actor.organization_id, count_id=count_id
        ):
            header = self._header(actor, count_id)
            self._gate.require(actor, header.location_id, level, permission)

            def work(session: Session) -> T:
                count = self._lock_count(session, actor.organization_id, count_id)
                if is_locked(count.status):
                    logger.warning(
                        f"{operation}_rejected",
                        extra={"code": CountLockedError.code, "count_id": str(count_id)},
                    )
                    raise CountLockedError(str(count_id))
                return mutate(session, count)

            return self._runner.run(operation, work)

    def _header(self, actor: Actor, count_id: UUID) -> CountView:
        header = self._runner.read(
            lambda s: CountSelector(s).find_count(actor.organization_id, count_id)
        )
        if header is None:
            raise CountNotFoundError(str(count_id))
        return header

    def _transition(self, count: InventoryCount, to_status: CountStatus, actor: Actor) -> None:
        try:
            transition = require_transition(count.id, count.status, to_status)
        except InvalidCountTransitionError:
            logger.warning(
                "count_transition_rejected",
                extra={"from_status": count.status.value, "to_status": to_status.value},
            )
            raise
        if to_status == CountStatus.IN_PROGRESS and count.started_at is None:
            count.started_at = self._clock.now()
        count.status = to_status
        count.updated_by_id = actor.id
        logger.info(
            "count_transitioned",
            extra={
                "action": transition.action,
                "from_status": transition.from_state,
                "to_status": transition.to_state,
            },
        )

    @staticmethod
    def _lock_count(session: Session, organization_id: UUID, count_id: UUID) -> InventoryCount:
        count = session.execute(
            select(InventoryCount)
            .where(
                InventoryCount.id == count_id,
                InventoryCount.organization_id == organization_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if count is None:
            raise CountNotFoundError(str(count_id))
        return count

    @staticmethod
    def _count_id_for_area(session: Session, organization_id: UUID, area_id: UUID) -> UUID:
        count_id = session.execute(
            select(CountArea.count_id)
            .join(InventoryCount, InventoryCount.id == CountArea.count_id)
            .where(
                CountArea.id == area_id,
                InventoryCount.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        if count_id is None:
            raise CountAreaNotFoundError(str(area_id))
        return count_id

    @staticmethod
    def _area_in_count(session: Session, count_id: UUID, area_id: UUID) -> CountArea:
        area = session.execute(
            select(CountArea).where(CountArea.id == area_id, CountArea.count_id == count_id)
        ).scalar_one_or_none()
        if area is None:
            raise CountAreaNotFoundError(str(area_id))
        return area

    @staticmethod
    def _item_in_count(session: Session, count_id: UUID, item_id: UUID) -> CountItem:
        item = session.execute(
            select(CountItem)
            .join(CountArea, CountArea.id == CountItem.area_id)
            .where(CountItem.id == item_id, CountArea.count_id == count_id)
        ).scalar_one_or_none()
        if item is None:
            raise CountItemNotFoundError(str(item_id))
        return item

    @staticmethod
    def _area_count(session: Session, count_id: UUID) -> int:
        return len(
            session.execute(
                select(CountArea.id).where(CountArea.count_id == count_id)
            ).all()
        )

    @staticmethod
    def _ledger_quantity(
        session: Session, organization_id: UUID, product_id: UUID, location_id: UUID
    ) -> Decimal:
        quantity = session.execute(
            select(InventoryItem.current_quantity).where(
                InventoryItem.organization_id == organization_id,
                InventoryItem.product_id == product_id,
                InventoryItem.location_id == location_id,
            )
        ).scalar_one_or_none()
        return quantity if quantity is not None else ZERO

    @staticmethod
    def _fill_item(
        item: CountItem,
        full_units: int,
        partial_unit: Decimal,
        notes: str | None,
        actor: Actor,
        now: datetime,
    ) -> None:
        figures = compute_item_figures(full_units, partial_unit, item.expected_qty, item.unit_cost)
        item.full_units = full_units
        item.partial_unit = partial_unit
        item.total_quantity = figures.total_quantity
        item.variance = figures.variance
        item.total_value = figures.total_value
        item.notes = notes
        item.counted_by_id = actor.id
        item.counted_at = now

    @staticmethod
    def _recompute_aggregates(session: Session, count: InventoryCount) -> None:
        rows = session.execute(
            select(CountItem.product_id, CountItem.total_value)
            .join(CountArea, CountArea.id == CountItem.area_id)
            .where(CountArea.count_id == count.id)
        ).all()
        count.total_value = sum((value for _, value in rows), ZERO)
        count.items_counted = len({product_id for product_id, _ in rows})
        session.flush()
