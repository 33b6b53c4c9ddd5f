"""
LedgerWriter -- row locking and paired quantity/movement writes.

Responsibility:
    The only code that changes ``InventoryItem.current_quantity``.  Locks
    ledger rows with SELECT ... FOR UPDATE, lazily creates missing rows,
    and writes the StockMovement that explains each change in the same
    flush.

Architecture position:
    Kernel > Services -- session-bound, flush-only.  Used by StockLedger and
    ReconciliationApplier inside transactions opened by a TransactionRunner.

Invariants enforced:
    - Every quantity change is paired with exactly one movement.
    - No committed quantity is negative: callers check before writing, and
      set_quantity() refuses a negative target outright.
    - Multi-row locks are taken in ascending location-id order so that two
      transfers in opposite directions cannot deadlock.

Failure modes:
    - ValueError from set_quantity() on a negative target (a caller bug;
      domain errors are raised by the facades before reaching here).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.domain.quantities import ZERO
from stock_kernel.domain.values import (
    AdjustmentReason,
    MovementStatus,
    MovementType,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory import InventoryItem
from stock_kernel.models.movement import StockMovement
from stock_kernel.services.base import BaseService

logger = get_logger("services.ledger_writer")


class LedgerWriter(BaseService):
    """
    Session-bound writer for ledger rows and the movement log.

    Contract:
        Caller holds an open transaction.  Methods flush; they never commit.

    Guarantees:
        - lock_item() returns a row that no other transaction can change
          until this one ends (row lock on PostgreSQL, database write lock
          on SQLite).
        - lock_or_create_item() never raises IntegrityError for a
          concurrent insert of the same key.
    """

    def __init__(self, session: Session, actor_id: UUID):
        super().__init__(session)
        self._actor_id = actor_id

    def lock_item(
        self, organization_id: UUID, product_id: UUID, location_id: UUID
    ) -> InventoryItem | None:
        """SELECT ... FOR UPDATE on one ledger row, or None if it does not exist."""
        return self.session.execute(
            select(InventoryItem)
            .where(
                InventoryItem.organization_id == organization_id,
                InventoryItem.product_id == product_id,
                InventoryItem.location_id == location_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock_items(
        self, organization_id: UUID, product_id: UUID, location_ids: list[UUID]
    ) -> dict[UUID, InventoryItem | None]:
        """Lock several rows of one product in ascending location-id order."""
        locked: dict[UUID, InventoryItem | None] = {}
        for location_id in sorted(set(location_ids), key=str):
            locked[location_id] = self.lock_item(organization_id, product_id, location_id)
        return locked

    def lock_or_create_item(
        self,
        organization_id: UUID,
        product_id: UUID,
        location_id: UUID,
        *,
        minimum_quantity: Decimal = ZERO,
        maximum_quantity: Decimal | None = None,
    ) -> InventoryItem:
        """
        Lock the ledger row, creating it with zero quantity if absent.

        A concurrent creator wins inside a savepoint; we then re-lock its row.
        """
        item = self.lock_item(organization_id, product_id, location_id)
        if item is not None:
            return item

        savepoint = self.session.begin_nested()
        try:
            item = InventoryItem(
                organization_id=organization_id,
                product_id=product_id,
                location_id=location_id,
                current_quantity=ZERO,
                minimum_quantity=minimum_quantity,
                maximum_quantity=maximum_quantity,
                created_by_id=self._actor_id,
            )
            self.session.add(item)
            self.session.flush()
            savepoint.commit()
            logger.debug(
                "inventory_item_created",
                extra={"product_id": str(product_id), "location_id": str(location_id)},
            )
            return item
        except IntegrityError:
            logger.debug(
                "inventory_item_create_race",
                extra={"product_id": str(product_id), "location_id": str(location_id)},
            )
            savepoint.rollback()
            self.session.expire_all()
            return self.session.execute(
                select(InventoryItem)
                .where(
                    InventoryItem.organization_id == organization_id,
                    InventoryItem.product_id == product_id,
                    InventoryItem.location_id == location_id,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()

    def set_quantity(
        self,
        item: InventoryItem,
        new_quantity: Decimal,
        *,
        movement_type: MovementType,
        completed_at: datetime,
        reason: AdjustmentReason | None = None,
        notes: str | None = None,
        count_id: UUID | None = None,
    ) -> StockMovement | None:
        """
        Overwrite a locked row's quantity and log the difference.

        Returns the movement, or None when the quantity did not change.
        movement_type must describe the direction of the change; quantity on
        the movement is always |new - old|.
        """
        if new_quantity < ZERO:
            raise ValueError(f"Refusing to write negative quantity {new_quantity}")
        previous = item.current_quantity
        delta = new_quantity - previous
        if delta == ZERO:
            return None
        item.current_quantity = new_quantity
        item.updated_by_id = self._actor_id
        movement = self._append(
            organization_id=item.organization_id,
            product_id=item.product_id,
            from_location_id=item.location_id,
            to_location_id=item.location_id,
            quantity=abs(delta),
            movement_type=movement_type,
            completed_at=completed_at,
            reason=reason,
            notes=notes,
            count_id=count_id,
            balance_after=new_quantity,
        )
        self.session.flush()
        return movement

    def move(
        self,
        source: InventoryItem,
        destination: InventoryItem,
        quantity: Decimal,
        *,
        completed_at: datetime,
        notes: str | None = None,
    ) -> StockMovement:
        """Decrement source, increment destination, log one TRANSFER."""
        if quantity <= ZERO or source.current_quantity < quantity:
            raise ValueError("Transfer quantity must be positive and covered by source")
        source.current_quantity = source.current_quantity - quantity
        source.updated_by_id = self._actor_id
        destination.current_quantity = destination.current_quantity + quantity
        destination.updated_by_id = self._actor_id
        movement = self._append(
            organization_id=source.organization_id,
            product_id=source.product_id,
            from_location_id=source.location_id,
            to_location_id=destination.location_id,
            quantity=quantity,
            movement_type=MovementType.TRANSFER,
            completed_at=completed_at,
            notes=notes,
        )
        self.session.flush()
        return movement

    def _append(self, **fields) -> StockMovement:
        movement = StockMovement(
            status=MovementStatus.COMPLETED,
            actor_id=self._actor_id,
            **fields,
        )
        self.session.add(movement)
        return movement
