"""
ORM-Level Immutability Enforcement for the stock ledger.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable              | Rule
--------------------|-----------------------------|---------------------------------
StockMovement       | ALWAYS (from creation)      | Movement log is append-only
InventoryCount      | After status = APPROVED     | Approval provenance is final
CountArea           | Parent count APPROVED       | Approved results are final
CountItem           | Parent count APPROVED       | Approved results are final
InventoryItem       | Never deletable             | Ledger rows are only overwritten

SQLAlchemy fires mapper events before UPDATE/DELETE statements are emitted.
The listeners below inspect attribute history and raise
ImmutabilityViolationError, which aborts the flush and the transaction.

updated_at / updated_by_id may always change; they are row metadata.

Usage:

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup (create_tables does it)

Tests that need to violate the rules on purpose may call
unregister_immutability_listeners() and re-register afterwards.
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_movement_update(mapper, connection, target):
    """Movements are append-only: any field change is rejected."""
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in _METADATA_FIELDS:
            continue
        if attr.history.has_changes():
            raise _blocked(
                "StockMovement",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a stock movement",
                attr.key,
            )


def _check_movement_delete(mapper, connection, target):
    """Movements are never deleted."""
    raise _blocked("StockMovement", target.id, "DELETE", "Stock movements cannot be deleted")


def _was_approved(target) -> bool:
    from stock_kernel.models.count import CountStatus

    status_history = get_history(target, "status")
    if status_history.deleted:
        # Status is changing; what matters is where it came from.
        return status_history.deleted[0] == CountStatus.APPROVED
    if status_history.added:
        return False
    return target.status == CountStatus.APPROVED


def _check_count_update(mapper, connection, target):
    """
    Reject changes to a count that was already APPROVED before this flush.

    The COMPLETED -> APPROVED transition itself is allowed, together with the
    approved_at / approved_by_id fields written alongside it.
    """
    if not _was_approved(target):
        return
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in _METADATA_FIELDS:
            continue
        if attr.history.has_changes():
            raise _blocked(
                "InventoryCount",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on an approved count",
                attr.key,
            )


def _check_count_delete(mapper, connection, target):
    if _was_approved(target):
        raise _blocked("InventoryCount", target.id, "DELETE", "Approved counts cannot be deleted")


def _parent_count_approved(connection, count_id) -> bool:
    from stock_kernel.models.count import CountStatus, InventoryCount

    status = connection.execute(
        select(InventoryCount.status).where(InventoryCount.id == count_id)
    ).scalar_one_or_none()
    return status == CountStatus.APPROVED


def _area_count_id(connection, area_id):
    from stock_kernel.models.count import CountArea

    return connection.execute(
        select(CountArea.count_id).where(CountArea.id == area_id)
    ).scalar_one_or_none()


def _check_area_update(mapper, connection, target):
    """Areas of an approved count are frozen along with it."""
    if _parent_count_approved(connection, target.count_id):
        raise _blocked("CountArea", target.id, "UPDATE", "Areas of an approved count are frozen")


def _check_area_delete(mapper, connection, target):
    if _parent_count_approved(connection, target.count_id):
        raise _blocked("CountArea", target.id, "DELETE", "Areas of an approved count are frozen")


def _check_count_item_update(mapper, connection, target):
    """Counted lines of an approved count are frozen along with it."""
    if _parent_count_approved(connection, _area_count_id(connection, target.area_id)):
        raise _blocked("CountItem", target.id, "UPDATE", "Items of an approved count are frozen")


def _check_count_item_delete(mapper, connection, target):
    if _parent_count_approved(connection, _area_count_id(connection, target.area_id)):
        raise _blocked("CountItem", target.id, "DELETE", "Items of an approved count are frozen")


def _check_inventory_item_delete(mapper, connection, target):
    """Ledger rows are overwritten, never removed."""
    raise _blocked("InventoryItem", target.id, "DELETE", "Inventory ledger rows cannot be deleted")


def _listeners():
    from stock_kernel.models.count import CountArea, CountItem, InventoryCount
    from stock_kernel.models.inventory import InventoryItem
    from stock_kernel.models.movement import StockMovement

    return (
        (StockMovement, "before_update", _check_movement_update),
        (StockMovement, "before_delete", _check_movement_delete),
        (InventoryCount, "before_update", _check_count_update),
        (InventoryCount, "before_delete", _check_count_delete),
        (CountArea, "before_update", _check_area_update),
        (CountArea, "before_delete", _check_area_delete),
        (CountItem, "before_update", _check_count_item_update),
        (CountItem, "before_delete", _check_count_item_delete),
        (InventoryItem, "before_delete", _check_inventory_item_delete),
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners (idempotent).

    Call after the models are imported and before any write.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
