"""
Tests for StockLedger.

Covers:
- Level upserts and their CORRECTION movements
- Transfers: conservation, insufficient stock, destination creation
- Adjustments and waste: non-negativity, movement direction
- Authorization and reference checks on every mutation
- Gated reads: levels, low stock, movement history
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.values import AdjustmentReason, MovementStatus, MovementType
from stock_kernel.exceptions import (
    AccessDeniedError,
    InsufficientStockError,
    InvalidAdjustmentReasonError,
    InvalidQuantityError,
    InvalidTransferError,
    NegativeResultingStockError,
    ProductNotFoundError,
)
from stock_kernel.models.movement import StockMovement
from stock_kernel.selectors.ledger_selector import LedgerSelector


def _quantity(kernel, world, product_id, location_id):
    level = kernel.ledger.get_level(product_id, location_id, actor=world.owner)
    return level.current_quantity if level is not None else None


def _movement_count(kernel):
    return kernel.runner.read(lambda s: s.query(StockMovement).count())


class TestSetLevel:
    def test_creates_row_and_logs_correction(self, kernel, world):
        level = kernel.ledger.set_level(
            world.vodka, world.bar, actor=world.owner, quantity=Decimal("10")
        )
        assert level.current_quantity == Decimal("10")
        assert level.minimum_quantity == Decimal("0")
        assert level.maximum_quantity is None

        (movement,) = kernel.ledger.movement_history(actor=world.owner)
        assert movement.movement_type == MovementType.ADJUSTMENT_IN
        assert movement.reason == AdjustmentReason.CORRECTION
        assert movement.quantity == Decimal("10")
        assert movement.status == MovementStatus.COMPLETED
        assert movement.actor_id == world.owner.id

    def test_idempotent(self, kernel, world, stock):
        stock(world.vodka, world.bar, 10)
        stock(world.vodka, world.bar, 10)
        assert _movement_count(kernel) == 1

    def test_lowering_logs_adjustment_out(self, kernel, world, stock, clock):
        stock(world.vodka, world.bar, 10)
        clock.advance(60)
        stock(world.vodka, world.bar, 4)
        latest = kernel.ledger.movement_history(actor=world.owner, limit=1)[0]
        assert latest.movement_type == MovementType.ADJUSTMENT_OUT
        assert latest.quantity == Decimal("6")
        assert latest.balance_after == Decimal("4")

    def test_par_levels_only(self, kernel, world, stock):
        stock(world.vodka, world.bar, 10)
        level = kernel.ledger.set_level(
            world.vodka,
            world.bar,
            actor=world.owner,
            minimum_quantity=Decimal("3"),
            maximum_quantity=Decimal("24"),
        )
        assert level.current_quantity == Decimal("10")
        assert level.minimum_quantity == Decimal("3")
        assert level.maximum_quantity == Decimal("24")
        assert _movement_count(kernel) == 1

    def test_negative_quantity_rejected(self, kernel, world):
        with pytest.raises(InvalidQuantityError):
            kernel.ledger.set_level(world.vodka, world.bar, actor=world.owner, quantity=-1)

    def test_requires_write_access(self, kernel, world):
        with pytest.raises(AccessDeniedError):
            kernel.ledger.set_level(world.vodka, world.bar, actor=world.viewer, quantity=1)


class TestTransfer:
    def test_scenario_transfer_then_insufficient(self, kernel, world, stock, captured_logs):
        stock(world.vodka, world.bar, 10)

        result = kernel.ledger.transfer(
            world.vodka, world.bar, world.cellar, Decimal("4"), actor=world.owner
        )
        assert result.source.current_quantity == Decimal("6")
        assert result.destination.current_quantity == Decimal("4")
        assert result.movement.movement_type == MovementType.TRANSFER
        assert result.movement.quantity == Decimal("4")
        assert result.movement.from_location_id == world.bar
        assert result.movement.to_location_id == world.cellar

        with pytest.raises(InsufficientStockError) as exc_info:
            kernel.ledger.transfer(
                world.vodka, world.bar, world.cellar, Decimal("7"), actor=world.owner
            )
        assert exc_info.value.available == Decimal("6")

        assert _quantity(kernel, world, world.vodka, world.bar) == Decimal("6")
        assert _quantity(kernel, world, world.vodka, world.cellar) == Decimal("4")
        transfers = kernel.ledger.movement_history(
            actor=world.owner, movement_type=MovementType.TRANSFER
        )
        assert len(transfers) == 1

        messages = [r["message"] for r in captured_logs()]
        assert "stock_transferred" in messages
        rejected = [r for r in captured_logs() if r["message"] == "transfer_rejected"]
        assert rejected[0]["code"] == "INSUFFICIENT_STOCK"

    def test_conserves_total(self, kernel, world, stock):
        stock(world.gin, world.bar, "7.5")
        stock(world.gin, world.cellar, 3)
        kernel.ledger.transfer(world.gin, world.cellar, world.bar, "2.25", actor=world.owner)
        kernel.ledger.transfer(world.gin, world.bar, world.kitchen, 5, actor=world.owner)

        total = kernel.runner.read(
            lambda s: LedgerSelector(s).product_total(world.organization_id, world.gin)
        )
        assert total == Decimal("10.5")

    def test_whole_quantity_can_move(self, kernel, world, stock):
        stock(world.vodka, world.bar, 3)
        result = kernel.ledger.transfer(world.vodka, world.bar, world.cellar, 3, actor=world.owner)
        assert result.source.current_quantity == Decimal("0")

    def test_destination_inherits_par_levels(self, kernel, world, stock):
        kernel.ledger.set_level(
            world.vodka,
            world.bar,
            actor=world.owner,
            quantity=Decimal("10"),
            minimum_quantity=Decimal("3"),
            maximum_quantity=Decimal("12"),
        )
        result = kernel.ledger.transfer(world.vodka, world.bar, world.cellar, 1, actor=world.owner)
        assert result.destination.minimum_quantity == Decimal("3")
        assert result.destination.maximum_quantity == Decimal("12")

    def test_existing_destination_keeps_its_par_levels(self, kernel, world, stock):
        stock(world.vodka, world.bar, 10, minimum=3)
        stock(world.vodka, world.cellar, 1, minimum=8)
        result = kernel.ledger.transfer(world.vodka, world.bar, world.cellar, 1, actor=world.owner)
        assert result.destination.minimum_quantity == Decimal("8")

    def test_missing_source_row(self, kernel, world):
        with pytest.raises(InsufficientStockError) as exc_info:
            kernel.ledger.transfer(world.lager, world.bar, world.cellar, 1, actor=world.owner)
        assert exc_info.value.available == Decimal("0")
        assert kernel.ledger.get_level(world.lager, world.cellar, actor=world.owner) is None

    def test_same_location_rejected(self, kernel, world, stock):
        stock(world.vodka, world.bar, 10)
        with pytest.raises(InvalidTransferError):
            kernel.ledger.transfer(world.vodka, world.bar, world.bar, 1, actor=world.owner)

    @pytest.mark.parametrize("quantity", [0, -1, "abc", None])
    def test_quantity_must_be_positive(self, kernel, world, stock, quantity):
        stock(world.vodka, world.bar, 10)
        with pytest.raises(InvalidQuantityError):
            kernel.ledger.transfer(world.vodka, world.bar, world.cellar, quantity, actor=world.owner)

    def test_quantity_finer_than_storage_rejected(self, kernel, world, stock):
        stock(world.vodka, world.bar, 10)
        movements = _movement_count(kernel)
        with pytest.raises(InvalidQuantityError) as exc_info:
            kernel.ledger.transfer(
                world.vodka, world.bar, world.cellar, Decimal("0.0000000004"), actor=world.owner
            )
        assert exc_info.value.field == "quantity"
        assert _quantity(kernel, world, world.vodka, world.bar) == Decimal("10")
        assert _quantity(kernel, world, world.vodka, world.cellar) is None
        assert _movement_count(kernel) == movements

    def test_supervisor_needs_write_on_both_ends(self, kernel, world, stock):
        stock(world.vodka, world.bar, 10)
        kernel.ledger.transfer(world.vodka, world.bar, world.cellar, 1, actor=world.supervisor)
        with pytest.raises(AccessDeniedError):
            kernel.ledger.transfer(
                world.vodka, world.bar, world.kitchen, 1, actor=world.supervisor
            )

    def test_staff_cannot_transfer(self, kernel, world, stock):
        stock(world.vodka, world.bar, 10)
        with pytest.raises(AccessDeniedError) as exc_info:
            kernel.ledger.transfer(world.vodka, world.bar, world.cellar, 1, actor=world.staff)
        assert exc_info.value.code == "ACCESS_DENIED"

    def test_unknown_product(self, kernel, world):
        with pytest.raises(ProductNotFoundError):
            kernel.ledger.transfer(uuid4(), world.bar, world.cellar, 1, actor=world.owner)


class TestAdjust:
    def test_scenario_negative_result_rejected(self, kernel, world, stock):
        stock(world.vodka, world.bar, 2)
        with pytest.raises(NegativeResultingStockError) as exc_info:
            kernel.ledger.adjust(
                world.vodka, world.bar, Decimal("-3"), AdjustmentReason.LOSS, actor=world.owner
            )
        assert exc_info.value.current == Decimal("2")
        assert _quantity(kernel, world, world.vodka, world.bar) == Decimal("2")

    def test_positive_adjustment(self, kernel, world, stock):
        stock(world.vodka, world.bar, 2)
        result = kernel.ledger.adjust(
            world.vodka, world.bar, 5, AdjustmentReason.FOUND, actor=world.supervisor, notes="shelf"
        )
        assert result.level.current_quantity == Decimal("7")
        assert result.movement.movement_type == MovementType.ADJUSTMENT_IN
        assert result.movement.quantity == Decimal("5")
        assert result.movement.reason == AdjustmentReason.FOUND
        assert result.movement.balance_after == Decimal("7")
        assert result.movement.notes == "shelf"

    def test_negative_adjustment_to_zero(self, kernel, world, stock):
        stock(world.vodka, world.bar, 2)
        result = kernel.ledger.adjust(
            world.vodka, world.bar, -2, AdjustmentReason.CORRECTION, actor=world.owner
        )
        assert result.level.current_quantity == Decimal("0")
        assert result.movement.movement_type == MovementType.ADJUSTMENT_OUT
        assert result.movement.quantity == Decimal("2")

    def test_creates_missing_row_for_positive_delta(self, kernel, world):
        result = kernel.ledger.adjust(
            world.gin, world.kitchen, "1.5", AdjustmentReason.FOUND, actor=world.owner
        )
        assert result.level.current_quantity == Decimal("1.5")

    def test_missing_row_negative_delta(self, kernel, world):
        with pytest.raises(NegativeResultingStockError):
            kernel.ledger.adjust(
                world.gin, world.kitchen, -1, AdjustmentReason.LOSS, actor=world.owner
            )
        assert kernel.ledger.get_level(world.gin, world.kitchen, actor=world.owner) is None

    def test_zero_delta_rejected(self, kernel, world, stock):
        stock(world.vodka, world.bar, 2)
        with pytest.raises(InvalidQuantityError):
            kernel.ledger.adjust(world.vodka, world.bar, 0, AdjustmentReason.OTHER, actor=world.owner)

    def test_delta_finer_than_storage_rejected(self, kernel, world, stock):
        stock(world.vodka, world.bar, 2)
        with pytest.raises(InvalidQuantityError):
            kernel.ledger.adjust(
                world.vodka, world.bar, Decimal("-0.0000000004"), AdjustmentReason.LOSS,
                actor=world.owner,
            )
        assert _quantity(kernel, world, world.vodka, world.bar) == Decimal("2")

    def test_reason_accepts_enum_value(self, kernel, world, stock):
        stock(world.vodka, world.bar, 2)
        result = kernel.ledger.adjust(world.vodka, world.bar, 1, "FOUND", actor=world.owner)
        assert result.movement.reason == AdjustmentReason.FOUND

    def test_unknown_reason_rejected(self, kernel, world, stock, captured_logs):
        stock(world.vodka, world.bar, 2)
        movements = _movement_count(kernel)
        with pytest.raises(InvalidAdjustmentReasonError) as exc_info:
            kernel.ledger.adjust(world.vodka, world.bar, 1, "BORROWED", actor=world.owner)
        assert exc_info.value.code == "INVALID_ADJUSTMENT_REASON"
        assert exc_info.value.reason == "BORROWED"
        assert _movement_count(kernel) == movements
        assert any(r["message"] == "adjustment_reason_rejected" for r in captured_logs())

    def test_unknown_reason_rejected_before_access_check(self, kernel, world, stock):
        stock(world.vodka, world.bar, 2)
        with pytest.raises(InvalidAdjustmentReasonError):
            kernel.ledger.adjust(world.vodka, world.bar, 1, "BORROWED", actor=world.staff)

    def test_staff_cannot_adjust(self, kernel, world, stock):
        stock(world.vodka, world.bar, 2)
        with pytest.raises(AccessDeniedError):
            kernel.ledger.adjust(world.vodka, world.bar, 1, AdjustmentReason.FOUND, actor=world.staff)


class TestRecordWaste:
    def test_waste_reduces_stock(self, kernel, world, stock, captured_logs):
        stock(world.vodka, world.bar, 7)
        result = kernel.ledger.record_waste(world.vodka, world.bar, 2, actor=world.owner)
        assert result.level.current_quantity == Decimal("5")
        assert result.movement.movement_type == MovementType.WASTE
        assert result.movement.reason == AdjustmentReason.DAMAGE
        assert result.movement.quantity == Decimal("2")

        adjusted = [r for r in captured_logs() if r["message"] == "stock_adjusted"]
        assert adjusted[-1]["movement_type"] == "WASTE"

    def test_waste_beyond_stock(self, kernel, world, stock):
        stock(world.vodka, world.bar, 1)
        with pytest.raises(NegativeResultingStockError):
            kernel.ledger.record_waste(world.vodka, world.bar, "1.5", actor=world.owner)

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_quantity_must_be_positive(self, kernel, world, stock, quantity):
        stock(world.vodka, world.bar, 5)
        with pytest.raises(InvalidQuantityError):
            kernel.ledger.record_waste(world.vodka, world.bar, quantity, actor=world.owner)

    def test_unknown_reason_rejected(self, kernel, world, stock):
        stock(world.vodka, world.bar, 5)
        with pytest.raises(InvalidAdjustmentReasonError):
            kernel.ledger.record_waste(
                world.vodka, world.bar, 1, actor=world.owner, reason="SPILLED"
            )
        assert _quantity(kernel, world, world.vodka, world.bar) == Decimal("5")


class TestOrganizationScoping:
    def test_other_organization_denied(self, kernel, world, stock):
        stock(world.vodka, world.bar, 5)
        with pytest.raises(AccessDeniedError):
            kernel.ledger.get_level(world.vodka, world.bar, actor=world.stranger)
        with pytest.raises(AccessDeniedError):
            kernel.ledger.record_waste(world.vodka, world.bar, 1, actor=world.stranger)

    def test_inactive_location_denied_even_to_owner(self, kernel, world):
        with pytest.raises(AccessDeniedError):
            kernel.ledger.set_level(world.vodka, world.closed, actor=world.owner, quantity=1)


class TestReads:
    def test_levels_for_location_ordered_by_product_name(self, kernel, world, stock):
        stock(world.vodka, world.bar, 3)
        stock(world.gin, world.bar, 10, minimum=12)
        stock(world.lager, world.bar, 20)
        levels = kernel.ledger.levels_for_location(world.bar, actor=world.viewer)
        assert [l.product_id for l in levels] == [world.gin, world.lager, world.vodka]

        low = kernel.ledger.levels_for_location(world.bar, actor=world.viewer, low_stock_only=True)
        assert {l.product_id for l in low} == {world.gin, world.vodka}

    def test_low_stock_across_readable_locations(self, kernel, world, stock):
        stock(world.vodka, world.bar, 3)
        stock(world.vodka, world.cellar, 1)
        stock(world.lager, world.cellar, 50)

        everywhere = kernel.ledger.low_stock(actor=world.owner)
        assert {(l.product_id, l.location_id) for l in everywhere} == {
            (world.vodka, world.bar),
            (world.vodka, world.cellar),
        }
        bar_only = kernel.ledger.low_stock(actor=world.viewer)
        assert [(l.product_id, l.location_id) for l in bar_only] == [(world.vodka, world.bar)]

    def test_levels_for_product_respects_scope(self, kernel, world, stock):
        stock(world.vodka, world.bar, 3)
        stock(world.vodka, world.cellar, 4)
        everywhere = kernel.ledger.levels_for_product(world.vodka, actor=world.owner)
        assert everywhere.total_quantity == Decimal("7")
        scoped = kernel.ledger.levels_for_product(world.vodka, actor=world.viewer)
        assert scoped.total_quantity == Decimal("3")
        assert [l.location_id for l in scoped.levels] == [world.bar]

    def test_viewer_cannot_read_unassigned_location(self, kernel, world):
        with pytest.raises(AccessDeniedError):
            kernel.ledger.levels_for_location(world.cellar, actor=world.viewer)

    def test_history_newest_first_and_visible_from_both_ends(self, kernel, world, stock, clock):
        stock(world.vodka, world.bar, 10)
        clock.advance(60)
        kernel.ledger.transfer(world.vodka, world.bar, world.cellar, 2, actor=world.owner)
        clock.advance(60)
        kernel.ledger.record_waste(world.vodka, world.cellar, 1, actor=world.owner)

        bar = kernel.ledger.movement_history(actor=world.owner, location_id=world.bar)
        assert [m.movement_type for m in bar] == [MovementType.TRANSFER, MovementType.ADJUSTMENT_IN]

        cellar = kernel.ledger.movement_history(actor=world.owner, location_id=world.cellar)
        assert [m.movement_type for m in cellar] == [MovementType.WASTE, MovementType.TRANSFER]

        page = kernel.ledger.movement_history(actor=world.owner, limit=1, offset=1)
        assert [m.movement_type for m in page] == [MovementType.TRANSFER]

    def test_history_filters(self, kernel, world, stock):
        stock(world.vodka, world.bar, 10)
        stock(world.gin, world.bar, 10)
        only_gin = kernel.ledger.movement_history(actor=world.owner, product_id=world.gin)
        assert [m.product_id for m in only_gin] == [world.gin]

    def test_viewer_history_limited_to_bar(self, kernel, world, stock):
        stock(world.vodka, world.cellar, 10)
        assert kernel.ledger.movement_history(actor=world.viewer) == ()
