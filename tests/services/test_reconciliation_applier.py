"""
Tests for ReconciliationApplier.

Covers:
- Per-product aggregation across areas, overwrite semantics
- COUNT_IN / COUNT_OUT movements tied to the count, last_count_date
- Idempotent re-application
- Per-product failure isolation and retry
"""

from decimal import Decimal

import pytest

from stock_kernel.domain.values import MovementType
from stock_kernel.exceptions import (
    AccessDeniedError,
    CountNotApprovedError,
    InvalidQuantityError,
)
from stock_kernel.services.ledger_writer import LedgerWriter


@pytest.fixture
def approve(kernel, world):
    """Count ``lines`` ({area name: {product: units}}) at a location and approve it."""

    def _approve(location_id, lines, *, actor=None):
        actor = actor or world.owner
        count = kernel.counts.create_count(location_id, actor=actor, areas=list(lines))
        by_name = {area.name: area.id for area in count.areas}
        for area_name, products in lines.items():
            for product_id, units in products.items():
                kernel.counts.submit_item(by_name[area_name], product_id, units, actor=actor)
        kernel.counts.complete_count(count.id, actor=actor)
        return kernel.counts.approve_count(count.id, actor=actor)

    return _approve


def _level(kernel, world, product_id, location_id):
    return kernel.ledger.get_level(product_id, location_id, actor=world.owner)


class TestApplyApprovedCount:
    def test_areas_aggregate_per_product(self, kernel, world, stock, approve, clock):
        stock(world.vodka, world.bar, 10)
        clock.advance(60)
        result = approve(world.bar, {"Back Bar": {world.vodka: 5}, "Beer Cooler": {world.vodka: 3}})

        assert result.reconciliation.is_complete
        [applied] = result.reconciliation.applied
        assert applied.previous_quantity == Decimal("10")
        assert applied.new_quantity == Decimal("8")

        level = _level(kernel, world, world.vodka, world.bar)
        assert level.current_quantity == Decimal("8")
        assert level.last_count_date == clock.now()

        [movement] = kernel.ledger.movement_history(
            actor=world.owner, count_id=result.count.id
        )
        assert movement.movement_type == MovementType.COUNT_OUT
        assert movement.quantity == Decimal("2")
        assert movement.balance_after == Decimal("8")
        assert movement.id == applied.movement_id

    def test_missing_row_is_created(self, kernel, world, approve):
        result = approve(world.kitchen, {"Prep Area": {world.gin: 2}})

        level = _level(kernel, world, world.gin, world.kitchen)
        assert level.current_quantity == Decimal("2")
        [movement] = kernel.ledger.movement_history(actor=world.owner, count_id=result.count.id)
        assert movement.movement_type == MovementType.COUNT_IN
        assert movement.quantity == Decimal("2")

    def test_uncounted_products_untouched(self, kernel, world, stock, approve):
        stock(world.gin, world.bar, 7)
        approve(world.bar, {"Back Bar": {world.vodka: 1}})
        assert _level(kernel, world, world.gin, world.bar).current_quantity == Decimal("7")

    def test_other_locations_untouched(self, kernel, world, stock, approve):
        stock(world.vodka, world.cellar, 12)
        approve(world.bar, {"Back Bar": {world.vodka: 1}})
        assert _level(kernel, world, world.vodka, world.cellar).current_quantity == Decimal("12")

    def test_matching_count_writes_no_movement(self, kernel, world, stock, approve):
        stock(world.vodka, world.bar, 4)
        result = approve(world.bar, {"Back Bar": {world.vodka: 4}})
        [applied] = result.reconciliation.applied
        assert applied.movement_id is None
        assert kernel.ledger.movement_history(actor=world.owner, count_id=result.count.id) == ()
        assert _level(kernel, world, world.vodka, world.bar).last_count_date is not None


class TestReapply:
    def test_reapply_is_idempotent(self, kernel, world, stock, approve):
        stock(world.vodka, world.bar, 10)
        result = approve(world.bar, {"Back Bar": {world.vodka: 8}})
        count_id = result.count.id

        again = kernel.counts.reapply_count(count_id, actor=world.manager)
        assert [a.movement_id for a in again.applied] == [None]
        assert len(kernel.ledger.movement_history(actor=world.owner, count_id=count_id)) == 1

    def test_reapply_overwrites_drift(self, kernel, world, stock, approve, clock):
        stock(world.vodka, world.bar, 10)
        result = approve(world.bar, {"Back Bar": {world.vodka: 8}})
        clock.advance(60)
        stock(world.vodka, world.bar, 15)

        clock.advance(60)
        again = kernel.counts.reapply_count(result.count.id, actor=world.manager)
        assert again.applied[0].previous_quantity == Decimal("15")
        assert _level(kernel, world, world.vodka, world.bar).current_quantity == Decimal("8")

    def test_reapply_needs_approval_rights(self, kernel, world, approve):
        result = approve(world.bar, {"Back Bar": {world.vodka: 1}})
        with pytest.raises(AccessDeniedError):
            kernel.counts.reapply_count(result.count.id, actor=world.supervisor)

    def test_unapproved_count_rejected(self, kernel, world):
        count = kernel.counts.create_count(world.bar, actor=world.owner)
        with pytest.raises(CountNotApprovedError):
            kernel.applier.apply(world.organization_id, count.id, applied_by_id=world.owner.id)

    def test_product_filter(self, kernel, world, stock, approve):
        stock(world.vodka, world.bar, 10)
        stock(world.gin, world.bar, 10)
        result = approve(world.bar, {"Back Bar": {world.vodka: 1, world.gin: 2}})
        stock(world.vodka, world.bar, 30)
        stock(world.gin, world.bar, 30)

        again = kernel.counts.reapply_count(
            result.count.id, actor=world.owner, product_ids=[world.gin]
        )
        assert [a.product_id for a in again.applied] == [world.gin]
        assert _level(kernel, world, world.gin, world.bar).current_quantity == Decimal("2")
        assert _level(kernel, world, world.vodka, world.bar).current_quantity == Decimal("30")


class TestFailureIsolation:
    def test_failed_product_reported_and_retried(self, kernel, world, stock, approve, monkeypatch):
        stock(world.vodka, world.bar, 10)
        stock(world.gin, world.bar, 10)
        original = LedgerWriter.set_quantity
        failing = world.gin

        def flaky_set_quantity(self, item, new_quantity, **kwargs):
            if item.product_id == failing:
                raise InvalidQuantityError("quantity", new_quantity, "simulated failure")
            return original(self, item, new_quantity, **kwargs)

        monkeypatch.setattr(LedgerWriter, "set_quantity", flaky_set_quantity)
        result = approve(world.bar, {"Back Bar": {world.vodka: 4, world.gin: 6}})

        reconciliation = result.reconciliation
        assert not reconciliation.is_complete
        assert reconciliation.failed_product_ids == (world.gin,)
        assert reconciliation.failed[0].error_code == "INVALID_QUANTITY"
        assert [a.product_id for a in reconciliation.applied] == [world.vodka]
        assert _level(kernel, world, world.vodka, world.bar).current_quantity == Decimal("4")
        assert _level(kernel, world, world.gin, world.bar).current_quantity == Decimal("10")

        monkeypatch.undo()
        retry = kernel.counts.reapply_count(
            result.count.id, actor=world.owner, product_ids=reconciliation.failed_product_ids
        )
        assert retry.is_complete
        assert _level(kernel, world, world.gin, world.bar).current_quantity == Decimal("6")
