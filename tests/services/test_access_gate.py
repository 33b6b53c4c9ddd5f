"""
Tests for AccessGate: location scoping by role and assignment.
"""

from uuid import uuid4

import pytest

from stock_kernel.domain.access import PERM_ADJUST, PERM_APPROVE_COUNT, PERM_COUNT, PERM_READ
from stock_kernel.domain.values import AccessLevel, Actor
from stock_kernel.exceptions import AccessDeniedError


@pytest.fixture
def gate(kernel):
    return kernel.gate


class TestAccessibleLocations:
    def test_elevated_roles_see_active_locations(self, gate, world):
        expected = {world.bar, world.cellar, world.kitchen}
        for actor in (world.owner, world.manager, world.buyer):
            assert gate.accessible_location_ids(actor, AccessLevel.MANAGE) == expected

    def test_assignment_levels(self, gate, world):
        assert gate.accessible_location_ids(world.supervisor, AccessLevel.READ) == {
            world.bar,
            world.cellar,
        }
        assert gate.accessible_location_ids(world.supervisor, AccessLevel.WRITE) == {
            world.bar,
            world.cellar,
        }
        assert gate.accessible_location_ids(world.supervisor, AccessLevel.MANAGE) == {world.bar}
        assert gate.accessible_location_ids(world.staff, AccessLevel.WRITE) == {world.bar}
        assert gate.accessible_location_ids(world.viewer, AccessLevel.READ) == {world.bar}
        assert gate.accessible_location_ids(world.viewer, AccessLevel.WRITE) == frozenset()

    def test_inactive_location_excluded(self, gate, world):
        assert world.closed not in gate.accessible_location_ids(world.owner)
        assert not gate.can_access(world.owner, world.closed, AccessLevel.READ)

    def test_other_organization(self, gate, world):
        assert gate.accessible_location_ids(world.stranger) == frozenset()
        assert not gate.can_access(world.stranger, world.bar, AccessLevel.READ)

    def test_assignment_for_another_user(self, gate, world):
        impostor = Actor(id=uuid4(), organization_id=world.organization_id, role="staff")
        assert gate.accessible_location_ids(impostor) == frozenset()


class TestCheck:
    def test_allowed(self, gate, world):
        assert gate.check(world.staff, world.bar, AccessLevel.WRITE, PERM_COUNT) == (True, "")

    def test_unknown_role(self, gate, world):
        ghost = Actor(id=world.owner.id, organization_id=world.organization_id, role="janitor")
        allowed, reason = gate.check(ghost, world.bar, AccessLevel.READ)
        assert not allowed
        assert "unknown role" in reason

    def test_missing_permission(self, gate, world):
        allowed, reason = gate.check(world.staff, world.bar, AccessLevel.WRITE, PERM_ADJUST)
        assert not allowed
        assert PERM_ADJUST in reason

    def test_missing_level(self, gate, world):
        allowed, reason = gate.check(world.staff, world.bar, AccessLevel.MANAGE)
        assert not allowed
        assert "manage" in reason.lower()

    def test_require_raises_and_logs(self, gate, world, captured_logs):
        with pytest.raises(AccessDeniedError):
            gate.require(world.supervisor, world.cellar, AccessLevel.MANAGE, PERM_APPROVE_COUNT)
        denied = [r for r in captured_logs() if r["message"] == "access_denied"]
        assert denied and denied[0]["role"] == "supervisor"

    def test_require_permission(self, gate, world):
        gate.require_permission(world.viewer, PERM_READ)
        with pytest.raises(AccessDeniedError):
            gate.require_permission(world.viewer, PERM_COUNT)
