"""Tests for the pure access rules."""

import pytest

from stock_kernel.domain.access import (
    ALL_PERMISSIONS,
    PERM_ADJUST,
    PERM_APPROVE_COUNT,
    PERM_COUNT,
    PERM_READ,
    PERM_TRANSFER,
    AccessPolicy,
    assignment_grants,
)
from stock_kernel.domain.values import AccessLevel


class TestAccessPolicy:
    def test_default_elevated_roles(self):
        policy = AccessPolicy()
        for role in ("owner", "admin", "manager", "buyer"):
            assert policy.is_elevated(role)
        assert not policy.is_elevated("supervisor")

    @pytest.mark.parametrize("role", ["owner", "admin", "manager", "inventoryManager"])
    def test_full_roles_hold_everything(self, role):
        policy = AccessPolicy()
        assert all(policy.has_permission(role, p) for p in ALL_PERMISSIONS)

    def test_restricted_roles(self):
        policy = AccessPolicy()
        assert policy.has_permission("staff", PERM_COUNT)
        assert not policy.has_permission("staff", PERM_ADJUST)
        assert policy.has_permission("viewer", PERM_READ)
        assert not policy.has_permission("viewer", PERM_COUNT)
        assert policy.has_permission("buyer", PERM_TRANSFER)
        assert not policy.has_permission("buyer", PERM_APPROVE_COUNT)
        assert not policy.has_permission("supervisor", PERM_APPROVE_COUNT)

    def test_unknown_role_holds_nothing(self):
        policy = AccessPolicy()
        assert not policy.is_known_role("bouncer")
        assert not policy.has_permission("bouncer", PERM_READ)


class TestAssignmentGrants:
    @pytest.mark.parametrize(
        "flags, read, write, manage",
        [
            ((True, False, False), True, False, False),
            ((False, True, False), True, True, False),
            ((False, False, True), True, True, True),
            ((False, False, False), False, False, False),
        ],
    )
    def test_levels_imply_lower_levels(self, flags, read, write, manage):
        can_read, can_write, can_manage = flags
        grants = {
            level: assignment_grants(
                level, can_read=can_read, can_write=can_write, can_manage=can_manage
            )
            for level in AccessLevel
        }
        assert grants == {
            AccessLevel.READ: read,
            AccessLevel.WRITE: write,
            AccessLevel.MANAGE: manage,
        }
