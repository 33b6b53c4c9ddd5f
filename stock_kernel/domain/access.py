"""
Access policy (``stock_kernel.domain.access``).

Responsibility:
    Pure rules for deciding whether a role may act at a location: which roles
    are elevated (organization-wide access), which named permissions each
    role holds, and how assignment flags map onto access levels.

Architecture position:
    Kernel > Domain.  ZERO I/O.  The AccessGate service feeds these rules
    with rows from the database; stock_config builds the policy from YAML.

Invariants enforced:
    - MANAGE implies WRITE implies READ.
    - A role absent from the policy holds no permissions.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from stock_kernel.domain.values import AccessLevel

ROLE_HIERARCHY: Mapping[str, int] = MappingProxyType({
    "viewer": 1,
    "staff": 2,
    "supervisor": 3,
    "buyer": 4,
    "inventoryManager": 5,
    "manager": 6,
    "admin": 7,
    "owner": 8,
})

DEFAULT_ELEVATED_ROLES = frozenset({"owner", "admin", "manager", "buyer"})

# Named permissions checked by the kernel's services.
PERM_READ = "inventory.read"
PERM_WRITE = "inventory.write"
PERM_COUNT = "inventory.count"
PERM_ADJUST = "inventory.adjust"
PERM_TRANSFER = "inventory.transfer"
PERM_APPROVE_COUNT = "inventory.approve_count"

ALL_PERMISSIONS = frozenset({
    PERM_READ,
    PERM_WRITE,
    PERM_COUNT,
    PERM_ADJUST,
    PERM_TRANSFER,
    PERM_APPROVE_COUNT,
})


def _default_role_permissions() -> Mapping[str, frozenset[str]]:
    return MappingProxyType({
        "owner": ALL_PERMISSIONS,
        "admin": ALL_PERMISSIONS,
        "manager": ALL_PERMISSIONS,
        "inventoryManager": ALL_PERMISSIONS,
        "buyer": frozenset({PERM_READ, PERM_WRITE, PERM_COUNT, PERM_TRANSFER}),
        "supervisor": frozenset({
            PERM_READ, PERM_WRITE, PERM_COUNT, PERM_ADJUST, PERM_TRANSFER,
        }),
        "staff": frozenset({PERM_READ, PERM_COUNT}),
        "viewer": frozenset({PERM_READ}),
    })


@dataclass(frozen=True)
class AccessPolicy:
    """
    Role configuration consulted by the AccessGate.

    Contract:
        elevated_roles see every active location of their organization.
        role_permissions maps role name -> permission names.
    """

    elevated_roles: frozenset[str] = DEFAULT_ELEVATED_ROLES
    role_permissions: Mapping[str, frozenset[str]] = field(
        default_factory=_default_role_permissions
    )

    def is_elevated(self, role: str) -> bool:
        return role in self.elevated_roles

    def has_permission(self, role: str, permission: str) -> bool:
        return permission in self.role_permissions.get(role, frozenset())

    def is_known_role(self, role: str) -> bool:
        return role in self.role_permissions or role in self.elevated_roles


def assignment_grants(
    level: AccessLevel,
    *,
    can_read: bool,
    can_write: bool,
    can_manage: bool,
) -> bool:
    """Whether a location assignment's flags satisfy the requested level."""
    if level == AccessLevel.MANAGE:
        return can_manage
    if level == AccessLevel.WRITE:
        return can_write or can_manage
    return can_read or can_write or can_manage
