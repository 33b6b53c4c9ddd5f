"""
AccessGate -- location-level authorization for stock operations.

Responsibility:
    Decide whether an actor may read, write or manage stock at a location,
    and whether the actor's role holds a named inventory permission.

Architecture position:
    Kernel > Services.  Consulted by StockLedger and CountWorkflow before they
    open a write transaction.  Reads locations and assignments in its own
    short read-only session; the policy comes from stock_config via bridges.

Invariants enforced:
    - Elevated roles see every active location of their own organization.
    - Other roles see only active assignments whose flags satisfy the level.
    - Unknown roles, inactive locations and other organizations' locations
      yield no access.
    - The denial message does not reveal whether the location exists.

Failure modes:
    - AccessDeniedError from require().
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.transaction import TransactionRunner
from stock_kernel.domain.access import AccessPolicy, assignment_grants
from stock_kernel.domain.values import AccessLevel, Actor
from stock_kernel.exceptions import AccessDeniedError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.access import UserLocationAssignment
from stock_kernel.models.location import Location

logger = get_logger("services.access_gate")


class AccessGate:
    """
    Resolves actor -> accessible locations and checks permissions.

    Contract:
        check() returns ``(allowed, reason)``; require() raises instead.

    Non-goals:
        - Does not resolve identity or roles; the caller supplies an Actor.
    """

    def __init__(self, runner: TransactionRunner, policy: AccessPolicy | None = None):
        self._runner = runner
        self._policy = policy or AccessPolicy()

    @property
    def policy(self) -> AccessPolicy:
        return self._policy

    def accessible_location_ids(
        self, actor: Actor, level: AccessLevel = AccessLevel.READ
    ) -> frozenset[UUID]:
        """Every location id the actor may use at the given level."""
        return self._runner.read(
            lambda session: self._accessible(session, actor, AccessLevel(level))
        )

    def can_access(self, actor: Actor, location_id: UUID, level: AccessLevel) -> bool:
        return location_id in self.accessible_location_ids(actor, level)

    def has_permission(self, actor: Actor, permission: str) -> bool:
        return self._policy.has_permission(actor.role, permission)

    def check(
        self,
        actor: Actor,
        location_id: UUID,
        level: AccessLevel,
        permission: str | None = None,
    ) -> tuple[bool, str]:
        """(allowed, reason).  reason is empty when allowed."""
        if not self._policy.is_known_role(actor.role):
            return (False, f"unknown role '{actor.role}'")
        if permission is not None and not self.has_permission(actor, permission):
            return (False, f"role '{actor.role}' lacks permission '{permission}'")
        if not self.can_access(actor, location_id, level):
            return (False, f"no {AccessLevel(level).value} access to location")
        return (True, "")

    def require(
        self,
        actor: Actor,
        location_id: UUID,
        level: AccessLevel,
        permission: str | None = None,
    ) -> None:
        """
        Raise AccessDeniedError unless check() allows the operation.
        """
        allowed, reason = self.check(actor, location_id, level, permission)
        if allowed:
            return
        logger.warning(
            "access_denied",
            extra={
                "actor_id": str(actor.id),
                "role": actor.role,
                "location_id": str(location_id),
                "level": AccessLevel(level).value,
                "permission": permission,
                "reason": reason,
            },
        )
        raise AccessDeniedError(
            actor_id=str(actor.id),
            location_id=str(location_id),
            level=AccessLevel(level).value,
            permission=permission,
        )

    def require_permission(self, actor: Actor, permission: str) -> None:
        """Organization-wide permission check, for operations not tied to one location."""
        if self.has_permission(actor, permission):
            return
        logger.warning(
            "permission_denied",
            extra={"actor_id": str(actor.id), "role": actor.role, "permission": permission},
        )
        raise AccessDeniedError(
            actor_id=str(actor.id),
            location_id=None,
            level=AccessLevel.READ.value,
            permission=permission,
        )

    def _accessible(
        self, session: Session, actor: Actor, level: AccessLevel
    ) -> frozenset[UUID]:
        if self._policy.is_elevated(actor.role):
            rows = session.execute(
                select(Location.id).where(
                    Location.organization_id == actor.organization_id,
                    Location.is_active.is_(True),
                )
            ).scalars()
            return frozenset(rows)

        if not self._policy.is_known_role(actor.role):
            return frozenset()

        rows = session.execute(
            select(
                UserLocationAssignment.location_id,
                UserLocationAssignment.can_read,
                UserLocationAssignment.can_write,
                UserLocationAssignment.can_manage,
            )
            .join(Location, Location.id == UserLocationAssignment.location_id)
            .where(
                UserLocationAssignment.user_id == actor.id,
                UserLocationAssignment.organization_id == actor.organization_id,
                UserLocationAssignment.is_active.is_(True),
                Location.organization_id == actor.organization_id,
                Location.is_active.is_(True),
            )
        ).all()
        return frozenset(
            row.location_id
            for row in rows
            if assignment_grants(
                level,
                can_read=row.can_read,
                can_write=row.can_write,
                can_manage=row.can_manage,
            )
        )
