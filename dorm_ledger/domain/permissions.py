"""
Capabilities and the acting user.

The ledger never looks up users or roles itself.  Callers pass an Actor
carrying the permissions the authentication layer granted; services call
require_permission() before touching the database.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from dorm_ledger.exceptions import UnauthorizedError


class Permission(str, Enum):
    """Capabilities checked by the ledger, as "resource:action" strings."""

    PAYMENTS_CREATE = "payments:create"
    PAYMENTS_READ = "payments:read"
    OUTGOING_CREATE = "outgoing:create"
    OUTGOING_APPROVE = "outgoing:approve"
    OUTGOING_DELETE = "outgoing:delete"
    INSURANCE_CREATE = "insurance:create"
    INSURANCE_UPDATE = "insurance:update"
    EXPENSES_CREATE = "expenses:create"
    EXPENSES_UPDATE = "expenses:update"
    EXPENSES_DELETE = "expenses:delete"
    INSTALLMENTS_MANAGE = "installments:manage"


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    ACCOUNTANT = "ACCOUNTANT"
    STUDENT = "STUDENT"


DEFAULT_ROLE_GRANTS: Mapping[Role, frozenset[Permission]] = {
    Role.SUPER_ADMIN: frozenset(Permission),
    Role.ADMIN: frozenset({
        Permission.PAYMENTS_CREATE,
        Permission.PAYMENTS_READ,
        Permission.OUTGOING_APPROVE,
        Permission.INSURANCE_CREATE,
        Permission.INSURANCE_UPDATE,
        Permission.EXPENSES_CREATE,
        Permission.EXPENSES_UPDATE,
        Permission.EXPENSES_DELETE,
        Permission.INSTALLMENTS_MANAGE,
    }),
    Role.ACCOUNTANT: frozenset({
        Permission.PAYMENTS_CREATE,
        Permission.PAYMENTS_READ,
        Permission.OUTGOING_CREATE,
        Permission.OUTGOING_DELETE,
        Permission.INSURANCE_CREATE,
        Permission.INSURANCE_UPDATE,
        Permission.EXPENSES_CREATE,
    }),
    Role.STUDENT: frozenset({Permission.PAYMENTS_READ}),
}


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf an operation runs."""

    actor_id: UUID
    permissions: frozenset[Permission] = field(default_factory=frozenset)

    @classmethod
    def with_roles(
        cls,
        actor_id: UUID,
        roles: Iterable[Role | str],
        grants: Mapping[Role, frozenset[Permission]] = DEFAULT_ROLE_GRANTS,
    ) -> Actor:
        """Build an actor holding the union of the grants of ``roles``."""
        permissions: set[Permission] = set()
        for role in roles:
            permissions |= grants.get(Role(role), frozenset())
        return cls(actor_id=actor_id, permissions=frozenset(permissions))

    def has(self, permission: Permission) -> bool:
        return permission in self.permissions


def require_permission(actor: Actor, permission: Permission) -> None:
    """
    Raises:
        UnauthorizedError: If ``actor`` does not hold ``permission``.
    """
    if not actor.has(permission):
        raise UnauthorizedError(actor_id=str(actor.actor_id), permission=permission.value)
