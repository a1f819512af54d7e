"""Actor roles for modulegate.

Three tiers, each with its own authorization semantics:

1. Operator - administers the platform; bypasses capability gating but has
   no implicit business-data rights (enforced by other layers)
2. Tenant owner - all-or-nothing access to every capability enabled for
   their tenant
3. Member - needs tenant enablement plus an explicit per-action grant
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID


class ActorRole(str, Enum):
    """Roles an authenticated actor can hold."""

    OPERATOR = "operator"
    TENANT_OWNER = "tenant_owner"
    MEMBER = "member"


# Roles that must carry a tenant affiliation
TENANT_SCOPED_ROLES = frozenset([ActorRole.TENANT_OWNER, ActorRole.MEMBER])


@dataclass(frozen=True)
class Actor:
    """An authenticated caller as seen by the authorization engine."""

    id: UUID
    role: ActorRole
    tenant_id: Optional[UUID] = None

    @property
    def is_operator(self) -> bool:
        return self.role == ActorRole.OPERATOR

    @property
    def has_tenant(self) -> bool:
        return self.tenant_id is not None

    @classmethod
    def from_user(cls, user) -> Optional["Actor"]:
        """Build an actor from a persisted user row.

        Returns None when the stored role is unknown, so callers fail closed.
        """
        try:
            role = ActorRole(user.role)
        except ValueError:
            return None
        return cls(id=user.id, role=role, tenant_id=user.tenant_id)
