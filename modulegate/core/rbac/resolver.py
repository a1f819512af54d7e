"""Permission resolution for capabilities.

Answers two questions for an actor: can it reach a capability at all, and
can it perform a given action inside it. Every path that cannot prove access
returns False.
"""

import logging
from typing import Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from modulegate.db.models import Capability, MemberCapabilityGrant, TenantCapabilityAccess

from .definitions import CapabilityRecord
from .registry import CapabilityRegistry
from .roles import Actor, ActorRole, TENANT_SCOPED_ROLES

logger = logging.getLogger(__name__)

# (actor, capability, action or None) -> bool
RoleRule = Callable[[Actor, CapabilityRecord, Optional[str]], bool]


class PermissionResolver:
    """Resolves capability access for actors within one database session."""

    def __init__(self, db: Session, registry: CapabilityRegistry):
        """
        Initialize the resolver.

        Args:
            db: Database session
            registry: Process-wide capability registry
        """
        self.db = db
        self.registry = registry
        self._rules: Dict[ActorRole, RoleRule] = {
            ActorRole.TENANT_OWNER: self._owner_rule,
            ActorRole.MEMBER: self._member_rule,
        }

    def can_reach(self, actor: Optional[Actor], identifier: str) -> bool:
        """Check whether the actor may use the capability at all."""
        return self._resolve(actor, identifier, None)

    def can_perform(self, actor: Optional[Actor], identifier: str, action: str) -> bool:
        """Check whether the actor may perform an action inside the capability."""
        return self._resolve(actor, identifier, action)

    def tenant_has_capability(self, tenant_id: UUID, identifier: str) -> bool:
        """Check whether a tenant has an active capability enabled."""
        capability = self.registry.lookup(self.db, identifier)
        if capability is None or not capability.is_active:
            return False
        return self._tenant_enabled(tenant_id, capability)

    def available_capabilities(self, actor: Optional[Actor]) -> List[Capability]:
        """
        List the active capabilities the actor can reach.

        Returns:
            Capability rows ordered by name
        """
        if actor is None:
            return []

        query = self.db.query(Capability).filter(Capability.is_active == True)  # noqa: E712

        if actor.role == ActorRole.OPERATOR:
            return query.order_by(Capability.name).all()

        if actor.role not in TENANT_SCOPED_ROLES or not actor.has_tenant:
            return []

        query = query.join(
            TenantCapabilityAccess,
            TenantCapabilityAccess.capability_id == Capability.id,
        ).filter(
            TenantCapabilityAccess.tenant_id == actor.tenant_id,
            TenantCapabilityAccess.is_enabled == True,  # noqa: E712
        )

        if actor.role == ActorRole.MEMBER:
            query = query.join(
                MemberCapabilityGrant,
                MemberCapabilityGrant.capability_id == Capability.id,
            ).filter(MemberCapabilityGrant.user_id == actor.id)

        return query.order_by(Capability.name).all()

    def _resolve(self, actor: Optional[Actor], identifier: str, action: Optional[str]) -> bool:
        if actor is None:
            logger.debug(f"Denied {identifier}: no actor")
            return False

        # Operators administer the platform; capability gating does not apply
        if actor.role == ActorRole.OPERATOR:
            return True

        rule = self._rules.get(actor.role)
        if rule is None:
            logger.debug(f"Denied {identifier}: unknown role {actor.role!r}")
            return False

        if not actor.has_tenant:
            logger.debug(f"Denied {identifier}: actor {actor.id} has no tenant")
            return False

        capability = self.registry.lookup(self.db, identifier)
        if capability is None:
            logger.debug(f"Denied {identifier}: capability not found")
            return False
        if not capability.is_active:
            logger.debug(f"Denied {identifier}: capability inactive")
            return False

        allowed = rule(actor, capability, action)
        if not allowed:
            logger.debug(f"Denied {identifier}:{action or '*'} for {actor.role.value} {actor.id}")
        return allowed

    def _owner_rule(self, actor: Actor, capability: CapabilityRecord, action: Optional[str]) -> bool:
        # Owners get every action of every capability enabled for their tenant
        return self._tenant_enabled(actor.tenant_id, capability)

    def _member_rule(self, actor: Actor, capability: CapabilityRecord, action: Optional[str]) -> bool:
        if not self._tenant_enabled(actor.tenant_id, capability):
            return False

        grant = self.db.query(MemberCapabilityGrant).filter(
            MemberCapabilityGrant.user_id == actor.id,
            MemberCapabilityGrant.capability_id == capability.id,
        ).first()
        if grant is None:
            return False

        return action is None or action in (grant.actions or [])

    def _tenant_enabled(self, tenant_id: UUID, capability: CapabilityRecord) -> bool:
        access = self.db.query(TenantCapabilityAccess).filter(
            TenantCapabilityAccess.tenant_id == tenant_id,
            TenantCapabilityAccess.capability_id == capability.id,
        ).first()
        return access is not None and access.is_enabled
