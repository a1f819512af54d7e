"""Administrative mutations of tenant access and member grants.

Authority rules:

- Only operators enable or disable capabilities for tenants.
- Only tenant owners grant or revoke member access, and only for members of
  their own tenant, and only for capabilities their tenant has enabled.

Services flush; committing is left to the caller.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from modulegate.db.models import (
    Capability,
    MemberCapabilityGrant,
    Tenant,
    TenantCapabilityAccess,
    User,
)

from .errors import InvalidGrantError, NotFoundError, PermissionDeniedError
from .registry import CapabilityRegistry
from .resolver import PermissionResolver
from .roles import Actor, ActorRole

logger = logging.getLogger(__name__)


class GrantManager:
    """Manages tenant enablement and per-member grants."""

    def __init__(self, db: Session, registry: CapabilityRegistry):
        """
        Initialize the grant manager.

        Args:
            db: Database session
            registry: Process-wide capability registry
        """
        self.db = db
        self.registry = registry
        self.resolver = PermissionResolver(db, registry)

    # ------------------------------------------------------------------
    # Tenant access (operator)
    # ------------------------------------------------------------------

    def enable_for_tenant(self, actor: Actor, tenant_id: UUID, identifier: str) -> TenantCapabilityAccess:
        """
        Enable a capability for a tenant, creating or re-enabling the row.

        Raises:
            PermissionDeniedError: If the actor is not an operator
            NotFoundError: If the tenant or capability doesn't exist
        """
        self._require_operator(actor, "enable capabilities for tenants")
        tenant = self._get_tenant(tenant_id)
        capability = self._get_capability(identifier)

        access = self._get_access(tenant.id, capability.id)
        if access is None:
            access = TenantCapabilityAccess(
                tenant_id=tenant.id,
                capability_id=capability.id,
                is_enabled=True,
            )
            self.db.add(access)
        else:
            access.is_enabled = True

        self.db.flush()
        logger.info(f"Enabled capability {identifier} for tenant {tenant.id} by {actor.id}")
        return access

    def disable_for_tenant(self, actor: Actor, tenant_id: UUID, identifier: str) -> Optional[TenantCapabilityAccess]:
        """
        Disable a capability for a tenant. A no-op if it was never enabled.

        Member grants are kept; they simply stop resolving until the
        capability is enabled again.

        Raises:
            PermissionDeniedError: If the actor is not an operator
            NotFoundError: If the tenant or capability doesn't exist
        """
        self._require_operator(actor, "disable capabilities for tenants")
        tenant = self._get_tenant(tenant_id)
        capability = self._get_capability(identifier)

        access = self._get_access(tenant.id, capability.id)
        if access is None:
            return None

        access.is_enabled = False
        self.db.flush()
        logger.info(f"Disabled capability {identifier} for tenant {tenant.id} by {actor.id}")
        return access

    def list_tenant_access(self, actor: Actor, tenant_id: UUID) -> List[TenantCapabilityAccess]:
        """List every access row of a tenant, enabled or not."""
        if not (actor.is_operator or self._owns_tenant(actor, tenant_id)):
            raise PermissionDeniedError("Only operators or the tenant owner can list tenant access")
        self._get_tenant(tenant_id)

        return self.db.query(TenantCapabilityAccess).join(
            Capability, TenantCapabilityAccess.capability_id == Capability.id
        ).filter(
            TenantCapabilityAccess.tenant_id == tenant_id
        ).order_by(Capability.identifier).all()

    # ------------------------------------------------------------------
    # Member grants (tenant owner)
    # ------------------------------------------------------------------

    def grant(
        self,
        granter: Actor,
        target_id: UUID,
        identifier: str,
        actions: Optional[List[str]] = None,
    ) -> MemberCapabilityGrant:
        """
        Grant a member a set of actions inside a capability.

        An existing grant has its action set replaced, not merged. When
        ``actions`` is None the capability's default actions are granted.

        Raises:
            PermissionDeniedError: If the granter lacks authority over the
                target, or the tenant doesn't have the capability enabled
            NotFoundError: If the target or capability doesn't exist
            InvalidGrantError: If an action is outside the vocabulary
        """
        target = self._authorize_member_change(granter, target_id)
        capability = self._get_capability(identifier)

        if not self.resolver.tenant_has_capability(granter.tenant_id, identifier):
            raise PermissionDeniedError(f"Capability '{identifier}' is not enabled for this tenant")

        if actions is None:
            actions = list(capability.default_actions or [])

        invalid = [a for a in actions if a not in (capability.actions or [])]
        if invalid:
            raise InvalidGrantError(identifier, invalid)

        actions = list(dict.fromkeys(actions))

        grant = self.db.query(MemberCapabilityGrant).filter(
            MemberCapabilityGrant.user_id == target.id,
            MemberCapabilityGrant.capability_id == capability.id,
        ).first()

        if grant is None:
            grant = MemberCapabilityGrant(
                user_id=target.id,
                capability_id=capability.id,
                actions=actions,
                granted_by=granter.id,
            )
            self.db.add(grant)
        else:
            grant.actions = actions
            grant.granted_by = granter.id

        self.db.flush()
        logger.info(
            f"Granted {identifier} [{', '.join(actions)}] to member {target.id} by {granter.id}"
        )
        return grant

    def revoke(self, granter: Actor, target_id: UUID, identifier: str) -> bool:
        """
        Remove a member's grant. A no-op if there is none.

        Returns:
            True if a grant was removed
        """
        target = self._authorize_member_change(granter, target_id)
        capability = self._get_capability(identifier)

        grant = self.db.query(MemberCapabilityGrant).filter(
            MemberCapabilityGrant.user_id == target.id,
            MemberCapabilityGrant.capability_id == capability.id,
        ).first()
        if grant is None:
            return False

        self.db.delete(grant)
        self.db.flush()
        logger.info(f"Revoked {identifier} from member {target.id} by {granter.id}")
        return True

    def list_member_grants(self, actor: Actor, member_id: UUID) -> List[MemberCapabilityGrant]:
        """
        List a member's effective grants.

        Only grants whose capability is active and enabled for the member's
        tenant are returned. Visible to the owner of the member's tenant and
        to the member themselves.
        """
        member = self.db.query(User).filter(User.id == member_id).first()
        if member is None:
            raise NotFoundError("User", member_id)

        if actor.id != member.id and not self._owns_tenant(actor, member.tenant_id):
            raise PermissionDeniedError("Only the tenant owner can list member grants")

        return self.db.query(MemberCapabilityGrant).join(
            Capability, MemberCapabilityGrant.capability_id == Capability.id
        ).join(
            TenantCapabilityAccess,
            TenantCapabilityAccess.capability_id == Capability.id,
        ).filter(
            MemberCapabilityGrant.user_id == member.id,
            TenantCapabilityAccess.tenant_id == member.tenant_id,
            TenantCapabilityAccess.is_enabled == True,  # noqa: E712
            Capability.is_active == True,  # noqa: E712
        ).order_by(Capability.identifier).all()

    # ------------------------------------------------------------------
    # Maintenance (operator)
    # ------------------------------------------------------------------

    def cleanup_orphaned_grants(self, actor: Actor) -> List[Dict[str, Any]]:
        """
        Delete member grants whose tenant no longer has the capability enabled.

        Returns:
            One entry per (tenant, capability) with the number of grants removed
        """
        self._require_operator(actor, "clean up orphaned grants")

        enabled = {
            (row.tenant_id, row.capability_id)
            for row in self.db.query(TenantCapabilityAccess).filter(
                TenantCapabilityAccess.is_enabled == True  # noqa: E712
            ).all()
        }

        removed: Dict[tuple, int] = {}
        rows = self.db.query(MemberCapabilityGrant, User.tenant_id, Capability.identifier).join(
            User, MemberCapabilityGrant.user_id == User.id
        ).join(
            Capability, MemberCapabilityGrant.capability_id == Capability.id
        ).all()

        for grant, tenant_id, identifier in rows:
            if (tenant_id, grant.capability_id) in enabled:
                continue
            self.db.delete(grant)
            key = (tenant_id, identifier)
            removed[key] = removed.get(key, 0) + 1

        if removed:
            self.db.flush()
            logger.info(f"Removed {sum(removed.values())} orphaned member grants")

        return [
            {"tenant_id": tenant_id, "capability": identifier, "removed": count}
            for (tenant_id, identifier), count in sorted(
                removed.items(), key=lambda item: (str(item[0][0]), item[0][1])
            )
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_operator(self, actor: Actor, what: str) -> None:
        if actor is None or not actor.is_operator:
            raise PermissionDeniedError(f"Only operators can {what}")

    def _owns_tenant(self, actor: Actor, tenant_id: Optional[UUID]) -> bool:
        return (
            actor.role == ActorRole.TENANT_OWNER
            and tenant_id is not None
            and actor.tenant_id == tenant_id
        )

    def _authorize_member_change(self, granter: Actor, target_id: UUID) -> User:
        if granter is None or granter.role != ActorRole.TENANT_OWNER or not granter.has_tenant:
            raise PermissionDeniedError("Only tenant owners can manage member grants")

        target = self.db.query(User).filter(User.id == target_id).first()
        if target is None:
            raise NotFoundError("User", target_id)

        if target.role != ActorRole.MEMBER.value or target.tenant_id != granter.tenant_id:
            raise PermissionDeniedError("Target is not a member of your tenant")

        return target

    def _get_tenant(self, tenant_id: UUID) -> Tenant:
        tenant = self.db.query(Tenant).filter(Tenant.id == tenant_id).first()
        if tenant is None:
            raise NotFoundError("Tenant", tenant_id)
        return tenant

    def _get_capability(self, identifier: str) -> Capability:
        capability = self.db.query(Capability).filter(Capability.identifier == identifier).first()
        if capability is None:
            raise NotFoundError("Capability", identifier)
        return capability

    def _get_access(self, tenant_id: UUID, capability_id: UUID) -> Optional[TenantCapabilityAccess]:
        return self.db.query(TenantCapabilityAccess).filter(
            TenantCapabilityAccess.tenant_id == tenant_id,
            TenantCapabilityAccess.capability_id == capability_id,
        ).first()
