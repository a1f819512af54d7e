"""Tenant access and member grant API endpoints.

Operators enable capabilities for tenants; tenant owners grant their members
actions inside enabled capabilities.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from modulegate.api.deps import get_authenticated_actor, get_current_actor, get_db, get_registry, handle_access_errors
from modulegate.core.rbac import AccessPipeline, Actor, CapabilityRegistry, GrantManager, PermissionResolver
from modulegate.core.rbac.pipeline import parse_requirements

router = APIRouter(prefix="/access", tags=["access"])


# Schemas
class TenantAccessResponse(BaseModel):
    tenant_id: UUID
    capability: str
    is_enabled: bool
    updated_at: Optional[datetime] = None

    @classmethod
    def from_access(cls, access) -> "TenantAccessResponse":
        return cls(
            tenant_id=access.tenant_id,
            capability=access.capability.identifier,
            is_enabled=access.is_enabled,
            updated_at=access.updated_at,
        )


class GrantRequest(BaseModel):
    actions: Optional[List[str]] = Field(
        None, description="Actions to grant. Omit to grant the capability's default actions."
    )


class MemberGrantResponse(BaseModel):
    user_id: UUID
    capability: str
    actions: List[str]
    granted_by: Optional[UUID] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_grant(cls, grant) -> "MemberGrantResponse":
        return cls(
            user_id=grant.user_id,
            capability=grant.capability.identifier,
            actions=list(grant.actions or []),
            granted_by=grant.granted_by,
            updated_at=grant.updated_at,
        )


class AccessCheckRequest(BaseModel):
    requirements: List[str] = Field(default_factory=list)


class AccessCheckResponse(BaseModel):
    allowed: bool


# Tenant access (operators)
@router.get("/tenants/{tenant_id}/capabilities", response_model=List[TenantAccessResponse])
async def list_tenant_access(
    tenant_id: UUID,
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    actor: Actor = Depends(get_authenticated_actor),
):
    """List a tenant's capability access rows."""
    manager = GrantManager(db, registry)
    with handle_access_errors(db):
        rows = manager.list_tenant_access(actor, tenant_id)
    return [TenantAccessResponse.from_access(a) for a in rows]


@router.put("/tenants/{tenant_id}/capabilities/{identifier}", response_model=TenantAccessResponse)
async def enable_for_tenant(
    tenant_id: UUID,
    identifier: str,
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    actor: Actor = Depends(get_authenticated_actor),
):
    """Enable a capability for a tenant."""
    manager = GrantManager(db, registry)
    with handle_access_errors(db):
        access = manager.enable_for_tenant(actor, tenant_id, identifier)
        db.commit()
    return TenantAccessResponse.from_access(access)


@router.delete("/tenants/{tenant_id}/capabilities/{identifier}", status_code=status.HTTP_204_NO_CONTENT)
async def disable_for_tenant(
    tenant_id: UUID,
    identifier: str,
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    actor: Actor = Depends(get_authenticated_actor),
):
    """Disable a capability for a tenant. Member grants are kept."""
    manager = GrantManager(db, registry)
    with handle_access_errors(db):
        manager.disable_for_tenant(actor, tenant_id, identifier)
        db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Member grants (tenant owners)
@router.get("/members/{member_id}/capabilities", response_model=List[MemberGrantResponse])
async def list_member_grants(
    member_id: UUID,
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    actor: Actor = Depends(get_authenticated_actor),
):
    """List a member's effective grants."""
    manager = GrantManager(db, registry)
    with handle_access_errors(db):
        grants = manager.list_member_grants(actor, member_id)
    return [MemberGrantResponse.from_grant(g) for g in grants]


@router.put("/members/{member_id}/capabilities/{identifier}", response_model=MemberGrantResponse)
async def grant_member(
    member_id: UUID,
    identifier: str,
    data: GrantRequest,
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    actor: Actor = Depends(get_authenticated_actor),
):
    """Grant a member actions inside a capability, replacing any previous set."""
    manager = GrantManager(db, registry)
    with handle_access_errors(db):
        grant = manager.grant(actor, member_id, identifier, data.actions)
        db.commit()
    return MemberGrantResponse.from_grant(grant)


@router.delete("/members/{member_id}/capabilities/{identifier}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_member(
    member_id: UUID,
    identifier: str,
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    actor: Actor = Depends(get_authenticated_actor),
):
    """Revoke a member's grant. Revoking a missing grant succeeds."""
    manager = GrantManager(db, registry)
    with handle_access_errors(db):
        manager.revoke(actor, member_id, identifier)
        db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Decisions
@router.post("/check", response_model=AccessCheckResponse)
async def check_access(
    data: AccessCheckRequest,
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    actor: Optional[Actor] = Depends(get_current_actor),
):
    """Evaluate requirements for the caller. Denial reasons are not disclosed."""
    try:
        requirements = parse_requirements(data.requirements)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    decision = AccessPipeline(PermissionResolver(db, registry)).evaluate(actor, requirements)
    return AccessCheckResponse(allowed=decision.allowed)
