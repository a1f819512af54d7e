"""Capability API endpoints."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from modulegate.api.deps import (
    NOT_PERMITTED,
    get_authenticated_actor,
    get_db,
    get_operator,
    get_registry,
    handle_access_errors,
)
from modulegate.core.rbac import Actor, CapabilityRegistry, PermissionResolver
from modulegate.db.models import Capability

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/capabilities", tags=["capabilities"])

IDENTIFIER_REGEX = r"^[a-z][a-z0-9-]*$"
VERSION_REGEX = r"^\d+\.\d+\.\d+$"


# Schemas
class CapabilityCreate(BaseModel):
    identifier: str = Field(..., pattern=IDENTIFIER_REGEX, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    version: str = Field(..., pattern=VERSION_REGEX)
    actions: List[str] = Field(..., min_length=1)
    description: Optional[str] = None
    default_actions: Optional[List[str]] = None
    is_active: bool = True
    icon: Optional[str] = None
    category: Optional[str] = None
    depends_on: Optional[List[str]] = None
    config: Optional[Dict[str, Any]] = None


class CapabilityUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    version: Optional[str] = Field(None, pattern=VERSION_REGEX)
    actions: Optional[List[str]] = Field(None, min_length=1)
    description: Optional[str] = None
    default_actions: Optional[List[str]] = None
    is_active: Optional[bool] = None
    icon: Optional[str] = None
    category: Optional[str] = None
    depends_on: Optional[List[str]] = None
    config: Optional[Dict[str, Any]] = None


class CapabilityResponse(BaseModel):
    id: UUID
    identifier: str
    name: str
    version: str
    is_active: bool
    actions: List[str]
    default_actions: List[str] = Field(default_factory=list)
    source: str
    description: Optional[str] = None
    icon: Optional[str] = None
    category: Optional[str] = None
    depends_on: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    @classmethod
    def from_capability(cls, capability) -> "CapabilityResponse":
        """Build from a Capability row or a CapabilityRecord snapshot."""
        return cls(
            id=capability.id,
            identifier=capability.identifier,
            name=capability.name,
            version=capability.version,
            is_active=capability.is_active,
            actions=sorted(capability.actions or []),
            default_actions=list(capability.default_actions or []),
            source=capability.source,
            description=capability.description,
            icon=capability.icon,
            category=capability.category,
            depends_on=list(capability.depends_on or []),
            updated_at=getattr(capability, "updated_at", None),
        )


# Endpoints
@router.get("", response_model=List[CapabilityResponse])
async def list_capabilities(
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    actor: Actor = Depends(get_authenticated_actor),
):
    """List the active capabilities the caller can reach."""
    resolver = PermissionResolver(db, registry)
    return [CapabilityResponse.from_capability(c) for c in resolver.available_capabilities(actor)]


@router.get("/{identifier}", response_model=CapabilityResponse)
async def get_capability(
    identifier: str,
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    actor: Actor = Depends(get_authenticated_actor),
):
    """Get a capability the caller can reach."""
    resolver = PermissionResolver(db, registry)
    if not resolver.can_reach(actor, identifier):
        logger.warning(f"Capability {identifier} unreachable for {actor.role.value} {actor.id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NOT_PERMITTED)

    capability = db.query(Capability).filter(Capability.identifier == identifier).first()
    if not capability:
        raise HTTPException(status_code=404, detail="Capability not found")

    return CapabilityResponse.from_capability(capability)


@router.post("", response_model=CapabilityResponse, status_code=status.HTTP_201_CREATED)
async def create_capability(
    data: CapabilityCreate,
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    operator: Actor = Depends(get_operator),
):
    """Create an operator-managed capability."""
    with handle_access_errors(db):
        record = registry.create_capability(
            db,
            data.identifier,
            data.name,
            data.version,
            data.actions,
            description=data.description,
            default_actions=data.default_actions,
            is_active=data.is_active,
            icon=data.icon,
            category=data.category,
            depends_on=data.depends_on,
            config=data.config,
        )
        db.commit()

    return CapabilityResponse.from_capability(record)


@router.patch("/{identifier}", response_model=CapabilityResponse)
async def update_capability(
    identifier: str,
    data: CapabilityUpdate,
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    operator: Actor = Depends(get_operator),
):
    """Update a capability. The identifier cannot change."""
    changes = data.model_dump(exclude_unset=True)

    with handle_access_errors(db):
        record = registry.update_capability(db, identifier, **changes)
        db.commit()

    return CapabilityResponse.from_capability(record)


@router.delete("/{identifier}", response_model=CapabilityResponse)
async def deactivate_capability(
    identifier: str,
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    operator: Actor = Depends(get_operator),
):
    """Deactivate a capability. Rows and grants are kept."""
    with handle_access_errors(db):
        record = registry.deactivate_capability(db, identifier)
        db.commit()

    return CapabilityResponse.from_capability(record)
