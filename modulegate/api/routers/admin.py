"""Operator maintenance endpoints: cache, discovery and grant cleanup."""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from modulegate.api.deps import get_db, get_operator, get_registry, handle_access_errors
from modulegate.core.rbac import Actor, CapabilityRegistry, GrantManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# Schemas
class CacheInvalidateRequest(BaseModel):
    identifier: Optional[str] = None


class DiscoveryStats(BaseModel):
    discovered_count: int
    capabilities: List[str]
    modules_path: str
    cache_size: int
    cache_ttl: float
    discovery_complete: bool


class ReloadResponse(BaseModel):
    discovered: List[str]
    stats: DiscoveryStats


class OrphanedGrantCleanup(BaseModel):
    tenant_id: Optional[UUID]
    capability: str
    removed: int


# Endpoints
@router.post("/cache/invalidate")
async def invalidate_cache(
    data: CacheInvalidateRequest,
    registry: CapabilityRegistry = Depends(get_registry),
    operator: Actor = Depends(get_operator),
) -> Dict[str, Any]:
    """Invalidate one capability, or the whole cache when none is named.

    Only this process's cache is affected.
    """
    if data.identifier:
        registry.invalidate(data.identifier)
    else:
        registry.invalidate_all()

    logger.info(f"Cache invalidated by {operator.id}: {data.identifier or 'all'}")
    return {"invalidated": data.identifier or "all"}


@router.post("/discovery/reload", response_model=ReloadResponse)
async def reload_discovery(
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    operator: Actor = Depends(get_operator),
):
    """Re-read configuration units and sync them to the store."""
    try:
        definitions = registry.reload(db)
        db.commit()
    except Exception:
        db.rollback()
        raise

    return ReloadResponse(
        discovered=[d.identifier for d in definitions],
        stats=DiscoveryStats(**registry.stats()),
    )


@router.get("/discovery/stats", response_model=DiscoveryStats)
async def discovery_stats(
    registry: CapabilityRegistry = Depends(get_registry),
    operator: Actor = Depends(get_operator),
):
    return DiscoveryStats(**registry.stats())


@router.post("/grants/cleanup", response_model=List[OrphanedGrantCleanup])
async def cleanup_orphaned_grants(
    db: Session = Depends(get_db),
    registry: CapabilityRegistry = Depends(get_registry),
    operator: Actor = Depends(get_operator),
):
    """Delete member grants whose capability is no longer enabled for the tenant."""
    manager = GrantManager(db, registry)
    with handle_access_errors(db):
        removed = manager.cleanup_orphaned_grants(operator)
        db.commit()
    return [OrphanedGrantCleanup(**entry) for entry in removed]
