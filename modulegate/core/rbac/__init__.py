"""Capability-based access control for modulegate.

This module holds the capability registry, the permission resolver, the
grant manager and the access pipeline endpoints declare requirements with.
"""

from .errors import (
    AccessControlError,
    ConflictError,
    InvalidCapabilityError,
    InvalidGrantError,
    NotFoundError,
    PermissionDeniedError,
)
from .roles import Actor, ActorRole
from .definitions import CapabilityDefinition, CapabilityRecord, parse_definition
from .registry import CapabilityRegistry
from .resolver import PermissionResolver
from .grants import GrantManager
from .pipeline import AccessDecision, AccessPipeline, DenialReason, parse_requirement

__all__ = [
    "AccessControlError",
    "AccessDecision",
    "AccessPipeline",
    "Actor",
    "ActorRole",
    "CapabilityDefinition",
    "CapabilityRecord",
    "CapabilityRegistry",
    "ConflictError",
    "DenialReason",
    "GrantManager",
    "InvalidCapabilityError",
    "InvalidGrantError",
    "NotFoundError",
    "PermissionDeniedError",
    "PermissionResolver",
    "parse_definition",
    "parse_requirement",
]
