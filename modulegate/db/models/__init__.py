"""Database models for modulegate."""

from modulegate.db.models.tenant import Tenant
from modulegate.db.models.user import User
from modulegate.db.models.capability import Capability, CapabilitySource
from modulegate.db.models.access import TenantCapabilityAccess, MemberCapabilityGrant

__all__ = [
    "Tenant",
    "User",
    "Capability",
    "CapabilitySource",
    "TenantCapabilityAccess",
    "MemberCapabilityGrant",
]
