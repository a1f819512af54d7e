"""Tenant access and member grant models.

``TenantCapabilityAccess`` rows are flipped on and off, never deleted, so the
history of an enablement survives a revoke. ``MemberCapabilityGrant`` rows are
deleted on revoke; absence means no grant.
"""

import uuid
from sqlalchemy import Column, DateTime, JSON, Boolean, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from modulegate.db.base import Base, utcnow


class TenantCapabilityAccess(Base):
    __tablename__ = "tenant_capability_access"
    __table_args__ = (
        UniqueConstraint("tenant_id", "capability_id", name="uq_tenant_capability_access"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    capability_id = Column(Uuid(as_uuid=True), ForeignKey("capabilities.id", ondelete="CASCADE"), nullable=False, index=True)
    is_enabled = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    tenant = relationship("Tenant", back_populates="capability_access")
    capability = relationship("Capability", back_populates="tenant_access")

    def __repr__(self) -> str:
        return f"<TenantCapabilityAccess tenant={self.tenant_id} capability={self.capability_id} enabled={self.is_enabled}>"


class MemberCapabilityGrant(Base):
    __tablename__ = "member_capability_grants"
    __table_args__ = (
        UniqueConstraint("user_id", "capability_id", name="uq_member_capability_grant"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    capability_id = Column(Uuid(as_uuid=True), ForeignKey("capabilities.id", ondelete="CASCADE"), nullable=False, index=True)
    actions = Column(JSON, nullable=False, default=list)

    # Who granted this
    granted_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", foreign_keys=[user_id], back_populates="capability_grants")
    capability = relationship("Capability", back_populates="member_grants")
    granter = relationship("User", foreign_keys=[granted_by])

    def __repr__(self) -> str:
        return f"<MemberCapabilityGrant user={self.user_id} capability={self.capability_id}>"
