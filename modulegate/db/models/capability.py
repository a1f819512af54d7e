"""Capability database model.

One row per capability ("module"). Rows are created and updated by the
registry sync and by operators; they are never removed by sync.
"""

import uuid
from sqlalchemy import Column, String, DateTime, JSON, Boolean, Text, Uuid
from sqlalchemy.orm import relationship

from modulegate.db.base import Base, utcnow


class CapabilitySource:
    """Provenance of a capability row."""

    CONFIG = "config"
    OPERATOR = "operator"


class Capability(Base):
    __tablename__ = "capabilities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    identifier = Column(String(100), unique=True, nullable=False, index=True)

    # Basic info
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    version = Column(String(50), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Action vocabulary
    actions = Column(JSON, nullable=False, default=list)
    default_actions = Column(JSON, nullable=True)

    # Provenance
    source = Column(String(20), nullable=False, default=CapabilitySource.CONFIG)
    config_path = Column(Text, nullable=True)

    # Presentation and wiring
    icon = Column(String(100), nullable=True)
    category = Column(String(100), nullable=True)
    depends_on = Column(JSON, nullable=True)
    config = Column(JSON, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    tenant_access = relationship("TenantCapabilityAccess", back_populates="capability")
    member_grants = relationship("MemberCapabilityGrant", back_populates="capability")

    def __repr__(self) -> str:
        return f"<Capability {self.identifier} v{self.version}>"
