import uuid
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from modulegate.db.base import Base, utcnow


class User(Base):
    """Persisted actor. ``role`` holds an ``ActorRole`` value."""

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255))
    role = Column(String(32), nullable=False)
    tenant_id = Column(Uuid(as_uuid=True), ForeignKey("tenants.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    tenant = relationship("Tenant", back_populates="users")
    capability_grants = relationship(
        "MemberCapabilityGrant",
        back_populates="user",
        foreign_keys="MemberCapabilityGrant.user_id",
        cascade="all, delete-orphan",
    )
