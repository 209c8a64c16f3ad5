"""
Tenant and Domain Models

These live in the central registry database. Each tenant represents a
business that signed up, with its own subdomain and its own isolated
database (see zyrapay.tenancy).

ARCHITECTURAL DECISION: We use separate databases per tenant.
The central registry only knows who the tenants are and which domains
route to them; all tenant business data lives in the tenant database.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from zyrapay.database import Base
import uuid


class Tenant(Base):
    __tablename__ = "tenants"

    # Using UUID for tenant IDs to avoid enumeration attacks
    # and to name tenant databases without collisions
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Business profile captured at signup
    business_name = Column(String(255), nullable=False)
    username = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=False)

    # Payment wallet reference from IntaSend
    # Placeholder ids (non-production fallback) need reconciling later
    wallet_id = Column(String(64), nullable=True)
    wallet_is_placeholder = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    domains = relationship("Domain", back_populates="tenant", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Tenant {self.business_name} ({self.id})>"


class Domain(Base):
    __tablename__ = "domains"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # CRITICAL: Unique across all tenants, this is what routes requests
    domain = Column(String(255), unique=True, nullable=False, index=True)

    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="domains")

    def __repr__(self):
        return f"<Domain {self.domain} (tenant={self.tenant_id})>"
