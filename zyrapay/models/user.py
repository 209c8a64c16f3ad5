"""
User Model

Users live inside each tenant's own database, not the central registry.
There is no tenant_id column: the database itself is the isolation boundary.

The first user of every tenant is the admin created at registration.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum
from datetime import datetime
from zyrapay.database import TenantBase
import uuid
import enum


class UserRole(str, enum.Enum):
    """
    User roles inside a tenant.

    ADMIN: Business owner, full access to the tenant's billing data
    MEMBER: Staff with standard access
    VIEWER: Read-only access
    """
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class User(TenantBase):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Profile
    name = Column(String(255), nullable=False)
    username = Column(String(255), unique=True, nullable=False)
    business_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=True)

    hashed_password = Column(String(255), nullable=False)

    role = Column(
        SQLEnum(UserRole),
        default=UserRole.MEMBER,
        nullable=False,
        index=True
    )

    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<User {self.email} role={self.role}>"
