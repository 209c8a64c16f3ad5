"""
Database Models

Tenant and Domain belong to the central registry (Base).
User belongs to each tenant's own database (TenantBase).
"""
from zyrapay.models.tenant import Tenant, Domain
from zyrapay.models.user import User, UserRole

__all__ = ["Tenant", "Domain", "User", "UserRole"]
