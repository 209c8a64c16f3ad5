"""
ZyraisPay Tenant Registration

Signup service for the ZyraisPay multi-tenant billing platform.
Registers a business as a tenant with its own subdomain, payment wallet
and isolated database.
"""

__version__ = "1.0.0"
