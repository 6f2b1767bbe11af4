"""
OIDC Authentication Service

OpenID Connect login, logout and session token refresh for FastAPI, with
single-tenant and multitenant (tenant + b2c/b2e channel) identity providers.
"""

__version__ = "1.0.0"
