"""
Authentication Package

This package implements OpenID Connect login for the service, in
single-tenant mode (one issuer discovered at startup) or multitenant mode
(one issuer per tenant/channel, discovered on first use).

Key responsibilities:
- Issuer discovery and strategy caching per tenant/channel
- Authorization code flow with PKCE (via Authlib)
- Logout with RP-initiated end session
- Refreshing expired access tokens held in the session

Modules:
- routes: Public endpoints (/login, /logout, /loggedout, /refresh-tokens, /user)
- service: Request dispatcher and strategy cache
- strategy: Issuer discovery and strategy construction
- tokens: Expiry checks and the refresh_token grant
- session: Access to the user stored in the Starlette session
- errors: Exception hierarchy
"""

from .routes import auth_router
from .service import OidcService

__all__ = [
    "auth_router",
    "OidcService",
]
