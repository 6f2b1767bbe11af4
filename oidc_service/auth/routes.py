"""
Authentication routes for OIDC login, logout and token refresh.

Every route exists in a single-tenant form (``/login``) and a multitenant
form (``/{tenant_id}/{channel_type}/login``); both delegate to OidcService.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.responses import Response

from oidc_service.auth.service import OidcService
from oidc_service.auth.session import OidcSession
from oidc_service.models import RouteParams

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    tags=["authentication"],
)


# =============================================================================
# Dependencies
# =============================================================================

def get_oidc_service(request: Request) -> OidcService:
    """
    Dependency to get the OIDC service from app state.

    Raises:
        HTTPException: 503 if the service was not attached to the app
    """
    service = getattr(request.app.state, "oidc_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service not initialized"
        )
    return service


async def require_user(request: Request) -> Dict[str, Any]:
    """
    Dependency guarding routes that need a logged-in user.

    Returns:
        Session user record

    Raises:
        HTTPException: 401 if the session has no user
    """
    session = OidcSession(request)
    if not session.is_authenticated():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return session.user


async def ensure_fresh_tokens(
    request: Request,
    service: OidcService = Depends(get_oidc_service),
) -> None:
    """
    Dependency that refreshes expired session tokens before the route runs.

    Raises:
        HTTPException: With the refresh status when refreshing failed
    """
    response = await service.refresh_tokens(request)
    if response.status_code != status.HTTP_200_OK:
        raise HTTPException(
            status_code=response.status_code,
            detail="Session tokens could not be refreshed"
        )


# =============================================================================
# Single-tenant Routes
# =============================================================================

@auth_router.get("/login")
async def login(request: Request, service: OidcService = Depends(get_oidc_service)) -> Response:
    """Initiate the OIDC login flow."""
    return await service.login(request, RouteParams())


@auth_router.get("/login/callback")
async def login_callback(request: Request, service: OidcService = Depends(get_oidc_service)) -> Response:
    """Handle the authorization code callback."""
    return await service.login_callback(request, RouteParams())


@auth_router.get("/logout")
async def logout(request: Request, service: OidcService = Depends(get_oidc_service)) -> Response:
    return await service.logout(request, RouteParams())


@auth_router.get("/loggedout")
async def logged_out(service: OidcService = Depends(get_oidc_service)) -> Response:
    return service.logged_out(RouteParams())


@auth_router.get("/refresh-tokens")
async def refresh_tokens(request: Request, service: OidcService = Depends(get_oidc_service)) -> Response:
    """
    Refresh the session access token if it has expired.

    Responds 200 when the session holds valid (or no) tokens.
    """
    return await service.refresh_tokens(request)


@auth_router.get("/user", dependencies=[Depends(ensure_fresh_tokens)])
async def current_user(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """Return the userinfo claims of the logged-in user."""
    return user.get("userinfo", {})


# =============================================================================
# Multitenant Routes
# =============================================================================

@auth_router.get("/{tenant_id}/{channel_type}/login")
async def tenant_login(
    request: Request,
    tenant_id: str,
    channel_type: str,
    service: OidcService = Depends(get_oidc_service),
) -> Response:
    params = RouteParams(tenant_id=tenant_id, channel_type=channel_type)
    return await service.login(request, params)


@auth_router.get("/{tenant_id}/{channel_type}/login/callback")
async def tenant_login_callback(
    request: Request,
    tenant_id: str,
    channel_type: str,
    service: OidcService = Depends(get_oidc_service),
) -> Response:
    params = RouteParams(tenant_id=tenant_id, channel_type=channel_type)
    return await service.login_callback(request, params)


@auth_router.get("/{tenant_id}/{channel_type}/logout")
async def tenant_logout(
    request: Request,
    tenant_id: str,
    channel_type: str,
    service: OidcService = Depends(get_oidc_service),
) -> Response:
    params = RouteParams(tenant_id=tenant_id, channel_type=channel_type)
    return await service.logout(request, params)


@auth_router.get("/{tenant_id}/{channel_type}/loggedout")
async def tenant_logged_out(
    tenant_id: str,
    channel_type: str,
    service: OidcService = Depends(get_oidc_service),
) -> Response:
    params = RouteParams(tenant_id=tenant_id, channel_type=channel_type)
    return service.logged_out(params)
