"""
OIDC request dispatcher and strategy cache.

OidcService owns the mapping from tenant/channel key to strategy and
implements the login, login callback, logout, logged-out and token refresh
entry points. Every outbound failure is converted into an HTTP response
here; the only error that leaves the service is the fatal single-tenant
discovery failure, and it is returned from initialize() rather than raised.
"""

import logging
from typing import Dict, Optional
from urllib.parse import urlencode

from authlib.integrations.starlette_client import OAuthError
from fastapi import Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.responses import Response

from oidc_service.auth.errors import (
    DiscoveryError,
    FatalDiscoveryError,
    OidcError,
    RefreshError,
    ScopedDiscoveryError,
    UnknownChannelError,
)
from oidc_service.auth.pages import render_logged_out_page
from oidc_service.auth.session import OidcSession
from oidc_service.auth.strategy import OidcStrategy, build_strategy
from oidc_service.auth.tokens import TokenRefresher, apply_token_response, is_expired
from oidc_service.models import AuthTokens, ChannelKey, ChannelType, ModuleOptions, RouteParams

logger = logging.getLogger(__name__)

LOGGED_OUT_PATH = "/loggedout"


class OidcService:
    """
    Token lifecycle and multitenant strategy resolution engine.

    Attributes:
        options: Module options
        strategies: Strategy cache keyed by tenant/channel
        refresher: Refresh grant client
    """

    def __init__(
        self,
        options: ModuleOptions,
        strategies: Optional[Dict[ChannelKey, OidcStrategy]] = None,
    ):
        self.options = options
        self.strategies: Dict[ChannelKey, OidcStrategy] = strategies if strategies is not None else {}
        self.refresher = TokenRefresher(options)

    @property
    def is_multitenant(self) -> bool:
        return self.options.is_multitenant

    # =========================================================================
    # Strategy Resolution
    # =========================================================================

    async def initialize(self) -> Optional[FatalDiscoveryError]:
        """
        Eagerly build the single-tenant strategy.

        Multitenant strategies are built lazily, so nothing happens in that
        mode.

        Returns:
            None on success, or the FatalDiscoveryError the host must act on
        """
        if self.is_multitenant:
            logger.info("Multitenant mode: strategies are discovered on first request")
            return None

        try:
            await self.resolve_strategy()
        except FatalDiscoveryError as e:
            logger.critical(f"Single-tenant issuer discovery failed: {e}")
            return e

        logger.info("Single-tenant strategy ready", extra={"issuer": self.options.issuer})
        return None

    def channel_key(
        self,
        tenant_id: Optional[str] = None,
        channel_type: Optional[str] = None,
    ) -> ChannelKey:
        """
        Build the cache key for a request.

        Single-tenant mode always maps to the single key.

        Raises:
            UnknownChannelError: If multitenant params name an unknown channel
        """
        if not self.is_multitenant or not (tenant_id and channel_type):
            return ChannelKey.single()

        channel = ChannelType.from_tag(channel_type)
        if channel is None:
            raise UnknownChannelError(channel_type)
        return ChannelKey(tenant_id=tenant_id, channel_type=channel)

    async def resolve_strategy(
        self,
        tenant_id: Optional[str] = None,
        channel_type: Optional[str] = None,
    ) -> OidcStrategy:
        """
        Return the cached strategy for a tenant/channel, building it if needed.

        Concurrent first requests for the same key may each build a strategy;
        the last one written wins and both are equivalent.

        Raises:
            FatalDiscoveryError: Single-tenant discovery failed
            ScopedDiscoveryError: Multitenant discovery failed for this key
            UnknownChannelError: Channel tag unknown or unconfigured
        """
        key = self.channel_key(tenant_id, channel_type)

        cached = self.strategies.get(key)
        if cached is not None:
            return cached

        try:
            strategy = await build_strategy(self.options, key)
        except DiscoveryError as e:
            error_cls = ScopedDiscoveryError if self.is_multitenant else FatalDiscoveryError
            raise error_cls(e.issuer_url, e.reason) from e

        self.strategies[key] = strategy
        logger.info("Cached strategy", extra={"channel_key": str(key)})
        return strategy

    def invalidate(self, key: ChannelKey) -> None:
        """Drop one cached strategy so the next request rediscovers it."""
        self.strategies.pop(key, None)

    # =========================================================================
    # Login
    # =========================================================================

    async def login(self, request: Request, params: Optional[RouteParams] = None) -> Response:
        """
        Start the authorization code flow for the request's tenant/channel.

        Returns:
            Redirect to the provider, or 404 when no strategy can be built
        """
        params = params or RouteParams()

        try:
            strategy = await self.resolve_strategy(params.tenant_id, params.channel_type)
        except OidcError as e:
            logger.warning(
                f"Login unavailable: {e}",
                extra={"tenant_id": params.tenant_id, "channel_type": params.channel_type}
            )
            return Response(status_code=status.HTTP_404_NOT_FOUND)

        return await strategy.authenticate(request)

    async def login_callback(self, request: Request, params: Optional[RouteParams] = None) -> Response:
        """
        Complete the flow and store the user in the session.

        Returns:
            Redirect to the tenant root on success, 401 when the provider or
            token validation rejected the login, 404 for unknown tenants
        """
        params = params or RouteParams()

        try:
            strategy = await self.resolve_strategy(params.tenant_id, params.channel_type)
        except OidcError as e:
            logger.warning(f"Login callback unavailable: {e}")
            return Response(status_code=status.HTTP_404_NOT_FOUND)

        try:
            user = await strategy.complete(request)
        except OAuthError as e:
            logger.warning(f"Login rejected: {e.error} {e.description or ''}".strip())
            return Response(status_code=status.HTTP_401_UNAUTHORIZED)

        OidcSession(request).log_in(user)
        return RedirectResponse(url=f"{strategy.key.path_prefix}/", status_code=302)

    # =========================================================================
    # Logout
    # =========================================================================

    async def logout(self, request: Request, params: Optional[RouteParams] = None) -> Response:
        """
        Log the user out locally and at the provider.

        The redirect target is computed only after the session is destroyed.

        Returns:
            404 when the request is not authenticated, otherwise a redirect
        """
        params = params or RouteParams()
        session = OidcSession(request)

        if not session.is_authenticated():
            return Response(status_code=status.HTTP_404_NOT_FOUND)

        id_token = (session.user or {}).get("id_token")

        session.logout()
        await session.destroy()

        return RedirectResponse(
            url=await self._logout_redirect_url(id_token, params),
            status_code=302,
        )

    async def _logout_redirect_url(self, id_token: Optional[str], params: RouteParams) -> str:
        if self.options.redirect_uri_logout:
            return self.options.redirect_uri_logout

        end_session_endpoint = None
        try:
            strategy = await self.resolve_strategy(params.tenant_id, params.channel_type)
            end_session_endpoint = strategy.end_session_endpoint
        except OidcError as e:
            logger.warning(f"No issuer metadata for logout: {e}")

        if end_session_endpoint:
            if id_token:
                separator = "&" if "?" in end_session_endpoint else "?"
                return f"{end_session_endpoint}{separator}{urlencode({'id_token_hint': id_token})}"
            return end_session_endpoint

        return f"{params.path_prefix}{LOGGED_OUT_PATH}"

    def logged_out(self, params: Optional[RouteParams] = None) -> HTMLResponse:
        """Serve the logged-out confirmation page."""
        params = params or RouteParams()
        return render_logged_out_page(params.path_prefix)

    # =========================================================================
    # Token Refresh
    # =========================================================================

    async def refresh_tokens(self, request: Request) -> Response:
        """
        Refresh the session access token when it has expired.

        Returns:
            200 when there is nothing to refresh or the refresh succeeded;
            401 when the token endpoint is unknown or unreachable; the
            upstream status when the token endpoint rejected the grant
        """
        session = OidcSession(request)
        user = session.user or {}
        raw_tokens = user.get("authTokens")

        if not raw_tokens:
            return Response(status_code=status.HTTP_200_OK)

        tokens = AuthTokens.model_validate(raw_tokens)
        if not is_expired(tokens.expires_at):
            return Response(status_code=status.HTTP_200_OK)

        try:
            body = await self.refresher.refresh(tokens, user.get("userinfo"))
        except RefreshError as e:
            logger.warning(f"Token refresh failed: {e}", extra={"status_code": e.status_code})
            return Response(status_code=e.status_code)

        apply_token_response(user, body)
        session.save_user(user)
        logger.info("Session tokens refreshed")
        return Response(status_code=status.HTTP_200_OK)
