"""
OIDC strategy construction.

A strategy binds one discovered issuer and one client registration to a
tenant/channel key, and runs the authorization code flow (with PKCE and
optional nonce) through Authlib's Starlette integration.
"""

import logging
import secrets
from typing import Any, Dict, Optional, Tuple

import httpx
from authlib.integrations.starlette_client import OAuth
from fastapi import Request
from starlette.responses import Response

from oidc_service.auth.errors import DiscoveryError, UnknownChannelError
from oidc_service.auth.tokens import DEFAULT_HTTP_TIMEOUT
from oidc_service.models import (
    AuthParams,
    AuthTokens,
    ChannelKey,
    ClientMetadata,
    ModuleOptions,
    SessionUser,
)

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"
CALLBACK_PATH = "/login/callback"


# =============================================================================
# Nonce Helper
# =============================================================================

def generate_nonce() -> str:
    return secrets.token_urlsafe(32)


# =============================================================================
# Strategy
# =============================================================================

class OidcStrategy:
    """
    Executable authorization code flow for one issuer/client/channel.

    Attributes:
        client: Authlib OAuth client registered against the issuer
        metadata: Discovered issuer metadata
        key: Tenant/channel the strategy serves
        redirect_uri: Callback URL registered with the provider
        auth_params: Extra authorization request parameters
    """

    def __init__(
        self,
        client: Any,
        metadata: Dict[str, Any],
        key: ChannelKey,
        redirect_uri: str,
        auth_params: Optional[AuthParams] = None,
    ):
        self.client = client
        self.metadata = metadata
        self.key = key
        self.redirect_uri = redirect_uri
        self.auth_params = auth_params or AuthParams()

    @property
    def issuer(self) -> Optional[str]:
        return self.metadata.get("issuer")

    @property
    def token_endpoint(self) -> Optional[str]:
        return self.metadata.get("token_endpoint")

    @property
    def end_session_endpoint(self) -> Optional[str]:
        return self.metadata.get("end_session_endpoint")

    def authorization_params(self) -> Dict[str, str]:
        """Parameters added to every authorization request."""
        params = dict(self.auth_params.extra)
        if self.auth_params.prompt:
            params["prompt"] = self.auth_params.prompt
        if self.auth_params.nonce:
            params["nonce"] = generate_nonce()
        return params

    async def authenticate(self, request: Request) -> Response:
        """
        Start the flow by redirecting to the authorization endpoint.

        Authlib generates the PKCE code verifier from the registered
        code_challenge_method and keeps it in the session with state and
        nonce until the callback.
        """
        logger.info(
            "Redirecting to authorization endpoint",
            extra={"channel_key": str(self.key), "issuer": self.issuer}
        )
        return await self.client.authorize_redirect(
            request,
            self.redirect_uri,
            **self.authorization_params()
        )

    async def complete(self, request: Request) -> Dict[str, Any]:
        """
        Finish the flow on the callback request.

        Exchanges the code, validates the ID token and builds the session
        user record.

        Returns:
            Serialized SessionUser

        Raises:
            authlib OAuthError: If the provider returned an error or the
                                state/ID token checks failed
        """
        token = await self.client.authorize_access_token(request)

        userinfo = token.get("userinfo")
        if not userinfo and self.metadata.get("userinfo_endpoint"):
            userinfo = await self.client.userinfo(token=token)
        userinfo = dict(userinfo or {})

        if self.key.channel_type is not None:
            userinfo["channel"] = self.key.channel_type.value

        user = SessionUser(
            id_token=token.get("id_token"),
            access_token=token.get("access_token"),
            refresh_token=token.get("refresh_token"),
            userinfo=userinfo,
            auth_tokens=AuthTokens(
                access_token=token.get("access_token"),
                refresh_token=token.get("refresh_token"),
                token_endpoint=self.token_endpoint,
                expires_at=token.get("expires_at"),
            ),
        )

        logger.info(
            "User authenticated",
            extra={"channel_key": str(self.key), "sub": userinfo.get("sub")}
        )

        return user.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Builder
# =============================================================================

def issuer_url_for(options: ModuleOptions, key: ChannelKey) -> str:
    """
    Compose the issuer URL for a tenant/channel key.

    Returns:
        ``issuer`` in single-tenant mode, otherwise
        ``issuer_origin/{tenant_id}/{channel_type}``
    """
    if not options.is_multitenant:
        return options.issuer.rstrip("/")
    return f"{options.issuer_origin.rstrip('/')}{key.path_prefix}"


def redirect_uri_for(options: ModuleOptions, key: ChannelKey) -> str:
    return f"{options.redirect_uri_login.rstrip('/')}{key.path_prefix}{CALLBACK_PATH}"


def client_for(options: ModuleOptions, key: ChannelKey) -> ClientMetadata:
    """
    Select the client registration serving a key.

    Raises:
        UnknownChannelError: If the channel has no configured client
    """
    if key.channel_type is None:
        client = options.default_client
        if client is None:
            raise UnknownChannelError(None)
        return client

    channel_config = options.channels.get(key.channel_type)
    if channel_config is None:
        raise UnknownChannelError(key.channel_type.value)
    return channel_config.client_metadata


async def discover_issuer(
    issuer_url: str,
    client_metadata: ClientMetadata,
    scopes: str,
    timeout: float,
) -> Tuple[Any, Dict[str, Any]]:
    """
    Register an Authlib client for the issuer and load its metadata.

    A fresh OAuth registry is used per call so rebuilt strategies never share
    a cached client.

    Returns:
        (client, metadata) tuple

    Raises:
        httpx.HTTPError: If the discovery document cannot be fetched
        ValueError: If the discovery document is not valid JSON
    """
    oauth = OAuth()
    client = oauth.register(
        name="oidc",
        server_metadata_url=f"{issuer_url}{WELL_KNOWN_PATH}",
        client_id=client_metadata.client_id,
        client_secret=client_metadata.client_secret,
        client_kwargs={
            "scope": scopes,
            "code_challenge_method": "S256",
            "timeout": timeout,
        },
    )
    metadata = await client.load_server_metadata()
    return client, dict(metadata)


async def build_strategy(options: ModuleOptions, key: ChannelKey) -> OidcStrategy:
    """
    Discover the issuer for a key and build its strategy.

    Args:
        options: Module options
        key: Tenant/channel key to build for

    Returns:
        Ready-to-use OidcStrategy

    Raises:
        DiscoveryError: If the issuer metadata cannot be loaded
        UnknownChannelError: If no client is configured for the channel
    """
    issuer_url = issuer_url_for(options, key)
    client_metadata = client_for(options, key)
    timeout = options.http_timeout or DEFAULT_HTTP_TIMEOUT

    logger.info(
        "Discovering issuer",
        extra={"channel_key": str(key), "issuer_url": issuer_url}
    )

    try:
        client, metadata = await discover_issuer(
            issuer_url,
            client_metadata,
            options.scopes,
            timeout,
        )
    except (httpx.HTTPError, ValueError) as e:
        raise DiscoveryError(issuer_url, str(e)) from e

    if not metadata.get("authorization_endpoint") or not metadata.get("token_endpoint"):
        raise DiscoveryError(issuer_url, "discovery document lacks authorization or token endpoint")

    return OidcStrategy(
        client=client,
        metadata=metadata,
        key=key,
        redirect_uri=redirect_uri_for(options, key),
        auth_params=options.auth_params,
    )
