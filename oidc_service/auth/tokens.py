"""
Token refresh utilities.

This module handles:
- Deciding whether the session access token has expired
- Selecting the client credentials matching the user's login channel
- Running the refresh_token grant against the stored token endpoint
- Applying a successful token response onto the session user
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from oidc_service.auth.errors import RefreshEndpointMissing, RefreshRejected
from oidc_service.models import AuthTokens, ChannelType, ClientMetadata, ModuleOptions, TokenResponse

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 10.0


# =============================================================================
# Expiry
# =============================================================================

def is_expired(expires_at: Optional[float]) -> bool:
    """
    Check whether a token has expired.

    A token without a known expiry is never considered expired.

    Args:
        expires_at: Expiry as epoch seconds, or None

    Returns:
        True once the current time has reached expires_at
    """
    if expires_at is None:
        return False
    return time.time() >= expires_at


# =============================================================================
# Refresh Grant
# =============================================================================

class TokenRefresher:
    """
    Exchanges refresh tokens at the token endpoint recorded in the session.

    Attributes:
        options: Module options providing client credentials and timeout
    """

    def __init__(self, options: ModuleOptions):
        self.options = options

    @property
    def timeout(self) -> float:
        return self.options.http_timeout or DEFAULT_HTTP_TIMEOUT

    def credentials_for(self, userinfo: Optional[Dict[str, Any]]) -> Optional[ClientMetadata]:
        """
        Pick the client credentials for the channel the user logged in through.

        Args:
            userinfo: Session userinfo; its ``channel`` tag selects the client

        Returns:
            Channel client metadata, or the default client when the user has
            no (or an unknown) channel tag
        """
        tag = (userinfo or {}).get("channel")
        channel = ChannelType.from_tag(tag)

        if tag and channel is None:
            logger.warning(
                "Ignoring unknown channel tag on session user",
                extra={"channel": tag}
            )

        if channel is not None and channel in self.options.channels:
            return self.options.channels[channel].client_metadata

        return self.options.default_client

    async def refresh(
        self,
        tokens: AuthTokens,
        userinfo: Optional[Dict[str, Any]] = None,
    ) -> TokenResponse:
        """
        Run the refresh_token grant.

        Args:
            tokens: Current session tokens
            userinfo: Session userinfo used to select credentials

        Returns:
            Parsed token endpoint response

        Raises:
            RefreshEndpointMissing: If the session has no token endpoint
            RefreshRejected: If the endpoint answers non-200, is unreachable or
                             returns a malformed body
        """
        if not tokens.token_endpoint:
            raise RefreshEndpointMissing()

        payload = {
            "grant_type": "refresh_token",
            "refresh_token": tokens.refresh_token or "",
        }

        credentials = self.credentials_for(userinfo)
        if credentials is not None:
            payload["client_id"] = credentials.client_id
            if credentials.client_secret:
                payload["client_secret"] = credentials.client_secret

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    tokens.token_endpoint,
                    data=payload,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            logger.error(
                f"Token endpoint unreachable: {e}",
                extra={"token_endpoint": tokens.token_endpoint}
            )
            raise RefreshRejected(f"Token endpoint unreachable: {e}", status_code=401) from e

        if response.status_code != 200:
            logger.warning(
                f"Token refresh rejected with status {response.status_code}",
                extra={"token_endpoint": tokens.token_endpoint}
            )
            raise RefreshRejected(
                f"Token endpoint returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(
                f"Token endpoint returned an invalid body: {e}",
                extra={"token_endpoint": tokens.token_endpoint}
            )
            raise RefreshRejected("Token endpoint returned an invalid body", status_code=502) from e


def apply_token_response(user: Dict[str, Any], body: TokenResponse) -> None:
    """
    Write a successful refresh response onto the session user in place.

    ``expiresAt`` becomes ``now + expires_in`` when the response carries
    ``expires_in``, else the absolute ``expires_at`` when present, else it is
    left unchanged.

    Args:
        user: Session user record (mutated)
        body: Parsed token endpoint response
    """
    auth_tokens = user.setdefault("authTokens", {})

    if body.access_token:
        auth_tokens["accessToken"] = body.access_token
        user["access_token"] = body.access_token

    # Providers without refresh token rotation omit it; keep the old one.
    if body.refresh_token:
        auth_tokens["refreshToken"] = body.refresh_token
        user["refresh_token"] = body.refresh_token

    if body.id_token:
        user["id_token"] = body.id_token

    if body.expires_in is not None:
        auth_tokens["expiresAt"] = int(time.time()) + int(body.expires_in)
    elif body.expires_at is not None:
        auth_tokens["expiresAt"] = int(body.expires_at)
    else:
        logger.warning("Token response has no expiry; keeping previous expiresAt")
