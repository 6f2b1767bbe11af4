"""
Data Models Module

This module defines Pydantic models for the OIDC module configuration and
for the authentication records kept in the HTTP session.

Models are organized by functional area:
- Channel models (channel types, tenant/channel keys, route parameters)
- Configuration models (client metadata, auth params, module options)
- Session models (auth tokens, token responses, session user)
- Health check models
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Channel Models
# ============================================================================

class ChannelType(str, Enum):
    """Closed set of channels a tenant can expose."""

    B2C = "b2c"
    B2E = "b2e"

    @classmethod
    def from_tag(cls, tag: Optional[str]) -> Optional["ChannelType"]:
        """
        Map a raw channel tag onto the enum.

        Args:
            tag: Channel string from a route or a session record

        Returns:
            Matching ChannelType, or None for a missing or unknown tag
        """
        if not tag:
            return None
        try:
            return cls(tag.lower())
        except ValueError:
            return None


class ChannelKey(BaseModel):
    """
    Identifies one tenant/channel pair.

    Both fields unset designates single-tenant mode.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: Optional[str] = Field(None, description="Tenant identifier")
    channel_type: Optional[ChannelType] = Field(None, description="Tenant channel")

    @classmethod
    def single(cls) -> "ChannelKey":
        return cls()

    @property
    def is_multitenant(self) -> bool:
        return self.tenant_id is not None and self.channel_type is not None

    @property
    def path_prefix(self) -> str:
        """URL path prefix (``/tenant/b2c``) or empty string in single-tenant mode."""
        if not self.is_multitenant:
            return ""
        return f"/{self.tenant_id}/{self.channel_type.value}"

    def __str__(self) -> str:
        if not self.is_multitenant:
            return "single-tenant"
        return f"{self.tenant_id}/{self.channel_type.value}"


class RouteParams(BaseModel):
    """Tenant/channel path parameters as received from the router."""

    tenant_id: Optional[str] = None
    channel_type: Optional[str] = None

    @property
    def is_multitenant(self) -> bool:
        return bool(self.tenant_id and self.channel_type)

    @property
    def path_prefix(self) -> str:
        if not self.is_multitenant:
            return ""
        return f"/{self.tenant_id}/{self.channel_type}"


# ============================================================================
# Configuration Models
# ============================================================================

class ClientMetadata(BaseModel):
    """OAuth client registration used against one issuer."""

    client_id: str = Field(..., description="OAuth client identifier", min_length=1)
    client_secret: Optional[str] = Field(None, description="Client secret (confidential clients)")


class ChannelConfig(BaseModel):
    """Per-channel configuration in multitenant mode."""

    client_metadata: ClientMetadata


class AuthParams(BaseModel):
    """Extra parameters sent on the authorization request."""

    nonce: bool = Field(default=False, description="Send an explicit nonce only; Authlib adds one for openid scopes either way")
    prompt: Optional[str] = Field(None, description="OIDC prompt parameter (login, consent, ...)")
    extra: Dict[str, str] = Field(default_factory=dict, description="Additional authorization parameters")

    @field_validator("nonce", mode="before")
    @classmethod
    def coerce_nonce(cls, v: Any) -> bool:
        """Accept the ``"true"``/``"false"`` strings environment variables carry."""
        if v is None:
            return False
        if isinstance(v, str):
            return v.strip().lower() == "true"
        return bool(v)


class HttpOptions(BaseModel):
    """Options for outbound calls to the identity provider."""

    timeout: Optional[float] = Field(None, description="Request timeout in seconds", gt=0)


class ModuleOptions(BaseModel):
    """
    Process-wide OIDC configuration.

    ``issuer`` selects single-tenant mode. ``issuer_origin`` selects
    multitenant mode, where every tenant/channel pair is discovered under
    ``issuer_origin/{tenant_id}/{channel_type}``.
    """

    issuer: Optional[str] = None
    issuer_origin: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    scopes: str = "openid profile"
    redirect_uri_login: str
    redirect_uri_logout: Optional[str] = None
    auth_params: AuthParams = Field(default_factory=AuthParams)
    default_http_options: Optional[HttpOptions] = None
    channels: Dict[ChannelType, ChannelConfig] = Field(default_factory=dict)

    @property
    def is_multitenant(self) -> bool:
        return bool(self.issuer_origin)

    @property
    def http_timeout(self) -> Optional[float]:
        if self.default_http_options is None:
            return None
        return self.default_http_options.timeout

    @property
    def default_client(self) -> Optional[ClientMetadata]:
        if not self.client_id:
            return None
        return ClientMetadata(client_id=self.client_id, client_secret=self.client_secret)


# ============================================================================
# Session Models
# ============================================================================

class AuthTokens(BaseModel):
    """Token set stored on the session user (camelCase keys in the session)."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: Optional[str] = Field(None, alias="accessToken")
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
    token_endpoint: Optional[str] = Field(None, alias="tokenEndpoint")
    expires_at: Optional[float] = Field(None, alias="expiresAt")


class TokenResponse(BaseModel):
    """Token endpoint response to a refresh_token grant."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    expires_in: Optional[float] = Field(None, allow_inf_nan=False)
    expires_at: Optional[float] = Field(None, allow_inf_nan=False)


class SessionUser(BaseModel):
    """Record stored under the session ``user`` key after a successful login."""

    model_config = ConfigDict(populate_by_name=True)

    id_token: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    userinfo: Dict[str, Any] = Field(default_factory=dict)
    auth_tokens: AuthTokens = Field(default_factory=AuthTokens, alias="authTokens")


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    mode: str = Field(..., description="single-tenant or multitenant")
    cached_strategies: int = Field(..., description="Number of strategies currently cached")
