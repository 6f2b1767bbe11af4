"""
Configuration module for the OIDC authentication service.

This module uses Pydantic Settings to load and validate environment variables
for the identity provider (single-tenant issuer or multitenant issuer origin),
OAuth client credentials, session cookies, and CORS settings.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from oidc_service.models import (
    AuthParams,
    ChannelConfig,
    ChannelType,
    ClientMetadata,
    HttpOptions,
    ModuleOptions,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All configuration for the OIDC issuer, client registrations, sessions
    and server policies is defined here.
    """

    # =========================================================================
    # Identity Provider
    # =========================================================================

    OIDC_ISSUER: Optional[str] = Field(
        None,
        description="Issuer URL for single-tenant mode (e.g., https://idp.example.com)",
    )

    OIDC_ISSUER_ORIGIN: Optional[str] = Field(
        None,
        description="Issuer origin for multitenant mode; tenant and channel are appended as path segments",
    )

    # =========================================================================
    # Default Client (single-tenant)
    # =========================================================================

    OIDC_CLIENT_ID: Optional[str] = Field(
        None,
        description="OAuth client ID used in single-tenant mode",
    )

    OIDC_CLIENT_SECRET: Optional[str] = Field(
        None,
        description="OAuth client secret (optional for public clients)",
    )

    # =========================================================================
    # Per-channel Clients (multitenant)
    # =========================================================================

    OIDC_B2C_CLIENT_ID: Optional[str] = Field(None, description="Client ID for the b2c channel")
    OIDC_B2C_CLIENT_SECRET: Optional[str] = Field(None, description="Client secret for the b2c channel")
    OIDC_B2E_CLIENT_ID: Optional[str] = Field(None, description="Client ID for the b2e channel")
    OIDC_B2E_CLIENT_SECRET: Optional[str] = Field(None, description="Client secret for the b2e channel")

    # =========================================================================
    # Authorization Request
    # =========================================================================

    OIDC_SCOPES: str = Field(
        default="openid profile",
        description="Space-separated scopes requested at login",
    )

    OIDC_LOGIN_REDIRECT_URI: str = Field(
        ...,
        description="Base URL of this service; the login callback path is appended to it",
        min_length=1,
    )

    OIDC_LOGOUT_REDIRECT_URI: Optional[str] = Field(
        None,
        description="Where to send the browser after logout (overrides end_session_endpoint)",
    )

    OIDC_NONCE: Optional[str] = Field(
        None,
        description="'true' to send an explicit nonce only (Authlib adds one for openid scopes either way)",
    )

    OIDC_PROMPT: Optional[str] = Field(
        None,
        description="Optional OIDC prompt parameter (login, consent, select_account, none)",
    )

    OIDC_HTTP_TIMEOUT: Optional[float] = Field(
        None,
        description="Timeout in seconds for discovery and token endpoint calls",
        gt=0,
        le=120,
    )

    # =========================================================================
    # Session / Server
    # =========================================================================

    SESSION_SECRET: str = Field(
        ...,
        description="Secret key for signing the session cookie (must be cryptographically secure)",
        min_length=32,
    )

    SESSION_COOKIE_NAME: str = Field(default="oidc_session", description="Session cookie name")

    SESSION_HTTPS_ONLY: bool = Field(default=False, description="Mark the session cookie Secure")

    SERVICE_HOST: str = Field(default="0.0.0.0", description="Host to bind the service")

    SERVICE_PORT: int = Field(default=3000, description="Port to bind the service", ge=1, le=65535)

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_multitenant(self) -> bool:
        return bool(self.OIDC_ISSUER_ORIGIN)

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def channel_clients(self) -> Dict[ChannelType, ClientMetadata]:
        """Client registrations for every channel that has a client ID configured."""
        clients = {}
        if self.OIDC_B2C_CLIENT_ID:
            clients[ChannelType.B2C] = ClientMetadata(
                client_id=self.OIDC_B2C_CLIENT_ID,
                client_secret=self.OIDC_B2C_CLIENT_SECRET,
            )
        if self.OIDC_B2E_CLIENT_ID:
            clients[ChannelType.B2E] = ClientMetadata(
                client_id=self.OIDC_B2E_CLIENT_ID,
                client_secret=self.OIDC_B2E_CLIENT_SECRET,
            )
        return clients

    def module_options(self) -> ModuleOptions:
        """
        Build the typed module options consumed by OidcService.

        Returns:
            ModuleOptions instance
        """
        http_options = None
        if self.OIDC_HTTP_TIMEOUT is not None:
            http_options = HttpOptions(timeout=self.OIDC_HTTP_TIMEOUT)

        return ModuleOptions(
            issuer=None if self.is_multitenant else self.OIDC_ISSUER,
            issuer_origin=self.OIDC_ISSUER_ORIGIN,
            client_id=self.OIDC_CLIENT_ID,
            client_secret=self.OIDC_CLIENT_SECRET,
            scopes=self.OIDC_SCOPES,
            redirect_uri_login=self.OIDC_LOGIN_REDIRECT_URI.rstrip("/"),
            redirect_uri_logout=self.OIDC_LOGOUT_REDIRECT_URI,
            auth_params=AuthParams(nonce=self.OIDC_NONCE, prompt=self.OIDC_PROMPT),
            default_http_options=http_options,
            channels={
                channel: ChannelConfig(client_metadata=client)
                for channel, client in self.channel_clients.items()
            },
        )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("OIDC_ISSUER", "OIDC_ISSUER_ORIGIN", "OIDC_LOGIN_REDIRECT_URI")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        """
        Validate that issuer and redirect values are absolute http(s) URLs.

        Raises:
            ValueError: If the URL has no http/https scheme
        """
        if v is None:
            return v
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Expected an absolute http(s) URL, got: {v}")
        return v.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return v

    @model_validator(mode="after")
    def validate_mode(self) -> "Settings":
        """
        Validate that exactly one tenancy mode is fully configured.

        Raises:
            ValueError: If neither issuer nor issuer origin is set, or if the
                        selected mode lacks client credentials
        """
        if not self.OIDC_ISSUER and not self.OIDC_ISSUER_ORIGIN:
            raise ValueError("Either OIDC_ISSUER or OIDC_ISSUER_ORIGIN must be set")

        if self.is_multitenant:
            if not self.channel_clients:
                raise ValueError(
                    "Multitenant mode requires OIDC_B2C_CLIENT_ID and/or OIDC_B2E_CLIENT_ID"
                )
        elif not self.OIDC_CLIENT_ID:
            raise ValueError("Single-tenant mode requires OIDC_CLIENT_ID")

        return self


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


def validate_configuration(settings: Settings) -> dict:
    """
    Validate configuration settings and return a status report.

    Called during application startup to surface risky but legal
    configurations in the logs.

    Returns:
        Dictionary with validation status and any warnings.
    """
    errors = []
    warnings = []

    if settings.OIDC_ISSUER and settings.OIDC_ISSUER_ORIGIN:
        warnings.append("Both OIDC_ISSUER and OIDC_ISSUER_ORIGIN are set; OIDC_ISSUER is ignored")

    if not settings.is_multitenant and not settings.OIDC_CLIENT_SECRET:
        warnings.append("OIDC_CLIENT_SECRET is not set (required for confidential clients)")

    if "openid" not in settings.OIDC_SCOPES.split():
        warnings.append("OIDC_SCOPES does not include 'openid'; no ID token will be issued")

    if settings.SESSION_HTTPS_ONLY is False and settings.OIDC_LOGIN_REDIRECT_URI.startswith("https://"):
        warnings.append("Service is served over https but SESSION_HTTPS_ONLY is disabled")

    if len(settings.SESSION_SECRET) < 32:
        errors.append("SESSION_SECRET is too short (minimum 32 characters)")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "mode": "multitenant" if settings.is_multitenant else "single-tenant",
    }
