"""
Exceptions raised by the OIDC authentication core.

The request dispatcher converts every one of these into an HTTP response;
only FatalDiscoveryError is meant to reach the hosting process, and then as
a value returned from OidcService.initialize().
"""

from typing import Optional


class OidcError(Exception):
    """Base exception for OIDC module errors"""
    pass


# =============================================================================
# Discovery
# =============================================================================

class DiscoveryError(OidcError):
    """Issuer metadata could not be discovered."""

    def __init__(self, issuer_url: str, reason: str = ""):
        self.issuer_url = issuer_url
        self.reason = reason
        message = f"Issuer discovery failed for {issuer_url}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class FatalDiscoveryError(DiscoveryError):
    """Single-tenant issuer unreachable at startup; the process cannot serve traffic."""
    pass


class ScopedDiscoveryError(DiscoveryError):
    """Issuer unreachable for one tenant/channel; other tenants are unaffected."""
    pass


class UnknownChannelError(OidcError):
    """Channel tag is not one of the configured channel types."""

    def __init__(self, channel: Optional[str]):
        self.channel = channel
        super().__init__(f"Unknown or unconfigured channel: {channel!r}")


# =============================================================================
# Token Refresh
# =============================================================================

class RefreshError(OidcError):
    """Refreshing the session tokens failed."""

    status_code: int = 401

    def __init__(self, message: str, status_code: Optional[int] = None):
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class RefreshEndpointMissing(RefreshError):
    """Token expired but the session does not know which endpoint issued it."""

    def __init__(self):
        super().__init__("No token endpoint stored for the session", status_code=401)


class RefreshRejected(RefreshError):
    """Token endpoint answered with a non-200 status or could not be reached."""
    pass
