"""
FastAPI Application Factory
===========================

Entry point for the OIDC authentication service.

Routers:
    - /login, /logout, /loggedout, /refresh-tokens, /user : Authentication
    - /{tenant_id}/{channel_type}/...                       : Multitenant variants
    - /health                                               : Health check

Running the Service:
    Development:
        uvicorn oidc_service.main:create_app --factory --reload --port 3000

    Production:
        uvicorn oidc_service.main:create_app --factory --host 0.0.0.0 --port 3000

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn oidc_service.main:create_app --factory --reload
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
import uvicorn

from oidc_service.auth import OidcService, auth_router
from oidc_service.config import Settings, get_settings, validate_configuration
from oidc_service.models import HealthResponse


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Log configuration warnings
        - Discover the issuer eagerly in single-tenant mode; a failure there
          stops the process, since no request could be authenticated

    Shutdown tasks:
        - Drop cached strategies
    """
    logger = logging.getLogger("oidc_service.main")
    settings: Settings = app.state.settings
    service: OidcService = app.state.oidc_service

    report = validate_configuration(settings)
    for warning in report["warnings"]:
        logger.warning(warning)

    logger.info(
        "Starting OIDC service",
        extra={"mode": report["mode"], "log_level": settings.LOG_LEVEL}
    )

    fatal = await service.initialize()
    if fatal is not None:
        logger.critical(
            "No usable identity provider, exiting",
            extra={"issuer_url": fatal.issuer_url}
        )
        raise SystemExit(1)

    yield

    logger.info("Shutting down OIDC service")
    service.strategies.clear()


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[OidcService] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - Session and CORS middleware
        - Route handlers
        - Exception handlers

    Args:
        settings: Settings to use (loaded from the environment when omitted)
        service: Pre-built OidcService (built from settings when omitted)

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="OIDC Authentication Service",
        description="OpenID Connect login, logout and token refresh with multitenant support",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.oidc_service = service or OidcService(settings.module_options())

    # Authlib keeps state/nonce/code_verifier here between login and callback
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET,
        session_cookie=settings.SESSION_COOKIE_NAME,
        same_site="lax",
        https_only=settings.SESSION_HTTPS_ONLY,
    )

    if settings.allowed_origins_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins_list,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """
        Health check endpoint.

        Returns:
            Service status, tenancy mode and strategy cache size
        """
        oidc_service: OidcService = app.state.oidc_service
        return HealthResponse(
            status="ok",
            service="oidc-service",
            mode="multitenant" if oidc_service.is_multitenant else "single-tenant",
            cached_strategies=len(oidc_service.strategies),
        )

    # Auth routes include /{tenant_id}/{channel_type}/... patterns, so they go last
    app.include_router(auth_router)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger = logging.getLogger("oidc_service.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None
            }
        )

    return app


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "oidc_service.main:create_app",
        factory=True,
        host=settings.SERVICE_HOST,
        port=settings.SERVICE_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
