"""FastAPI application for the SSO portal.

This package provides endpoints for:
- Login, registration, OAuth and the confirmation callback
- Token hand-off to client applications
- Password recovery
- The app launcher and the admin console entry check
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from sso_portal import __version__
from sso_portal.api.exceptions import register_exception_handlers
from sso_portal.api.middleware import BrowserStateMiddleware, CorrelationIdMiddleware
from sso_portal.api.routes import apps_router, auth_router, recovery_router
from sso_portal.config import get_settings
from sso_portal.utils.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)


def create_app() -> FastAPI:
    """Build the portal application from the current settings."""
    settings = get_settings()

    app = FastAPI(
        title="SSO Portal",
        description="Central sign-in and token hand-off for client applications",
        version=__version__,
    )

    # Starlette runs the last-added middleware first
    app.add_middleware(BrowserStateMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(recovery_router)
    app.include_router(apps_router)

    @app.get("/api/ping")
    async def ping() -> dict[str, Any]:
        """Health check."""
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
            "service": "sso-portal",
        }

    logger.info("SSO portal configured for %s", settings.environment)
    return app


app = create_app()

# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "sso_portal.api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
