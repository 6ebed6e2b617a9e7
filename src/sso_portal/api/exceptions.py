"""FastAPI exception handlers for converting portal errors to HTTP responses.

The ErrorCode-to-HTTP status mapping:
- 400 Bad Request: local validation (password checks)
- 401 Unauthorized: authentication required or rejected by the provider
- 403 Forbidden: admin rights required
- 404 Not Found: unknown app
- 409 Conflict: the same submission is already in flight
- 410 Gone: recovery link or recovery session no longer usable

Untrusted redirects never reach these handlers; they degrade silently.

Usage:
    from sso_portal.api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_410_GONE,
)

from sso_portal.models.errors import ErrorCode, PortalError
from sso_portal.services.session_provider import SessionProviderError
from sso_portal.utils.logging import get_logger, log_auth_event

logger = get_logger(__name__)

ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # Local validation -> 400
    ErrorCode.PASSWORD_MISMATCH: HTTP_400_BAD_REQUEST,
    ErrorCode.PASSWORD_TOO_SHORT: HTTP_400_BAD_REQUEST,
    ErrorCode.OAUTH_PROVIDER_UNSUPPORTED: HTTP_400_BAD_REQUEST,
    # Authentication -> 401
    ErrorCode.AUTH_REQUIRED: HTTP_401_UNAUTHORIZED,
    ErrorCode.PROVIDER_AUTH_ERROR: HTTP_401_UNAUTHORIZED,
    # Authorization -> 403
    ErrorCode.ADMIN_REQUIRED: HTTP_403_FORBIDDEN,
    # Not found -> 404
    ErrorCode.APP_NOT_FOUND: HTTP_404_NOT_FOUND,
    # Duplicate submission -> 409
    ErrorCode.REQUEST_IN_PROGRESS: HTTP_409_CONFLICT,
    # Spent recovery link -> 410
    ErrorCode.RECOVERY_LINK_INVALID: HTTP_410_GONE,
    ErrorCode.RECOVERY_SESSION_EXPIRED: HTTP_410_GONE,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """HTTP status for an ErrorCode, 400 if not explicitly mapped."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    """Convert PortalError to its ErrorResponse body and status."""
    return JSONResponse(
        status_code=get_http_status_for_error(exc.code),
        content=exc.to_error_response().model_dump(mode="json"),
    )


async def session_provider_error_handler(
    request: Request, exc: SessionProviderError
) -> JSONResponse:
    """Surface a provider rejection verbatim as PROVIDER_AUTH_ERROR."""
    log_auth_event(
        logger,
        "provider_error",
        outcome="failed",
        error=exc.code,
        path=request.url.path,
    )
    error = PortalError(ErrorCode.PROVIDER_AUTH_ERROR, message=exc.message)
    return await portal_error_handler(request, error)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(PortalError, portal_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SessionProviderError, session_provider_error_handler)  # type: ignore[arg-type]
