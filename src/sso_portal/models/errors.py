"""Standard error codes for the SSO portal.

All routes and services raise PortalError with one of these codes so the
front-end receives a consistent error body.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard portal error codes."""

    # Authentication error codes (ERR_AUTH_001-ERR_AUTH_006)
    AUTH_REQUIRED = "ERR_AUTH_001"
    PROVIDER_AUTH_ERROR = "ERR_AUTH_002"
    RECOVERY_LINK_INVALID = "ERR_AUTH_003"
    RECOVERY_SESSION_EXPIRED = "ERR_AUTH_004"
    ADMIN_REQUIRED = "ERR_AUTH_005"
    OAUTH_PROVIDER_UNSUPPORTED = "ERR_AUTH_006"

    # Request error codes (ERR_REQ_001-ERR_REQ_004)
    PASSWORD_MISMATCH = "ERR_REQ_001"
    PASSWORD_TOO_SHORT = "ERR_REQ_002"
    REQUEST_IN_PROGRESS = "ERR_REQ_003"
    APP_NOT_FOUND = "ERR_REQ_004"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.AUTH_REQUIRED: "Authentication required to perform this action",
    ErrorCode.PROVIDER_AUTH_ERROR: "Authentication failed",
    ErrorCode.RECOVERY_LINK_INVALID: "Invalid or expired link. Please request a new one.",
    ErrorCode.RECOVERY_SESSION_EXPIRED: "Session expired. Please request a new link.",
    ErrorCode.ADMIN_REQUIRED: "Access denied: admin rights required",
    ErrorCode.OAUTH_PROVIDER_UNSUPPORTED: "Unsupported sign-in provider",
    ErrorCode.PASSWORD_MISMATCH: "Passwords do not match",
    ErrorCode.PASSWORD_TOO_SHORT: "Password must be at least 8 characters",
    ErrorCode.REQUEST_IN_PROGRESS: "A request is already in progress",
    ErrorCode.APP_NOT_FOUND: "Application not found",
}

# Recovery suggestions for the front-end
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.AUTH_REQUIRED: "Sign in at /login",
    ErrorCode.PROVIDER_AUTH_ERROR: "Check the entered details and try again",
    ErrorCode.RECOVERY_LINK_INVALID: "Request a new link at /forgot-password",
    ErrorCode.RECOVERY_SESSION_EXPIRED: "Request a new link at /forgot-password",
    ErrorCode.ADMIN_REQUIRED: "Return to /apps",
    ErrorCode.OAUTH_PROVIDER_UNSUPPORTED: "Use google, github or apple",
    ErrorCode.PASSWORD_MISMATCH: "Re-enter the password confirmation",
    ErrorCode.PASSWORD_TOO_SHORT: "Choose a longer password",
    ErrorCode.REQUEST_IN_PROGRESS: "Wait for the pending request to finish",
    ErrorCode.APP_NOT_FOUND: "Pick an application from /apps",
}


class ErrorResponse(BaseModel):
    """Standard error body returned by every portal endpoint."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
        message: Optional[str] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error
            message: Overrides the default message (provider text is passed through)

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=message or ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class PortalError(Exception):
    """Exception raised by portal operations.

    Caught by the API exception handler and converted to an ErrorResponse.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
        message: Optional[str] = None,
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details, message=self.message)
