"""Local password checks run before any Session Provider call."""

from sso_portal.models.errors import ErrorCode, PortalError

MIN_PASSWORD_LENGTH = 8


def validate_new_password(
    password: str,
    confirm_password: str,
    min_length: int = MIN_PASSWORD_LENGTH,
) -> None:
    """Reject a mismatched or too-short password.

    The confirmation is checked first, so a short mismatched pair reports the
    mismatch.

    Raises:
        PortalError: PASSWORD_MISMATCH or PASSWORD_TOO_SHORT
    """
    if password != confirm_password:
        raise PortalError(ErrorCode.PASSWORD_MISMATCH)
    if len(password) < min_length:
        raise PortalError(
            ErrorCode.PASSWORD_TOO_SHORT,
            message=f"Password must be at least {min_length} characters",
        )
