"""Authentication models for the portal's session handling.

This module defines models for:
- ProviderUser / ProviderSession: Session material owned by the Session Provider
- PendingSignUp: Sign-up session kept until the email is confirmed
- SessionEvent: Events delivered on a SessionContext subscription
- RecoveryCredential: One-time credential parsed from a recovery link fragment
- Request bodies for the login, registration and recovery endpoints
"""

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

# Refresh the access token when it expires within this many seconds
TOKEN_REFRESH_MARGIN_SECONDS = 60


class ProviderUser(BaseModel):
    """User identity as reported by the Session Provider."""

    model_config = ConfigDict(strict=True)

    id: str = Field(..., description="Provider user id (Cognito sub)")
    username: str = Field(..., description="Provider username")
    email: Optional[str] = Field(default=None, description="Email address")
    full_name: Optional[str] = Field(default=None, description="Display name")


class ProviderSession(BaseModel):
    """Live session issued by the Session Provider.

    The portal never persists this beyond the provider's own storage slot;
    it is only read long enough to forward the access token.

    A session opened from an emailed password-reset code carries that code
    instead of tokens. It can only set a new password for its user.
    """

    model_config = ConfigDict(strict=True)

    access_token: str = Field(default="", description="Short-lived bearer token")
    refresh_token: Optional[str] = Field(default=None, description="Longer-lived refresh token")
    recovery_code: Optional[str] = Field(
        default=None, description="Password-reset code for a recovery session"
    )
    expires_at: int = Field(..., description="Unix epoch seconds when access_token expires")
    user: ProviderUser

    @model_validator(mode="after")
    def _require_credential(self) -> "ProviderSession":
        if not self.access_token and not self.recovery_code:
            raise ValueError("Session needs an access token or a recovery code")
        return self

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at

    @property
    def needs_refresh(self) -> bool:
        """True if the token expires within the refresh margin."""
        return time.time() >= self.expires_at - TOKEN_REFRESH_MARGIN_SECONDS


class PendingSignUp(BaseModel):
    """Sign-up awaiting email confirmation in this browser.

    ``session`` is the provider's sign-up session id; presenting it with the
    confirmation code signs the user in without a password.
    """

    model_config = ConfigDict(strict=True)

    username: str
    session: str


class SessionEvent(str, Enum):
    """Events delivered to SessionContext subscribers."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    PASSWORD_UPDATED = "PASSWORD_UPDATED"


class RecoveryCredential(BaseModel):
    """One-time credential delivered in a recovery link fragment.

    Either a token pair (``access_token``, ``refresh_token``) or the
    provider's password-reset code with the account's ``email``.
    """

    model_config = ConfigDict(strict=True)

    access_token: str = Field(default="")
    refresh_token: str = Field(default="")
    email: str = Field(default="")
    code: str = Field(default="")
    type: str = Field(..., description="Link type marker, 'recovery' for password resets")

    @model_validator(mode="after")
    def _require_credential(self) -> "RecoveryCredential":
        if not self.access_token and not (self.email and self.code):
            raise ValueError("Fragment carries no access token or reset code")
        return self

    @property
    def is_recovery(self) -> bool:
        return self.type == "recovery"

    @property
    def secret(self) -> str:
        """The part of the credential that may be used only once."""
        if self.access_token:
            return self.access_token
        return f"{self.email.lower()}:{self.code}"


# === Request bodies ===


class LoginRequest(BaseModel):
    """Body for POST /api/auth/login."""

    email: EmailStr
    password: str = Field(..., min_length=1)
    redirect: Optional[str] = None
    next: Optional[str] = Field(default=None, description="Portal path to open after sign-in")


class RegisterRequest(BaseModel):
    """Body for POST /api/auth/register."""

    full_name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    confirm_password: str
    redirect: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    """Body for POST /api/auth/forgot-password."""

    email: EmailStr


class RecoverySessionRequest(BaseModel):
    """Body for POST /api/auth/recovery/session.

    ``fragment`` is the raw URL fragment read by the bootstrap page,
    with or without the leading '#'. Empty when the page was reloaded.
    """

    fragment: str = ""


class PasswordUpdateRequest(BaseModel):
    """Body for POST /api/auth/recovery/password."""

    password: str
    confirm_password: str


# === Recovery flow ===


class RecoveryState(str, Enum):
    """States of the password recovery screen."""

    LOADING = "loading"
    READY = "ready"
    SAVING = "saving"
    SUCCESS = "success"
    ERROR = "error"


class RecoveryStatus(BaseModel):
    """JSON body returned by the recovery endpoints."""

    state: RecoveryState
    email: Optional[str] = None
    redirect_url: Optional[str] = Field(
        default=None, description="Where to navigate once the flow is over"
    )
    redirect_delay_seconds: Optional[int] = None
