"""Pydantic models for the SSO portal."""

from .auth import (
    ForgotPasswordRequest,
    LoginRequest,
    PasswordUpdateRequest,
    ProviderSession,
    ProviderUser,
    RecoveryCredential,
    RecoveryState,
    RecoveryStatus,
    RecoverySessionRequest,
    RegisterRequest,
    SessionEvent,
)
from .directory import ClientApp, LoginStat, Profile, ProfileRole
from .errors import ErrorCode, ErrorResponse, PortalError
from .navigation import (
    GuardDecision,
    HandoffState,
    LoginScreen,
    NavigationDecision,
    NavigationKind,
    NavigationResponse,
    RegistrationResponse,
)

__all__ = [
    # Auth
    "ForgotPasswordRequest",
    "LoginRequest",
    "PasswordUpdateRequest",
    "ProviderSession",
    "ProviderUser",
    "RecoveryCredential",
    "RecoveryState",
    "RecoveryStatus",
    "RecoverySessionRequest",
    "RegisterRequest",
    "SessionEvent",
    # Directory
    "ClientApp",
    "LoginStat",
    "Profile",
    "ProfileRole",
    # Errors
    "ErrorCode",
    "ErrorResponse",
    "PortalError",
    # Navigation
    "GuardDecision",
    "HandoffState",
    "LoginScreen",
    "NavigationDecision",
    "NavigationKind",
    "NavigationResponse",
    "RegistrationResponse",
]
