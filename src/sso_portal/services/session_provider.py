"""Session Provider contract.

The Session Provider is the managed identity backend: it owns users,
sessions and tokens, and sends confirmation and recovery emails. The portal
only calls into it through this protocol.
"""

from typing import Optional, Protocol

from sso_portal.models.auth import ProviderSession


class SessionProviderError(Exception):
    """Raised when the Session Provider rejects or fails a call.

    ``message`` is the provider's own text and may be shown to the user.
    """

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class SessionProvider(Protocol):
    """Operations the portal needs from the identity backend.

    Every instance is bound to one storage slot that holds its cached
    session, so two instances never see each other's session.
    """

    def peek_session(self) -> Optional[ProviderSession]:
        """Cached session as stored, without refreshing or contacting the provider."""
        ...

    def get_session(self) -> Optional[ProviderSession]:
        """Current session, refreshed if close to expiry; None if signed out."""
        ...

    def sign_in_with_password(self, email: str, password: str) -> ProviderSession: ...

    def sign_up(
        self, email: str, password: str, full_name: str, redirect_to: str
    ) -> None: ...

    def confirm_sign_up(self, email: str, code: str) -> Optional[ProviderSession]:
        """Confirm a registration; returns a session if the user was signed in."""
        ...

    def sign_out(self) -> None:
        """Clear the cached session, then revoke it at the provider."""
        ...

    def clear_local_session(self) -> Optional[ProviderSession]:
        """Drop the cached session without contacting the provider."""
        ...

    def revoke(self, session: ProviderSession) -> None:
        """Revoke a session at the provider."""
        ...

    def send_recovery_email(self, email: str, redirect_to: str) -> None: ...

    def set_session(self, access_token: str, refresh_token: str = "") -> ProviderSession:
        """Validate an externally obtained token pair and adopt it."""
        ...

    def set_recovery_session(self, email: str, code: str) -> ProviderSession:
        """Adopt an emailed password-reset code as a recovery-only session."""
        ...

    def update_password(self, new_password: str) -> None: ...

    def build_oauth_url(self, provider: str, redirect_to: str) -> str: ...

    def exchange_code_for_session(self, code: str, redirect_to: str) -> ProviderSession: ...
