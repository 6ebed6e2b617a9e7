"""Explicit session context with a subscription channel.

A SessionContext wraps one Session Provider instance and is handed to the
code that needs the current session. Routes get the ambient context of the
calling browser from a dependency; the recovery flow gets its own context
over a separately keyed provider, so the two never observe each other.

Delivery order for every event:
1. the context's own session slot is updated,
2. subscribers are called in registration order.
A subscriber that raises is logged and skipped.
"""

from typing import Callable, Optional

from sso_portal.models.auth import ProviderSession, SessionEvent
from sso_portal.services.session_provider import SessionProvider, SessionProviderError
from sso_portal.utils.logging import get_logger, log_auth_event

logger = get_logger(__name__)

Subscriber = Callable[[SessionEvent, Optional[ProviderSession]], None]


class SessionContext:
    """Current session of one provider instance plus its subscribers."""

    def __init__(self, provider: SessionProvider, name: str = "ambient") -> None:
        self.name = name
        self._provider = provider
        self._session: Optional[ProviderSession] = provider.peek_session()
        self._subscribers: list[Subscriber] = []

    @property
    def session(self) -> Optional[ProviderSession]:
        """Last session this context has seen, without contacting the provider."""
        return self._session

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` and return a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, event: SessionEvent, session: Optional[ProviderSession]) -> None:
        self._session = session
        for callback in list(self._subscribers):
            try:
                callback(event, session)
            except Exception:
                logger.exception(
                    "Session subscriber failed on %s (context=%s)", event.value, self.name
                )

    # =========================================================================
    # Reads
    # =========================================================================

    def current_session(self) -> Optional[ProviderSession]:
        """Resolve the live session, refreshing the token if it is about to expire."""
        previous = self._session
        session = self._provider.get_session()

        if session is None:
            if previous is not None:
                self._publish(SessionEvent.SIGNED_OUT, None)
            return None

        if previous is None:
            self._session = session
        elif session.access_token != previous.access_token:
            if session.user.id == previous.user.id:
                self._publish(SessionEvent.TOKEN_REFRESHED, session)
            else:
                self._publish(SessionEvent.SIGNED_IN, session)
        return session

    def access_token(self) -> Optional[str]:
        """Fetch the current access token, fresh from the provider."""
        session = self.current_session()
        return session.access_token if session else None

    # =========================================================================
    # Writes
    # =========================================================================

    def sign_in(self, email: str, password: str) -> ProviderSession:
        session = self._provider.sign_in_with_password(email, password)
        log_auth_event(logger, "sign_in", outcome="success", user_id=session.user.id)
        self._publish(SessionEvent.SIGNED_IN, session)
        return session

    def sign_up(self, email: str, password: str, full_name: str, redirect_to: str) -> None:
        self._provider.sign_up(email, password, full_name, redirect_to)
        log_auth_event(logger, "sign_up", outcome="success")

    def confirm_sign_up(self, email: str, code: str) -> Optional[ProviderSession]:
        """Confirm a registration, signing in when the provider allows it."""
        session = self._provider.confirm_sign_up(email, code)
        log_auth_event(
            logger,
            "confirm_sign_up",
            outcome="success",
            user_id=session.user.id if session else None,
            signed_in=session is not None,
        )
        if session is not None:
            self._publish(SessionEvent.SIGNED_IN, session)
        return session

    def send_recovery_email(self, email: str, redirect_to: str) -> None:
        self._provider.send_recovery_email(email, redirect_to)
        log_auth_event(logger, "recovery_email", outcome="success")

    def set_session(self, access_token: str, refresh_token: str = "") -> ProviderSession:
        session = self._provider.set_session(access_token, refresh_token)
        self._publish(SessionEvent.SIGNED_IN, session)
        return session

    def set_recovery_session(self, email: str, code: str) -> ProviderSession:
        session = self._provider.set_recovery_session(email, code)
        self._publish(SessionEvent.SIGNED_IN, session)
        return session

    def exchange_code(self, code: str, redirect_to: str) -> ProviderSession:
        """Complete an OAuth round trip with an authorization code."""
        session = self._provider.exchange_code_for_session(code, redirect_to)
        log_auth_event(logger, "code_exchange", outcome="success", user_id=session.user.id)
        self._publish(SessionEvent.SIGNED_IN, session)
        return session

    def update_password(self, new_password: str) -> None:
        self._provider.update_password(new_password)
        user_id = self._session.user.id if self._session else None
        log_auth_event(logger, "password_update", outcome="success", user_id=user_id)
        self._publish(SessionEvent.PASSWORD_UPDATED, self._session)

    def build_oauth_url(self, provider: str, redirect_to: str) -> str:
        return self._provider.build_oauth_url(provider, redirect_to)

    def sign_out(self) -> None:
        """Sign out optimistically.

        Local state is cleared and SIGNED_OUT delivered before the provider is
        asked to revoke the session. A revocation failure is only logged.
        """
        previous = self._provider.clear_local_session() or self._session
        self._publish(SessionEvent.SIGNED_OUT, None)
        if previous is None:
            return

        try:
            self._provider.revoke(previous)
        except SessionProviderError as e:
            log_auth_event(
                logger,
                "sign_out",
                outcome="failed",
                user_id=previous.user.id,
                error=e.code,
                context=self.name,
            )
            return
        log_auth_event(logger, "sign_out", outcome="success", user_id=previous.user.id)
