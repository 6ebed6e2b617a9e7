"""Password recovery session bootstrapping.

A recovery email links to /auth/reset-password with a one-time credential
in the URL fragment: a token pair, or the email address and the password
reset code Cognito issued. The bootstrap page strips the fragment from the
address bar and posts it here. RecoveryBootstrapper exchanges it, exactly
once, for a session on a dedicated SessionContext that is separate from the
browser's ambient session, lets the user set a new password, and then signs
the dedicated session out.

State machine:
    LOADING -> READY | ERROR
    READY -> SAVING -> SUCCESS | READY (on provider failure)
    SUCCESS is terminal.
"""

from typing import Optional
from urllib.parse import parse_qs

from pydantic import ValidationError

from sso_portal.config import PortalSettings
from sso_portal.models.auth import RecoveryCredential, RecoveryState, RecoveryStatus
from sso_portal.models.errors import ErrorCode, PortalError
from sso_portal.services.credential_registry import ConsumedCredentialRegistry
from sso_portal.services.handoff import LOGIN_PATH
from sso_portal.services.password_policy import validate_new_password
from sso_portal.services.session_context import SessionContext
from sso_portal.services.session_provider import SessionProviderError
from sso_portal.utils.logging import get_logger, log_auth_event

logger = get_logger(__name__)


def parse_recovery_fragment(fragment: Optional[str]) -> Optional[RecoveryCredential]:
    """Read the recovery credential and type marker from a URL fragment.

    Returns:
        The credential, or None if the fragment carries neither an access
        token nor an email address with a reset code.
    """
    if not fragment:
        return None
    raw = fragment[1:] if fragment.startswith("#") else fragment
    values = parse_qs(raw, keep_blank_values=True)

    try:
        return RecoveryCredential(
            access_token=values.get("access_token", [""])[0],
            refresh_token=values.get("refresh_token", [""])[0],
            email=values.get("email", [""])[0],
            code=values.get("code", [""])[0],
            type=values.get("type", [""])[0],
        )
    except ValidationError:
        return None


class RecoveryBootstrapper:
    """Drives one recovery screen over the dedicated recovery context."""

    def __init__(
        self,
        context: SessionContext,
        registry: ConsumedCredentialRegistry,
        settings: PortalSettings,
    ) -> None:
        self._context = context
        self._registry = registry
        self._settings = settings
        self._state = RecoveryState.LOADING
        self._initialized = False

    @property
    def state(self) -> RecoveryState:
        return self._state

    def _status(self) -> RecoveryStatus:
        session = self._context.session
        return RecoveryStatus(
            state=self._state,
            email=session.user.email if session else None,
        )

    def _fail(self, code: ErrorCode) -> PortalError:
        self._state = RecoveryState.ERROR
        return PortalError(code, details={"state": RecoveryState.ERROR.value})

    def initialize(self, fragment: Optional[str]) -> RecoveryStatus:
        """Establish the recovery session. Runs once per instance.

        A repeated call returns the outcome of the first without touching
        the credential again.

        Raises:
            PortalError: RECOVERY_LINK_INVALID when no usable session results
        """
        if self._initialized:
            if self._state == RecoveryState.ERROR:
                raise self._fail(ErrorCode.RECOVERY_LINK_INVALID)
            return self._status()
        self._initialized = True

        credential = parse_recovery_fragment(fragment)
        if credential is not None and credential.is_recovery:
            if self._registry.claim(credential.secret):
                try:
                    if credential.access_token:
                        session = self._context.set_session(
                            credential.access_token, credential.refresh_token
                        )
                    else:
                        session = self._context.set_recovery_session(
                            credential.email, credential.code
                        )
                except SessionProviderError as e:
                    log_auth_event(logger, "recovery_exchange", outcome="failed", error=e.code)
                    raise self._fail(ErrorCode.RECOVERY_LINK_INVALID) from e

                log_auth_event(
                    logger, "recovery_exchange", outcome="success", user_id=session.user.id
                )
                self._state = RecoveryState.READY
                return self._status()

            log_auth_event(logger, "recovery_exchange", outcome="rejected", reason="already_used")

        # Reload during the flow: the dedicated context may already hold the session
        if self._context.current_session() is not None:
            self._state = RecoveryState.READY
            return self._status()

        raise self._fail(ErrorCode.RECOVERY_LINK_INVALID)

    def submit(self, password: str, confirm_password: str) -> RecoveryStatus:
        """Set the new password and end the recovery session.

        Local checks run before any provider call. On success the dedicated
        session is signed out and the status points at the login screen.

        Raises:
            PortalError: PASSWORD_MISMATCH / PASSWORD_TOO_SHORT,
                RECOVERY_SESSION_EXPIRED, or PROVIDER_AUTH_ERROR
        """
        if self._state == RecoveryState.SUCCESS:
            return self._finished_status()

        validate_new_password(password, confirm_password, self._settings.min_password_length)

        if self._context.current_session() is None:
            self._state = RecoveryState.ERROR
            raise PortalError(
                ErrorCode.RECOVERY_SESSION_EXPIRED,
                details={"state": RecoveryState.ERROR.value},
            )

        self._state = RecoveryState.SAVING
        try:
            self._context.update_password(password)
        except SessionProviderError as e:
            self._state = RecoveryState.READY
            log_auth_event(logger, "password_update", outcome="failed", error=e.code)
            raise PortalError(
                ErrorCode.PROVIDER_AUTH_ERROR,
                details={"state": RecoveryState.READY.value},
                message=e.message,
            ) from e

        self._state = RecoveryState.SUCCESS
        self.finish()
        return self._finished_status()

    def finish(self) -> None:
        """Sign the dedicated recovery session out."""
        self._context.sign_out()

    def _finished_status(self) -> RecoveryStatus:
        return RecoveryStatus(
            state=RecoveryState.SUCCESS,
            redirect_url=LOGIN_PATH,
            redirect_delay_seconds=self._settings.recovery_redirect_delay_seconds,
        )
