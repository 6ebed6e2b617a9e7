"""SSO hand-off orchestration.

Decides at each authentication entry point whether the browser stays in the
portal or is sent, with a freshly fetched access token, to a client
application. A token is only ever appended to a target whose origin passed
the allow-list, or to an app registered in the apps table.

Entry points:
- login: password sign-in, hand-off if an allowed redirect came with it
- resume_on_login_screen: already signed-in user reopening /login?redirect=...
- register: sign-up, parking an allowed redirect until email confirmation
- start_oauth: leave for the Hosted UI, parking an allowed redirect
- confirm_email: open the emailed confirmation link
- complete_callback: return from OAuth, or finish an email confirmation
- launch_app: open an app from the portal launcher
"""

from typing import Optional
from urllib.parse import quote, urlsplit, urlunsplit

from sso_portal.config import PortalSettings
from sso_portal.models.directory import ClientApp
from sso_portal.models.errors import ErrorCode, PortalError
from sso_portal.models.navigation import HandoffState, NavigationDecision, RegistrationResponse
from sso_portal.services.deferred_redirect import DeferredRedirectStore
from sso_portal.services.origin_allowlist import OriginAllowList, normalize_origin
from sso_portal.services.password_policy import validate_new_password
from sso_portal.services.session_context import SessionContext
from sso_portal.services.session_provider import SessionProviderError
from sso_portal.utils.logging import get_logger, log_auth_event, log_redirect_rejected

logger = get_logger(__name__)

DEFAULT_LANDING_PATH = "/apps"
LOGIN_PATH = "/login"


def build_handoff_url(redirect: str, token: str) -> str:
    """Append the token to a redirect target.

    >>> build_handoff_url("https://a.test/cb", "T")
    'https://a.test/cb?token=T'
    >>> build_handoff_url("https://a.test/cb?x=1", "T")
    'https://a.test/cb?x=1&token=T'
    """
    separator = "&" if "?" in redirect else "?"
    return f"{redirect}{separator}token={quote(token, safe='')}"


def resolve_handoff_target(
    redirect: str,
    callback_paths: dict[str, str],
    default_callback_path: str,
) -> str:
    """Resolve a bare-origin redirect to the app's SSO callback URL.

    A redirect that already names a path, query or fragment is returned
    unchanged.
    """
    parts = urlsplit(redirect)
    if parts.path not in ("", "/") or parts.query or parts.fragment:
        return redirect

    origin = normalize_origin(redirect)
    if origin is None:
        return redirect
    return origin + callback_paths.get(origin, default_callback_path)


def strip_fragment(url: str) -> str:
    """Drop the fragment of ``url``.

    >>> strip_fragment("https://a.test/cb?x=1#section")
    'https://a.test/cb?x=1'
    """
    return urlunsplit(urlsplit(url)._replace(fragment=""))


def safe_next_path(candidate: Optional[str]) -> Optional[str]:
    """Return ``candidate`` if it is a path inside the portal, else None.

    >>> safe_next_path("/apps/trax/launch")
    '/apps/trax/launch'
    >>> safe_next_path("//evil.example/x") is None
    True
    """
    if not candidate or not candidate.startswith("/") or candidate.startswith("//"):
        return None
    # Browsers treat "\" as "/" and drop tabs and newlines
    if "\\" in candidate or any(ord(ch) < 0x20 for ch in candidate):
        return None
    parts = urlsplit(candidate)
    if parts.scheme or parts.netloc:
        return None
    return candidate


def login_url_for(redirect: Optional[str]) -> str:
    if not redirect:
        return LOGIN_PATH
    return f"{LOGIN_PATH}?redirect={quote(redirect, safe='')}"


class HandoffOrchestrator:
    """State machine behind every authentication entry point.

    Methods return a NavigationDecision; none of them navigates itself.
    """

    def __init__(
        self,
        context: SessionContext,
        allowlist: OriginAllowList,
        deferred: DeferredRedirectStore,
        settings: PortalSettings,
    ) -> None:
        self._context = context
        self._allowlist = allowlist
        self._deferred = deferred
        self._settings = settings
        self._callback_paths = {
            normalize_origin(origin) or origin: path
            for origin, path in settings.callback_paths.items()
        }

    # =========================================================================
    # Helpers
    # =========================================================================

    def accept_redirect(self, candidate: Optional[str], entry_point: str) -> Optional[str]:
        """Return ``candidate`` if it may receive a token, else None.

        A fragment is dropped so the token lands in the query string.
        Rejected candidates are audit-logged by origin only.
        """
        if not candidate:
            return None
        if self._allowlist.is_allowed(candidate):
            return strip_fragment(candidate)
        log_redirect_rejected(logger, entry_point, normalize_origin(candidate))
        return None

    def _handoff(self, redirect: str, entry_point: str) -> Optional[NavigationDecision]:
        """Build the hand-off navigation with a token fetched now.

        Returns None when no token can be obtained.
        """
        session = self._context.current_session()
        if session is None:
            log_auth_event(logger, "handoff", outcome="skipped", entry_point=entry_point)
            return None

        target = resolve_handoff_target(
            redirect, self._callback_paths, self._settings.default_callback_path
        )
        log_auth_event(
            logger,
            "handoff",
            outcome="success",
            user_id=session.user.id,
            entry_point=entry_point,
            origin=normalize_origin(redirect),
        )
        return NavigationDecision.external(
            build_handoff_url(target, session.access_token),
            HandoffState.HANDOFF_COMPLETE,
            handoff=True,
        )

    @staticmethod
    def _landing(next_path: Optional[str] = None) -> NavigationDecision:
        return NavigationDecision.internal(
            safe_next_path(next_path) or DEFAULT_LANDING_PATH,
            HandoffState.AUTHENTICATED_NO_REDIRECT,
        )

    # =========================================================================
    # Entry points
    # =========================================================================

    def login(
        self,
        email: str,
        password: str,
        redirect: Optional[str],
        next_path: Optional[str] = None,
    ) -> NavigationDecision:
        """Password sign-in.

        Without a ``redirect`` or ``next_path``, a redirect parked by
        registration or OAuth in this browser is handed off instead, for a
        user whose email confirmation did not sign them in.

        Raises:
            SessionProviderError: If the provider rejects the credentials
        """
        target = self.accept_redirect(redirect, "login")
        self._context.sign_in(email, password)

        if target is None and not redirect and not next_path:
            target = self._deferred.consume()

        if target is not None:
            decision = self._handoff(target, "login")
            if decision is not None:
                return decision
        return self._landing(next_path)

    def resume_on_login_screen(
        self, redirect: Optional[str], next_path: Optional[str] = None
    ) -> NavigationDecision:
        """Hand off an already signed-in user who lands on the login screen.

        Never retries: if no token is available the login screen is shown.
        A signed-in user with only an in-portal ``next_path`` is sent there.
        """
        target = self.accept_redirect(redirect, "login_screen")
        session = self._context.current_session()
        if session is None:
            return NavigationDecision.stay(HandoffState.ANONYMOUS)
        if target is None:
            next_target = safe_next_path(next_path)
            if next_target is not None:
                return NavigationDecision.internal(
                    next_target, HandoffState.AUTHENTICATED_NO_REDIRECT
                )
            return NavigationDecision.stay(HandoffState.AUTHENTICATED_NO_REDIRECT)

        decision = self._handoff(target, "login_screen")
        if decision is None:
            return NavigationDecision.stay(HandoffState.AUTHENTICATED_NO_REDIRECT)
        return decision

    def register(
        self,
        full_name: str,
        email: str,
        password: str,
        confirm_password: str,
        redirect: Optional[str],
    ) -> RegistrationResponse:
        """Sign up and park an allowed redirect for after confirmation.

        Raises:
            PortalError: On a local password check failure (no provider call)
            SessionProviderError: If the provider rejects the sign-up
        """
        validate_new_password(password, confirm_password, self._settings.min_password_length)

        target = self.accept_redirect(redirect, "register")
        self._context.sign_up(email, password, full_name, self._settings.confirm_url)

        saved = self._deferred.save(target) if target is not None else False
        return RegistrationResponse(
            email=email,
            redirect_after_confirm=saved,
            login_url=login_url_for(target),
        )

    def start_oauth(self, provider: str, redirect: Optional[str]) -> NavigationDecision:
        """Send the browser to the Hosted UI for a social sign-in."""
        if provider not in self._settings.oauth_providers:
            raise PortalError(
                ErrorCode.OAUTH_PROVIDER_UNSUPPORTED, details={"provider": provider}
            )

        target = self.accept_redirect(redirect, "oauth")
        if target is not None:
            self._deferred.save(target)

        url = self._context.build_oauth_url(provider, self._settings.callback_url)
        return NavigationDecision.external(url, HandoffState.AUTHENTICATING)

    def confirm_email(self, email: str, code: str) -> NavigationDecision:
        """Open the confirmation link from a sign-up email.

        The provider confirms the account and, in the browser that
        registered, signs the user in. Whatever the outcome, the callback
        step then decides: a parked redirect is handed off once a session
        exists, otherwise the user lands on /login with the redirect still
        parked.
        """
        try:
            self._context.confirm_sign_up(email, code)
        except SessionProviderError as e:
            log_auth_event(logger, "confirm_sign_up", outcome="failed", error=e.code)
        return self.complete_callback()

    def complete_callback(self, code: Optional[str] = None) -> NavigationDecision:
        """Return point after OAuth or email confirmation.

        A parked redirect is consumed only once a session resolves, so a
        failed return leaves it in place for the next attempt.
        """
        if code:
            try:
                self._context.exchange_code(code, self._settings.callback_url)
            except SessionProviderError as e:
                log_auth_event(logger, "code_exchange", outcome="failed", error=e.code)

        if self._context.current_session() is None:
            return NavigationDecision.internal(LOGIN_PATH, HandoffState.ANONYMOUS)

        target = self._deferred.consume()
        if target is not None:
            decision = self._handoff(target, "callback")
            if decision is not None:
                return decision
        return self._landing()

    def launch_app(self, app: ClientApp) -> NavigationDecision:
        """Open a registered app, with a token when it has an SSO callback."""
        base_url = app.url.rstrip("/")
        if app.callback_path == "":
            return NavigationDecision.external(app.url, HandoffState.AUTHENTICATED_NO_REDIRECT)

        session = self._context.current_session()
        if session is None:
            return NavigationDecision.internal(LOGIN_PATH, HandoffState.ANONYMOUS)

        path = app.callback_path or self._settings.default_callback_path
        log_auth_event(
            logger,
            "handoff",
            outcome="success",
            user_id=session.user.id,
            entry_point="launcher",
            app=app.slug,
        )
        return NavigationDecision.external(
            build_handoff_url(base_url + path, session.access_token),
            HandoffState.HANDOFF_COMPLETE,
            handoff=True,
        )

    def sign_out(self) -> NavigationDecision:
        self._context.sign_out()
        return NavigationDecision.internal(LOGIN_PATH, HandoffState.ANONYMOUS)
