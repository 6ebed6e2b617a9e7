"""Route guards for protected portal views.

Guards run as dependencies before a protected view is built and return a
GuardDecision. Browser-navigation routes turn a redirect decision into an
HTTP redirect; JSON routes call enforce(), which raises a PortalError
carrying the redirect target.

The requested view travels to the login screen as ``next``, a path inside
the portal. It never goes through ``redirect``, which is reserved for
token hand-offs to client applications.
"""

from urllib.parse import quote

from fastapi import Depends, Request

from sso_portal.api.dependencies import get_directory_service, get_session_context
from sso_portal.models.errors import ErrorCode, PortalError
from sso_portal.models.navigation import GuardDecision
from sso_portal.services.directory import DirectoryService
from sso_portal.services.handoff import LOGIN_PATH
from sso_portal.services.session_context import SessionContext

ADMIN_FALLBACK_PATH = "/apps"


def _login_redirect(request: Request) -> str:
    view = request.url.path
    if request.url.query:
        view = f"{view}?{request.url.query}"
    return f"{LOGIN_PATH}?next={quote(view, safe='')}"


def require_session(
    request: Request,
    context: SessionContext = Depends(get_session_context),
) -> GuardDecision:
    """Allow only a browser with a live session."""
    if context.current_session() is None:
        return GuardDecision.redirect(_login_redirect(request))
    return GuardDecision.allow()


def require_admin(
    request: Request,
    context: SessionContext = Depends(get_session_context),
    directory: DirectoryService = Depends(get_directory_service),
) -> GuardDecision:
    """Allow only a signed-in user whose profile has the admin role."""
    session = context.current_session()
    if session is None:
        return GuardDecision.redirect(_login_redirect(request))

    profile = directory.get_profile(session.user.id)
    if profile is None or not profile.is_admin:
        return GuardDecision.redirect(ADMIN_FALLBACK_PATH)
    return GuardDecision.allow()


def enforce(decision: GuardDecision) -> None:
    """Raise for a redirect decision on a JSON route."""
    if decision.allowed:
        return
    url = decision.redirect_url or LOGIN_PATH
    code = ErrorCode.ADMIN_REQUIRED if url == ADMIN_FALLBACK_PATH else ErrorCode.AUTH_REQUIRED
    raise PortalError(code, details={"redirect_url": url})
