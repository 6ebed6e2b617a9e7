"""Authentication endpoints and SSO hand-off entry points.

Browser navigation (answers with redirects):
- GET /login - login screen; hands off an already signed-in user
- GET /auth/oauth/{provider} - leave for the provider's sign-in page
- GET /auth/confirm - open the emailed sign-up confirmation link
- GET /auth/callback - return from OAuth
- POST /logout - sign out and go to /login

Front-end submissions (answer with JSON navigation data):
- POST /api/auth/login
- POST /api/auth/register
- POST /api/auth/forgot-password

A redirect parameter that fails the allow-list is dropped without an error;
the user simply lands in the portal.
"""

from typing import Any, Optional, Union
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from starlette.status import HTTP_302_FOUND, HTTP_303_SEE_OTHER

from sso_portal.api.dependencies import (
    get_allowlist,
    get_client_storage,
    get_orchestrator,
    get_session_context,
    get_submission_guard,
)
from sso_portal.config import PortalSettings, get_settings
from sso_portal.models.auth import ForgotPasswordRequest, LoginRequest, RegisterRequest
from sso_portal.models.navigation import (
    HandoffState,
    LoginScreen,
    NavigationDecision,
    NavigationKind,
    NavigationResponse,
    RegistrationResponse,
)
from sso_portal.services.client_storage import ClientStorage
from sso_portal.services.handoff import HandoffOrchestrator, safe_next_path
from sso_portal.services.origin_allowlist import OriginAllowList
from sso_portal.services.session_context import SessionContext
from sso_portal.services.submission_guard import SubmissionGuard

router = APIRouter(tags=["auth"])


def to_navigation_response(decision: NavigationDecision) -> NavigationResponse:
    return NavigationResponse(
        url=decision.url or "/",
        external=decision.kind == NavigationKind.EXTERNAL,
    )


def to_redirect(decision: NavigationDecision, status_code: int = HTTP_302_FOUND) -> RedirectResponse:
    return RedirectResponse(url=decision.url or "/", status_code=status_code)


# === Browser navigation ===


@router.get(
    "/login",
    summary="Login screen",
    description="""
Show the login screen, or hand off immediately.

If the browser already has a session and `redirect` names an allowed origin,
the response is a redirect to that origin's SSO callback with a fresh token.
A signed-in browser with only an in-portal `next` path is redirected there.
Otherwise the login screen state is returned; `next` is echoed back for the
sign-in submit when it is a portal path.
""",
    response_model=LoginScreen,
    responses={302: {"description": "Hand-off to a client application or to `next`"}},
)
def login_screen(
    redirect: Optional[str] = Query(default=None),
    next_path: Optional[str] = Query(default=None, alias="next"),
    orchestrator: HandoffOrchestrator = Depends(get_orchestrator),
    allowlist: OriginAllowList = Depends(get_allowlist),
) -> Union[LoginScreen, RedirectResponse]:
    decision = orchestrator.resume_on_login_screen(redirect, next_path)
    if decision.kind != NavigationKind.STAY:
        return to_redirect(decision)

    allowed = redirect if allowlist.is_allowed(redirect) else None
    register_url = "/register"
    if allowed:
        register_url = f"/register?redirect={quote(allowed, safe='')}"

    return LoginScreen(
        authenticated=decision.state != HandoffState.ANONYMOUS,
        redirect=allowed,
        next=safe_next_path(next_path),
        register_url=register_url,
    )


@router.get(
    "/auth/oauth/{provider}",
    summary="Start social sign-in",
    responses={
        302: {"description": "Redirect to the provider's sign-in page"},
        400: {"description": "Unsupported provider"},
    },
)
def start_oauth(
    provider: str,
    redirect: Optional[str] = Query(default=None),
    orchestrator: HandoffOrchestrator = Depends(get_orchestrator),
) -> RedirectResponse:
    """Park an allowed redirect, then leave for the Hosted UI."""
    return to_redirect(orchestrator.start_oauth(provider, redirect))


@router.get(
    "/auth/confirm",
    summary="Email confirmation link",
    description="""
Target of the link in sign-up confirmation emails. Confirms the account with
the emailed code. In the browser that registered, the user is signed in and
a redirect parked at registration is handed off; otherwise the browser goes
to `/apps` when signed in, or to `/login`, where the parked redirect is
handed off after sign-in.
""",
    responses={302: {"description": "Hand-off, /apps or /login"}},
)
def confirm_email(
    email: str = Query(..., min_length=1),
    code: str = Query(..., min_length=1),
    orchestrator: HandoffOrchestrator = Depends(get_orchestrator),
) -> RedirectResponse:
    return to_redirect(orchestrator.confirm_email(email, code))


@router.get(
    "/auth/callback",
    summary="OAuth return point",
    responses={302: {"description": "Hand-off, /apps or /login"}},
)
def auth_callback(
    code: Optional[str] = Query(default=None),
    orchestrator: HandoffOrchestrator = Depends(get_orchestrator),
) -> RedirectResponse:
    return to_redirect(orchestrator.complete_callback(code))


@router.post("/logout", summary="Sign out", responses={303: {"description": "Redirect to /login"}})
def logout(orchestrator: HandoffOrchestrator = Depends(get_orchestrator)) -> RedirectResponse:
    return to_redirect(orchestrator.sign_out(), status_code=HTTP_303_SEE_OTHER)


# === Front-end submissions ===


@router.post(
    "/api/auth/login",
    summary="Sign in with email and password",
    response_model=NavigationResponse,
    responses={
        200: {"description": "Where to navigate next"},
        401: {"description": "Provider rejected the credentials"},
        409: {"description": "A login is already in flight for this browser"},
    },
)
def login(
    body: LoginRequest,
    orchestrator: HandoffOrchestrator = Depends(get_orchestrator),
    storage: ClientStorage = Depends(get_client_storage),
    guard: SubmissionGuard = Depends(get_submission_guard),
) -> NavigationResponse:
    with guard.hold(storage.device_id, "login"):
        decision = orchestrator.login(body.email, body.password, body.redirect, body.next)
    return to_navigation_response(decision)


@router.post(
    "/api/auth/register",
    summary="Create an account",
    response_model=RegistrationResponse,
    responses={
        200: {"description": "Confirmation email sent"},
        400: {"description": "Password mismatch or too short"},
        401: {"description": "Provider rejected the sign-up"},
        409: {"description": "A registration is already in flight for this browser"},
    },
)
def register(
    body: RegisterRequest,
    orchestrator: HandoffOrchestrator = Depends(get_orchestrator),
    storage: ClientStorage = Depends(get_client_storage),
    guard: SubmissionGuard = Depends(get_submission_guard),
) -> RegistrationResponse:
    with guard.hold(storage.device_id, "register"):
        return orchestrator.register(
            full_name=body.full_name,
            email=body.email,
            password=body.password,
            confirm_password=body.confirm_password,
            redirect=body.redirect,
        )


@router.post(
    "/api/auth/forgot-password",
    summary="Send a password recovery email",
    responses={
        200: {"description": "Recovery email requested"},
        401: {"description": "Provider rejected the request"},
    },
)
def forgot_password(
    body: ForgotPasswordRequest,
    context: SessionContext = Depends(get_session_context),
    settings: PortalSettings = Depends(get_settings),
) -> dict[str, Any]:
    context.send_recovery_email(body.email, settings.reset_password_url)
    return {"screen": "check_email", "email": body.email}
