"""Password recovery endpoints.

- GET /auth/reset-password - bootstrap page the recovery email links to
- POST /api/auth/recovery/session - exchange the link's one-time credential
- POST /api/auth/recovery/password - set the new password

The credential travels in the URL fragment, which browsers never send to a
server. The bootstrap page reads it once, removes it from the address bar
and history entry, and posts it to /api/auth/recovery/session.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from sso_portal.api.dependencies import (
    get_client_storage,
    get_recovery_bootstrapper,
    get_submission_guard,
)
from sso_portal.models.auth import PasswordUpdateRequest, RecoverySessionRequest, RecoveryStatus
from sso_portal.services.client_storage import ClientStorage
from sso_portal.services.recovery import RecoveryBootstrapper
from sso_portal.services.submission_guard import SubmissionGuard

router = APIRouter(tags=["recovery"])

RESET_PASSWORD_PAGE = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="referrer" content="no-referrer">
<title>Reset password</title>
</head>
<body>
<div id="reset-password" data-state="loading">Loading...</div>
<script>
(function () {
  if (window.__recoveryStarted) { return; }
  window.__recoveryStarted = true;
  var fragment = window.location.hash;
  if (fragment) {
    history.replaceState(null, "", window.location.pathname + window.location.search);
  }
  fetch("/api/auth/recovery/session", {
    method: "POST",
    credentials: "same-origin",
    headers: {"Content-Type": "application/json"},
    body: JSON.stringify({fragment: fragment})
  }).then(function (response) {
    return response.json().then(function (body) {
      var state = response.ok ? body.state : "error";
      var root = document.getElementById("reset-password");
      root.setAttribute("data-state", state);
      root.textContent = response.ok ? "" : body.message;
      document.dispatchEvent(new CustomEvent("recovery:" + state, {detail: body}));
    });
  });
})();
</script>
</body>
</html>
"""


@router.get(
    "/auth/reset-password",
    summary="Password recovery bootstrap page",
    response_class=HTMLResponse,
)
def reset_password_page() -> HTMLResponse:
    return HTMLResponse(
        content=RESET_PASSWORD_PAGE,
        headers={"Cache-Control": "no-store", "Referrer-Policy": "no-referrer"},
    )


@router.post(
    "/api/auth/recovery/session",
    summary="Exchange a recovery link credential",
    description="""
Exchange the credential from a recovery link fragment for a session on the
dedicated recovery context. The credential is honored once; a repeat post
of the same fragment falls back to the session already established, or
fails with 410 when there is none.
""",
    response_model=RecoveryStatus,
    responses={
        200: {"description": "Recovery session ready"},
        410: {"description": "Link invalid or expired"},
    },
)
def start_recovery_session(
    body: RecoverySessionRequest,
    bootstrapper: RecoveryBootstrapper = Depends(get_recovery_bootstrapper),
) -> RecoveryStatus:
    return bootstrapper.initialize(body.fragment)


@router.post(
    "/api/auth/recovery/password",
    summary="Set a new password",
    description="""
Set the new password on the recovery session, then sign that session out.
Mismatched or too-short passwords are rejected before the provider is
called. On success the front-end waits `redirect_delay_seconds` and then
navigates to `redirect_url`.
""",
    response_model=RecoveryStatus,
    responses={
        200: {"description": "Password updated"},
        400: {"description": "Password mismatch or too short"},
        401: {"description": "Provider rejected the new password"},
        409: {"description": "An update is already in flight for this browser"},
        410: {"description": "Recovery session expired"},
    },
)
def update_password(
    body: PasswordUpdateRequest,
    bootstrapper: RecoveryBootstrapper = Depends(get_recovery_bootstrapper),
    storage: ClientStorage = Depends(get_client_storage),
    guard: SubmissionGuard = Depends(get_submission_guard),
) -> RecoveryStatus:
    with guard.hold(storage.device_id, "recovery_password"):
        return bootstrapper.submit(body.password, body.confirm_password)
