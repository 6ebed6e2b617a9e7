"""Launcher and account endpoints for signed-in users.

- GET /api/apps - active client applications
- GET /apps/{slug}/launch - open an app with a fresh token
- GET /api/me - current user and profile
- GET /api/admin/session - admin console entry check

Every route is guarded; see sso_portal.api.guards.
"""

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from starlette.status import HTTP_302_FOUND

from sso_portal.api.dependencies import (
    get_directory_service,
    get_orchestrator,
    get_session_context,
)
from sso_portal.api.guards import enforce, require_admin, require_session
from sso_portal.models.directory import ClientApp
from sso_portal.models.errors import ErrorCode, PortalError
from sso_portal.models.navigation import GuardDecision
from sso_portal.services.directory import DirectoryService
from sso_portal.services.handoff import HandoffOrchestrator
from sso_portal.services.session_context import SessionContext

router = APIRouter(tags=["apps"])


def _account(context: SessionContext, directory: DirectoryService) -> dict[str, Any]:
    session = context.session
    if session is None:
        raise PortalError(ErrorCode.AUTH_REQUIRED)
    profile = directory.get_profile(session.user.id)
    return {
        "user": session.user.model_dump(),
        "profile": profile.model_dump(mode="json") if profile else None,
    }


@router.get(
    "/api/apps",
    summary="List client applications",
    response_model=list[ClientApp],
    responses={401: {"description": "Not signed in"}},
)
def list_apps(
    decision: GuardDecision = Depends(require_session),
    directory: DirectoryService = Depends(get_directory_service),
) -> list[ClientApp]:
    enforce(decision)
    return directory.list_apps()


@router.get(
    "/apps/{slug}/launch",
    summary="Open a client application",
    responses={
        302: {"description": "Redirect to the app, with a token if it supports SSO"},
        404: {"description": "Unknown or inactive app"},
    },
)
def launch_app(
    slug: str,
    decision: GuardDecision = Depends(require_session),
    directory: DirectoryService = Depends(get_directory_service),
    orchestrator: HandoffOrchestrator = Depends(get_orchestrator),
) -> RedirectResponse:
    if not decision.allowed:
        return RedirectResponse(url=decision.redirect_url or "/login", status_code=HTTP_302_FOUND)

    app = directory.get_app(slug)
    if app is None:
        raise PortalError(ErrorCode.APP_NOT_FOUND, details={"slug": slug})

    navigation = orchestrator.launch_app(app)
    return RedirectResponse(url=navigation.url or "/apps", status_code=HTTP_302_FOUND)


@router.get(
    "/api/me",
    summary="Current user",
    responses={401: {"description": "Not signed in"}},
)
def get_me(
    decision: GuardDecision = Depends(require_session),
    context: SessionContext = Depends(get_session_context),
    directory: DirectoryService = Depends(get_directory_service),
) -> dict[str, Any]:
    enforce(decision)
    return _account(context, directory)


@router.get(
    "/api/admin/session",
    summary="Admin console access check",
    responses={
        401: {"description": "Not signed in"},
        403: {"description": "Signed in without the admin role"},
    },
)
def admin_session(
    decision: GuardDecision = Depends(require_admin),
    context: SessionContext = Depends(get_session_context),
    directory: DirectoryService = Depends(get_directory_service),
) -> dict[str, Any]:
    enforce(decision)
    return {**_account(context, directory), "is_admin": True}
