"""FastAPI dependency providers for portal services.

Process-wide services are cached with @lru_cache. Per-browser objects
(storage, session contexts, orchestrator, recovery bootstrapper) are built
per request from the storage that BrowserStateMiddleware attached.

Usage in routes:
    from sso_portal.api.dependencies import get_orchestrator

    @router.post("/api/auth/login")
    def login(orchestrator: HandoffOrchestrator = Depends(get_orchestrator)):
        ...

Dependency graph:
    ClientStorage (request.state.storage)
        ├── ambient SessionContext ── HandoffOrchestrator
        │       └── LoginStatsRecorder subscriber
        ├── DeferredRedirectStore ── HandoffOrchestrator
        └── recovery SessionContext ── RecoveryBootstrapper
                                          └── ConsumedCredentialRegistry

Testing:
    Override get_cognito_client with a MagicMock and call reset_services()
    between tests.
"""

from functools import lru_cache
from typing import Any

from fastapi import Depends, Request

from sso_portal.config import PortalSettings, get_settings
from sso_portal.services.client_storage import ClientStorage
from sso_portal.services.cognito_provider import (
    AMBIENT_SESSION_KEY,
    RECOVERY_SESSION_KEY,
    CognitoSessionProvider,
    get_cognito_client,
)
from sso_portal.services.credential_registry import ConsumedCredentialRegistry
from sso_portal.services.deferred_redirect import DeferredRedirectStore
from sso_portal.services.directory import DirectoryService
from sso_portal.services.dynamodb import get_dynamodb_service
from sso_portal.services.handoff import HandoffOrchestrator
from sso_portal.services.login_stats import LoginStatsRecorder
from sso_portal.services.origin_allowlist import OriginAllowList
from sso_portal.services.recovery import RecoveryBootstrapper
from sso_portal.services.session_context import SessionContext
from sso_portal.services.submission_guard import SubmissionGuard


@lru_cache
def get_allowlist() -> OriginAllowList:
    """Get the configured redirect allow-list."""
    return OriginAllowList(get_settings().allowed_redirect_origins)


@lru_cache
def get_submission_guard() -> SubmissionGuard:
    return SubmissionGuard()


@lru_cache
def get_directory_service() -> DirectoryService:
    return DirectoryService(db=get_dynamodb_service())


@lru_cache
def get_credential_registry() -> ConsumedCredentialRegistry:
    return ConsumedCredentialRegistry(db=get_dynamodb_service())


def get_client_storage(request: Request) -> ClientStorage:
    """Storage of the calling browser, loaded by BrowserStateMiddleware."""
    storage: ClientStorage = request.state.storage
    return storage


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_session_context(
    request: Request,
    storage: ClientStorage = Depends(get_client_storage),
    settings: PortalSettings = Depends(get_settings),
    cognito_client: Any = Depends(get_cognito_client),
) -> SessionContext:
    """Ambient session context of the calling browser.

    Login statistics are recorded by a subscriber on this context only.
    """
    provider = CognitoSessionProvider(cognito_client, settings, storage, AMBIENT_SESSION_KEY)
    context = SessionContext(provider, name="ambient")
    context.subscribe(
        LoginStatsRecorder(
            db=get_dynamodb_service(),
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    )
    return context


def get_recovery_context(
    storage: ClientStorage = Depends(get_client_storage),
    settings: PortalSettings = Depends(get_settings),
    cognito_client: Any = Depends(get_cognito_client),
) -> SessionContext:
    """Dedicated context for password recovery, with no subscribers."""
    provider = CognitoSessionProvider(cognito_client, settings, storage, RECOVERY_SESSION_KEY)
    return SessionContext(provider, name="recovery")


def get_deferred_redirect_store(
    storage: ClientStorage = Depends(get_client_storage),
    allowlist: OriginAllowList = Depends(get_allowlist),
) -> DeferredRedirectStore:
    return DeferredRedirectStore(storage, allowlist)


def get_orchestrator(
    context: SessionContext = Depends(get_session_context),
    allowlist: OriginAllowList = Depends(get_allowlist),
    deferred: DeferredRedirectStore = Depends(get_deferred_redirect_store),
    settings: PortalSettings = Depends(get_settings),
) -> HandoffOrchestrator:
    return HandoffOrchestrator(context, allowlist, deferred, settings)


def get_recovery_bootstrapper(
    context: SessionContext = Depends(get_recovery_context),
    registry: ConsumedCredentialRegistry = Depends(get_credential_registry),
    settings: PortalSettings = Depends(get_settings),
) -> RecoveryBootstrapper:
    return RecoveryBootstrapper(context, registry, settings)


def reset_services() -> None:
    """Clear all cached service instances.

    Call this in test fixtures to ensure clean state between tests.
    Also resets settings and the underlying DynamoDB singleton.
    """
    from sso_portal.config import reset_settings
    from sso_portal.services.dynamodb import reset_dynamodb_service

    get_allowlist.cache_clear()
    get_submission_guard.cache_clear()
    get_directory_service.cache_clear()
    get_credential_registry.cache_clear()
    get_cognito_client.cache_clear()

    reset_settings()
    reset_dynamodb_service()
