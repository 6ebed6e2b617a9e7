"""Fixtures for service-level unit tests that run without the HTTP layer."""

from unittest.mock import MagicMock

import pytest

from sso_portal.config import PortalSettings
from sso_portal.services.client_storage import ClientStorage
from sso_portal.services.cognito_provider import (
    AMBIENT_SESSION_KEY,
    RECOVERY_SESSION_KEY,
    CognitoSessionProvider,
)
from sso_portal.services.deferred_redirect import DeferredRedirectStore
from sso_portal.services.handoff import HandoffOrchestrator
from sso_portal.services.origin_allowlist import OriginAllowList
from sso_portal.services.session_context import SessionContext


@pytest.fixture
def portal_settings() -> PortalSettings:
    return PortalSettings(
        portal_url="https://portal.supermatt.agency",
        cognito_user_pool_id="eu-west-1_TestPool",
        cognito_client_id="test-client-id-123",
        cognito_domain="auth.portal.test",
    )


@pytest.fixture
def storage() -> ClientStorage:
    return ClientStorage("device-unit-test")


@pytest.fixture
def allowlist(portal_settings: PortalSettings) -> OriginAllowList:
    return OriginAllowList(portal_settings.allowed_redirect_origins)


@pytest.fixture
def provider(
    mock_cognito_idp: MagicMock, portal_settings: PortalSettings, storage: ClientStorage
) -> CognitoSessionProvider:
    return CognitoSessionProvider(mock_cognito_idp, portal_settings, storage, AMBIENT_SESSION_KEY)


@pytest.fixture
def recovery_provider(
    mock_cognito_idp: MagicMock, portal_settings: PortalSettings, storage: ClientStorage
) -> CognitoSessionProvider:
    return CognitoSessionProvider(mock_cognito_idp, portal_settings, storage, RECOVERY_SESSION_KEY)


@pytest.fixture
def context(provider: CognitoSessionProvider) -> SessionContext:
    return SessionContext(provider)


@pytest.fixture
def deferred(storage: ClientStorage, allowlist: OriginAllowList) -> DeferredRedirectStore:
    return DeferredRedirectStore(storage, allowlist)


@pytest.fixture
def orchestrator(
    context: SessionContext,
    allowlist: OriginAllowList,
    deferred: DeferredRedirectStore,
    portal_settings: PortalSettings,
) -> HandoffOrchestrator:
    return HandoffOrchestrator(context, allowlist, deferred, portal_settings)
