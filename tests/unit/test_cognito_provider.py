"""Tests for CognitoSessionProvider."""

import time
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from helpers import PASSWORD, USER_EMAIL, USER_NAME, USER_SUB, client_error, make_access_token
from sso_portal.config import PortalSettings
from sso_portal.models.auth import PendingSignUp, ProviderSession
from sso_portal.services.client_storage import ClientStorage
from sso_portal.services.cognito_provider import (
    AMBIENT_SESSION_KEY,
    PENDING_SIGNUP_KEY,
    RECOVERY_SESSION_KEY,
    CognitoSessionProvider,
)
from sso_portal.services.session_provider import SessionProviderError

HTTPX_POST = "sso_portal.services.cognito_provider.httpx.post"


def expire_soon(storage: ClientStorage, session: ProviderSession, seconds: int = 5) -> None:
    storage.set(
        AMBIENT_SESSION_KEY,
        session.model_copy(update={"expires_at": int(time.time()) + seconds}).model_dump_json(),
    )


class TestSignIn:
    def test_stores_session_with_user(
        self, provider: CognitoSessionProvider, storage: ClientStorage, mock_cognito_idp: MagicMock
    ) -> None:
        session = provider.sign_in_with_password(USER_EMAIL, PASSWORD)

        assert session.user.id == USER_SUB
        assert session.user.email == USER_EMAIL
        assert session.user.full_name == USER_NAME
        assert session.refresh_token == "mock-refresh-token"
        assert provider.peek_session() == session
        kwargs = mock_cognito_idp.initiate_auth.call_args.kwargs
        assert kwargs["AuthFlow"] == "USER_PASSWORD_AUTH"
        assert kwargs["AuthParameters"] == {"USERNAME": USER_EMAIL, "PASSWORD": PASSWORD}

    def test_rejection_carries_provider_message(
        self, provider: CognitoSessionProvider, mock_cognito_idp: MagicMock, storage: ClientStorage
    ) -> None:
        mock_cognito_idp.initiate_auth.side_effect = client_error(
            "UserNotConfirmedException", "User is not confirmed."
        )

        with pytest.raises(SessionProviderError) as exc_info:
            provider.sign_in_with_password(USER_EMAIL, PASSWORD)

        assert exc_info.value.code == "UserNotConfirmedException"
        assert exc_info.value.message == "User is not confirmed."
        assert len(storage) == 0

    def test_challenge_is_an_error(
        self, provider: CognitoSessionProvider, mock_cognito_idp: MagicMock
    ) -> None:
        mock_cognito_idp.initiate_auth.side_effect = None
        mock_cognito_idp.initiate_auth.return_value = {
            "ChallengeName": "SOFTWARE_TOKEN_MFA",
            "Session": "challenge-session",
        }

        with pytest.raises(SessionProviderError) as exc_info:
            provider.sign_in_with_password(USER_EMAIL, PASSWORD)
        assert exc_info.value.code == "SOFTWARE_TOKEN_MFA"


class TestGetSession:
    def test_fresh_session_is_returned_without_refresh(
        self, provider: CognitoSessionProvider, mock_cognito_idp: MagicMock
    ) -> None:
        session = provider.sign_in_with_password(USER_EMAIL, PASSWORD)
        mock_cognito_idp.initiate_auth.reset_mock()

        assert provider.get_session() == session
        mock_cognito_idp.initiate_auth.assert_not_called()

    def test_expiring_session_is_refreshed(
        self, provider: CognitoSessionProvider, storage: ClientStorage, mock_cognito_idp: MagicMock
    ) -> None:
        session = provider.sign_in_with_password(USER_EMAIL, PASSWORD)
        expire_soon(storage, session)

        refreshed = provider.get_session()

        assert refreshed is not None
        assert refreshed.access_token != session.access_token
        assert refreshed.refresh_token == "mock-refresh-token"
        assert refreshed.user == session.user
        assert provider.peek_session() == refreshed
        assert mock_cognito_idp.initiate_auth.call_args.kwargs["AuthFlow"] == "REFRESH_TOKEN_AUTH"

    def test_failed_refresh_keeps_unexpired_session(
        self, provider: CognitoSessionProvider, storage: ClientStorage, mock_cognito_idp: MagicMock
    ) -> None:
        session = provider.sign_in_with_password(USER_EMAIL, PASSWORD)
        expire_soon(storage, session)
        mock_cognito_idp.initiate_auth.side_effect = client_error(
            "InternalErrorException", "Try again"
        )

        current = provider.get_session()

        assert current is not None
        assert current.access_token == session.access_token

    def test_failed_refresh_of_expired_session_clears_it(
        self, provider: CognitoSessionProvider, storage: ClientStorage, mock_cognito_idp: MagicMock
    ) -> None:
        session = provider.sign_in_with_password(USER_EMAIL, PASSWORD)
        expire_soon(storage, session, seconds=-10)
        mock_cognito_idp.initiate_auth.side_effect = client_error(
            "NotAuthorizedException", "Refresh Token has been revoked"
        )

        assert provider.get_session() is None
        assert AMBIENT_SESSION_KEY not in storage

    def test_unreadable_session_is_discarded(
        self, provider: CognitoSessionProvider, storage: ClientStorage
    ) -> None:
        storage.set(AMBIENT_SESSION_KEY, '{"access_token": ""}')

        assert provider.get_session() is None
        assert AMBIENT_SESSION_KEY not in storage


class TestSetSession:
    def test_expiry_is_read_from_token(self, provider: CognitoSessionProvider) -> None:
        token = make_access_token(lifetime=900)

        session = provider.set_session(token, "refresh-1")

        assert abs(session.expires_at - (int(time.time()) + 900)) <= 2
        assert session.refresh_token == "refresh-1"

    def test_empty_refresh_token_is_stored_as_none(self, provider: CognitoSessionProvider) -> None:
        assert provider.set_session(make_access_token()).refresh_token is None

    def test_rejected_token_stores_nothing(
        self, provider: CognitoSessionProvider, storage: ClientStorage, mock_cognito_idp: MagicMock
    ) -> None:
        mock_cognito_idp.get_user.side_effect = client_error(
            "NotAuthorizedException", "Invalid Access Token", "GetUser"
        )

        with pytest.raises(SessionProviderError):
            provider.set_session("bogus-token")
        assert AMBIENT_SESSION_KEY not in storage


class TestAccountCalls:
    def test_sign_up_sends_attributes_and_return_url(
        self, provider: CognitoSessionProvider, mock_cognito_idp: MagicMock
    ) -> None:
        provider.sign_up(USER_EMAIL, PASSWORD, USER_NAME, "https://portal.test/auth/callback")

        kwargs = mock_cognito_idp.sign_up.call_args.kwargs
        assert kwargs["Username"] == USER_EMAIL
        assert kwargs["ClientId"] == "test-client-id-123"
        assert {"Name": "name", "Value": USER_NAME} in kwargs["UserAttributes"]
        assert kwargs["ClientMetadata"] == {"redirect_to": "https://portal.test/auth/callback"}

    def test_sign_up_keeps_session_for_confirmation(
        self, provider: CognitoSessionProvider, storage: ClientStorage
    ) -> None:
        provider.sign_up(USER_EMAIL, PASSWORD, USER_NAME, "https://portal.test/auth/confirm")

        pending = PendingSignUp.model_validate_json(storage.get(PENDING_SIGNUP_KEY) or "")
        assert pending.username == USER_EMAIL
        assert pending.session == "signup-session"

    def test_sign_up_without_session_keeps_nothing(
        self, provider: CognitoSessionProvider, storage: ClientStorage, mock_cognito_idp: MagicMock
    ) -> None:
        mock_cognito_idp.sign_up.return_value = {"UserConfirmed": False, "UserSub": USER_SUB}

        provider.sign_up(USER_EMAIL, PASSWORD, USER_NAME, "https://portal.test/auth/confirm")

        assert PENDING_SIGNUP_KEY not in storage

    def test_recovery_email_carries_reset_url(
        self, provider: CognitoSessionProvider, mock_cognito_idp: MagicMock
    ) -> None:
        provider.send_recovery_email(USER_EMAIL, "https://portal.test/auth/reset-password")

        kwargs = mock_cognito_idp.forgot_password.call_args.kwargs
        assert kwargs["Username"] == USER_EMAIL
        assert kwargs["ClientMetadata"]["redirect_to"] == "https://portal.test/auth/reset-password"

    def test_update_password_sets_permanent_password(
        self, provider: CognitoSessionProvider, mock_cognito_idp: MagicMock
    ) -> None:
        provider.sign_in_with_password(USER_EMAIL, PASSWORD)

        provider.update_password("brand-new-password")

        mock_cognito_idp.admin_set_user_password.assert_called_once_with(
            UserPoolId="eu-west-1_TestPool",
            Username=USER_SUB,
            Password="brand-new-password",
            Permanent=True,
        )

    def test_update_password_without_session(self, provider: CognitoSessionProvider) -> None:
        with pytest.raises(SessionProviderError) as exc_info:
            provider.update_password("brand-new-password")
        assert exc_info.value.message == "Auth session missing!"

    def test_update_password_rejection(
        self, provider: CognitoSessionProvider, mock_cognito_idp: MagicMock
    ) -> None:
        provider.sign_in_with_password(USER_EMAIL, PASSWORD)
        mock_cognito_idp.admin_set_user_password.side_effect = client_error(
            "InvalidPasswordException",
            "Password does not conform to policy: Password must have numeric characters",
            "AdminSetUserPassword",
        )

        with pytest.raises(SessionProviderError) as exc_info:
            provider.update_password("no-digits-here")
        assert exc_info.value.message.startswith("Password does not conform to policy")

    def test_sign_out_clears_then_revokes(
        self, provider: CognitoSessionProvider, storage: ClientStorage, mock_cognito_idp: MagicMock
    ) -> None:
        session = provider.sign_in_with_password(USER_EMAIL, PASSWORD)

        provider.sign_out()

        assert AMBIENT_SESSION_KEY not in storage
        mock_cognito_idp.global_sign_out.assert_called_once_with(AccessToken=session.access_token)


class TestHostedUi:
    def test_oauth_url(self, provider: CognitoSessionProvider) -> None:
        url = provider.build_oauth_url("github", "https://portal.test/auth/callback")

        parts = urlsplit(url)
        query = parse_qs(parts.query)
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == (
            "https://auth.portal.test/oauth2/authorize"
        )
        assert query["identity_provider"] == ["GitHub"]
        assert query["redirect_uri"] == ["https://portal.test/auth/callback"]
        assert query["response_type"] == ["code"]
        assert query["client_id"] == ["test-client-id-123"]

    def test_unknown_provider(self, provider: CognitoSessionProvider) -> None:
        with pytest.raises(SessionProviderError):
            provider.build_oauth_url("myspace", "https://portal.test/auth/callback")

    def test_oauth_requires_domain(
        self, mock_cognito_idp: MagicMock, portal_settings: PortalSettings, storage: ClientStorage
    ) -> None:
        settings = portal_settings.model_copy(update={"cognito_domain": ""})
        provider = CognitoSessionProvider(mock_cognito_idp, settings, storage)

        with pytest.raises(SessionProviderError) as exc_info:
            provider.build_oauth_url("google", "https://portal.test/auth/callback")
        assert exc_info.value.code == "ConfigurationError"

    def test_code_exchange(self, provider: CognitoSessionProvider) -> None:
        response = MagicMock(status_code=200)
        response.json.return_value = {
            "access_token": "oauth-access",
            "refresh_token": "oauth-refresh",
            "expires_in": 600,
        }

        with patch(HTTPX_POST, return_value=response) as post:
            session = provider.exchange_code_for_session("code-1", "https://portal.test/cb")

        assert post.call_args.args[0] == "https://auth.portal.test/oauth2/token"
        assert post.call_args.kwargs["data"] == {
            "grant_type": "authorization_code",
            "client_id": "test-client-id-123",
            "code": "code-1",
            "redirect_uri": "https://portal.test/cb",
        }
        assert session.access_token == "oauth-access"
        assert provider.peek_session() == session

    def test_code_exchange_error_body(self, provider: CognitoSessionProvider) -> None:
        response = MagicMock(status_code=400)
        response.json.return_value = {
            "error": "invalid_grant",
            "error_description": "Code has expired",
        }

        with patch(HTTPX_POST, return_value=response):
            with pytest.raises(SessionProviderError) as exc_info:
                provider.exchange_code_for_session("code-1", "https://portal.test/cb")

        assert exc_info.value.code == "invalid_grant"
        assert exc_info.value.message == "Code has expired"

    def test_code_exchange_non_json_error(self, provider: CognitoSessionProvider) -> None:
        response = MagicMock(status_code=502)
        response.json.side_effect = ValueError("not json")

        with patch(HTTPX_POST, return_value=response):
            with pytest.raises(SessionProviderError) as exc_info:
                provider.exchange_code_for_session("code-1", "https://portal.test/cb")
        assert exc_info.value.code == "HTTP502"

    def test_code_exchange_network_error(self, provider: CognitoSessionProvider) -> None:
        with patch(HTTPX_POST, side_effect=httpx.ConnectError("unreachable")):
            with pytest.raises(SessionProviderError) as exc_info:
                provider.exchange_code_for_session("code-1", "https://portal.test/cb")
        assert exc_info.value.code == "NetworkError"


class TestConfirmSignUp:
    def test_registering_browser_is_signed_in(
        self, provider: CognitoSessionProvider, storage: ClientStorage, mock_cognito_idp: MagicMock
    ) -> None:
        provider.sign_up(USER_EMAIL, PASSWORD, USER_NAME, "https://portal.test/auth/confirm")

        session = provider.confirm_sign_up(USER_EMAIL.upper(), "123456")

        assert session is not None
        assert session.user.id == USER_SUB
        assert provider.peek_session() == session
        assert PENDING_SIGNUP_KEY not in storage
        confirm = mock_cognito_idp.confirm_sign_up.call_args.kwargs
        assert confirm["ConfirmationCode"] == "123456"
        assert confirm["Session"] == "signup-session"
        auth = mock_cognito_idp.initiate_auth.call_args.kwargs
        assert auth["AuthFlow"] == "USER_AUTH"
        assert auth["Session"] == "confirmed-session"

    def test_other_browser_only_confirms(
        self, provider: CognitoSessionProvider, mock_cognito_idp: MagicMock
    ) -> None:
        mock_cognito_idp.confirm_sign_up.return_value = {}

        assert provider.confirm_sign_up(USER_EMAIL, "123456") is None

        assert "Session" not in mock_cognito_idp.confirm_sign_up.call_args.kwargs
        mock_cognito_idp.initiate_auth.assert_not_called()
        assert provider.peek_session() is None

    def test_pending_sign_up_of_another_email_is_not_used(
        self, provider: CognitoSessionProvider, storage: ClientStorage, mock_cognito_idp: MagicMock
    ) -> None:
        storage.set(
            PENDING_SIGNUP_KEY,
            PendingSignUp(username="other@example.com", session="other-session").model_dump_json(),
        )

        provider.confirm_sign_up(USER_EMAIL, "123456")

        assert "Session" not in mock_cognito_idp.confirm_sign_up.call_args.kwargs

    def test_rejected_code(
        self, provider: CognitoSessionProvider, storage: ClientStorage, mock_cognito_idp: MagicMock
    ) -> None:
        provider.sign_up(USER_EMAIL, PASSWORD, USER_NAME, "https://portal.test/auth/confirm")
        mock_cognito_idp.confirm_sign_up.side_effect = client_error(
            "CodeMismatchException", "Invalid verification code provided", "ConfirmSignUp"
        )

        with pytest.raises(SessionProviderError) as exc_info:
            provider.confirm_sign_up(USER_EMAIL, "000000")

        assert exc_info.value.code == "CodeMismatchException"
        assert PENDING_SIGNUP_KEY in storage

    def test_failed_sign_in_after_confirmation(
        self, provider: CognitoSessionProvider, mock_cognito_idp: MagicMock
    ) -> None:
        provider.sign_up(USER_EMAIL, PASSWORD, USER_NAME, "https://portal.test/auth/confirm")
        mock_cognito_idp.initiate_auth.side_effect = client_error(
            "NotAuthorizedException", "Invalid session for the user."
        )

        assert provider.confirm_sign_up(USER_EMAIL, "123456") is None
        assert provider.peek_session() is None


class TestResetCodeSession:
    def test_session_holds_code_and_user(
        self, recovery_provider: CognitoSessionProvider, mock_cognito_idp: MagicMock
    ) -> None:
        session = recovery_provider.set_recovery_session(USER_EMAIL, "654321")

        assert session.recovery_code == "654321"
        assert session.access_token == ""
        assert session.user.email == USER_EMAIL
        assert abs(session.expires_at - (int(time.time()) + 3600)) <= 2
        assert recovery_provider.peek_session() == session
        mock_cognito_idp.admin_get_user.assert_called_once_with(
            UserPoolId="eu-west-1_TestPool", Username=USER_EMAIL
        )

    def test_unknown_account(
        self,
        recovery_provider: CognitoSessionProvider,
        storage: ClientStorage,
        mock_cognito_idp: MagicMock,
    ) -> None:
        mock_cognito_idp.admin_get_user.side_effect = client_error(
            "UserNotFoundException", "User does not exist.", "AdminGetUser"
        )

        with pytest.raises(SessionProviderError) as exc_info:
            recovery_provider.set_recovery_session(USER_EMAIL, "654321")
        assert exc_info.value.code == "UserNotFoundException"
        assert RECOVERY_SESSION_KEY not in storage

    def test_new_password_spends_the_code(
        self, recovery_provider: CognitoSessionProvider, mock_cognito_idp: MagicMock
    ) -> None:
        recovery_provider.set_recovery_session(USER_EMAIL, "654321")

        recovery_provider.update_password("brand-new-password")

        mock_cognito_idp.confirm_forgot_password.assert_called_once_with(
            ClientId="test-client-id-123",
            Username=USER_SUB,
            ConfirmationCode="654321",
            Password="brand-new-password",
        )
        mock_cognito_idp.admin_set_user_password.assert_not_called()
        mock_cognito_idp.get_user.assert_not_called()

    def test_expired_code(
        self, recovery_provider: CognitoSessionProvider, mock_cognito_idp: MagicMock
    ) -> None:
        recovery_provider.set_recovery_session(USER_EMAIL, "654321")
        mock_cognito_idp.confirm_forgot_password.side_effect = client_error(
            "ExpiredCodeException", "Invalid code provided, please request a code again.",
            "ConfirmForgotPassword",
        )

        with pytest.raises(SessionProviderError) as exc_info:
            recovery_provider.update_password("brand-new-password")
        assert exc_info.value.code == "ExpiredCodeException"

    def test_sign_out_does_not_call_cognito(
        self,
        recovery_provider: CognitoSessionProvider,
        storage: ClientStorage,
        mock_cognito_idp: MagicMock,
    ) -> None:
        recovery_provider.set_recovery_session(USER_EMAIL, "654321")

        recovery_provider.sign_out()

        assert RECOVERY_SESSION_KEY not in storage
        mock_cognito_idp.global_sign_out.assert_not_called()
