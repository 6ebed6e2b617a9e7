"""Cognito user pool implementation of the Session Provider.

Each CognitoSessionProvider is bound to one key of a browser's ClientStorage
and keeps its session there as JSON. Password sign-in, sign-up, recovery and
token refresh go through the cognito-idp API; OAuth sign-in goes through the
user pool's Hosted UI endpoints.

Confirmation and password-reset emails carry Cognito codes. The custom email
sender (sso_portal.triggers.email_sender) builds portal links around them:
/auth/confirm confirms the sign-up and, in the registering browser, signs the
user in from the sign-up session; /auth/reset-password opens a recovery
session that spends the reset code when the new password is set.
"""

import logging
import time
from functools import lru_cache
from typing import Any, Optional
from urllib.parse import urlencode

import boto3
import httpx
from botocore.exceptions import ClientError
from pydantic import ValidationError

from sso_portal.config import PortalSettings
from sso_portal.models.auth import PendingSignUp, ProviderSession, ProviderUser
from sso_portal.services.client_storage import ClientStorage
from sso_portal.services.session_provider import SessionProviderError
from sso_portal.utils.jwt import token_expiry

logger = logging.getLogger(__name__)

# Storage key of the portal's ambient session
AMBIENT_SESSION_KEY = "sso-portal-auth"

# Storage key of the isolated password-recovery session
RECOVERY_SESSION_KEY = "sso-portal-recovery-auth"

# Sign-up awaiting confirmation in this browser
PENDING_SIGNUP_KEY = "sso-portal-signup"

# Cognito password-reset codes expire after one hour
RECOVERY_CODE_LIFETIME_SECONDS = 3600

# Used when a token carries no readable exp claim
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

OAUTH_SCOPES = "openid email profile"
HOSTED_UI_TIMEOUT_SECONDS = 10.0


@lru_cache(maxsize=1)
def get_cognito_client() -> Any:
    """Get the shared cognito-idp client."""
    return boto3.client("cognito-idp")


def _provider_error(e: ClientError) -> SessionProviderError:
    error = e.response.get("Error", {})
    return SessionProviderError(
        code=error.get("Code", "Unknown"),
        message=error.get("Message", "Authentication failed"),
    )


def _user_from_response(response: dict[str, Any]) -> ProviderUser:
    """Build the user from a GetUser or AdminGetUser response."""
    attributes = {
        attr["Name"]: attr["Value"] for attr in response.get("UserAttributes", [])
    }
    return ProviderUser(
        id=attributes.get("sub", response["Username"]),
        username=response["Username"],
        email=attributes.get("email"),
        full_name=attributes.get("name"),
    )


class CognitoSessionProvider:
    """Session Provider backed by a Cognito user pool app client."""

    def __init__(
        self,
        cognito_client: Any,
        settings: PortalSettings,
        storage: ClientStorage,
        storage_key: str = AMBIENT_SESSION_KEY,
    ) -> None:
        """Bind a provider to one storage slot.

        Args:
            cognito_client: boto3 cognito-idp client
            settings: Portal settings (user pool, app client, Hosted UI domain)
            storage: Storage of the calling browser
            storage_key: Key that holds this provider's session
        """
        self._client = cognito_client
        self._settings = settings
        self._storage = storage
        self._storage_key = storage_key

    @property
    def storage_key(self) -> str:
        return self._storage_key

    # =========================================================================
    # Cached session
    # =========================================================================

    def peek_session(self) -> Optional[ProviderSession]:
        raw = self._storage.get(self._storage_key)
        if raw is None:
            return None
        try:
            return ProviderSession.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable session in %s", self._storage_key)
            self._storage.remove(self._storage_key)
            return None

    def get_session(self) -> Optional[ProviderSession]:
        session = self.peek_session()
        if session is None or not session.needs_refresh:
            return session

        if not session.refresh_token:
            if session.is_expired:
                self._storage.remove(self._storage_key)
                return None
            return session

        try:
            return self._refresh(session)
        except SessionProviderError as e:
            logger.warning("Session refresh failed: %s", e.code)
            if session.is_expired:
                self._storage.remove(self._storage_key)
                return None
            return session

    def clear_local_session(self) -> Optional[ProviderSession]:
        session = self.peek_session()
        self._storage.remove(self._storage_key)
        return session

    def _store(self, session: ProviderSession) -> ProviderSession:
        self._storage.set(self._storage_key, session.model_dump_json())
        return session

    def _refresh(self, session: ProviderSession) -> ProviderSession:
        try:
            response = self._client.initiate_auth(
                AuthFlow="REFRESH_TOKEN_AUTH",
                ClientId=self._settings.cognito_client_id,
                AuthParameters={"REFRESH_TOKEN": session.refresh_token},
            )
        except ClientError as e:
            raise _provider_error(e) from e

        result = response["AuthenticationResult"]
        refreshed = ProviderSession(
            access_token=result["AccessToken"],
            # Cognito only rotates the refresh token when rotation is enabled
            refresh_token=result.get("RefreshToken") or session.refresh_token,
            expires_at=int(time.time()) + int(result.get("ExpiresIn", DEFAULT_TOKEN_LIFETIME_SECONDS)),
            user=session.user,
        )
        return self._store(refreshed)

    # =========================================================================
    # Provider calls
    # =========================================================================

    def _fetch_user(self, access_token: str) -> ProviderUser:
        try:
            response = self._client.get_user(AccessToken=access_token)
        except ClientError as e:
            raise _provider_error(e) from e

        return _user_from_response(response)

    def _session_from_tokens(
        self,
        access_token: str,
        refresh_token: Optional[str],
        expires_in: Optional[int] = None,
    ) -> ProviderSession:
        user = self._fetch_user(access_token)
        if expires_in is not None:
            expires_at = int(time.time()) + int(expires_in)
        else:
            expires_at = token_expiry(access_token) or (
                int(time.time()) + DEFAULT_TOKEN_LIFETIME_SECONDS
            )
        return self._store(
            ProviderSession(
                access_token=access_token,
                refresh_token=refresh_token or None,
                expires_at=expires_at,
                user=user,
            )
        )

    def sign_in_with_password(self, email: str, password: str) -> ProviderSession:
        try:
            response = self._client.initiate_auth(
                AuthFlow="USER_PASSWORD_AUTH",
                ClientId=self._settings.cognito_client_id,
                AuthParameters={"USERNAME": email, "PASSWORD": password},
            )
        except ClientError as e:
            raise _provider_error(e) from e

        result = response.get("AuthenticationResult")
        if not result:
            # MFA or forced password change; the portal has no screen for either
            raise SessionProviderError(
                code=response.get("ChallengeName", "ChallengeRequired"),
                message="Additional verification is required for this account",
            )

        return self._session_from_tokens(
            result["AccessToken"],
            result.get("RefreshToken"),
            result.get("ExpiresIn"),
        )

    def sign_up(self, email: str, password: str, full_name: str, redirect_to: str) -> None:
        """Register an account; Cognito emails a confirmation code.

        ``redirect_to`` reaches the custom email sender as client metadata
        and becomes the base of the confirmation link. The sign-up session
        Cognito returns is kept in this browser so that confirming from here
        signs the user in.
        """
        try:
            response = self._client.sign_up(
                ClientId=self._settings.cognito_client_id,
                Username=email,
                Password=password,
                UserAttributes=[
                    {"Name": "email", "Value": email},
                    {"Name": "name", "Value": full_name},
                ],
                ClientMetadata={"redirect_to": redirect_to},
            )
        except ClientError as e:
            raise _provider_error(e) from e

        session_id = response.get("Session")
        if session_id:
            pending = PendingSignUp(username=email, session=session_id)
            self._storage.set(PENDING_SIGNUP_KEY, pending.model_dump_json())

    def _pending_sign_up(self, email: str) -> Optional[PendingSignUp]:
        raw = self._storage.get(PENDING_SIGNUP_KEY)
        if raw is None:
            return None
        try:
            pending = PendingSignUp.model_validate_json(raw)
        except ValidationError:
            self._storage.remove(PENDING_SIGNUP_KEY)
            return None
        return pending if pending.username.lower() == email.lower() else None

    def confirm_sign_up(self, email: str, code: str) -> Optional[ProviderSession]:
        """Confirm a registration with the emailed code.

        Returns:
            The new session when this browser registered the account and
            Cognito allowed sign-in from the sign-up session, else None
        """
        pending = self._pending_sign_up(email)
        kwargs: dict[str, Any] = {
            "ClientId": self._settings.cognito_client_id,
            "Username": email,
            "ConfirmationCode": code,
        }
        if pending is not None:
            kwargs["Session"] = pending.session

        try:
            response = self._client.confirm_sign_up(**kwargs)
        except ClientError as e:
            raise _provider_error(e) from e

        self._storage.remove(PENDING_SIGNUP_KEY)
        session_id = response.get("Session")
        if not session_id:
            return None

        try:
            auth = self._client.initiate_auth(
                AuthFlow="USER_AUTH",
                ClientId=self._settings.cognito_client_id,
                AuthParameters={"USERNAME": email},
                Session=session_id,
            )
        except ClientError as e:
            # The account is confirmed either way; the user can sign in with a password
            logger.warning("Sign-in after confirmation failed: %s", _provider_error(e).code)
            return None

        result = auth.get("AuthenticationResult")
        if not result:
            return None
        return self._session_from_tokens(
            result["AccessToken"],
            result.get("RefreshToken"),
            result.get("ExpiresIn"),
        )

    def revoke(self, session: ProviderSession) -> None:
        if session.recovery_code:
            # Cognito issued no tokens for a reset-code session
            return
        try:
            self._client.global_sign_out(AccessToken=session.access_token)
        except ClientError as e:
            raise _provider_error(e) from e

    def sign_out(self) -> None:
        session = self.clear_local_session()
        if session is not None:
            self.revoke(session)

    def send_recovery_email(self, email: str, redirect_to: str) -> None:
        """Start a password reset; Cognito emails a reset code.

        The custom email sender turns ``redirect_to`` and the code into the
        recovery link.
        """
        try:
            self._client.forgot_password(
                ClientId=self._settings.cognito_client_id,
                Username=email,
                ClientMetadata={"redirect_to": redirect_to},
            )
        except ClientError as e:
            raise _provider_error(e) from e

    def set_session(self, access_token: str, refresh_token: str = "") -> ProviderSession:
        return self._session_from_tokens(access_token, refresh_token)

    def set_recovery_session(self, email: str, code: str) -> ProviderSession:
        """Open a recovery session from an emailed password-reset code.

        Cognito cannot check a reset code without spending it, so only the
        account is looked up here. The code itself is checked when the new
        password is set.
        """
        try:
            response = self._client.admin_get_user(
                UserPoolId=self._settings.cognito_user_pool_id,
                Username=email,
            )
        except ClientError as e:
            raise _provider_error(e) from e

        return self._store(
            ProviderSession(
                recovery_code=code,
                expires_at=int(time.time()) + RECOVERY_CODE_LIFETIME_SECONDS,
                user=_user_from_response(response),
            )
        )

    def update_password(self, new_password: str) -> None:
        session = self.get_session()
        if session is None:
            raise SessionProviderError("NotAuthorizedException", "Auth session missing!")

        if session.recovery_code:
            try:
                self._client.confirm_forgot_password(
                    ClientId=self._settings.cognito_client_id,
                    Username=session.user.username,
                    ConfirmationCode=session.recovery_code,
                    Password=new_password,
                )
            except ClientError as e:
                raise _provider_error(e) from e
            return

        user = self._fetch_user(session.access_token)
        try:
            self._client.admin_set_user_password(
                UserPoolId=self._settings.cognito_user_pool_id,
                Username=user.username,
                Password=new_password,
                Permanent=True,
            )
        except ClientError as e:
            raise _provider_error(e) from e

    # =========================================================================
    # Hosted UI (OAuth)
    # =========================================================================

    def _hosted_ui_base(self) -> str:
        domain = self._settings.cognito_domain.rstrip("/")
        if not domain:
            raise SessionProviderError("ConfigurationError", "OAuth sign-in is not configured")
        if not domain.startswith(("https://", "http://")):
            domain = f"https://{domain}"
        return domain

    def build_oauth_url(self, provider: str, redirect_to: str) -> str:
        identity_provider = self._settings.oauth_providers.get(provider)
        if identity_provider is None:
            raise SessionProviderError("UnsupportedProvider", f"Unsupported provider: {provider}")

        query = urlencode(
            {
                "response_type": "code",
                "client_id": self._settings.cognito_client_id,
                "redirect_uri": redirect_to,
                "identity_provider": identity_provider,
                "scope": OAUTH_SCOPES,
            }
        )
        return f"{self._hosted_ui_base()}/oauth2/authorize?{query}"

    def exchange_code_for_session(self, code: str, redirect_to: str) -> ProviderSession:
        try:
            response = httpx.post(
                f"{self._hosted_ui_base()}/oauth2/token",
                data={
                    "grant_type": "authorization_code",
                    "client_id": self._settings.cognito_client_id,
                    "code": code,
                    "redirect_uri": redirect_to,
                },
                timeout=HOSTED_UI_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            raise SessionProviderError("NetworkError", str(e)) from e

        if response.status_code != 200:
            try:
                body = response.json()
            except ValueError:
                body = {}
            raise SessionProviderError(
                code=body.get("error", f"HTTP{response.status_code}"),
                message=body.get("error_description", "Authorization code exchange failed"),
            )

        tokens = response.json()
        return self._session_from_tokens(
            tokens["access_token"],
            tokens.get("refresh_token"),
            tokens.get("expires_in"),
        )
