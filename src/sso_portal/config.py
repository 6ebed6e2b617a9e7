"""Portal configuration loaded from the environment.

Settings are read once per process by get_settings(). Tests call
reset_settings() after changing environment variables.
"""

import os
from functools import lru_cache
from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator

from sso_portal.services.ssm_service import get_ssm_service

DEFAULT_ALLOWED_REDIRECT_ORIGINS = [
    "https://subz.supermatt.agency",
    "https://trax.supermatt.agency",
    "https://supermatt.agency",
    "http://localhost:3000",
    "http://localhost:3001",
    "http://localhost:5173",
]

DEFAULT_CALLBACK_PATHS = {
    "https://subz.supermatt.agency": "/api/auth/sso-callback",
    "https://trax.supermatt.agency": "/sso-callback",
}

# Callback path used for bare-origin redirects and apps without an explicit path
DEFAULT_CALLBACK_PATH = "/sso-callback"

# Portal-side OAuth provider names mapped to Cognito identity provider names
DEFAULT_OAUTH_PROVIDERS = {
    "google": "Google",
    "github": "GitHub",
    "apple": "SignInWithApple",
}


class PortalSettings(BaseModel):
    """Runtime configuration of the portal."""

    environment: str = "dev"
    portal_url: str = "http://localhost:5173"
    allowed_redirect_origins: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_REDIRECT_ORIGINS)
    )
    callback_paths: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_CALLBACK_PATHS)
    )
    default_callback_path: str = DEFAULT_CALLBACK_PATH
    oauth_providers: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_OAUTH_PROVIDERS)
    )

    cognito_user_pool_id: str = ""
    cognito_client_id: str = ""
    cognito_domain: str = ""

    device_cookie_name: str = "sso_portal_device"
    device_cookie_max_age: int = 60 * 60 * 24 * 365
    device_cookie_secure: bool = True
    cors_allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"]
    )

    min_password_length: int = 8
    recovery_redirect_delay_seconds: int = 2

    @field_validator("portal_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("allowed_redirect_origins")
    @classmethod
    def _validate_origins(cls, v: list[str]) -> list[str]:
        for origin in v:
            parts = urlsplit(origin)
            if parts.scheme not in ("http", "https") or not parts.hostname:
                raise ValueError(f"Not an absolute http(s) origin: {origin!r}")
            if parts.path not in ("", "/") or parts.query or parts.fragment:
                raise ValueError(f"Origin must not carry a path or query: {origin!r}")
        return v

    @property
    def callback_url(self) -> str:
        """Where the Hosted UI returns after OAuth sign-in."""
        return f"{self.portal_url}/auth/callback"

    @property
    def confirm_url(self) -> str:
        """Base of the link in sign-up confirmation emails."""
        return f"{self.portal_url}/auth/confirm"

    @property
    def reset_password_url(self) -> str:
        return f"{self.portal_url}/auth/reset-password"


def _split_list(raw: Optional[str]) -> Optional[list[str]]:
    if raw is None:
        return None
    return [item.strip() for item in raw.split(",") if item.strip()]


def _split_mapping(raw: Optional[str]) -> Optional[dict[str, str]]:
    """Parse "key=value,key=value" into a dict."""
    if raw is None:
        return None
    mapping: dict[str, str] = {}
    for pair in _split_list(raw) or []:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"Expected key=value, got {pair!r}")
        mapping[key.strip().rstrip("/")] = value.strip()
    return mapping


def _resolve_cognito_ids(user_pool_id: str, client_id: str) -> tuple[str, str]:
    """Fill missing Cognito identifiers from SSM when a prefix is configured."""
    prefix = os.getenv("SSM_PARAMETER_PREFIX")
    if (user_pool_id and client_id) or not prefix:
        return user_pool_id, client_id

    values = get_ssm_service().get_parameters(
        prefix, ["cognito/user_pool_id", "cognito/client_id"]
    )
    return (
        user_pool_id or values["cognito/user_pool_id"],
        client_id or values["cognito/client_id"],
    )


def load_settings() -> PortalSettings:
    """Build PortalSettings from environment variables."""
    overrides: dict[str, object] = {}

    env_map = {
        "environment": os.getenv("ENVIRONMENT"),
        "portal_url": os.getenv("PORTAL_URL"),
        "cognito_domain": os.getenv("COGNITO_DOMAIN"),
        "allowed_redirect_origins": _split_list(os.getenv("SSO_ALLOWED_REDIRECT_ORIGINS")),
        "callback_paths": _split_mapping(os.getenv("SSO_CALLBACK_PATHS")),
        "cors_allowed_origins": _split_list(os.getenv("CORS_ALLOWED_ORIGINS")),
    }
    for key, value in env_map.items():
        if value is not None:
            overrides[key] = value

    secure = os.getenv("DEVICE_COOKIE_SECURE")
    if secure is not None:
        overrides["device_cookie_secure"] = secure.lower() in ("1", "true", "yes")

    user_pool_id, client_id = _resolve_cognito_ids(
        os.getenv("COGNITO_USER_POOL_ID", ""),
        os.getenv("COGNITO_CLIENT_ID", ""),
    )
    overrides["cognito_user_pool_id"] = user_pool_id
    overrides["cognito_client_id"] = client_id

    return PortalSettings(**overrides)


@lru_cache(maxsize=1)
def get_settings() -> PortalSettings:
    """Get the process-wide settings instance."""
    return load_settings()


def reset_settings() -> None:
    """Clear cached settings (for testing)."""
    get_settings.cache_clear()
    get_ssm_service.cache_clear()
