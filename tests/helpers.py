"""Shared test data and builders for Cognito responses."""

import base64
import json
import time
from typing import Any
from urllib.parse import urlencode

from botocore.exceptions import ClientError

TABLE_PREFIX = "test-sso-portal"

USER_SUB = "user-sub-1234567890"
USER_EMAIL = "anna@example.com"
USER_NAME = "Anna Example"
PASSWORD = "correct-horse"

TRAX = "https://trax.supermatt.agency"
EVIL = "https://evil.example"


def make_jwt(claims: dict[str, Any]) -> str:
    """Build an unsigned JWT-shaped token carrying ``claims``."""

    def encode(part: dict[str, Any]) -> str:
        return base64.urlsafe_b64encode(json.dumps(part).encode()).decode().rstrip("=")

    return f"{encode({'alg': 'RS256', 'kid': 'test'})}.{encode(claims)}.mock-signature"


def make_access_token(sub: str = USER_SUB, lifetime: int = 3600, jti: str = "1") -> str:
    return make_jwt(
        {
            "sub": sub,
            "exp": int(time.time()) + lifetime,
            "token_use": "access",
            "jti": jti,
        }
    )


def client_error(code: str, message: str, operation: str = "InitiateAuth") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def recovery_fragment(access_token: str, refresh_token: str = "recovery-refresh") -> str:
    return (
        f"#access_token={access_token}&expires_in=3600"
        f"&refresh_token={refresh_token}&token_type=bearer&type=recovery"
    )


def reset_code_fragment(email: str, code: str) -> str:
    """Fragment of the reset link the custom email sender builds."""
    return f"#{urlencode({'type': 'recovery', 'email': email, 'code': code})}"
