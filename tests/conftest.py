"""Pytest configuration and fixtures for the SSO portal tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (browser state, credential claims, directory tables)
- A MagicMock cognito-idp client with realistic password-auth responses
- A TestClient wired to the mocked Cognito client
- Sample directory data (apps, profiles)
"""

import os
from typing import Any, Generator
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

from helpers import (
    PASSWORD,
    TABLE_PREFIX,
    USER_EMAIL,
    USER_NAME,
    USER_SUB,
    make_access_token,
    make_jwt,
)

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-sso-portal")
os.environ.setdefault("COGNITO_USER_POOL_ID", "eu-west-1_TestPool")
os.environ.setdefault("COGNITO_CLIENT_ID", "test-client-id-123")
os.environ.setdefault("COGNITO_DOMAIN", "auth.portal.test")
os.environ.setdefault("PORTAL_URL", "https://portal.supermatt.agency")
# TestClient talks plain http to testserver
os.environ.setdefault("DEVICE_COOKIE_SECURE", "false")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

# === State reset ===


@pytest.fixture(autouse=True)
def reset_state() -> Generator[None, None, None]:
    """Reset cached settings and services before and after each test.

    Services created inside a mock_aws context must not leak into the next test.
    """
    from sso_portal.api.dependencies import reset_services
    from sso_portal.utils.logging import clear_correlation_id

    reset_services()
    yield
    reset_services()
    clear_correlation_id()


# === AWS Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


def _simple_table(name: str, key: str) -> dict[str, Any]:
    return {
        "TableName": f"{TABLE_PREFIX}-{name}",
        "KeySchema": [{"AttributeName": key, "KeyType": "HASH"}],
        "AttributeDefinitions": [{"AttributeName": key, "AttributeType": "S"}],
        "BillingMode": "PAY_PER_REQUEST",
    }


@pytest.fixture
def dynamodb_tables(aws_credentials: None) -> Generator[Any, None, None]:
    """Create every portal table inside a mock_aws context.

    Yields the boto3 DynamoDB resource.
    """
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        tables = [
            _simple_table("browser-state", "device_id"),
            _simple_table("consumed-credentials", "credential_hash"),
            _simple_table("profiles", "id"),
            _simple_table("login-stats", "id"),
            {
                "TableName": f"{TABLE_PREFIX}-apps",
                "KeySchema": [{"AttributeName": "id", "KeyType": "HASH"}],
                "AttributeDefinitions": [
                    {"AttributeName": "id", "AttributeType": "S"},
                    {"AttributeName": "slug", "AttributeType": "S"},
                ],
                "GlobalSecondaryIndexes": [
                    {
                        "IndexName": "slug-index",
                        "KeySchema": [{"AttributeName": "slug", "KeyType": "HASH"}],
                        "Projection": {"ProjectionType": "ALL"},
                    }
                ],
                "BillingMode": "PAY_PER_REQUEST",
            },
        ]
        for table in tables:
            client.create_table(**table)

        yield boto3.resource("dynamodb", region_name="eu-west-1")


@pytest.fixture
def sample_apps() -> list[dict[str, Any]]:
    return [
        {
            "id": "app-trax",
            "name": "Trax",
            "slug": "trax",
            "url": "https://trax.supermatt.agency",
            "callback_path": "/sso-callback",
            "is_active": True,
        },
        {
            "id": "app-subz",
            "name": "Subz",
            "slug": "subz",
            "url": "https://subz.supermatt.agency",
            "callback_path": "/api/auth/sso-callback",
            "is_active": True,
        },
        {
            "id": "app-surveys",
            "name": "Surveys",
            "slug": "surveys",
            "url": "https://surveys.supermatt.agency",
            "callback_path": "",
            "is_active": True,
        },
        {
            "id": "app-legacy",
            "name": "Legacy",
            "slug": "legacy",
            "url": "https://legacy.supermatt.agency",
            "is_active": False,
        },
    ]


@pytest.fixture
def seeded_tables(dynamodb_tables: Any, sample_apps: list[dict[str, Any]]) -> Any:
    """Tables with sample apps and one admin profile."""
    apps = dynamodb_tables.Table(f"{TABLE_PREFIX}-apps")
    for app in sample_apps:
        apps.put_item(Item=app)

    dynamodb_tables.Table(f"{TABLE_PREFIX}-profiles").put_item(
        Item={"id": USER_SUB, "email": USER_EMAIL, "full_name": USER_NAME, "role": "admin"}
    )
    return dynamodb_tables


# === Cognito Fixtures ===


@pytest.fixture
def mock_cognito_idp() -> MagicMock:
    """Mock cognito-idp client for password auth testing.

    initiate_auth answers USER_PASSWORD_AUTH, USER_AUTH and REFRESH_TOKEN_AUTH
    with fresh JWT-shaped access tokens; get_user and admin_get_user describe
    one confirmed user. sign_up and confirm_sign_up return the session chain
    Cognito uses for sign-in right after confirmation.
    """
    mock_client = MagicMock()
    issued = {"count": 0}

    def initiate_auth(**kwargs: Any) -> dict[str, Any]:
        issued["count"] += 1
        result: dict[str, Any] = {
            "AccessToken": make_access_token(jti=str(issued["count"])),
            "ExpiresIn": 3600,
            "TokenType": "Bearer",
        }
        if kwargs.get("AuthFlow") in ("USER_PASSWORD_AUTH", "USER_AUTH"):
            result["RefreshToken"] = "mock-refresh-token"
            result["IdToken"] = make_jwt({"sub": USER_SUB, "email": USER_EMAIL})
        return {"AuthenticationResult": result}

    mock_client.initiate_auth.side_effect = initiate_auth
    mock_client.get_user.return_value = {
        "Username": USER_SUB,
        "UserAttributes": [
            {"Name": "sub", "Value": USER_SUB},
            {"Name": "email", "Value": USER_EMAIL},
            {"Name": "name", "Value": USER_NAME},
        ],
    }
    mock_client.admin_get_user.return_value = mock_client.get_user.return_value
    mock_client.sign_up.return_value = {
        "UserConfirmed": False,
        "UserSub": USER_SUB,
        "Session": "signup-session",
    }
    mock_client.confirm_sign_up.return_value = {"Session": "confirmed-session"}
    mock_client.confirm_forgot_password.return_value = {}
    mock_client.forgot_password.return_value = {
        "CodeDeliveryDetails": {"Destination": "a***@e***", "DeliveryMedium": "EMAIL"}
    }
    mock_client.global_sign_out.return_value = {}
    mock_client.admin_set_user_password.return_value = {}
    return mock_client


@pytest.fixture
def settings() -> Any:
    from sso_portal.config import get_settings

    return get_settings()


# === API Fixtures ===


@pytest.fixture
def client(seeded_tables: Any, mock_cognito_idp: MagicMock) -> Generator[Any, None, None]:
    """TestClient with the Cognito client replaced by mock_cognito_idp.

    Redirects are not followed so tests can assert on Location headers.
    """
    from fastapi.testclient import TestClient

    from sso_portal.api.main import app
    from sso_portal.services.cognito_provider import get_cognito_client

    app.dependency_overrides[get_cognito_client] = lambda: mock_cognito_idp
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def signed_in_client(client: Any) -> Any:
    """TestClient whose browser already holds a portal session."""
    response = client.post(
        "/api/auth/login", json={"email": USER_EMAIL, "password": PASSWORD}
    )
    assert response.status_code == 200
    return client
