"""Cognito Custom Email Sender trigger.

With a custom email sender configured, Cognito sends no email itself. It
invokes this function with the code, encrypted under the user pool's KMS
key. The function:
1. Decrypts the code using AWS Encryption SDK + KMS
2. Builds the portal link that carries it
3. Sends the email via SES

Links:
- CustomEmailSender_SignUp, CustomEmailSender_ResendCode:
  {portal}/auth/confirm?email=...&code=...
- CustomEmailSender_ForgotPassword:
  {portal}/auth/reset-password#type=recovery&email=...&code=...
Other triggers get the bare code.

The link base is the ``redirect_to`` client metadata the portal passes to
SignUp and ForgotPassword, used only when it is on the portal's own origin.

Reference: https://docs.aws.amazon.com/cognito/latest/developerguide/user-pool-lambda-custom-email-sender.html
"""

import base64
import html
import os
from functools import lru_cache
from typing import Any, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import aws_encryption_sdk
import boto3
from aws_encryption_sdk import CommitmentPolicy
from botocore.exceptions import ClientError
from pydantic import BaseModel

from sso_portal.config import PortalSettings, get_settings
from sso_portal.services.origin_allowlist import normalize_origin
from sso_portal.utils.logging import get_logger

logger = get_logger(__name__)

CONFIRMATION_TRIGGERS = {
    "CustomEmailSender_SignUp",
    "CustomEmailSender_ResendCode",
}

RECOVERY_TRIGGER = "CustomEmailSender_ForgotPassword"

EMAIL_SUBJECTS = {
    "CustomEmailSender_SignUp": "Confirm your email address",
    "CustomEmailSender_ResendCode": "Confirm your email address",
    "CustomEmailSender_ForgotPassword": "Reset your password",
    "CustomEmailSender_Authentication": "Your sign-in code",
    "CustomEmailSender_UpdateUserAttribute": "Verify your email change",
    "CustomEmailSender_VerifyUserAttribute": "Verify your email address",
    "CustomEmailSender_AdminCreateUser": "Your new account",
}


class OutgoingEmail(BaseModel):
    """One email ready for SES."""

    subject: str
    text_body: str
    html_body: str


@lru_cache(maxsize=1)
def get_encryption_client() -> tuple[Any, Any]:
    """Get the AWS Encryption SDK client and KMS key provider."""
    kms_key_arn = os.environ.get("KMS_KEY_ARN")
    if not kms_key_arn:
        raise ValueError("KMS_KEY_ARN environment variable not set")

    key_provider = aws_encryption_sdk.StrictAwsKmsMasterKeyProvider(key_ids=[kms_key_arn])
    client = aws_encryption_sdk.EncryptionSDKClient(
        commitment_policy=CommitmentPolicy.REQUIRE_ENCRYPT_ALLOW_DECRYPT
    )
    return client, key_provider


@lru_cache(maxsize=1)
def get_ses_client() -> Any:
    return boto3.client("ses", region_name=os.environ.get("SES_REGION"))


def decrypt_code(encrypted_code: str) -> str:
    """Decrypt the code Cognito sends.

    Args:
        encrypted_code: Base64-encoded ciphertext from the trigger event

    Returns:
        Plaintext code
    """
    client, key_provider = get_encryption_client()
    plaintext, _ = client.decrypt(
        source=base64.b64decode(encrypted_code), key_provider=key_provider
    )
    return plaintext.decode("utf-8")


def link_base(client_metadata: Optional[dict[str, Any]], default: str, portal_url: str) -> str:
    """Pick the base URL of an emailed link.

    The metadata value comes from an unauthenticated API call, so anything
    off the portal's origin is ignored.
    """
    candidate = (client_metadata or {}).get("redirect_to")
    if not candidate or normalize_origin(candidate) != normalize_origin(portal_url):
        return default
    return urlunsplit(urlsplit(candidate)._replace(query="", fragment=""))


def build_confirmation_link(base: str, email: str, code: str) -> str:
    return f"{base}?{urlencode({'email': email, 'code': code})}"


def build_recovery_link(base: str, email: str, code: str) -> str:
    """Reset link; the credential sits in the fragment, which browsers never send."""
    return f"{base}#{urlencode({'type': 'recovery', 'email': email, 'code': code})}"


def compose_email(
    trigger_source: str,
    email: str,
    code: str,
    client_metadata: Optional[dict[str, Any]],
    settings: PortalSettings,
) -> OutgoingEmail:
    subject = EMAIL_SUBJECTS[trigger_source]

    if trigger_source in CONFIRMATION_TRIGGERS:
        base = link_base(client_metadata, settings.confirm_url, settings.portal_url)
        link: Optional[str] = build_confirmation_link(base, email, code)
        action = "Confirm your email address to finish creating your account:"
    elif trigger_source == RECOVERY_TRIGGER:
        base = link_base(client_metadata, settings.reset_password_url, settings.portal_url)
        link = build_recovery_link(base, email, code)
        action = "Choose a new password. The link works once and expires in one hour:"
    else:
        link = None
        action = "Your code is:"

    if link is not None:
        text_body = f"{subject}\n\n{action}\n{link}\n"
        html_link = html.escape(link)
        html_main = f'<p>{action}</p>\n<p><a href="{html_link}">{html_link}</a></p>'
    else:
        text_body = f"{subject}\n\n{action} {code}\n"
        html_main = (
            f"<p>{action}</p>\n"
            f'<p style="font-size: 32px; font-weight: bold; letter-spacing: 4px;">'
            f"{html.escape(code)}</p>"
        )

    text_body += "\nIf you didn't request this, you can safely ignore this email.\n"
    html_body = f"""<html>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
<h2 style="color: #333;">{html.escape(subject)}</h2>
{html_main}
<p style="color: #999; font-size: 12px;">
If you didn't request this, you can safely ignore this email.
</p>
</body>
</html>
"""
    return OutgoingEmail(subject=subject, text_body=text_body, html_body=html_body)


def send_email(recipient: str, message: OutgoingEmail) -> None:
    """Send one email via SES.

    Raises:
        ValueError: If SES_FROM_EMAIL is not set
        ClientError: If SES rejects the message, so Cognito reports the failure
    """
    ses_from = os.environ.get("SES_FROM_EMAIL")
    if not ses_from:
        raise ValueError("SES_FROM_EMAIL environment variable not set")

    try:
        get_ses_client().send_email(
            Source=ses_from,
            Destination={"ToAddresses": [recipient]},
            Message={
                "Subject": {"Data": message.subject, "Charset": "UTF-8"},
                "Body": {
                    "Text": {"Data": message.text_body, "Charset": "UTF-8"},
                    "Html": {"Data": message.html_body, "Charset": "UTF-8"},
                },
            },
        )
    except ClientError as e:
        logger.error("Failed to send email: %s", e.response.get("Error", {}).get("Code"))
        raise


def handler(event: dict[str, Any], context: Any) -> None:
    """Cognito Custom Email Sender Lambda trigger handler.

    Args:
        event: Cognito Custom Email Sender trigger event
        context: Lambda context (unused)

    Returns:
        None - Custom Email Sender doesn't expect a response
    """
    trigger_source = event.get("triggerSource", "unknown")
    logger.info("Custom Email Sender invoked: %s", trigger_source)

    if trigger_source not in EMAIL_SUBJECTS:
        logger.warning("Unknown trigger source: %s", trigger_source)
        return

    request = event.get("request", {})
    encrypted_code = request.get("code", "")
    email = request.get("userAttributes", {}).get("email", "")
    if not encrypted_code or not email:
        logger.error(
            "Missing code or email: code=%s, email=%s", bool(encrypted_code), bool(email)
        )
        return

    code = decrypt_code(encrypted_code)
    message = compose_email(
        trigger_source, email, code, request.get("clientMetadata"), get_settings()
    )
    send_email(email, message)
    logger.info("Sent %s email", trigger_source)
