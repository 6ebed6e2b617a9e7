"""JWT claim reading for tokens issued by the Session Provider.

The portal never verifies signatures itself: a token is only trusted after the
provider has accepted it (get_user). These helpers read claims such as
``exp`` and ``sub`` from a token the provider already validated.
"""

import base64
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def decode_jwt_payload(token: str | None) -> dict[str, Any] | None:
    """Decode the payload segment of a JWT without verification.

    Args:
        token: Compact-serialized JWT

    Returns:
        Claims dict, or None if the token is not a decodable JWT
    """
    if not token:
        return None

    parts = token.split(".")
    if len(parts) != 3:
        logger.debug("Invalid JWT format: expected 3 parts, got %d", len(parts))
        return None

    payload_b64 = parts[1]
    # base64url payloads are unpadded
    payload_b64 += "=" * (-len(payload_b64) % 4)

    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning("Failed to decode JWT payload: %s", type(e).__name__)
        return None

    return payload if isinstance(payload, dict) else None


def token_expiry(token: str | None) -> int | None:
    """Return the ``exp`` claim of a JWT as epoch seconds, if present."""
    payload = decode_jwt_payload(token)
    if not payload:
        return None
    exp = payload.get("exp")
    if isinstance(exp, (int, float)):
        return int(exp)
    return None
