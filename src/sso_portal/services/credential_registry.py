"""Registry of one-time recovery credentials that have already been used."""

import hashlib
import time

from sso_portal.services.dynamodb import DynamoDBService

# Recovery links expire well within this window
CLAIM_TTL_SECONDS = 3600


def credential_hash(credential: str) -> str:
    return hashlib.sha256(credential.encode("utf-8")).hexdigest()


class ConsumedCredentialRegistry:
    """Claims a credential once across all requests and processes.

    Only the SHA-256 of the credential is stored.
    """

    def __init__(self, db: DynamoDBService) -> None:
        self._db = db

    def claim(self, credential: str) -> bool:
        """Return True for the first claim of ``credential``, False afterwards."""
        return self._db.claim_credential(
            credential_hash(credential),
            expires_at=int(time.time()) + CLAIM_TTL_SECONDS,
        )
