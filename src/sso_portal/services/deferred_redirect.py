"""Single-slot store for a redirect that must survive email confirmation.

Registration cannot hand off immediately because no session exists until the
user confirms their email, possibly in another tab. The allowed redirect is
parked in the browser's storage under one well-known key and picked up by
the confirmation callback.
"""

from typing import Optional

from sso_portal.services.client_storage import ClientStorage
from sso_portal.services.origin_allowlist import OriginAllowList, normalize_origin
from sso_portal.utils.logging import get_logger, log_redirect_rejected

DEFERRED_REDIRECT_KEY = "sso_redirect_after_confirm"

logger = get_logger(__name__)


class DeferredRedirectStore:
    """Deferred redirect slot in one browser's storage."""

    def __init__(self, storage: ClientStorage, allowlist: OriginAllowList) -> None:
        self._storage = storage
        self._allowlist = allowlist

    def save(self, redirect: Optional[str]) -> bool:
        """Park ``redirect`` if it is allowed.

        Returns:
            True if written. A disallowed or absent redirect writes nothing.
        """
        if not self._allowlist.is_allowed(redirect):
            return False
        self._storage.set(DEFERRED_REDIRECT_KEY, redirect)  # type: ignore[arg-type]
        return True

    def consume(self) -> Optional[str]:
        """Read and delete the stored redirect.

        The delete is atomic in the browser-state table: of two requests
        consuming at once only one gets the value.

        The value is checked against the allow-list again on the way out; a
        stored value that no longer passes is deleted and never returned.
        """
        value = self._storage.pop(DEFERRED_REDIRECT_KEY)
        if value is None:
            return None
        if not self._allowlist.is_allowed(value):
            log_redirect_rejected(logger, "deferred_redirect", normalize_origin(value))
            return None
        return value
