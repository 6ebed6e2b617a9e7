"""In-flight guard against duplicate form submissions from one browser."""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from sso_portal.models.errors import ErrorCode, PortalError


class SubmissionGuard:
    """Tracks (device, action) pairs with a request outstanding.

    Usage:
        with guard.hold(device_id, "login"):
            ...
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: set[tuple[str, str]] = set()

    @contextmanager
    def hold(self, device_id: str, action: str) -> Iterator[None]:
        """Hold the slot for the duration of the block.

        Raises:
            PortalError: REQUEST_IN_PROGRESS if the slot is already held
        """
        key = (device_id, action)
        with self._lock:
            if key in self._in_flight:
                raise PortalError(ErrorCode.REQUEST_IN_PROGRESS, details={"action": action})
            self._in_flight.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(key)
