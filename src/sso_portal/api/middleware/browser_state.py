"""Per-browser storage middleware.

Identifies the browser by an HttpOnly device cookie, loads its ClientStorage
from DynamoDB into ``request.state.storage`` before the route runs, and
afterwards writes back the keys the route set or removed. A browser without a
valid cookie gets a new device id and empty storage.
"""

import re
import secrets

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from sso_portal.config import get_settings
from sso_portal.services.client_storage import ClientStorage
from sso_portal.services.dynamodb import get_dynamodb_service
from sso_portal.utils.logging import get_logger

logger = get_logger(__name__)

_DEVICE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{32,128}$")


def new_device_id() -> str:
    return secrets.token_urlsafe(32)


class BrowserStateMiddleware(BaseHTTPMiddleware):
    """Loads and saves the calling browser's ClientStorage."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        settings = get_settings()
        db = get_dynamodb_service()

        device_id = request.cookies.get(settings.device_cookie_name)
        is_new = device_id is None or not _DEVICE_ID_PATTERN.match(device_id)
        if is_new:
            device_id = new_device_id()
            data: dict[str, str] = {}
        else:
            data = await run_in_threadpool(db.get_browser_storage, device_id) or {}

        storage = ClientStorage(device_id, data, backend=db)
        request.state.storage = storage

        response = await call_next(request)

        if storage.dirty:
            changes = storage.pending_changes()
            await run_in_threadpool(db.apply_browser_storage_changes, device_id, changes)
            storage.mark_saved()
            logger.debug("Saved browser storage (%d keys changed)", len(changes))

        if is_new:
            response.set_cookie(
                key=settings.device_cookie_name,
                value=device_id,
                max_age=settings.device_cookie_max_age,
                httponly=True,
                secure=settings.device_cookie_secure,
                samesite="lax",
            )
        return response
