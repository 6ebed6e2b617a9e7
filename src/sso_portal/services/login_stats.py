"""Login statistics recorder, subscribed to the ambient session context."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sso_portal.models.auth import ProviderSession, SessionEvent
from sso_portal.models.directory import LoginStat
from sso_portal.services.dynamodb import DynamoDBService


class LoginStatsRecorder:
    """Appends a login_stats row for every SIGNED_IN event.

    One recorder is created per request, carrying that request's client
    address and user agent.
    """

    def __init__(
        self,
        db: DynamoDBService,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        app_id: Optional[str] = None,
    ) -> None:
        self._db = db
        self._ip_address = ip_address
        self._user_agent = user_agent
        self._app_id = app_id

    def __call__(self, event: SessionEvent, session: Optional[ProviderSession]) -> None:
        if event != SessionEvent.SIGNED_IN or session is None:
            return

        stat = LoginStat(
            id=str(uuid.uuid4()),
            user_id=session.user.id,
            app_id=self._app_id,
            logged_in_at=datetime.now(timezone.utc),
            ip_address=self._ip_address,
            user_agent=self._user_agent,
        )
        item = stat.model_dump(mode="json", exclude_none=True)
        self._db.create_login_stat(item)
