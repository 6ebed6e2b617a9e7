"""Read access to the profiles and apps tables."""

from typing import Optional

from sso_portal.models.directory import ClientApp, Profile
from sso_portal.services.dynamodb import DynamoDBService


class DirectoryService:
    """Typed lookups over profiles and apps."""

    def __init__(self, db: DynamoDBService) -> None:
        self._db = db

    def get_profile(self, user_id: str) -> Optional[Profile]:
        item = self._db.get_profile(user_id)
        return Profile.model_validate(item) if item else None

    def list_apps(self) -> list[ClientApp]:
        """Active apps ordered by name, as shown in the launcher."""
        return [ClientApp.model_validate(item) for item in self._db.list_active_apps()]

    def get_app(self, slug: str) -> Optional[ClientApp]:
        """Active app by slug; inactive apps are treated as missing."""
        item = self._db.get_app_by_slug(slug)
        if not item:
            return None
        app = ClientApp.model_validate(item)
        return app if app.is_active else None
