"""Row models for the portal's data tables (profiles, apps, login stats).

The tables are maintained by the admin console; the portal core only reads
profiles and apps, and appends login statistics.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ProfileRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Profile(BaseModel):
    """A row of the profiles table, keyed by provider user id."""

    id: str
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: ProfileRole = ProfileRole.USER
    organisation: Optional[str] = None
    title: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ProfileRole.ADMIN


class ClientApp(BaseModel):
    """A row of the apps table: a client application the portal can launch."""

    id: str
    name: str
    slug: str
    url: str = Field(..., description="Base URL of the application, no trailing slash")
    icon: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    callback_path: Optional[str] = Field(
        default=None,
        description="SSO callback path; '' means the app has no SSO callback",
    )


class LoginStat(BaseModel):
    """A row of the login_stats table."""

    id: str
    user_id: str
    app_id: Optional[str] = None
    logged_in_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
