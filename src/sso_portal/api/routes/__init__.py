"""API routes package.

Routers are organized by flow:

- auth: login, registration, OAuth, callback and logout
- recovery: password recovery bootstrap and update
- apps: launcher, current user and admin check

All routers are registered in main.py.
"""

from sso_portal.api.routes.apps import router as apps_router
from sso_portal.api.routes.auth import router as auth_router
from sso_portal.api.routes.recovery import router as recovery_router

__all__ = ["apps_router", "auth_router", "recovery_router"]
