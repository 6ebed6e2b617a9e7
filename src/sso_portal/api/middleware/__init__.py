"""HTTP middleware for the portal API."""

from sso_portal.api.middleware.browser_state import BrowserStateMiddleware
from sso_portal.api.middleware.correlation import CORRELATION_ID_HEADER, CorrelationIdMiddleware

__all__ = ["BrowserStateMiddleware", "CORRELATION_ID_HEADER", "CorrelationIdMiddleware"]
