"""Navigation decisions returned by the hand-off orchestrator and route guards.

Entry points never navigate by side effect. They return one of these values
and the route layer turns it into a redirect or a JSON body.
"""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class HandoffState(str, Enum):
    """States of a single authentication flow."""

    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED_NO_REDIRECT = "authenticated_no_redirect"
    AUTHENTICATED_PENDING_HANDOFF = "authenticated_pending_handoff"
    HANDOFF_COMPLETE = "handoff_complete"


class NavigationKind(str, Enum):
    """How the browser should move after a decision."""

    EXTERNAL = "external"  # Full navigation to another origin
    INTERNAL = "internal"  # Navigation inside the portal
    STAY = "stay"  # Remain on the current screen


class NavigationDecision(BaseModel):
    """Where a flow sends the browser next."""

    model_config = ConfigDict(strict=True)

    kind: NavigationKind
    url: Optional[str] = Field(default=None, description="Target URL, None for STAY")
    state: HandoffState
    handoff: bool = Field(default=False, description="True if url carries a token")

    @classmethod
    def stay(cls, state: HandoffState) -> "NavigationDecision":
        return cls(kind=NavigationKind.STAY, state=state)

    @classmethod
    def internal(cls, url: str, state: HandoffState) -> "NavigationDecision":
        return cls(kind=NavigationKind.INTERNAL, url=url, state=state)

    @classmethod
    def external(
        cls, url: str, state: HandoffState, handoff: bool = False
    ) -> "NavigationDecision":
        return cls(kind=NavigationKind.EXTERNAL, url=url, state=state, handoff=handoff)


class NavigationResponse(BaseModel):
    """JSON body telling the front-end to navigate."""

    action: Literal["navigate"] = "navigate"
    url: str
    external: bool


class RegistrationResponse(BaseModel):
    """JSON body shown after a successful registration submit."""

    screen: Literal["confirm_email"] = "confirm_email"
    email: str
    redirect_after_confirm: bool
    login_url: str


class LoginScreen(BaseModel):
    """JSON body describing the login screen."""

    screen: Literal["login"] = "login"
    authenticated: bool
    redirect: Optional[str] = None
    next: Optional[str] = None
    register_url: str


class GuardDecision(BaseModel):
    """Outcome of a route guard: allow, or redirect elsewhere."""

    model_config = ConfigDict(strict=True)

    allowed: bool
    redirect_url: Optional[str] = None

    @classmethod
    def allow(cls) -> "GuardDecision":
        return cls(allowed=True)

    @classmethod
    def redirect(cls, url: str) -> "GuardDecision":
        return cls(allowed=False, redirect_url=url)
