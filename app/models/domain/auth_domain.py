"""
Session reconciliation state.
"""

from enum import Enum

from pydantic import BaseModel

from app.models.domain.messaging_domain import Toast
from app.models.domain.navigation_domain import ViewState
from app.models.domain.user_domain import PortalRecord, PortalUser


class SessionContext(PortalRecord):
    """
    Per-browser-session state carried between identity events.

    has_initial_check flips once the first event after start-up resolved a
    profile (or no session); afterwards transient identity loss is ignored.
    """

    session_id: str
    current_user_id: str | None = None
    has_initial_check: bool = False
    intentional_logout: bool = False
    view: ViewState = ViewState.LOGIN


class SessionEvent(BaseModel):
    """An identity-provider session change; email is None when signed out."""

    email: str | None = None
    access_token: str | None = None


class SessionOutcome(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    SHOW_LOGIN = "SHOW_LOGIN"
    IGNORED = "IGNORED"


class SessionResult(BaseModel):
    outcome: SessionOutcome
    view: ViewState
    user: PortalUser | None = None
    toast: Toast | None = None
    error: str | None = None
