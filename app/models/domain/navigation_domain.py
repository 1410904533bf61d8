"""
Navigation state for the single-page client.

The client renders whatever view the server-side state names; the history
stack only grows when a profile is opened from another screen.
"""

from typing import Any

from app.models.domain.user_domain import CaseInsensitiveEnum, PortalRecord


class ViewState(CaseInsensitiveEnum):
    LOGIN = "LOGIN"
    REGISTER = "REGISTER"
    DASHBOARD = "DASHBOARD"
    PROJECTS_LIST = "PROJECTS_LIST"
    PROJECT_DETAIL = "PROJECT_DETAIL"
    INVOICES = "INVOICES"
    ADMIN_PARTNERS = "ADMIN_PARTNERS"
    DIRECT_MESSAGES = "DIRECT_MESSAGES"
    PROFILE = "PROFILE"


AUTH_VIEWS = frozenset({ViewState.LOGIN, ViewState.REGISTER})


class ViewVariant(CaseInsensitiveEnum):
    """Role-scoped screen set, chosen once per user."""

    ADMIN = "ADMIN"
    PARTNER = "PARTNER"


class HistoryFrame(PortalRecord):
    view: ViewState
    view_params: dict[str, Any] | None = None
    selected_profile_id: str | None = None


class NavigationState(PortalRecord):
    view: ViewState = ViewState.DASHBOARD
    view_params: dict[str, Any] | None = None
    selected_profile_id: str | None = None
    history: list[HistoryFrame] = []
    variant: ViewVariant = ViewVariant.PARTNER
