"""
Navigation controller.

Keeps each user's current view, its parameters and the back-stack in Redis
so every open tab of the client renders the same screen. Partners that are
not Active are pinned to their profile screen.
"""

from app.infrastructure.observability.logging import get_logger
from app.models.domain.messaging_domain import NotificationType
from app.models.domain.navigation_domain import (
    HistoryFrame,
    NavigationState,
    ViewState,
    ViewVariant,
)
from app.models.domain.user_domain import PortalUser, UserStatus
from app.services import redis_store
from app.services.toast_service import push_toast

logger = get_logger(__name__)

NAVIGATION_TTL_SECONDS = 7 * 24 * 3600


def view_variant(user: PortalUser) -> ViewVariant:
    return ViewVariant.ADMIN if user.is_admin else ViewVariant.PARTNER


async def _load(user: PortalUser) -> NavigationState:
    state = await redis_store.load_model(redis_store.navigation_key(user.id), NavigationState)
    if state is None:
        return NavigationState(variant=view_variant(user))
    state.variant = view_variant(user)
    return state


async def _save(user_id: str, state: NavigationState) -> None:
    await redis_store.save_model(redis_store.navigation_key(user_id), state, NAVIGATION_TTL_SECONDS)


async def _enforce_access(user: PortalUser, state: NavigationState) -> NavigationState:
    """Pending or suspended partners only see the profile screen."""
    if not user.is_restricted or state.view == ViewState.PROFILE:
        return state

    state.view = ViewState.PROFILE
    state.view_params = None
    message = (
        "承認待ちのため、プロフィール画面のみアクセス可能です。"
        if user.status == UserStatus.PENDING
        else "アカウントが停止されているため、機能が制限されています。"
    )
    await push_toast(user.id, NotificationType.WARNING, "アクセス制限", message)
    logger.info("Restricted partner redirected to profile", user_id=user.id, status=user.status.value)
    return state


async def get_state(user: PortalUser) -> NavigationState:
    state = await _enforce_access(user, await _load(user))
    await _save(user.id, state)
    return state


async def change_view(
    user: PortalUser, view: ViewState, params: dict | None = None
) -> NavigationState:
    state = await _load(user)
    state.view = view
    state.view_params = params
    if view != ViewState.PROFILE:
        state.selected_profile_id = None

    state = await _enforce_access(user, state)
    await _save(user.id, state)
    return state


async def view_profile(
    user: PortalUser, profile_user_id: str, context: dict | None = None
) -> NavigationState:
    """Open a profile, remembering where we came from."""
    state = await _load(user)
    state.history.append(
        HistoryFrame(
            view=state.view,
            view_params={**(state.view_params or {}), **(context or {})},
            selected_profile_id=state.selected_profile_id,
        )
    )
    state.selected_profile_id = profile_user_id
    state.view = ViewState.PROFILE
    state.view_params = None

    await _save(user.id, state)
    return state


async def back(user: PortalUser) -> NavigationState:
    """Return to the previous frame, or the dashboard when there is none."""
    state = await _load(user)
    if not state.history:
        return await change_view(user, ViewState.DASHBOARD)

    frame = state.history.pop()
    state.view = frame.view
    state.view_params = frame.view_params
    state.selected_profile_id = frame.selected_profile_id

    state = await _enforce_access(user, state)
    await _save(user.id, state)
    return state


async def reset(user_id: str) -> None:
    await redis_store.delete(redis_store.navigation_key(user_id))
