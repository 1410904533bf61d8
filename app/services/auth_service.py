"""
Authentication bridge between Supabase Auth identities and portal profiles.

Identities and profiles are written by separate code paths (profiles are
often created by the companion registration portal), so a freshly signed-in
identity may not have a readable profile yet. Session reconciliation polls
for it with a fixed budget before giving up.
"""

import time
from typing import Any

from app.config import settings
from app.db.documents import USERS, document_store
from app.db.helpers import DatabaseError
from app.infrastructure.observability.logging import get_logger
from app.models.domain.auth_domain import (
    SessionContext,
    SessionEvent,
    SessionOutcome,
    SessionResult,
)
from app.models.domain.messaging_domain import NotificationType, Toast
from app.models.domain.navigation_domain import AUTH_VIEWS, ViewState
from app.models.domain.user_domain import PortalUser, UserRole, UserStatus, decode
from app.services import navigation_service, redis_store
from app.services.identity_provider import (
    AuthBridgeError,
    AuthErrorCode,
    IdentitySession,
    identity_provider,
)
from app.services.toast_service import clear_toasts, push_toast
from app.services.user_service import find_user_by_email
from app.utils.retry import retry_until_found

logger = get_logger(__name__)

SESSION_TTL_SECONDS = 30 * 24 * 3600

PROFILE_MISSING_MESSAGE = "ユーザー情報が見つかりません。クリエイターポータルで登録してください。"


async def register(email: str, password: str, profile_fields: dict[str, Any]) -> PortalUser:
    """
    Create an identity and its profile record.

    The profile is keyed by the provider-assigned id; caller fields win over
    the defaults (role PARTNER, status PENDING).

    Raises:
        AuthBridgeError: DUPLICATE_IDENTITY, WEAK_CREDENTIAL, ...
    """
    identity = await identity_provider.sign_up(email, password, {"full_name": profile_fields.get("name")})
    await identity_provider.update_display_profile(
        identity.user_id,
        name=profile_fields.get("name"),
        avatar_url=profile_fields.get("avatarUrl"),
    )

    record = {
        "id": identity.user_id,
        "email": email,
        "role": UserRole.PARTNER.value,
        "status": UserStatus.PENDING.value,
        "name": "",
        **profile_fields,
    }
    record["id"] = identity.user_id
    stored = await document_store.create(USERS, record)

    logger.info("Partner registered", user_id=identity.user_id)
    return decode(PortalUser, stored, USERS)


async def login(email: str, password: str) -> tuple[IdentitySession, PortalUser]:
    """
    Authenticate, then resolve the profile by e-mail.

    Raises:
        AuthBridgeError: INVALID_CREDENTIAL, PROFILE_NOT_FOUND, ACCESS_DENIED, ...
    """
    session = await identity_provider.sign_in_with_password(email, password)

    user = await find_user_by_email(email)
    if user is None:
        logger.warning("Signed-in identity has no profile", user_id=session.user_id)
        raise AuthBridgeError(AuthErrorCode.PROFILE_NOT_FOUND)

    if not user.job_portal_enabled:
        logger.warning("Profile lacks portal access", user_id=user.id)
        raise AuthBridgeError(AuthErrorCode.ACCESS_DENIED)

    return session, user


async def logout(
    user_id: str, access_token: str | None = None, session_id: str | None = None
) -> None:
    """Sign the identity out and drop the user's toasts and navigation."""
    if session_id:
        context = await load_session_context(session_id)
        context.intentional_logout = True
        context.has_initial_check = False
        await save_session_context(context)

    if access_token:
        try:
            await identity_provider.sign_out(access_token)
        except AuthBridgeError as e:
            # The local session is discarded regardless
            logger.warning("Provider sign-out failed", user_id=user_id, error=str(e))

    await clear_toasts(user_id)
    await navigation_service.reset(user_id)
    logger.info("User logged out", user_id=user_id)


async def reset_password(email: str) -> None:
    """
    Raises:
        AuthBridgeError: ACCOUNT_NOT_FOUND for an unknown e-mail
    """
    await identity_provider.send_password_reset(email)


async def load_session_context(session_id: str) -> SessionContext:
    context = await redis_store.load_model(redis_store.session_key(session_id), SessionContext)
    return context or SessionContext(session_id=session_id)


async def save_session_context(context: SessionContext) -> None:
    await redis_store.save_model(redis_store.session_key(context.session_id), context, SESSION_TTL_SECONDS)


class SessionReconciler:
    """
    Reconciles identity-provider session events with the loaded profile.

    All mutable state lives on the SessionContext handed to `handle`; the
    reconciler itself holds only its collaborators and retry budget.
    """

    def __init__(
        self,
        lookup=find_user_by_email,
        sign_out=None,
        max_attempts: int | None = None,
        delay_s: float | None = None,
        operator_user_id: str | None = None,
    ):
        self.lookup = lookup
        self.sign_out = sign_out or identity_provider.sign_out
        self.max_attempts = (
            settings.PROFILE_LOOKUP_MAX_ATTEMPTS if max_attempts is None else max_attempts
        )
        self.delay_s = settings.PROFILE_LOOKUP_DELAY_SECONDS if delay_s is None else delay_s
        self.operator_user_id = operator_user_id or settings.OPERATOR_USER_ID

    async def handle(self, context: SessionContext, event: SessionEvent) -> SessionResult:
        if event.email:
            return await self._on_authenticated(context, event)
        return self._on_signed_out(context)

    async def _on_authenticated(self, context: SessionContext, event: SessionEvent) -> SessionResult:
        try:
            if context.has_initial_check:
                user = await self.lookup(event.email)
            else:
                user = await retry_until_found(
                    lambda: self.lookup(event.email),
                    max_attempts=self.max_attempts,
                    delay_s=self.delay_s,
                    operation="profile_lookup",
                )
        except DatabaseError as e:
            logger.error("Profile lookup failed", session_id=context.session_id, error=str(e))
            # A loaded user stays signed in through lookup failures
            if context.current_user_id:
                return SessionResult(outcome=SessionOutcome.IGNORED, view=context.view)
            context.view = ViewState.LOGIN
            return SessionResult(outcome=SessionOutcome.SHOW_LOGIN, view=ViewState.LOGIN)

        if user is None:
            logger.error("Profile not found for session", session_id=context.session_id)
            if context.has_initial_check:
                return SessionResult(outcome=SessionOutcome.IGNORED, view=context.view)
            return await self._force_sign_out(context, event, "エラー", PROFILE_MISSING_MESSAGE)

        if not user.job_portal_enabled and not context.has_initial_check:
            logger.warning("Session profile lacks portal access", user_id=user.id)
            return await self._force_sign_out(
                context,
                event,
                "アクセス権限なし",
                AuthBridgeError(AuthErrorCode.ACCESS_DENIED).message,
            )

        previous_user_id = context.current_user_id
        context.current_user_id = user.id
        context.has_initial_check = True

        toast = None
        if context.view in AUTH_VIEWS:
            context.view = ViewState.DASHBOARD
            await navigation_service.change_view(user, ViewState.DASHBOARD)
            if previous_user_id is None:
                toast = await push_toast(
                    user.id, NotificationType.INFO, "ようこそ", "ダッシュボードへログインしました。"
                )

        logger.info("Session reconciled", user_id=user.id, session_id=context.session_id)
        return SessionResult(
            outcome=SessionOutcome.SIGNED_IN, user=user, view=context.view, toast=toast
        )

    async def _force_sign_out(
        self, context: SessionContext, event: SessionEvent, title: str, message: str
    ) -> SessionResult:
        context.intentional_logout = True
        context.current_user_id = None
        context.view = ViewState.LOGIN

        if event.access_token:
            try:
                await self.sign_out(event.access_token)
            except AuthBridgeError as e:
                logger.warning("Forced sign-out failed at provider", error=str(e))

        toast = Toast(
            id=f"auth-{context.session_id}",
            type=NotificationType.ERROR,
            title=title,
            message=message,
            expires_at=time.time() + settings.TOAST_TTL_SECONDS,
        )
        return SessionResult(
            outcome=SessionOutcome.SIGNED_OUT, view=ViewState.LOGIN, toast=toast, error=message
        )

    def _on_signed_out(self, context: SessionContext) -> SessionResult:
        if context.intentional_logout:
            context.intentional_logout = False
            context.current_user_id = None
            context.view = ViewState.LOGIN
            return SessionResult(outcome=SessionOutcome.SIGNED_OUT, view=ViewState.LOGIN)

        if self.operator_user_id and context.current_user_id == self.operator_user_id:
            return SessionResult(outcome=SessionOutcome.IGNORED, view=context.view)

        if context.current_user_id and context.has_initial_check:
            logger.info("Ignoring transient session loss", user_id=context.current_user_id)
            return SessionResult(outcome=SessionOutcome.IGNORED, view=context.view)

        if not context.has_initial_check:
            context.has_initial_check = True
            context.view = ViewState.LOGIN
            return SessionResult(outcome=SessionOutcome.SHOW_LOGIN, view=ViewState.LOGIN)

        return SessionResult(outcome=SessionOutcome.IGNORED, view=context.view)


session_reconciler = SessionReconciler()
