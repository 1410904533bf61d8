"""
User service: profile lookups and partner administration.

Profiles are keyed by document id, but sign-in resolves them by e-mail since
the companion registration portal creates them with generated ids.
"""

from typing import Any

from app.config import settings
from app.db.documents import USERS, document_store
from app.infrastructure.observability.logging import get_logger
from app.models.domain.messaging_domain import LINK_PROFILE, NotificationType
from app.models.domain.user_domain import (
    BankAccountInfo,
    InvalidRecordError,
    PortalUser,
    UserRole,
    UserStatus,
    decode,
    encode_bank_info,
)
from app.services.notification_service import notify
from app.services.toast_service import push_toast

logger = get_logger(__name__)


class UserServiceError(Exception):
    """Custom exception for user service operations."""

    def __init__(self, message: str, user_id: str | None = None, code: str = "NOT_FOUND"):
        super().__init__(message)
        self.user_id = user_id
        self.code = code


async def get_user(user_id: str) -> PortalUser | None:
    row = await document_store.get(USERS, user_id)
    return decode(PortalUser, row, USERS) if row else None


async def find_user_by_email(email: str) -> PortalUser | None:
    """First profile whose e-mail matches, or None."""
    rows = await document_store.query(USERS, {"email": email})
    if not rows:
        return None
    if len(rows) > 1:
        logger.warning("Multiple profiles share an e-mail", email=email, count=len(rows))
    return decode(PortalUser, rows[0], USERS)


async def list_users() -> list[PortalUser]:
    """All decodable profiles; undecodable ones are logged and skipped."""
    users = []
    for row in await document_store.list_all(USERS):
        try:
            users.append(decode(PortalUser, row, USERS))
        except InvalidRecordError:
            continue
    return users


async def list_partners() -> list[PortalUser]:
    return [
        user
        for user in await list_users()
        if user.role == UserRole.PARTNER or (user.job_portal_enabled and not user.is_admin)
    ]


async def get_admin_user_id() -> str | None:
    """The admin who receives partner-side notifications."""
    for user in await list_users():
        if user.is_admin:
            return user.id
    return settings.OPERATOR_USER_ID


async def update_profile(
    actor: PortalUser,
    user_id: str,
    fields: dict[str, Any],
    bank_info: BankAccountInfo | None = None,
) -> PortalUser:
    """
    Update profile attributes; bank details are stored as a JSON string.

    Raises:
        UserServiceError: FORBIDDEN when a partner edits someone else's profile
    """
    if not actor.is_admin and actor.id != user_id:
        raise UserServiceError("他のユーザーのプロフィールは編集できません。", user_id, "FORBIDDEN")

    # Role and status only change through admin actions
    updates = {k: v for k, v in fields.items() if k not in {"id", "role", "status", "email"}}
    if bank_info is not None:
        updates["bankAccountInfo"] = encode_bank_info(bank_info)

    await document_store.update(USERS, user_id, updates)
    await push_toast(actor.id, NotificationType.SUCCESS, "保存完了", "プロフィール情報を更新しました。")

    logger.info("Profile updated", user_id=user_id, actor_id=actor.id, fields=sorted(updates))

    user = await get_user(user_id)
    if user is None:
        raise UserServiceError("ユーザーが見つかりません。", user_id)
    return user


async def approve_partner(actor: PortalUser, user_id: str) -> None:
    """Activate a pending partner and open the portal to them."""
    await document_store.update(USERS, user_id, {"status": UserStatus.ACTIVE.value, "jobPortalEnabled": True})
    await push_toast(actor.id, NotificationType.SUCCESS, "処理完了", "パートナーを承認しました。")
    await notify(
        user_id,
        NotificationType.SUCCESS,
        "承認完了",
        "パートナー申請が承認されました。案件への応募が可能になります。",
        LINK_PROFILE,
        actor_id=actor.id,
    )
    logger.info("Partner approved", user_id=user_id, actor_id=actor.id)


async def reject_partner(actor: PortalUser, user_id: str) -> None:
    await document_store.update(USERS, user_id, {"status": UserStatus.REJECTED.value})
    await push_toast(actor.id, NotificationType.INFO, "処理完了", "パートナー申請を否認しました。")
    await notify(
        user_id,
        NotificationType.ERROR,
        "申請否認",
        "パートナー申請が否認されました。詳細は管理者へお問い合わせください。",
        actor_id=actor.id,
    )
    logger.info("Partner rejected", user_id=user_id, actor_id=actor.id)


async def update_user_status(actor: PortalUser, user_id: str, status: UserStatus) -> None:
    """Activate or suspend an account."""
    await document_store.update(USERS, user_id, {"status": status.value})

    if status == UserStatus.ACTIVE:
        await push_toast(actor.id, NotificationType.SUCCESS, "更新完了", "アカウントを有効化しました。")
        await notify(
            user_id,
            NotificationType.SUCCESS,
            "アカウント有効化",
            "アカウントが有効化されました。",
            actor_id=actor.id,
        )
    elif status == UserStatus.REJECTED:
        await push_toast(actor.id, NotificationType.WARNING, "更新完了", "アカウントを停止しました。")
        await notify(
            user_id,
            NotificationType.WARNING,
            "アカウント停止",
            "アカウントが停止されました。",
            actor_id=actor.id,
        )

    logger.info("User status updated", user_id=user_id, status=status.value, actor_id=actor.id)
