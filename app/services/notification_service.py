"""
Notification service.

Persists notification records for a recipient and, when the recipient is the
acting user, also raises a toast on their screen. Delivery is best effort: a
failed write is logged and swallowed so it never breaks the operation that
triggered it.
"""

from app.db.documents import NOTIFICATIONS, document_store, new_record_id
from app.db.subscriptions import sort_newest_first
from app.infrastructure.observability.logging import get_logger
from app.models.domain.messaging_domain import Notification, NotificationType
from app.models.domain.user_domain import decode
from app.services.toast_service import push_toast
from app.utils.dates import now_iso

logger = get_logger(__name__)


async def notify(
    user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    link: str | None = None,
    *,
    actor_id: str | None = None,
) -> None:
    """
    Record a notification for user_id.

    Args:
        user_id: Recipient
        type: Notification type (drives the icon on the client)
        title: Short title
        message: Body text
        link: Client routing target, e.g. PROJECT:<id>, DM, INVOICES
        actor_id: The locally authenticated user; a toast is raised when it equals user_id
    """
    notification = Notification(
        id=new_record_id("n"),
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        is_read=False,
        created_at=now_iso(),
        link=link,
    )

    try:
        await document_store.create(NOTIFICATIONS, notification.to_record())
        logger.info(
            "Notification recorded",
            user_id=user_id,
            notification_type=type.value,
            link=link,
        )
    except Exception as e:
        logger.error("Failed to record notification", user_id=user_id, title=title, error=str(e))

    if actor_id and actor_id == user_id:
        await push_toast(user_id, type, title, message)


async def list_notifications(user_id: str) -> list[Notification]:
    """A user's notifications, newest first."""
    rows = await document_store.query(NOTIFICATIONS, {"userId": user_id})
    return [decode(Notification, row, NOTIFICATIONS) for row in sort_newest_first(rows)]


async def unread_count(user_id: str) -> int:
    rows = await document_store.query(NOTIFICATIONS, {"userId": user_id, "isRead": False})
    return len(rows)


async def mark_read(notification_id: str, user_id: str | None = None) -> bool:
    """
    Mark one notification read.

    Returns:
        False when it does not exist or belongs to someone other than user_id
    """
    row = await document_store.get(NOTIFICATIONS, notification_id)
    if not row or (user_id and row.get("userId") != user_id):
        return False
    await document_store.update(NOTIFICATIONS, notification_id, {"isRead": True})
    return True


async def mark_all_read(user_id: str) -> int:
    """
    Mark every unread notification of the user as read.

    Returns:
        Number of notifications flipped (0 when called again)
    """
    unread = await document_store.query(NOTIFICATIONS, {"userId": user_id, "isRead": False})
    for row in unread:
        await document_store.update(NOTIFICATIONS, row["id"], {"isRead": True})

    logger.info("Notifications marked read", user_id=user_id, count=len(unread))
    return len(unread)
