"""
Project-scoped and direct messaging.

A message is routed either to a project (visible to the admin and the
assigned partner) or to a single receiver. Attachments are uploaded to blob
storage before the message record is written.
"""

from dataclasses import dataclass

from app.db.documents import MESSAGES, PROJECTS, document_store, new_record_id
from app.infrastructure.observability.logging import get_logger
from app.models.domain.messaging_domain import (
    LINK_DIRECT_MESSAGES,
    Message,
    NotificationType,
    project_link,
)
from app.models.domain.project_domain import Project
from app.models.domain.user_domain import InvalidRecordError, PortalUser, decode
from app.services import blob_storage
from app.services.notification_service import notify
from app.services.user_service import get_admin_user_id
from app.utils.dates import now_iso

logger = get_logger(__name__)

KIB = 1024
MIB = 1024 * 1024


class MessagingError(Exception):
    """Custom exception for messaging operations."""

    def __init__(self, message: str, code: str = "NOT_FOUND"):
        super().__init__(message)
        self.code = code


@dataclass
class Attachment:
    filename: str
    content_type: str
    data: bytes


def human_size(size_bytes: int) -> str:
    """1.5 KB under one MiB, 2.3 MB above."""
    if size_bytes < MIB:
        return f"{size_bytes / KIB:.1f} KB"
    return f"{size_bytes / MIB:.1f} MB"


def attachment_kind(content_type: str) -> str:
    return "image" if content_type.startswith("image/") else "file"


async def _attachment_fields(message_id: str, attachment: Attachment | None) -> dict:
    if attachment is None:
        return {}
    url = await blob_storage.upload(
        blob_storage.attachment_path(message_id, attachment.filename),
        attachment.data,
        attachment.content_type,
    )
    return {
        "attachment_url": url,
        "attachment_name": attachment.filename,
        "attachment_type": attachment_kind(attachment.content_type),
        "attachment_size": human_size(len(attachment.data)),
    }


def _decode_messages(rows: list[dict]) -> list[Message]:
    messages = []
    for row in rows:
        try:
            messages.append(decode(Message, row, MESSAGES))
        except InvalidRecordError:
            continue
    return sorted(messages, key=lambda m: m.created_at or "")


async def send_project_message(
    actor: PortalUser, project_id: str, content: str, attachment: Attachment | None = None
) -> Message:
    """
    Post into a project's thread and notify the counterparty.

    The admin's messages go to the assigned partner; a partner's go to the admin.
    """
    row = await document_store.get(PROJECTS, project_id)
    if not row:
        raise MessagingError("案件情報が見つかりません。")
    project = decode(Project, row, PROJECTS)

    if not actor.is_admin and project.assigned_to_user_id != actor.id:
        raise MessagingError("この案件のメッセージには参加できません。", "FORBIDDEN")

    message_id = new_record_id("m")
    message = Message(
        id=message_id,
        project_id=project_id,
        sender_id=actor.id,
        content=content,
        created_at=now_iso(),
        is_read=False,
        **await _attachment_fields(message_id, attachment),
    )
    await document_store.create(MESSAGES, message.to_record())

    if actor.is_admin:
        receiver_id = project.assigned_to_user_id
    else:
        receiver_id = await get_admin_user_id()

    if receiver_id:
        body = (
            f"案件「{project.title}」でメッセージが届きました。"
            if content
            else f"案件「{project.title}」でファイルが共有されました。"
        )
        await notify(
            receiver_id,
            NotificationType.MESSAGE,
            "新着プロジェクトメッセージ",
            body,
            project_link(project_id),
            actor_id=actor.id,
        )

    logger.info(
        "Project message sent",
        message_id=message_id,
        project_id=project_id,
        sender_id=actor.id,
        has_attachment=attachment is not None,
    )
    return message


async def send_direct_message(
    actor: PortalUser, receiver_id: str, content: str, attachment: Attachment | None = None
) -> Message:
    message_id = new_record_id("dm")
    message = Message(
        id=message_id,
        sender_id=actor.id,
        receiver_id=receiver_id,
        content=content,
        created_at=now_iso(),
        is_read=False,
        **await _attachment_fields(message_id, attachment),
    )
    await document_store.create(MESSAGES, message.to_record())

    body = (
        f"{actor.name} さんからメッセージが届きました。"
        if content
        else f"{actor.name} さんからファイルが届きました。"
    )
    await notify(
        receiver_id,
        NotificationType.MESSAGE,
        "新着メッセージ",
        body,
        LINK_DIRECT_MESSAGES,
        actor_id=actor.id,
    )

    logger.info("Direct message sent", message_id=message_id, sender_id=actor.id, receiver_id=receiver_id)
    return message


async def mark_conversation_read(sender_id: str, receiver_id: str) -> int:
    """Read receipt for every unread DM from sender_id to receiver_id."""
    unread = await document_store.query(
        MESSAGES, {"senderId": sender_id, "receiverId": receiver_id, "isRead": False}
    )
    for row in unread:
        await document_store.update(MESSAGES, row["id"], {"isRead": True})
    return len(unread)


async def project_messages(actor: PortalUser, project_id: str) -> list[Message]:
    row = await document_store.get(PROJECTS, project_id)
    if not row:
        raise MessagingError("案件情報が見つかりません。")
    project = decode(Project, row, PROJECTS)
    if not actor.is_admin and project.assigned_to_user_id != actor.id:
        raise MessagingError("この案件のメッセージには参加できません。", "FORBIDDEN")
    return _decode_messages(await document_store.query(MESSAGES, {"projectId": project_id}))


async def conversation(user_id: str, other_user_id: str) -> list[Message]:
    """Direct messages between two users, oldest first."""
    sent = await document_store.query(MESSAGES, {"senderId": user_id, "receiverId": other_user_id})
    received = await document_store.query(MESSAGES, {"senderId": other_user_id, "receiverId": user_id})
    return _decode_messages(sent + received)
