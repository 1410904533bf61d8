"""
Message, notification and toast domain models.
"""

from typing import Literal

from pydantic import model_validator

from app.models.domain.user_domain import CaseInsensitiveEnum, PortalRecord

# Client-side routing targets carried on notifications
LINK_DIRECT_MESSAGES = "DM"
LINK_INVOICES = "INVOICES"
LINK_PROFILE = "PROFILE"
PROJECT_LINK_PREFIX = "PROJECT:"


def project_link(project_id: str) -> str:
    return f"{PROJECT_LINK_PREFIX}{project_id}"


class NotificationType(CaseInsensitiveEnum):
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    MESSAGE = "MESSAGE"


class Message(PortalRecord):
    """
    Project-scoped when project_id is set, otherwise a direct message to
    receiver_id. Exactly one of the two routes a message.
    """

    id: str
    project_id: str | None = None
    sender_id: str
    receiver_id: str | None = None
    content: str = ""
    created_at: str | None = None
    attachments: list[str] = []
    attachment_url: str | None = None
    attachment_name: str | None = None
    attachment_type: Literal["image", "file"] | None = None
    attachment_size: str | None = None
    is_read: bool = False

    @model_validator(mode="after")
    def _exactly_one_route(self):
        if bool(self.project_id) == bool(self.receiver_id):
            raise ValueError("a message needs exactly one of projectId or receiverId")
        return self

    @property
    def is_direct(self) -> bool:
        return not self.project_id


class Notification(PortalRecord):
    id: str
    user_id: str
    type: NotificationType = NotificationType.INFO
    title: str
    message: str
    is_read: bool = False
    created_at: str
    link: str | None = None


class Toast(PortalRecord):
    """Transient on-screen message for the acting user; never persisted in Postgres."""

    id: str
    type: NotificationType
    title: str
    message: str
    expires_at: float
