# app/models/api/messaging_request.py
import base64
import binascii

from pydantic import Field, field_validator

from app.models.api.base import ApiModel

MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024


class AttachmentPayload(ApiModel):
    """File sent inline as base64."""

    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = "application/octet-stream"
    data: str

    @field_validator("filename")
    @classmethod
    def _no_path_separators(cls, v: str) -> str:
        if "/" in v or "\\" in v:
            raise ValueError("filename must not contain path separators")
        return v

    def decoded(self) -> bytes:
        try:
            raw = base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("attachment data is not valid base64") from e
        if len(raw) > MAX_ATTACHMENT_BYTES:
            raise ValueError("attachment is too large")
        return raw


class ProjectMessageRequest(ApiModel):
    content: str = ""
    attachment: AttachmentPayload | None = None


class DirectMessageRequest(ApiModel):
    receiver_id: str
    content: str = ""
    attachment: AttachmentPayload | None = None


class MarkConversationReadRequest(ApiModel):
    sender_id: str
