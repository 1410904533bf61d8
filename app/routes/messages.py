"""
Messaging routes: project threads and direct messages.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.verify import require_active
from app.infrastructure.observability.logging import get_logger
from app.models.api.messaging_request import (
    AttachmentPayload,
    DirectMessageRequest,
    MarkConversationReadRequest,
    ProjectMessageRequest,
)
from app.models.api.user_response import CountResponse
from app.models.domain.messaging_domain import Message
from app.models.domain.user_domain import PortalUser
from app.routes.errors import service_http_error
from app.services import messaging_service
from app.services.blob_storage import StorageError
from app.services.messaging_service import Attachment, MessagingError

logger = get_logger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


def _attachment(payload: AttachmentPayload | None) -> Attachment | None:
    if payload is None:
        return None
    try:
        data = payload.decoded()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return Attachment(filename=payload.filename, content_type=payload.content_type, data=data)


def _require_content(content: str, payload: AttachmentPayload | None) -> None:
    if not content.strip() and payload is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Message needs content or an attachment"
        )


@router.get("/projects/{project_id}", response_model=list[Message])
async def project_thread(project_id: str, user: PortalUser = Depends(require_active)):
    try:
        return await messaging_service.project_messages(user, project_id)
    except MessagingError as e:
        raise service_http_error(e) from e


@router.post(
    "/projects/{project_id}", response_model=Message, status_code=status.HTTP_201_CREATED
)
async def send_project_message(
    project_id: str, request: ProjectMessageRequest, user: PortalUser = Depends(require_active)
):
    _require_content(request.content, request.attachment)
    try:
        return await messaging_service.send_project_message(
            user, project_id, request.content, _attachment(request.attachment)
        )
    except MessagingError as e:
        raise service_http_error(e) from e
    except StorageError as e:
        logger.error("Attachment upload failed", project_id=project_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Attachment upload failed"
        ) from e


@router.get("/direct/{other_user_id}", response_model=list[Message])
async def direct_thread(other_user_id: str, user: PortalUser = Depends(require_active)):
    return await messaging_service.conversation(user.id, other_user_id)


@router.post("/direct", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_direct_message(
    request: DirectMessageRequest, user: PortalUser = Depends(require_active)
):
    _require_content(request.content, request.attachment)
    try:
        return await messaging_service.send_direct_message(
            user, request.receiver_id, request.content, _attachment(request.attachment)
        )
    except StorageError as e:
        logger.error("Attachment upload failed", receiver_id=request.receiver_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Attachment upload failed"
        ) from e


@router.post("/direct/read", response_model=CountResponse)
async def mark_conversation_read(
    request: MarkConversationReadRequest, user: PortalUser = Depends(require_active)
):
    """Read receipt for messages the given sender sent to the caller."""
    count = await messaging_service.mark_conversation_read(request.sender_id, user.id)
    return CountResponse(success=True, count=count)
