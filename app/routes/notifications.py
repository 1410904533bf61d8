"""
Notification and toast routes for the calling user.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.verify import current_user
from app.models.api.user_response import CountResponse, NotificationListResponse, ToastListResponse
from app.models.domain.user_domain import PortalUser
from app.services import notification_service, toast_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(user: PortalUser = Depends(current_user)):
    notifications = await notification_service.list_notifications(user.id)
    return NotificationListResponse(
        notifications=notifications,
        unread_count=sum(1 for n in notifications if not n.is_read),
    )


@router.post("/read-all", response_model=CountResponse)
async def mark_all_read(user: PortalUser = Depends(current_user)):
    count = await notification_service.mark_all_read(user.id)
    return CountResponse(success=True, count=count)


@router.post("/{notification_id}/read", response_model=CountResponse)
async def mark_read(notification_id: str, user: PortalUser = Depends(current_user)):
    if not await notification_service.mark_read(notification_id, user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return CountResponse(success=True, count=1)


@router.get("/toasts", response_model=ToastListResponse)
async def active_toasts(user: PortalUser = Depends(current_user)):
    return ToastListResponse(toasts=await toast_service.active_toasts(user.id))


@router.delete("/toasts/{toast_id}", response_model=CountResponse)
async def dismiss_toast(toast_id: str, user: PortalUser = Depends(current_user)):
    dismissed = await toast_service.dismiss_toast(user.id, toast_id)
    return CountResponse(success=dismissed, count=int(dismissed))


@router.delete("/toasts", response_model=CountResponse)
async def clear_toasts(user: PortalUser = Depends(current_user)):
    await toast_service.clear_toasts(user.id)
    return CountResponse(success=True)
