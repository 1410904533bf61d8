# app/models/api/user_response.py
from app.models.api.base import ApiModel
from app.models.domain.messaging_domain import Notification, Toast


class NotificationListResponse(ApiModel):
    notifications: list[Notification]
    unread_count: int


class ToastListResponse(ApiModel):
    toasts: list[Toast]


class CountResponse(ApiModel):
    success: bool = True
    count: int = 0
