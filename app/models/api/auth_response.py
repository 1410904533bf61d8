# app/models/api/auth_response.py
from app.models.api.base import ApiModel
from app.models.domain.user_domain import PortalUser


class LoginResponse(ApiModel):
    session: dict
    user: PortalUser


class AuthErrorDetail(ApiModel):
    code: str
    message: str
    action: str | None = None
    email: str | None = None
