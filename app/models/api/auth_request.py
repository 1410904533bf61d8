# app/models/api/auth_request.py
from pydantic import Field

from app.models.api.base import ApiModel
from app.models.domain.user_domain import BankAccountInfo


class RegisterRequest(ApiModel):
    """Partner self-registration."""

    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    phone_number: str | None = None
    postal_code: str | None = None
    address: str | None = None
    n8n_profile_url: str | None = None
    invoice_number: str | None = None
    avatar_url: str | None = None
    bank_account_info: BankAccountInfo | None = None


class LoginRequest(ApiModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class PasswordResetRequest(ApiModel):
    email: str = Field(..., min_length=1)


class SessionEventRequest(ApiModel):
    """
    Identity session change reported by the client.

    The bearer token (if any) identifies the signed-in identity; no token
    means the provider reports no active session.
    """

    session_id: str = Field(..., min_length=1, max_length=128)
