# app/models/api/user_request.py
from pydantic import Field

from app.models.api.base import ApiModel
from app.models.domain.navigation_domain import ViewState
from app.models.domain.user_domain import BankAccountInfo, ProjectCategory, UserStatus


class UpdateProfileRequest(ApiModel):
    """Profile fields a user may edit; unset fields are left untouched."""

    name: str | None = Field(None, min_length=1, max_length=100)
    avatar_url: str | None = None
    phone_number: str | None = None
    postal_code: str | None = None
    address: str | None = None
    n8n_profile_url: str | None = None
    invoice_number: str | None = None
    self_introduction: str | None = None
    experience_tags: list[str] | None = None
    available_categories: list[ProjectCategory] | None = None
    portfolio_url: str | None = None
    bank_account_info: BankAccountInfo | None = None


class UpdateUserStatusRequest(ApiModel):
    status: UserStatus


class ChangeViewRequest(ApiModel):
    view: ViewState
    params: dict | None = None


class ViewProfileRequest(ApiModel):
    user_id: str
    context: dict | None = None
