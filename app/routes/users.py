"""
User and partner administration routes.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.verify import current_user, require_active, require_admin, restricted_account_error
from app.db.documents import RecordNotFoundError
from app.infrastructure.observability.logging import get_logger
from app.models.api.user_request import UpdateProfileRequest, UpdateUserStatusRequest
from app.models.api.user_response import CountResponse
from app.models.domain.user_domain import PortalUser
from app.routes.errors import service_http_error
from app.services import user_service
from app.services.user_service import UserServiceError

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _public_view(user: PortalUser, viewer: PortalUser) -> PortalUser:
    """Billing details are visible to admins and the owner only."""
    if viewer.is_admin or viewer.id == user.id:
        return user
    return user.model_copy(update={"bank_account_info": None, "invoice_number": None})


@router.get("", response_model=list[PortalUser])
async def list_users(admin: PortalUser = Depends(require_admin)):
    return await user_service.list_users()


@router.get("/partners", response_model=list[PortalUser])
async def list_partners(user: PortalUser = Depends(require_active)):
    return [_public_view(p, user) for p in await user_service.list_partners()]


@router.get("/{user_id}", response_model=PortalUser)
async def get_user(user_id: str, user: PortalUser = Depends(current_user)):
    if user.is_restricted and user_id != user.id:
        raise restricted_account_error()
    profile = await user_service.get_user(user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User profile not found")
    return _public_view(profile, user)


@router.patch("/{user_id}", response_model=PortalUser)
async def update_profile(
    user_id: str, request: UpdateProfileRequest, user: PortalUser = Depends(current_user)
):
    fields = request.model_dump(by_alias=True, exclude_none=True, exclude={"bank_account_info"})
    try:
        return await user_service.update_profile(user, user_id, fields, request.bank_account_info)
    except UserServiceError as e:
        raise service_http_error(e) from e
    except RecordNotFoundError as e:
        logger.error("Profile update failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User profile not found")


@router.post("/{user_id}/approve", response_model=CountResponse)
async def approve_partner(user_id: str, admin: PortalUser = Depends(require_admin)):
    try:
        await user_service.approve_partner(admin, user_id)
    except RecordNotFoundError as e:
        logger.error("Partner approval failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User profile not found")
    return CountResponse(success=True, count=1)


@router.post("/{user_id}/reject", response_model=CountResponse)
async def reject_partner(user_id: str, admin: PortalUser = Depends(require_admin)):
    try:
        await user_service.reject_partner(admin, user_id)
    except RecordNotFoundError as e:
        logger.error("Partner rejection failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User profile not found")
    return CountResponse(success=True, count=1)


@router.put("/{user_id}/status", response_model=CountResponse)
async def update_user_status(
    user_id: str, request: UpdateUserStatusRequest, admin: PortalUser = Depends(require_admin)
):
    try:
        await user_service.update_user_status(admin, user_id, request.status)
    except RecordNotFoundError as e:
        logger.error("User status update failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User profile not found")
    return CountResponse(success=True, count=1)
