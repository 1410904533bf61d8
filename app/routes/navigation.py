"""
Navigation routes: current view, profile drill-down and back.
"""

from fastapi import APIRouter, Depends

from app.auth.verify import current_user
from app.models.api.user_request import ChangeViewRequest, ViewProfileRequest
from app.models.domain.navigation_domain import NavigationState
from app.models.domain.user_domain import PortalUser
from app.services import navigation_service

router = APIRouter(prefix="/navigation", tags=["navigation"])


@router.get("", response_model=NavigationState)
async def get_navigation(user: PortalUser = Depends(current_user)):
    return await navigation_service.get_state(user)


@router.post("/view", response_model=NavigationState)
async def change_view(request: ChangeViewRequest, user: PortalUser = Depends(current_user)):
    return await navigation_service.change_view(user, request.view, request.params)


@router.post("/profile", response_model=NavigationState)
async def view_profile(request: ViewProfileRequest, user: PortalUser = Depends(current_user)):
    return await navigation_service.view_profile(user, request.user_id, request.context)


@router.post("/back", response_model=NavigationState)
async def back(user: PortalUser = Depends(current_user)):
    return await navigation_service.back(user)
