"""
Project and application routes.
"""

from fastapi import APIRouter, Depends, status

from app.auth.verify import current_user, require_active, require_admin
from app.infrastructure.observability.logging import get_logger
from app.models.api.project_request import (
    ApplyRequest,
    CompleteProjectRequest,
    CreateProjectRequest,
    HireRequest,
)
from app.models.api.project_response import ApplicationView, HireResponse
from app.models.api.user_response import CountResponse
from app.models.domain.project_domain import Application, Project
from app.models.domain.user_domain import PortalUser
from app.routes.errors import service_http_error
from app.services import workflow_service
from app.services.workflow_service import WorkflowError

logger = get_logger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=list[Project])
async def list_projects(user: PortalUser = Depends(require_active)):
    return await workflow_service.list_projects()


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
async def create_project(request: CreateProjectRequest, admin: PortalUser = Depends(require_admin)):
    try:
        return await workflow_service.create_project(admin, request.model_dump())
    except WorkflowError as e:
        raise service_http_error(e) from e


@router.get("/{project_id}", response_model=Project)
async def get_project(project_id: str, user: PortalUser = Depends(require_active)):
    try:
        return await workflow_service.get_project(project_id)
    except WorkflowError as e:
        raise service_http_error(e) from e


@router.post("/{project_id}/cancel", response_model=CountResponse)
async def cancel_project(project_id: str, admin: PortalUser = Depends(require_admin)):
    try:
        await workflow_service.cancel_project(admin, project_id)
    except WorkflowError as e:
        raise service_http_error(e) from e
    return CountResponse(success=True, count=1)


@router.get("/{project_id}/applications", response_model=list[ApplicationView])
async def list_applications(project_id: str, user: PortalUser = Depends(require_active)):
    try:
        rows = await workflow_service.project_applications(user, project_id)
    except WorkflowError as e:
        raise service_http_error(e) from e
    return [ApplicationView(application=a, display_status=s) for a, s in rows]


@router.post(
    "/{project_id}/applications", response_model=Application, status_code=status.HTTP_201_CREATED
)
async def apply(project_id: str, request: ApplyRequest, user: PortalUser = Depends(current_user)):
    try:
        return await workflow_service.apply_to_project(
            user, project_id, request.message, request.quote_amount
        )
    except WorkflowError as e:
        logger.info("Application refused", project_id=project_id, user_id=user.id, code=e.code)
        raise service_http_error(e) from e


@router.post("/{project_id}/hire", response_model=HireResponse)
async def hire(project_id: str, request: HireRequest, admin: PortalUser = Depends(require_admin)):
    try:
        invoice = await workflow_service.hire_applicant(
            admin, project_id, request.application_id, request.partner_id
        )
    except WorkflowError as e:
        raise service_http_error(e) from e
    return HireResponse(invoice=invoice)


@router.post("/{project_id}/complete", response_model=Project)
async def complete(
    project_id: str, request: CompleteProjectRequest, admin: PortalUser = Depends(require_admin)
):
    try:
        return await workflow_service.complete_project(
            admin, project_id, request.score, request.comment
        )
    except WorkflowError as e:
        raise service_http_error(e) from e


@router.post("/{project_id}/read", response_model=CountResponse)
async def mark_read(project_id: str, user: PortalUser = Depends(require_active)):
    try:
        count = await workflow_service.mark_project_read(user, project_id)
    except WorkflowError as e:
        raise service_http_error(e) from e
    return CountResponse(success=True, count=count)
