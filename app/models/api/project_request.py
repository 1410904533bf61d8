# app/models/api/project_request.py
from pydantic import Field

from app.models.api.base import ApiModel
from app.models.domain.project_domain import InvoiceStatus
from app.models.domain.user_domain import ProjectCategory


class CreateProjectRequest(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    category: ProjectCategory
    budget: int = Field(..., ge=0)
    required_skills: list[str] = []


class ApplyRequest(ApiModel):
    message: str = ""
    quote_amount: int = Field(0, ge=0)


class HireRequest(ApiModel):
    application_id: str
    partner_id: str | None = None


class CompleteProjectRequest(ApiModel):
    score: int = Field(..., ge=1, le=5)
    comment: str = ""


class IssueInvoiceRequest(ApiModel):
    project_id: str
    amount: int = Field(..., ge=0)
    invoice_id: str | None = None


class InvoiceStatusRequest(ApiModel):
    status: InvoiceStatus
