# app/models/api/project_response.py
from app.models.api.base import ApiModel
from app.models.domain.project_domain import Application, ApplicationStatus, Invoice


class ApplicationView(ApiModel):
    """An application with the status the client should display."""

    application: Application
    display_status: ApplicationStatus


class HireResponse(ApiModel):
    success: bool = True
    invoice: Invoice
