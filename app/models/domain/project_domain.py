"""
Project / Application / Invoice domain models.

Lifecycle:
    Project:     RECRUITING --hire--> IN_PROGRESS --complete--> COMPLETED
                 (CANCELLED reachable by an admin from any non-terminal state)
    Application: APPLIED --hire--> HIRED, every other APPLIED row --> REJECTED
    Invoice:     UNBILLED (stub at hire) --issue--> BILLED --confirm payment--> PAID
"""

from pydantic import Field, model_validator

from app.models.domain.user_domain import CaseInsensitiveEnum, PortalRecord, ProjectCategory

UNISSUED_DATE = "-"
TAX_RATE_PERCENT = 10


class ProjectStatus(CaseInsensitiveEnum):
    DRAFT = "DRAFT"
    RECRUITING = "RECRUITING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ASSIGNED_STATUSES = frozenset({ProjectStatus.IN_PROGRESS, ProjectStatus.COMPLETED})


class ApplicationStatus(CaseInsensitiveEnum):
    APPLIED = "APPLIED"
    REJECTED = "REJECTED"
    HIRED = "HIRED"


class InvoiceStatus(CaseInsensitiveEnum):
    UNBILLED = "UNBILLED"
    BILLED = "BILLED"
    PAID = "PAID"


class Review(PortalRecord):
    score: int = Field(..., ge=1, le=5)
    comment: str = ""
    created_at: str | None = None


class Project(PortalRecord):
    id: str
    title: str
    description: str = ""
    category: ProjectCategory
    budget: int = Field(..., ge=0)
    required_skills: list[str] = []
    status: ProjectStatus = ProjectStatus.RECRUITING
    created_at: str | None = None
    assigned_to_user_id: str | None = None
    review: Review | None = None

    @model_validator(mode="after")
    def _assignment_matches_status(self):
        assigned = bool(self.assigned_to_user_id)
        if assigned != (self.status in ASSIGNED_STATUSES):
            raise ValueError(
                f"assignedToUserId must be set exactly when status is IN_PROGRESS or "
                f"COMPLETED (status={self.status.value}, assigned={assigned})"
            )
        return self


class Application(PortalRecord):
    id: str
    project_id: str
    user_id: str
    status: ApplicationStatus = ApplicationStatus.APPLIED
    message: str = ""
    quote_amount: int = 0
    available_start_date: str | None = None
    created_at: str | None = None
    is_read: bool = False

    def display_status(self, project: Project) -> ApplicationStatus:
        """Effective status; rows on a project that stopped recruiting read as rejected."""
        if self.status == ApplicationStatus.HIRED:
            return ApplicationStatus.HIRED
        if self.status == ApplicationStatus.REJECTED or project.status != ProjectStatus.RECRUITING:
            return ApplicationStatus.REJECTED
        return ApplicationStatus.APPLIED


class Invoice(PortalRecord):
    id: str
    user_id: str
    project_id: str
    amount: int = Field(..., ge=0)
    issue_date: str = UNISSUED_DATE
    status: InvoiceStatus = InvoiceStatus.UNBILLED
    pdf_url: str | None = None


class InvoiceTotals(PortalRecord):
    sub_total: int
    tax_amount: int
    total_amount: int


def compute_invoice_totals(amount: int) -> InvoiceTotals:
    """
    Tax-inclusive totals, rounded down.

    Integer arithmetic so the result is the exact floor of amount * 1.10.
    """
    if amount < 0:
        raise ValueError("amount must be >= 0")
    return InvoiceTotals(
        sub_total=amount,
        tax_amount=amount * TAX_RATE_PERCENT // 100,
        total_amount=amount * (100 + TAX_RATE_PERCENT) // 100,
    )
