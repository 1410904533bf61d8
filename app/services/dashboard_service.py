"""
Dashboard aggregates for admins and partners.

All figures are computed from full collection snapshots; revenue only counts
Paid invoices, bucketed by their issue date.
"""

import calendar
from datetime import date, timedelta

from app.db.documents import APPLICATIONS, INVOICES, MESSAGES, PROJECTS, document_store
from app.infrastructure.observability.logging import get_logger
from app.models.domain.dashboard_domain import (
    AdminOverview,
    ChartRange,
    PartnerOverview,
    PartnerRanking,
    RankingRange,
    SeriesPoint,
)
from app.models.domain.project_domain import (
    Application,
    ApplicationStatus,
    Invoice,
    InvoiceStatus,
    Project,
    ProjectStatus,
)
from app.models.domain.user_domain import InvalidRecordError, PortalRecord, PortalUser, UserStatus, decode
from app.services.notification_service import unread_count
from app.services.user_service import list_partners
from app.utils.dates import today

logger = get_logger(__name__)

TOP_PARTNERS = 5


async def _load(model: type[PortalRecord], collection: str) -> list:
    records = []
    for row in await document_store.list_all(collection):
        try:
            records.append(decode(model, row, collection))
        except InvalidRecordError:
            continue
    return records


def _shift_months(day: date, months: int) -> date:
    """Same day-of-month `months` earlier, clamped to the month length."""
    index = day.year * 12 + (day.month - 1) - months
    year, month = index // 12, index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def revenue_series(invoices: list[Invoice], chart_range: ChartRange, now: date) -> list[SeriesPoint]:
    """Paid revenue per bucket, oldest bucket first."""
    paid = [inv for inv in invoices if inv.status == InvoiceStatus.PAID]

    def point(name: str, prefix: str) -> SeriesPoint:
        relevant = [inv for inv in paid if inv.issue_date.startswith(prefix)]
        return SeriesPoint(name=name, revenue=sum(inv.amount for inv in relevant), count=len(relevant))

    if chart_range == ChartRange.DAILY:
        days = [now - timedelta(days=i) for i in range(6, -1, -1)]
        return [point(f"{d.month}/{d.day}", d.isoformat()) for d in days]
    if chart_range == ChartRange.MONTHLY:
        months = [_shift_months(now.replace(day=1), i) for i in range(5, -1, -1)]
        return [point(f"{m.month}月", f"{m.year}-{m.month:02d}") for m in months]
    return [point(f"{year}年", str(year)) for year in range(now.year - 2, now.year + 1)]


def _ranking_start(ranking_range: RankingRange, now: date) -> str:
    if ranking_range == RankingRange.WEEKLY:
        return (now - timedelta(days=7)).isoformat()
    if ranking_range == RankingRange.MONTHLY:
        return _shift_months(now, 1).isoformat()
    if ranking_range == RankingRange.YEARLY:
        return _shift_months(now, 12).isoformat()
    return ""


def partner_rankings(
    partners: list[PortalUser],
    invoices: list[Invoice],
    projects: list[Project],
    ranking_range: RankingRange,
    now: date,
) -> list[PartnerRanking]:
    """Revenue and order counts per non-pending partner within the range."""
    start = _ranking_start(ranking_range, now)
    rankings = []
    for user in partners:
        if user.status == UserStatus.PENDING:
            continue
        revenue = sum(
            inv.amount
            for inv in invoices
            if inv.user_id == user.id
            and inv.status == InvoiceStatus.PAID
            and inv.issue_date >= start
        )
        orders = sum(
            1
            for p in projects
            if p.assigned_to_user_id == user.id and (p.created_at or "") >= start
        )
        rankings.append(
            PartnerRanking(
                user_id=user.id,
                name=user.name,
                avatar_url=user.avatar_url,
                revenue=revenue,
                order_count=orders,
            )
        )
    return rankings


async def admin_overview(
    chart_range: ChartRange = ChartRange.MONTHLY,
    ranking_range: RankingRange = RankingRange.ALL,
) -> AdminOverview:
    now = today()
    partners = await list_partners()
    invoices = await _load(Invoice, INVOICES)
    projects = await _load(Project, PROJECTS)

    rankings = partner_rankings(partners, invoices, projects, ranking_range, now)

    return AdminOverview(
        total_revenue=sum(i.amount for i in invoices if i.status == InvoiceStatus.PAID),
        active_partners=sum(1 for u in partners if u.status == UserStatus.ACTIVE),
        pending_partners=sum(1 for u in partners if u.status == UserStatus.PENDING),
        active_projects=sum(1 for p in projects if p.status == ProjectStatus.IN_PROGRESS),
        revenue_series=revenue_series(invoices, chart_range, now),
        top_revenue_partners=sorted(rankings, key=lambda r: r.revenue, reverse=True)[:TOP_PARTNERS],
        top_order_partners=sorted(rankings, key=lambda r: r.order_count, reverse=True)[:TOP_PARTNERS],
    )


async def partner_overview(
    user: PortalUser, chart_range: ChartRange = ChartRange.MONTHLY
) -> PartnerOverview:
    invoices = [
        decode(Invoice, row, INVOICES)
        for row in await document_store.query(INVOICES, {"userId": user.id})
    ]
    projects = [
        decode(Project, row, PROJECTS)
        for row in await document_store.query(PROJECTS, {"assignedToUserId": user.id})
    ]
    applications = [
        decode(Application, row, APPLICATIONS)
        for row in await document_store.query(APPLICATIONS, {"userId": user.id})
    ]
    own_project_ids = {p.id for p in projects}

    unread_project = 0
    unread_direct = 0
    for row in await document_store.query(MESSAGES, {"isRead": False}):
        if row.get("senderId") == user.id:
            continue
        if row.get("projectId"):
            if row["projectId"] in own_project_ids:
                unread_project += 1
        elif row.get("receiverId") == user.id:
            unread_direct += 1

    return PartnerOverview(
        paid_revenue=sum(i.amount for i in invoices if i.status == InvoiceStatus.PAID),
        pending_revenue=sum(i.amount for i in invoices if i.status != InvoiceStatus.PAID),
        active_projects=sum(1 for p in projects if p.status == ProjectStatus.IN_PROGRESS),
        applied_count=sum(1 for a in applications if a.status == ApplicationStatus.APPLIED),
        unread_project_messages=unread_project,
        unread_direct_messages=unread_direct,
        unread_notifications=await unread_count(user.id),
        revenue_series=revenue_series(invoices, chart_range, today()),
    )
