"""
Dashboard read models.
"""

from app.models.domain.user_domain import CaseInsensitiveEnum, PortalRecord


class ChartRange(CaseInsensitiveEnum):
    DAILY = "DAILY"  # last 7 days
    MONTHLY = "MONTHLY"  # last 6 months
    YEARLY = "YEARLY"  # last 3 years


class RankingRange(CaseInsensitiveEnum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    ALL = "ALL"


class SeriesPoint(PortalRecord):
    name: str
    revenue: int = 0
    count: int = 0


class PartnerRanking(PortalRecord):
    user_id: str
    name: str
    avatar_url: str | None = None
    revenue: int = 0
    order_count: int = 0


class AdminOverview(PortalRecord):
    total_revenue: int
    active_partners: int
    pending_partners: int
    active_projects: int
    revenue_series: list[SeriesPoint]
    top_revenue_partners: list[PartnerRanking]
    top_order_partners: list[PartnerRanking]


class PartnerOverview(PortalRecord):
    paid_revenue: int
    pending_revenue: int
    active_projects: int
    applied_count: int
    unread_project_messages: int
    unread_direct_messages: int
    unread_notifications: int
    revenue_series: list[SeriesPoint]
