"""
Dashboard routes; one overview per role.
"""

from fastapi import APIRouter, Depends, Query

from app.auth.verify import require_active, require_admin
from app.models.domain.dashboard_domain import (
    AdminOverview,
    ChartRange,
    PartnerOverview,
    RankingRange,
)
from app.models.domain.user_domain import PortalUser
from app.services import dashboard_service

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/admin", response_model=AdminOverview)
async def admin_overview(
    admin: PortalUser = Depends(require_admin),
    chart_range: ChartRange = Query(default=ChartRange.MONTHLY, alias="range"),
    ranking_range: RankingRange = Query(default=RankingRange.ALL, alias="ranking"),
):
    return await dashboard_service.admin_overview(chart_range, ranking_range)


@router.get("/partner", response_model=PartnerOverview)
async def partner_overview(
    user: PortalUser = Depends(require_active),
    chart_range: ChartRange = Query(default=ChartRange.MONTHLY, alias="range"),
):
    return await dashboard_service.partner_overview(user, chart_range)
