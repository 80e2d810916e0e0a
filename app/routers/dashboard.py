"""
Dashboard router — net worth overview.

Endpoints (require JWT):
  GET /dashboard/summary?period=day|week|month|year
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.dashboard import DashboardSummary, TimePeriod
from app.services import dashboard_service

router = APIRouter()


@router.get(
    "/summary",
    response_model=DashboardSummary,
    summary="Net worth summary",
)
async def get_summary(
    period: TimePeriod = Query(default="month", description="Comparison period"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Net worth in your currency, its change over the period, per-account
    breakdown into assets and liabilities, and a daily net-worth chart.
    """
    return await dashboard_service.get_summary(db, user.id, period)
