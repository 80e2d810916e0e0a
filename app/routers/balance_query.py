"""
Balance query router — daily balances over a date range.

Endpoints (require JWT, scoped to the authenticated user):
  GET /balance-query/balances?account_ids=a,b&start_date=&end_date=
  GET /balance-query/all-balances?start_date=&end_date=

Dates are strict YYYY-MM-DD and both ends are inclusive.
"""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dates import parse_iso_date
from app.dependencies import get_current_user
from app.exceptions import BadRequestError
from app.models.user import User
from app.schemas.balance_query import BalanceQueryPerDateResult
from app.services import balance_query_service

router = APIRouter()


def _parse_range(start_date: str, end_date: str) -> tuple[date, date]:
    try:
        start = parse_iso_date(start_date)
        end = parse_iso_date(end_date)
    except ValueError as e:
        raise BadRequestError(str(e)) from e
    if start > end:
        raise BadRequestError("start_date must be on or before end_date")
    return start, end


def _parse_account_ids(raw: str) -> list[uuid.UUID]:
    parts = [part.strip() for part in raw.split(",") if part.strip()]
    if not parts:
        raise BadRequestError("account_ids must not be empty")
    try:
        return [uuid.UUID(part) for part in parts]
    except ValueError as e:
        raise BadRequestError(f"Invalid account id in: {raw}") from e


@router.get(
    "/balances",
    response_model=list[BalanceQueryPerDateResult],
    summary="Daily balances for specific accounts",
)
async def get_balances(
    account_ids: str = Query(..., description="Comma-separated account ids"),
    start_date: str = Query(..., description="YYYY-MM-DD"),
    end_date: str = Query(..., description="YYYY-MM-DD"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    One entry per day with each account's balances on that day.

    Days without a snapshot reuse the most recent earlier one. Manual
    accounts are rejected with 400.
    """
    ids = _parse_account_ids(account_ids)
    start, end = _parse_range(start_date, end_date)
    return await balance_query_service.get_balances_for_date_range(db, ids, start, end, user.id)


@router.get(
    "/all-balances",
    response_model=list[BalanceQueryPerDateResult],
    summary="Daily balances for all linked accounts",
)
async def get_all_balances(
    start_date: str = Query(..., description="YYYY-MM-DD"),
    end_date: str = Query(..., description="YYYY-MM-DD"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    start, end = _parse_range(start_date, end_date)
    return await balance_query_service.get_all_balances_for_date_range(db, start, end, user.id)
