"""
Exchange rates router — stored daily rates.

Endpoints (require JWT):
  POST /exchange-rates/sync                    — Run the fiat + crypto rate sync now
  GET  /exchange-rates?date=YYYY-MM-DD         — All stored rates for a day
  GET  /exchange-rates/latest/{base}/{target}  — Most recent stored rate
  GET  /exchange-rates/{base}/{target}?date=   — Stored rate on a day

Lookups accept either direction of a pair; rates are stored once per
normalized pair and inverted on the way out. Currency codes are
case-insensitive.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dates import utc_today
from app.dependencies import get_current_user
from app.exceptions import ExchangeRateUnavailableError
from app.models.user import User
from app.schemas.exchange_rate import ExchangeRateResponse, RateLookupResponse, RateSyncResponse
from app.services import currency_backfill_service, exchange_rate_service

router = APIRouter()


@router.post(
    "/sync",
    response_model=RateSyncResponse,
    summary="Sync today's exchange rates",
)
async def sync_rates(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Fetch today's rates for every currency pair any user needs.

    The same jobs run on a schedule; this triggers them immediately.
    """
    fiat = await currency_backfill_service.sync_daily_fiat_rates(db)
    crypto = await currency_backfill_service.sync_hourly_crypto_rates(db)
    return RateSyncResponse(synced=len(fiat) + len(crypto))


@router.get(
    "",
    response_model=list[ExchangeRateResponse],
    summary="List stored rates for a day",
)
async def list_rates(
    rate_date: date | None = Query(default=None, alias="date", description="Defaults to today (UTC)"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await exchange_rate_service.get_rates_for_date(db, rate_date or utc_today())


@router.get(
    "/latest/{base}/{target}",
    response_model=RateLookupResponse,
    summary="Get the latest stored rate",
)
async def get_latest_rate(
    base: str,
    target: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    base, target = base.upper(), target.upper()
    if base == target:
        return RateLookupResponse(base_currency=base, target_currency=target, rate=1.0)

    latest = await exchange_rate_service.get_latest_rate(db, base, target)
    if latest is None:
        raise ExchangeRateUnavailableError(f"No exchange rate found for {base}:{target}")
    rate, rate_date = latest
    return RateLookupResponse(
        base_currency=base, target_currency=target, rate=rate, rate_date=rate_date
    )


@router.get(
    "/{base}/{target}",
    response_model=RateLookupResponse,
    summary="Get the stored rate for a day",
)
async def get_rate(
    base: str,
    target: str,
    rate_date: date | None = Query(default=None, alias="date", description="Defaults to today (UTC)"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    base, target = base.upper(), target.upper()
    rate_date = rate_date or utc_today()
    if base == target:
        return RateLookupResponse(
            base_currency=base, target_currency=target, rate=1.0, rate_date=rate_date
        )

    rate = await exchange_rate_service.get_rate(db, base, target, rate_date)
    if rate is None:
        raise ExchangeRateUnavailableError(
            f"No exchange rate found for {base}:{target} on {rate_date.isoformat()}"
        )
    return RateLookupResponse(
        base_currency=base, target_currency=target, rate=rate, rate_date=rate_date
    )
