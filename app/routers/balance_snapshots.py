"""
Balance snapshots router — daily balance history.

Endpoints (require JWT, scoped to the authenticated user):
  GET    /balance-snapshots                      — All snapshots, converted
  POST   /balance-snapshots                      — Create or replace a day's snapshot
  GET    /balance-snapshots/account/{account_id} — One account's history, converted
  GET    /balance-snapshots/{snapshot_id}        — One snapshot
  PATCH  /balance-snapshots/{snapshot_id}        — Change balances or type
  DELETE /balance-snapshots/{snapshot_id}        — Delete a snapshot

Converted balances use the exchange rate of each snapshot's own date.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.balance_snapshot import (
    BalanceSnapshotCreateRequest,
    BalanceSnapshotResponse,
    BalanceSnapshotUpdateRequest,
    BalanceSnapshotWithConversionResponse,
)
from app.services import balance_snapshot_service

router = APIRouter()


@router.get(
    "",
    response_model=list[BalanceSnapshotWithConversionResponse],
    summary="List your balance snapshots",
)
async def list_snapshots(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await balance_snapshot_service.find_all_with_conversion(db, user.id)


@router.post(
    "",
    response_model=BalanceSnapshotResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a balance snapshot",
)
async def create_snapshot(
    request: BalanceSnapshotCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Create the snapshot for an account and day, replacing any existing one.

    snapshot_date defaults to today in the user's timezone.
    """
    return await balance_snapshot_service.upsert(
        db,
        user_id=user.id,
        account_id=request.account_id,
        current_balance=request.current_balance.to_money(),
        available_balance=request.available_balance.to_money(),
        snapshot_type=request.snapshot_type,
        snapshot_date=request.snapshot_date,
    )


@router.get(
    "/account/{account_id}",
    response_model=list[BalanceSnapshotWithConversionResponse],
    summary="List one account's snapshots",
)
async def list_account_snapshots(
    account_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await balance_snapshot_service.find_by_account_id_with_conversion(db, account_id, user.id)


@router.get(
    "/{snapshot_id}",
    response_model=BalanceSnapshotResponse,
    summary="Get a balance snapshot",
)
async def get_snapshot(
    snapshot_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await balance_snapshot_service.get_snapshot(db, snapshot_id, user.id)


@router.patch(
    "/{snapshot_id}",
    response_model=BalanceSnapshotResponse,
    summary="Update a balance snapshot",
)
async def update_snapshot(
    snapshot_id: uuid.UUID,
    request: BalanceSnapshotUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await balance_snapshot_service.update_snapshot(
        db,
        snapshot_id,
        user.id,
        current_balance=request.current_balance.to_money() if request.current_balance else None,
        available_balance=request.available_balance.to_money() if request.available_balance else None,
        snapshot_type=request.snapshot_type,
    )


@router.delete(
    "/{snapshot_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a balance snapshot",
)
async def delete_snapshot(
    snapshot_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await balance_snapshot_service.delete_snapshot(db, snapshot_id, user.id)
