"""
Transactions router — manual transactions on the user's accounts.

Endpoints (require JWT, scoped to the authenticated user):
  GET    /transactions                    — List (optionally ?account_id=)
  POST   /transactions                    — Record a transaction
  GET    /transactions/{transaction_id}   — Get one transaction
  PATCH  /transactions/{transaction_id}   — Partial update
  DELETE /transactions/{transaction_id}   — Delete

Every write moves the account balance: a positive amount adds to it, a
negative amount subtracts. Updates and deletions also correct the balance
snapshots from the transaction's date onwards.
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.transaction import (
    TransactionCreateRequest,
    TransactionResponse,
    TransactionUpdateRequest,
)
from app.services import transaction_service

router = APIRouter()


@router.get(
    "",
    response_model=list[TransactionResponse],
    summary="List your transactions",
)
async def list_transactions(
    account_id: uuid.UUID | None = Query(default=None, description="Only this account"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.get_transactions(db, user.id, account_id)


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a transaction",
)
async def create_transaction(
    request: TransactionCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Record a transaction and apply it to the account balance.

    Returns 404 if the account doesn't exist or belongs to another user.
    """
    return await transaction_service.create_transaction(
        db,
        user_id=user.id,
        account_id=request.account_id,
        amount=request.amount.to_money(),
        transaction_date=request.date,
        merchant_name=request.merchant_name,
        pending=request.pending,
        external_transaction_id=request.external_transaction_id,
        logo_url=request.logo_url,
        transaction_datetime=request.datetime,
        authorized_date=request.authorized_date,
        authorized_datetime=request.authorized_datetime,
        category_id=request.category_id,
    )


@router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get a transaction",
)
async def get_transaction(
    transaction_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.get_transaction(db, transaction_id, user.id)


@router.patch(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Update a transaction",
)
async def update_transaction(
    transaction_id: uuid.UUID,
    request: TransactionUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Only fields present in the body change."""
    changes = request.model_dump(exclude_unset=True, exclude={"amount"})
    return await transaction_service.update_transaction(
        db,
        transaction_id,
        user.id,
        amount=request.amount.to_money() if request.amount else None,
        **changes,
    )


@router.delete(
    "/{transaction_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a transaction",
)
async def delete_transaction(
    transaction_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await transaction_service.delete_transaction(db, transaction_id, user.id)
