"""
Accounts router — the current user's accounts.

Endpoints (require JWT, scoped to the authenticated user):
  GET    /accounts                — List accounts with converted balances
  POST   /accounts                — Create a manual account
  GET    /accounts/{account_id}   — Get one account
  DELETE /accounts/{account_id}   — Delete an account and its history

Linked accounts are created by the bank-link flow, not here.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.account import AccountCreateRequest, AccountResponse, AccountWithConversionResponse
from app.services import account_service

router = APIRouter()


@router.get(
    "",
    response_model=list[AccountWithConversionResponse],
    summary="List your accounts",
)
async def list_accounts(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    List every account of the authenticated user.

    Each account carries its balances converted into the user's currency
    at the latest stored rate (null when no rate is stored) and the time
    of its last provider sync.
    """
    return await account_service.get_accounts_with_conversion(db, user.id)


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a manual account",
)
async def create_account(
    request: AccountCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Create an account that is not linked to any provider.

    A balance snapshot for today is recorded straight away.
    """
    return await account_service.create_account(
        db,
        user_id=user.id,
        name=request.name,
        current_balance=request.current_balance.to_money(),
        available_balance=(
            request.available_balance.to_money() if request.available_balance else None
        ),
        account_type=request.type,
        sub_type=request.sub_type,
        mask=request.mask,
    )


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    summary="Get account details",
)
async def get_account(
    account_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Returns 404 if the account doesn't exist or belongs to another user."""
    return await account_service.get_account(db, account_id, user.id)


@router.delete(
    "/{account_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an account",
)
async def delete_account(
    account_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await account_service.delete_account(db, account_id, user.id)
