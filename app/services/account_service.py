"""
Account service — business logic for user accounts.

This module handles:
  - Manual account creation, retrieval, and deletion
  - Listing accounts with balances converted to the user's currency and
    the time of the last provider sync
  - Upserting provider accounts after a bank-link sync

Ownership enforcement:
  Every query function takes the authenticated user's id and scopes by it.
  An account owned by someone else is reported as not found, so account
  ids cannot be probed.

Events:
  upsert_accounts_from_api() emits account.created / account.updated for
  each account; the balance snapshot listener turns those into SYNC
  snapshots.
"""

import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.events import AccountEvents, emit
from app.exceptions import AccountNotFoundError
from app.models.account import Account
from app.models.balance_snapshot import BalanceSnapshot
from app.models.bank_link import BankLink
from app.models.transaction import Transaction
from app.money import MoneyWithSign
from app.providers.base import ProviderAccount
from app.schemas.account import AccountResponse
from app.services import balance_snapshot_service, currency_conversion_service


logger = logging.getLogger(__name__)


async def create_account(
    db: AsyncSession,
    user_id: uuid.UUID,
    name: str,
    current_balance: MoneyWithSign,
    available_balance: MoneyWithSign | None = None,
    account_type: str = "depository",
    sub_type: str | None = None,
    mask: str | None = None,
) -> Account:
    """
    Create a manual (unlinked) account.

    available_balance defaults to current_balance.
    """
    account = Account(
        user_id=user_id,
        name=name,
        type=account_type,
        sub_type=sub_type,
        mask=mask,
        bank_link_id=None,
    )
    account.current_balance = current_balance
    account.available_balance = available_balance or current_balance
    db.add(account)
    await db.flush()

    logger.info("Manual account created: id=%s user_id=%s", account.id, user_id)
    await emit(AccountEvents.CREATED, db, account=account)
    return account


async def get_accounts(db: AsyncSession, user_id: uuid.UUID) -> list[Account]:
    result = await db.execute(
        select(Account).where(Account.user_id == user_id).order_by(Account.created_at)
    )
    return list(result.scalars().all())


async def get_accounts_by_ids(
    db: AsyncSession, user_id: uuid.UUID, account_ids: list[uuid.UUID]
) -> list[Account]:
    if not account_ids:
        return []
    result = await db.execute(
        select(Account).where(Account.user_id == user_id, Account.id.in_(account_ids))
    )
    return list(result.scalars().all())


async def get_account(db: AsyncSession, account_id: uuid.UUID, user_id: uuid.UUID) -> Account:
    """
    Get a single account owned by the user.

    Raises:
        AccountNotFoundError: If the account doesn't exist or isn't owned by the user.
    """
    result = await db.execute(
        select(Account).where(Account.id == account_id, Account.user_id == user_id)
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise AccountNotFoundError(account_id)
    return account


async def delete_account(db: AsyncSession, account_id: uuid.UUID, user_id: uuid.UUID) -> None:
    """Delete an account with its snapshots and transactions."""
    account = await get_account(db, account_id, user_id)
    # SQLite does not enforce ON DELETE CASCADE unless the pragma is on
    await db.execute(delete(BalanceSnapshot).where(BalanceSnapshot.account_id == account_id))
    await db.execute(delete(Transaction).where(Transaction.account_id == account_id))
    await db.delete(account)
    await db.flush()
    logger.info("Account deleted: id=%s", account_id)


async def get_accounts_with_conversion(db: AsyncSession, user_id: uuid.UUID) -> list[dict]:
    """
    All of a user's accounts, each with converted balances and last sync time.

    Converted balances use the latest stored rate and are None when no
    rate is available.
    """
    accounts = await get_accounts(db, user_id)
    converted = await currency_conversion_service.add_converted_balances(db, accounts, user_id)
    last_syncs = await balance_snapshot_service.get_last_sync_times(db, user_id)

    return [
        {
            **AccountResponse.model_validate(account).model_dump(),
            "converted_current_balance": current.to_dict() if current else None,
            "converted_available_balance": available.to_dict() if available else None,
            "last_synced_at": last_syncs.get(account.id),
        }
        for account, current, available in converted
    ]


async def upsert_accounts_from_api(
    db: AsyncSession,
    bank_link: BankLink,
    api_accounts: list[ProviderAccount],
) -> list[Account]:
    """
    Create or update accounts reported by a provider for one bank link.

    Accounts are matched on external_account_id within the link owner's
    accounts. Balance changes are logged for existing accounts.
    """
    saved: list[Account] = []

    for api_account in api_accounts:
        result = await db.execute(
            select(Account).where(
                Account.user_id == bank_link.user_id,
                Account.external_account_id == api_account.account_id,
            )
        )
        account = result.scalar_one_or_none()
        is_new = account is None

        if is_new:
            account = Account(
                user_id=bank_link.user_id,
                external_account_id=api_account.account_id,
            )
            db.add(account)
        elif account.current_balance != api_account.current_balance:
            logger.info(
                "Balance changed for account %s: %s -> %s",
                account.id,
                account.current_balance.signed_amount,
                api_account.current_balance.signed_amount,
            )

        account.bank_link_id = bank_link.id
        account.name = api_account.name
        account.mask = api_account.mask
        account.type = api_account.type
        account.sub_type = api_account.sub_type
        account.raw_api_account = api_account.raw
        account.current_balance = api_account.current_balance
        account.available_balance = api_account.available_balance
        await db.flush()

        await emit(
            AccountEvents.CREATED if is_new else AccountEvents.UPDATED,
            db,
            account=account,
        )
        saved.append(account)

    logger.info(
        "Upserted %d accounts for bank link %s", len(saved), bank_link.id
    )
    return saved
