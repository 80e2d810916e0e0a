"""
Transaction listeners — keep account balances and snapshots in step with
transactions.

A transaction's signed amount moves both the current and the available
balance of its account. Created transactions land on today's snapshot;
updates and deletions also correct every snapshot from the transaction's
date up to today, so history stays consistent with the current balance.

Days are counted in the account owner's timezone.
"""

import logging
import uuid
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.dates import today_in_timezone
from app.events import TransactionEvents, on
from app.models.account import Account
from app.models.balance_snapshot import BalanceSnapshot, BalanceSnapshotType
from app.models.transaction import Transaction
from app.money import MoneyWithSign
from app.services import balance_snapshot_service, user_service


logger = logging.getLogger(__name__)


def _shift(balance: MoneyWithSign, delta: int) -> MoneyWithSign:
    return MoneyWithSign.from_signed(balance.currency, balance.signed_amount + delta)


def _shift_balances(item, delta: int) -> None:
    """Move current and available balance of an account or snapshot by delta."""
    item.current_balance = _shift(item.current_balance, delta)
    item.available_balance = _shift(item.available_balance, delta)


async def _today_for(db: AsyncSession, user_id: uuid.UUID) -> date:
    return today_in_timezone(await user_service.get_timezone(db, user_id))


async def update_account_and_snapshots(
    db: AsyncSession, account_id: uuid.UUID, delta: int, from_date: date
) -> int:
    """
    Shift an account and its snapshots in [from_date, today] by delta.

    Returns:
        Number of snapshots changed.
    """
    account = await db.get(Account, account_id)
    if account is None:
        logger.warning("Account %s not found, balance not adjusted", account_id)
        return 0

    _shift_balances(account, delta)

    today = await _today_for(db, account.user_id)
    result = await db.execute(
        select(BalanceSnapshot).where(
            BalanceSnapshot.account_id == account_id,
            BalanceSnapshot.snapshot_date >= from_date,
            BalanceSnapshot.snapshot_date <= today,
        )
    )
    snapshots = list(result.scalars().all())
    for snapshot in snapshots:
        _shift_balances(snapshot, delta)

    await db.flush()
    return len(snapshots)


@on(TransactionEvents.CREATED)
async def handle_transaction_created(db: AsyncSession, transaction: Transaction) -> None:
    account = await db.get(Account, transaction.account_id)
    if account is None:
        logger.warning("Account %s not found for transaction %s", transaction.account_id, transaction.id)
        return

    delta = transaction.amount.signed_amount
    _shift_balances(account, delta)
    await db.flush()

    await balance_snapshot_service.upsert_from_account(
        db, account, snapshot_type=BalanceSnapshotType.USER_UPDATE.value
    )
    logger.info(
        "Applied transaction %s to account %s: delta=%d", transaction.id, account.id, delta
    )


@on(TransactionEvents.UPDATED)
async def handle_transaction_updated(
    db: AsyncSession,
    transaction: Transaction,
    old_amount: MoneyWithSign,
    old_date: date,
) -> None:
    delta = transaction.amount.signed_amount - old_amount.signed_amount
    if delta == 0:
        logger.info("No balance change needed for transaction %s", transaction.id)
        return

    from_date = min(old_date, transaction.date)
    changed = await update_account_and_snapshots(db, transaction.account_id, delta, from_date)
    logger.info(
        "Adjusted account %s by %d for updated transaction %s (%d snapshots from %s)",
        transaction.account_id, delta, transaction.id, changed, from_date,
    )


@on(TransactionEvents.DELETED)
async def handle_transaction_deleted(db: AsyncSession, transaction: Transaction) -> None:
    delta = -transaction.amount.signed_amount
    changed = await update_account_and_snapshots(
        db, transaction.account_id, delta, transaction.date
    )
    logger.info(
        "Reversed transaction %s on account %s: delta=%d (%d snapshots from %s)",
        transaction.id, transaction.account_id, delta, changed, transaction.date,
    )
