"""
Transaction service — user-scoped CRUD for transactions.

Balance bookkeeping is not done here. Each write emits a transaction event
and app/services/transaction_listeners.py applies the balance effect:

  transaction.created  ->  account balance += amount, today's snapshot updated
  transaction.updated  ->  account and snapshots shifted by the amount change
  transaction.deleted  ->  account and snapshots shifted by -amount

Ownership:
  Transactions are scoped by user_id. Creating a transaction also checks
  that the target account belongs to the user.
"""

import logging
import uuid
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.events import TransactionEvents, emit
from app.exceptions import NotFoundError
from app.models.transaction import Transaction
from app.money import MoneyWithSign
from app.services import account_service


logger = logging.getLogger(__name__)

# Fields a PATCH may change besides the amount
UPDATABLE_FIELDS = (
    "merchant_name",
    "pending",
    "logo_url",
    "date",
    "datetime",
    "authorized_date",
    "authorized_datetime",
    "category_id",
)


async def create_transaction(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_id: uuid.UUID,
    amount: MoneyWithSign,
    transaction_date: date,
    merchant_name: str | None = None,
    pending: bool = False,
    external_transaction_id: str | None = None,
    logo_url: str | None = None,
    transaction_datetime: datetime | None = None,
    authorized_date: date | None = None,
    authorized_datetime: datetime | None = None,
    category_id: uuid.UUID | None = None,
) -> Transaction:
    """
    Record a transaction on one of the user's accounts.

    Raises:
        AccountNotFoundError: If the account doesn't exist or isn't owned by the user.
    """
    await account_service.get_account(db, account_id, user_id)

    transaction = Transaction(
        user_id=user_id,
        account_id=account_id,
        merchant_name=merchant_name,
        pending=pending,
        external_transaction_id=external_transaction_id,
        logo_url=logo_url,
        date=transaction_date,
        datetime=transaction_datetime,
        authorized_date=authorized_date,
        authorized_datetime=authorized_datetime,
        category_id=category_id,
    )
    transaction.amount = amount
    db.add(transaction)
    await db.flush()

    logger.info(
        "Transaction created: id=%s account_id=%s amount=%d %s",
        transaction.id, account_id, amount.signed_amount, amount.currency,
    )
    await emit(TransactionEvents.CREATED, db, transaction=transaction)
    return transaction


async def get_transactions(
    db: AsyncSession, user_id: uuid.UUID, account_id: uuid.UUID | None = None
) -> list[Transaction]:
    """All of the user's transactions, newest first, optionally for one account."""
    query = select(Transaction).where(Transaction.user_id == user_id)
    if account_id is not None:
        query = query.where(Transaction.account_id == account_id)
    result = await db.execute(
        query.order_by(Transaction.date.desc(), Transaction.created_at.desc())
    )
    return list(result.scalars().all())


async def get_transaction(
    db: AsyncSession, transaction_id: uuid.UUID, user_id: uuid.UUID
) -> Transaction:
    """
    Raises:
        NotFoundError: If the transaction doesn't exist or isn't owned by the user.
    """
    result = await db.execute(
        select(Transaction).where(
            Transaction.id == transaction_id,
            Transaction.user_id == user_id,
        )
    )
    transaction = result.scalar_one_or_none()
    if transaction is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return transaction


async def update_transaction(
    db: AsyncSession,
    transaction_id: uuid.UUID,
    user_id: uuid.UUID,
    amount: MoneyWithSign | None = None,
    **changes,
) -> Transaction:
    """
    Apply a partial update.

    Args:
        amount: New amount, if it changes.
        **changes: Any of UPDATABLE_FIELDS; other keys are ignored.

    The updated event carries the amount and date from before the change,
    so the listener can move balances by the difference.
    """
    transaction = await get_transaction(db, transaction_id, user_id)
    old_amount = transaction.amount
    old_date = transaction.date

    if amount is not None:
        transaction.amount = amount
    for field, value in changes.items():
        if field in UPDATABLE_FIELDS:
            setattr(transaction, field, value)
    await db.flush()

    logger.info("Transaction updated: id=%s", transaction_id)
    await emit(
        TransactionEvents.UPDATED,
        db,
        transaction=transaction,
        old_amount=old_amount,
        old_date=old_date,
    )
    return transaction


async def delete_transaction(
    db: AsyncSession, transaction_id: uuid.UUID, user_id: uuid.UUID
) -> None:
    transaction = await get_transaction(db, transaction_id, user_id)
    await db.delete(transaction)
    await db.flush()

    logger.info("Transaction deleted: id=%s", transaction_id)
    await emit(TransactionEvents.DELETED, db, transaction=transaction)
