"""
Balance snapshot service — daily balance history per account.

There is at most one snapshot per account and calendar day. Days are
counted in the owner's timezone, so "today" for a user in Los Angeles
rolls over eight hours after UTC.

Writers:
  - upsert() / upsert_from_account(): SYNC snapshots after a provider
    sync, USER_UPDATE snapshots after a manual change
  - forward_fill_missing_snapshots(): the scheduled job that copies the
    last known balance into days where nothing synced (FORWARD_FILL)

Every upsert emits balance-snapshot.updated, which makes sure an exchange
rate exists for the snapshot's currency and day.
"""

import logging
import uuid
from datetime import date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.dates import today_in_timezone
from app.events import BalanceSnapshotEvents, emit
from app.exceptions import NotFoundError
from app.models.account import Account
from app.models.balance_snapshot import BalanceSnapshot, BalanceSnapshotType
from app.models.mixins import as_utc
from app.models.user import User
from app.money import MoneyWithSign
from app.schemas.balance_snapshot import BalanceSnapshotResponse
from app.services import currency_conversion_service, user_service


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def get_snapshots(db: AsyncSession, user_id: uuid.UUID) -> list[BalanceSnapshot]:
    result = await db.execute(
        select(BalanceSnapshot)
        .where(BalanceSnapshot.user_id == user_id)
        .order_by(BalanceSnapshot.snapshot_date.desc())
    )
    return list(result.scalars().all())


async def get_snapshot(db: AsyncSession, snapshot_id: uuid.UUID, user_id: uuid.UUID) -> BalanceSnapshot:
    """
    Raises:
        NotFoundError: If the snapshot doesn't exist or isn't owned by the user.
    """
    result = await db.execute(
        select(BalanceSnapshot).where(
            BalanceSnapshot.id == snapshot_id,
            BalanceSnapshot.user_id == user_id,
        )
    )
    snapshot = result.scalar_one_or_none()
    if snapshot is None:
        raise NotFoundError(f"Balance snapshot {snapshot_id} not found")
    return snapshot


async def update_snapshot(
    db: AsyncSession,
    snapshot_id: uuid.UUID,
    user_id: uuid.UUID,
    current_balance: MoneyWithSign | None = None,
    available_balance: MoneyWithSign | None = None,
    snapshot_type: str | None = None,
) -> BalanceSnapshot:
    snapshot = await get_snapshot(db, snapshot_id, user_id)
    if current_balance is not None:
        snapshot.current_balance = current_balance
    if available_balance is not None:
        snapshot.available_balance = available_balance
    if snapshot_type is not None:
        snapshot.snapshot_type = snapshot_type
    await db.flush()
    await emit(BalanceSnapshotEvents.UPDATED, db, snapshot=snapshot)
    return snapshot


async def delete_snapshot(db: AsyncSession, snapshot_id: uuid.UUID, user_id: uuid.UUID) -> None:
    snapshot = await get_snapshot(db, snapshot_id, user_id)
    await db.delete(snapshot)
    await db.flush()


async def find_by_account_id(
    db: AsyncSession, account_id: uuid.UUID, user_id: uuid.UUID
) -> list[BalanceSnapshot]:
    result = await db.execute(
        select(BalanceSnapshot)
        .where(
            BalanceSnapshot.account_id == account_id,
            BalanceSnapshot.user_id == user_id,
        )
        .order_by(BalanceSnapshot.snapshot_date.desc())
    )
    return list(result.scalars().all())


async def find_by_account_id_and_date(
    db: AsyncSession, account_id: uuid.UUID, snapshot_date: date
) -> BalanceSnapshot | None:
    result = await db.execute(
        select(BalanceSnapshot).where(
            BalanceSnapshot.account_id == account_id,
            BalanceSnapshot.snapshot_date == snapshot_date,
        )
    )
    return result.scalar_one_or_none()


async def find_most_recent_before_date(
    db: AsyncSession, account_id: uuid.UUID, before: date
) -> BalanceSnapshot | None:
    result = await db.execute(
        select(BalanceSnapshot)
        .where(
            BalanceSnapshot.account_id == account_id,
            BalanceSnapshot.snapshot_date < before,
        )
        .order_by(BalanceSnapshot.snapshot_date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Upserts
# ---------------------------------------------------------------------------

async def upsert(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_id: uuid.UUID,
    current_balance: MoneyWithSign,
    available_balance: MoneyWithSign,
    snapshot_type: str = BalanceSnapshotType.SYNC.value,
    snapshot_date: date | None = None,
) -> BalanceSnapshot:
    """
    Create or replace the snapshot for an account and day.

    Args:
        snapshot_date: Defaults to today in the user's timezone.

    Raises:
        NotFoundError: If the account doesn't exist or isn't owned by the user.
    """
    account = await db.get(Account, account_id)
    if account is None or account.user_id != user_id:
        raise NotFoundError(f"Account {account_id} not found")

    if snapshot_date is None:
        snapshot_date = today_in_timezone(await user_service.get_timezone(db, user_id))

    snapshot = await find_by_account_id_and_date(db, account_id, snapshot_date)
    if snapshot is None:
        snapshot = BalanceSnapshot(
            user_id=user_id,
            account_id=account_id,
            snapshot_date=snapshot_date,
        )
        db.add(snapshot)

    snapshot.current_balance = current_balance
    snapshot.available_balance = available_balance
    snapshot.snapshot_type = snapshot_type
    await db.flush()

    logger.info(
        "Upserted %s snapshot for account %s on %s", snapshot_type, account_id, snapshot_date
    )
    await emit(BalanceSnapshotEvents.UPDATED, db, snapshot=snapshot)
    return snapshot


async def upsert_from_account(
    db: AsyncSession,
    account: Account,
    snapshot_type: str = BalanceSnapshotType.SYNC.value,
) -> BalanceSnapshot:
    """Snapshot an account's current balances for today (owner's timezone)."""
    return await upsert(
        db,
        user_id=account.user_id,
        account_id=account.id,
        current_balance=account.current_balance,
        available_balance=account.available_balance,
        snapshot_type=snapshot_type,
    )


# ---------------------------------------------------------------------------
# Queries with conversion
# ---------------------------------------------------------------------------

def _with_conversion(converted: list) -> list[dict]:
    return [
        {
            **BalanceSnapshotResponse.model_validate(snapshot).model_dump(),
            "converted_current_balance": current.to_dict() if current else None,
            "converted_available_balance": available.to_dict() if available else None,
        }
        for snapshot, current, available in converted
    ]


async def find_all_with_conversion(db: AsyncSession, user_id: uuid.UUID) -> list[dict]:
    """Every snapshot of the user, converted at each snapshot's own date."""
    snapshots = await get_snapshots(db, user_id)
    converted = await currency_conversion_service.add_converted_balances(
        db, snapshots, user_id, date_attr="snapshot_date"
    )
    return _with_conversion(converted)


async def find_by_account_id_with_conversion(
    db: AsyncSession, account_id: uuid.UUID, user_id: uuid.UUID
) -> list[dict]:
    snapshots = await find_by_account_id(db, account_id, user_id)
    converted = await currency_conversion_service.add_converted_balances(
        db, snapshots, user_id, date_attr="snapshot_date"
    )
    return _with_conversion(converted)


async def find_snapshots_for_date_with_conversion(
    db: AsyncSession,
    user_id: uuid.UUID,
    snapshot_date: date,
    rate_cache: dict | None = None,
) -> dict[uuid.UUID, dict]:
    """
    The user's snapshots for one day keyed by account id, converted using
    that day's rates (historical conversion). Callers looping over many days
    can share one rate_cache.
    """
    result = await db.execute(
        select(BalanceSnapshot).where(
            BalanceSnapshot.user_id == user_id,
            BalanceSnapshot.snapshot_date == snapshot_date,
        )
    )
    snapshots = list(result.scalars().all())
    converted = await currency_conversion_service.add_converted_balances(
        db, snapshots, user_id, on_date=snapshot_date, rate_cache=rate_cache
    )
    return {item["account_id"]: item for item in _with_conversion(converted)}


async def get_last_sync_times(
    db: AsyncSession, user_id: uuid.UUID, account_id: uuid.UUID | None = None
) -> dict[uuid.UUID, datetime]:
    """Latest SYNC snapshot creation time per account."""
    query = (
        select(BalanceSnapshot.account_id, func.max(BalanceSnapshot.created_at))
        .where(
            BalanceSnapshot.user_id == user_id,
            BalanceSnapshot.snapshot_type == BalanceSnapshotType.SYNC.value,
        )
        .group_by(BalanceSnapshot.account_id)
    )
    if account_id is not None:
        query = query.where(BalanceSnapshot.account_id == account_id)

    result = await db.execute(query)
    return {row_account_id: as_utc(synced_at) for row_account_id, synced_at in result.all()}


# ---------------------------------------------------------------------------
# Scheduled forward-fill
# ---------------------------------------------------------------------------

async def forward_fill_missing_snapshots(db: AsyncSession) -> dict[str, int]:
    """
    Make sure every account has a snapshot for "yesterday".

    Yesterday is computed per account owner's timezone. When it has no
    snapshot, the most recent earlier snapshot is copied as FORWARD_FILL.
    Accounts with no earlier snapshot are skipped.

    Returns:
        {"created": n, "skipped": m}
    """
    result = await db.execute(
        select(Account, User.settings).join(User, User.id == Account.user_id)
    )
    created = 0
    skipped = 0

    for account, user_settings in result.all():
        tz_name = (user_settings or {}).get("timezone") or "UTC"
        yesterday = today_in_timezone(tz_name) - timedelta(days=1)

        if await find_by_account_id_and_date(db, account.id, yesterday) is not None:
            skipped += 1
            continue

        previous = await find_most_recent_before_date(db, account.id, yesterday)
        if previous is None:
            skipped += 1
            continue

        db.add(
            BalanceSnapshot(
                user_id=account.user_id,
                account_id=account.id,
                snapshot_date=yesterday,
                current_balance_amount=previous.current_balance_amount,
                current_balance_currency=previous.current_balance_currency,
                current_balance_sign=previous.current_balance_sign,
                available_balance_amount=previous.available_balance_amount,
                available_balance_currency=previous.available_balance_currency,
                available_balance_sign=previous.available_balance_sign,
                snapshot_type=BalanceSnapshotType.FORWARD_FILL.value,
            )
        )
        created += 1

    await db.flush()
    logger.info("Forward-fill complete: created=%d skipped=%d", created, skipped)
    return {"created": created, "skipped": skipped}
