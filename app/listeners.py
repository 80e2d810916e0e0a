"""
Event listener registration.

Importing this module registers every listener with app.events. The
application imports it once at startup; tests get it through app.main.

  account.created / account.updated  ->  balance snapshot for today
  balance-snapshot.updated           ->  exchange rate for the snapshot's day
  user.settings-updated              ->  rate backfill when the currency changed
  transaction.*                      ->  see app/services/transaction_listeners.py
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.events import AccountEvents, BalanceSnapshotEvents, UserEvents, on
from app.models.account import Account
from app.models.balance_snapshot import BalanceSnapshot, BalanceSnapshotType
from app.services import balance_snapshot_service, currency_backfill_service
from app.services import transaction_listeners  # noqa: F401


logger = logging.getLogger(__name__)


@on(AccountEvents.CREATED)
@on(AccountEvents.UPDATED)
async def snapshot_account(db: AsyncSession, account: Account) -> None:
    snapshot_type = (
        BalanceSnapshotType.USER_UPDATE if account.is_manual else BalanceSnapshotType.SYNC
    )
    await balance_snapshot_service.upsert_from_account(db, account, snapshot_type=snapshot_type.value)


@on(BalanceSnapshotEvents.UPDATED)
async def ensure_snapshot_rate(db: AsyncSession, snapshot: BalanceSnapshot) -> None:
    await currency_backfill_service.ensure_rate_for_snapshot(db, snapshot)


@on(UserEvents.SETTINGS_UPDATED)
async def backfill_on_currency_change(
    db: AsyncSession,
    user_id: uuid.UUID,
    old_settings: dict,
    new_settings: dict,
) -> None:
    if old_settings.get("currency") == new_settings.get("currency"):
        return
    logger.info(
        "Currency changed for user %s: %s -> %s, backfilling rates",
        user_id, old_settings.get("currency"), new_settings.get("currency"),
    )
    await currency_backfill_service.backfill_rates_for_user(db, user_id)
