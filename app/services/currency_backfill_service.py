"""
Currency backfill service — keeps the exchange_rates table populated.

Which pairs are needed?
  Every (account currency, user currency) combination where the two differ,
  normalized (see app/currency.py). Fiat-based pairs come from Frankfurter,
  crypto-based pairs from CoinGecko.

Entry points:
  sync_daily_fiat_rates()       scheduled daily: today's fiat rates
  sync_hourly_crypto_rates()    scheduled hourly: current crypto prices
  backfill_rates_for_user()     after a currency change: history back to
                                the user's earliest snapshot
  ensure_rate_for_snapshot()    after any snapshot write: that day's rate

Failures are logged and never propagate out of these functions: a missing
rate degrades display (no converted balance) but must not break syncing.
"""

import logging
import uuid
from collections import defaultdict
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.currency import is_crypto_currency, normalize_currency_pair
from app.dates import date_range, today_in_timezone, utc_today
from app.exceptions import SpliceAPIError
from app.models.account import Account
from app.models.balance_snapshot import BalanceSnapshot
from app.models.exchange_rate import ExchangeRate
from app.models.user import User
from app.providers import rate_providers
from app.services import exchange_rate_service


logger = logging.getLogger(__name__)


async def get_required_currency_pairs(db: AsyncSession) -> list[tuple[str, str]]:
    """
    Unique normalized (base, target) pairs needed to convert every user's
    accounts into that user's currency.
    """
    # JSON columns cannot be DISTINCTed on PostgreSQL; dedupe in Python instead
    result = await db.execute(
        select(Account.current_balance_currency, User.settings)
        .join(User, User.id == Account.user_id)
    )

    pairs: set[tuple[str, str]] = set()
    for account_currency, user_settings in result.all():
        user_currency = (user_settings or {}).get("currency") or "USD"
        if account_currency != user_currency:
            normalized = normalize_currency_pair(account_currency, user_currency)
            pairs.add((normalized.base, normalized.target))
    return sorted(pairs)


def _involves_crypto(pair: tuple[str, str]) -> bool:
    return is_crypto_currency(pair[0]) or is_crypto_currency(pair[1])


def _group_targets_by_base(pairs: list[tuple[str, str]]) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = defaultdict(list)
    for base, target in pairs:
        grouped[base].append(target)
    return grouped


# ---------------------------------------------------------------------------
# Scheduled syncs
# ---------------------------------------------------------------------------

async def sync_daily_fiat_rates(db: AsyncSession) -> list[ExchangeRate]:
    """
    Store today's rates for every required fiat-based pair.

    Pairs already stored for today are skipped; the rest are fetched with
    one request per base currency.
    """
    today = utc_today()
    pairs = [p for p in await get_required_currency_pairs(db) if not _involves_crypto(p)]
    if not pairs:
        logger.info("No fiat currency pairs to sync")
        return []

    inserted: list[ExchangeRate] = []
    for base, targets in _group_targets_by_base(pairs).items():
        try:
            existing = await exchange_rate_service.get_existing_rate_keys(db, base, targets, today, today)
            missing = [t for t in targets if f"{t}:{today.isoformat()}" not in existing]
            if not missing:
                logger.info("Fiat rates for %s already synced for %s", base, today)
                continue

            rates = await rate_providers.fiat_provider.get_latest_rates(base, missing)
            for target, rate in rates.items():
                inserted.append(await exchange_rate_service.upsert_rate(db, base, target, rate, today))
        except SpliceAPIError as exc:
            logger.error("Failed to sync fiat rates for base %s: %s", base, exc.detail)

    logger.info("Daily fiat sync stored %d rates", len(inserted))
    return inserted


async def sync_hourly_crypto_rates(db: AsyncSession) -> list[ExchangeRate]:
    """Store the current price for every required crypto-based pair."""
    today = utc_today()
    pairs = [p for p in await get_required_currency_pairs(db) if _involves_crypto(p)]

    inserted: list[ExchangeRate] = []
    for base, target in pairs:
        try:
            rate = await rate_providers.crypto_provider.get_rate(base, target)
            if not rate:
                logger.warning("Crypto provider returned 0 for %s:%s, skipping", base, target)
                continue
            inserted.append(await exchange_rate_service.upsert_rate(db, base, target, rate, today))
        except SpliceAPIError as exc:
            logger.error("Failed to sync crypto rate %s:%s: %s", base, target, exc.detail)

    logger.info("Hourly crypto sync stored %d rates", len(inserted))
    return inserted


# ---------------------------------------------------------------------------
# Per-user backfill
# ---------------------------------------------------------------------------

async def backfill_rates_for_user(db: AsyncSession, user_id: uuid.UUID) -> list[ExchangeRate]:
    """
    Fill in historical rates needed to convert a user's snapshot history.

    For each normalized pair the user's snapshots need, rates are required
    for every day from the earliest snapshot in that currency up to today
    (user's timezone). Only missing days are stored; when nothing is
    missing, no API call is made.

    Returns:
        The rates inserted.
    """
    user = await db.get(User, user_id)
    if user is None:
        logger.warning("Backfill skipped: user %s not found", user_id)
        return []

    user_currency = user.currency
    today = today_in_timezone(user.timezone)

    result = await db.execute(
        select(
            BalanceSnapshot.current_balance_currency,
            func.min(BalanceSnapshot.snapshot_date),
        )
        .where(BalanceSnapshot.user_id == user_id)
        .group_by(BalanceSnapshot.current_balance_currency)
    )

    # normalized base -> {normalized target: earliest date}
    needed: dict[str, dict[str, date]] = defaultdict(dict)
    for currency, earliest in result.all():
        if currency == user_currency:
            continue
        base, target, _ = normalize_currency_pair(currency, user_currency)
        current = needed[base].get(target)
        needed[base][target] = min(current, earliest) if current else earliest

    inserted: list[ExchangeRate] = []
    for base, targets_with_start in needed.items():
        try:
            inserted += await _backfill_base(db, base, targets_with_start, today)
        except SpliceAPIError as exc:
            logger.error("Backfill failed for base %s: %s", base, exc.detail)

    logger.info("Backfilled %d rates for user %s", len(inserted), user_id)
    return inserted


async def _backfill_base(
    db: AsyncSession,
    base: str,
    targets_with_start: dict[str, date],
    today: date,
) -> list[ExchangeRate]:
    targets = list(targets_with_start)
    earliest = min(targets_with_start.values())

    existing = await exchange_rate_service.get_existing_rate_keys(db, base, targets, earliest, today)
    missing = {
        f"{target}:{day.isoformat()}"
        for target, start in targets_with_start.items()
        for day in date_range(start, today)
    } - existing

    if not missing:
        logger.info("All rates present for base %s, skipping", base)
        return []

    historical = await _fetch_historical_rates(base, targets, earliest, today)

    inserted = []
    for day, rates in sorted(historical.items()):
        for target, rate in rates.items():
            if f"{target}:{day.isoformat()}" in missing and rate:
                inserted.append(await exchange_rate_service.upsert_rate(db, base, target, rate, day))
    return inserted


async def _fetch_historical_rates(
    base: str, targets: list[str], start: date, end: date
) -> dict[date, dict[str, float]]:
    """
    Historical rates for one normalized base against several targets.

    A fiat base can still have a crypto target (CAD:ETH sorts that way);
    CoinGecko only prices crypto in fiat, so those are fetched the other
    way round and inverted.
    """
    if is_crypto_currency(base):
        return await rate_providers.crypto_provider.get_historical_rates(base, targets, start, end)

    fiat_targets = [t for t in targets if not is_crypto_currency(t)]
    results = (
        await rate_providers.fiat_provider.get_historical_rates(base, fiat_targets, start, end)
        if fiat_targets
        else {}
    )
    for target in targets:
        if target in fiat_targets:
            continue
        inverse = await rate_providers.crypto_provider.get_historical_rates(target, [base], start, end)
        for day, rates in inverse.items():
            if rates.get(base):
                results.setdefault(day, {})[target] = 1 / rates[base]
    return results


# ---------------------------------------------------------------------------
# Per-snapshot
# ---------------------------------------------------------------------------

async def ensure_rate_for_snapshot(db: AsyncSession, snapshot: BalanceSnapshot) -> None:
    """
    Make sure the rate to convert a snapshot into its owner's currency on
    the snapshot's day is stored. Errors are logged, never raised.
    """
    try:
        user = await db.get(User, snapshot.user_id)
        if user is None:
            logger.warning("ensure_rate_for_snapshot: user %s not found", snapshot.user_id)
            return

        snapshot_currency = snapshot.current_balance_currency
        user_currency = user.currency
        if snapshot_currency == user_currency:
            return

        if await exchange_rate_service.get_rate(db, snapshot_currency, user_currency, snapshot.snapshot_date) is not None:
            return

        provider = rate_providers.get_provider_for_pair(snapshot_currency, user_currency)
        rate = await provider.get_rate(snapshot_currency, user_currency, snapshot.snapshot_date)
        if not rate:
            logger.warning(
                "Provider returned 0 for %s:%s on %s, skipping",
                snapshot_currency, user_currency, snapshot.snapshot_date,
            )
            return

        await exchange_rate_service.upsert_rate(
            db, snapshot_currency, user_currency, rate, snapshot.snapshot_date
        )
        logger.info(
            "Stored rate %s:%s for %s", snapshot_currency, user_currency, snapshot.snapshot_date
        )
    except Exception:
        logger.exception("Failed to ensure exchange rate for snapshot %s", snapshot.id)
