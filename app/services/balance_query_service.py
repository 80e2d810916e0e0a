"""
Balance query service — per-day balances for a set of accounts over a date range.

For every calendar day in [start_date, end_date] and every requested account
the result holds the account's balances on that day:

  1. The snapshot for that exact day, if one exists (synced_at is set)
  2. Otherwise the most recent earlier snapshot (fill-forward, synced_at None)
  3. Otherwise a zero balance in the account's currency

Each balance is also converted into the user's currency using the daily
rates from exchange_rate_service.get_rates_for_date_range(), which fills
rate gaps the same way. If rates cannot be loaded at all, balances are
returned unconverted rather than failing the query.

Effective balance:
  Investment and brokerage accounts report cash as "available" and
  holdings as "current", so their effective balance is the signed sum of
  both. Every other account type uses the current balance.

Query shape:
  Snapshots are loaded in two queries (the range itself, plus the latest
  snapshot before the range per account) and grouped in memory, so the cost
  does not grow with the number of days.
"""

import logging
import uuid
from datetime import date

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.currency import pair_key
from app.dates import date_range
from app.exceptions import BadRequestError, SpliceAPIError
from app.models.account import Account, AccountType
from app.models.balance_snapshot import BalanceSnapshot
from app.models.mixins import as_utc
from app.money import MoneyWithSign
from app.schemas.account import AccountResponse
from app.services import exchange_rate_service, user_service
from app.services.currency_conversion_service import apply_rate


logger = logging.getLogger(__name__)

COMBINED_BALANCE_TYPES = (AccountType.INVESTMENT.value, AccountType.BROKERAGE.value)


async def get_snapshot_balances_for_date_range(
    db: AsyncSession,
    account_ids: list[uuid.UUID],
    start_date: date,
    end_date: date,
    user_id: uuid.UUID,
) -> list[dict]:
    """
    Daily balances for the given accounts, converted to the user's currency.

    Accounts that don't exist or belong to another user are logged and left
    out of the result.

    Returns:
        [{"date": date, "balances": {account_id: {...}}}], one entry per day;
        [] when none of the accounts are valid.
    """
    logger.info(
        "Getting snapshot balances: accounts=%d start=%s end=%s",
        len(account_ids), start_date, end_date,
    )
    target_currency = await user_service.get_currency(db, user_id)

    # Step 1: ownership check + account details
    result = await db.execute(
        select(Account).where(Account.id.in_(account_ids), Account.user_id == user_id)
    )
    accounts = {account.id: account for account in result.scalars().all()}

    missing_ids = [str(a) for a in account_ids if a not in accounts]
    if missing_ids:
        logger.warning("Accounts not found or not owned by user: %s", missing_ids)

    valid_ids = [a for a in dict.fromkeys(account_ids) if a in accounts]
    if not valid_ids:
        return []

    # Step 2: snapshots in range + latest snapshot before range per account
    snapshots_by_account = await _load_snapshots(db, valid_ids, user_id, start_date, end_date)

    # Step 3: daily exchange rates for every (account currency, user currency) pair
    rates_by_date = await _fetch_exchange_rates(
        db, list(accounts.values()), target_currency, start_date, end_date
    )

    # Step 4: one entry per day
    account_payloads = {
        account_id: AccountResponse.model_validate(account).model_dump()
        for account_id, account in accounts.items()
    }
    results = []
    for day in date_range(start_date, end_date):
        balances = {}
        for account_id in valid_ids:
            account = accounts[account_id]
            snapshot = _find_snapshot_for_date(snapshots_by_account.get(account_id), day)
            balances[str(account_id)] = _build_account_balance(
                account,
                account_payloads[account_id],
                snapshot,
                day,
                target_currency,
                rates_by_date.get(day, {}),
            )
        results.append({"date": day, "balances": balances})

    return results


async def get_balances_for_date_range(
    db: AsyncSession,
    account_ids: list[uuid.UUID],
    start_date: date,
    end_date: date,
    user_id: uuid.UUID,
) -> list[dict]:
    """
    Daily balances for specific accounts.

    Raises:
        BadRequestError: If any requested account is a manual account.
    """
    result = await db.execute(
        select(Account).where(Account.id.in_(account_ids), Account.user_id == user_id)
    )
    manual_ids = [str(a.id) for a in result.scalars().all() if a.bank_link_id is None]
    if manual_ids:
        raise BadRequestError(
            "Manual accounts are not yet supported for balance queries: "
            + ", ".join(manual_ids)
        )

    return await get_snapshot_balances_for_date_range(db, account_ids, start_date, end_date, user_id)


async def get_all_balances_for_date_range(
    db: AsyncSession,
    start_date: date,
    end_date: date,
    user_id: uuid.UUID,
) -> list[dict]:
    """Daily balances for every linked account of the user."""
    result = await db.execute(
        select(Account.id).where(Account.user_id == user_id, Account.bank_link_id.is_not(None))
    )
    linked_ids = list(result.scalars().all())
    if not linked_ids:
        return []
    return await get_snapshot_balances_for_date_range(db, linked_ids, start_date, end_date, user_id)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _load_snapshots(
    db: AsyncSession,
    account_ids: list[uuid.UUID],
    user_id: uuid.UUID,
    start_date: date,
    end_date: date,
) -> dict[uuid.UUID, dict[date, BalanceSnapshot]]:
    in_range = await db.execute(
        select(BalanceSnapshot).where(
            BalanceSnapshot.account_id.in_(account_ids),
            BalanceSnapshot.user_id == user_id,
            BalanceSnapshot.snapshot_date >= start_date,
            BalanceSnapshot.snapshot_date <= end_date,
        )
    )

    latest_prior = (
        select(
            BalanceSnapshot.account_id,
            func.max(BalanceSnapshot.snapshot_date).label("prior_date"),
        )
        .where(
            BalanceSnapshot.account_id.in_(account_ids),
            BalanceSnapshot.user_id == user_id,
            BalanceSnapshot.snapshot_date < start_date,
        )
        .group_by(BalanceSnapshot.account_id)
        .subquery()
    )
    prior = await db.execute(
        select(BalanceSnapshot).join(
            latest_prior,
            and_(
                BalanceSnapshot.account_id == latest_prior.c.account_id,
                BalanceSnapshot.snapshot_date == latest_prior.c.prior_date,
            ),
        )
    )

    grouped: dict[uuid.UUID, dict[date, BalanceSnapshot]] = {}
    for snapshot in [*prior.scalars().all(), *in_range.scalars().all()]:
        grouped.setdefault(snapshot.account_id, {})[snapshot.snapshot_date] = snapshot
    return grouped


async def _fetch_exchange_rates(
    db: AsyncSession,
    accounts: list[Account],
    target_currency: str,
    start_date: date,
    end_date: date,
) -> dict[date, dict[str, dict]]:
    """date -> {"BASE:TARGET": rate-with-source}; {} if rates can't be loaded."""
    pairs = list(
        dict.fromkeys(
            (account.currency, target_currency)
            for account in accounts
            if account.currency != target_currency
        )
    )
    if not pairs:
        return {}

    try:
        responses = await exchange_rate_service.get_rates_for_date_range(db, pairs, start_date, end_date)
    except SpliceAPIError as exc:
        logger.error("Failed to fetch exchange rates: %s", exc.detail)
        return {}

    return {
        response["date"]: {
            pair_key(rate["base_currency"], rate["target_currency"]): rate
            for rate in response["rates"]
        }
        for response in responses
    }


def _find_snapshot_for_date(
    snapshots: dict[date, BalanceSnapshot] | None, day: date
) -> BalanceSnapshot | None:
    """Exact match, else the most recent snapshot on or before ``day``."""
    if not snapshots:
        return None
    exact = snapshots.get(day)
    if exact is not None:
        return exact
    earlier = [d for d in snapshots if d <= day]
    return snapshots[max(earlier)] if earlier else None


def _effective_balance(
    account_type: str, available: MoneyWithSign, current: MoneyWithSign
) -> MoneyWithSign:
    if account_type in COMBINED_BALANCE_TYPES:
        return MoneyWithSign.from_signed(
            available.currency, available.signed_amount + current.signed_amount
        )
    return current


def _with_conversion(balance: MoneyWithSign, target_currency: str, day_rates: dict[str, dict]) -> dict:
    result: dict = {"balance": balance.to_dict()}
    if balance.currency == target_currency:
        return result

    rate_info = day_rates.get(pair_key(balance.currency, target_currency))
    if rate_info is not None:
        converted = apply_rate(balance.amount, rate_info["rate"], balance.currency, target_currency)
        result["converted_balance"] = balance.with_amount(converted, target_currency).to_dict()
        result["exchange_rate"] = rate_info
    return result


def _build_account_balance(
    account: Account,
    account_payload: dict,
    snapshot: BalanceSnapshot | None,
    day: date,
    target_currency: str,
    day_rates: dict[str, dict],
) -> dict:
    if snapshot is not None:
        available = snapshot.available_balance
        current = snapshot.current_balance
    else:
        available = MoneyWithSign.zero(account.available_balance_currency)
        current = MoneyWithSign.zero(account.current_balance_currency)

    effective = _effective_balance(account.type, available, current)
    synced_at = as_utc(snapshot.updated_at) if snapshot is not None and snapshot.snapshot_date == day else None

    return {
        "account": account_payload,
        "available_balance": _with_conversion(available, target_currency, day_rates),
        "current_balance": _with_conversion(current, target_currency, day_rates),
        "effective_balance": _with_conversion(effective, target_currency, day_rates),
        "synced_at": synced_at,
    }
