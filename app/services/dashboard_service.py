"""
Dashboard service — net worth summary and chart for one user.

Net worth is the sum of asset balances minus the sum of liability balances,
all converted into the user's currency. The comparison point is the same
calculation on the snapshots from N days ago, where N depends on the
requested period:

  day   -> 1
  week  -> 7
  month -> 30
  year  -> 365

Accounts whose balance can't be converted (no rate stored) are counted at
their original amount, so a missing rate skews the total instead of hiding
the account entirely.
"""

import logging
import uuid
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.dates import date_range, today_in_timezone
from app.models.bank_link import BankLink
from app.money import MoneyWithSign
from app.services import account_service, balance_snapshot_service, user_service


logger = logging.getLogger(__name__)

ASSET_TYPES = ("depository", "investment", "brokerage", "other", "crypto_wallet")
LIABILITY_TYPES = ("credit", "loan")

PERIOD_DAYS = {
    "day": 1,
    "week": 7,
    "month": 30,
    "year": 365,
}


def _signed(balance: dict | None) -> int | None:
    if balance is None:
        return None
    return MoneyWithSign.from_dict(balance).signed_amount


def _display_balance(item: dict) -> int:
    """Converted current balance when available, else the original."""
    converted = _signed(item.get("converted_current_balance"))
    return converted if converted is not None else _signed(item["current_balance"])


def calculate_change_percent(current: int, previous: int | None) -> float | None:
    if previous is None or previous == 0:
        return None
    return round((current - previous) / abs(previous) * 100, 1)


def _net_worth(items: list[dict]) -> int:
    total = 0
    for item in items:
        balance = _display_balance(item)
        if item["type"] in ASSET_TYPES:
            total += balance
        elif item["type"] in LIABILITY_TYPES:
            total -= abs(balance)
    return total


def _with_types(snapshots: dict, account_types: dict) -> list[dict]:
    """Snapshots don't carry the account type; take it from the account."""
    return [
        {**snapshot, "type": account_types.get(account_id)}
        for account_id, snapshot in snapshots.items()
    ]


async def _institution_names(db: AsyncSession, user_id: uuid.UUID) -> dict[uuid.UUID, str | None]:
    result = await db.execute(
        select(BankLink.id, BankLink.institution_name).where(BankLink.user_id == user_id)
    )
    return {link_id: name for link_id, name in result.all()}


async def get_summary(db: AsyncSession, user_id: uuid.UUID, period: str = "month") -> dict:
    """
    Build the dashboard summary.

    Returns:
        Dict matching DashboardSummary: net worth, change against the start
        of the period, daily chart points, and assets / liabilities lists.
    """
    accounts = await account_service.get_accounts_with_conversion(db, user_id)
    target_currency = await user_service.get_currency(db, user_id)

    if not accounts:
        return {
            "net_worth": MoneyWithSign.zero("USD").to_dict(),
            "change_percent": None,
            "comparison_period": period,
            "chart_data": [],
            "assets": [],
            "liabilities": [],
        }

    days = PERIOD_DAYS.get(period, 30)
    today = today_in_timezone(await user_service.get_timezone(db, user_id))
    comparison_date = today - timedelta(days=days)

    # Shared by the comparison lookup and every chart day
    rate_cache: dict = {}
    previous = await balance_snapshot_service.find_snapshots_for_date_with_conversion(
        db, user_id, comparison_date, rate_cache
    )
    institutions = await _institution_names(db, user_id)

    assets: list[dict] = []
    liabilities: list[dict] = []
    for item in accounts:
        previous_item = previous.get(item["id"])
        summary = {
            "id": item["id"],
            "name": item["name"],
            "type": item["type"],
            "sub_type": item["sub_type"],
            "current_balance": item["current_balance"],
            "converted_current_balance": item["converted_current_balance"],
            "change_percent": calculate_change_percent(
                _display_balance(item),
                _display_balance(previous_item) if previous_item else None,
            ),
            "institution_name": institutions.get(item["bank_link_id"]),
        }
        if item["type"] in ASSET_TYPES:
            assets.append(summary)
        elif item["type"] in LIABILITY_TYPES:
            liabilities.append(summary)

    account_types = {item["id"]: item["type"] for item in accounts}
    net_worth = _net_worth(accounts)
    previous_net_worth = _net_worth(_with_types(previous, account_types)) if previous else None

    chart_data = await get_chart_data(
        db, user_id, comparison_date, today, target_currency, account_types, rate_cache
    )

    logger.info(
        "Dashboard summary: user_id=%s period=%s accounts=%d", user_id, period, len(accounts)
    )
    return {
        "net_worth": MoneyWithSign.from_signed(target_currency, net_worth).to_dict(),
        "change_percent": calculate_change_percent(net_worth, previous_net_worth),
        "comparison_period": period,
        "chart_data": chart_data,
        "assets": assets,
        "liabilities": liabilities,
    }


async def get_chart_data(
    db: AsyncSession,
    user_id: uuid.UUID,
    start_date: date,
    end_date: date,
    target_currency: str,
    account_types: dict[uuid.UUID, str],
    rate_cache: dict | None = None,
) -> list[dict]:
    """
    Daily net worth points between start_date and end_date.

    The chart starts at the first day that has any snapshot; days after
    that with no snapshots at all get a None value.
    """
    chart: list[dict] = []
    for day in date_range(start_date, end_date):
        snapshots = await balance_snapshot_service.find_snapshots_for_date_with_conversion(
            db, user_id, day, rate_cache
        )
        if not snapshots:
            if chart:
                chart.append({"date": day, "value": None})
            continue
        net_worth = _net_worth(_with_types(snapshots, account_types))
        chart.append({
            "date": day,
            "value": MoneyWithSign.from_signed(target_currency, net_worth).to_dict(),
        })
    return chart
