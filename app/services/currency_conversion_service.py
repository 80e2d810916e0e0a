"""
Currency conversion service — converts minor-unit amounts using stored rates.

Conversion never calls an external API: it only reads rates already in the
database. When no rate is stored the original amount is returned with
used_fallback=True, and callers treat the converted value as unknown
rather than showing a wrong number.

Rate selection:
  - with a date:    the stored rate for that exact day
  - without a date: the most recent stored rate for the pair

Amounts are in minor units of their own currency, so converting between
currencies with different decimal places (USD cents vs JPY yen vs BTC
satoshis) rescales by the difference in decimals.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from app.money import MoneyWithSign, currency_decimals
from app.services import exchange_rate_service, user_service


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionResult:
    amount: int
    rate: float
    used_fallback: bool


def apply_rate(amount: int, rate: float, from_currency: str, to_currency: str) -> int:
    """Convert an unsigned minor-unit amount, rounding to the nearest minor unit."""
    scale = 10 ** (currency_decimals(to_currency) - currency_decimals(from_currency))
    return round(amount * rate * scale)


async def _lookup_rate(
    db: AsyncSession, from_currency: str, to_currency: str, on_date: date | None
) -> float | None:
    if on_date is not None:
        return await exchange_rate_service.get_rate(db, from_currency, to_currency, on_date)
    latest = await exchange_rate_service.get_latest_rate(db, from_currency, to_currency)
    return latest[0] if latest else None


async def convert(
    db: AsyncSession,
    amount: int,
    from_currency: str,
    to_currency: str,
    on_date: date | None = None,
) -> ConversionResult:
    """
    Convert an amount between currencies.

    Args:
        db: Database session.
        amount: Amount in minor units of from_currency.
        from_currency: Source currency code.
        to_currency: Target currency code.
        on_date: Rate date; None uses the latest stored rate.
    """
    return (await convert_many(db, [(amount, from_currency)], to_currency, on_date))[0]


async def convert_many(
    db: AsyncSession,
    items: list[tuple],
    to_currency: str,
    on_date: date | None = None,
    rate_cache: dict | None = None,
) -> list[ConversionResult]:
    """
    Convert several items into one currency.

    Args:
        items: (amount, currency) pairs, or (amount, currency, rate_date)
               triples when items need rates from different days.
        on_date: Rate date for items without their own.
        rate_cache: Shared {(from, to, date): rate} dict, so several calls
                    can reuse lookups. A fresh one is used when omitted.

    Each distinct (currency, date) hits the database once.
    """
    if rate_cache is None:
        rate_cache = {}

    results = []
    for item in items:
        amount, from_currency = item[0], item[1]
        rate_date = item[2] if len(item) > 2 else on_date
        if from_currency == to_currency:
            results.append(ConversionResult(amount, 1.0, False))
            continue

        key = (from_currency, to_currency, rate_date)
        if key not in rate_cache:
            rate_cache[key] = await _lookup_rate(db, from_currency, to_currency, rate_date)
            if rate_cache[key] is None:
                logger.warning(
                    "No exchange rate for %s:%s on %s, returning unconverted amount",
                    from_currency, to_currency, rate_date or "latest",
                )
        rate = rate_cache[key]
        if rate is None:
            results.append(ConversionResult(amount, 1.0, True))
        else:
            results.append(
                ConversionResult(apply_rate(amount, rate, from_currency, to_currency), rate, False)
            )
    return results


# ---------------------------------------------------------------------------
# Balance conversion for accounts and snapshots
# ---------------------------------------------------------------------------

def _converted_balance(
    balance: MoneyWithSign, result: ConversionResult, to_currency: str
) -> MoneyWithSign | None:
    """Converted balance keeping the original sign; None if no rate was available."""
    if result.used_fallback:
        return None
    return balance.with_amount(result.amount, to_currency)


async def add_converted_balances(
    db: AsyncSession,
    items: list,
    user_id: uuid.UUID,
    on_date: date | None = None,
    date_attr: str | None = None,
    rate_cache: dict | None = None,
) -> list[tuple[object, MoneyWithSign | None, MoneyWithSign | None]]:
    """
    Pair each account/snapshot with its balances converted to the user's currency.

    Args:
        db: Database session.
        items: Objects with current_balance / available_balance properties.
        user_id: Whose currency to convert into (USD if unset).
        on_date: Fixed rate date for every item.
        date_attr: Per-item rate date attribute (e.g. "snapshot_date");
                   overrides on_date when set.
        rate_cache: Passed through to convert_many().

    Returns:
        (item, converted_current_balance, converted_available_balance) tuples.
    """
    target_currency = await user_service.get_currency(db, user_id)

    conversions = []
    for item in items:
        rate_date = getattr(item, date_attr) if date_attr else on_date
        for balance in (item.current_balance, item.available_balance):
            conversions.append((balance.amount, balance.currency, rate_date))
    converted = await convert_many(db, conversions, target_currency, rate_cache=rate_cache)

    results = []
    for index, item in enumerate(items):
        current, available = converted[2 * index], converted[2 * index + 1]
        results.append((
            item,
            _converted_balance(item.current_balance, current, target_currency),
            _converted_balance(item.available_balance, available, target_currency),
        ))
    return results
