"""
Exchange rate service — storage and lookup of daily currency rates.

Storage:
  Every rate is stored once per normalized pair and day (see
  app/currency.py). upsert_rate() accepts either direction and stores the
  inverse when the pair had to be flipped; lookups invert back so callers
  always get "1 base = rate target" in the direction they asked for.

Fill-forward (get_rates_for_date_range):
  Rates are not published every day (weekends, holidays) and backfill can
  lag, so a date-range lookup fills gaps:
    - a stored rate for the exact day is used as-is   (source "DB")
    - otherwise the closest known rate is used         (source "FILLED"),
      preferring the last rate before the day and falling back to the
      first rate after it
  A pair with no stored rate at all is an error: there is nothing to fill from.

Fetching from the upstream APIs lives in app/providers/rate_providers.py;
fetch_rate() is the only function here that calls a provider.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.currency import NormalizedPair, normalize_currency_pair, pair_key
from app.dates import date_range, utc_today
from app.exceptions import ExchangeRateUnavailableError
from app.models.exchange_rate import ExchangeRate
from app.providers import rate_providers


logger = logging.getLogger(__name__)


def _apply_direction(rate: Decimal | float, inverted: bool) -> float:
    value = float(rate)
    return 1 / value if inverted else value


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

async def upsert_rate(
    db: AsyncSession,
    base_currency: str,
    target_currency: str,
    rate: float,
    rate_date: date,
) -> ExchangeRate:
    """
    Create or update the rate for a pair on a day.

    The pair is normalized before storing; when normalization flips the
    pair, 1 / rate is stored instead.
    """
    base, target, inverted = normalize_currency_pair(base_currency, target_currency)
    normalized_rate = Decimal(str(_apply_direction(rate, inverted)))

    result = await db.execute(
        select(ExchangeRate).where(
            ExchangeRate.base_currency == base,
            ExchangeRate.target_currency == target,
            ExchangeRate.rate_date == rate_date,
        )
    )
    existing = result.scalar_one_or_none()

    if existing is not None:
        existing.rate = normalized_rate
        await db.flush()
        return existing

    entity = ExchangeRate(
        base_currency=base,
        target_currency=target,
        rate=normalized_rate,
        rate_date=rate_date,
    )
    db.add(entity)
    await db.flush()
    return entity


# ---------------------------------------------------------------------------
# Single-rate lookups
# ---------------------------------------------------------------------------

async def get_rate(
    db: AsyncSession,
    base_currency: str,
    target_currency: str,
    rate_date: date,
) -> float | None:
    """
    Stored rate for a pair on an exact day, in the requested direction.

    Returns None when the currencies are equal or nothing is stored.
    """
    if base_currency == target_currency:
        return None

    base, target, inverted = normalize_currency_pair(base_currency, target_currency)
    result = await db.execute(
        select(ExchangeRate.rate).where(
            ExchangeRate.base_currency == base,
            ExchangeRate.target_currency == target,
            ExchangeRate.rate_date == rate_date,
        )
    )
    stored = result.scalar_one_or_none()
    if stored is None:
        return None
    return _apply_direction(stored, inverted)


async def get_latest_rate(
    db: AsyncSession,
    base_currency: str,
    target_currency: str,
) -> tuple[float, date] | None:
    """Most recent stored rate for a pair, as (rate, rate_date), or None."""
    if base_currency == target_currency:
        return None

    base, target, inverted = normalize_currency_pair(base_currency, target_currency)
    result = await db.execute(
        select(ExchangeRate)
        .where(
            ExchangeRate.base_currency == base,
            ExchangeRate.target_currency == target,
        )
        .order_by(ExchangeRate.rate_date.desc())
        .limit(1)
    )
    latest = result.scalar_one_or_none()
    if latest is None:
        return None
    return _apply_direction(latest.rate, inverted), latest.rate_date


async def get_rates_for_date(db: AsyncSession, rate_date: date) -> list[ExchangeRate]:
    """All stored (normalized) rates for one day."""
    result = await db.execute(
        select(ExchangeRate)
        .where(ExchangeRate.rate_date == rate_date)
        .order_by(ExchangeRate.base_currency, ExchangeRate.target_currency)
    )
    return list(result.scalars().all())


async def fetch_rate(
    db: AsyncSession,
    base_currency: str,
    target_currency: str,
    rate_date: date | None = None,
) -> float:
    """
    Rate for a pair on a day, fetched from the upstream provider and stored
    when the database does not have it yet.

    Raises:
        RateProviderError: If the provider call fails.
    """
    if base_currency == target_currency:
        return 1.0

    rate_date = rate_date or utc_today()
    stored = await get_rate(db, base_currency, target_currency, rate_date)
    if stored is not None:
        return stored

    provider = rate_providers.get_provider_for_pair(base_currency, target_currency)
    fetched = await provider.get_rate(base_currency, target_currency, rate_date)
    await upsert_rate(db, base_currency, target_currency, fetched, rate_date)
    return fetched


# ---------------------------------------------------------------------------
# Backfill support
# ---------------------------------------------------------------------------

async def get_existing_rate_keys(
    db: AsyncSession,
    base_currency: str,
    target_currencies: list[str],
    start_date: date,
    end_date: date,
) -> set[str]:
    """
    Which (target, day) combinations already have a stored rate.

    Returns:
        Set of "TARGET:YYYY-MM-DD" keys, using the caller's (non-normalized)
        target currency so the caller can look up what it passed in.
    """
    if not target_currencies:
        return set()

    normalized = [normalize_currency_pair(base_currency, t) for t in target_currencies]
    bases = {n.base for n in normalized}
    targets = {n.target for n in normalized}

    result = await db.execute(
        select(ExchangeRate.base_currency, ExchangeRate.target_currency, ExchangeRate.rate_date)
        .where(
            ExchangeRate.base_currency.in_(bases),
            ExchangeRate.target_currency.in_(targets),
            ExchangeRate.rate_date >= start_date,
            ExchangeRate.rate_date <= end_date,
        )
    )

    existing: set[str] = set()
    for row_base, row_target, row_date in result.all():
        for target_currency, pair in zip(target_currencies, normalized):
            if row_base == pair.base and row_target == pair.target:
                existing.add(f"{target_currency}:{row_date.isoformat()}")
    return existing


# ---------------------------------------------------------------------------
# Date-range lookup with fill-forward
# ---------------------------------------------------------------------------

async def get_rates_for_date_range(
    db: AsyncSession,
    currency_pairs: list[tuple[str, str]],
    start_date: date,
    end_date: date,
) -> list[dict]:
    """
    Daily rates for several pairs across an inclusive date range.

    Args:
        db: Database session.
        currency_pairs: (base, target) tuples in the caller's direction.
        start_date: First day (inclusive).
        end_date: Last day (inclusive).

    Returns:
        [{"date": date, "rates": [{"base_currency", "target_currency",
        "rate", "source"}]}] with one entry per day.

    Raises:
        ExchangeRateUnavailableError: If any pair has no stored rate at all.
    """
    pairs: list[tuple[tuple[str, str], NormalizedPair]] = [
        ((base, target), normalize_currency_pair(base, target))
        for base, target in currency_pairs
    ]
    if not pairs:
        return [{"date": day, "rates": []} for day in date_range(start_date, end_date)]

    unique_pairs = {pair_key(n.base, n.target): n for _, n in pairs}
    pair_filter = or_(
        *[
            and_(ExchangeRate.base_currency == n.base, ExchangeRate.target_currency == n.target)
            for n in unique_pairs.values()
        ]
    )

    # Rows inside the range
    in_range = await db.execute(
        select(ExchangeRate).where(
            pair_filter,
            ExchangeRate.rate_date >= start_date,
            ExchangeRate.rate_date <= end_date,
        )
    )
    rows = list(in_range.scalars().all())

    # Last row before the range per pair (fill-forward source)
    rows += await _boundary_rows(db, pair_filter, before=start_date)
    # First row after the range per pair (fallback when nothing precedes the range)
    rows += await _boundary_rows(db, pair_filter, after=end_date)

    rate_map: dict[str, float] = {}
    pair_dates: dict[str, list[tuple[date, float]]] = {key: [] for key in unique_pairs}
    for row in rows:
        key = pair_key(row.base_currency, row.target_currency)
        rate_map[f"{key}:{row.rate_date.isoformat()}"] = float(row.rate)
        pair_dates.setdefault(key, []).append((row.rate_date, float(row.rate)))

    missing = [key for key, known in pair_dates.items() if not known]
    if missing:
        raise ExchangeRateUnavailableError(
            f"No exchange rates found for currency pairs: {', '.join(missing)}"
        )
    for known in pair_dates.values():
        known.sort()

    results = []
    for day in date_range(start_date, end_date):
        day_rates = []
        for (orig_base, orig_target), normalized in pairs:
            key = pair_key(normalized.base, normalized.target)
            db_rate = rate_map.get(f"{key}:{day.isoformat()}")
            if db_rate is not None:
                rate, source = db_rate, "DB"
            else:
                rate, source = _find_closest_rate(pair_dates[key], day), "FILLED"

            day_rates.append(
                {
                    "base_currency": orig_base,
                    "target_currency": orig_target,
                    "rate": 1 / rate if normalized.inverted else rate,
                    "source": source,
                }
            )
        results.append({"date": day, "rates": day_rates})

    return results


async def _boundary_rows(
    db: AsyncSession,
    pair_filter,
    before: date | None = None,
    after: date | None = None,
) -> list[ExchangeRate]:
    """
    For each pair matching ``pair_filter``, the row nearest to (but outside)
    the range: the latest row before ``before`` or the earliest after ``after``.
    """
    if before is not None:
        bound = func.max(ExchangeRate.rate_date).label("bound")
        date_clause = ExchangeRate.rate_date < before
    else:
        bound = func.min(ExchangeRate.rate_date).label("bound")
        date_clause = ExchangeRate.rate_date > after

    nearest = (
        select(ExchangeRate.base_currency, ExchangeRate.target_currency, bound)
        .where(pair_filter, date_clause)
        .group_by(ExchangeRate.base_currency, ExchangeRate.target_currency)
        .subquery()
    )
    result = await db.execute(
        select(ExchangeRate).join(
            nearest,
            and_(
                ExchangeRate.base_currency == nearest.c.base_currency,
                ExchangeRate.target_currency == nearest.c.target_currency,
                ExchangeRate.rate_date == nearest.c.bound,
            ),
        )
    )
    return list(result.scalars().all())


def _find_closest_rate(sorted_rates: list[tuple[date, float]], target_date: date) -> float:
    """Last known rate on or before target_date, else the first one after it."""
    last_known = None
    next_known = None
    for rate_date, rate in sorted_rates:
        if rate_date <= target_date:
            last_known = rate
        else:
            next_known = rate
            break

    if last_known is not None:
        return last_known
    if next_known is not None:
        return next_known
    raise ExchangeRateUnavailableError(f"No rate found for date {target_date.isoformat()}")
