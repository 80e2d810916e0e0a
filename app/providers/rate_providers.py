"""
Exchange rate providers — thin async clients over public rate APIs.

  FiatExchangeRateProvider    Frankfurter (ECB reference rates), fiat only
  CryptoExchangeRateProvider  CoinGecko, ETH/BTC priced in fiat

Both expose the same three calls:

  get_rate(base, target, day=None)                  -> float (raises on failure)
  get_latest_rates(base, targets)                   -> {target: rate}
  get_historical_rates(base, targets, start, end)   -> {day: {target: rate}}

The bulk calls log and return {} (or skip the failing target) rather than
raising, because they run inside batch jobs where one bad pair must not
stop the rest. These classes never touch the database; storing results is
the backfill service's job.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone

import httpx

from app.config import settings
from app.currency import is_crypto_currency
from app.exceptions import RateProviderError


logger = logging.getLogger(__name__)


class _HttpProvider:
    """Shared httpx plumbing. ``transport`` lets tests plug in httpx.MockTransport."""

    name = "base"

    def __init__(self, base_url: str, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    async def _get_json(self, path: str, params: dict | None = None) -> dict:
        async with self._client() as client:
            response = await client.get(path, params=params)
            response.raise_for_status()
            return response.json()


# ---------------------------------------------------------------------------
# Fiat (Frankfurter)
# ---------------------------------------------------------------------------

class FiatExchangeRateProvider(_HttpProvider):
    name = "frankfurter"

    def __init__(self, base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(base_url or settings.FRANKFURTER_BASE_URL, transport)

    async def get_rate(self, base_currency: str, target_currency: str, day: date | None = None) -> float:
        """
        Single rate from Frankfurter. For weekends/holidays the API answers
        with the previous business day's rate.

        Raises:
            RateProviderError: If the request fails or the currency is missing.
        """
        path = f"/{day.isoformat()}" if day else "/latest"
        try:
            data = await self._get_json(path, {"base": base_currency, "symbols": target_currency})
        except httpx.HTTPError as exc:
            raise RateProviderError(
                f"Frankfurter request failed for {base_currency}:{target_currency}: {exc}"
            ) from exc

        rate = (data.get("rates") or {}).get(target_currency)
        if rate is None:
            raise RateProviderError(
                f"Frankfurter returned no rate for {base_currency}:{target_currency}"
            )
        return float(rate)

    async def get_latest_rates(self, base_currency: str, target_currencies: list[str]) -> dict[str, float]:
        """Latest rates for several targets in one request; {} on failure."""
        if not target_currencies:
            return {}
        try:
            data = await self._get_json(
                "/latest",
                {"base": base_currency, "symbols": ",".join(target_currencies)},
            )
        except httpx.HTTPError as exc:
            logger.error("Failed to fetch latest rates for %s: %s", base_currency, exc)
            return {}
        return {cur: float(rate) for cur, rate in (data.get("rates") or {}).items()}

    async def get_historical_rates(
        self,
        base_currency: str,
        target_currencies: list[str],
        start_date: date,
        end_date: date,
    ) -> dict[date, dict[str, float]]:
        """Daily rates for a range (business days only); {} on failure."""
        if not target_currencies:
            return {}
        try:
            data = await self._get_json(
                f"/{start_date.isoformat()}..{end_date.isoformat()}",
                {"base": base_currency, "symbols": ",".join(target_currencies)},
            )
        except httpx.HTTPError as exc:
            logger.error(
                "Failed to fetch historical rates for %s (%s..%s): %s",
                base_currency, start_date, end_date, exc,
            )
            return {}

        return {
            date.fromisoformat(day): {cur: float(rate) for cur, rate in rates.items()}
            for day, rates in (data.get("rates") or {}).items()
        }


# ---------------------------------------------------------------------------
# Crypto (CoinGecko)
# ---------------------------------------------------------------------------

COINGECKO_IDS = {
    "ETH": "ethereum",
    "BTC": "bitcoin",
}


class CryptoExchangeRateProvider(_HttpProvider):
    name = "coingecko"

    def __init__(self, base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(base_url or settings.COINGECKO_BASE_URL, transport)

    @staticmethod
    def _coin_id(currency: str) -> str:
        coin_id = COINGECKO_IDS.get(currency.upper())
        if coin_id is None:
            raise RateProviderError(f"Unsupported crypto currency: {currency}")
        return coin_id

    async def get_rate(self, base_currency: str, target_currency: str, day: date | None = None) -> float:
        """
        Price of one unit of a crypto currency in a fiat currency.

        Fiat→crypto pairs are answered with the inverse of the crypto→fiat price.

        Raises:
            RateProviderError: On unsupported currencies or request failure.
        """
        if not is_crypto_currency(base_currency) and is_crypto_currency(target_currency):
            price = await self.get_rate(target_currency, base_currency, day)
            return 1 / price if price else 0.0

        coin_id = self._coin_id(base_currency)
        vs_currency = target_currency.lower()

        try:
            if day is None or day >= datetime.now(timezone.utc).date():
                data = await self._get_json(
                    "/simple/price",
                    {"ids": coin_id, "vs_currencies": vs_currency},
                )
                price = (data.get(coin_id) or {}).get(vs_currency)
            else:
                data = await self._get_json(
                    f"/coins/{coin_id}/history",
                    {"date": day.strftime("%d-%m-%Y"), "localization": "false"},
                )
                price = ((data.get("market_data") or {}).get("current_price") or {}).get(vs_currency)
        except httpx.HTTPError as exc:
            raise RateProviderError(
                f"CoinGecko request failed for {base_currency}:{target_currency}: {exc}"
            ) from exc

        if price is None:
            raise RateProviderError(
                f"CoinGecko returned no price for {base_currency}:{target_currency}"
            )
        return float(price)

    async def get_latest_rates(self, base_currency: str, target_currencies: list[str]) -> dict[str, float]:
        """Current prices in several fiat currencies; {} on failure."""
        if not target_currencies:
            return {}
        try:
            coin_id = self._coin_id(base_currency)
            data = await self._get_json(
                "/simple/price",
                {"ids": coin_id, "vs_currencies": ",".join(t.lower() for t in target_currencies)},
            )
        except (httpx.HTTPError, RateProviderError) as exc:
            logger.error("Failed to fetch latest crypto rates for %s: %s", base_currency, exc)
            return {}

        prices = data.get(coin_id) or {}
        return {
            target: float(prices[target.lower()])
            for target in target_currencies
            if prices.get(target.lower()) is not None
        }

    async def get_historical_rates(
        self,
        base_currency: str,
        target_currencies: list[str],
        start_date: date,
        end_date: date,
    ) -> dict[date, dict[str, float]]:
        """
        Daily prices over a range from market_chart/range.

        CoinGecko returns several price points per day; the last point of
        each UTC day is used. A failing target is logged and skipped.
        """
        try:
            coin_id = self._coin_id(base_currency)
        except RateProviderError as exc:
            logger.error("%s", exc)
            return {}

        start_ts = int(datetime.combine(start_date, time.min, tzinfo=timezone.utc).timestamp())
        end_ts = int(
            datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc).timestamp()
        )

        results: dict[date, dict[str, float]] = {}
        for target in target_currencies:
            try:
                data = await self._get_json(
                    f"/coins/{coin_id}/market_chart/range",
                    {"vs_currency": target.lower(), "from": start_ts, "to": end_ts},
                )
            except httpx.HTTPError as exc:
                logger.error(
                    "Failed to fetch historical crypto rates for %s:%s: %s",
                    base_currency, target, exc,
                )
                continue

            for timestamp_ms, price in data.get("prices") or []:
                day = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()
                if start_date <= day <= end_date:
                    # Later points overwrite earlier ones: last price of the day wins
                    results.setdefault(day, {})[target] = float(price)

        return results


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------

fiat_provider = FiatExchangeRateProvider()
crypto_provider = CryptoExchangeRateProvider()


def get_provider_for_currency(currency: str) -> FiatExchangeRateProvider | CryptoExchangeRateProvider:
    """CoinGecko for crypto currencies, Frankfurter for everything else."""
    return crypto_provider if is_crypto_currency(currency) else fiat_provider


def get_provider_for_pair(base_currency: str, target_currency: str):
    """Crypto provider when either side of the pair is a crypto currency."""
    if is_crypto_currency(base_currency) or is_crypto_currency(target_currency):
        return crypto_provider
    return fiat_provider
