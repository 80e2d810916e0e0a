"""
Currency classification and currency pair normalization.

Exchange rates are stored in one canonical direction per pair so that
USD→EUR and EUR→USD never both exist:

  - If either side is USD, USD is the target   (EUR:USD, ETH:USD)
  - Otherwise the pair is sorted alphabetically (EUR:GBP, not GBP:EUR)

``inverted`` tells the caller whether the requested direction was flipped,
in which case a stored rate must be inverted (1 / rate) on the way in and
on the way out.
"""

from typing import NamedTuple


CRYPTO_CURRENCIES = ("ETH", "BTC")


class NormalizedPair(NamedTuple):
    base: str
    target: str
    inverted: bool


def is_crypto_currency(currency: str) -> bool:
    return currency.upper() in CRYPTO_CURRENCIES


def normalize_currency_pair(base_currency: str, target_currency: str) -> NormalizedPair:
    """
    Canonicalize a (base, target) pair.

    Examples:
        >>> normalize_currency_pair("USD", "EUR")
        NormalizedPair(base='EUR', target='USD', inverted=True)
        >>> normalize_currency_pair("GBP", "EUR")
        NormalizedPair(base='EUR', target='GBP', inverted=True)
    """
    if base_currency == "USD":
        return NormalizedPair(target_currency, "USD", True)
    if target_currency == "USD":
        return NormalizedPair(base_currency, "USD", False)
    if base_currency <= target_currency:
        return NormalizedPair(base_currency, target_currency, False)
    return NormalizedPair(target_currency, base_currency, True)


def pair_key(base_currency: str, target_currency: str) -> str:
    return f"{base_currency}:{target_currency}"
