"""
Signed money values stored as integer minor units.

Every balance and transaction amount in the system is a MoneyWithSign:
an unsigned integer amount in the currency's smallest unit (cents for USD,
satoshis for BTC, wei for ETH) plus an explicit sign. Keeping the sign out of
the amount mirrors how providers report balances (a credit card "owes" a
positive amount) while still allowing signed arithmetic when needed.

Wire format (API responses and request bodies):
    {"money": {"amount": 19999, "currency": "USD"}, "sign": "positive"}
"""

import enum
from dataclasses import dataclass


class MoneySign(str, enum.Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


# Decimal places per currency. Anything not listed uses 2.
CURRENCY_DECIMALS: dict[str, int] = {
    "JPY": 0,
    "KRW": 0,
    "BTC": 8,
    "ETH": 18,
}


def currency_decimals(currency: str) -> int:
    """Number of minor-unit decimal places for a currency code."""
    return CURRENCY_DECIMALS.get(currency.upper(), 2)


@dataclass(frozen=True)
class Money:
    currency: str
    amount: int


@dataclass(frozen=True)
class MoneyWithSign:
    """
    An unsigned minor-unit amount with an explicit sign.

    Build from integers with ``MoneyWithSign.of(...)``, from provider floats
    with ``from_float``, and from a signed integer with ``from_signed``.
    """

    money: Money
    sign: MoneySign = MoneySign.POSITIVE

    @classmethod
    def of(cls, currency: str, amount: int, sign: MoneySign | str = MoneySign.POSITIVE) -> "MoneyWithSign":
        return cls(Money(currency, abs(int(amount))), MoneySign(sign))

    @classmethod
    def from_float(cls, currency: str, value: float, sign: MoneySign | str) -> "MoneyWithSign":
        """
        Convert a major-unit float (e.g. 199.99 from Plaid) to minor units.

        The absolute value is used; the sign comes from ``sign``.
        """
        minor = round(abs(value) * (10 ** currency_decimals(currency)))
        return cls.of(currency, minor, sign)

    @classmethod
    def from_signed(cls, currency: str, signed_amount: int) -> "MoneyWithSign":
        sign = MoneySign.POSITIVE if signed_amount >= 0 else MoneySign.NEGATIVE
        return cls.of(currency, signed_amount, sign)

    @classmethod
    def zero(cls, currency: str) -> "MoneyWithSign":
        return cls.of(currency, 0, MoneySign.POSITIVE)

    @classmethod
    def from_dict(cls, data: dict) -> "MoneyWithSign":
        return cls.of(data["money"]["currency"], data["money"]["amount"], data["sign"])

    @property
    def amount(self) -> int:
        return self.money.amount

    @property
    def currency(self) -> str:
        return self.money.currency

    @property
    def signed_amount(self) -> int:
        """Positive amounts as-is, negative amounts negated."""
        return self.amount if self.sign == MoneySign.POSITIVE else -self.amount

    def with_amount(self, amount: int, currency: str | None = None) -> "MoneyWithSign":
        """Same sign, different (unsigned) amount and optionally currency."""
        return MoneyWithSign.of(currency or self.currency, amount, self.sign)

    def to_float(self) -> float:
        return self.signed_amount / (10 ** currency_decimals(self.currency))

    def to_dict(self) -> dict:
        return {
            "money": {"amount": self.amount, "currency": self.currency},
            "sign": self.sign.value,
        }
