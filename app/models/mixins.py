"""
Column mixins shared by several models.

  - TimestampMixin: created_at / updated_at audit columns
  - MinorUnits: column type for integer amounts wider than BIGINT (wei)
  - BalanceColumnsMixin: current and available balance stored as
    (amount, currency, sign) column triples, exposed as MoneyWithSign
    properties

Storing money as three plain columns keeps currency and sign queryable
while the Python side works with MoneyWithSign values.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from app.money import MoneySign, MoneyWithSign


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MinorUnits(TypeDecorator):
    """
    Unsigned minor-unit amount of arbitrary size, read back as int.

    ETH balances are kept in wei, so anything above ~9.22 ETH overflows a
    64-bit BIGINT. PostgreSQL gets NUMERIC(78, 0), which fits any uint256.
    SQLite has no exact wide numeric type, so the digits are stored as text.
    """

    impl = Numeric(78, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(78))
        return dialect.type_descriptor(Numeric(78, 0))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "sqlite":
            return str(int(value))
        return Decimal(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class BalanceColumnsMixin:
    # Current balance (amount in minor units, unsigned)
    current_balance_amount: Mapped[int] = mapped_column(MinorUnits, nullable=False, default=0)
    current_balance_currency: Mapped[str] = mapped_column(String(10), nullable=False, default="USD")
    current_balance_sign: Mapped[str] = mapped_column(
        String(10), nullable=False, default=MoneySign.POSITIVE.value
    )

    # Available balance
    available_balance_amount: Mapped[int] = mapped_column(MinorUnits, nullable=False, default=0)
    available_balance_currency: Mapped[str] = mapped_column(String(10), nullable=False, default="USD")
    available_balance_sign: Mapped[str] = mapped_column(
        String(10), nullable=False, default=MoneySign.POSITIVE.value
    )

    @property
    def current_balance(self) -> MoneyWithSign:
        return MoneyWithSign.of(
            self.current_balance_currency,
            int(self.current_balance_amount or 0),
            self.current_balance_sign or MoneySign.POSITIVE,
        )

    @current_balance.setter
    def current_balance(self, value: MoneyWithSign) -> None:
        self.current_balance_amount = value.amount
        self.current_balance_currency = value.currency
        self.current_balance_sign = value.sign.value

    @property
    def available_balance(self) -> MoneyWithSign:
        return MoneyWithSign.of(
            self.available_balance_currency,
            int(self.available_balance_amount or 0),
            self.available_balance_sign or MoneySign.POSITIVE,
        )

    @available_balance.setter
    def available_balance(self, value: MoneyWithSign) -> None:
        self.available_balance_amount = value.amount
        self.available_balance_currency = value.currency
        self.available_balance_sign = value.sign.value

    @property
    def currency(self) -> str:
        return self.current_balance_currency


def as_utc(value: datetime | None) -> datetime | None:
    """
    Attach UTC to naive datetimes read back from the database.

    SQLite drops tzinfo on DateTime(timezone=True) columns; PostgreSQL keeps it.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
