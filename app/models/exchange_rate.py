"""
ExchangeRate model — one daily rate for one normalized currency pair.

Pairs are always stored in canonical direction (see app/currency.py), so
"1 base_currency = rate target_currency" for exactly one row per pair/day.
"""

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.mixins import TimestampMixin


class ExchangeRate(TimestampMixin, Base):
    __tablename__ = "exchange_rates"

    __table_args__ = (
        UniqueConstraint(
            "base_currency",
            "target_currency",
            "rate_date",
            name="uq_exchange_rates_pair_date",
        ),
        Index("ix_exchange_rates_pair", "base_currency", "target_currency"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    base_currency: Mapped[str] = mapped_column(String(10), nullable=False)
    target_currency: Mapped[str] = mapped_column(String(10), nullable=False)

    # Enough precision for both tiny (JPY:USD) and huge (BTC:JPY) rates
    rate: Mapped[Decimal] = mapped_column(Numeric(20, 10), nullable=False)

    rate_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
