"""
Transaction model — a single money movement on an account.

The amount is a MoneyWithSign stored as (amount_amount, amount_currency,
amount_sign). Positive amounts increase the account balance, negative
amounts decrease it; the balance adjustment itself happens in
app/services/transaction_listeners.py, not here.

category_id is kept as a bare nullable UUID: categories are not modelled yet.
"""

import uuid
import datetime as dt

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.mixins import MinorUnits, TimestampMixin
from app.money import MoneySign, MoneyWithSign


class Transaction(TimestampMixin, Base):
    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Amount in minor units (unsigned) + currency + sign
    amount_amount: Mapped[int] = mapped_column(MinorUnits, nullable=False)
    amount_currency: Mapped[str] = mapped_column(String(10), nullable=False)
    amount_sign: Mapped[str] = mapped_column(String(10), nullable=False)

    merchant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    pending: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Provider-side id for imported transactions
    external_transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    logo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Posting date (calendar day) and optional precise timestamp
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    datetime: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    authorized_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    authorized_datetime: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    category_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    @property
    def amount(self) -> MoneyWithSign:
        return MoneyWithSign.of(
            self.amount_currency,
            int(self.amount_amount),
            self.amount_sign or MoneySign.POSITIVE,
        )

    @amount.setter
    def amount(self, value: MoneyWithSign) -> None:
        self.amount_amount = value.amount
        self.amount_currency = value.currency
        self.amount_sign = value.sign.value
