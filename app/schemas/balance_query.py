"""
Pydantic schemas for the balance query endpoints.

Result shape, one entry per calendar day in the requested range:

    [
      {
        "date": "2024-01-15",
        "balances": {
          "<account_id>": {
            "account": {...},
            "available_balance": {"balance": {...}, "converted_balance": {...}, "exchange_rate": {...}},
            "current_balance":   {...},
            "effective_balance": {...},
            "synced_at": "2024-01-15T17:00:03Z" | null
          }
        }
      },
      ...
    ]

converted_balance and exchange_rate are present only when the account
currency differs from the user's currency and a rate was available.
synced_at is only set when the snapshot is from that exact day.
"""

from datetime import date, datetime

from pydantic import BaseModel

from app.schemas.account import AccountResponse
from app.schemas.exchange_rate import RateWithSource
from app.schemas.money import MoneyWithSignSchema


class BalanceWithConversion(BaseModel):
    balance: MoneyWithSignSchema
    converted_balance: MoneyWithSignSchema | None = None
    exchange_rate: RateWithSource | None = None


class AccountBalanceResult(BaseModel):
    account: AccountResponse
    available_balance: BalanceWithConversion
    current_balance: BalanceWithConversion
    effective_balance: BalanceWithConversion
    synced_at: datetime | None = None


class BalanceQueryPerDateResult(BaseModel):
    date: date
    balances: dict[str, AccountBalanceResult]
