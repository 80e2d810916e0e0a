"""
Pydantic schemas for money values.

Mirrors app.money.MoneyWithSign on the wire:
    {"money": {"amount": 19999, "currency": "USD"}, "sign": "positive"}
Amounts are always integers in the currency's smallest unit.
"""

from pydantic import BaseModel, Field

from app.money import MoneySign, MoneyWithSign


class MoneySchema(BaseModel):
    currency: str = Field(min_length=3, max_length=10)
    amount: int = Field(ge=0, description="Amount in smallest currency unit (e.g. cents)")

    model_config = {"from_attributes": True}


class MoneyWithSignSchema(BaseModel):
    money: MoneySchema
    sign: MoneySign

    model_config = {"from_attributes": True}

    def to_money(self) -> MoneyWithSign:
        return MoneyWithSign.of(self.money.currency, self.money.amount, self.sign)
