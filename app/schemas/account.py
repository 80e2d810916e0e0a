"""
Pydantic schemas for Account endpoints.

Balances are MoneyWithSign objects in the account's own currency. List
responses also carry the balance converted into the user's currency
(None when no exchange rate was available) and the last provider sync time.
"""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.money import MoneyWithSignSchema


AccountTypeLiteral = Literal[
    "depository", "credit", "loan", "investment", "brokerage", "other", "crypto_wallet"
]


class AccountCreateRequest(BaseModel):
    """Request body for POST /accounts (manual account)."""
    name: str = Field(min_length=1, max_length=255)
    type: AccountTypeLiteral = "depository"
    sub_type: str | None = None
    mask: str | None = Field(default=None, max_length=20)
    current_balance: MoneyWithSignSchema
    available_balance: MoneyWithSignSchema | None = Field(
        default=None,
        description="Defaults to current_balance",
    )


class AccountResponse(BaseModel):
    """Public representation of an account."""
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    mask: str | None
    type: str
    sub_type: str | None
    external_account_id: str | None
    bank_link_id: uuid.UUID | None
    current_balance: MoneyWithSignSchema
    available_balance: MoneyWithSignSchema
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AccountWithConversionResponse(AccountResponse):
    converted_current_balance: MoneyWithSignSchema | None = None
    converted_available_balance: MoneyWithSignSchema | None = None
    last_synced_at: datetime | None = None
