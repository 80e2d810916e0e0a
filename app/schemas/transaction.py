"""
Pydantic schemas for Transaction endpoints.

A positive amount adds to the account balance, a negative amount
subtracts from it. The amount currency should match the account currency.
"""

import datetime as dt
import uuid

from pydantic import BaseModel, Field

from app.schemas.money import MoneyWithSignSchema


class TransactionCreateRequest(BaseModel):
    """Request body for POST /transactions."""
    account_id: uuid.UUID
    amount: MoneyWithSignSchema
    merchant_name: str | None = Field(default=None, max_length=255)
    pending: bool = False
    external_transaction_id: str | None = None
    logo_url: str | None = None
    date: dt.date
    datetime: dt.datetime | None = None
    authorized_date: dt.date | None = None
    authorized_datetime: dt.datetime | None = None
    category_id: uuid.UUID | None = None


class TransactionUpdateRequest(BaseModel):
    """Request body for PATCH /transactions/{id}; only sent fields change."""
    amount: MoneyWithSignSchema | None = None
    merchant_name: str | None = Field(default=None, max_length=255)
    pending: bool | None = None
    logo_url: str | None = None
    date: dt.date | None = None
    datetime: dt.datetime | None = None
    authorized_date: dt.date | None = None
    authorized_datetime: dt.datetime | None = None
    category_id: uuid.UUID | None = None


class TransactionResponse(BaseModel):
    id: uuid.UUID
    account_id: uuid.UUID
    user_id: uuid.UUID
    amount: MoneyWithSignSchema
    merchant_name: str | None
    pending: bool
    external_transaction_id: str | None
    logo_url: str | None
    date: dt.date
    datetime: dt.datetime | None
    authorized_date: dt.date | None
    authorized_datetime: dt.datetime | None
    category_id: uuid.UUID | None
    created_at: dt.datetime

    model_config = {"from_attributes": True}
