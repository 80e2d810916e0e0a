"""
Pydantic schemas for BalanceSnapshot endpoints.
"""

import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel

from app.schemas.money import MoneyWithSignSchema


class BalanceSnapshotCreateRequest(BaseModel):
    """Request body for POST /balance-snapshots (upserts by account + date)."""
    account_id: uuid.UUID
    snapshot_date: date | None = None
    current_balance: MoneyWithSignSchema
    available_balance: MoneyWithSignSchema
    snapshot_type: Literal["SYNC", "FORWARD_FILL", "USER_UPDATE"] = "USER_UPDATE"


class BalanceSnapshotUpdateRequest(BaseModel):
    """Request body for PATCH /balance-snapshots/{id}."""
    current_balance: MoneyWithSignSchema | None = None
    available_balance: MoneyWithSignSchema | None = None
    snapshot_type: Literal["SYNC", "FORWARD_FILL", "USER_UPDATE"] | None = None


class BalanceSnapshotResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    account_id: uuid.UUID
    snapshot_date: date
    current_balance: MoneyWithSignSchema
    available_balance: MoneyWithSignSchema
    snapshot_type: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BalanceSnapshotWithConversionResponse(BalanceSnapshotResponse):
    converted_current_balance: MoneyWithSignSchema | None = None
    converted_available_balance: MoneyWithSignSchema | None = None
