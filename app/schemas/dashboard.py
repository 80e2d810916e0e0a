"""
Pydantic schemas for GET /dashboard/summary.
"""

import uuid
from datetime import date
from typing import Literal

from pydantic import BaseModel

from app.schemas.money import MoneyWithSignSchema


TimePeriod = Literal["day", "week", "month", "year"]


class AccountSummary(BaseModel):
    id: uuid.UUID
    name: str
    type: str
    sub_type: str | None
    current_balance: MoneyWithSignSchema
    converted_current_balance: MoneyWithSignSchema | None
    change_percent: float | None
    institution_name: str | None


class ChartDataPoint(BaseModel):
    date: date
    # Net worth in the user's currency; None when no account has a snapshot that day
    value: MoneyWithSignSchema | None


class DashboardSummary(BaseModel):
    net_worth: MoneyWithSignSchema
    change_percent: float | None
    comparison_period: TimePeriod
    chart_data: list[ChartDataPoint]
    assets: list[AccountSummary]
    liabilities: list[AccountSummary]
