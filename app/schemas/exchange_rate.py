"""
Pydantic schemas for exchange rates and date-range rate lookups.
"""

import uuid
from datetime import date
from typing import Literal

from pydantic import BaseModel


class ExchangeRateResponse(BaseModel):
    """A stored rate: 1 base_currency = rate target_currency on rate_date."""
    id: uuid.UUID
    base_currency: str
    target_currency: str
    rate: float
    rate_date: date

    model_config = {"from_attributes": True}


class RateLookupResponse(BaseModel):
    """A rate expressed in the caller's requested direction."""
    base_currency: str
    target_currency: str
    rate: float
    rate_date: date | None = None


class RateWithSource(BaseModel):
    """
    One pair's rate on one day of a date-range lookup.

    source is "DB" for a stored rate on that exact date, "FILLED" when it was
    filled from the closest known date.
    """
    base_currency: str
    target_currency: str
    rate: float
    source: Literal["DB", "FILLED"]


class DateRangeRates(BaseModel):
    date: date
    rates: list[RateWithSource]


class RateSyncResponse(BaseModel):
    synced: int
