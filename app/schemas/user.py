"""
Pydantic schemas for the /user endpoints: registration, login, token
refresh, profile, and settings.
"""

import uuid
from datetime import datetime
from zoneinfo import available_timezones

from pydantic import BaseModel, EmailStr, Field, field_validator


class UserSettingsSchema(BaseModel):
    currency: str = "USD"
    timezone: str = "UTC"


class UserSettingsUpdateRequest(BaseModel):
    """Partial settings update; omitted fields keep their current value."""
    currency: str | None = Field(default=None, min_length=3, max_length=10)
    timezone: str | None = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, value: str | None) -> str | None:
        return value.upper() if value else value

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value: str | None) -> str | None:
        if value is not None and value not in available_timezones():
            raise ValueError(f"Unknown timezone: {value}")
        return value


class UserRegisterRequest(BaseModel):
    """Request body for POST /user/register."""
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)


class UserLoginRequest(BaseModel):
    """Request body for POST /user/login."""
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    """Request body for POST /user/refresh and POST /user/logout."""
    refresh_token: str


class UserResponse(BaseModel):
    """Public user profile. Never includes the password hash."""
    id: uuid.UUID
    email: str
    settings: UserSettingsSchema
    created_at: datetime

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(TokenResponse):
    user: UserResponse
