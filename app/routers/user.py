"""
User router — registration, login, token refresh, profile, and settings.

Public endpoints:
  POST /user/register     — Create an account
  POST /user/login        — Get an access/refresh token pair
  POST /user/refresh      — Rotate a refresh token
  POST /user/logout       — Revoke one refresh token

Authenticated endpoints:
  POST  /user/logout-all  — Revoke every refresh token of the current user
  GET   /user/me          — Current user's profile
  PATCH /user/settings    — Update currency and/or timezone

Security audit notes:
  - Plaintext passwords exist only in memory during request processing;
    they are hashed before any database operation and never logged.
  - Tokens appear only in response bodies, which uvicorn does not log.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.user import (
    LoginResponse,
    RefreshRequest,
    TokenResponse,
    UserLoginRequest,
    UserRegisterRequest,
    UserResponse,
    UserSettingsSchema,
    UserSettingsUpdateRequest,
)
from app.services import auth_service, user_service

router = APIRouter()


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    request: UserRegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Create a user with default settings (USD, UTC).

    - **email**: Must be a valid email format and not already registered
    - **password**: 8-128 characters
    """
    return await auth_service.register(db, email=request.email, password=request.password)


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Authenticate and get tokens",
)
async def login(
    request: UserLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate with email and password.

    The access token goes in the Authorization header of later requests:

        Authorization: Bearer <access_token>

    It expires after ACCESS_TOKEN_EXPIRE_MINUTES; use the refresh token
    with POST /user/refresh to get a new pair.
    """
    user, access_token, refresh_token = await auth_service.login(
        db, email=request.email, password=request.password
    )
    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Rotate a refresh token",
)
async def refresh(
    request: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Exchange a refresh token for a new access/refresh pair.

    The presented token is revoked; presenting it again fails with 401.
    """
    access_token, refresh_token = await auth_service.refresh_tokens(db, request.refresh_token)
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke a refresh token",
)
async def logout(
    request: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    await auth_service.revoke_token(db, request.refresh_token)


@router.post(
    "/logout-all",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke all of your refresh tokens",
)
async def logout_all(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.revoke_all_user_tokens(db, user.id)


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get your profile",
)
async def get_me(user: User = Depends(get_current_user)):
    return user


@router.patch(
    "/settings",
    response_model=UserSettingsSchema,
    summary="Update your settings",
)
async def update_settings(
    request: UserSettingsUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Change display currency and/or timezone.

    Changing the currency backfills the exchange rates needed to show
    existing balance history in the new currency.
    """
    return await user_service.update_settings(
        db, user.id, currency=request.currency, timezone=request.timezone
    )
