"""
Authentication service — registration, login, and refresh-token rotation.

Register flow:
  1. Check if email is already registered
  2. Hash the password with Argon2id
  3. Create the User with default settings (USD, UTC)

Login flow:
  1. Look up user by email
  2. Verify password against stored hash
  3. Issue a short-lived access token and a long-lived refresh token

Refresh flow (rotation):
  1. Hash the presented token and look it up
  2. Reject unknown, revoked, or expired tokens (401)
  3. Revoke the presented token and issue a new pair

A revoked token being presented again means someone kept an old token
after it was rotated; that is logged as possible token reuse.

Security notes:
  - Login returns the same error for "wrong password" and "email not found"
    to prevent user enumeration
  - Only SHA-256 digests of refresh tokens are stored
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import DuplicateEmailError, InvalidCredentialsError, InvalidRefreshTokenError
from app.models.mixins import as_utc
from app.models.refresh_token import RefreshToken
from app.models.user import User, default_settings
from app.security import (
    create_access_token,
    generate_refresh_token,
    hash_password,
    hash_refresh_token,
    verify_password,
)


logger = logging.getLogger(__name__)


async def register(db: AsyncSession, email: str, password: str) -> User:
    """
    Register a new user.

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    logger.info("Creating user: email=%s", email)

    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        logger.warning("User already exists: email=%s", email)
        raise DuplicateEmailError(email)

    user = User(
        email=email,
        hashed_password=hash_password(password),
        settings=default_settings(),
    )
    db.add(user)
    await db.flush()

    logger.info("User created successfully: id=%s", user.id)
    return user


async def login(db: AsyncSession, email: str, password: str) -> tuple[User, str, str]:
    """
    Authenticate a user and issue tokens.

    Returns:
        Tuple of (User, access token, refresh token).

    Raises:
        InvalidCredentialsError: If email doesn't exist or password is wrong.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning("Login failed - user not found: email=%s", email)
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        logger.warning("Login failed - invalid password: email=%s", email)
        raise InvalidCredentialsError()

    access_token = generate_access_token(user)
    refresh_token = await issue_refresh_token(db, user.id)

    logger.info("Login successful: id=%s", user.id)
    return user, access_token, refresh_token


def generate_access_token(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "email": user.email})


async def issue_refresh_token(db: AsyncSession, user_id: uuid.UUID) -> str:
    """Create and store a new refresh token; returns the raw token for the client."""
    raw_token = generate_refresh_token()
    db.add(
        RefreshToken(
            token=hash_refresh_token(raw_token),
            user_id=user_id,
            expires_at=datetime.now(timezone.utc)
            + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            revoked=False,
        )
    )
    await db.flush()
    return raw_token


async def rotate_refresh_token(db: AsyncSession, raw_token: str) -> tuple[uuid.UUID, str]:
    """
    Validate a refresh token, revoke it, and issue a replacement.

    Returns:
        Tuple of (user id, new raw refresh token).

    Raises:
        InvalidRefreshTokenError: If the token is unknown, revoked, or expired.
    """
    result = await db.execute(
        select(RefreshToken).where(RefreshToken.token == hash_refresh_token(raw_token))
    )
    stored = result.scalar_one_or_none()

    if stored is None:
        logger.warning("Refresh token not found")
        raise InvalidRefreshTokenError()

    if stored.revoked:
        logger.warning("Revoked refresh token reused: user_id=%s", stored.user_id)
        raise InvalidRefreshTokenError()

    if as_utc(stored.expires_at) < datetime.now(timezone.utc):
        raise InvalidRefreshTokenError("Refresh token expired")

    stored.revoked = True
    new_token = await issue_refresh_token(db, stored.user_id)
    return stored.user_id, new_token


async def refresh_tokens(db: AsyncSession, raw_token: str) -> tuple[str, str]:
    """
    Exchange a refresh token for a new access/refresh pair.

    Returns:
        Tuple of (access token, refresh token).
    """
    user_id, new_refresh_token = await rotate_refresh_token(db, raw_token)

    user = await db.get(User, user_id)
    if user is None:
        raise InvalidRefreshTokenError("User not found")

    logger.info("Tokens refreshed for user: %s", user_id)
    return generate_access_token(user), new_refresh_token


async def revoke_token(db: AsyncSession, raw_token: str) -> None:
    """Revoke a single refresh token. Unknown tokens are ignored."""
    await db.execute(
        update(RefreshToken)
        .where(RefreshToken.token == hash_refresh_token(raw_token))
        .values(revoked=True)
    )


async def revoke_all_user_tokens(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Revoke every active refresh token of a user (logout everywhere)."""
    await db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
        .values(revoked=True)
    )
    logger.info("Revoked all refresh tokens for user: %s", user_id)
