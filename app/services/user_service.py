"""
User service — settings and provider details.

Settings updates are partial: omitted fields keep their current values.
When the currency changes, a user.settings-updated event is emitted so the
exchange-rate backfill can fetch history for the new currency pairs.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.events import UserEvents, emit
from app.exceptions import NotFoundError
from app.models.user import DEFAULT_USER_SETTINGS, User


logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    return await db.get(User, user_id)


async def update_settings(
    db: AsyncSession,
    user_id: uuid.UUID,
    currency: str | None = None,
    timezone: str | None = None,
) -> dict:
    """
    Merge a partial settings update into the user's settings.

    Returns:
        The full, updated settings dict.

    Raises:
        NotFoundError: If the user does not exist.
    """
    user = await db.get(User, user_id)
    if user is None:
        logger.warning("Cannot update settings: user not found: id=%s", user_id)
        raise NotFoundError(f"User {user_id} not found")

    old_settings = {**DEFAULT_USER_SETTINGS, **(user.settings or {})}
    new_settings = {
        "currency": currency or old_settings["currency"],
        "timezone": timezone or old_settings["timezone"],
    }
    # Reassign (not mutate) so SQLAlchemy sees the JSON column change
    user.settings = new_settings
    await db.flush()
    logger.info("Updated settings for user %s", user_id)

    await emit(
        UserEvents.SETTINGS_UPDATED,
        db,
        user_id=user_id,
        old_settings=old_settings,
        new_settings=new_settings,
    )
    return new_settings


async def get_timezone(db: AsyncSession, user_id: uuid.UUID) -> str:
    """User's IANA timezone, 'UTC' if the user or setting is missing."""
    user = await db.get(User, user_id)
    return user.timezone if user else DEFAULT_USER_SETTINGS["timezone"]


async def get_currency(db: AsyncSession, user_id: uuid.UUID) -> str:
    user = await db.get(User, user_id)
    return user.currency if user else DEFAULT_USER_SETTINGS["currency"]


async def get_provider_details(
    db: AsyncSession, user_id: uuid.UUID, provider_name: str
) -> dict | None:
    user = await db.get(User, user_id)
    if user is None or not user.provider_details:
        return None
    return user.provider_details.get(provider_name)


async def update_provider_details(
    db: AsyncSession, user_id: uuid.UUID, provider_name: str, details: dict
) -> User | None:
    """Replace the stored details for one provider, leaving other providers untouched."""
    user = await db.get(User, user_id)
    if user is None:
        logger.warning("Cannot update provider details: user not found: id=%s", user_id)
        return None

    user.provider_details = {**(user.provider_details or {}), provider_name: details}
    await db.flush()
    logger.info("Updated provider details for user %s, provider %s", user_id, provider_name)
    return user
