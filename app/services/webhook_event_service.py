"""
Webhook event service — pending link sessions and their completion.

Lifecycle of a row:
  create_pending()   at link initiation (status=pending)
  mark_completed()   when the completion webhook is processed
  mark_failed()      when processing found nothing or raised

Only rows still pending can be completed or failed, so a webhook delivered
twice is processed once.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.mixins import utcnow
from app.models.webhook_event import WebhookEvent, WebhookEventStatus


logger = logging.getLogger(__name__)


async def create_pending(
    db: AsyncSession,
    webhook_id: str,
    provider_name: str,
    user_id: uuid.UUID,
    expires_at: datetime | None = None,
) -> WebhookEvent:
    event = WebhookEvent(
        webhook_id=webhook_id,
        provider_name=provider_name,
        user_id=user_id,
        status=WebhookEventStatus.PENDING.value,
        expires_at=expires_at,
    )
    db.add(event)
    await db.flush()
    logger.info(
        "Pending webhook event created: provider=%s user_id=%s", provider_name, user_id
    )
    return event


async def find_pending_by_webhook_id(db: AsyncSession, webhook_id: str) -> WebhookEvent | None:
    result = await db.execute(
        select(WebhookEvent).where(
            WebhookEvent.webhook_id == webhook_id,
            WebhookEvent.status == WebhookEventStatus.PENDING.value,
        )
    )
    event = result.scalar_one_or_none()
    if event is None:
        logger.warning("Pending webhook event not found: webhook_id=%s", webhook_id)
    return event


async def mark_completed(
    db: AsyncSession, webhook_id: str, webhook_content: dict
) -> WebhookEvent | None:
    event = await find_pending_by_webhook_id(db, webhook_id)
    if event is None:
        return None
    event.status = WebhookEventStatus.COMPLETED.value
    event.webhook_content = webhook_content
    event.completed_at = utcnow()
    await db.flush()
    logger.info("Webhook event completed: id=%s", event.id)
    return event


async def mark_failed(
    db: AsyncSession,
    webhook_id: str,
    error_message: str,
    webhook_content: dict | None = None,
) -> WebhookEvent | None:
    event = await find_pending_by_webhook_id(db, webhook_id)
    if event is None:
        return None
    event.status = WebhookEventStatus.FAILED.value
    event.error_message = error_message
    event.webhook_content = webhook_content
    event.completed_at = utcnow()
    await db.flush()
    logger.info("Webhook event failed: id=%s error=%s", event.id, error_message)
    return event


async def exists(db: AsyncSession, webhook_id: str) -> bool:
    result = await db.execute(
        select(func.count()).select_from(WebhookEvent).where(WebhookEvent.webhook_id == webhook_id)
    )
    return result.scalar_one() > 0
