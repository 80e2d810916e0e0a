"""
Bank-link service — orchestrates linking and syncing across providers.

Lifecycle of a redirect-based link (Plaid):

  1. initiate_linking()   provider creates a session; a pending webhook
                          event remembers which user started it
  2. handle_webhook()     provider calls back; the signature is verified
                          and the payload routed (status, update, completion)
  3. complete_linking()   the pending event is resolved, bank links and
                          accounts are created, the event is marked completed

Immediate providers (crypto) skip steps 2-3: initiate_linking() creates the
links and accounts straight away.

Syncing:
  sync_accounts() refreshes one link from its provider. Batch syncs run
  each link inside a SAVEPOINT, so one failing link is rolled back and
  logged without losing the others.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import BankLinkNotFoundError, InvalidWebhookSignatureError, LinkCompletionError
from app.models.account import Account
from app.models.bank_link import BankLink
from app.models.mixins import utcnow
from app.providers import registry
from app.providers.base import BankLinkProvider, LinkedItem, StatusWebhookResult
from app.services import account_service, user_service, webhook_event_service


logger = logging.getLogger(__name__)


async def get_bank_links(db: AsyncSession, user_id: uuid.UUID) -> list[BankLink]:
    result = await db.execute(
        select(BankLink).where(BankLink.user_id == user_id).order_by(BankLink.created_at)
    )
    return list(result.scalars().all())


async def get_bank_link(db: AsyncSession, bank_link_id: uuid.UUID, user_id: uuid.UUID) -> BankLink:
    """
    Raises:
        BankLinkNotFoundError: If the link doesn't exist or isn't owned by the user.
    """
    result = await db.execute(
        select(BankLink).where(BankLink.id == bank_link_id, BankLink.user_id == user_id)
    )
    bank_link = result.scalar_one_or_none()
    if bank_link is None:
        raise BankLinkNotFoundError(bank_link_id)
    return bank_link


async def _create_links(
    db: AsyncSession,
    provider_name: str,
    user_id: uuid.UUID,
    items: list[LinkedItem],
) -> list[Account]:
    """Persist one BankLink per linked item plus its accounts."""
    accounts: list[Account] = []
    for item in items:
        bank_link = BankLink(
            user_id=user_id,
            provider_name=provider_name,
            authentication=item.authentication,
            account_ids=[account.account_id for account in item.accounts],
            institution_id=item.institution.id if item.institution else None,
            institution_name=item.institution.name if item.institution else None,
        )
        db.add(bank_link)
        await db.flush()
        accounts += await account_service.upsert_accounts_from_api(db, bank_link, item.accounts)

    logger.info(
        "Created %d bank links with %d accounts for user %s",
        len(items), len(accounts), user_id,
    )
    return accounts


# ---------------------------------------------------------------------------
# Linking
# ---------------------------------------------------------------------------

async def initiate_linking(
    db: AsyncSession,
    provider_name: str,
    user_id: uuid.UUID,
    redirect_uri: str | None = None,
    provider_user_details: dict | None = None,
) -> dict:
    """
    Start linking with a provider.

    provider_user_details from the request takes precedence over the
    details stored on the user (e.g. a reused Plaid user token).

    Raises:
        ProviderNotFoundError: Unknown provider name.
        BadRequestError: The provider rejected the input.
    """
    logger.info("Initiating %s link for user %s", provider_name, user_id)
    provider = registry.get_provider(provider_name)

    details = provider_user_details
    if details is None:
        details = await user_service.get_provider_details(db, user_id, provider_name)

    result = await provider.initiate_linking(
        user_id=str(user_id),
        redirect_uri=redirect_uri,
        provider_user_details=details,
    )

    if result.updated_provider_user_details:
        await user_service.update_provider_details(
            db, user_id, provider_name, result.updated_provider_user_details
        )

    if result.webhook_id:
        await webhook_event_service.create_pending(
            db, result.webhook_id, provider_name, user_id, result.expires_at
        )

    linked_accounts: list[Account] = []
    if result.immediate_links:
        linked_accounts = await _create_links(db, provider_name, user_id, result.immediate_links)

    return {
        "provider_name": provider_name,
        "link_url": result.link_url,
        "webhook_id": result.webhook_id,
        "expires_at": result.expires_at,
        "linked_account_ids": [account.id for account in linked_accounts],
    }


async def handle_webhook(
    db: AsyncSession,
    provider_name: str,
    raw_body: bytes,
    headers: dict[str, str],
    payload: dict,
) -> None:
    """
    Verify and route a provider webhook.

    Routing order: item status change, then data update, then link
    completion. Anything else is logged and ignored.

    Raises:
        ProviderNotFoundError: Unknown provider name.
        InvalidWebhookSignatureError: The signature did not verify.
    """
    logger.info(
        "Webhook from %s: type=%s code=%s",
        provider_name, payload.get("webhook_type"), payload.get("webhook_code"),
    )
    provider = registry.get_provider(provider_name)

    if not await provider.verify_webhook(raw_body, headers):
        logger.warning("Webhook verification failed for %s", provider_name)
        raise InvalidWebhookSignatureError()

    status_info = provider.parse_status_webhook(payload)
    if status_info is not None:
        await _handle_status_webhook(db, status_info)
        return

    item_id = provider.parse_update_webhook(payload)
    if item_id is not None:
        await _handle_update_webhook(db, item_id)
        return

    webhook_id = provider.should_process_webhook(payload)
    if webhook_id is not None:
        await complete_linking(db, provider_name, provider, webhook_id, payload)
        return

    logger.info("Webhook from %s is not a processable type, skipping", provider_name)


async def _handle_status_webhook(db: AsyncSession, status_info: StatusWebhookResult) -> None:
    bank_link = await find_by_plaid_item_id(db, status_info.item_id)
    if bank_link is None:
        logger.warning("No bank link found for item %s", status_info.item_id)
        return

    bank_link.status = status_info.status
    bank_link.status_date = utcnow()
    bank_link.status_body = status_info.status_body
    await db.flush()
    logger.info("Bank link %s status is now %s", bank_link.id, status_info.status)

    if status_info.should_sync:
        await sync_accounts(db, bank_link.id, bank_link.user_id)


async def _handle_update_webhook(db: AsyncSession, item_id: str) -> None:
    bank_link = await find_by_plaid_item_id(db, item_id)
    if bank_link is None:
        logger.warning("No bank link found for item %s", item_id)
        return
    await sync_accounts(db, bank_link.id, bank_link.user_id)


async def complete_linking(
    db: AsyncSession,
    provider_name: str,
    provider: BankLinkProvider,
    webhook_id: str,
    payload: dict,
) -> list[Account]:
    """
    Turn a link-completion webhook into bank links and accounts.

    The pending webhook event identifies the user. Without one (already
    processed, expired, or never initiated) the webhook is ignored.

    Raises:
        LinkCompletionError: The provider failed; the event is marked failed
                             and nothing else from this webhook is kept.
    """
    pending = await webhook_event_service.find_pending_by_webhook_id(db, webhook_id)
    if pending is None:
        logger.warning("No pending webhook event for %s, ignoring", provider_name)
        return []

    user_id = pending.user_id
    try:
        async with db.begin_nested():
            items = await provider.process_webhook(payload)
            if not items:
                logger.warning("No linked items from %s webhook", provider_name)
                await webhook_event_service.mark_failed(
                    db, webhook_id, "No link completion responses from provider", payload
                )
                return []
            accounts = await _create_links(db, provider_name, user_id, items)
    except Exception as exc:
        logger.exception("Link completion failed for %s", provider_name)
        await webhook_event_service.mark_failed(db, webhook_id, str(exc), payload)
        raise LinkCompletionError(f"Link completion failed: {exc}") from exc

    await webhook_event_service.mark_completed(db, webhook_id, payload)
    return accounts


# ---------------------------------------------------------------------------
# Syncing
# ---------------------------------------------------------------------------

async def sync_accounts(db: AsyncSession, bank_link_id: uuid.UUID, user_id: uuid.UUID) -> list[Account]:
    """
    Refresh a bank link's accounts and institution from its provider.

    Raises:
        BankLinkNotFoundError: If the link doesn't exist or isn't owned by the user.
    """
    bank_link = await get_bank_link(db, bank_link_id, user_id)
    provider = registry.get_provider(bank_link.provider_name)

    api_accounts, institution = await provider.get_accounts(bank_link.authentication)
    logger.info(
        "Fetched %d accounts from %s for bank link %s",
        len(api_accounts), bank_link.provider_name, bank_link.id,
    )

    if institution is not None and (
        bank_link.institution_id != institution.id
        or bank_link.institution_name != institution.name
    ):
        bank_link.institution_id = institution.id
        bank_link.institution_name = institution.name
        await db.flush()
        logger.info("Updated institution for bank link %s: %s", bank_link.id, institution.name)

    return await account_service.upsert_accounts_from_api(db, bank_link, api_accounts)


async def _sync_links(db: AsyncSession, bank_links: list[BankLink]) -> dict:
    synced = 0
    errors: list[str] = []
    for bank_link in bank_links:
        try:
            async with db.begin_nested():
                await sync_accounts(db, bank_link.id, bank_link.user_id)
            synced += 1
        except Exception as exc:
            logger.exception("Failed to sync bank link %s", bank_link.id)
            errors.append(f"{bank_link.id}: {exc}")
    return {"synced_links": synced, "errors": errors}


async def sync_all_accounts(db: AsyncSession, user_id: uuid.UUID) -> dict:
    """Sync every bank link of one user. Returns {"synced_links", "errors"}."""
    result = await _sync_links(db, await get_bank_links(db, user_id))
    logger.info("Synced %d bank links for user %s", result["synced_links"], user_id)
    return result


async def sync_all_accounts_system(
    db: AsyncSession,
    include_providers: list[str] | None = None,
    exclude_providers: list[str] | None = None,
) -> dict:
    """
    Sync bank links across all users (scheduled jobs).

    Args:
        include_providers: Only sync these providers.
        exclude_providers: Skip these providers (e.g. Plaid, which syncs
                           from webhooks).
    """
    query = select(BankLink)
    if include_providers:
        query = query.where(BankLink.provider_name.in_(include_providers))
    if exclude_providers:
        query = query.where(BankLink.provider_name.not_in(exclude_providers))

    bank_links = list((await db.execute(query)).scalars().all())
    result = await _sync_links(db, bank_links)
    logger.info(
        "System sync: %d of %d bank links synced", result["synced_links"], len(bank_links)
    )
    return result


# ---------------------------------------------------------------------------
# Plaid item lookup
# ---------------------------------------------------------------------------

async def find_by_plaid_item_id(db: AsyncSession, item_id: str) -> BankLink | None:
    result = await db.execute(
        select(BankLink).where(
            BankLink.provider_name == "plaid",
            BankLink.authentication["itemId"].as_string() == item_id,
        )
    )
    return result.scalars().first()


async def backfill_plaid_item_ids(db: AsyncSession) -> int:
    """
    Store the Plaid item_id on links created before it was recorded.

    Returns:
        Number of links updated.
    """
    result = await db.execute(select(BankLink).where(BankLink.provider_name == "plaid"))
    links = [link for link in result.scalars().all() if not (link.authentication or {}).get("itemId")]
    provider = registry.get_provider("plaid")

    updated = 0
    for link in links:
        try:
            item_id = await provider.get_item_id(link.authentication)
        except Exception:
            logger.exception("Failed to fetch item id for bank link %s", link.id)
            continue
        link.authentication = {**link.authentication, "itemId": item_id}
        updated += 1

    await db.flush()
    logger.info("Backfilled item ids for %d of %d Plaid links", updated, len(links))
    return updated
