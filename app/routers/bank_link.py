"""
Bank link router — connecting external providers.

Authenticated endpoints:
  GET  /bank-link                         — List your bank links
  POST /bank-link/initiate/{provider}     — Start linking (plaid, crypto)
  POST /bank-link/sync-all                — Refresh all of your links now
  POST /bank-link/{bank_link_id}/sync     — Refresh one link now

Public endpoint:
  POST /bank-link/webhook/{provider}      — Provider callbacks

Webhooks carry no JWT. They are authenticated by the provider's own
signature, which is checked against the raw request body before the
payload is trusted.
"""

import json
import logging
import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.exceptions import BadRequestError
from app.models.user import User
from app.schemas.account import AccountResponse
from app.schemas.bank_link import (
    BankLinkResponse,
    InitiateLinkRequest,
    InitiateLinkResponse,
    SyncAllResponse,
    WebhookAckResponse,
)
from app.services import bank_link_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=list[BankLinkResponse],
    summary="List your bank links",
)
async def list_bank_links(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await bank_link_service.get_bank_links(db, user.id)


@router.post(
    "/initiate/{provider}",
    response_model=InitiateLinkResponse,
    summary="Start linking a provider",
)
async def initiate_linking(
    provider: str,
    request: InitiateLinkRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Start the provider's linking flow.

    - **plaid**: returns a hosted link_url; accounts arrive by webhook
      once the user finishes.
    - **crypto**: requires provider_user_details with walletAddress and
      network; the account is created immediately.
    """
    return await bank_link_service.initiate_linking(
        db,
        provider_name=provider,
        user_id=user.id,
        redirect_uri=request.redirect_uri,
        provider_user_details=request.provider_user_details,
    )


@router.post(
    "/webhook/{provider}",
    response_model=WebhookAckResponse,
    summary="Receive a provider webhook",
)
async def receive_webhook(
    provider: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body)
    except ValueError as e:
        raise BadRequestError("Webhook body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise BadRequestError("Webhook body must be a JSON object")

    headers = {key.lower(): value for key, value in request.headers.items()}
    await bank_link_service.handle_webhook(db, provider, raw_body, headers, payload)
    return WebhookAckResponse()


@router.post(
    "/sync-all",
    response_model=SyncAllResponse,
    summary="Refresh all of your bank links",
)
async def sync_all(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """A failing link is reported in errors and does not stop the others."""
    return await bank_link_service.sync_all_accounts(db, user.id)


@router.post(
    "/{bank_link_id}/sync",
    response_model=list[AccountResponse],
    summary="Refresh one bank link",
)
async def sync_bank_link(
    bank_link_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await bank_link_service.sync_accounts(db, bank_link_id, user.id)
