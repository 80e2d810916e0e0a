"""
Pydantic schemas for bank-link endpoints.

provider_user_details is provider specific:
  plaid:  {} (nothing required; a stored Plaid user token is reused)
  crypto: {"walletAddress": "0x...", "network": "ethereum" | "bitcoin"}
"""

import uuid
from datetime import datetime

from pydantic import BaseModel


class InitiateLinkRequest(BaseModel):
    """Request body for POST /bank-link/initiate/{provider}."""
    redirect_uri: str | None = None
    provider_user_details: dict | None = None


class InitiateLinkResponse(BaseModel):
    """
    What the frontend needs to continue linking.

    For redirect-based providers link_url is set and the accounts arrive
    later via webhook. For immediate providers (crypto) link_url is None and
    linked_account_ids lists the accounts that were just created.
    """
    provider_name: str
    link_url: str | None = None
    webhook_id: str | None = None
    expires_at: datetime | None = None
    linked_account_ids: list[uuid.UUID] = []


class BankLinkResponse(BaseModel):
    id: uuid.UUID
    provider_name: str
    institution_id: str | None
    institution_name: str | None
    account_ids: list[str] | None
    status: str
    status_date: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class WebhookAckResponse(BaseModel):
    received: bool = True


class SyncAllResponse(BaseModel):
    synced_links: int
    errors: list[str]
