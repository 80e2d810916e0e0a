"""
Bank-link provider interface and the value types providers return.

A provider connects a user to an external source of accounts. Two linking
styles exist:

  Redirect + webhook (Plaid):
    initiate_linking() returns a link_url and a webhook_id. The user
    finishes in the provider's UI; the provider later calls our webhook,
    and process_webhook() turns that payload into authenticated links.

  Immediate (crypto wallets):
    initiate_linking() validates the input and returns the links right
    away in immediate_links; no webhook is involved.

Providers never touch the database. They return plain dataclasses and the
bank-link service persists them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from app.money import MoneyWithSign


@dataclass
class Institution:
    id: str
    name: str


@dataclass
class ProviderAccount:
    """One account as reported by a provider."""
    account_id: str
    name: str
    type: str
    current_balance: MoneyWithSign
    available_balance: MoneyWithSign
    mask: str | None = None
    sub_type: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass
class LinkedItem:
    """A completed link: credentials plus the accounts it exposes."""
    authentication: dict
    accounts: list[ProviderAccount]
    institution: Institution | None = None


@dataclass
class InitiateLinkResult:
    link_url: str | None = None
    webhook_id: str | None = None
    expires_at: datetime | None = None
    # Persisted to user.provider_details[provider_name] when set
    updated_provider_user_details: dict | None = None
    # Immediate providers return finished links here
    immediate_links: list[LinkedItem] | None = None


@dataclass
class StatusWebhookResult:
    item_id: str
    status: str
    status_body: dict | None
    should_sync: bool = False


class BankLinkProvider(ABC):
    """Interface every bank-link provider implements."""

    name: str

    @abstractmethod
    async def initiate_linking(
        self,
        user_id: str,
        redirect_uri: str | None = None,
        provider_user_details: dict | None = None,
    ) -> InitiateLinkResult:
        ...

    @abstractmethod
    async def process_webhook(self, payload: dict) -> list[LinkedItem]:
        """Turn a link-completion webhook into linked items ([] if nothing linked)."""

    @abstractmethod
    async def get_accounts(self, authentication: dict) -> tuple[list[ProviderAccount], Institution | None]:
        """Fetch current accounts and balances for a stored link."""

    @abstractmethod
    async def verify_webhook(self, raw_body: bytes, headers: dict[str, str]) -> bool:
        """True only if the webhook is authentic. Must not raise."""

    def should_process_webhook(self, payload: dict) -> str | None:
        """Webhook id to complete if this payload finishes a link session, else None."""
        return None

    def parse_update_webhook(self, payload: dict) -> str | None:
        """Provider item id to re-sync if this payload announces new data, else None."""
        return None

    def parse_status_webhook(self, payload: dict) -> StatusWebhookResult | None:
        """Item health change carried by this payload, else None."""
        return None
