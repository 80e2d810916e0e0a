"""
Tests for bank linking, provider webhooks, and syncing.

These tests verify:
  - Redirect-style linking: initiate, then a completion webhook creates
    bank links and accounts for the user who started the session
  - Crypto wallets are linked immediately after address validation
  - Webhooks with a bad signature are rejected (401)
  - Item status webhooks update the bank link's status
  - A failing link does not stop a batch sync
  - Unknown providers and other users' links are 404
"""

import hashlib
import json
import time
import uuid

import httpx
import pytest
from conftest import money
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jose import jwk, jwt
from sqlalchemy import select

from app.models.bank_link import BankLink
from app.models.webhook_event import WebhookEvent
from app.money import MoneyWithSign
from app.providers import registry
from app.providers.base import (
    BankLinkProvider,
    InitiateLinkResult,
    Institution,
    LinkedItem,
    ProviderAccount,
)
from app.providers.crypto_provider import CryptoProvider, TatumClient
from app.providers.plaid_provider import JWK_CACHE_TTL_SECONDS, PlaidProvider
from app.services import bank_link_service, user_service


ETH_ADDRESS = "0x" + "ab" * 20
SIGNATURE = {"x-fake-signature": "ok"}


def provider_account(account_id="acc-1", amount=5000, name="Everyday Checking"):
    balance = MoneyWithSign.of("USD", amount)
    return ProviderAccount(
        account_id=account_id,
        name=name,
        type="depository",
        current_balance=balance,
        available_balance=balance,
        mask="0001",
    )


class FakeProvider(BankLinkProvider):
    """Redirect-style provider with canned responses."""

    name = "fake"

    def __init__(self):
        self.balances = {"acc-1": 5000}
        self.fail_completion = False

    async def initiate_linking(self, user_id, redirect_uri=None, provider_user_details=None):
        return InitiateLinkResult(
            link_url="https://fake.test/link",
            webhook_id="session-1",
            updated_provider_user_details={"userToken": "token-1"},
        )

    async def process_webhook(self, payload):
        if self.fail_completion:
            raise RuntimeError("token exchange failed")
        accounts, institution = await self.get_accounts({"itemId": "item-1"})
        return [LinkedItem({"itemId": "item-1"}, accounts, institution)]

    async def get_accounts(self, authentication):
        if authentication.get("broken"):
            raise RuntimeError("provider unavailable")
        accounts = [provider_account(account_id, amount) for account_id, amount in self.balances.items()]
        return accounts, Institution("ins_1", "Fake Bank")

    async def verify_webhook(self, raw_body, headers):
        return headers.get("x-fake-signature") == "ok"

    def should_process_webhook(self, payload):
        if payload.get("event") == "finished":
            return payload.get("session_id")
        return None


class FakePlaidProvider(PlaidProvider):
    """Real Plaid webhook parsing with the network calls stubbed out."""

    def __init__(self):
        super().__init__()
        self.synced = []

    async def verify_webhook(self, raw_body, headers):
        return True

    async def get_accounts(self, authentication):
        self.synced.append(authentication.get("itemId"))
        return [provider_account("plaid-acc", 7000)], Institution("ins_2", "Plaid Bank")


@pytest.fixture
def fake_provider(monkeypatch):
    provider = FakeProvider()
    monkeypatch.setitem(registry._providers, provider.name, provider)
    return provider


@pytest.fixture
def fake_plaid(monkeypatch):
    provider = FakePlaidProvider()
    monkeypatch.setitem(registry._providers, "plaid", provider)
    return provider


async def insert_link(db_session, user_id, provider_name="fake", authentication=None):
    link = BankLink(
        user_id=uuid.UUID(user_id),
        provider_name=provider_name,
        authentication=authentication or {"itemId": "item-1"},
    )
    db_session.add(link)
    await db_session.commit()
    return link


async def post_webhook(client, provider, payload, headers=None):
    return await client.post(
        f"/bank-link/webhook/{provider}",
        content=json.dumps(payload),
        headers={"content-type": "application/json", **(headers or {})},
    )


# ---------------------------------------------------------------------------
# Redirect linking
# ---------------------------------------------------------------------------

class TestRedirectLinking:
    """Initiate, then complete through the provider's webhook."""

    async def test_initiate_records_pending_session(self, authenticated_client, db_session, fake_provider):
        response = await authenticated_client.post("/bank-link/initiate/fake", json={})
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["link_url"] == "https://fake.test/link"
        assert data["webhook_id"] == "session-1"
        assert data["linked_account_ids"] == []

        event = (await db_session.execute(select(WebhookEvent))).scalar_one()
        assert event.status == "pending"
        assert str(event.user_id) == authenticated_client.user_id

    async def test_initiate_stores_provider_details(self, authenticated_client, db_session, fake_provider):
        await authenticated_client.post("/bank-link/initiate/fake", json={})
        details = await user_service.get_provider_details(
            db_session, uuid.UUID(authenticated_client.user_id), "fake"
        )
        assert details == {"userToken": "token-1"}

    async def test_completion_webhook_creates_accounts(self, authenticated_client, fake_provider):
        await authenticated_client.post("/bank-link/initiate/fake", json={})

        response = await post_webhook(
            authenticated_client, "fake", {"event": "finished", "session_id": "session-1"}, SIGNATURE
        )
        assert response.status_code == 200
        assert response.json() == {"received": True}

        links = (await authenticated_client.get("/bank-link")).json()
        assert len(links) == 1
        assert links[0]["institution_name"] == "Fake Bank"
        assert links[0]["account_ids"] == ["acc-1"]

        accounts = (await authenticated_client.get("/accounts")).json()
        assert [a["name"] for a in accounts] == ["Everyday Checking"]
        assert accounts[0]["bank_link_id"] == links[0]["id"]
        assert accounts[0]["current_balance"] == money(5000)

        # Linked accounts get a SYNC snapshot
        snapshots = (await authenticated_client.get(f"/balance-snapshots/account/{accounts[0]['id']}")).json()
        assert [s["snapshot_type"] for s in snapshots] == ["SYNC"]

    async def test_duplicate_webhook_processed_once(self, authenticated_client, fake_provider):
        await authenticated_client.post("/bank-link/initiate/fake", json={})
        payload = {"event": "finished", "session_id": "session-1"}

        await post_webhook(authenticated_client, "fake", payload, SIGNATURE)
        response = await post_webhook(authenticated_client, "fake", payload, SIGNATURE)
        assert response.status_code == 200
        assert len((await authenticated_client.get("/bank-link")).json()) == 1

    async def test_failed_completion_marks_event(self, authenticated_client, db_session, fake_provider):
        await authenticated_client.post("/bank-link/initiate/fake", json={})
        fake_provider.fail_completion = True

        response = await post_webhook(
            authenticated_client, "fake", {"event": "finished", "session_id": "session-1"}, SIGNATURE
        )
        assert response.status_code == 502
        assert response.json()["error_type"] == "link_completion_failed"

        event = (await db_session.execute(select(WebhookEvent))).scalar_one()
        assert event.status == "failed"
        assert "token exchange failed" in event.error_message
        assert (await authenticated_client.get("/bank-link")).json() == []

    async def test_unknown_provider(self, authenticated_client):
        response = await authenticated_client.post("/bank-link/initiate/nope", json={})
        assert response.status_code == 404
        assert "Available providers" in response.json()["detail"]


# ---------------------------------------------------------------------------
# Webhook verification and routing
# ---------------------------------------------------------------------------

class TestWebhooks:
    """Tests for POST /bank-link/webhook/{provider}."""

    async def test_bad_signature_rejected(self, client, fake_provider):
        response = await post_webhook(
            client, "fake", {"event": "finished"}, {"x-fake-signature": "forged"}
        )
        assert response.status_code == 401
        assert response.json()["error_type"] == "invalid_webhook_signature"

    async def test_missing_plaid_header_rejected(self, client):
        response = await post_webhook(client, "plaid", {"webhook_type": "ITEM"})
        assert response.status_code == 401

    async def test_invalid_json(self, client, fake_provider):
        response = await client.post(
            "/bank-link/webhook/fake",
            content=b"not json",
            headers={"content-type": "application/json", **SIGNATURE},
        )
        assert response.status_code == 400

    async def test_unhandled_webhook_acknowledged(self, client, fake_provider):
        response = await post_webhook(client, "fake", {"event": "something-else"}, SIGNATURE)
        assert response.status_code == 200

    async def test_item_error_updates_status(self, authenticated_client, db_session, fake_plaid):
        link = await insert_link(db_session, authenticated_client.user_id, "plaid")

        response = await post_webhook(
            authenticated_client,
            "plaid",
            {
                "webhook_type": "ITEM",
                "webhook_code": "ERROR",
                "item_id": "item-1",
                "error": {"error_type": "ITEM_ERROR", "error_code": "ITEM_LOGIN_REQUIRED"},
            },
        )
        assert response.status_code == 200

        await db_session.refresh(link)
        assert link.status == "ERROR"
        assert link.status_body["error_code"] == "ITEM_LOGIN_REQUIRED"
        assert link.status_date is not None

    async def test_login_repaired_resyncs(self, authenticated_client, db_session, fake_plaid):
        link = await insert_link(db_session, authenticated_client.user_id, "plaid")
        link.status = "ERROR"
        await db_session.commit()

        await post_webhook(
            authenticated_client,
            "plaid",
            {"webhook_type": "ITEM", "webhook_code": "LOGIN_REPAIRED", "item_id": "item-1"},
        )

        await db_session.refresh(link)
        assert link.status == "OK"
        assert fake_plaid.synced == ["item-1"]

    async def test_default_update_resyncs(self, authenticated_client, db_session, fake_plaid):
        await insert_link(db_session, authenticated_client.user_id, "plaid")

        await post_webhook(
            authenticated_client,
            "plaid",
            {"webhook_type": "TRANSACTIONS", "webhook_code": "DEFAULT_UPDATE", "item_id": "item-1"},
        )
        assert fake_plaid.synced == ["item-1"]
        accounts = (await authenticated_client.get("/accounts")).json()
        assert [a["current_balance"] for a in accounts] == [money(7000)]

    async def test_unknown_item_ignored(self, client, fake_plaid):
        response = await post_webhook(
            client,
            "plaid",
            {"webhook_type": "TRANSACTIONS", "webhook_code": "DEFAULT_UPDATE", "item_id": "missing"},
        )
        assert response.status_code == 200
        assert fake_plaid.synced == []


class TestPlaidWebhookParsing:
    """PlaidProvider payload parsing, no network."""

    def setup_method(self):
        self.provider = PlaidProvider()

    @pytest.mark.parametrize(
        "code, status",
        [
            ("ERROR", "ERROR"),
            ("LOGIN_REPAIRED", "OK"),
            ("PENDING_DISCONNECT", "PENDING_REAUTH"),
            ("PENDING_EXPIRATION", "PENDING_REAUTH"),
        ],
    )
    def test_status_codes(self, code, status):
        result = self.provider.parse_status_webhook(
            {"webhook_type": "ITEM", "webhook_code": code, "item_id": "item-9"}
        )
        assert result.item_id == "item-9"
        assert result.status == status
        assert result.should_sync is (code == "LOGIN_REPAIRED")

    def test_other_item_codes_ignored(self):
        assert self.provider.parse_status_webhook(
            {"webhook_type": "ITEM", "webhook_code": "WEBHOOK_UPDATE_ACKNOWLEDGED"}
        ) is None

    def test_update_webhook(self):
        assert self.provider.parse_update_webhook(
            {"webhook_type": "INVESTMENTS", "webhook_code": "DEFAULT_UPDATE", "item_id": "i"}
        ) == "i"
        assert self.provider.parse_update_webhook(
            {"webhook_type": "TRANSACTIONS", "webhook_code": "SYNC_UPDATES_AVAILABLE", "item_id": "i"}
        ) is None

    def test_session_finished(self):
        payload = {"webhook_code": "SESSION_FINISHED", "status": "success", "link_token": "link-1"}
        assert self.provider.should_process_webhook(payload) == "link-1"
        assert self.provider.should_process_webhook({**payload, "status": "exited"}) is None

    async def test_verify_without_header(self):
        assert await self.provider.verify_webhook(b"{}", {}) is False

    async def test_verify_garbage_token(self):
        assert await self.provider.verify_webhook(b"{}", {"plaid-verification": "not.a.jwt"}) is False


# ---------------------------------------------------------------------------
# Plaid webhook signatures
# ---------------------------------------------------------------------------

WEBHOOK_BODY = b'{"webhook_type": "ITEM", "webhook_code": "ERROR", "item_id": "item-1"}'


class KeyResponse:
    def __init__(self, key):
        self.key = key

    def to_dict(self):
        return {"key": self.key}


@pytest.fixture(scope="module")
def signing_key():
    """A local P-256 key pair standing in for Plaid's."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_jwk = jwk.construct(pem, "ES256").public_key().to_dict()
    return pem, {**public_jwk, "kid": "key-1", "use": "sig", "expired_at": None}


def sign_webhook(pem, body=WEBHOOK_BODY, issued_at=None, kid="key-1"):
    claims = {
        "iat": int(time.time() if issued_at is None else issued_at),
        "request_body_sha256": hashlib.sha256(body).hexdigest(),
    }
    return jwt.encode(claims, pem, algorithm="ES256", headers={"kid": kid})


@pytest.fixture
def plaid_keys(signing_key):
    """PlaidProvider whose key endpoint serves the local public key."""
    provider = PlaidProvider()
    provider.key_requests = []
    provider.served_key = signing_key[1]

    async def fake_call(method_name, request):
        assert method_name == "webhook_verification_key_get"
        provider.key_requests.append(request.key_id)
        return KeyResponse(provider.served_key)

    provider._call = fake_call
    return provider


class TestPlaidWebhookVerification:
    """ES256 signatures, freshness, body hash, and the key cache."""

    async def test_valid_signature(self, plaid_keys, signing_key):
        token = sign_webhook(signing_key[0])
        assert await plaid_keys.verify_webhook(WEBHOOK_BODY, {"plaid-verification": token}) is True
        assert plaid_keys.key_requests == ["key-1"]

    async def test_token_older_than_five_minutes(self, plaid_keys, signing_key):
        token = sign_webhook(signing_key[0], issued_at=time.time() - 301)
        assert await plaid_keys.verify_webhook(WEBHOOK_BODY, {"plaid-verification": token}) is False

    async def test_body_hash_mismatch(self, plaid_keys, signing_key):
        token = sign_webhook(signing_key[0])
        tampered = WEBHOOK_BODY.replace(b"ERROR", b"LOGIN_REPAIRED")
        assert await plaid_keys.verify_webhook(tampered, {"plaid-verification": token}) is False

    async def test_signed_by_another_key(self, plaid_keys):
        other = ec.generate_private_key(ec.SECP256R1()).private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode()
        token = sign_webhook(other)
        assert await plaid_keys.verify_webhook(WEBHOOK_BODY, {"plaid-verification": token}) is False

    async def test_key_is_cached(self, plaid_keys, signing_key):
        for _ in range(3):
            token = sign_webhook(signing_key[0])
            assert await plaid_keys.verify_webhook(WEBHOOK_BODY, {"plaid-verification": token})
        assert plaid_keys.key_requests == ["key-1"]

    async def test_key_refetched_after_ttl(self, plaid_keys, signing_key):
        token = sign_webhook(signing_key[0])
        await plaid_keys.verify_webhook(WEBHOOK_BODY, {"plaid-verification": token})
        plaid_keys._cached_jwk["cached_at"] -= JWK_CACHE_TTL_SECONDS + 1

        assert await plaid_keys.verify_webhook(WEBHOOK_BODY, {"plaid-verification": token})
        assert plaid_keys.key_requests == ["key-1", "key-1"]

    async def test_expired_key_refetched(self, plaid_keys, signing_key):
        plaid_keys.served_key = {**signing_key[1], "expired_at": int(time.time()) - 60}
        token = sign_webhook(signing_key[0])

        await plaid_keys.verify_webhook(WEBHOOK_BODY, {"plaid-verification": token})
        await plaid_keys.verify_webhook(WEBHOOK_BODY, {"plaid-verification": token})
        assert plaid_keys.key_requests == ["key-1", "key-1"]

    async def test_key_fetch_network_error(self, signing_key):
        provider = PlaidProvider()

        async def unreachable(method_name, request):
            raise ConnectionError("connection refused")

        provider._call = unreachable
        token = sign_webhook(signing_key[0])
        assert await provider.verify_webhook(WEBHOOK_BODY, {"plaid-verification": token}) is False

    async def test_malformed_key(self, plaid_keys, signing_key):
        # EC key without its x/y coordinates
        plaid_keys.served_key = {"kty": "EC", "crv": "P-256", "alg": "ES256", "kid": "key-1", "expired_at": None}
        token = sign_webhook(signing_key[0])
        assert await plaid_keys.verify_webhook(WEBHOOK_BODY, {"plaid-verification": token}) is False

    async def test_unreachable_key_endpoint_is_401(self, client, monkeypatch, signing_key):
        provider = PlaidProvider()

        async def unreachable(method_name, request):
            raise ConnectionError("connection refused")

        provider._call = unreachable
        monkeypatch.setitem(registry._providers, "plaid", provider)

        response = await client.post(
            "/bank-link/webhook/plaid",
            content=WEBHOOK_BODY,
            headers={"content-type": "application/json", "plaid-verification": sign_webhook(signing_key[0])},
        )
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Crypto wallets
# ---------------------------------------------------------------------------

@pytest.fixture
def tatum_requests(monkeypatch):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.startswith("/ethereum/account/balance/"):
            return httpx.Response(200, json={"balance": "0.25"})
        if request.url.path.startswith("/bitcoin/address/balance/"):
            return httpx.Response(200, json={"incoming": "1.5", "outgoing": "0.25"})
        return httpx.Response(404)

    client = TatumClient(base_url="https://tatum.test", api_key="k", transport=httpx.MockTransport(handler))
    monkeypatch.setitem(registry._providers, "crypto", CryptoProvider(client=client))
    return requests


class TestCryptoLinking:
    """Wallets are validated and linked without a webhook."""

    async def test_link_ethereum_wallet(self, authenticated_client, tatum_requests):
        response = await authenticated_client.post(
            "/bank-link/initiate/crypto",
            json={"provider_user_details": {"walletAddress": ETH_ADDRESS, "network": "ethereum"}},
        )
        assert response.status_code == 200, response.text
        assert response.json()["link_url"] is None
        assert len(response.json()["linked_account_ids"]) == 1
        assert tatum_requests[0].headers["x-api-key"] == "k"

        account = (await authenticated_client.get("/accounts")).json()[0]
        assert account["name"] == "Ethereum Wallet"
        assert account["type"] == "crypto_wallet"
        assert account["mask"] == ETH_ADDRESS[-4:]
        assert account["external_account_id"] == f"ethereum:{ETH_ADDRESS}"
        # 0.25 ETH in wei
        assert account["current_balance"] == money(250_000_000_000_000_000, "ETH")

    async def test_large_ethereum_balance(self, authenticated_client, monkeypatch):
        """More wei than a 64-bit integer holds, kept to the last digit."""
        client = TatumClient(
            base_url="https://tatum.test",
            api_key="k",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"balance": "12.500000000000000001"})
            ),
        )
        monkeypatch.setitem(registry._providers, "crypto", CryptoProvider(client=client))

        response = await authenticated_client.post(
            "/bank-link/initiate/crypto",
            json={"provider_user_details": {"walletAddress": ETH_ADDRESS, "network": "ethereum"}},
        )
        assert response.status_code == 200, response.text

        account = (await authenticated_client.get("/accounts")).json()[0]
        assert account["current_balance"] == money(12_500_000_000_000_000_001, "ETH")

        snapshots = (
            await authenticated_client.get(f"/balance-snapshots/account/{account['id']}")
        ).json()
        assert snapshots[0]["current_balance"] == money(12_500_000_000_000_000_001, "ETH")

    async def test_bitcoin_balance_is_incoming_minus_outgoing(self, tatum_requests):
        provider = registry.get_provider("crypto")
        accounts, institution = await provider.get_accounts(
            {"address": "bc1" + "q" * 39, "network": "bitcoin"}
        )
        assert accounts[0].current_balance == MoneyWithSign.of("BTC", 125_000_000)
        assert institution.name == "Bitcoin Wallet"

    @pytest.mark.parametrize(
        "details",
        [
            {"walletAddress": "0x1234", "network": "ethereum"},
            {"walletAddress": ETH_ADDRESS, "network": "dogecoin"},
            {"network": "ethereum"},
            {"walletAddress": ETH_ADDRESS, "network": "bitcoin"},
        ],
    )
    async def test_invalid_input(self, authenticated_client, tatum_requests, details):
        response = await authenticated_client.post(
            "/bank-link/initiate/crypto", json={"provider_user_details": details}
        )
        assert response.status_code == 400
        assert tatum_requests == []

    async def test_tatum_failure(self, authenticated_client, monkeypatch):
        client = TatumClient(
            base_url="https://tatum.test",
            api_key="k",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        monkeypatch.setitem(registry._providers, "crypto", CryptoProvider(client=client))

        response = await authenticated_client.post(
            "/bank-link/initiate/crypto",
            json={"provider_user_details": {"walletAddress": ETH_ADDRESS, "network": "ethereum"}},
        )
        assert response.status_code == 502
        assert (await authenticated_client.get("/bank-link")).json() == []


# ---------------------------------------------------------------------------
# Syncing
# ---------------------------------------------------------------------------

class TestSync:
    """Single-link and batch syncs."""

    async def test_sync_one_link_updates_balances(self, authenticated_client, db_session, fake_provider):
        link = await insert_link(db_session, authenticated_client.user_id)
        response = await authenticated_client.post(f"/bank-link/{link.id}/sync")
        assert response.status_code == 200
        assert [a["current_balance"] for a in response.json()] == [money(5000)]

        fake_provider.balances["acc-1"] = 6500
        response = await authenticated_client.post(f"/bank-link/{link.id}/sync")
        assert [a["current_balance"] for a in response.json()] == [money(6500)]
        # Same external account: updated, not duplicated
        assert len((await authenticated_client.get("/accounts")).json()) == 1

        await db_session.refresh(link)
        assert link.institution_name == "Fake Bank"

    async def test_sync_other_users_link(
        self, authenticated_client, second_authenticated_client, db_session, fake_provider
    ):
        link = await insert_link(db_session, authenticated_client.user_id)
        response = await second_authenticated_client.post(f"/bank-link/{link.id}/sync")
        assert response.status_code == 404

    async def test_sync_all_isolates_failures(self, authenticated_client, db_session, fake_provider):
        await insert_link(db_session, authenticated_client.user_id)
        broken = await insert_link(db_session, authenticated_client.user_id, authentication={"broken": True})

        response = await authenticated_client.post("/bank-link/sync-all")
        assert response.status_code == 200
        data = response.json()
        assert data["synced_links"] == 1
        assert len(data["errors"]) == 1
        assert str(broken.id) in data["errors"][0]
        assert len((await authenticated_client.get("/accounts")).json()) == 1

    async def test_system_sync_filters_providers(
        self, authenticated_client, db_session, fake_provider, fake_plaid
    ):
        await insert_link(db_session, authenticated_client.user_id)
        await insert_link(db_session, authenticated_client.user_id, "plaid")

        result = await bank_link_service.sync_all_accounts_system(db_session, exclude_providers=["plaid"])
        assert result == {"synced_links": 1, "errors": []}
        assert fake_plaid.synced == []

        result = await bank_link_service.sync_all_accounts_system(db_session, include_providers=["plaid"])
        assert result["synced_links"] == 1
        assert fake_plaid.synced == ["item-1"]

    async def test_backfill_plaid_item_ids(self, authenticated_client, db_session, fake_plaid, monkeypatch):
        link = await insert_link(
            db_session, authenticated_client.user_id, "plaid", authentication={"accessToken": "access-1"}
        )

        async def get_item_id(authentication):
            return "item-from-plaid"

        monkeypatch.setattr(fake_plaid, "get_item_id", get_item_id)
        assert await bank_link_service.backfill_plaid_item_ids(db_session) == 1
        await db_session.commit()

        found = await bank_link_service.find_by_plaid_item_id(db_session, "item-from-plaid")
        assert found.id == link.id
