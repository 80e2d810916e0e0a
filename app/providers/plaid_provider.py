"""
Plaid provider — bank and brokerage accounts through Plaid Hosted Link.

Flow:
  1. initiate_linking() creates a link token (our webhook_id) and returns
     the hosted_link_url the frontend redirects to.
  2. The user finishes in Plaid's UI. Plaid posts a SESSION_FINISHED
     webhook carrying the link_token and one public token per institution.
  3. process_webhook() exchanges each public token for an access token and
     loads that item's accounts.

Other webhooks Plaid sends later for an item:
  TRANSACTIONS / INVESTMENTS DEFAULT_UPDATE   new data, re-sync the item
  ITEM ERROR / LOGIN_REPAIRED / PENDING_*     item health changes

Webhook verification (Plaid-Verification header):
  The header is an ES256 JWT signed with a key Plaid publishes by key id.
  Keys are cached for 24 hours unless Plaid reports them expired. The JWT
  must be at most 5 minutes old and its request_body_sha256 claim must
  match the raw body.

plaid-python is a synchronous client, so every API call runs in a worker
thread via asyncio.to_thread().
"""

import asyncio
import hashlib
import hmac
import logging
import time
from datetime import datetime, timezone

import plaid
from jose import JWTError, jwt
from plaid.api import plaid_api
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.country_code import CountryCode
from plaid.model.item_get_request import ItemGetRequest
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.link_token_create_hosted_link import LinkTokenCreateHostedLink
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from plaid.model.user_create_request import UserCreateRequest
from plaid.model.webhook_verification_key_get_request import WebhookVerificationKeyGetRequest

from app.config import settings
from app.models.bank_link import BankLinkStatus
from app.money import MoneySign, MoneyWithSign
from app.providers.base import (
    BankLinkProvider,
    InitiateLinkResult,
    Institution,
    LinkedItem,
    ProviderAccount,
    StatusWebhookResult,
)


logger = logging.getLogger(__name__)

PLAID_ENVIRONMENTS = {
    "sandbox": plaid.Environment.Sandbox,
    "production": plaid.Environment.Production,
}

JWK_CACHE_TTL_SECONDS = 24 * 60 * 60
MAX_WEBHOOK_AGE_SECONDS = 5 * 60


def _build_client() -> plaid_api.PlaidApi:
    configuration = plaid.Configuration(
        host=PLAID_ENVIRONMENTS.get(settings.PLAID_ENV, plaid.Environment.Sandbox),
        api_key={
            "clientId": settings.PLAID_CLIENT_ID,
            "secret": settings.PLAID_SECRET,
        },
    )
    return plaid_api.PlaidApi(plaid.ApiClient(configuration))


def _received_at() -> str:
    return datetime.now(timezone.utc).isoformat()


class PlaidProvider(BankLinkProvider):
    name = "plaid"

    def __init__(self, client: plaid_api.PlaidApi | None = None):
        self._client = client
        # {"kid", "key", "expired_at", "cached_at"}
        self._cached_jwk: dict | None = None

    @property
    def client(self) -> plaid_api.PlaidApi:
        if self._client is None:
            self._client = _build_client()
        return self._client

    async def _call(self, method_name: str, request):
        return await asyncio.to_thread(getattr(self.client, method_name), request)

    # -----------------------------------------------------------------------
    # Linking
    # -----------------------------------------------------------------------

    async def _create_user_token(self, client_user_id: str) -> str:
        response = await self._call("user_create", UserCreateRequest(client_user_id=client_user_id))
        user_token = response.to_dict().get("user_token")
        if not user_token:
            raise ValueError("Plaid user creation did not return a user_token")
        logger.info("Created Plaid user for %s", client_user_id)
        return user_token

    async def initiate_linking(
        self,
        user_id: str,
        redirect_uri: str | None = None,
        provider_user_details: dict | None = None,
    ) -> InitiateLinkResult:
        """
        Create a hosted link session.

        The Plaid user token is stored per user in provider_details and
        reused; a new one is created only on the first link.
        """
        updated_details = None
        user_token = (provider_user_details or {}).get("userToken")
        if isinstance(user_token, str) and user_token:
            logger.info("Reusing Plaid user token for %s", user_id)
        else:
            user_token = await self._create_user_token(user_id)
            updated_details = {"userToken": user_token}

        request_fields = {
            "client_name": "Splice",
            "language": "en",
            "country_codes": [CountryCode("US")],
            "user": LinkTokenCreateRequestUser(client_user_id=user_id),
            "products": [Products("transactions")],
            "optional_products": [Products("investments")],
            "enable_multi_item_link": True,
            "user_token": user_token,
            "webhook": f"{settings.API_DOMAIN}/bank-link/webhook/plaid",
            "hosted_link": (
                LinkTokenCreateHostedLink(completion_redirect_uri=redirect_uri)
                if redirect_uri
                else LinkTokenCreateHostedLink()
            ),
        }
        if redirect_uri:
            request_fields["redirect_uri"] = redirect_uri

        response = await self._call("link_token_create", LinkTokenCreateRequest(**request_fields))
        data = response.to_dict()
        logger.info("Plaid link token created, expires %s", data.get("expiration"))

        return InitiateLinkResult(
            link_url=data.get("hosted_link_url"),
            webhook_id=data["link_token"],
            expires_at=data.get("expiration"),
            updated_provider_user_details=updated_details,
        )

    def should_process_webhook(self, payload: dict) -> str | None:
        link_token = payload.get("link_token")
        status = payload.get("status")
        if not payload.get("webhook_code") or not isinstance(link_token, str) or not isinstance(status, str):
            return None
        if payload["webhook_code"] != "SESSION_FINISHED":
            logger.info("Ignoring Plaid webhook %s", payload["webhook_code"])
            return None
        if status != "success":
            logger.warning("Ignoring Plaid session with status %s", status)
            return None
        return link_token

    async def _exchange_token(self, public_token: str) -> tuple[str, str]:
        response = await self._call(
            "item_public_token_exchange",
            ItemPublicTokenExchangeRequest(public_token=public_token),
        )
        data = response.to_dict()
        return data["access_token"], data["item_id"]

    async def process_webhook(self, payload: dict) -> list[LinkedItem]:
        public_tokens = payload.get("public_tokens") or []
        logger.info("Processing Plaid session with %d public tokens", len(public_tokens))

        items = await asyncio.gather(*(self._exchange_token(token) for token in public_tokens))

        linked = []
        for access_token, item_id in items:
            accounts, institution = await self.get_accounts({"accessToken": access_token})
            linked.append(
                LinkedItem(
                    authentication={"accessToken": access_token, "itemId": item_id},
                    accounts=accounts,
                    institution=institution,
                )
            )
        return linked

    # -----------------------------------------------------------------------
    # Accounts
    # -----------------------------------------------------------------------

    async def get_accounts(self, authentication: dict) -> tuple[list[ProviderAccount], Institution | None]:
        access_token = authentication.get("accessToken")
        if not access_token:
            raise ValueError("Missing accessToken in authentication data")

        response = await self._call("accounts_get", AccountsGetRequest(access_token=access_token))
        data = response.to_dict()
        item = data.get("item") or {}
        institution = Institution(
            id=item.get("institution_id"),
            name=item.get("institution_name"),
        )
        accounts = [self._to_account(account) for account in data.get("accounts", [])]
        logger.info("Received %d accounts from Plaid", len(accounts))
        return accounts, institution

    @staticmethod
    def _to_account(account: dict) -> ProviderAccount:
        balances = account.get("balances") or {}
        currency = (
            balances.get("iso_currency_code")
            or balances.get("unofficial_currency_code")
            or "USD"
        )

        def money(value: float | None) -> MoneyWithSign:
            value = value or 0
            sign = MoneySign.POSITIVE if value >= 0 else MoneySign.NEGATIVE
            return MoneyWithSign.from_float(currency, value, sign)

        return ProviderAccount(
            account_id=account["account_id"],
            name=account.get("official_name") or account.get("name"),
            type=str(account.get("type")),
            sub_type=str(account["subtype"]) if account.get("subtype") else None,
            mask=account.get("mask"),
            current_balance=money(balances.get("current")),
            available_balance=money(balances.get("available")),
            raw=account,
        )

    async def get_item_id(self, authentication: dict) -> str:
        access_token = authentication.get("accessToken")
        if not access_token:
            raise ValueError("Missing accessToken in authentication data")
        response = await self._call("item_get", ItemGetRequest(access_token=access_token))
        return response.to_dict()["item"]["item_id"]

    # -----------------------------------------------------------------------
    # Webhook verification
    # -----------------------------------------------------------------------

    def _cached_key(self, key_id: str) -> dict | None:
        cached = self._cached_jwk
        if cached is None or cached["kid"] != key_id:
            return None
        now = time.time()
        if cached["expired_at"] is not None and cached["expired_at"] <= now:
            return None
        if now - cached["cached_at"] >= JWK_CACHE_TTL_SECONDS:
            return None
        return cached["key"]

    async def _get_verification_key(self, key_id: str) -> dict:
        key = self._cached_key(key_id)
        if key is not None:
            return key
        response = await self._call(
            "webhook_verification_key_get", WebhookVerificationKeyGetRequest(key_id=key_id)
        )
        key = response.to_dict()["key"]
        self._cached_jwk = {
            "kid": key_id,
            "key": key,
            "expired_at": key.get("expired_at"),
            "cached_at": time.time(),
        }
        logger.info("Fetched Plaid webhook key %s", key_id)
        return key

    async def verify_webhook(self, raw_body: bytes, headers: dict[str, str]) -> bool:
        signed_jwt = headers.get("plaid-verification") or headers.get("Plaid-Verification")
        if not signed_jwt:
            logger.warning("Webhook verification failed: missing Plaid-Verification header")
            return False

        try:
            header = jwt.get_unverified_header(signed_jwt)
            if header.get("alg") != "ES256":
                logger.warning("Webhook verification failed: algorithm %s", header.get("alg"))
                return False
            key_id = header.get("kid")
            if not key_id:
                logger.warning("Webhook verification failed: missing kid")
                return False

            key = await self._get_verification_key(key_id)
            claims = jwt.decode(
                signed_jwt,
                key,
                algorithms=["ES256"],
                options={"verify_aud": False, "verify_exp": False},
            )
        except (JWTError, plaid.ApiException) as exc:
            logger.warning("Webhook verification failed: %s", exc)
            return False
        except Exception:
            # Transport errors from the key fetch, malformed JWKs
            logger.exception("Webhook verification failed")
            return False

        issued_at = claims.get("iat")
        if not isinstance(issued_at, (int, float)) or time.time() - issued_at > MAX_WEBHOOK_AGE_SECONDS:
            logger.warning("Webhook verification failed: token too old")
            return False

        claimed_hash = claims.get("request_body_sha256")
        if not isinstance(claimed_hash, str):
            logger.warning("Webhook verification failed: missing request_body_sha256")
            return False

        computed_hash = hashlib.sha256(raw_body).hexdigest()
        if not hmac.compare_digest(claimed_hash, computed_hash):
            logger.warning("Webhook verification failed: body hash mismatch")
            return False

        return True

    # -----------------------------------------------------------------------
    # Item webhooks
    # -----------------------------------------------------------------------

    def parse_update_webhook(self, payload: dict) -> str | None:
        item_id = payload.get("item_id")
        if (
            payload.get("webhook_type") in ("TRANSACTIONS", "INVESTMENTS")
            and payload.get("webhook_code") == "DEFAULT_UPDATE"
            and isinstance(item_id, str)
        ):
            return item_id
        return None

    def parse_status_webhook(self, payload: dict) -> StatusWebhookResult | None:
        if payload.get("webhook_type") != "ITEM":
            return None

        code = payload.get("webhook_code")
        item_id = payload.get("item_id")

        if code == "ERROR":
            error = payload.get("error")
            body = None
            if error:
                body = {
                    "error_type": error.get("error_type"),
                    "error_code": error.get("error_code"),
                    "error_message": error.get("error_message"),
                    "display_message": error.get("display_message"),
                    "suggested_action": error.get("suggested_action"),
                    "received_at": _received_at(),
                }
            return StatusWebhookResult(item_id, BankLinkStatus.ERROR.value, body)

        if code == "LOGIN_REPAIRED":
            return StatusWebhookResult(item_id, BankLinkStatus.OK.value, None, should_sync=True)

        if code == "PENDING_DISCONNECT":
            return StatusWebhookResult(
                item_id,
                BankLinkStatus.PENDING_REAUTH.value,
                {
                    "reason": payload.get("reason"),
                    "environment": payload.get("environment"),
                    "received_at": _received_at(),
                },
            )

        if code == "PENDING_EXPIRATION":
            return StatusWebhookResult(
                item_id,
                BankLinkStatus.PENDING_REAUTH.value,
                {
                    "consent_expiration_time": payload.get("consent_expiration_time"),
                    "environment": payload.get("environment"),
                    "received_at": _received_at(),
                },
            )

        return None
