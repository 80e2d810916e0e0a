"""
Crypto wallet provider — links a public ETH or BTC address as an account.

Linking is immediate: the address is validated, its balance is read from
the Tatum API, and the finished link is returned from initiate_linking().
There is no webhook flow; crypto links are refreshed by the hourly sync.

authentication stored on the BankLink:
    {"address": "0x...", "network": "ethereum"}
"""

import logging
import re
from decimal import Decimal, InvalidOperation

import httpx

from app.config import settings
from app.exceptions import BadRequestError, RateProviderError
from app.money import MoneySign, MoneyWithSign, currency_decimals
from app.providers.base import (
    BankLinkProvider,
    InitiateLinkResult,
    Institution,
    LinkedItem,
    ProviderAccount,
)


logger = logging.getLogger(__name__)

NETWORK_CURRENCIES = {
    "ethereum": "ETH",
    "bitcoin": "BTC",
}

ETH_ADDRESS = re.compile(r"^0x[a-fA-F0-9]{40}$")
BTC_LEGACY_ADDRESS = re.compile(r"^[13][a-km-zA-HJ-NP-Z1-9]{25,34}$")
BTC_BECH32_ADDRESS = re.compile(r"^bc1[a-zA-HJ-NP-Z0-9]{39,59}$")


def validate_address(network: str, address: str) -> bool:
    if network == "ethereum":
        return bool(ETH_ADDRESS.match(address))
    if network == "bitcoin":
        return bool(BTC_LEGACY_ADDRESS.match(address) or BTC_BECH32_ADDRESS.match(address))
    return False


class TatumClient:
    """Balance lookups against the Tatum v3 REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.TATUM_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.TATUM_API_KEY
        self._transport = transport

    async def _get_json(self, path: str, operation: str) -> dict:
        if not self.api_key:
            logger.error("TATUM_API_KEY is not set")
            raise RateProviderError("TATUM_API_KEY is not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
                headers={"x-api-key": self.api_key},
                transport=self._transport,
            ) as client:
                response = await client.get(path)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as exc:
            logger.error("Tatum %s failed: %s", operation, exc)
            raise RateProviderError(f"Tatum {operation} failed") from exc

    async def get_ethereum_balance(self, address: str) -> Decimal:
        """Balance in ETH (not wei)."""
        data = await self._get_json(f"/ethereum/account/balance/{address}", "get_ethereum_balance")
        return _to_decimal(data.get("balance"))

    async def get_bitcoin_balance(self, address: str) -> Decimal:
        """Balance in BTC: total incoming minus total outgoing."""
        data = await self._get_json(f"/bitcoin/address/balance/{address}", "get_bitcoin_balance")
        return _to_decimal(data.get("incoming")) - _to_decimal(data.get("outgoing"))


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value)) if value is not None else Decimal(0)
    except InvalidOperation:
        return Decimal(0)


class CryptoProvider(BankLinkProvider):
    name = "crypto"

    def __init__(self, client: TatumClient | None = None):
        self.client = client or TatumClient()

    async def initiate_linking(
        self,
        user_id: str,
        redirect_uri: str | None = None,
        provider_user_details: dict | None = None,
    ) -> InitiateLinkResult:
        """
        Validate {walletAddress, network} and return the wallet as a finished link.

        Raises:
            BadRequestError: If the input is missing or the address is malformed.
        """
        details = provider_user_details or {}
        address = details.get("walletAddress")
        network = details.get("network")

        if not isinstance(address, str) or not address:
            raise BadRequestError("Invalid crypto link input: walletAddress is required")
        if network not in NETWORK_CURRENCIES:
            raise BadRequestError(
                "Invalid crypto link input: network must be one of "
                + ", ".join(NETWORK_CURRENCIES)
            )
        if not validate_address(network, address):
            logger.warning("Invalid %s address: %s...", network, address[:10])
            raise BadRequestError(f"Invalid {network} address format")

        logger.info("Linking %s wallet %s... for user %s", network, address[:10], user_id)
        accounts, institution = await self.get_accounts({"address": address, "network": network})
        return InitiateLinkResult(
            immediate_links=[
                LinkedItem(
                    authentication={"address": address, "network": network},
                    accounts=accounts,
                    institution=institution,
                )
            ]
        )

    async def process_webhook(self, payload: dict) -> list[LinkedItem]:
        return []

    async def get_accounts(self, authentication: dict) -> tuple[list[ProviderAccount], Institution | None]:
        address = authentication.get("address")
        network = authentication.get("network")
        if not address or network not in NETWORK_CURRENCIES:
            raise ValueError("Invalid crypto authentication")

        if network == "ethereum":
            balance = await self.client.get_ethereum_balance(address)
        else:
            balance = await self.client.get_bitcoin_balance(address)
        logger.info("Fetched %s wallet balance: %s", network, balance)

        return [self._to_account(address, network, balance)], self._institution(network)

    async def verify_webhook(self, raw_body: bytes, headers: dict[str, str]) -> bool:
        return False

    @staticmethod
    def _to_account(address: str, network: str, balance: Decimal) -> ProviderAccount:
        currency = NETWORK_CURRENCIES[network]
        # Decimal keeps full wei precision that a float would lose
        minor = int((abs(balance) * (10 ** currency_decimals(currency))).to_integral_value())
        sign = MoneySign.POSITIVE if balance >= 0 else MoneySign.NEGATIVE
        money = MoneyWithSign.of(currency, minor, sign)
        return ProviderAccount(
            account_id=f"{network}:{address}",
            name=f"{network.capitalize()} Wallet",
            type="crypto_wallet",
            current_balance=money,
            available_balance=money,
            mask=address[-4:],
        )

    @staticmethod
    def _institution(network: str) -> Institution:
        return Institution(id=network, name=f"{network.capitalize()} Wallet")
