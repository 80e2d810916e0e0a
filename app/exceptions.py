"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors (like BankLinkNotFoundError)
without importing HTTP concepts. The handlers registered here translate them
into consistent JSON responses: {"detail": ..., "error_type": ...}.

Exception hierarchy:
    SpliceAPIError (base)
    ├── NotFoundError                  — 404
    │   ├── AccountNotFoundError
    │   ├── BankLinkNotFoundError
    │   └── ProviderNotFoundError
    ├── BadRequestError                — 400
    ├── DuplicateEmailError            — 409
    ├── InvalidCredentialsError        — 401
    ├── InvalidRefreshTokenError       — 401
    ├── InvalidWebhookSignatureError   — 401
    ├── ExchangeRateUnavailableError   — 404
    └── RateProviderError              — 502 (normally caught and logged)
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class SpliceAPIError(Exception):
    """Base exception for all Splice API domain errors."""

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class NotFoundError(SpliceAPIError):
    """Raised when a requested resource does not exist or is not owned by the caller."""


class AccountNotFoundError(NotFoundError):
    """Raised when a requested account does not exist."""

    def __init__(self, account_id: uuid.UUID):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class BankLinkNotFoundError(NotFoundError):
    """Raised when a bank link does not exist."""

    def __init__(self, bank_link_id: uuid.UUID):
        self.bank_link_id = bank_link_id
        super().__init__(f"Bank link {bank_link_id} not found")


class ProviderNotFoundError(NotFoundError):
    """Raised when a bank-link provider name is not registered."""

    def __init__(self, provider_name: str, available: list[str]):
        self.provider_name = provider_name
        super().__init__(
            f"Provider '{provider_name}' not found. "
            f"Available providers: {', '.join(available)}"
        )


class BadRequestError(SpliceAPIError):
    """Raised when a request is well-formed but cannot be processed as given."""


class DuplicateEmailError(SpliceAPIError):
    """Raised when attempting to register with an email that's already in use."""

    def __init__(self, email: str):
        self.email = email
        super().__init__("User with this email already exists")


class InvalidCredentialsError(SpliceAPIError):
    """Raised when login credentials are incorrect."""

    def __init__(self):
        super().__init__("Invalid email or password")


class InvalidRefreshTokenError(SpliceAPIError):
    """Raised when a refresh token is unknown, revoked, or expired."""

    def __init__(self, detail: str = "Invalid refresh token"):
        super().__init__(detail)


class InvalidWebhookSignatureError(SpliceAPIError):
    """Raised when an incoming provider webhook fails signature verification."""

    def __init__(self):
        super().__init__("Invalid webhook signature")


class ExchangeRateUnavailableError(SpliceAPIError):
    """Raised when no stored exchange rate can satisfy a lookup."""


class RateProviderError(SpliceAPIError):
    """Raised by rate/balance providers when an upstream API call fails."""


class LinkCompletionError(SpliceAPIError):
    """Raised when a provider webhook could not be turned into bank links."""


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def _error_response(status_code: int, exc: SpliceAPIError, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.detail, "error_type": error_type},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Starlette resolves handlers along the exception's MRO, so the
    NotFoundError handler also covers its subclasses.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(NotFoundError)
    async def not_found_handler(
        request: Request, exc: NotFoundError
    ) -> JSONResponse:
        return _error_response(404, exc, "not_found")

    @app.exception_handler(BadRequestError)
    async def bad_request_handler(
        request: Request, exc: BadRequestError
    ) -> JSONResponse:
        return _error_response(400, exc, "bad_request")

    @app.exception_handler(DuplicateEmailError)
    async def duplicate_email_handler(
        request: Request, exc: DuplicateEmailError
    ) -> JSONResponse:
        return _error_response(409, exc, "duplicate_email")

    @app.exception_handler(InvalidCredentialsError)
    async def invalid_credentials_handler(
        request: Request, exc: InvalidCredentialsError
    ) -> JSONResponse:
        return _error_response(401, exc, "invalid_credentials")

    @app.exception_handler(InvalidRefreshTokenError)
    async def invalid_refresh_token_handler(
        request: Request, exc: InvalidRefreshTokenError
    ) -> JSONResponse:
        return _error_response(401, exc, "invalid_refresh_token")

    @app.exception_handler(InvalidWebhookSignatureError)
    async def invalid_webhook_signature_handler(
        request: Request, exc: InvalidWebhookSignatureError
    ) -> JSONResponse:
        return _error_response(401, exc, "invalid_webhook_signature")

    @app.exception_handler(ExchangeRateUnavailableError)
    async def exchange_rate_unavailable_handler(
        request: Request, exc: ExchangeRateUnavailableError
    ) -> JSONResponse:
        return _error_response(404, exc, "exchange_rate_unavailable")

    @app.exception_handler(RateProviderError)
    async def rate_provider_handler(
        request: Request, exc: RateProviderError
    ) -> JSONResponse:
        return _error_response(502, exc, "rate_provider_error")

    @app.exception_handler(LinkCompletionError)
    async def link_completion_handler(
        request: Request, exc: LinkCompletionError
    ) -> JSONResponse:
        return _error_response(502, exc, "link_completion_failed")
