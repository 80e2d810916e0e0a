"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. This keeps provider credentials (Plaid, Tatum) and the JWT
signing key out of source code.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Usage:
    from app.config import settings
    print(settings.PLAID_ENV)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Splice API.

    SECRET_KEY has a development default so the app boots locally; always
    override it in any shared environment.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Splice API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    # SQLite for local development; swap to a PostgreSQL (asyncpg) URL in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./splice.db"

    # --- Authentication ---
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # --- CORS ---
    # Origins allowed to make cross-origin requests (frontend URLs)
    ALLOWED_ORIGINS: list[str] = ["http://localhost:5173"]

    # --- Plaid ---
    PLAID_CLIENT_ID: str = ""
    PLAID_SECRET: str = ""
    # "sandbox" or "production"
    PLAID_ENV: str = "sandbox"
    # Public base URL of this API, used to build provider webhook URLs
    API_DOMAIN: str = "http://localhost:3000"

    # --- Crypto balances (Tatum) ---
    TATUM_API_KEY: str = ""
    TATUM_BASE_URL: str = "https://api.tatum.io/v3"

    # --- Exchange rate APIs ---
    FRANKFURTER_BASE_URL: str = "https://api.frankfurter.dev/v1"
    COINGECKO_BASE_URL: str = "https://api.coingecko.com/api/v3"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # --- Background jobs ---
    SCHEDULER_ENABLED: bool = True


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
