"""
User model — authentication identity plus per-user preferences.

settings (JSON):
  {"currency": "USD", "timezone": "UTC"}
  - currency: ISO code all balances are converted into for display
  - timezone: IANA zone used to decide what "today" is for snapshots,
              the dashboard comparison date, and rate backfill

provider_details (JSON):
  Provider-keyed blobs that must survive across link sessions, e.g.
  {"plaid": {"userToken": "..."}} so repeat Plaid links reuse the same
  Plaid user.
"""

import uuid

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.mixins import TimestampMixin


DEFAULT_USER_SETTINGS = {"currency": "USD", "timezone": "UTC"}


def default_settings() -> dict:
    return dict(DEFAULT_USER_SETTINGS)


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Login email — unique across the system
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    # Argon2 hash, never the plaintext password
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    settings: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=default_settings,
    )

    provider_details: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    # --- Relationships ---
    accounts: Mapped[list["Account"]] = relationship(back_populates="user")

    @property
    def currency(self) -> str:
        return (self.settings or {}).get("currency") or DEFAULT_USER_SETTINGS["currency"]

    @property
    def timezone(self) -> str:
        return (self.settings or {}).get("timezone") or DEFAULT_USER_SETTINGS["timezone"]
