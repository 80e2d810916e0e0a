"""
BankLink model — one connection to an external provider.

A Plaid "item" (one institution login) or a single crypto wallet address
is one bank link. A link owns many accounts.

authentication (JSON) is provider-specific:
  plaid:  {"accessToken": "...", "itemId": "..."}
  crypto: {"address": "0x...", "network": "ethereum"}

status tracks provider-reported health:
  OK              — syncing normally
  ERROR           — the provider reported an item error (status_body has details)
  PENDING_REAUTH  — the user must re-authenticate soon
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.mixins import TimestampMixin


class BankLinkStatus(str, enum.Enum):
    OK = "OK"
    ERROR = "ERROR"
    PENDING_REAUTH = "PENDING_REAUTH"


class BankLink(TimestampMixin, Base):
    __tablename__ = "bank_links"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # "plaid" or "crypto" (see app/providers/registry.py)
    provider_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    authentication: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # External account ids the provider returned when the link was created
    account_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)

    institution_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    institution_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=BankLinkStatus.OK.value,
    )
    status_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    status_body: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # --- Relationships ---
    accounts: Mapped[list["Account"]] = relationship(back_populates="bank_link")
