"""
Account model — a financial account owned by a User.

Accounts come from two places:
  - Linked accounts: created/updated by a bank-link provider sync (Plaid,
    crypto wallet). bank_link_id points at the link and
    external_account_id holds the provider's account id.
  - Manual accounts: created by the user directly. bank_link_id is NULL.

Balances:
  current_balance / available_balance are MoneyWithSign values stored as
  column triples (see BalanceColumnsMixin). Both share the account currency.

Types follow Plaid's account types plus "crypto_wallet":
  depository, credit, loan, investment, brokerage, other, crypto_wallet
"""

import enum
import uuid

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.mixins import BalanceColumnsMixin, TimestampMixin


class AccountType(str, enum.Enum):
    DEPOSITORY = "depository"
    CREDIT = "credit"
    LOAN = "loan"
    INVESTMENT = "investment"
    BROKERAGE = "brokerage"
    OTHER = "other"
    CRYPTO_WALLET = "crypto_wallet"


class Account(BalanceColumnsMixin, TimestampMixin, Base):
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Owner of this account
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Last few digits of the account number, as reported by the provider
    mask: Mapped[str | None] = mapped_column(String(20), nullable=True)

    type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=AccountType.DEPOSITORY.value,
    )

    sub_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Provider-side account id; unique per provider, used for upserts on sync
    external_account_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    # Full provider payload from the last sync, kept for debugging
    raw_api_account: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # NULL for manual accounts
    bank_link_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("bank_links.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # --- Relationships ---
    user: Mapped["User"] = relationship(back_populates="accounts")
    bank_link: Mapped["BankLink"] = relationship(back_populates="accounts")

    @property
    def is_manual(self) -> bool:
        return self.bank_link_id is None
