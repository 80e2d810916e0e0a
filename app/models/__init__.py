"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all runs
  2. String relationship targets ("Account", "BankLink") resolve
"""

from app.models.user import User  # noqa: F401
from app.models.refresh_token import RefreshToken  # noqa: F401
from app.models.bank_link import BankLink, BankLinkStatus  # noqa: F401
from app.models.account import Account, AccountType  # noqa: F401
from app.models.balance_snapshot import BalanceSnapshot, BalanceSnapshotType  # noqa: F401
from app.models.exchange_rate import ExchangeRate  # noqa: F401
from app.models.transaction import Transaction  # noqa: F401
from app.models.webhook_event import WebhookEvent, WebhookEventStatus  # noqa: F401
