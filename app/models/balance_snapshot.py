"""
BalanceSnapshot model — an account's balances as of one calendar day.

At most one snapshot exists per (account, day). The day is a calendar date
in the owner's timezone, not a UTC instant.

snapshot_type records where the values came from:
  SYNC          — written after a provider sync
  FORWARD_FILL  — copied from the previous day because nothing synced
  USER_UPDATE   — written after a manual transaction changed the balance
"""

import enum
import uuid
from datetime import date

from sqlalchemy import Date, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.mixins import BalanceColumnsMixin, TimestampMixin


class BalanceSnapshotType(str, enum.Enum):
    SYNC = "SYNC"
    FORWARD_FILL = "FORWARD_FILL"
    USER_UPDATE = "USER_UPDATE"


class BalanceSnapshot(BalanceColumnsMixin, TimestampMixin, Base):
    __tablename__ = "balance_snapshots"

    __table_args__ = (
        UniqueConstraint(
            "account_id",
            "snapshot_date",
            name="uq_balance_snapshots_account_date",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    snapshot_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BalanceSnapshotType.SYNC.value,
    )
