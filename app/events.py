"""
In-process domain events.

Services announce that something happened (an account was synced, a
transaction was deleted) and listeners react to it (write a balance
snapshot, adjust balances, backfill exchange rates) without the emitting
service importing the reacting one.

Listeners are plain async functions registered with ``@on(event_name)``:

    @on(AccountEvents.CREATED)
    async def handle_account_created(db: AsyncSession, account: Account) -> None:
        ...

``emit()`` awaits each listener in registration order, passing the caller's
session, so listener writes commit or roll back together with the request.
Each listener runs inside its own SAVEPOINT, so a failing listener's partial
writes are rolled back. The failure is logged and the remaining listeners
still run.

Listener modules register themselves on import; ``app.listeners`` imports
all of them.
"""

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession


logger = logging.getLogger(__name__)

Listener = Callable[..., Awaitable[None]]

_listeners: dict[str, list[Listener]] = defaultdict(list)


# ---------------------------------------------------------------------------
# Event names
# ---------------------------------------------------------------------------

class AccountEvents:
    CREATED = "account.created"
    UPDATED = "account.updated"


class BalanceSnapshotEvents:
    UPDATED = "balance-snapshot.updated"


class TransactionEvents:
    CREATED = "transaction.created"
    UPDATED = "transaction.updated"
    DELETED = "transaction.deleted"


class UserEvents:
    SETTINGS_UPDATED = "user.settings-updated"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def on(event_name: str) -> Callable[[Listener], Listener]:
    """Register the decorated coroutine function as a listener for ``event_name``."""

    def decorator(func: Listener) -> Listener:
        _listeners[event_name].append(func)
        return func

    return decorator


def listeners_for(event_name: str) -> list[Listener]:
    return list(_listeners.get(event_name, []))


async def emit(event_name: str, db: AsyncSession, **payload: Any) -> None:
    """
    Deliver an event to every registered listener.

    Args:
        event_name: One of the *Events constants above.
        db: The session the listeners should use.
        **payload: Keyword arguments forwarded to each listener.
    """
    for listener in listeners_for(event_name):
        try:
            async with db.begin_nested():
                await listener(db, **payload)
        except Exception:
            logger.exception(
                "Listener %s failed for event %s", listener.__qualname__, event_name
            )
