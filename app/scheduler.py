"""
Background jobs.

A small asyncio scheduler started from the application lifespan. Each job
runs in its own task: it sleeps until the next scheduled time, opens a
fresh session with ``AsyncSessionLocal()``, runs, and commits. A job that
fails is rolled back and logged; it runs again at its next slot.

Jobs:
  fiat-rates          daily at 06:00 UTC
  crypto-rates        hourly at :05 UTC
  bank-link-sync      daily at 17:00 America/Los_Angeles (all providers
                      except Plaid, which syncs from webhooks, and crypto)
  crypto-link-sync    hourly at :00 UTC
  snapshot-fill       at 00:00, 06:00, 12:00 and 18:00 UTC
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from app.database import AsyncSessionLocal
from app.services import balance_snapshot_service, bank_link_service, currency_backfill_service


logger = logging.getLogger(__name__)

PACIFIC = ZoneInfo("America/Los_Angeles")


# ---------------------------------------------------------------------------
# Schedules: each returns the next run time strictly after `now`
# ---------------------------------------------------------------------------

def daily_at(hour: int, minute: int = 0, tz: timezone | ZoneInfo = timezone.utc):
    def next_run(now: datetime) -> datetime:
        local = now.astimezone(tz)
        candidate = local.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if candidate <= local:
            # Rebuild from the date so DST shifts keep the wall-clock time
            next_day = (local + timedelta(days=1)).date()
            candidate = datetime(next_day.year, next_day.month, next_day.day, hour, minute, tzinfo=tz)
        return candidate.astimezone(timezone.utc)
    return next_run


def hourly_at(minute: int):
    def next_run(now: datetime) -> datetime:
        now = now.astimezone(timezone.utc)
        candidate = now.replace(minute=minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(hours=1)
        return candidate
    return next_run


def every_n_hours(step: int):
    """On the hour, at every UTC hour divisible by step (step must divide 24)."""
    def next_run(now: datetime) -> datetime:
        now = now.astimezone(timezone.utc)
        candidate = now.replace(minute=0, second=0, microsecond=0)
        return candidate + timedelta(hours=step - candidate.hour % step)
    return next_run


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

async def sync_fiat_rates(db: AsyncSession) -> None:
    rates = await currency_backfill_service.sync_daily_fiat_rates(db)
    logger.info("Fiat rate sync stored %d rates", len(rates))


async def sync_crypto_rates(db: AsyncSession) -> None:
    rates = await currency_backfill_service.sync_hourly_crypto_rates(db)
    logger.info("Crypto rate sync stored %d rates", len(rates))


async def sync_bank_links(db: AsyncSession) -> None:
    await bank_link_service.sync_all_accounts_system(db, exclude_providers=["plaid", "crypto"])


async def sync_crypto_links(db: AsyncSession) -> None:
    await bank_link_service.sync_all_accounts_system(db, include_providers=["crypto"])


async def fill_snapshots(db: AsyncSession) -> None:
    await balance_snapshot_service.forward_fill_missing_snapshots(db)


@dataclass
class Job:
    name: str
    next_run: Callable[[datetime], datetime]
    func: Callable[[AsyncSession], Awaitable[None]]


JOBS = [
    Job("fiat-rates", daily_at(6, 0), sync_fiat_rates),
    Job("crypto-rates", hourly_at(5), sync_crypto_rates),
    Job("bank-link-sync", daily_at(17, 0, PACIFIC), sync_bank_links),
    Job("crypto-link-sync", hourly_at(0), sync_crypto_links),
    Job("snapshot-fill", every_n_hours(6), fill_snapshots),
]


async def run_job(job: Job, session_factory=AsyncSessionLocal) -> bool:
    """
    Run one job in its own session.

    Returns:
        True if the job committed, False if it failed and was rolled back.
    """
    logger.info("Running job %s", job.name)
    async with session_factory() as session:
        try:
            await job.func(session)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Job %s failed", job.name)
            return False
    logger.info("Job %s finished", job.name)
    return True


class Scheduler:
    """Runs each job forever on its own schedule until stopped."""

    def __init__(self, jobs: list[Job] | None = None, session_factory=AsyncSessionLocal):
        self.jobs = JOBS if jobs is None else jobs
        self.session_factory = session_factory
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def _loop(self, job: Job) -> None:
        while True:
            now = datetime.now(timezone.utc)
            run_at = job.next_run(now)
            logger.debug("Job %s next run at %s", job.name, run_at.isoformat())
            await asyncio.sleep(max((run_at - now).total_seconds(), 0))
            await run_job(job, self.session_factory)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._loop(job), name=f"job:{job.name}") for job in self.jobs
        ]
        logger.info("Scheduler started with %d jobs", len(self._tasks))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Scheduler stopped")


scheduler = Scheduler()
