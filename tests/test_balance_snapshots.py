"""
Tests for balance snapshots and the scheduled forward-fill.

These tests verify:
  - There is at most one snapshot per account and day (POST upserts)
  - Snapshot conversion uses the rate of the snapshot's own date
  - Snapshots of other users are not visible
  - Forward-fill copies the last known balance into "yesterday" once
  - Scheduled jobs commit their work in their own session
"""

import uuid
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from conftest import money
from sqlalchemy import select

from app.dates import utc_today
from app.models.balance_snapshot import BalanceSnapshot
from app.scheduler import JOBS, Job, daily_at, every_n_hours, fill_snapshots, hourly_at, run_job
from app.services import balance_snapshot_service, exchange_rate_service


async def create_account(client, amount=10000, currency="USD"):
    response = await client.post(
        "/accounts",
        json={"name": "Savings", "current_balance": money(amount, currency)},
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


async def post_snapshot(client, account_id, day, amount, currency="USD"):
    response = await client.post(
        "/balance-snapshots",
        json={
            "account_id": account_id,
            "snapshot_date": day.isoformat(),
            "current_balance": money(amount, currency),
            "available_balance": money(amount, currency),
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestSnapshotCrud:
    """Tests for the /balance-snapshots endpoints."""

    async def test_post_upserts_same_day(self, authenticated_client):
        account_id = await create_account(authenticated_client)
        day = utc_today() - timedelta(days=5)

        first = await post_snapshot(authenticated_client, account_id, day, 100)
        second = await post_snapshot(authenticated_client, account_id, day, 200)

        assert first["id"] == second["id"]
        assert second["current_balance"] == money(200)

    async def test_patch_snapshot(self, authenticated_client):
        account_id = await create_account(authenticated_client)
        snapshot = await post_snapshot(authenticated_client, account_id, utc_today() - timedelta(days=1), 100)

        response = await authenticated_client.patch(
            f"/balance-snapshots/{snapshot['id']}",
            json={"current_balance": money(150), "snapshot_type": "SYNC"},
        )
        assert response.status_code == 200
        assert response.json()["current_balance"] == money(150)
        assert response.json()["available_balance"] == money(100)
        assert response.json()["snapshot_type"] == "SYNC"

    async def test_delete_snapshot(self, authenticated_client):
        account_id = await create_account(authenticated_client)
        snapshot = await post_snapshot(authenticated_client, account_id, utc_today() - timedelta(days=1), 100)

        response = await authenticated_client.delete(f"/balance-snapshots/{snapshot['id']}")
        assert response.status_code == 204
        response = await authenticated_client.get(f"/balance-snapshots/{snapshot['id']}")
        assert response.status_code == 404

    async def test_snapshot_for_other_users_account(
        self, authenticated_client, second_authenticated_client
    ):
        account_id = await create_account(authenticated_client)
        response = await second_authenticated_client.post(
            "/balance-snapshots",
            json={
                "account_id": account_id,
                "current_balance": money(1),
                "available_balance": money(1),
            },
        )
        assert response.status_code == 404
        assert (await second_authenticated_client.get("/balance-snapshots")).json() == []

    async def test_get_unknown_snapshot(self, authenticated_client):
        response = await authenticated_client.get(f"/balance-snapshots/{uuid.uuid4()}")
        assert response.status_code == 404


class TestSnapshotConversion:
    """Historical conversion uses each snapshot's own date."""

    async def test_converted_at_snapshot_date(self, authenticated_client, db_session):
        today = utc_today()
        old_day = today - timedelta(days=10)
        await exchange_rate_service.upsert_rate(db_session, "EUR", "USD", 1.5, old_day)
        await exchange_rate_service.upsert_rate(db_session, "EUR", "USD", 2.0, today)
        await db_session.commit()

        account_id = await create_account(authenticated_client, 1000, "EUR")
        await post_snapshot(authenticated_client, account_id, old_day, 1000, "EUR")

        snapshots = (await authenticated_client.get(f"/balance-snapshots/account/{account_id}")).json()
        by_date = {s["snapshot_date"]: s for s in snapshots}
        assert by_date[old_day.isoformat()]["converted_current_balance"] == money(1500)
        assert by_date[today.isoformat()]["converted_current_balance"] == money(2000)

    async def test_missing_rate_on_date(self, authenticated_client):
        account_id = await create_account(authenticated_client, 1000, "EUR")
        snapshots = (await authenticated_client.get(f"/balance-snapshots/account/{account_id}")).json()
        assert snapshots[0]["converted_current_balance"] is None


class TestForwardFill:
    """Tests for balance_snapshot_service.forward_fill_missing_snapshots()."""

    async def test_fills_yesterday_from_last_known(self, authenticated_client, session_factory):
        account_id = await create_account(authenticated_client)
        today = utc_today()
        await post_snapshot(authenticated_client, account_id, today - timedelta(days=4), 777)

        async with session_factory() as session:
            result = await balance_snapshot_service.forward_fill_missing_snapshots(session)
            await session.commit()
        assert result == {"created": 1, "skipped": 0}

        snapshots = (await authenticated_client.get(f"/balance-snapshots/account/{account_id}")).json()
        yesterday = next(s for s in snapshots if s["snapshot_date"] == (today - timedelta(days=1)).isoformat())
        assert yesterday["snapshot_type"] == "FORWARD_FILL"
        assert yesterday["current_balance"] == money(777)

    async def test_second_run_skips(self, authenticated_client, session_factory):
        account_id = await create_account(authenticated_client)
        await post_snapshot(authenticated_client, account_id, utc_today() - timedelta(days=2), 1)

        async with session_factory() as session:
            await balance_snapshot_service.forward_fill_missing_snapshots(session)
            await session.commit()
        async with session_factory() as session:
            result = await balance_snapshot_service.forward_fill_missing_snapshots(session)
        assert result == {"created": 0, "skipped": 1}

    async def test_account_without_history_skipped(self, authenticated_client, session_factory):
        """An account whose only snapshot is today's has nothing to copy."""
        await create_account(authenticated_client)
        async with session_factory() as session:
            result = await balance_snapshot_service.forward_fill_missing_snapshots(session)
        assert result == {"created": 0, "skipped": 1}


class TestScheduler:
    """Job wrapper and schedule arithmetic in app.scheduler."""

    async def test_run_job_commits(self, authenticated_client, session_factory):
        account_id = await create_account(authenticated_client)
        await post_snapshot(authenticated_client, account_id, utc_today() - timedelta(days=3), 5)

        job = Job("snapshot-fill", hourly_at(0), fill_snapshots)
        assert await run_job(job, session_factory) is True

        async with session_factory() as session:
            result = await session.execute(
                select(BalanceSnapshot).where(BalanceSnapshot.snapshot_type == "FORWARD_FILL")
            )
            assert len(result.scalars().all()) == 1

    async def test_failing_job_rolls_back(self, session_factory):
        async def boom(db):
            raise RuntimeError("upstream down")

        assert await run_job(Job("boom", hourly_at(0), boom), session_factory) is False

    def test_daily_schedule_rolls_to_next_day(self):
        next_run = daily_at(6, 0)
        assert next_run(datetime(2024, 3, 1, 5, 0, tzinfo=timezone.utc)) == datetime(
            2024, 3, 1, 6, 0, tzinfo=timezone.utc
        )
        assert next_run(datetime(2024, 3, 1, 6, 0, tzinfo=timezone.utc)) == datetime(
            2024, 3, 2, 6, 0, tzinfo=timezone.utc
        )

    def test_pacific_schedule_follows_dst(self):
        next_run = daily_at(17, 0, ZoneInfo("America/Los_Angeles"))
        # January: PST, UTC-8
        assert next_run(datetime(2024, 1, 10, 0, 0, tzinfo=timezone.utc)) == datetime(
            2024, 1, 10, 1, 0, tzinfo=timezone.utc
        )
        # July: PDT, UTC-7
        assert next_run(datetime(2024, 7, 10, 0, 30, tzinfo=timezone.utc)) == datetime(
            2024, 7, 10, 0, 0, tzinfo=timezone.utc
        ) + timedelta(days=1)

    def test_hourly_schedule(self):
        next_run = hourly_at(5)
        assert next_run(datetime(2024, 3, 1, 10, 4, tzinfo=timezone.utc)) == datetime(
            2024, 3, 1, 10, 5, tzinfo=timezone.utc
        )
        assert next_run(datetime(2024, 3, 1, 10, 5, tzinfo=timezone.utc)) == datetime(
            2024, 3, 1, 11, 5, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize(
        "now, expected",
        [
            (datetime(2024, 3, 1, 5, 30, tzinfo=timezone.utc), datetime(2024, 3, 1, 6, 0, tzinfo=timezone.utc)),
            (datetime(2024, 3, 1, 6, 0, tzinfo=timezone.utc), datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)),
            (datetime(2024, 3, 1, 12, 0, 1, tzinfo=timezone.utc), datetime(2024, 3, 1, 18, 0, tzinfo=timezone.utc)),
            (datetime(2024, 3, 1, 23, 10, tzinfo=timezone.utc), datetime(2024, 3, 2, 0, 0, tzinfo=timezone.utc)),
        ],
    )
    def test_six_hour_schedule_on_wall_clock(self, now, expected):
        assert every_n_hours(6)(now) == expected

    def test_snapshot_fill_runs_every_six_hours(self):
        job = next(job for job in JOBS if job.name == "snapshot-fill")
        # Same slots no matter when the process started
        assert job.next_run(datetime(2024, 3, 1, 7, 42, tzinfo=timezone.utc)) == datetime(
            2024, 3, 1, 12, 0, tzinfo=timezone.utc
        )
