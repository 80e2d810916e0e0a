"""
Tests for transaction endpoints and their effect on balances.

These tests verify:
  - Positive amounts add to the account balance, negative amounts subtract
  - Today's snapshot follows the account balance
  - Updating an amount shifts the account and every snapshot from the
    transaction date to today by the difference
  - Deleting a transaction reverses it on the account and snapshots
  - Snapshots before the transaction date are left alone
  - Transactions on another user's account are rejected (404)
"""

import uuid
from datetime import timedelta

from conftest import money

from app.dates import utc_today
from app.services import balance_snapshot_service


async def create_account(client, amount=10000):
    response = await client.post(
        "/accounts",
        json={"name": "Checking", "current_balance": money(amount)},
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


async def create_transaction(client, account_id, amount, sign="positive", day=None):
    response = await client.post(
        "/transactions",
        json={
            "account_id": account_id,
            "amount": money(amount, sign=sign),
            "date": (day or utc_today()).isoformat(),
            "merchant_name": "Coffee Shop",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


async def account_balance(client, account_id) -> dict:
    return (await client.get(f"/accounts/{account_id}")).json()["current_balance"]


async def snapshot_balances(client, account_id) -> dict[str, dict]:
    response = await client.get(f"/balance-snapshots/account/{account_id}")
    return {s["snapshot_date"]: s["current_balance"] for s in response.json()}


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

class TestCreateTransaction:
    """Tests for POST /transactions."""

    async def test_positive_amount_adds(self, authenticated_client):
        account_id = await create_account(authenticated_client, 10000)
        txn = await create_transaction(authenticated_client, account_id, 2500)

        assert txn["amount"] == money(2500)
        assert txn["merchant_name"] == "Coffee Shop"
        assert await account_balance(authenticated_client, account_id) == money(12500)

    async def test_negative_amount_subtracts(self, authenticated_client):
        account_id = await create_account(authenticated_client, 10000)
        await create_transaction(authenticated_client, account_id, 2500, sign="negative")
        assert await account_balance(authenticated_client, account_id) == money(7500)

    async def test_balance_can_go_negative(self, authenticated_client):
        account_id = await create_account(authenticated_client, 1000)
        await create_transaction(authenticated_client, account_id, 3000, sign="negative")
        assert await account_balance(authenticated_client, account_id) == money(2000, sign="negative")

    async def test_todays_snapshot_follows_balance(self, authenticated_client):
        account_id = await create_account(authenticated_client, 10000)
        await create_transaction(authenticated_client, account_id, 500)

        snapshots = await snapshot_balances(authenticated_client, account_id)
        assert snapshots[utc_today().isoformat()] == money(10500)

    async def test_failed_snapshot_write_leaves_balance_untouched(
        self, authenticated_client, monkeypatch
    ):
        """Account and snapshot move together or not at all."""
        account_id = await create_account(authenticated_client, 1000)

        async def broken_upsert(*args, **kwargs):
            raise RuntimeError("snapshot table unavailable")

        monkeypatch.setattr(balance_snapshot_service, "upsert_from_account", broken_upsert)
        txn = await create_transaction(authenticated_client, account_id, 500)

        assert await account_balance(authenticated_client, account_id) == money(1000)
        snapshots = await snapshot_balances(authenticated_client, account_id)
        assert snapshots[utc_today().isoformat()] == money(1000)

        listed = (await authenticated_client.get("/transactions")).json()
        assert [t["id"] for t in listed] == [txn["id"]]

    async def test_unknown_account(self, authenticated_client):
        response = await authenticated_client.post(
            "/transactions",
            json={"account_id": str(uuid.uuid4()), "amount": money(1), "date": utc_today().isoformat()},
        )
        assert response.status_code == 404

    async def test_other_users_account(self, authenticated_client, second_authenticated_client):
        account_id = await create_account(authenticated_client)
        response = await second_authenticated_client.post(
            "/transactions",
            json={"account_id": account_id, "amount": money(1), "date": utc_today().isoformat()},
        )
        assert response.status_code == 404
        assert await account_balance(authenticated_client, account_id) == money(10000)


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TestListTransactions:
    """Tests for GET /transactions."""

    async def test_filter_by_account(self, authenticated_client):
        first = await create_account(authenticated_client)
        second = await create_account(authenticated_client)
        await create_transaction(authenticated_client, first, 100)
        await create_transaction(authenticated_client, second, 200)

        response = await authenticated_client.get("/transactions", params={"account_id": first})
        assert response.status_code == 200
        assert [t["amount"]["money"]["amount"] for t in response.json()] == [100]

        all_txns = (await authenticated_client.get("/transactions")).json()
        assert len(all_txns) == 2

    async def test_other_user_sees_nothing(self, authenticated_client, second_authenticated_client):
        account_id = await create_account(authenticated_client)
        txn = await create_transaction(authenticated_client, account_id, 100)

        assert (await second_authenticated_client.get("/transactions")).json() == []
        response = await second_authenticated_client.get(f"/transactions/{txn['id']}")
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Updates and deletions
# ---------------------------------------------------------------------------

class TestTransactionHistory:
    """Updates and deletions correct the account and its snapshot history."""

    async def _with_history(self, client, days_back=3):
        """Account with one snapshot per day for the last few days, all at 10000."""
        account_id = await create_account(client, 10000)
        today = utc_today()
        for offset in range(1, days_back + 1):
            response = await client.post(
                "/balance-snapshots",
                json={
                    "account_id": account_id,
                    "snapshot_date": (today - timedelta(days=offset)).isoformat(),
                    "current_balance": money(10000),
                    "available_balance": money(10000),
                },
            )
            assert response.status_code == 201, response.text
        return account_id

    async def test_update_amount_shifts_history(self, authenticated_client):
        account_id = await self._with_history(authenticated_client)
        today = utc_today()
        two_days_ago = today - timedelta(days=2)

        txn = await create_transaction(authenticated_client, account_id, 1000, day=two_days_ago)
        # Created transactions only touch today's snapshot
        assert await account_balance(authenticated_client, account_id) == money(11000)

        response = await authenticated_client.patch(
            f"/transactions/{txn['id']}", json={"amount": money(1500)}
        )
        assert response.status_code == 200
        assert response.json()["amount"] == money(1500)

        assert await account_balance(authenticated_client, account_id) == money(11500)
        snapshots = await snapshot_balances(authenticated_client, account_id)
        assert snapshots[(today - timedelta(days=3)).isoformat()] == money(10000)
        assert snapshots[two_days_ago.isoformat()] == money(10500)
        assert snapshots[(today - timedelta(days=1)).isoformat()] == money(10500)
        assert snapshots[today.isoformat()] == money(11500)

    async def test_update_without_amount_keeps_balance(self, authenticated_client):
        account_id = await create_account(authenticated_client, 10000)
        txn = await create_transaction(authenticated_client, account_id, 1000)

        response = await authenticated_client.patch(
            f"/transactions/{txn['id']}", json={"merchant_name": "Bakery", "pending": True}
        )
        assert response.status_code == 200
        assert response.json()["merchant_name"] == "Bakery"
        assert response.json()["pending"] is True
        assert await account_balance(authenticated_client, account_id) == money(11000)

    async def test_delete_reverses_history(self, authenticated_client):
        account_id = await self._with_history(authenticated_client)
        today = utc_today()
        yesterday = today - timedelta(days=1)

        txn = await create_transaction(
            authenticated_client, account_id, 400, sign="negative", day=yesterday
        )
        assert await account_balance(authenticated_client, account_id) == money(9600)

        response = await authenticated_client.delete(f"/transactions/{txn['id']}")
        assert response.status_code == 204

        assert await account_balance(authenticated_client, account_id) == money(10000)
        snapshots = await snapshot_balances(authenticated_client, account_id)
        # Reversal adds back 400 from the transaction date onwards
        assert snapshots[yesterday.isoformat()] == money(10400)
        assert snapshots[today.isoformat()] == money(10000)
        assert snapshots[(today - timedelta(days=2)).isoformat()] == money(10000)

    async def test_delete_unknown_transaction(self, authenticated_client):
        response = await authenticated_client.delete(f"/transactions/{uuid.uuid4()}")
        assert response.status_code == 404
