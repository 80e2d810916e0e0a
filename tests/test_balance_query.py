"""
Tests for daily balance queries over a date range.

These tests verify:
  - One entry per calendar day, both ends inclusive
  - Days without a snapshot reuse the latest earlier one (synced_at is null)
  - Days before any snapshot report a zero balance
  - Investment accounts combine available and current into the effective balance
  - Balances are converted with filled-forward daily rates
  - Manual accounts and malformed ranges are rejected with 400
"""

import uuid
from datetime import date

from conftest import money

from app.models.account import Account
from app.models.balance_snapshot import BalanceSnapshot
from app.models.bank_link import BankLink
from app.services import exchange_rate_service


async def create_linked_account(db_session, user_id, currency="USD", account_type="depository"):
    """Insert a provider-linked account the way a completed link would."""
    user_id = uuid.UUID(user_id)
    link = BankLink(user_id=user_id, provider_name="plaid", authentication={"itemId": "item-1"})
    db_session.add(link)
    await db_session.flush()

    account = Account(
        user_id=user_id,
        name="Linked",
        type=account_type,
        external_account_id=str(uuid.uuid4()),
        bank_link_id=link.id,
        current_balance_currency=currency,
        available_balance_currency=currency,
    )
    db_session.add(account)
    await db_session.commit()
    return account


async def add_snapshot(db_session, account, day, current, available=None):
    snapshot = BalanceSnapshot(
        user_id=account.user_id,
        account_id=account.id,
        snapshot_date=day,
        snapshot_type="SYNC",
        current_balance_amount=current,
        current_balance_currency=account.currency,
        available_balance_amount=current if available is None else available,
        available_balance_currency=account.currency,
    )
    db_session.add(snapshot)
    await db_session.commit()
    return snapshot


async def query(client, account_ids, start="2024-01-01", end="2024-01-05"):
    return await client.get(
        "/balance-query/balances",
        params={
            "account_ids": ",".join(str(a) for a in account_ids),
            "start_date": start,
            "end_date": end,
        },
    )


# ---------------------------------------------------------------------------
# Fill-forward
# ---------------------------------------------------------------------------

class TestDailyBalances:
    """Tests for GET /balance-query/balances."""

    async def test_fills_forward_between_snapshots(self, authenticated_client, db_session):
        account = await create_linked_account(db_session, authenticated_client.user_id)
        await add_snapshot(db_session, account, date(2024, 1, 2), 1000)
        await add_snapshot(db_session, account, date(2024, 1, 4), 3000)

        response = await query(authenticated_client, [account.id])
        assert response.status_code == 200, response.text
        days = response.json()
        assert [d["date"] for d in days] == [
            "2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04", "2024-01-05",
        ]

        entries = [d["balances"][str(account.id)] for d in days]
        assert [e["current_balance"]["balance"] for e in entries] == [
            money(0), money(1000), money(1000), money(3000), money(3000),
        ]
        assert [e["synced_at"] is not None for e in entries] == [False, True, False, True, False]

    async def test_snapshot_before_range_carries_in(self, authenticated_client, db_session):
        account = await create_linked_account(db_session, authenticated_client.user_id)
        await add_snapshot(db_session, account, date(2023, 12, 20), 450)

        days = (await query(authenticated_client, [account.id], "2024-01-01", "2024-01-02")).json()
        assert [d["balances"][str(account.id)]["current_balance"]["balance"] for d in days] == [
            money(450), money(450),
        ]

    async def test_same_currency_has_no_conversion(self, authenticated_client, db_session):
        account = await create_linked_account(db_session, authenticated_client.user_id)
        await add_snapshot(db_session, account, date(2024, 1, 1), 10)

        day = (await query(authenticated_client, [account.id], "2024-01-01", "2024-01-01")).json()[0]
        entry = day["balances"][str(account.id)]
        assert entry["current_balance"]["converted_balance"] is None
        assert entry["current_balance"]["exchange_rate"] is None
        assert entry["account"]["id"] == str(account.id)

    async def test_investment_effective_balance(self, authenticated_client, db_session):
        """Cash (available) plus holdings (current)."""
        account = await create_linked_account(
            db_session, authenticated_client.user_id, account_type="investment"
        )
        await add_snapshot(db_session, account, date(2024, 1, 1), current=5000, available=1000)

        day = (await query(authenticated_client, [account.id], "2024-01-01", "2024-01-01")).json()[0]
        assert day["balances"][str(account.id)]["effective_balance"]["balance"] == money(6000)

    async def test_depository_effective_balance_is_current(self, authenticated_client, db_session):
        account = await create_linked_account(db_session, authenticated_client.user_id)
        await add_snapshot(db_session, account, date(2024, 1, 1), current=5000, available=1000)

        day = (await query(authenticated_client, [account.id], "2024-01-01", "2024-01-01")).json()[0]
        assert day["balances"][str(account.id)]["effective_balance"]["balance"] == money(5000)

    async def test_other_users_accounts_left_out(
        self, authenticated_client, second_authenticated_client, db_session
    ):
        account = await create_linked_account(db_session, authenticated_client.user_id)
        await add_snapshot(db_session, account, date(2024, 1, 1), 10)

        response = await query(second_authenticated_client, [account.id])
        assert response.status_code == 200
        assert response.json() == []


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

class TestConvertedBalances:
    """Balances are converted into the user's currency day by day."""

    async def test_converted_with_filled_rate(self, authenticated_client, db_session):
        account = await create_linked_account(db_session, authenticated_client.user_id, currency="EUR")
        await add_snapshot(db_session, account, date(2024, 1, 1), 1000)
        await exchange_rate_service.upsert_rate(db_session, "EUR", "USD", 1.1, date(2024, 1, 1))
        await exchange_rate_service.upsert_rate(db_session, "EUR", "USD", 1.2, date(2024, 1, 3))
        await db_session.commit()

        days = (await query(authenticated_client, [account.id], "2024-01-01", "2024-01-03")).json()
        entries = [d["balances"][str(account.id)]["current_balance"] for d in days]

        assert [e["converted_balance"] for e in entries] == [
            money(1100), money(1100), money(1200),
        ]
        assert [e["exchange_rate"]["source"] for e in entries] == ["DB", "FILLED", "DB"]

    async def test_missing_rates_leave_balances_unconverted(self, authenticated_client, db_session):
        account = await create_linked_account(db_session, authenticated_client.user_id, currency="GBP")
        await add_snapshot(db_session, account, date(2024, 1, 1), 1000)

        response = await query(authenticated_client, [account.id], "2024-01-01", "2024-01-01")
        assert response.status_code == 200
        entry = response.json()[0]["balances"][str(account.id)]["current_balance"]
        assert entry["balance"] == money(1000, "GBP")
        assert entry["converted_balance"] is None


# ---------------------------------------------------------------------------
# All linked accounts
# ---------------------------------------------------------------------------

class TestAllBalances:
    """Tests for GET /balance-query/all-balances."""

    async def test_only_linked_accounts(self, authenticated_client, db_session):
        linked = await create_linked_account(db_session, authenticated_client.user_id)
        await add_snapshot(db_session, linked, date(2024, 1, 1), 10)
        await authenticated_client.post(
            "/accounts", json={"name": "Cash", "current_balance": money(500)}
        )

        response = await authenticated_client.get(
            "/balance-query/all-balances",
            params={"start_date": "2024-01-01", "end_date": "2024-01-02"},
        )
        assert response.status_code == 200
        days = response.json()
        assert len(days) == 2
        assert list(days[0]["balances"]) == [str(linked.id)]

    async def test_no_linked_accounts(self, authenticated_client):
        response = await authenticated_client.get(
            "/balance-query/all-balances",
            params={"start_date": "2024-01-01", "end_date": "2024-01-02"},
        )
        assert response.status_code == 200
        assert response.json() == []


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestBalanceQueryValidation:
    """Malformed requests are rejected with 400."""

    async def test_manual_account_rejected(self, authenticated_client):
        account = (
            await authenticated_client.post(
                "/accounts", json={"name": "Cash", "current_balance": money(500)}
            )
        ).json()

        response = await query(authenticated_client, [account["id"]])
        assert response.status_code == 400
        assert "Manual accounts are not yet supported" in response.json()["detail"]
        assert account["id"] in response.json()["detail"]

    async def test_start_after_end(self, authenticated_client):
        response = await query(authenticated_client, [uuid.uuid4()], "2024-01-05", "2024-01-01")
        assert response.status_code == 400

    async def test_malformed_date(self, authenticated_client):
        response = await query(authenticated_client, [uuid.uuid4()], "2024-1-5", "2024-01-06")
        assert response.status_code == 400

    async def test_invalid_account_id(self, authenticated_client):
        response = await authenticated_client.get(
            "/balance-query/balances",
            params={"account_ids": "not-a-uuid", "start_date": "2024-01-01", "end_date": "2024-01-02"},
        )
        assert response.status_code == 400

    async def test_requires_auth(self, client):
        response = await client.get(
            "/balance-query/all-balances",
            params={"start_date": "2024-01-01", "end_date": "2024-01-02"},
        )
        assert response.status_code == 401
