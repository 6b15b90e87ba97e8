"""Tests for okanassist.core.mutations — confirm-then-invalidate writes."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from okanassist.core.cache_store import CacheStore
from okanassist.core.data_service import FinanceData
from okanassist.core.errors import ErrorKind, Result
from okanassist.core.gateway import RemoteDataGateway
from okanassist.core.mutations import MutationCoordinator
from okanassist.data.models import UserSettings


@pytest_asyncio.fixture
async def stack(signed_in, sqlite_backend):
    """Signed-in session + SQLite backend + cache, wired like the app."""
    cache = CacheStore(session_store=signed_in)
    gateway = RemoteDataGateway(sqlite_backend, signed_in)
    return {
        "sessions": signed_in,
        "cache": cache,
        "data": FinanceData(gateway, cache),
        "mutations": MutationCoordinator(gateway, cache, signed_in),
    }


class TestInvalidationScope:
    @pytest.mark.asyncio
    async def test_transaction_write_invalidates_transactions_and_summary_only(self, stack):
        data, cache, mutations = stack["data"], stack["cache"], stack["mutations"]
        await data.transactions(30)
        await data.transaction_summary(30)
        await data.reminders()

        result = await mutations.create_transaction({"amount": 12, "description": "Lunch"})

        assert result.success
        assert cache.is_stale("transactions_30_all")
        assert cache.is_stale("summary_30")
        assert not cache.is_stale("reminders_open_50")

    @pytest.mark.asyncio
    async def test_reminder_write_invalidates_reminders_only(self, stack):
        data, cache, mutations = stack["data"], stack["cache"], stack["mutations"]
        await data.transactions(30)
        await data.reminders()
        await data.reminder_summary(30)

        result = await mutations.create_reminder({"title": "Pay rent"})

        assert result.success
        assert cache.is_stale("reminders_open_50")
        assert cache.is_stale("reminders_summary_30")
        assert not cache.is_stale("transactions_30_all")

    @pytest.mark.asyncio
    async def test_activity_summary_follows_both_entities(self, stack):
        data, cache, mutations = stack["data"], stack["cache"], stack["mutations"]
        await data.activity_summary(30)
        await data.categories()

        await mutations.create_reminder({"title": "Renew passport"})
        assert cache.is_stale("activity_30")
        assert not cache.is_stale("categories")

        refreshed = await data.activity_summary(30)
        assert refreshed.data.reminders.pending == 1

        await mutations.create_transaction({"amount": 8, "description": "Coffee"})
        assert cache.is_stale("activity_30")
        assert (await data.activity_summary(30)).data.transactions.expense_count == 1

    @pytest.mark.asyncio
    async def test_failed_write_leaves_cache_untouched(self):
        gateway = MagicMock()
        gateway.delete_transaction = AsyncMock(
            return_value=Result.fail(ErrorKind.NOT_FOUND, "gone"),
        )
        cache = CacheStore()
        await cache.get("summary_30", AsyncMock(return_value=Result.ok({"n": 1})))

        result = await MutationCoordinator(gateway, cache).delete_transaction("tx-404")

        assert result.error.kind is ErrorKind.NOT_FOUND
        assert not cache.is_stale("summary_30")

    @pytest.mark.asyncio
    async def test_settings_update_refreshes_session(self, stack):
        result = await stack["mutations"].update_user_settings(
            UserSettings(name="Dana", currency="EUR", language="en", timezone="UTC"),
        )
        assert result.success
        assert stack["sessions"].current_session().currency == "EUR"


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_summary_reflects_new_expense(self, stack):
        """sign in -> summary -> add expense -> summary shows it."""
        data, mutations = stack["data"], stack["mutations"]

        before = await data.transaction_summary(30)
        assert before.success
        assert before.data.expense_count == 0

        created = await mutations.create_transaction(
            {"amount": "25.00", "description": "Uber to airport"},
        )
        assert created.data.category == "Transportation"

        after = await data.transaction_summary(30)
        assert after.from_cache is False
        assert after.data.expense_count == 1
        assert after.data.total_expenses == Decimal("25.00")
        assert after.data.category_breakdown == {"Transportation": Decimal("25.00")}

    @pytest.mark.asyncio
    async def test_counts_match_listing(self, stack):
        data, mutations = stack["data"], stack["mutations"]
        today = date.today()
        await mutations.create_transaction({"amount": 10, "description": "Coffee", "date": today})
        await mutations.create_transaction(
            {"amount": 2000, "description": "Salary", "transaction_type": "income", "date": today},
        )
        await mutations.create_transaction(
            {"amount": 99, "description": "Old purchase", "date": today - timedelta(days=90)},
        )

        summary = await data.transaction_summary(30)
        listing = await data.transactions(30)

        assert summary.data.expense_count + summary.data.income_count == listing.data.count == 2

    @pytest.mark.asyncio
    async def test_complete_reminder_moves_it_out_of_open_list(self, stack):
        data, mutations = stack["data"], stack["mutations"]
        created = await mutations.create_reminder({
            "title": "Call bank",
            "due_datetime": datetime.now(timezone.utc) + timedelta(hours=3),
        })
        assert (await data.reminders()).data.count == 1

        done = await mutations.complete_reminder(created.data.id)

        assert done.data.is_completed
        assert (await data.reminders()).data.count == 0
        assert (await data.reminders(include_completed=True)).data.count == 1

    @pytest.mark.asyncio
    async def test_sign_out_then_read_is_unauthenticated(self, stack):
        data, sessions, cache = stack["data"], stack["sessions"], stack["cache"]
        await data.transactions(30)

        await sessions.sign_out()
        result = await data.transactions(30)

        assert result.error.kind is ErrorKind.UNAUTHENTICATED
        assert result.data is None
