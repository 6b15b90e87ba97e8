"""Tests for okanassist.adapters.sqlite_backend — SQLiteBackend storage."""

import sqlite3
import threading
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from okanassist.adapters.sqlite_backend import SQLiteBackend
from okanassist.core.errors import BackendError, NotFoundError
from okanassist.data.models import (
    Priority,
    ReminderCreate,
    ReminderUpdate,
    Session,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
    UserSettings,
)

OTHER = Session(user_id="user-2", access_token="other-token")


def expense(amount, description="Something", days_ago=0, category="Other"):
    return TransactionCreate(
        amount=Decimal(str(amount)),
        description=description,
        category=category,
        date=date.today() - timedelta(days=days_ago),
    )


class TestTransactions:
    @pytest.mark.asyncio
    async def test_create_returns_transaction(self, sqlite_backend, session):
        tx = await sqlite_backend.create_transaction(session, expense("12.30", "Lunch"))
        assert tx.id
        assert tx.amount == Decimal("12.30")
        assert tx.user_id == "user-1"
        assert tx.transaction_type is TransactionType.EXPENSE

    @pytest.mark.asyncio
    async def test_list_window_and_order(self, sqlite_backend, session):
        await sqlite_backend.create_transaction(session, expense(1, "old", days_ago=40))
        await sqlite_backend.create_transaction(session, expense(2, "mid", days_ago=10))
        await sqlite_backend.create_transaction(session, expense(3, "new", days_ago=1))

        rows = await sqlite_backend.list_transactions(session, 30)
        assert [t.description for t in rows] == ["new", "mid"]

    @pytest.mark.asyncio
    async def test_list_filters_by_type(self, sqlite_backend, session):
        await sqlite_backend.create_transaction(session, expense(5))
        await sqlite_backend.create_transaction(session, TransactionCreate(
            amount=Decimal("100"), description="Salary",
            transaction_type=TransactionType.INCOME, date=date.today(),
        ))
        rows = await sqlite_backend.list_transactions(session, 30, TransactionType.INCOME)
        assert [t.description for t in rows] == ["Salary"]

    @pytest.mark.asyncio
    async def test_rows_are_scoped_to_user(self, sqlite_backend, session):
        await sqlite_backend.create_transaction(session, expense(5))
        assert await sqlite_backend.list_transactions(OTHER, 30) == []

    @pytest.mark.asyncio
    async def test_summary_matches_listing(self, sqlite_backend, session):
        await sqlite_backend.create_transaction(session, expense(10, category="Food & Dining"))
        await sqlite_backend.create_transaction(session, expense(5, category="Food & Dining"))
        await sqlite_backend.create_transaction(session, expense(7, category="Shopping", days_ago=60))
        await sqlite_backend.create_transaction(session, TransactionCreate(
            amount=Decimal("50"), description="Gift from mom",
            transaction_type=TransactionType.INCOME, date=date.today(),
        ))

        summary = await sqlite_backend.transaction_summary(session, 30)
        listing = await sqlite_backend.list_transactions(session, 30)

        assert summary.expense_count + summary.income_count == len(listing)
        assert summary.total_expenses == Decimal("15")
        assert summary.total_income == Decimal("50")
        assert summary.net_income == Decimal("35")
        assert summary.category_breakdown == {"Food & Dining": Decimal("15")}

    @pytest.mark.asyncio
    async def test_update_changes_only_given_fields(self, sqlite_backend, session):
        tx = await sqlite_backend.create_transaction(session, expense(10, "Taxi"))
        updated = await sqlite_backend.update_transaction(
            session, tx.id, TransactionUpdate(amount=Decimal("12"), category="Transportation"),
        )
        assert updated.amount == Decimal("12")
        assert updated.category == "Transportation"
        assert updated.description == "Taxi"

    @pytest.mark.asyncio
    async def test_update_other_users_row_not_found(self, sqlite_backend, session):
        tx = await sqlite_backend.create_transaction(session, expense(10))
        with pytest.raises(NotFoundError):
            await sqlite_backend.update_transaction(OTHER, tx.id, TransactionUpdate(amount=Decimal("1")))

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_backend, session):
        tx = await sqlite_backend.create_transaction(session, expense(10))
        await sqlite_backend.delete_transaction(session, tx.id)
        assert await sqlite_backend.list_transactions(session, 30) == []

    @pytest.mark.asyncio
    async def test_delete_missing_raises(self, sqlite_backend, session):
        with pytest.raises(NotFoundError):
            await sqlite_backend.delete_transaction(session, "nope")


class TestReminders:
    @pytest.mark.asyncio
    async def test_order_due_ascending_undated_last(self, sqlite_backend, session):
        await sqlite_backend.create_reminder(session, ReminderCreate(title="undated"))
        await sqlite_backend.create_reminder(session, ReminderCreate(
            title="jan5", due_datetime=datetime(2025, 1, 5, tzinfo=timezone.utc),
        ))
        await sqlite_backend.create_reminder(session, ReminderCreate(
            title="jan1", due_datetime=datetime(2025, 1, 1, tzinfo=timezone.utc),
        ))

        rows = await sqlite_backend.list_reminders(session, include_completed=False, limit=50)
        assert [r.title for r in rows] == ["jan1", "jan5", "undated"]

    @pytest.mark.asyncio
    async def test_priority_breaks_ties(self, sqlite_backend, session):
        due = datetime(2025, 3, 1, 12, tzinfo=timezone.utc)
        await sqlite_backend.create_reminder(session, ReminderCreate(title="low", due_datetime=due, priority=Priority.LOW))
        await sqlite_backend.create_reminder(session, ReminderCreate(title="high", due_datetime=due, priority=Priority.HIGH))
        rows = await sqlite_backend.list_reminders(session, include_completed=False, limit=50)
        assert [r.title for r in rows] == ["high", "low"]

    @pytest.mark.asyncio
    async def test_limit(self, sqlite_backend, session):
        for i in range(3):
            await sqlite_backend.create_reminder(session, ReminderCreate(title=f"r{i}"))
        rows = await sqlite_backend.list_reminders(session, include_completed=True, limit=2)
        assert len(rows) == 2

    @pytest.mark.asyncio
    async def test_complete_stamps_once(self, sqlite_backend, session):
        reminder = await sqlite_backend.create_reminder(session, ReminderCreate(title="Pay rent"))
        first = await sqlite_backend.complete_reminder(session, reminder.id)
        second = await sqlite_backend.complete_reminder(session, reminder.id)

        assert first.is_completed
        assert first.completed_at is not None
        assert second.completed_at == first.completed_at
        assert await sqlite_backend.list_reminders(session, include_completed=False, limit=50) == []

    @pytest.mark.asyncio
    async def test_update_to_completed_stamps_completion(self, sqlite_backend, session):
        reminder = await sqlite_backend.create_reminder(session, ReminderCreate(title="Gym"))
        updated = await sqlite_backend.update_reminder(
            session, reminder.id, ReminderUpdate(is_completed=True, priority=Priority.URGENT),
        )
        assert updated.is_completed
        assert updated.completed_at is not None
        assert updated.priority is Priority.URGENT

    @pytest.mark.asyncio
    async def test_complete_missing_raises(self, sqlite_backend, session):
        with pytest.raises(NotFoundError):
            await sqlite_backend.complete_reminder(session, "nope")

    @pytest.mark.asyncio
    async def test_due_reminders(self, sqlite_backend, session):
        now = datetime.now(timezone.utc)
        await sqlite_backend.create_reminder(session, ReminderCreate(title="soon", due_datetime=now + timedelta(hours=2)))
        await sqlite_backend.create_reminder(session, ReminderCreate(title="later", due_datetime=now + timedelta(days=3)))
        await sqlite_backend.create_reminder(session, ReminderCreate(title="overdue", due_datetime=now - timedelta(hours=2)))

        rows = await sqlite_backend.list_due_reminders(session, hours_ahead=24)
        assert [r.title for r in rows] == ["soon"]

    @pytest.mark.asyncio
    async def test_reminder_summary(self, sqlite_backend, session):
        now = datetime.now(timezone.utc)
        done = await sqlite_backend.create_reminder(session, ReminderCreate(title="done"))
        await sqlite_backend.complete_reminder(session, done.id)
        await sqlite_backend.create_reminder(session, ReminderCreate(
            title="overdue", due_datetime=now - timedelta(days=1), priority=Priority.HIGH,
        ))
        await sqlite_backend.create_reminder(session, ReminderCreate(title="upcoming", due_datetime=now + timedelta(days=1)))

        summary = await sqlite_backend.reminder_summary(session, 30)
        assert summary.total == 3
        assert summary.completed == 1
        assert summary.pending == 2
        assert summary.overdue == 1
        assert summary.by_priority == {"medium": 2, "high": 1}

    @pytest.mark.asyncio
    async def test_delete_reminder(self, sqlite_backend, session):
        reminder = await sqlite_backend.create_reminder(session, ReminderCreate(title="x"))
        await sqlite_backend.delete_reminder(session, reminder.id)
        with pytest.raises(NotFoundError):
            await sqlite_backend.delete_reminder(session, reminder.id)


class TestActivityAndCategories:
    @pytest.mark.asyncio
    async def test_activity_summary_combines_both(self, sqlite_backend, session):
        await sqlite_backend.create_transaction(session, expense(12, category="Shopping"))
        await sqlite_backend.create_reminder(session, ReminderCreate(title="Call bank"))

        activity = await sqlite_backend.activity_summary(session, 30)

        assert activity.period_days == 30
        assert activity.transactions.expense_count == 1
        assert activity.transactions.total_expenses == Decimal("12")
        assert activity.reminders.pending == 1

    @pytest.mark.asyncio
    async def test_categories_include_builtin_and_used(self, sqlite_backend, session):
        await sqlite_backend.create_transaction(session, expense(3, category="Pets"))
        await sqlite_backend.create_transaction(session, expense(4, category="Shopping"))

        catalog = await sqlite_backend.list_categories(session)

        assert catalog.expense[0] == "Food & Dining"
        assert catalog.expense[-1] == "Pets"
        assert catalog.expense.count("Shopping") == 1
        assert "Salary" in catalog.income

    @pytest.mark.asyncio
    async def test_categories_scoped_to_user(self, sqlite_backend, session):
        await sqlite_backend.create_transaction(session, expense(3, category="Pets"))
        catalog = await sqlite_backend.list_categories(OTHER)
        assert "Pets" not in catalog.expense


class TestThreading:
    @pytest.mark.asyncio
    async def test_queries_run_off_the_event_loop_thread(self, sqlite_backend, session):
        threads = []
        connect = sqlite_backend._connect

        def recording_connect():
            threads.append(threading.get_ident())
            return connect()

        sqlite_backend._connect = recording_connect
        await sqlite_backend.list_transactions(session, 30)

        assert threads
        assert threading.get_ident() not in threads

    @pytest.mark.asyncio
    async def test_driver_error_becomes_backend_error(self, sqlite_backend, session):
        def broken_connect():
            raise sqlite3.OperationalError("database is locked")

        sqlite_backend._connect = broken_connect
        with pytest.raises(BackendError, match="database is locked"):
            await sqlite_backend.list_reminders(session, include_completed=False, limit=5)


class TestUserSettings:
    @pytest.mark.asyncio
    async def test_missing_settings_is_none(self, sqlite_backend, session):
        assert await sqlite_backend.get_user_settings(session) is None

    @pytest.mark.asyncio
    async def test_upsert(self, sqlite_backend, session):
        await sqlite_backend.update_user_settings(session, UserSettings(name="A", currency="USD"))
        await sqlite_backend.update_user_settings(session, UserSettings(name="B", currency="BRL"))
        stored = await sqlite_backend.get_user_settings(session)
        assert stored.name == "B"
        assert stored.currency == "BRL"


class TestMigration:
    def test_adds_missing_reminder_columns(self, tmp_path):
        path = str(tmp_path / "legacy.db")
        with sqlite3.connect(path) as conn:
            conn.execute("""
                CREATE TABLE reminders (
                    id TEXT PRIMARY KEY, user_id TEXT NOT NULL, title TEXT NOT NULL,
                    description TEXT, due_datetime TEXT,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    priority_rank INTEGER NOT NULL DEFAULT 2,
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)

        SQLiteBackend(db_path=path)

        with sqlite3.connect(path) as conn:
            cols = {row[1] for row in conn.execute("PRAGMA table_info(reminders)")}
        assert {"is_recurring", "completed_at"} <= cols
