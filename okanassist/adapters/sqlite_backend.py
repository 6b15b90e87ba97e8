"""
OkanAssist — Local SQLite backend.

Implements BackendPort against a SQLite file with the same filtering,
ordering and ownership rules as the remote API. Used for local development
and as the reference backend in tests.

sqlite3 is synchronous: every query runs in a worker thread via
asyncio.to_thread so the event loop (and the gateway's timeout) keep
running while the file is busy.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, TypeVar

from okanassist.core.aggregates import (
    due_within,
    summarize_reminders,
    summarize_transactions,
    window_start,
)
from okanassist.core.categorizer import default_catalog
from okanassist.core.errors import BackendError, NotFoundError
from okanassist.data.models import (
    ActivitySummary,
    CategoryCatalog,
    Priority,
    Reminder,
    ReminderCreate,
    ReminderSummary,
    ReminderUpdate,
    Session,
    Transaction,
    TransactionCreate,
    TransactionSummary,
    TransactionType,
    TransactionUpdate,
    UserSettings,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utc_iso(value: datetime) -> str:
    """Fixed-width UTC ISO string so text ordering matches time ordering."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteBackend:
    """SQLite-backed storage for transactions, reminders and user settings."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from okanassist.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create tables if they don't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    id               TEXT PRIMARY KEY,
                    user_id          TEXT NOT NULL,
                    amount           TEXT NOT NULL,
                    description      TEXT NOT NULL,
                    category         TEXT NOT NULL,
                    transaction_type TEXT NOT NULL,
                    merchant         TEXT,
                    date             TEXT NOT NULL,
                    created_at       TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reminders (
                    id            TEXT PRIMARY KEY,
                    user_id       TEXT NOT NULL,
                    title         TEXT NOT NULL,
                    description   TEXT,
                    due_datetime  TEXT,
                    priority      TEXT NOT NULL DEFAULT 'medium',
                    priority_rank INTEGER NOT NULL DEFAULT 2,
                    is_completed  INTEGER NOT NULL DEFAULT 0,
                    created_at    TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_settings (
                    user_id  TEXT PRIMARY KEY,
                    name     TEXT NOT NULL DEFAULT '',
                    currency TEXT NOT NULL DEFAULT 'USD',
                    language TEXT NOT NULL DEFAULT 'en',
                    timezone TEXT NOT NULL DEFAULT 'UTC'
                )
            """)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(reminders)").fetchall()
            }
            if "is_recurring" not in existing_cols:
                conn.execute(
                    "ALTER TABLE reminders ADD COLUMN is_recurring INTEGER NOT NULL DEFAULT 0"
                )
            if "completed_at" not in existing_cols:
                conn.execute("ALTER TABLE reminders ADD COLUMN completed_at TEXT")
        logger.debug("Backend tables initialized at %s", self._db_path)

    async def _run(self, operation: str, fn: Callable[..., T], *args) -> T:
        """Run a blocking query off the event loop; driver errors become BackendError."""
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            logger.error("SQLite error (%s): %s", operation, exc)
            raise BackendError(f"{operation} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"],
            amount=Decimal(row["amount"]),
            description=row["description"],
            category=row["category"],
            transaction_type=TransactionType(row["transaction_type"]),
            merchant=row["merchant"],
            date=date.fromisoformat(row["date"]),
            user_id=row["user_id"],
        )

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        return Reminder(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            due_datetime=_parse_dt(row["due_datetime"]),
            priority=Priority(row["priority"]),
            is_completed=bool(row["is_completed"]),
            is_recurring=bool(row["is_recurring"]),
            completed_at=_parse_dt(row["completed_at"]),
            user_id=row["user_id"],
        )

    def _get_transaction(self, conn: sqlite3.Connection, session: Session, tx_id: str) -> Transaction:
        row = conn.execute(
            "SELECT * FROM transactions WHERE id = ? AND user_id = ?",
            (tx_id, session.user_id),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Transaction {tx_id} not found")
        return self._row_to_transaction(row)

    def _get_reminder(self, conn: sqlite3.Connection, session: Session, reminder_id: str) -> Reminder:
        row = conn.execute(
            "SELECT * FROM reminders WHERE id = ? AND user_id = ?",
            (reminder_id, session.user_id),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Reminder {reminder_id} not found")
        return self._row_to_reminder(row)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def list_transactions(
        self,
        session: Session,
        days: int,
        transaction_type: TransactionType | None = None,
    ) -> list[Transaction]:
        query = "SELECT * FROM transactions WHERE user_id = ? AND date >= ?"
        params: list = [session.user_id, window_start(days).isoformat()]
        if transaction_type is not None:
            query += " AND transaction_type = ?"
            params.append(transaction_type.value)
        query += " ORDER BY date DESC, created_at DESC"

        def select() -> list[Transaction]:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
            return [self._row_to_transaction(r) for r in rows]

        return await self._run("list_transactions", select)

    async def transaction_summary(self, session: Session, days: int) -> TransactionSummary:
        return summarize_transactions(await self.list_transactions(session, days), days)

    async def create_transaction(
        self, session: Session, payload: TransactionCreate,
    ) -> Transaction:
        tx = Transaction(
            id=str(uuid.uuid4()),
            amount=payload.amount,
            description=payload.description,
            category=payload.category or "Other",
            transaction_type=payload.transaction_type,
            merchant=payload.merchant,
            date=payload.date or date.today(),
            user_id=session.user_id,
        )

        def insert() -> None:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO transactions
                        (id, user_id, amount, description, category,
                         transaction_type, merchant, date, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        tx.id, tx.user_id, str(tx.amount), tx.description, tx.category,
                        tx.transaction_type.value, tx.merchant, tx.date.isoformat(),
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )

        await self._run("create_transaction", insert)
        logger.info("Transaction added: %s %s '%s'", tx.transaction_type.value, tx.amount, tx.category)
        return tx

    async def update_transaction(
        self, session: Session, transaction_id: str, payload: TransactionUpdate,
    ) -> Transaction:
        changes = payload.model_dump(exclude_unset=True)
        columns: dict[str, object] = {}
        for field_name, value in changes.items():
            if field_name == "amount" and value is not None:
                value = str(value)
            elif field_name == "transaction_type" and value is not None:
                value = TransactionType(value).value
            elif field_name == "date" and value is not None:
                value = value.isoformat()
            if value is None and field_name != "merchant":
                continue
            columns[field_name] = value

        def update() -> Transaction:
            with self._connect() as conn:
                self._get_transaction(conn, session, transaction_id)
                if columns:
                    assignments = ", ".join(f"{col} = ?" for col in columns)
                    conn.execute(
                        f"UPDATE transactions SET {assignments} WHERE id = ? AND user_id = ?",
                        [*columns.values(), transaction_id, session.user_id],
                    )
                return self._get_transaction(conn, session, transaction_id)

        updated = await self._run("update_transaction", update)
        logger.info("Transaction %s updated: %s", transaction_id, ", ".join(columns))
        return updated

    async def delete_transaction(self, session: Session, transaction_id: str) -> None:
        def delete() -> int:
            with self._connect() as conn:
                return conn.execute(
                    "DELETE FROM transactions WHERE id = ? AND user_id = ?",
                    (transaction_id, session.user_id),
                ).rowcount

        if await self._run("delete_transaction", delete) == 0:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        logger.info("Transaction %s deleted", transaction_id)

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def _select_reminders(self, query: str, params: tuple | list) -> list[Reminder]:
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    async def list_reminders(
        self, session: Session, include_completed: bool, limit: int,
    ) -> list[Reminder]:
        query = "SELECT * FROM reminders WHERE user_id = ?"
        params: list = [session.user_id]
        if not include_completed:
            query += " AND is_completed = 0"
        query += (
            " ORDER BY due_datetime IS NULL, due_datetime ASC, priority_rank DESC"
            " LIMIT ?"
        )
        params.append(limit)
        return await self._run("list_reminders", self._select_reminders, query, params)

    async def list_due_reminders(self, session: Session, hours_ahead: int) -> list[Reminder]:
        now = datetime.now(timezone.utc)
        until = now + timedelta(hours=hours_ahead)
        rows = await self._run(
            "list_due_reminders",
            self._select_reminders,
            """
            SELECT * FROM reminders
            WHERE user_id = ? AND is_completed = 0
              AND due_datetime IS NOT NULL AND due_datetime <= ?
            """,
            (session.user_id, _utc_iso(until)),
        )
        return due_within(rows, until, now=now)

    async def reminder_summary(self, session: Session, days: int) -> ReminderSummary:
        rows = await self._run(
            "reminder_summary",
            self._select_reminders,
            "SELECT * FROM reminders WHERE user_id = ?",
            (session.user_id,),
        )
        return summarize_reminders(rows, days)

    async def create_reminder(self, session: Session, payload: ReminderCreate) -> Reminder:
        reminder = Reminder(
            id=str(uuid.uuid4()),
            title=payload.title,
            description=payload.description,
            due_datetime=payload.due_datetime,
            priority=payload.priority,
            is_recurring=payload.is_recurring,
            user_id=session.user_id,
        )

        def insert() -> None:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO reminders
                        (id, user_id, title, description, due_datetime, priority,
                         priority_rank, is_completed, is_recurring, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
                    """,
                    (
                        reminder.id, reminder.user_id, reminder.title, reminder.description,
                        _utc_iso(reminder.due_datetime) if reminder.due_datetime else None,
                        reminder.priority.value, reminder.priority.rank,
                        int(reminder.is_recurring), datetime.now(timezone.utc).isoformat(),
                    ),
                )

        await self._run("create_reminder", insert)
        logger.info("Reminder added: '%s' (%s)", reminder.title, reminder.priority.value)
        return reminder

    async def update_reminder(
        self, session: Session, reminder_id: str, payload: ReminderUpdate,
    ) -> Reminder:
        changes = payload.model_dump(exclude_unset=True)
        columns: dict[str, object] = {}
        for field_name, value in changes.items():
            if field_name == "due_datetime":
                columns["due_datetime"] = _utc_iso(value) if value else None
            elif field_name == "priority" and value is not None:
                priority = Priority(value)
                columns["priority"] = priority.value
                columns["priority_rank"] = priority.rank
            elif field_name in ("is_completed", "is_recurring") and value is not None:
                columns[field_name] = int(value)
            elif field_name == "description":
                columns["description"] = value
            elif field_name == "title" and value is not None:
                columns["title"] = value

        def update() -> Reminder:
            with self._connect() as conn:
                self._get_reminder(conn, session, reminder_id)
                if columns:
                    assignments = ", ".join(f"{col} = ?" for col in columns)
                    conn.execute(
                        f"UPDATE reminders SET {assignments} WHERE id = ? AND user_id = ?",
                        [*columns.values(), reminder_id, session.user_id],
                    )
                if columns.get("is_completed") == 1:
                    self._stamp_completion(conn, session, reminder_id)
                return self._get_reminder(conn, session, reminder_id)

        updated = await self._run("update_reminder", update)
        logger.info("Reminder %s updated: %s", reminder_id, ", ".join(columns))
        return updated

    @staticmethod
    def _stamp_completion(conn: sqlite3.Connection, session: Session, reminder_id: str) -> None:
        conn.execute(
            """
            UPDATE reminders
            SET is_completed = 1, completed_at = COALESCE(completed_at, ?)
            WHERE id = ? AND user_id = ?
            """,
            (datetime.now(timezone.utc).isoformat(), reminder_id, session.user_id),
        )

    async def delete_reminder(self, session: Session, reminder_id: str) -> None:
        def delete() -> int:
            with self._connect() as conn:
                return conn.execute(
                    "DELETE FROM reminders WHERE id = ? AND user_id = ?",
                    (reminder_id, session.user_id),
                ).rowcount

        if await self._run("delete_reminder", delete) == 0:
            raise NotFoundError(f"Reminder {reminder_id} not found")
        logger.info("Reminder %s deleted", reminder_id)

    async def complete_reminder(self, session: Session, reminder_id: str) -> Reminder:
        def complete() -> Reminder:
            with self._connect() as conn:
                self._get_reminder(conn, session, reminder_id)
                self._stamp_completion(conn, session, reminder_id)
                return self._get_reminder(conn, session, reminder_id)

        reminder = await self._run("complete_reminder", complete)
        logger.info("Reminder %s completed", reminder_id)
        return reminder

    # ------------------------------------------------------------------
    # Activity and catalog
    # ------------------------------------------------------------------

    async def activity_summary(self, session: Session, days: int) -> ActivitySummary:
        transactions, reminders = await asyncio.gather(
            self.transaction_summary(session, days),
            self.reminder_summary(session, days),
        )
        return ActivitySummary(period_days=days, transactions=transactions, reminders=reminders)

    async def list_categories(self, session: Session) -> CategoryCatalog:
        """Built-in categories, then any others this user has already used."""

        def select() -> list[sqlite3.Row]:
            with self._connect() as conn:
                return conn.execute(
                    """
                    SELECT DISTINCT transaction_type, category FROM transactions
                    WHERE user_id = ? ORDER BY category
                    """,
                    (session.user_id,),
                ).fetchall()

        catalog = default_catalog()
        for row in await self._run("list_categories", select):
            names = catalog.for_type(TransactionType(row["transaction_type"]))
            if row["category"] not in names:
                names.append(row["category"])
        return catalog

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def get_user_settings(self, session: Session) -> UserSettings | None:
        def select() -> sqlite3.Row | None:
            with self._connect() as conn:
                return conn.execute(
                    "SELECT * FROM user_settings WHERE user_id = ?", (session.user_id,),
                ).fetchone()

        row = await self._run("get_user_settings", select)
        if row is None:
            return None
        return UserSettings(
            name=row["name"],
            currency=row["currency"],
            language=row["language"],
            timezone=row["timezone"],
        )

    async def update_user_settings(
        self, session: Session, user_settings: UserSettings,
    ) -> UserSettings:
        def upsert() -> None:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO user_settings (user_id, name, currency, language, timezone)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        name = excluded.name, currency = excluded.currency,
                        language = excluded.language, timezone = excluded.timezone
                    """,
                    (
                        session.user_id, user_settings.name, user_settings.currency,
                        user_settings.language, user_settings.timezone,
                    ),
                )

        await self._run("update_user_settings", upsert)
        logger.info("Settings saved for user %s", session.user_id)
        return user_settings
