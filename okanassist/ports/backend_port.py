"""Backend port — abstract interface for the remote data collections.

The gateway depends on this protocol, never on a specific backend. Every
call carries the owner's identity; implementations must scope rows to it
and raise BackendError subclasses on failure (NotFoundError for unknown or
non-owned ids).
"""

from __future__ import annotations

from typing import Protocol

from okanassist.data.models import (
    ActivitySummary,
    CategoryCatalog,
    Reminder,
    ReminderCreate,
    ReminderSummary,
    ReminderUpdate,
    Session,
    Transaction,
    TransactionCreate,
    TransactionSummary,
    TransactionUpdate,
    TransactionType,
    UserSettings,
)


class BackendPort(Protocol):
    """Abstract backend interface used by the gateway."""

    # Transactions

    async def list_transactions(
        self,
        session: Session,
        days: int,
        transaction_type: TransactionType | None = None,
    ) -> list[Transaction]: ...

    async def transaction_summary(
        self, session: Session, days: int
    ) -> TransactionSummary: ...

    async def create_transaction(
        self, session: Session, payload: TransactionCreate
    ) -> Transaction: ...

    async def update_transaction(
        self, session: Session, transaction_id: str, payload: TransactionUpdate
    ) -> Transaction: ...

    async def delete_transaction(
        self, session: Session, transaction_id: str
    ) -> None: ...

    # Reminders

    async def list_reminders(
        self, session: Session, include_completed: bool, limit: int
    ) -> list[Reminder]: ...

    async def list_due_reminders(
        self, session: Session, hours_ahead: int
    ) -> list[Reminder]: ...

    async def reminder_summary(
        self, session: Session, days: int
    ) -> ReminderSummary: ...

    async def create_reminder(
        self, session: Session, payload: ReminderCreate
    ) -> Reminder: ...

    async def update_reminder(
        self, session: Session, reminder_id: str, payload: ReminderUpdate
    ) -> Reminder: ...

    async def delete_reminder(
        self, session: Session, reminder_id: str
    ) -> None: ...

    async def complete_reminder(
        self, session: Session, reminder_id: str
    ) -> Reminder: ...

    # Activity

    async def activity_summary(
        self, session: Session, days: int
    ) -> ActivitySummary: ...

    # Catalog

    async def list_categories(self, session: Session) -> CategoryCatalog: ...

    # Profile

    async def get_user_settings(self, session: Session) -> UserSettings | None: ...

    async def update_user_settings(
        self, session: Session, user_settings: UserSettings
    ) -> UserSettings: ...
