"""
OkanAssist — Remote Data Gateway.

Stateless translation of (resource, params, session) into a backend call
and a tagged Result. Expected failures never raise: validation problems,
a missing session, backend errors and timeouts all come back as
`Result.fail(...)`.

Inputs are validated before anything touches the network; a call without
an authenticated session fails with UNAUTHENTICATED without a round-trip.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel, ValidationError

from okanassist.core.aggregates import due_within, sort_reminders, sort_transactions
from okanassist.core.categorizer import categorize, default_catalog
from okanassist.core.errors import BackendError, ErrorKind, Result
from okanassist.data.models import (
    ActivitySummary,
    CategoryCatalog,
    Reminder,
    ReminderCreate,
    ReminderList,
    ReminderSummary,
    ReminderUpdate,
    Session,
    Transaction,
    TransactionCreate,
    TransactionList,
    TransactionSummary,
    TransactionType,
    TransactionUpdate,
    UserSettings,
)

if TYPE_CHECKING:
    from okanassist.core.session_store import SessionStore
    from okanassist.ports.backend_port import BackendPort

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

DEFAULT_TIMEOUT_SECONDS = 20.0

# Failures the built-in category catalog must not paper over.
_NO_FALLBACK = (ErrorKind.UNAUTHENTICATED, ErrorKind.VALIDATION_ERROR)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
        for err in exc.errors()
    )


class RemoteDataGateway:
    """Session-scoped access to transactions, reminders and settings."""

    def __init__(
        self,
        backend: BackendPort,
        session_store: SessionStore,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        now: Callable[[], datetime] | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._backend = backend
        self._sessions = session_store
        self._timeout = timeout_seconds
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._today = today or date.today

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _call(
        self,
        operation: str,
        request: Callable[[Session], Awaitable[T]],
    ) -> Result[T]:
        """Run `request` for the current session with a timeout."""
        session = self._sessions.current_session()
        if session is None or not session.is_authenticated:
            logger.debug("%s rejected: no authenticated session", operation)
            return Result.fail(ErrorKind.UNAUTHENTICATED, "Please log in")

        try:
            data = await asyncio.wait_for(request(session), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.0fs", operation, self._timeout)
            return Result.fail(
                ErrorKind.TIMEOUT, f"{operation} timed out after {self._timeout:.0f}s",
            )
        except BackendError as exc:
            logger.warning("%s failed (%s): %s", operation, exc.kind.value, exc)
            return Result.fail(exc.kind, str(exc))
        return Result.ok(data)

    @staticmethod
    def _parse(model: type[M], payload: M | dict) -> M | Result[Any]:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            return Result.fail(ErrorKind.VALIDATION_ERROR, _validation_message(exc))

    @staticmethod
    def _invalid(message: str) -> Result[Any]:
        logger.debug("Validation error: %s", message)
        return Result.fail(ErrorKind.VALIDATION_ERROR, message)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def fetch_transactions(
        self,
        days: int = 30,
        transaction_type: TransactionType | str | None = None,
    ) -> Result[TransactionList]:
        """Transactions dated within the last `days` days, newest first."""
        if not _is_positive_int(days):
            return self._invalid(f"days must be a positive integer, got {days!r}")
        if transaction_type is not None:
            try:
                transaction_type = TransactionType(transaction_type)
            except ValueError:
                return self._invalid(f"unknown transaction type {transaction_type!r}")

        async def request(session: Session) -> TransactionList:
            rows = await self._backend.list_transactions(session, days, transaction_type)
            return TransactionList(transactions=sort_transactions(rows))

        return await self._call("fetch_transactions", request)

    async def fetch_transaction_summary(self, days: int = 30) -> Result[TransactionSummary]:
        if not _is_positive_int(days):
            return self._invalid(f"days must be a positive integer, got {days!r}")

        async def request(session: Session) -> TransactionSummary:
            return await self._backend.transaction_summary(session, days)

        return await self._call("fetch_transaction_summary", request)

    async def create_transaction(
        self, payload: TransactionCreate | dict,
    ) -> Result[Transaction]:
        """Create a transaction; a missing category is filled from the keyword table."""
        parsed = self._parse(TransactionCreate, payload)
        if isinstance(parsed, Result):
            return parsed

        updates: dict[str, Any] = {}
        if parsed.category is None:
            updates["category"] = categorize(parsed.description, parsed.transaction_type)
        if parsed.date is None:
            updates["date"] = self._today()
        if updates:
            parsed = parsed.model_copy(update=updates)

        async def request(session: Session) -> Transaction:
            return await self._backend.create_transaction(session, parsed)

        return await self._call("create_transaction", request)

    async def update_transaction(
        self, transaction_id: str, payload: TransactionUpdate | dict,
    ) -> Result[Transaction]:
        if not transaction_id:
            return self._invalid("transaction id is required")
        parsed = self._parse(TransactionUpdate, payload)
        if isinstance(parsed, Result):
            return parsed
        if not parsed.model_fields_set:
            return self._invalid("nothing to update")

        async def request(session: Session) -> Transaction:
            return await self._backend.update_transaction(session, transaction_id, parsed)

        return await self._call("update_transaction", request)

    async def delete_transaction(self, transaction_id: str) -> Result[None]:
        if not transaction_id:
            return self._invalid("transaction id is required")

        async def request(session: Session) -> None:
            await self._backend.delete_transaction(session, transaction_id)

        return await self._call("delete_transaction", request)

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    async def fetch_reminders(
        self, include_completed: bool = False, limit: int = 50,
    ) -> Result[ReminderList]:
        """Due date ascending (undated last), then priority descending."""
        if not _is_positive_int(limit):
            return self._invalid(f"limit must be a positive integer, got {limit!r}")

        async def request(session: Session) -> ReminderList:
            rows = await self._backend.list_reminders(session, include_completed, limit)
            if not include_completed:
                rows = [r for r in rows if not r.is_completed]
            return ReminderList(reminders=sort_reminders(rows)[:limit])

        return await self._call("fetch_reminders", request)

    async def list_reminders_due_within(self, hours: int = 24) -> Result[ReminderList]:
        """Open reminders due between now and `hours` from now."""
        if not _is_positive_int(hours):
            return self._invalid(f"hours must be a positive integer, got {hours!r}")

        async def request(session: Session) -> ReminderList:
            rows = await self._backend.list_due_reminders(session, hours)
            now = self._now()
            return ReminderList(
                reminders=due_within(rows, now + timedelta(hours=hours), now=now),
            )

        return await self._call("list_reminders_due_within", request)

    async def fetch_reminder_summary(self, days: int = 30) -> Result[ReminderSummary]:
        if not _is_positive_int(days):
            return self._invalid(f"days must be a positive integer, got {days!r}")

        async def request(session: Session) -> ReminderSummary:
            return await self._backend.reminder_summary(session, days)

        return await self._call("fetch_reminder_summary", request)

    async def create_reminder(self, payload: ReminderCreate | dict) -> Result[Reminder]:
        parsed = self._parse(ReminderCreate, payload)
        if isinstance(parsed, Result):
            return parsed

        async def request(session: Session) -> Reminder:
            return await self._backend.create_reminder(session, parsed)

        return await self._call("create_reminder", request)

    async def update_reminder(
        self, reminder_id: str, payload: ReminderUpdate | dict,
    ) -> Result[Reminder]:
        if not reminder_id:
            return self._invalid("reminder id is required")
        parsed = self._parse(ReminderUpdate, payload)
        if isinstance(parsed, Result):
            return parsed
        if not parsed.model_fields_set:
            return self._invalid("nothing to update")

        async def request(session: Session) -> Reminder:
            return await self._backend.update_reminder(session, reminder_id, parsed)

        return await self._call("update_reminder", request)

    async def delete_reminder(self, reminder_id: str) -> Result[None]:
        if not reminder_id:
            return self._invalid("reminder id is required")

        async def request(session: Session) -> None:
            await self._backend.delete_reminder(session, reminder_id)

        return await self._call("delete_reminder", request)

    async def complete_reminder(self, reminder_id: str) -> Result[Reminder]:
        """Mark done. The completion time is stamped once, on the first call."""
        if not reminder_id:
            return self._invalid("reminder id is required")

        async def request(session: Session) -> Reminder:
            return await self._backend.complete_reminder(session, reminder_id)

        return await self._call("complete_reminder", request)

    # ------------------------------------------------------------------
    # Activity and catalog
    # ------------------------------------------------------------------

    async def fetch_activity_summary(self, days: int = 30) -> Result[ActivitySummary]:
        """Transaction and reminder summaries over the same window."""
        if not _is_positive_int(days):
            return self._invalid(f"days must be a positive integer, got {days!r}")

        async def request(session: Session) -> ActivitySummary:
            return await self._backend.activity_summary(session, days)

        return await self._call("fetch_activity_summary", request)

    async def fetch_categories(self) -> Result[CategoryCatalog]:
        """Server catalog, or the built-in one when the server has none.

        Only an empty catalog or a server-side failure falls back; a
        missing session or a rejected token still fails.
        """
        result = await self._call("fetch_categories", self._backend.list_categories)
        if result.success and not result.data.is_empty:
            return result
        if not result.success and result.error.kind in _NO_FALLBACK:
            return result
        logger.info("Using built-in category catalog")
        return Result.ok(default_catalog())

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def fetch_user_settings(self) -> Result[UserSettings]:
        async def request(session: Session) -> UserSettings:
            stored = await self._backend.get_user_settings(session)
            if stored is not None:
                return stored
            return UserSettings(
                name=session.display_name,
                currency=session.currency,
                language=session.language,
                timezone=session.timezone,
            )

        return await self._call("fetch_user_settings", request)

    async def update_user_settings(self, user_settings: UserSettings) -> Result[UserSettings]:
        if not user_settings.currency or len(user_settings.currency) != 3:
            return self._invalid("currency must be a 3-letter ISO 4217 code")

        async def request(session: Session) -> UserSettings:
            return await self._backend.update_user_settings(session, user_settings)

        return await self._call("update_user_settings", request)
