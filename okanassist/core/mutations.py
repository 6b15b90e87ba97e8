"""
OkanAssist — Mutation Coordinator.

Confirm-then-invalidate: every write goes to the gateway first and, only
if it succeeds, every cached view of the affected resource is marked stale.
Cached data is never patched in place; the next read refetches. On failure
the cache is untouched and the gateway's Result is returned as-is.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from okanassist.core.cache_keys import (
    REMINDER_RESOURCES,
    TRANSACTION_RESOURCES,
    settings_key,
)
from okanassist.core.errors import Result

if TYPE_CHECKING:
    from okanassist.core.cache_store import CacheStore
    from okanassist.core.gateway import RemoteDataGateway
    from okanassist.core.session_store import SessionStore
    from okanassist.data.models import (
        Reminder,
        ReminderCreate,
        ReminderUpdate,
        Transaction,
        TransactionCreate,
        TransactionUpdate,
        UserSettings,
    )

logger = logging.getLogger(__name__)


class MutationCoordinator:
    """Runs writes through the gateway and keeps the cache honest."""

    def __init__(
        self,
        gateway: RemoteDataGateway,
        cache: CacheStore,
        session_store: SessionStore | None = None,
    ) -> None:
        self._gateway = gateway
        self._cache = cache
        self._sessions = session_store

    def _reconcile(
        self, action: str, result: Result[Any], resources: tuple[str, ...],
    ) -> Result[Any]:
        if result.success:
            self._cache.invalidate_resource(*resources)
            logger.info("%s succeeded", action)
        else:
            logger.warning(
                "%s failed: %s", action, result.error.kind.value if result.error else "?",
            )
        return result

    # Transactions

    async def create_transaction(
        self, payload: TransactionCreate | dict,
    ) -> Result[Transaction]:
        result = await self._gateway.create_transaction(payload)
        return self._reconcile("create_transaction", result, TRANSACTION_RESOURCES)

    async def update_transaction(
        self, transaction_id: str, payload: TransactionUpdate | dict,
    ) -> Result[Transaction]:
        result = await self._gateway.update_transaction(transaction_id, payload)
        return self._reconcile("update_transaction", result, TRANSACTION_RESOURCES)

    async def delete_transaction(self, transaction_id: str) -> Result[None]:
        result = await self._gateway.delete_transaction(transaction_id)
        return self._reconcile("delete_transaction", result, TRANSACTION_RESOURCES)

    # Reminders

    async def create_reminder(self, payload: ReminderCreate | dict) -> Result[Reminder]:
        result = await self._gateway.create_reminder(payload)
        return self._reconcile("create_reminder", result, REMINDER_RESOURCES)

    async def update_reminder(
        self, reminder_id: str, payload: ReminderUpdate | dict,
    ) -> Result[Reminder]:
        result = await self._gateway.update_reminder(reminder_id, payload)
        return self._reconcile("update_reminder", result, REMINDER_RESOURCES)

    async def delete_reminder(self, reminder_id: str) -> Result[None]:
        result = await self._gateway.delete_reminder(reminder_id)
        return self._reconcile("delete_reminder", result, REMINDER_RESOURCES)

    async def complete_reminder(self, reminder_id: str) -> Result[Reminder]:
        result = await self._gateway.complete_reminder(reminder_id)
        return self._reconcile("complete_reminder", result, REMINDER_RESOURCES)

    # Profile

    async def update_user_settings(self, user_settings: UserSettings) -> Result[UserSettings]:
        """Save settings remotely, then mirror them into the live session."""
        result = await self._gateway.update_user_settings(user_settings)
        if result.success:
            self._cache.invalidate([settings_key()])
            if self._sessions is not None and result.data is not None:
                self._sessions.update_profile(result.data)
            logger.info("update_user_settings succeeded")
        return result
