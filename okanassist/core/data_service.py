"""
OkanAssist — Data facade for screens.

Binds each view (transactions list, summaries, reminders, categories) to
its cache key and gateway call, so callers never build keys or fetch
functions by hand.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from okanassist.core import cache_keys
from okanassist.core.errors import Result

if TYPE_CHECKING:
    from okanassist.core.cache_store import CacheStore
    from okanassist.core.gateway import RemoteDataGateway
    from okanassist.data.models import (
        ActivitySummary,
        CategoryCatalog,
        ReminderList,
        ReminderSummary,
        TransactionList,
        TransactionSummary,
        TransactionType,
        UserSettings,
    )

logger = logging.getLogger(__name__)


class FinanceData:
    """Cached reads for the UI."""

    def __init__(self, gateway: RemoteDataGateway, cache: CacheStore) -> None:
        self._gateway = gateway
        self._cache = cache

    async def transactions(
        self,
        days: int = 30,
        transaction_type: TransactionType | str | None = None,
        force_refresh: bool = False,
    ) -> Result[TransactionList]:
        return await self._cache.get(
            cache_keys.transactions_key(days, transaction_type),
            lambda: self._gateway.fetch_transactions(days, transaction_type),
            force_refresh=force_refresh,
        )

    async def transaction_summary(
        self, days: int = 30, force_refresh: bool = False,
    ) -> Result[TransactionSummary]:
        return await self._cache.get(
            cache_keys.transaction_summary_key(days),
            lambda: self._gateway.fetch_transaction_summary(days),
            force_refresh=force_refresh,
        )

    async def reminders(
        self,
        include_completed: bool = False,
        limit: int = 50,
        force_refresh: bool = False,
    ) -> Result[ReminderList]:
        return await self._cache.get(
            cache_keys.reminders_key(include_completed, limit),
            lambda: self._gateway.fetch_reminders(include_completed, limit),
            force_refresh=force_refresh,
        )

    async def reminder_summary(
        self, days: int = 30, force_refresh: bool = False,
    ) -> Result[ReminderSummary]:
        return await self._cache.get(
            cache_keys.reminder_summary_key(days),
            lambda: self._gateway.fetch_reminder_summary(days),
            force_refresh=force_refresh,
        )

    async def due_reminders(
        self, hours: int = 24, force_refresh: bool = False,
    ) -> Result[ReminderList]:
        return await self._cache.get(
            cache_keys.due_reminders_key(hours),
            lambda: self._gateway.list_reminders_due_within(hours),
            force_refresh=force_refresh,
        )

    async def user_settings(self, force_refresh: bool = False) -> Result[UserSettings]:
        return await self._cache.get(
            cache_keys.settings_key(),
            self._gateway.fetch_user_settings,
            force_refresh=force_refresh,
        )

    async def activity_summary(
        self, days: int = 30, force_refresh: bool = False,
    ) -> Result[ActivitySummary]:
        return await self._cache.get(
            cache_keys.activity_summary_key(days),
            lambda: self._gateway.fetch_activity_summary(days),
            force_refresh=force_refresh,
        )

    async def categories(self, force_refresh: bool = False) -> Result[CategoryCatalog]:
        return await self._cache.get(
            cache_keys.categories_key(),
            self._gateway.fetch_categories,
            force_refresh=force_refresh,
        )

    async def initialize(self, days: int = 30) -> bool:
        """Warm the home-screen views concurrently after sign-in.

        Returns True if every view loaded.
        """
        results = await asyncio.gather(
            self.transactions(days),
            self.transaction_summary(days),
            self.reminders(),
            self.reminder_summary(days),
            self.categories(),
        )
        failed = [r for r in results if not r.success]
        if failed:
            logger.warning(
                "Initial load: %d of %d views failed (%s)",
                len(failed), len(results),
                ", ".join(r.error.kind.value for r in failed if r.error),
            )
        else:
            logger.info("Initial load complete")
        return not failed

    def refresh_all(self) -> None:
        """Pull-to-refresh: everything refetches on its next read."""
        self._cache.invalidate()
