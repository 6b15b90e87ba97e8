"""
OkanAssist — Reminder alerts.

Feeds the notification collaborator: reads reminders due soon through the
cached data layer and hands one message per reminder to a NotificationPort.
How a message is actually shown is up to the port implementation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from okanassist.core.data_service import FinanceData
    from okanassist.data.models import Reminder
    from okanassist.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'s' if n != 1 else ''}"


def format_reminder_alert(reminder: Reminder, now: datetime | None = None) -> str:
    """E.g. 'Reminder due soon: "Pay rent" is due in 3 hours'."""
    if now is None:
        now = datetime.now(timezone.utc)
    due = reminder.due_datetime
    if due is None:
        return f'Reminder: "{reminder.title}"'
    if due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)

    seconds = max(0, int((due - now).total_seconds()))
    hours, remainder = divmod(seconds, 3600)
    if hours > 0:
        when = f"in {_plural(hours, 'hour')}"
    else:
        when = f"in {_plural(remainder // 60, 'minute')}"
    return f'Reminder due soon: "{reminder.title}" is due {when}'


async def send_due_reminder_alerts(
    data: FinanceData,
    notifier: NotificationPort,
    user_id: str,
    hours: int = 24,
    now: datetime | None = None,
) -> int:
    """Send one alert per open reminder due within `hours`. Returns the count sent."""
    result = await data.due_reminders(hours)
    if not result.success or result.data is None:
        logger.warning(
            "Reminder alerts skipped: %s",
            result.error.kind.value if result.error else "no data",
        )
        return 0

    sent = 0
    for reminder in result.data.reminders:
        try:
            await notifier.send_message(user_id, format_reminder_alert(reminder, now))
            sent += 1
        except Exception as exc:
            logger.error("Failed to send alert for reminder %s: %s", reminder.id, exc)
    logger.info("Sent %d reminder alert(s) to %s", sent, user_id)
    return sent
