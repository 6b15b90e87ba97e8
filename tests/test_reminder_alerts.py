"""Tests for okanassist.core.reminder_alerts — due-soon notifications."""

from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from okanassist.adapters.log_notifier import LogNotifier
from okanassist.core.errors import ErrorKind, Result
from okanassist.core.reminder_alerts import format_reminder_alert, send_due_reminder_alerts
from okanassist.data.models import Reminder, ReminderList

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def _reminder(rid, due):
    return Reminder(id=rid, title=f"Task {rid}", user_id="user-1", due_datetime=due)


class TestFormat:
    def test_hours(self):
        text = format_reminder_alert(_reminder("1", NOW + timedelta(hours=3, minutes=10)), NOW)
        assert text == 'Reminder due soon: "Task 1" is due in 3 hours'

    def test_single_hour(self):
        text = format_reminder_alert(_reminder("1", NOW + timedelta(hours=1)), NOW)
        assert text.endswith("in 1 hour")

    def test_minutes(self):
        text = format_reminder_alert(_reminder("1", NOW + timedelta(minutes=45)), NOW)
        assert text.endswith("in 45 minutes")

    def test_naive_due_treated_as_utc(self):
        text = format_reminder_alert(_reminder("1", datetime(2025, 1, 1, 11, 0)), NOW)
        assert text.endswith("in 2 hours")


class TestSendAlerts:
    @pytest.mark.asyncio
    async def test_sends_one_message_per_reminder(self):
        data = MagicMock()
        data.due_reminders = AsyncMock(return_value=Result.ok(ReminderList(reminders=[
            _reminder("1", NOW + timedelta(hours=2)),
            _reminder("2", NOW + timedelta(hours=5)),
        ])))
        notifier = LogNotifier()

        sent = await send_due_reminder_alerts(data, notifier, "user-1", hours=24, now=NOW)

        assert sent == 2
        assert notifier.sent[0] == ("user-1", 'Reminder due soon: "Task 1" is due in 2 hours')
        data.due_reminders.assert_awaited_once_with(24)

    @pytest.mark.asyncio
    async def test_failed_read_sends_nothing(self):
        data = MagicMock()
        data.due_reminders = AsyncMock(return_value=Result.fail(ErrorKind.NETWORK_ERROR, "offline"))
        notifier = AsyncMock()
        assert await send_due_reminder_alerts(data, notifier, "user-1", now=NOW) == 0
        notifier.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_one_failed_send_does_not_stop_others(self):
        data = MagicMock()
        data.due_reminders = AsyncMock(return_value=Result.ok(ReminderList(reminders=[
            _reminder("1", NOW + timedelta(hours=2)),
            _reminder("2", NOW + timedelta(hours=3)),
        ])))
        notifier = AsyncMock()
        notifier.send_message.side_effect = [RuntimeError("push failed"), None]

        assert await send_due_reminder_alerts(data, notifier, "user-1", now=NOW) == 1
