"""Notification port — abstract interface for showing a notification to the user.

Reminder alerts depend on this protocol, never on a specific push provider.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Abstract notification interface used by reminder alerts."""

    async def send_message(self, user_id: str, text: str) -> None: ...
