"""Logging notification adapter — implements NotificationPort.

Stand-in for a push provider when running headless: alerts go to the log
and are kept in `sent` for inspection.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LogNotifier:
    """NotificationPort that writes each message to the log."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send_message(self, user_id: str, text: str) -> None:
        self.sent.append((user_id, text))
        logger.info("Notification for %s: %s", user_id, text)
