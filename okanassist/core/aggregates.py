"""Windowing, ordering and summary math shared by backends and the gateway.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from okanassist.data.models import (
    Reminder,
    ReminderSummary,
    Transaction,
    TransactionSummary,
    TransactionType,
)


def window_start(days: int, today: date | None = None) -> date:
    """First calendar day included in a `days`-long window ending today."""
    if today is None:
        today = date.today()
    return today - timedelta(days=days)


def in_window(tx: Transaction, days: int, today: date | None = None) -> bool:
    return tx.date >= window_start(days, today)


def sort_transactions(transactions: list[Transaction]) -> list[Transaction]:
    """Newest first. Stable for equal dates."""
    return sorted(transactions, key=lambda tx: tx.date, reverse=True)


def _reminder_sort_key(reminder: Reminder) -> tuple:
    due = reminder.due_datetime
    if due is not None and due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    # (no due date last, earliest due first, highest priority first)
    return (
        due is None,
        due.timestamp() if due is not None else 0.0,
        -reminder.priority.rank,
    )


def sort_reminders(reminders: list[Reminder]) -> list[Reminder]:
    """Due date ascending with undated reminders last, then priority descending."""
    return sorted(reminders, key=_reminder_sort_key)


def summarize_transactions(
    transactions: list[Transaction], days: int,
) -> TransactionSummary:
    """Aggregate an already-windowed list into a TransactionSummary."""
    summary = TransactionSummary(period_days=days)
    breakdown: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for tx in transactions:
        if tx.transaction_type is TransactionType.EXPENSE:
            summary.total_expenses += tx.amount
            summary.expense_count += 1
            breakdown[tx.category] += tx.amount
        else:
            summary.total_income += tx.amount
            summary.income_count += 1
    summary.category_breakdown = dict(breakdown)
    return summary


def summarize_reminders(
    reminders: list[Reminder], days: int, now: datetime | None = None,
) -> ReminderSummary:
    """Count reminders due within the last `days` days or not yet due.

    Undated reminders are always counted.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    since = now - timedelta(days=days)
    summary = ReminderSummary(period_days=days)
    by_priority: dict[str, int] = defaultdict(int)
    for reminder in reminders:
        due = reminder.due_datetime
        if due is not None and due.tzinfo is None:
            due = due.replace(tzinfo=timezone.utc)
        if due is not None and due < since:
            continue
        summary.total += 1
        by_priority[reminder.priority.value] += 1
        if reminder.is_completed:
            summary.completed += 1
        else:
            summary.pending += 1
            if due is not None and due < now:
                summary.overdue += 1
    summary.by_priority = dict(by_priority)
    return summary


def due_within(
    reminders: list[Reminder], until: datetime, now: datetime | None = None,
) -> list[Reminder]:
    """Open reminders with a due date in (now, until]."""
    if now is None:
        now = datetime.now(timezone.utc)
    due: list[Reminder] = []
    for reminder in reminders:
        if reminder.is_completed or reminder.due_datetime is None:
            continue
        when = reminder.due_datetime
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        if now < when <= until:
            due.append(reminder)
    return sort_reminders(due)
