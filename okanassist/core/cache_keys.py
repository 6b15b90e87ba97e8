"""Cache key builders.

A key is "<resource>_<canonical params>". The resource is everything before
the first underscore; it selects the TTL override and the group a mutation
invalidates.
"""

from __future__ import annotations

from okanassist.data.models import TransactionType

TRANSACTIONS = "transactions"
SUMMARY = "summary"
REMINDERS = "reminders"
SETTINGS = "settings"
ACTIVITY = "activity"
CATEGORIES = "categories"

# Resource groups touched by a mutation of each entity.
TRANSACTION_RESOURCES = (TRANSACTIONS, SUMMARY, ACTIVITY)
REMINDER_RESOURCES = (REMINDERS, ACTIVITY)


def resource_of(key: str) -> str:
    return key.split("_", 1)[0]


def transactions_key(
    days: int, transaction_type: TransactionType | str | None = None,
) -> str:
    if isinstance(transaction_type, TransactionType):
        transaction_type = transaction_type.value
    return f"{TRANSACTIONS}_{days}_{transaction_type or 'all'}"


def transaction_summary_key(days: int) -> str:
    return f"{SUMMARY}_{days}"


def reminders_key(include_completed: bool, limit: int) -> str:
    scope = "all" if include_completed else "open"
    return f"{REMINDERS}_{scope}_{limit}"


def reminder_summary_key(days: int) -> str:
    return f"{REMINDERS}_summary_{days}"


def due_reminders_key(hours: int) -> str:
    return f"{REMINDERS}_due_{hours}"


def settings_key() -> str:
    return SETTINGS


def activity_summary_key(days: int) -> str:
    return f"{ACTIVITY}_{days}"


def categories_key() -> str:
    return CATEGORIES
