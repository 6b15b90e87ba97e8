"""
OkanAssist — Data Models.

Plain dataclasses for what the backend returns (transactions, reminders,
summaries, sessions) and pydantic models for what callers send in.
Input models validate before anything reaches the network.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, field_validator


class TransactionType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.LOW: 1,
    Priority.MEDIUM: 2,
    Priority.HIGH: 3,
    Priority.URGENT: 4,
}


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@dataclass
class AuthCredentials:
    """Tokens + identity handed back by the auth provider."""

    access_token: str
    user_id: str
    email: str = ""
    refresh_token: str | None = None
    expires_at: int | None = None          # epoch seconds
    user_metadata: dict = field(default_factory=dict)


@dataclass
class UserSettings:
    """Profile settings stored in the backend per user."""

    name: str = ""
    currency: str = "USD"
    language: str = "en"
    timezone: str = "UTC"


@dataclass
class Session:
    """The signed-in user as seen by the rest of the app."""

    user_id: str | None
    email: str = ""
    display_name: str = ""
    currency: str = "USD"        # ISO 4217
    language: str = "en"         # locale tag
    timezone: str = "UTC"        # IANA name
    access_token: str | None = None
    refresh_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token) and bool(self.user_id)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass
class Transaction:
    """A single expense or income row, owned by one user."""

    id: str
    amount: Decimal
    description: str
    category: str
    transaction_type: TransactionType
    date: date
    user_id: str
    merchant: str | None = None


@dataclass
class TransactionList:
    transactions: list[Transaction] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.transactions)


@dataclass
class TransactionSummary:
    """Aggregate over the last `period_days` days."""

    period_days: int
    total_expenses: Decimal = Decimal("0")
    total_income: Decimal = Decimal("0")
    expense_count: int = 0
    income_count: int = 0
    category_breakdown: dict[str, Decimal] = field(default_factory=dict)

    @property
    def net_income(self) -> Decimal:
        return self.total_income - self.total_expenses


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


@dataclass
class Reminder:
    """A to-do with an optional due date.

    `completed_at` is stamped the first time the reminder is completed and
    never cleared afterwards.
    """

    id: str
    title: str
    user_id: str
    description: str | None = None
    due_datetime: datetime | None = None
    priority: Priority = Priority.MEDIUM
    is_completed: bool = False
    is_recurring: bool = False
    completed_at: datetime | None = None


@dataclass
class ReminderList:
    reminders: list[Reminder] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.reminders)


@dataclass
class ReminderSummary:
    period_days: int
    total: int = 0
    completed: int = 0
    pending: int = 0
    overdue: int = 0
    by_priority: dict[str, int] = field(default_factory=dict)


@dataclass
class ActivitySummary:
    """Money and reminders over the same window, for the home screen."""

    period_days: int
    transactions: TransactionSummary
    reminders: ReminderSummary


@dataclass
class CategoryCatalog:
    """Category names offered when adding a transaction, per type."""

    expense: list[str] = field(default_factory=list)
    income: list[str] = field(default_factory=list)

    def for_type(self, transaction_type: TransactionType) -> list[str]:
        if transaction_type is TransactionType.INCOME:
            return self.income
        return self.expense

    @property
    def is_empty(self) -> bool:
        return not self.expense and not self.income


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class TransactionCreate(BaseModel):
    """Payload for a new transaction. `category=None` means auto-categorize."""

    amount: Decimal
    description: str
    transaction_type: TransactionType = TransactionType.EXPENSE
    category: str | None = None
    merchant: str | None = None
    date: dt.date | None = None

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("amount must be greater than zero")
        return v

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("description is required")
        return v.strip()

    @field_validator("category", "merchant")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


class TransactionUpdate(BaseModel):
    """Partial update; only the fields that are set get sent."""

    amount: Decimal | None = None
    description: str | None = None
    transaction_type: TransactionType | None = None
    category: str | None = None
    merchant: str | None = None
    date: dt.date | None = None

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v <= 0:
            raise ValueError("amount must be greater than zero")
        return v


class ReminderCreate(BaseModel):
    title: str
    description: str | None = None
    due_datetime: datetime | None = None
    priority: Priority = Priority.MEDIUM
    is_recurring: bool = False

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title is required")
        return v.strip()


class ReminderUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    due_datetime: datetime | None = None
    priority: Priority | None = None
    is_completed: bool | None = None
    is_recurring: bool | None = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("title cannot be blank")
        return v.strip() if v is not None else None
