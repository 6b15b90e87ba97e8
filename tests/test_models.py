"""Tests for okanassist.data.models — input validation and dataclass helpers."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from okanassist.data.models import (
    Priority,
    ReminderCreate,
    ReminderUpdate,
    Session,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
)


class TestTransactionCreate:
    def test_valid(self):
        tx = TransactionCreate(amount="12.5", description="  Coffee  ", date="2025-01-03")
        assert tx.amount == Decimal("12.5")
        assert tx.description == "Coffee"
        assert tx.transaction_type is TransactionType.EXPENSE
        assert tx.date == date(2025, 1, 3)

    @pytest.mark.parametrize("amount", [0, -1, "-0.01"])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValidationError):
            TransactionCreate(amount=amount, description="x")

    def test_blank_category_means_auto(self):
        tx = TransactionCreate(amount=1, description="x", category="  ", merchant="")
        assert tx.category is None
        assert tx.merchant is None

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            TransactionCreate(amount=1, description="x", transaction_type="transfer")


class TestUpdates:
    def test_transaction_update_tracks_set_fields(self):
        update = TransactionUpdate(category="Food & Dining")
        assert update.model_fields_set == {"category"}

    def test_transaction_update_rejects_zero_amount(self):
        with pytest.raises(ValidationError):
            TransactionUpdate(amount=0)

    def test_reminder_update_blank_title(self):
        with pytest.raises(ValidationError):
            ReminderUpdate(title="   ")


class TestReminderCreate:
    def test_defaults(self):
        reminder = ReminderCreate(title=" Pay rent ")
        assert reminder.title == "Pay rent"
        assert reminder.priority is Priority.MEDIUM
        assert reminder.due_datetime is None

    def test_blank_title(self):
        with pytest.raises(ValidationError):
            ReminderCreate(title="")


class TestPriority:
    def test_rank_order(self):
        ranks = [p.rank for p in (Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.URGENT)]
        assert ranks == [1, 2, 3, 4]


class TestSession:
    def test_authenticated_needs_token_and_user(self):
        assert Session(user_id="u", access_token="t").is_authenticated
        assert not Session(user_id="u").is_authenticated
        assert not Session(user_id=None, access_token="t").is_authenticated
