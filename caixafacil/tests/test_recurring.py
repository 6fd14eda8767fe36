"""Tests for recurring expense reminders and payments."""

from datetime import date

import pytest

from caixafacil.db.sqlite import Database
from caixafacil.models import RecurringExpense, RecurringExpenseCreate, RecurringExpenseStatus, TransactionCategory
from caixafacil.services.recurring import (
    PAYMENT_NOTE,
    due_date_in_month,
    is_overdue,
    is_upcoming,
    mark_as_paid,
    recurring_stats,
)

TODAY = date(2026, 10, 19)


def expense(due_day: int, amount: float = 100.0, **kwargs) -> RecurringExpense:
    return RecurringExpense(name=f"Conta dia {due_day}", amount=amount, due_day=due_day, **kwargs)


class TestDueDates:
    def test_due_date_in_month(self):
        assert due_date_in_month(5, TODAY) == date(2026, 10, 5)

    def test_day_past_month_end_is_clamped(self):
        assert due_date_in_month(31, date(2026, 2, 10)) == date(2026, 2, 28)
        assert due_date_in_month(31, date(2028, 2, 10)) == date(2028, 2, 29)

    def test_upcoming_within_reminder_window(self):
        assert is_upcoming(expense(20), TODAY)
        assert is_upcoming(expense(19), TODAY)
        assert is_upcoming(expense(22), TODAY)
        assert not is_upcoming(expense(23), TODAY)
        assert not is_upcoming(expense(10), TODAY)

    def test_overdue_unless_paid_this_month(self):
        assert is_overdue(expense(10), TODAY)
        assert not is_overdue(expense(10, last_paid_date=date(2026, 10, 9)), TODAY)
        assert is_overdue(expense(10, last_paid_date=date(2026, 9, 10)), TODAY)
        assert not is_overdue(expense(25), TODAY)


class TestRecurringStats:
    def test_counts_active_only(self):
        expenses = [
            expense(10, 1500.0),
            expense(21, 200.0),
            expense(28, 50.5),
            expense(1, 999.0, status=RecurringExpenseStatus.PAUSED),
        ]

        stats = recurring_stats(expenses, TODAY)

        assert stats.total == 3
        assert stats.total_monthly == 1750.5
        assert stats.upcoming == 1
        assert stats.overdue == 1


class TestMarkAsPaid:
    """Test payment registration."""

    @pytest.fixture
    def db(self, tmp_path):
        return Database(tmp_path / "caixafacil.db")

    def test_records_payment_and_transaction(self, db):
        created = db.create_recurring_expense(
            RecurringExpenseCreate(name="Aluguel", amount=1500.0, due_day=5, category=TransactionCategory.ALUGUEL)
        )

        updated, transaction = mark_as_paid(created.id, db, TODAY)

        assert updated.last_paid_date == TODAY
        assert db.get_recurring_expense(created.id).last_paid_date == TODAY
        assert transaction.amount == -1500.0
        assert transaction.type == "expense"
        assert transaction.category == "aluguel"
        assert transaction.date == "2026-10-19"
        assert transaction.notes == PAYMENT_NOTE
        assert transaction.recurring is True
        assert db.get_transaction_count() == 1

    def test_missing_expense(self, db):
        assert mark_as_paid("00000000-0000-0000-0000-000000000000", db, TODAY) is None
        assert db.get_transaction_count() == 0
