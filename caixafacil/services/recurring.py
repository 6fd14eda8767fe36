"""Recurring expense reminders and payments."""

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from caixafacil.db.sqlite import Database
from caixafacil.models import (
    RecurringExpense,
    RecurringExpenseCreate,
    RecurringExpenseStatus,
    Transaction,
    TransactionCreate,
    TransactionType,
)

logger = logging.getLogger(__name__)

PAYMENT_NOTE = "Pagamento de despesa recorrente"


@dataclass
class RecurringStats:
    total: int
    total_monthly: float
    upcoming: int
    overdue: int


def due_date_in_month(due_day: int, today: date) -> date:
    """Due date in today's month; days past the month's end clamp to its last day."""
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=min(due_day, last_day))


def is_upcoming(expense: RecurringExpense, today: date) -> bool:
    days_until = (due_date_in_month(expense.due_day, today) - today).days
    return 0 <= days_until <= expense.reminder_days_before


def is_overdue(expense: RecurringExpense, today: date) -> bool:
    last_paid = expense.last_paid_date
    if last_paid and (last_paid.year, last_paid.month) == (today.year, today.month):
        return False
    return due_date_in_month(expense.due_day, today) < today


def recurring_stats(expenses: list[RecurringExpense], today: date | None = None) -> RecurringStats:
    today = today or date.today()
    active = [e for e in expenses if e.status == RecurringExpenseStatus.ACTIVE]
    return RecurringStats(
        total=len(active),
        total_monthly=round(sum(e.amount for e in active), 2),
        upcoming=sum(1 for e in active if is_upcoming(e, today)),
        overdue=sum(1 for e in active if is_overdue(e, today)),
    )


def mark_as_paid(
    expense_id: UUID | str, db: Database, today: date | None = None
) -> tuple[RecurringExpense, Transaction] | None:
    """
    Record this month's payment of a recurring expense.

    Updates `last_paid_date` and adds a matching expense transaction.

    Returns:
        The updated expense and the new transaction, or None if the expense does not exist
    """
    today = today or date.today()
    expense = db.get_recurring_expense(expense_id)
    if expense is None:
        return None

    data = RecurringExpenseCreate(**expense.model_dump(exclude={"id", "last_paid_date"}), last_paid_date=today)
    updated = db.update_recurring_expense(expense.id, data)

    transaction = db.create_transaction(
        TransactionCreate(
            date=today.isoformat(),
            description=expense.name,
            amount=-abs(expense.amount),
            type=TransactionType.EXPENSE.value,
            category=expense.category.value,
            payment_method=expense.payment_method.value,
            notes=PAYMENT_NOTE,
            recurring=True,
        )
    )
    logger.info(f"Recurring expense {expense.name} marked as paid on {today.isoformat()}")
    return updated, transaction
