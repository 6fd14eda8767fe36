"""Dashboard aggregations over the ledger."""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from caixafacil.models import (
    CategoryTotal,
    FinancialData,
    MonthSummary,
    RecurringExpense,
    RecurringExpenseStatus,
    RecurringExpenseSummary,
    Transaction,
    TransactionType,
)
from caixafacil.services.reports import parse_ledger_date


def _for_account(transactions: Iterable[Transaction], bank_account: str | None) -> list[Transaction]:
    if bank_account is None:
        return list(transactions)
    return [t for t in transactions if t.bank_account == bank_account]


def _in_month(transactions: Iterable[Transaction], year: int, month: int) -> list[Transaction]:
    selected = []
    for txn in transactions:
        txn_date = parse_ledger_date(txn.date)
        if txn_date and txn_date.year == year and txn_date.month == month:
            selected.append(txn)
    return selected


def bank_accounts(transactions: Iterable[Transaction]) -> list[str]:
    """Distinct bank account labels, in first-seen order."""
    return list(dict.fromkeys(t.bank_account for t in transactions if t.bank_account))


def account_balance(transactions: Iterable[Transaction], bank_account: str | None = None) -> float:
    """Current balance: income adds its amount, expenses subtract their absolute value."""
    balance = 0.0
    for txn in _for_account(transactions, bank_account):
        if txn.type == TransactionType.INCOME.value:
            balance += txn.amount
        else:
            balance -= abs(txn.amount)
    return round(balance, 2)


def month_summary(
    transactions: Iterable[Transaction], year: int, month: int, bank_account: str | None = None
) -> MonthSummary:
    selected = _in_month(_for_account(transactions, bank_account), year, month)
    income = sum(t.amount for t in selected if t.type == TransactionType.INCOME.value)
    expense = sum(abs(t.amount) for t in selected if t.type == TransactionType.EXPENSE.value)
    return MonthSummary(income=round(income, 2), expense=round(expense, 2), balance=round(income - expense, 2))


def top_expense_categories(
    transactions: Iterable[Transaction],
    year: int,
    month: int,
    limit: int = 5,
    bank_account: str | None = None,
) -> list[CategoryTotal]:
    """Expense categories of a month ranked by total spent."""
    totals: dict[str, float] = defaultdict(float)
    for txn in _in_month(_for_account(transactions, bank_account), year, month):
        if txn.type == TransactionType.EXPENSE.value:
            totals[txn.category] += abs(txn.amount)

    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)[:limit]
    return [CategoryTotal(category=category, amount=round(amount, 2)) for category, amount in ranked]


def build_financial_data(
    transactions: list[Transaction], recurring: list[RecurringExpense], today: date | None = None
) -> FinancialData:
    """Snapshot of the ledger for the assistant's system prompt."""
    today = today or date.today()
    return FinancialData(
        current_balance=account_balance(transactions),
        month_summary=month_summary(transactions, today.year, today.month),
        top_expenses=top_expense_categories(transactions, today.year, today.month),
        recurring_expenses=[
            RecurringExpenseSummary(name=e.name, amount=e.amount, due_day=e.due_day)
            for e in recurring
            if e.status == RecurringExpenseStatus.ACTIVE
        ],
    )
