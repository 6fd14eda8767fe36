"""Monthly cash-flow reports, projections and CSV export."""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from caixafacil.models import MonthReport, ReportPredictions, Transaction, TransactionType

MONTH_ABBREVIATIONS = ("jan", "fev", "mar", "abr", "mai", "jun", "jul", "ago", "set", "out", "nov", "dez")

CSV_HEADER = ("Mês", "Receitas", "Despesas", "Saldo")


def parse_ledger_date(value: str | None) -> date | None:
    """Parse a stored YYYY-MM-DD date. Malformed dates yield None instead of raising."""
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    """Move (year, month) by `offset` months (negative goes back)."""
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def month_label(year: int, month: int) -> str:
    return f"{MONTH_ABBREVIATIONS[month - 1]} {year}"


def monthly_report(transactions: Iterable[Transaction], months: int = 3, today: date | None = None) -> list[MonthReport]:
    """
    Income and expense totals for the last `months` months, oldest first.

    Income sums the stored amounts; expenses sum absolute values. Transactions
    with unparseable dates are ignored.
    """
    today = today or date.today()
    income: dict[tuple[int, int], float] = defaultdict(float)
    expense: dict[tuple[int, int], float] = defaultdict(float)

    for txn in transactions:
        txn_date = parse_ledger_date(txn.date)
        if txn_date is None:
            continue
        key = (txn_date.year, txn_date.month)
        if txn.type == TransactionType.INCOME.value:
            income[key] += txn.amount
        elif txn.type == TransactionType.EXPENSE.value:
            expense[key] += abs(txn.amount)

    report = []
    for offset in range(months - 1, -1, -1):
        year, month = shift_month(today.year, today.month, -offset)
        receitas = round(income[(year, month)], 2)
        despesas = round(expense[(year, month)], 2)
        report.append(
            MonthReport(
                month=month_label(year, month),
                year=year,
                month_number=month,
                receitas=receitas,
                despesas=despesas,
                saldo=round(receitas - despesas, 2),
            )
        )
    return report


def predict_next_month(months: list[MonthReport]) -> ReportPredictions | None:
    """
    Project next month from the period average and last month's trend.

    Returns None with fewer than two months of data.
    """
    if len(months) < 2:
        return None

    avg_income = sum(m.receitas for m in months) / len(months)
    avg_expense = sum(m.despesas for m in months) / len(months)

    last = months[-1]
    income_trend = (last.receitas - avg_income) / avg_income * 100 if avg_income > 0 else 0.0
    expense_trend = (last.despesas - avg_expense) / avg_expense * 100 if avg_expense > 0 else 0.0

    return ReportPredictions(
        avg_income=avg_income,
        avg_expense=avg_expense,
        predicted_income=avg_income * (1 + income_trend / 100),
        predicted_expense=avg_expense * (1 + expense_trend / 100),
        income_trend=income_trend,
        expense_trend=expense_trend,
    )


def _format_number(value: float) -> str:
    # 1500.0 -> "1500", 12.5 -> "12.5"
    return str(int(value)) if value == int(value) else f"{value:.2f}".rstrip("0")


def export_csv(months: list[MonthReport]) -> str:
    """Render the report as comma-joined rows under a Mês,Receitas,Despesas,Saldo header."""
    rows = [",".join(CSV_HEADER)]
    for m in months:
        rows.append(",".join([m.month, _format_number(m.receitas), _format_number(m.despesas), _format_number(m.saldo)]))
    return "\n".join(rows)
