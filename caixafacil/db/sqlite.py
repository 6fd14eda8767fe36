"""SQLite entity store for CaixaFácil."""

import logging
import sqlite3
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from pathlib import Path
from uuid import UUID

from caixafacil.config import settings
from caixafacil.models import (
    RecurringExpense,
    RecurringExpenseCreate,
    Transaction,
    TransactionCreate,
)

logger = logging.getLogger(__name__)

# SQL schema
SCHEMA = """
CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    date TEXT NOT NULL,
    description TEXT NOT NULL,
    amount REAL NOT NULL,
    type TEXT NOT NULL,
    category TEXT NOT NULL,
    payment_method TEXT NOT NULL,
    bank_account TEXT,
    notes TEXT,
    recurring INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_transactions_category ON transactions(category);
CREATE INDEX IF NOT EXISTS idx_transactions_bank_account ON transactions(bank_account);

CREATE TABLE IF NOT EXISTS recurring_expenses (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    amount REAL NOT NULL,
    due_day INTEGER NOT NULL,
    category TEXT NOT NULL,
    payment_method TEXT NOT NULL,
    reminder_days_before INTEGER NOT NULL,
    status TEXT NOT NULL,
    last_paid_date TEXT,
    notes TEXT
);
"""

_TRANSACTION_COLUMNS = (
    "id, date, description, amount, type, category, payment_method, bank_account, notes, recurring, created_at"
)
_RECURRING_COLUMNS = (
    "id, name, amount, due_day, category, payment_method, reminder_days_before, status, last_paid_date, notes"
)


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or settings.db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # Transactions

    @staticmethod
    def _transaction_params(transaction: Transaction) -> tuple:
        return (
            str(transaction.id),
            transaction.date,
            transaction.description,
            transaction.amount,
            transaction.type,
            transaction.category,
            transaction.payment_method,
            transaction.bank_account,
            transaction.notes,
            int(transaction.recurring),
            transaction.created_at,
        )

    def create_transaction(self, data: TransactionCreate) -> Transaction:
        """Add a single transaction."""
        transaction = Transaction(**data.model_dump())
        with self._get_connection() as conn:
            conn.execute(
                f"INSERT INTO transactions ({_TRANSACTION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._transaction_params(transaction),
            )
            conn.commit()
        return transaction

    def bulk_create(self, records: Sequence[TransactionCreate]) -> int:
        """
        Add many transactions in one SQL transaction.

        Either every record is written or none is.

        Returns:
            Number of records written
        """
        transactions = [Transaction(**record.model_dump()) for record in records]
        with self._get_connection() as conn:
            try:
                conn.executemany(
                    f"INSERT INTO transactions ({_TRANSACTION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [self._transaction_params(t) for t in transactions],
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
        logger.debug(f"Bulk created {len(transactions)} transactions")
        return len(transactions)

    def get_transaction(self, transaction_id: UUID | str) -> Transaction | None:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT {_TRANSACTION_COLUMNS} FROM transactions WHERE id = ?", (str(transaction_id),)
            ).fetchone()
        return self._row_to_transaction(row) if row else None

    def delete_transaction(self, transaction_id: UUID | str) -> bool:
        """Delete a transaction. Returns True if something was deleted."""
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM transactions WHERE id = ?", (str(transaction_id),))
            conn.commit()
            return cursor.rowcount > 0

    def list_transactions(
        self,
        start_date: str | None = None,
        end_date: str | None = None,
        txn_type: str | None = None,
        category: str | None = None,
        bank_account: str | None = None,
        limit: int | None = None,
    ) -> list[Transaction]:
        """List transactions, most recent date first, with optional filters."""
        query = f"SELECT {_TRANSACTION_COLUMNS} FROM transactions WHERE 1=1"
        params: list = []

        if start_date:
            query += " AND date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND date <= ?"
            params.append(end_date)
        if txn_type:
            query += " AND type = ?"
            params.append(txn_type)
        if category:
            query += " AND category = ?"
            params.append(category)
        if bank_account:
            query += " AND bank_account = ?"
            params.append(bank_account)

        query += " ORDER BY date DESC, created_at DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def get_transaction_count(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM transactions").fetchone()[0]

    def list_bank_accounts(self) -> list[str]:
        """Distinct bank account labels in the ledger."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT DISTINCT bank_account FROM transactions WHERE bank_account IS NOT NULL ORDER BY bank_account"
            ).fetchall()
        return [row[0] for row in rows]

    def _row_to_transaction(self, row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=UUID(row["id"]),
            date=row["date"],
            description=row["description"],
            amount=row["amount"],
            type=row["type"],
            category=row["category"],
            payment_method=row["payment_method"],
            bank_account=row["bank_account"],
            notes=row["notes"],
            recurring=bool(row["recurring"]),
            created_at=row["created_at"],
        )

    # Recurring expenses

    @staticmethod
    def _recurring_params(expense: RecurringExpense) -> tuple:
        return (
            str(expense.id),
            expense.name,
            expense.amount,
            expense.due_day,
            expense.category.value,
            expense.payment_method.value,
            expense.reminder_days_before,
            expense.status.value,
            expense.last_paid_date.isoformat() if expense.last_paid_date else None,
            expense.notes,
        )

    def create_recurring_expense(self, data: RecurringExpenseCreate) -> RecurringExpense:
        expense = RecurringExpense(**data.model_dump())
        with self._get_connection() as conn:
            conn.execute(
                f"INSERT INTO recurring_expenses ({_RECURRING_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._recurring_params(expense),
            )
            conn.commit()
        return expense

    def update_recurring_expense(
        self, expense_id: UUID | str, data: RecurringExpenseCreate
    ) -> RecurringExpense | None:
        """Replace a recurring expense. Returns None if it does not exist."""
        expense = RecurringExpense(id=UUID(str(expense_id)), **data.model_dump())
        params = self._recurring_params(expense)
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE recurring_expenses SET name = ?, amount = ?, due_day = ?, category = ?,
                payment_method = ?, reminder_days_before = ?, status = ?, last_paid_date = ?, notes = ?
                WHERE id = ?
                """,
                (*params[1:], params[0]),
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
        return expense

    def delete_recurring_expense(self, expense_id: UUID | str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM recurring_expenses WHERE id = ?", (str(expense_id),))
            conn.commit()
            return cursor.rowcount > 0

    def get_recurring_expense(self, expense_id: UUID | str) -> RecurringExpense | None:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT {_RECURRING_COLUMNS} FROM recurring_expenses WHERE id = ?", (str(expense_id),)
            ).fetchone()
        return self._row_to_recurring(row) if row else None

    def list_recurring_expenses(self) -> list[RecurringExpense]:
        """List recurring expenses, latest due day first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT {_RECURRING_COLUMNS} FROM recurring_expenses ORDER BY due_day DESC"
            ).fetchall()
        return [self._row_to_recurring(row) for row in rows]

    def _row_to_recurring(self, row: sqlite3.Row) -> RecurringExpense:
        return RecurringExpense(
            id=UUID(row["id"]),
            name=row["name"],
            amount=row["amount"],
            due_day=row["due_day"],
            category=row["category"],
            payment_method=row["payment_method"],
            reminder_days_before=row["reminder_days_before"],
            status=row["status"],
            last_paid_date=row["last_paid_date"],
            notes=row["notes"],
        )


_db: Database | None = None


def get_db() -> Database:
    """Global database instance, created on first use."""
    global _db
    if _db is None:
        _db = Database()
    return _db
