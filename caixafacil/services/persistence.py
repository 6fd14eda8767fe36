"""Map categorized transactions to ledger records and persist them."""

import asyncio
import logging
from collections.abc import Sequence
from datetime import date
from typing import Protocol

from caixafacil.errors import PersistenceError
from caixafacil.models import PaymentMethod, RawExtractedTransaction, TransactionCreate, TransactionType

logger = logging.getLogger(__name__)


class TransactionStore(Protocol):
    """Anything that can persist a list of transactions in one call."""

    def bulk_create(self, records: Sequence[TransactionCreate]) -> int: ...


def signed_amount(amount: float, txn_type: str) -> float:
    """Expenses are stored negative, income positive."""
    if txn_type == TransactionType.EXPENSE.value:
        return -abs(amount)
    return abs(amount)


def import_note(today: date) -> str:
    return f"Importado do extrato em {today.strftime('%d/%m/%Y')}"


def to_persistable(
    transactions: Sequence[RawExtractedTransaction],
    categories: Sequence[str],
    bank_account: str,
    today: date | None = None,
) -> list[TransactionCreate]:
    """
    Zip validated transactions with their categories by position.

    Raises:
        ValueError: If the two sequences differ in length
    """
    if len(transactions) != len(categories):
        raise ValueError(f"{len(transactions)} transactions but {len(categories)} categories")

    notes = import_note(today or date.today())
    return [
        TransactionCreate(
            date=txn.date,
            description=txn.description,
            amount=signed_amount(txn.amount, txn.type),
            type=txn.type,
            category=category,
            payment_method=PaymentMethod.TRANSFERENCIA.value,
            bank_account=bank_account,
            notes=notes,
        )
        for txn, category in zip(transactions, categories)
    ]


async def persist(records: Sequence[TransactionCreate], store: TransactionStore) -> int:
    """
    Write all records with a single bulk create call.

    Raises:
        PersistenceError: If the store fails
    """
    try:
        created = await asyncio.to_thread(store.bulk_create, records)
    except Exception as e:
        logger.error(f"Bulk create of {len(records)} transactions failed: {e}")
        raise PersistenceError(f"Failed to save transactions: {e}") from e

    logger.info(f"Persisted {created} transactions")
    return created
