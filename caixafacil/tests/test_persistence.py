"""Tests for the persistence mapper."""

from datetime import date

import pytest

from caixafacil.errors import PersistenceError
from caixafacil.models import RawExtractedTransaction
from caixafacil.services.persistence import import_note, persist, signed_amount, to_persistable

TODAY = date(2026, 10, 19)


class RecordingStore:
    """In-memory store that records bulk create calls."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def bulk_create(self, records):
        if self.fail:
            raise RuntimeError("database is locked")
        self.calls.append(list(records))
        return len(records)


class TestSignedAmount:
    """Expenses negative, income positive, whatever the input sign."""

    @pytest.mark.parametrize("amount", [50.0, -50.0, 0.01, -0.01])
    def test_expense_is_negative(self, amount):
        assert signed_amount(amount, "expense") == -abs(amount)

    @pytest.mark.parametrize("amount", [50.0, -50.0, 0.01, -0.01])
    def test_income_is_positive(self, amount):
        assert signed_amount(amount, "income") == abs(amount)


class TestImportNote:
    def test_uses_brazilian_date_format(self):
        assert import_note(date(2026, 3, 7)) == "Importado do extrato em 07/03/2026"


class TestToPersistable:
    """Test mapping to ledger records."""

    def test_maps_fields(self):
        transactions = [
            RawExtractedTransaction(date="2026-10-01", description="ALUGUEL", amount=1500.0, type="expense"),
            RawExtractedTransaction(date="2026-10-02", description="PIX CLIENTE", amount=-300.0, type="income"),
        ]

        records = to_persistable(transactions, ["aluguel", "vendas"], "Nubank", TODAY)

        assert [r.amount for r in records] == [-1500.0, 300.0]
        assert [r.category for r in records] == ["aluguel", "vendas"]
        for record in records:
            assert record.payment_method == "transferencia"
            assert record.bank_account == "Nubank"
            assert record.notes == "Importado do extrato em 19/10/2026"
        assert records[0].date == "2026-10-01"
        assert records[1].description == "PIX CLIENTE"

    def test_rejects_misaligned_categories(self):
        transactions = [
            RawExtractedTransaction(date="2026-10-01", description="A", amount=1.0, type="expense"),
        ]
        with pytest.raises(ValueError):
            to_persistable(transactions, [], "Nubank", TODAY)


@pytest.mark.asyncio
class TestPersist:
    """Test the single bulk create call."""

    async def test_calls_bulk_create_once(self):
        store = RecordingStore()
        transactions = [
            RawExtractedTransaction(date="2026-10-01", description="A", amount=1.0, type="expense"),
            RawExtractedTransaction(date="2026-10-02", description="B", amount=2.0, type="income"),
        ]
        records = to_persistable(transactions, ["aluguel", "vendas"], "Itaú", TODAY)

        created = await persist(records, store)

        assert created == 2
        assert len(store.calls) == 1
        assert store.calls[0] == records

    async def test_wraps_store_failure(self):
        with pytest.raises(PersistenceError, match="database is locked"):
            await persist([], RecordingStore(fail=True))
