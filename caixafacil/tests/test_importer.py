"""End-to-end tests for the statement import pipeline with a mocked LLM."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from caixafacil.errors import (
    TIMEOUT_TITLE,
    LLMInvocationError,
    MissingBankAccountError,
    NoTransactionsFoundError,
    NoValidTransactionsError,
    PersistenceError,
)
from caixafacil.models import ImportStatus
from caixafacil.services.importer import ImportRequest, StatementImporter, schedule_reset
from caixafacil.services.progress import ImportProgress
from caixafacil.services.storage import FileStorage

TODAY = date(2026, 10, 19)

CSV_CONTENT = b"""Data,Descricao,Valor
01/10/2026,ALUGUEL SALA,-1.500,00
03/10/2026,POSTO SHELL,-250,00
05/10/2026,PIX RECEBIDO CLIENTE,3.200,00"""

EXTRACTED = {
    "transactions": [
        {"date": "2026-10-01", "description": "ALUGUEL SALA", "amount": 1500.0, "type": "expense"},
        {"date": "2026-10-03", "description": "POSTO SHELL", "amount": 250.0, "type": "expense"},
        {"date": "2026-10-05", "description": "PIX RECEBIDO CLIENTE", "amount": 3200.0, "type": "income"},
    ]
}

CATEGORIES = {"categories": ["aluguel", "combustivel_transporte", "vendas"]}


class FakeStore:
    """Store double that records bulk creates and can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def bulk_create(self, records):
        if self.fail:
            raise RuntimeError("connection reset")
        self.calls.append(list(records))
        return len(records)


@pytest.fixture
def storage(tmp_path):
    return FileStorage(tmp_path / "uploads")


def new_progress() -> ImportProgress:
    return ImportProgress(import_id="abc123def456", filename="extrato.csv")


def _llm_mock(answer) -> AsyncMock:
    if isinstance(answer, BaseException):
        return AsyncMock(side_effect=answer)
    return AsyncMock(return_value=answer)


def patch_llm(extraction, categorization):
    """Patch the extraction and categorization LLM calls.

    Returns (extraction patch, categorization patch, extraction mock, categorization mock).
    """
    extract_mock = _llm_mock(extraction)
    categorize_mock = _llm_mock(categorization)
    return (
        patch("caixafacil.parsers.extraction.invoke_llm", new=extract_mock),
        patch("caixafacil.services.categorizer.invoke_llm", new=categorize_mock),
        extract_mock,
        categorize_mock,
    )


@pytest.mark.asyncio
class TestStatementImporter:
    """Pipeline scenarios."""

    async def test_imports_csv_statement(self, storage):
        """Three valid rows become three records tagged with the bank account."""
        store = FakeStore()
        progress = new_progress()
        extract_patch, categorize_patch, extract_mock, categorize_mock = patch_llm(EXTRACTED, CATEGORIES)

        with extract_patch, categorize_patch:
            result = await StatementImporter(store, storage).run(
                ImportRequest("extrato.csv", CSV_CONTENT, "Nubank"), progress, TODAY
            )

        assert result.imported_count == 3
        assert len(store.calls) == 1
        records = store.calls[0]
        assert len(records) == 3
        for record in records:
            assert record.bank_account == "Nubank"
            assert record.payment_method == "transferencia"
            assert record.category
            assert record.notes == "Importado do extrato em 19/10/2026"
        assert [r.amount for r in records] == [-1500.0, -250.0, 3200.0]
        assert [r.category for r in records] == ["aluguel", "combustivel_transporte", "vendas"]

        # CSV text is sent inline, no file reference
        prompt = extract_mock.await_args.args[0]
        assert "ALUGUEL SALA" in prompt
        assert extract_mock.await_args.kwargs["file_urls"] is None
        assert categorize_mock.await_count == 1

        assert progress.status == ImportStatus.SUCCESS
        assert progress.progress == 100
        assert progress.imported_count == 3

    async def test_empty_extraction_stops_before_categorizing(self, storage):
        store = FakeStore()
        progress = new_progress()
        extract_patch, categorize_patch, _, categorize_mock = patch_llm({"transactions": []}, CATEGORIES)

        with extract_patch, categorize_patch:
            with pytest.raises(NoTransactionsFoundError):
                await StatementImporter(store, storage).run(
                    ImportRequest("extrato.csv", CSV_CONTENT, "Nubank"), progress, TODAY
                )

        assert categorize_mock.await_count == 0
        assert store.calls == []
        assert progress.status == ImportStatus.ERROR
        assert progress.title == "Nenhuma transação encontrada"

    async def test_missing_extraction_result_is_no_transactions(self, storage):
        extract_patch, categorize_patch, _, _ = patch_llm({}, CATEGORIES)

        with extract_patch, categorize_patch:
            with pytest.raises(NoTransactionsFoundError):
                await StatementImporter(FakeStore(), storage).run(
                    ImportRequest("extrato.csv", CSV_CONTENT, "Nubank"), new_progress(), TODAY
                )

    async def test_zero_amount_rows_are_not_persisted(self, storage):
        store = FakeStore()
        extracted = {
            "transactions": EXTRACTED["transactions"][:2]
            + [{"date": "2026-10-04", "description": "ESTORNO", "amount": 0, "type": "income"}]
        }
        extract_patch, categorize_patch, _, _ = patch_llm(
            extracted, {"categories": ["aluguel", "combustivel_transporte"]}
        )

        with extract_patch, categorize_patch:
            result = await StatementImporter(store, storage).run(
                ImportRequest("extrato.csv", CSV_CONTENT, "Nubank"), new_progress(), TODAY
            )

        assert result.imported_count == 2
        assert [r.description for r in store.calls[0]] == ["ALUGUEL SALA", "POSTO SHELL"]

    async def test_only_zero_amount_rows_fail_validation(self, storage):
        store = FakeStore()
        progress = new_progress()
        extracted = {"transactions": [{"date": "2026-10-04", "description": "ESTORNO", "amount": 0, "type": "income"}]}
        extract_patch, categorize_patch, _, categorize_mock = patch_llm(extracted, CATEGORIES)

        with extract_patch, categorize_patch:
            with pytest.raises(NoValidTransactionsError):
                await StatementImporter(store, storage).run(
                    ImportRequest("extrato.csv", CSV_CONTENT, "Nubank"), progress, TODAY
                )

        assert store.calls == []
        assert categorize_mock.await_count == 0
        assert progress.title == "Nenhuma transação válida"

    async def test_categorization_failure_does_not_abort(self, storage):
        store = FakeStore()
        extract_patch, categorize_patch, _, _ = patch_llm(EXTRACTED, LLMInvocationError("LLM call failed: 503"))

        with extract_patch, categorize_patch:
            result = await StatementImporter(store, storage).run(
                ImportRequest("extrato.csv", CSV_CONTENT, "Nubank"), new_progress(), TODAY
            )

        assert result.imported_count == 3
        assert [r.category for r in store.calls[0]] == ["outras_despesas", "outras_despesas", "outras_receitas"]

    async def test_missing_bank_account_rejected_before_llm(self, storage):
        progress = new_progress()
        extract_patch, categorize_patch, extract_mock, _ = patch_llm(EXTRACTED, CATEGORIES)

        with extract_patch, categorize_patch:
            with pytest.raises(MissingBankAccountError):
                await StatementImporter(FakeStore(), storage).run(
                    ImportRequest("extrato.csv", CSV_CONTENT, "  "), progress, TODAY
                )

        assert extract_mock.await_count == 0
        assert progress.status == ImportStatus.ERROR
        assert progress.title == "Conta bancária obrigatória"

    async def test_timeout_is_reported_as_split_file_instruction(self, storage):
        progress = new_progress()
        extract_patch, categorize_patch, _, _ = patch_llm(LLMInvocationError("LLM timeout after 180.0s"), CATEGORIES)

        with extract_patch, categorize_patch:
            with pytest.raises(LLMInvocationError):
                await StatementImporter(FakeStore(), storage).run(
                    ImportRequest("extrato.csv", CSV_CONTENT, "Nubank"), progress, TODAY
                )

        assert progress.title == TIMEOUT_TITLE
        assert "período menor" in progress.detail

    async def test_pdf_is_sent_by_file_url(self, storage):
        store = FakeStore()
        extract_patch, categorize_patch, extract_mock, _ = patch_llm(EXTRACTED, CATEGORIES)

        with extract_patch, categorize_patch:
            await StatementImporter(store, storage).run(
                ImportRequest("extrato.pdf", b"%PDF-1.4 fake", "Inter"), new_progress(), TODAY
            )

        file_url = extract_mock.await_args.kwargs["file_urls"]
        assert file_url.startswith("file://")
        assert storage.fetch(file_url) == b"%PDF-1.4 fake"
        assert "Extrato:" not in extract_mock.await_args.args[0]

    async def test_retry_reruns_every_stage(self, storage):
        """After a persistence failure, retry runs extraction and categorization again."""
        store = FakeStore(fail=True)
        progress = new_progress()
        importer = StatementImporter(store, storage)
        request = ImportRequest("extrato.csv", CSV_CONTENT, "Nubank")
        extract_patch, categorize_patch, extract_mock, categorize_mock = patch_llm(EXTRACTED, CATEGORIES)

        with extract_patch, categorize_patch:
            with pytest.raises(PersistenceError):
                await importer.run(request, progress, TODAY)

            assert progress.status == ImportStatus.ERROR
            assert progress.title == "Erro ao salvar transações"

            store.fail = False
            result = await importer.retry(request, progress, TODAY)

        assert result.imported_count == 3
        assert extract_mock.await_count == 2
        assert categorize_mock.await_count == 2
        assert progress.status == ImportStatus.SUCCESS
        assert progress.attempt == 2

    async def test_retry_requires_failed_run(self, storage):
        with pytest.raises(ValueError, match="Only failed imports"):
            await StatementImporter(FakeStore(), storage).retry(
                ImportRequest("extrato.csv", CSV_CONTENT, "Nubank"), new_progress(), TODAY
            )


@pytest.mark.asyncio
class TestScheduleReset:
    """Test the automatic return to idle after a successful import."""

    async def test_success_returns_to_idle(self):
        progress = new_progress()
        progress.start()
        progress.advance(90, "Salvando...")
        progress.succeed(3)

        schedule_reset(progress, 0.01)
        await asyncio.sleep(0.05)

        assert progress.status == ImportStatus.IDLE
        assert progress.progress == 0

    async def test_run_that_left_success_is_not_reset(self):
        progress = new_progress()
        progress.start()
        progress.advance(90, "Salvando...")
        progress.succeed(3)

        schedule_reset(progress, 0.01)
        progress.reset()
        progress.start()
        await asyncio.sleep(0.05)

        assert progress.status == ImportStatus.UPLOADING
        assert progress.progress == 10

    async def test_reset_can_be_cancelled(self):
        progress = new_progress()
        progress.start()
        progress.advance(90, "Salvando...")
        progress.succeed(1)

        schedule_reset(progress, 0.01).cancel()
        await asyncio.sleep(0.05)

        assert progress.status == ImportStatus.SUCCESS
