"""Bank statement import pipeline."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date

from caixafacil.errors import classify_error
from caixafacil.models import ImportResult, ImportStatus
from caixafacil.parsers.extraction import extract_transactions
from caixafacil.parsers.file_reader import read_statement
from caixafacil.parsers.validation import validate_bank_account, validate_transactions
from caixafacil.services import progress as checkpoints
from caixafacil.services.categorizer import categorize_transactions
from caixafacil.services.persistence import TransactionStore, persist, to_persistable
from caixafacil.services.progress import ImportProgress
from caixafacil.services.storage import FileStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportRequest:
    """The user's inputs for one import. Retries re-run from these alone."""

    filename: str
    contents: bytes
    bank_account: str


class StatementImporter:
    """Runs file → extraction → validation → categorization → bulk create."""

    def __init__(self, store: TransactionStore, storage: FileStorage):
        self.store = store
        self.storage = storage

    async def run(
        self, request: ImportRequest, progress: ImportProgress, today: date | None = None
    ) -> ImportResult:
        """
        Import one statement, reporting each stage on `progress`.

        Every stage runs sequentially. Any failure marks the run as an error
        with a user-facing title and detail, then propagates.
        """
        progress.start()
        try:
            return await self._run_stages(request, progress, today or date.today())
        except Exception as e:
            title, detail = classify_error(e)
            logger.error(f"Import of {request.filename} failed: {e}")
            progress.fail(title, detail)
            raise

    async def retry(
        self, request: ImportRequest, progress: ImportProgress, today: date | None = None
    ) -> ImportResult:
        """Re-run the whole pipeline after an error. Nothing from the failed attempt is reused."""
        if progress.status != ImportStatus.ERROR:
            raise ValueError(f"Only failed imports can be retried (status: {progress.status.value})")
        logger.info(f"Retrying import of {request.filename} (attempt {progress.attempt + 1})")
        return await self.run(request, progress, today)

    async def _run_stages(self, request: ImportRequest, progress: ImportProgress, today: date) -> ImportResult:
        bank_account = validate_bank_account(request.bank_account)

        statement = await read_statement(request.filename, request.contents, self.storage)

        progress.advance(checkpoints.EXTRACTING, "Analisando extrato...")
        raw_transactions = await extract_transactions(statement, storage=self.storage, today=today)

        transactions = validate_transactions(raw_transactions)
        progress.advance(
            checkpoints.VALIDATED, f"{len(transactions)} transações encontradas. Categorizando..."
        )

        def on_batch_done(done: int, total: int) -> None:
            span = checkpoints.CATEGORIZING_END - checkpoints.CATEGORIZING_START
            progress.advance(
                checkpoints.CATEGORIZING_START + int(span * done / total),
                f"Categorizando lote {done}/{total}...",
            )

        categories = await categorize_transactions(transactions, on_batch_done=on_batch_done)

        progress.advance(checkpoints.SAVING, "Salvando transações...")
        records = to_persistable(transactions, categories, bank_account, today)
        imported = await persist(records, self.store)

        progress.succeed(imported)
        logger.info(f"Imported {imported} transactions from {request.filename} into {bank_account}")
        return ImportResult(imported_count=imported, records=records)


def schedule_reset(progress: ImportProgress, delay: float) -> asyncio.TimerHandle:
    """Return a successful import to idle after `delay` seconds."""

    def reset() -> None:
        if progress.status == ImportStatus.SUCCESS:
            progress.reset()

    return asyncio.get_running_loop().call_later(delay, reset)
