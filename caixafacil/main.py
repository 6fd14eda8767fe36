"""FastAPI application for CaixaFácil."""

import asyncio
import logging
import uuid
from datetime import date

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from caixafacil.config import settings
from caixafacil.db.sqlite import get_db
from caixafacil.models import (
    ChatRequest,
    ChatResponse,
    ImportAccepted,
    ImportProgressSnapshot,
    ImportStatus,
    RecurringExpense,
    RecurringExpenseCreate,
    SettingsResponse,
    SettingsUpdate,
    Transaction,
    TransactionCreate,
)
from caixafacil.parsers.file_reader import get_extension
from caixafacil.services import assistant, dashboard, progress, recurring, reports
from caixafacil.services.importer import ImportRequest, StatementImporter, schedule_reset
from caixafacil.services.persistence import signed_amount
from caixafacil.services.storage import FileStorage

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ("csv", "pdf")

app = FastAPI(
    title="CaixaFácil",
    description="Financial tracking for small businesses with AI statement import",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_background_tasks: set[asyncio.Task] = set()


def get_importer() -> StatementImporter:
    return StatementImporter(store=get_db(), storage=FileStorage(settings.uploads_path))


@app.on_event("startup")
async def startup():
    """Initialize on startup."""
    settings.ensure_directories()
    settings.log_config()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "transaction_count": get_db().get_transaction_count()}


# Statement import


def _start_import(entry: progress.ImportProgress, retry: bool = False) -> None:
    """Run the import pipeline in the background."""
    request: ImportRequest = entry.request
    importer = get_importer()
    run = importer.retry(request, entry) if retry else importer.run(request, entry)

    async def run_and_reset() -> None:
        await run
        schedule_reset(entry, settings.success_reset_seconds)
        entry.request = None

    task = asyncio.create_task(run_and_reset())
    _background_tasks.add(task)

    def handle_task_done(task: asyncio.Task) -> None:
        _background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            # Already recorded on the progress entry; keep the request for retry
            logger.warning(f"Import {entry.import_id[:8]}... failed: {task.exception()}")

    task.add_done_callback(handle_task_done)


@app.post("/imports", response_model=ImportAccepted)
async def upload_statement(file: UploadFile = File(...), bank_account: str = Form("")):
    """Upload a bank statement (CSV or PDF) and import it in the background."""
    if not bank_account.strip():
        raise HTTPException(status_code=400, detail="Informe o nome da conta bancária")
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")
    if get_extension(file.filename) not in SUPPORTED_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Only PDF and CSV files are supported")

    contents = await file.read()
    if not contents:
        raise HTTPException(status_code=400, detail="Empty file")

    import_id = uuid.uuid4().hex
    request = ImportRequest(filename=file.filename, contents=contents, bank_account=bank_account)
    entry = progress.register_import(import_id, file.filename, request=request)
    _start_import(entry)

    return ImportAccepted(
        import_id=import_id,
        filename=file.filename,
        status=ImportStatus.UPLOADING,
        message=f"Processando {file.filename}...",
    )


@app.get("/imports", response_model=list[ImportProgressSnapshot])
async def list_imports():
    """Imports currently uploading or processing."""
    return progress.list_active_imports()


@app.get("/imports/{import_id}", response_model=ImportProgressSnapshot)
async def get_import_progress(import_id: str):
    entry = progress.get_import(import_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Import not found")
    return entry.snapshot()


@app.post("/imports/{import_id}/retry", response_model=ImportProgressSnapshot)
async def retry_import(import_id: str):
    """Re-run a failed import from the first stage."""
    entry = progress.get_import(import_id)
    if entry is None or entry.request is None:
        raise HTTPException(status_code=404, detail="Import not found")
    if entry.status != ImportStatus.ERROR:
        raise HTTPException(status_code=409, detail="Only failed imports can be retried")

    _start_import(entry, retry=True)
    return entry.snapshot()


# Transactions


@app.get("/transactions", response_model=list[Transaction])
async def get_transactions(
    start_date: date | None = None,
    end_date: date | None = None,
    type: str | None = None,
    category: str | None = None,
    bank_account: str | None = None,
    limit: int = 500,
):
    """Get transactions with optional filters."""
    return get_db().list_transactions(
        start_date=start_date.isoformat() if start_date else None,
        end_date=end_date.isoformat() if end_date else None,
        txn_type=type,
        category=category,
        bank_account=bank_account,
        limit=limit,
    )


@app.post("/transactions", response_model=Transaction)
async def create_transaction(data: TransactionCreate):
    """Add a manual transaction. The amount sign follows its type."""
    data = data.model_copy(update={"amount": signed_amount(data.amount, data.type)})
    return get_db().create_transaction(data)


@app.delete("/transactions/{transaction_id}")
async def delete_transaction(transaction_id: uuid.UUID):
    if not get_db().delete_transaction(transaction_id):
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {"status": "deleted"}


# Reports and dashboard


@app.get("/reports/monthly")
async def get_monthly_report(months: int = 3):
    """Monthly income/expense report with next-month projections."""
    if months not in (3, 6, 12):
        raise HTTPException(status_code=400, detail="months must be 3, 6 or 12")

    report = reports.monthly_report(get_db().list_transactions(), months=months)
    return {"months": report, "predictions": reports.predict_next_month(report)}


@app.get("/reports/monthly.csv")
async def export_monthly_report(months: int = 3):
    """Download the monthly report as CSV."""
    if months not in (3, 6, 12):
        raise HTTPException(status_code=400, detail="months must be 3, 6 or 12")

    report = reports.monthly_report(get_db().list_transactions(), months=months)
    return Response(
        content=reports.export_csv(report),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="relatorio-financeiro.csv"'},
    )


@app.get("/dashboard")
async def get_dashboard(month_offset: int = 0, bank_account: str | None = None):
    """Balance and month summary, `month_offset` months back from the current month."""
    if not 0 <= month_offset < 12:
        raise HTTPException(status_code=400, detail="month_offset must be between 0 and 11")

    transactions = get_db().list_transactions()
    today = date.today()
    year, month = reports.shift_month(today.year, today.month, -month_offset)

    return {
        "month": reports.month_label(year, month),
        "accounts": dashboard.bank_accounts(transactions),
        "balance": dashboard.account_balance(transactions, bank_account),
        "summary": dashboard.month_summary(transactions, year, month, bank_account),
        "top_expenses": dashboard.top_expense_categories(transactions, year, month, bank_account=bank_account),
    }


# Recurring expenses


@app.get("/recurring-expenses", response_model=list[RecurringExpense])
async def list_recurring_expenses():
    return get_db().list_recurring_expenses()


@app.get("/recurring-expenses/stats")
async def get_recurring_stats():
    return recurring.recurring_stats(get_db().list_recurring_expenses())


@app.post("/recurring-expenses", response_model=RecurringExpense)
async def create_recurring_expense(data: RecurringExpenseCreate):
    return get_db().create_recurring_expense(data)


@app.put("/recurring-expenses/{expense_id}", response_model=RecurringExpense)
async def update_recurring_expense(expense_id: uuid.UUID, data: RecurringExpenseCreate):
    expense = get_db().update_recurring_expense(expense_id, data)
    if expense is None:
        raise HTTPException(status_code=404, detail="Recurring expense not found")
    return expense


@app.delete("/recurring-expenses/{expense_id}")
async def delete_recurring_expense(expense_id: uuid.UUID):
    if not get_db().delete_recurring_expense(expense_id):
        raise HTTPException(status_code=404, detail="Recurring expense not found")
    return {"status": "deleted"}


@app.post("/recurring-expenses/{expense_id}/pay")
async def pay_recurring_expense(expense_id: uuid.UUID):
    """Mark this month's payment and record it as a transaction."""
    result = recurring.mark_as_paid(expense_id, get_db())
    if result is None:
        raise HTTPException(status_code=404, detail="Recurring expense not found")
    expense, transaction = result
    return {"expense": expense, "transaction": transaction}


# Assistant


@app.post("/assistant/chat", response_model=ChatResponse)
async def assistant_chat(request: ChatRequest):
    """Chat with the financial assistant."""
    if not request.messages:
        raise HTTPException(status_code=400, detail="Messages array is required")

    if request.include_ledger and request.financial_data is None:
        db = get_db()
        request.financial_data = dashboard.build_financial_data(
            db.list_transactions(), db.list_recurring_expenses()
        )

    try:
        return await assistant.chat(request)
    except assistant.AssistantError as e:
        raise HTTPException(status_code=500, detail=str(e))


# Settings


@app.get("/settings", response_model=SettingsResponse)
async def get_settings():
    """Get current settings."""
    return SettingsResponse(
        llm_provider=settings.llm_provider,
        model=settings.model_name,
        ollama_host=settings.ollama_host,
        has_openai_key=bool(settings.openai_api_key),
        categorization_batch_size=settings.categorization_batch_size,
        max_upload_mb=settings.max_upload_mb,
    )


@app.put("/settings")
async def update_settings(update: SettingsUpdate):
    """Update settings (runtime only, doesn't persist to .env)."""
    if update.llm_provider:
        settings.llm_provider = update.llm_provider  # type: ignore
    if update.openai_api_key:
        settings.openai_api_key = update.openai_api_key
    if update.ollama_host:
        settings.ollama_host = update.ollama_host
    if update.categorization_batch_size:
        settings.categorization_batch_size = update.categorization_batch_size
    return {"status": "updated"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
