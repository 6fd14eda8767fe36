"""Data models for CaixaFácil."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class TransactionType(str, Enum):
    """Direction of a money movement."""

    INCOME = "income"
    EXPENSE = "expense"


class TransactionCategory(str, Enum):
    """Fixed category taxonomy shared by the ledger and the categorizer."""

    # Income
    VENDAS = "vendas"
    SERVICOS = "servicos"
    INVESTIMENTOS = "investimentos"
    EMPRESTIMOS_RECEBIDOS = "emprestimos_recebidos"
    OUTRAS_RECEITAS = "outras_receitas"

    # Expense
    SALARIOS_FUNCIONARIOS = "salarios_funcionarios"
    FORNECEDORES = "fornecedores"
    ALUGUEL = "aluguel"
    CONTAS_SERVICOS = "contas_servicos"
    IMPOSTOS_TAXAS = "impostos_taxas"
    MARKETING_PUBLICIDADE = "marketing_publicidade"
    EQUIPAMENTOS_MATERIAIS = "equipamentos_materiais"
    MANUTENCAO = "manutencao"
    COMBUSTIVEL_TRANSPORTE = "combustivel_transporte"
    EMPRESTIMOS_PAGOS = "emprestimos_pagos"
    OUTRAS_DESPESAS = "outras_despesas"


INCOME_CATEGORIES: tuple[TransactionCategory, ...] = (
    TransactionCategory.VENDAS,
    TransactionCategory.SERVICOS,
    TransactionCategory.INVESTIMENTOS,
    TransactionCategory.EMPRESTIMOS_RECEBIDOS,
    TransactionCategory.OUTRAS_RECEITAS,
)

EXPENSE_CATEGORIES: tuple[TransactionCategory, ...] = (
    TransactionCategory.SALARIOS_FUNCIONARIOS,
    TransactionCategory.FORNECEDORES,
    TransactionCategory.ALUGUEL,
    TransactionCategory.CONTAS_SERVICOS,
    TransactionCategory.IMPOSTOS_TAXAS,
    TransactionCategory.MARKETING_PUBLICIDADE,
    TransactionCategory.EQUIPAMENTOS_MATERIAIS,
    TransactionCategory.MANUTENCAO,
    TransactionCategory.COMBUSTIVEL_TRANSPORTE,
    TransactionCategory.EMPRESTIMOS_PAGOS,
    TransactionCategory.OUTRAS_DESPESAS,
)

CATEGORY_LABELS: dict[TransactionCategory, str] = {
    TransactionCategory.VENDAS: "Vendas",
    TransactionCategory.SERVICOS: "Serviços",
    TransactionCategory.INVESTIMENTOS: "Investimentos",
    TransactionCategory.EMPRESTIMOS_RECEBIDOS: "Empréstimos Recebidos",
    TransactionCategory.OUTRAS_RECEITAS: "Outras Receitas",
    TransactionCategory.SALARIOS_FUNCIONARIOS: "Salários",
    TransactionCategory.FORNECEDORES: "Fornecedores",
    TransactionCategory.ALUGUEL: "Aluguel",
    TransactionCategory.CONTAS_SERVICOS: "Contas e Serviços",
    TransactionCategory.IMPOSTOS_TAXAS: "Impostos e Taxas",
    TransactionCategory.MARKETING_PUBLICIDADE: "Marketing",
    TransactionCategory.EQUIPAMENTOS_MATERIAIS: "Equipamentos",
    TransactionCategory.MANUTENCAO: "Manutenção",
    TransactionCategory.COMBUSTIVEL_TRANSPORTE: "Transporte",
    TransactionCategory.EMPRESTIMOS_PAGOS: "Empréstimos Pagos",
    TransactionCategory.OUTRAS_DESPESAS: "Outras Despesas",
}


class PaymentMethod(str, Enum):
    """Supported payment methods."""

    PIX = "pix"
    DINHEIRO = "dinheiro"
    CARTAO_CREDITO = "cartao_credito"
    CARTAO_DEBITO = "cartao_debito"
    TRANSFERENCIA = "transferencia"
    BOLETO = "boleto"
    CHEQUE = "cheque"


class RawExtractedTransaction(BaseModel):
    """Transaction candidate as returned by the extraction LLM.

    Every field is optional because the model is not guaranteed to comply
    with the schema. Dates are kept as plain strings.
    """

    date: str | None = None
    description: str | None = None
    amount: float | None = None
    type: str | None = None


class TransactionCreate(BaseModel):
    """Transaction data for creation (before ID assignment)."""

    date: str
    description: str
    amount: float  # Negative for expenses, positive for income
    type: str
    category: str
    payment_method: str = PaymentMethod.TRANSFERENCIA.value
    bank_account: str | None = None
    notes: str | None = None
    recurring: bool = False


class Transaction(TransactionCreate):
    """A stored ledger transaction."""

    id: UUID = Field(default_factory=uuid4)
    created_at: str = Field(default_factory=lambda: datetime.now().isoformat())

    model_config = ConfigDict(from_attributes=True)


class RecurringExpenseStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"


class RecurringExpenseCreate(BaseModel):
    """A fixed monthly obligation."""

    name: str = Field(min_length=1)
    amount: float = Field(gt=0)
    due_day: int = Field(ge=1, le=31)
    category: TransactionCategory = TransactionCategory.OUTRAS_DESPESAS
    payment_method: PaymentMethod = PaymentMethod.TRANSFERENCIA
    reminder_days_before: int = Field(default=3, ge=0)
    status: RecurringExpenseStatus = RecurringExpenseStatus.ACTIVE
    last_paid_date: date | None = None
    notes: str | None = None


class RecurringExpense(RecurringExpenseCreate):
    id: UUID = Field(default_factory=uuid4)


class ImportStatus(str, Enum):
    """Linear status sequence of a statement import."""

    IDLE = "idle"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class ImportProgressSnapshot(BaseModel):
    """Progress of an import as seen by clients."""

    import_id: str
    filename: str
    status: ImportStatus
    progress: int
    message: str
    title: str | None = None
    detail: str | None = None
    imported_count: int = 0
    attempt: int = 0
    updated_at: str


class ImportAccepted(BaseModel):
    """Response after a statement upload is accepted."""

    import_id: str
    filename: str
    status: ImportStatus
    message: str


class ImportResult(BaseModel):
    """Outcome of a successful import run."""

    imported_count: int
    records: list[TransactionCreate]


class MonthReport(BaseModel):
    """Income/expense totals for one calendar month."""

    month: str
    year: int
    month_number: int
    receitas: float
    despesas: float
    saldo: float


class ReportPredictions(BaseModel):
    avg_income: float
    avg_expense: float
    predicted_income: float
    predicted_expense: float
    income_trend: float
    expense_trend: float


class MonthSummary(BaseModel):
    income: float
    expense: float
    balance: float


class CategoryTotal(BaseModel):
    category: str
    amount: float


class ChatMessage(BaseModel):
    role: str
    content: str


class BusinessContext(BaseModel):
    """Optional information about the user's business."""

    business_name: str | None = None
    business_segment: str | None = None
    employee_count: str | None = None
    operation_type: str | None = None
    operation_states: list[str] = Field(default_factory=list)
    operation_cities: list[str] = Field(default_factory=list)
    main_challenge: str | None = None


class RecurringExpenseSummary(BaseModel):
    name: str
    amount: float
    due_day: int


class FinancialData(BaseModel):
    """Snapshot of the ledger handed to the assistant."""

    current_balance: float | None = None
    month_summary: MonthSummary | None = None
    top_expenses: list[CategoryTotal] = Field(default_factory=list)
    recurring_expenses: list[RecurringExpenseSummary] = Field(default_factory=list)


class ChatRequest(BaseModel):
    messages: list[ChatMessage]
    business_context: BusinessContext | None = None
    financial_data: FinancialData | None = None
    include_ledger: bool = False  # Build financial_data from the stored ledger


class ChatResponse(BaseModel):
    success: bool = True
    response: str
    model: str


class SettingsUpdate(BaseModel):
    """Settings update request."""

    llm_provider: str | None = None
    openai_api_key: str | None = None
    ollama_host: str | None = None
    categorization_batch_size: int | None = Field(default=None, ge=1)


class SettingsResponse(BaseModel):
    """Current settings response."""

    llm_provider: str
    model: str
    ollama_host: str
    has_openai_key: bool
    categorization_batch_size: int
    max_upload_mb: int
