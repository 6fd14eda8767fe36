"""Error taxonomy for the statement import pipeline."""


class StatementImportError(Exception):
    """Base class for failures that abort a statement import."""

    title = "Erro ao processar arquivo"
    detail = "Verifique se o formato está correto e tente novamente."


class MissingBankAccountError(StatementImportError):
    """Raised before any external call when no bank account label was given."""

    title = "Conta bancária obrigatória"
    detail = "Informe o nome da conta bancária antes de importar o extrato."


class FileReadError(StatementImportError):
    """Raised when the uploaded file cannot be read, stored or fetched."""


class NoTransactionsFoundError(StatementImportError):
    """Raised when extraction returns no transactions."""

    title = "Nenhuma transação encontrada"
    detail = "Verifique se o arquivo contém um extrato bancário com datas, descrições e valores."


class NoValidTransactionsError(StatementImportError):
    """Raised when every extracted transaction fails validation."""

    title = "Nenhuma transação válida"
    detail = "As transações encontradas não possuem data, descrição, valor ou tipo válidos."


class LLMInvocationError(StatementImportError):
    """Raised when the LLM call fails or returns unusable output."""


class PersistenceError(StatementImportError):
    """Raised when the bulk create call fails."""

    title = "Erro ao salvar transações"
    detail = "Não foi possível salvar as transações importadas. Tente novamente."


TIMEOUT_TITLE = "Tempo de processamento excedido"
TIMEOUT_DETAIL = (
    "O arquivo é muito grande para ser processado de uma vez. "
    "Divida o extrato em um período menor (por exemplo, um mês) e tente novamente."
)


def classify_error(exc: BaseException) -> tuple[str, str]:
    """Map any pipeline failure to a user-facing (title, detail) pair."""
    if "timeout" in str(exc).lower() or isinstance(exc, TimeoutError):
        return TIMEOUT_TITLE, TIMEOUT_DETAIL

    if isinstance(exc, StatementImportError):
        return exc.title, exc.detail

    return StatementImportError.title, StatementImportError.detail
