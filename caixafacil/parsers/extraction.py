"""LLM-based transaction extraction from Brazilian bank statements."""

import logging
from datetime import date
from typing import Any

from pydantic import ValidationError

from caixafacil.errors import NoTransactionsFoundError, NoValidTransactionsError
from caixafacil.models import RawExtractedTransaction
from caixafacil.parsers.file_reader import StatementContent
from caixafacil.parsers.llm_client import invoke_llm
from caixafacil.services.storage import FileStorage

logger = logging.getLogger(__name__)

EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "transactions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "date": {"type": "string", "description": "Data no formato YYYY-MM-DD"},
                    "description": {"type": "string"},
                    "amount": {"type": "number", "description": "Valor absoluto, sem sinal"},
                    "type": {"type": "string", "enum": ["income", "expense"]},
                },
                "required": ["date", "description", "amount", "type"],
            },
        }
    },
    "required": ["transactions"],
}


def build_extraction_prompt(content: str | None, today: date) -> str:
    """Build the extraction instruction, with inline statement text when available."""
    prompt = f"""Você é um especialista em extratos bancários brasileiros.
Extraia TODAS as transações financeiras do extrato abaixo.

Para cada transação informe:
- date: data no formato YYYY-MM-DD. Se o ano não aparecer no extrato, use {today.year}.
- description: descrição da transação como aparece no extrato.
- amount: valor ABSOLUTO (sempre positivo) como número decimal simples.
  Converta o formato brasileiro: "1.234,56" vira 1234.56 e "R$ 50,00" vira 50.00.
- type: "income" para entradas/créditos e "expense" para saídas/débitos.

Ignore linhas de saldo, totais e cabeçalhos."""

    if content is not None:
        prompt += f"\n\nExtrato:\n{content}"
    return prompt


async def extract_transactions(
    statement: StatementContent,
    *,
    storage: FileStorage,
    today: date | None = None,
) -> list[RawExtractedTransaction]:
    """
    Extract candidate transactions with a single LLM call.

    Text statements are sent inline; PDFs are sent as a file reference.

    Raises:
        NoTransactionsFoundError: If the LLM returns nothing
        LLMInvocationError: If the LLM call fails
    """
    today = today or date.today()
    prompt = build_extraction_prompt(statement.text, today)

    logger.info(f"Extracting transactions from {statement.filename} ({statement.extension})")
    result = await invoke_llm(
        prompt,
        response_json_schema=EXTRACTION_SCHEMA,
        file_urls=statement.file_url,
        storage=storage,
    )

    items = result.get("transactions") if isinstance(result, dict) else None
    if not items or not isinstance(items, list):
        raise NoTransactionsFoundError(f"No transactions found in {statement.filename}")

    transactions = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            logger.debug(f"Skipping non-object item {i} from extraction")
            continue
        try:
            transactions.append(RawExtractedTransaction.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Skipping malformed item {i} from extraction: {e}")

    if not transactions:
        raise NoValidTransactionsError(f"None of the {len(items)} extracted items could be read")

    logger.info(f"Extracted {len(transactions)} transactions from {statement.filename}")
    return transactions
