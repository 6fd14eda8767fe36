"""LLM-powered batch categorization of imported transactions."""

import asyncio
import json
import logging
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from caixafacil.config import settings
from caixafacil.models import (
    CATEGORY_LABELS,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    RawExtractedTransaction,
    TransactionCategory,
    TransactionType,
)
from caixafacil.parsers.llm_client import invoke_llm

logger = logging.getLogger(__name__)

T = TypeVar("T")

BatchCallback = Callable[[int, int], None]

# Category descriptions for the LLM
CATEGORY_DESCRIPTIONS = """
Categorias de RECEITA (type = income):
- vendas: venda de produtos e mercadorias
- servicos: prestação de serviços
- investimentos: rendimentos, resgates e aplicações
- emprestimos_recebidos: empréstimos e financiamentos recebidos
- outras_receitas: qualquer outra entrada

Categorias de DESPESA (type = expense):
- salarios_funcionarios: salários, pró-labore, folha de pagamento
- fornecedores: compras de fornecedores e mercadorias
- aluguel: aluguel e condomínio
- contas_servicos: água, luz, telefone, internet, assinaturas
- impostos_taxas: impostos, tarifas bancárias, DAS, taxas
- marketing_publicidade: anúncios, propaganda, redes sociais
- equipamentos_materiais: equipamentos, materiais, escritório
- manutencao: consertos e manutenção
- combustivel_transporte: combustível, transporte, frete, aplicativos de corrida
- emprestimos_pagos: parcelas de empréstimos e financiamentos
- outras_despesas: qualquer outra saída
"""

CATEGORIZATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "categories": {
            "type": "array",
            "items": {"type": "string", "enum": [c.value for c in TransactionCategory]},
        }
    },
    "required": ["categories"],
}


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into contiguous chunks of at most `size`, preserving order."""
    if size < 1:
        raise ValueError(f"Batch size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def default_category(txn_type: str | None) -> str:
    """Fallback category for a transaction type."""
    if txn_type == TransactionType.EXPENSE.value:
        return TransactionCategory.OUTRAS_DESPESAS.value
    return TransactionCategory.OUTRAS_RECEITAS.value


def _allowed_categories(txn_type: str | None) -> tuple[TransactionCategory, ...]:
    if txn_type == TransactionType.EXPENSE.value:
        return EXPENSE_CATEGORIES
    return INCOME_CATEGORIES


def _parse_category(category_str: Any, txn_type: str | None) -> str:
    """Normalize an LLM label; labels outside the type's taxonomy fall back to the default."""
    if isinstance(category_str, str):
        normalized = category_str.strip().lower()
        for cat in _allowed_categories(txn_type):
            if normalized in (cat.value, CATEGORY_LABELS[cat].lower()):
                return cat.value
    return default_category(txn_type)


def build_categorization_prompt(batch: Sequence[RawExtractedTransaction]) -> str:
    """Build the prompt for one batch of transactions."""
    transaction_list = "\n".join(
        json.dumps(
            {"index": i, "description": txn.description, "type": txn.type, "amount": txn.amount},
            ensure_ascii=False,
        )
        for i, txn in enumerate(batch)
    )

    return f"""Classifique cada transação financeira de uma pequena empresa brasileira em uma categoria.
{CATEGORY_DESCRIPTIONS}
Use apenas categorias de receita para type = income e apenas categorias de despesa para type = expense.

Transações:
{transaction_list}

Responda com {{"categories": [...]}} contendo exatamente {len(batch)} categorias,
uma por transação, na MESMA ORDEM dos índices acima."""


async def _categorize_batch(batch: list[RawExtractedTransaction]) -> list[str]:
    """
    Categorize one batch with a single LLM call.

    Raises:
        ValueError: If the LLM returns a different number of labels than items
    """
    result = await invoke_llm(
        build_categorization_prompt(batch),
        response_json_schema=CATEGORIZATION_SCHEMA,
    )

    categories = result.get("categories") if isinstance(result, dict) else result
    if not isinstance(categories, list):
        raise ValueError("Categorization response has no category list")
    if len(categories) != len(batch):
        raise ValueError(f"Expected {len(batch)} categories, got {len(categories)}")

    return [_parse_category(cat, txn.type) for cat, txn in zip(categories, batch)]


async def categorize_transactions(
    transactions: Sequence[RawExtractedTransaction],
    batch_size: int | None = None,
    max_concurrency: int | None = None,
    on_batch_done: BatchCallback | None = None,
) -> list[str]:
    """
    Categorize transactions in fixed-size batches.

    Issues one LLM call per batch. A batch whose call fails, or that returns the
    wrong number of labels, falls back to the default category of each item
    instead of aborting. Batches run sequentially unless `max_concurrency` > 1.

    Args:
        transactions: Validated transactions, in import order
        batch_size: Items per LLM call (defaults to settings)
        max_concurrency: Batches allowed in flight at once (defaults to settings)
        on_batch_done: Called with (batches_done, total_batches) after each batch

    Returns:
        Category values aligned 1:1 by position with `transactions`
    """
    batch_size = batch_size or settings.categorization_batch_size
    max_concurrency = max(1, max_concurrency or settings.categorization_concurrency)

    batches = chunk(transactions, batch_size)
    total_batches = len(batches)
    done = 0

    logger.info(f"Categorizing {len(transactions)} transactions in {total_batches} batches")

    async def run_batch(batch_num: int, batch: list[RawExtractedTransaction]) -> list[str]:
        nonlocal done
        try:
            categories = await _categorize_batch(batch)
        except Exception as e:
            logger.warning(f"Batch {batch_num}/{total_batches} categorization failed, using defaults: {e}")
            categories = [default_category(txn.type) for txn in batch]

        done += 1
        if on_batch_done:
            on_batch_done(done, total_batches)
        return categories

    results: list[list[str]] = []
    if max_concurrency == 1:
        for i, batch in enumerate(batches):
            results.append(await run_batch(i + 1, batch))
    else:
        semaphore = asyncio.Semaphore(max_concurrency)

        async def run_with_semaphore(batch_num: int, batch: list[RawExtractedTransaction]) -> list[str]:
            async with semaphore:
                return await run_batch(batch_num, batch)

        # gather keeps results in batch order
        results = await asyncio.gather(
            *[run_with_semaphore(i + 1, batch) for i, batch in enumerate(batches)]
        )

    all_categories: list[str] = []
    for batch_categories in results:
        all_categories.extend(batch_categories)
    return all_categories
