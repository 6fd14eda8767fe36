"""AI financial assistant for small-business owners."""

import logging

from litellm import acompletion

from caixafacil.config import settings
from caixafacil.models import BusinessContext, ChatRequest, ChatResponse, FinancialData

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """Você é um assistente financeiro especializado em pequenos e médios negócios brasileiros.
Seu nome é "Assistente CaixaFácil" e você foi criado para ajudar empreendedores a gerenciarem melhor suas finanças.

SUAS CARACTERÍSTICAS:
- Fala português brasileiro de forma clara e acessível
- É amigável, empático e prestativo
- Usa exemplos práticos do dia a dia do empreendedor
- Fornece conselhos acionáveis e específicos
- Conhece impostos, fluxo de caixa, gestão financeira e crédito no Brasil

COMO VOCÊ RESPONDE:
- De forma direta e objetiva, mas gentil
- Com bullet points quando listar itens
- Com números e dados quando disponível
- Com sugestões práticas e próximos passos

IMPORTANTE:
- Nunca invente dados financeiros do usuário
- Se não tiver certeza, deixe claro que é uma sugestão geral
- Seja realista sobre desafios e oportunidades"""

MISSING_KEY_MESSAGE = (
    "Chave da API OpenAI não configurada ou inválida. Configure OPENAI_API_KEY nas configurações."
)


class AssistantError(Exception):
    """Raised when the assistant cannot answer."""

    pass


def format_brl(value: float) -> str:
    """Format a value as Brazilian currency, e.g. R$ 1.234,56."""
    formatted = f"{value:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"R$ {formatted}"


def build_system_prompt(
    business_context: BusinessContext | None = None, financial_data: FinancialData | None = None
) -> str:
    """System prompt with optional business context and ledger figures."""
    prompt = SYSTEM_PROMPT

    if business_context:
        lines = []
        if business_context.business_name:
            lines.append(f"Nome do negócio: {business_context.business_name}")
        if business_context.business_segment:
            lines.append(f"Segmento: {business_context.business_segment}")
        if business_context.employee_count:
            lines.append(f"Quantidade de funcionários: {business_context.employee_count}")
        if business_context.operation_type:
            lines.append(f"Tipo de operação: {business_context.operation_type}")
        if business_context.operation_states:
            lines.append(f"Estados de atuação: {', '.join(business_context.operation_states)}")
        if business_context.operation_cities:
            lines.append(f"Cidades de atuação: {', '.join(business_context.operation_cities)}")
        if business_context.main_challenge:
            lines.append(f"Principal desafio: {business_context.main_challenge}")
        if lines:
            prompt += "\n\n=== CONTEXTO DO NEGÓCIO DO USUÁRIO ===\n" + "\n".join(lines)

    if financial_data:
        lines = []
        if financial_data.current_balance is not None:
            lines.append(f"Saldo atual em caixa: {format_brl(financial_data.current_balance)}")
        if financial_data.month_summary:
            summary = financial_data.month_summary
            lines.append("\nResumo do mês atual:")
            lines.append(f"- Entradas: {format_brl(summary.income)}")
            lines.append(f"- Saídas: {format_brl(summary.expense)}")
            lines.append(f"- Resultado: {format_brl(summary.balance)}")
        if financial_data.top_expenses:
            lines.append("\nPrincipais despesas do mês:")
            for i, expense in enumerate(financial_data.top_expenses, start=1):
                lines.append(f"{i}. {expense.category}: {format_brl(expense.amount)}")
        if financial_data.recurring_expenses:
            lines.append("\nDespesas recorrentes cadastradas:")
            for i, expense in enumerate(financial_data.recurring_expenses, start=1):
                lines.append(f"{i}. {expense.name}: {format_brl(expense.amount)} (vence dia {expense.due_day})")
        if lines:
            prompt += "\n\n=== DADOS FINANCEIROS RECENTES ===\n" + "\n".join(lines)

    return prompt


async def chat(request: ChatRequest) -> ChatResponse:
    """
    Answer the conversation in `request`.

    Raises:
        ValueError: If there are no messages
        AssistantError: If the LLM call fails
    """
    if not request.messages:
        raise ValueError("Messages array is required")

    messages = [{"role": "system", "content": build_system_prompt(request.business_context, request.financial_data)}]
    messages += [{"role": m.role, "content": m.content} for m in request.messages]

    try:
        response = await acompletion(
            model=settings.model_name,
            messages=messages,
            api_base=settings.api_base,
            api_key=settings.api_key,
            temperature=0.7,
            max_tokens=2000,
        )
    except Exception as e:
        logger.error(f"Assistant call failed: {e}")
        if "api key" in str(e).lower():
            raise AssistantError(MISSING_KEY_MESSAGE) from e
        raise AssistantError(str(e) or "Erro ao processar sua mensagem. Tente novamente.") from e

    return ChatResponse(response=response.choices[0].message.content or "", model=settings.model_name)
