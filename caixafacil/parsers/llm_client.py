"""LLM integration: one entry point for prompts, JSON schemas and attached files."""

import asyncio
import json
import logging
from typing import Any

from litellm import acompletion

from caixafacil.config import settings
from caixafacil.errors import LLMInvocationError
from caixafacil.parsers.file_reader import extract_pdf_text, get_extension
from caixafacil.services.storage import FileStorage

logger = logging.getLogger(__name__)


async def invoke_llm(
    prompt: str,
    response_json_schema: dict[str, Any] | None = None,
    file_urls: str | list[str] | None = None,
    *,
    storage: FileStorage | None = None,
    temperature: float = 0.1,
    timeout: float | None = None,
    max_retries: int | None = None,
) -> Any:
    """
    Call the LLM with a prompt and optional structured-output schema.

    Args:
        prompt: The instruction to send
        response_json_schema: JSON schema the answer must conform to. When
            given, the parsed JSON is returned; otherwise the free-text answer.
        file_urls: URL(s) of stored files to attach to the prompt
        storage: Storage used to resolve file_urls
        temperature: Sampling temperature
        timeout: Timeout in seconds for each attempt
        max_retries: Maximum number of attempts

    Returns:
        Parsed JSON (dict or list) or a string

    Raises:
        LLMInvocationError: If the call fails or returns invalid JSON after all attempts
    """
    timeout = timeout if timeout is not None else settings.llm_timeout_seconds
    max_retries = max(1, max_retries if max_retries is not None else settings.llm_max_retries)

    content = prompt
    if file_urls:
        content += await _attach_files(file_urls, storage)
    if response_json_schema is not None:
        content += (
            "\n\nResponda somente com JSON válido que siga este JSON Schema, sem texto adicional:\n"
            + json.dumps(response_json_schema, ensure_ascii=False)
        )

    for attempt in range(max_retries):
        try:
            logger.debug(f"LLM call attempt {attempt + 1}/{max_retries} with {settings.model_name}")
            response = await acompletion(
                model=settings.model_name,
                messages=[{"role": "user", "content": content}],
                api_base=settings.api_base,
                api_key=settings.api_key,
                temperature=temperature,
                timeout=timeout,
            )
            answer = (response.choices[0].message.content or "").strip()

            if response_json_schema is None:
                return answer
            return parse_json_response(answer)

        except Exception as e:
            if isinstance(e, TimeoutError) or "timeout" in type(e).__name__.lower():
                message = f"LLM timeout after {timeout}s"
            else:
                message = f"LLM call failed: {e}"
            logger.warning(f"{message} (attempt {attempt + 1}/{max_retries})")

            if attempt < max_retries - 1:
                await asyncio.sleep(2**attempt)  # Exponential backoff
                continue
            raise LLMInvocationError(message) from e

    # Should never reach here
    raise LLMInvocationError("Unexpected error in invoke_llm")


def parse_json_response(content: str) -> Any:
    """
    Parse JSON out of an LLM answer.

    Handles markdown code fences and leading prose before the first { or [.

    Raises:
        LLMInvocationError: If no valid JSON can be parsed
    """
    if "```" in content:
        parts = content.split("```")
        if len(parts) >= 2:
            json_content = parts[1].lstrip()
            # Remove language identifier (e.g., "json\n")
            if json_content.startswith("json"):
                json_content = json_content[4:]
            content = json_content.strip()

    starts = [pos for pos in (content.find("{"), content.find("[")) if pos >= 0]
    if starts:
        content = content[min(starts):]

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON from LLM: {e}; preview: {content[:200]}")
        raise LLMInvocationError(f"LLM returned invalid JSON: {e}") from e


async def _attach_files(file_urls: str | list[str], storage: FileStorage | None) -> str:
    """Resolve stored files into document sections appended to the prompt."""
    if storage is None:
        raise LLMInvocationError("file_urls given without a storage to resolve them")

    urls = [file_urls] if isinstance(file_urls, str) else file_urls
    sections = ""
    for i, url in enumerate(urls, start=1):
        try:
            contents = await asyncio.to_thread(storage.fetch, url)
        except OSError as e:
            raise LLMInvocationError(f"Could not read attached file {url}: {e}") from e

        if get_extension(url) == "pdf":
            text = await asyncio.to_thread(extract_pdf_text, contents)
        else:
            text = contents.decode("utf-8", errors="replace")

        sections += f"\n\n=== DOCUMENTO ANEXO {i} ===\n{text}"
        logger.info(f"Attached document {i} ({len(text)} chars) to LLM prompt")
    return sections
