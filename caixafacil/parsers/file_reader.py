"""Read uploaded statements into something the extraction LLM can consume."""

import asyncio
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import PurePath

import pdfplumber

from caixafacil.errors import FileReadError
from caixafacil.parsers.validation import validate_file_contents
from caixafacil.services.storage import FileStorage

logger = logging.getLogger(__name__)


@dataclass
class StatementContent:
    """A statement ready for extraction.

    Exactly one of `text` (inline content) or `file_url` (PDF reference) is set.
    """

    filename: str
    extension: str
    text: str | None = None
    file_url: str | None = None


def get_extension(filename: str) -> str:
    """Lowercase extension without the dot ("" when there is none)."""
    return PurePath(filename).suffix.lower().lstrip(".")


async def read_statement(filename: str, contents: bytes, storage: FileStorage) -> StatementContent:
    """
    Read an uploaded statement according to its extension.

    CSV files are decoded as UTF-8 text. Everything else is uploaded to
    storage first: PDFs are forwarded by URL, other files are fetched back
    and decoded as text.

    Raises:
        FileReadError: If the file is empty or cannot be decoded, stored or fetched
    """
    extension = get_extension(filename)

    try:
        validate_file_contents(contents)
    except ValueError as e:
        raise FileReadError(str(e)) from e

    if extension == "csv":
        text = _decode_text(contents, filename)
        logger.info(f"Read {filename} as CSV text ({len(text)} chars)")
        return StatementContent(filename=filename, extension=extension, text=text)

    try:
        file_url = await asyncio.to_thread(storage.upload, filename, contents)
    except OSError as e:
        raise FileReadError(f"Failed to upload {filename}: {e}") from e

    if extension == "pdf":
        logger.info(f"Uploaded {filename}; forwarding file URL for extraction")
        return StatementContent(filename=filename, extension=extension, file_url=file_url)

    try:
        fetched = await asyncio.to_thread(storage.fetch, file_url)
    except OSError as e:
        raise FileReadError(f"Failed to fetch {file_url}: {e}") from e

    text = _decode_text(fetched, filename)
    logger.info(f"Fetched {filename} from storage as text ({len(text)} chars)")
    return StatementContent(filename=filename, extension=extension, text=text)


def _decode_text(contents: bytes, filename: str) -> str:
    try:
        # utf-8-sig also accepts files without a BOM
        return contents.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise FileReadError(f"{filename} is not valid UTF-8 text: {e}") from e


def extract_pdf_text(contents: bytes) -> str:
    """
    Extract text and tables from a PDF.

    Tables are appended after the page text with cells joined by " | " so
    columnar statements keep their row structure.
    """
    full_text = ""
    all_tables: list[list[list[str | None]]] = []

    try:
        with pdfplumber.open(BytesIO(contents)) as pdf:
            for page in pdf.pages:
                full_text += (page.extract_text() or "") + "\n\n"
                tables = page.extract_tables()
                if tables:
                    all_tables.extend(tables)
    except Exception as e:
        logger.error(f"PDF extraction failed: {e}")
        raise FileReadError(f"Failed to extract PDF content: {e}") from e

    if not full_text.strip() and not all_tables:
        raise FileReadError("PDF appears to be empty or unreadable")

    return full_text + _format_pdf_tables(all_tables)


def _format_pdf_tables(tables: list[list[list[str | None]]]) -> str:
    formatted = ""
    for i, table in enumerate(tables):
        formatted += f"\n--- Tabela {i + 1} ---\n"
        for row in table:
            if row:
                formatted += " | ".join(str(cell) if cell else "" for cell in row) + "\n"
    return formatted
