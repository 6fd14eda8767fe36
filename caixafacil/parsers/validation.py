"""Validation of uploads, user input and extracted transactions."""

import logging

from caixafacil.errors import MissingBankAccountError, NoValidTransactionsError
from caixafacil.models import RawExtractedTransaction

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("date", "description", "amount", "type")


class ValidationError(ValueError):
    """Raised when an upload fails basic sanity checks."""

    pass


def validate_file_contents(contents: bytes) -> None:
    """
    Validate file contents before reading.

    Args:
        contents: Raw file bytes

    Raises:
        ValidationError: If the file is empty
    """
    if not contents:
        raise ValidationError("File is empty")


def validate_bank_account(bank_account: str | None) -> str:
    """
    Return the stripped bank account label.

    Raises:
        MissingBankAccountError: If the label is missing or blank
    """
    label = (bank_account or "").strip()
    if not label:
        raise MissingBankAccountError("Bank account label is required")
    return label


def is_valid_transaction(txn: RawExtractedTransaction) -> bool:
    """True if every required field is present and the amount is non-zero."""
    if not all(getattr(txn, name) for name in REQUIRED_FIELDS):
        return False
    return txn.amount != 0


def validate_transactions(transactions: list[RawExtractedTransaction]) -> list[RawExtractedTransaction]:
    """
    Drop extracted transactions missing required fields or with a zero amount.

    Order is preserved: categories are matched back to transactions by position.
    Dates, ranges and types are not checked.

    Raises:
        NoValidTransactionsError: If nothing survives validation
    """
    valid = [txn for txn in transactions if is_valid_transaction(txn)]

    dropped = len(transactions) - len(valid)
    if dropped:
        logger.info(f"Validation dropped {dropped}/{len(transactions)} transactions")

    if not valid:
        raise NoValidTransactionsError(
            f"No valid transactions after validation ({len(transactions)} extracted)"
        )

    return valid
