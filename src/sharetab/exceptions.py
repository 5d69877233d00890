from __future__ import annotations

from typing import Optional


class LedgerError(Exception):
    """Base class for calculation engine errors."""


class ValidationError(LedgerError, ValueError):
    """Input rejected before any calculation ran."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class SplitInvalidError(ValidationError):
    """Split weights are missing, negative or do not add up."""


class ExpenseInvalidError(ValidationError):
    """Expense amount is not positive or the record is malformed."""


class NotFoundError(LedgerError, LookupError):
    pass


class DataIntegrityWarning(UserWarning):
    """Stored data is inconsistent; results are best effort."""
