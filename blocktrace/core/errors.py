"""Ledger exception hierarchy."""

from typing import Optional


class LedgerError(Exception):
    """Base exception for ledger errors."""
    pass


class ValidationError(LedgerError):
    """
    Raised when a submitted step is rejected.

    Recoverable: callers receive the reason as an Err result.
    """

    def __init__(self, reason: str, field: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.field = field


class PersistenceError(LedgerError):
    """
    Raised when a snapshot cannot be written or restored.

    NOT recoverable: the startup/shutdown sequence must abort.
    """
    pass
