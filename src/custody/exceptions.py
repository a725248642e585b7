"""
Error types for the custody ledger.

Every failure carries the operation name and the key involved so callers
can report it without inspecting the cause.
"""

from typing import Optional


class CustodyError(Exception):
    """Base class for all custody ledger errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
    ):
        self.operation = operation
        self.key = key
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.key is not None:
            context.append(f"key={self.key!r}")
        if context:
            return f"{message} ({', '.join(context)})"
        return message


class NotFound(CustodyError):
    """Raised when the requested evidence id is absent."""


class AlreadyExists(CustodyError):
    """Raised when creating evidence with an id that is already recorded."""


class CorruptRecord(CustodyError):
    """Raised when stored bytes cannot be parsed into the expected shape."""


class StoreError(CustodyError):
    """Raised when the ledger store fails; the original cause is chained."""


class ConflictError(StoreError):
    """Raised at commit when a key read by the transaction changed underneath it."""


class ValidationError(CustodyError):
    """Raised when caller input is malformed."""
