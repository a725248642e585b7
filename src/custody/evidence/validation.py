"""
Input validation for evidence operations.

Every caller-supplied string passes through here before it reaches the
ledger. Failures raise ValidationError naming the operation and field.
"""

from enum import Enum
from typing import Any

from custody.exceptions import ValidationError
from custody.ledger.keys import COMPOSITE_KEY_DELIMITER


def _as_text(value: Any, field: str, operation: str) -> str:
    if isinstance(value, Enum):
        value = value.value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", operation=operation)
    return value


def optional_text(value: Any, field: str, operation: str, max_len: int) -> str:
    """Validate a string field that may be empty; None becomes ''."""
    if value is None:
        return ""
    value = _as_text(value, field, operation)
    if len(value) > max_len:
        raise ValidationError(f"{field} exceeds {max_len} characters", operation=operation)
    return value


def require_text(value: Any, field: str, operation: str, max_len: int) -> str:
    """Validate a string field that must not be blank."""
    value = optional_text(value, field, operation, max_len)
    if not value.strip():
        raise ValidationError(f"{field} must not be empty", operation=operation)
    return value


def validate_evidence_id(value: Any, operation: str, max_len: int) -> str:
    """
    Validate an evidence id.

    Ids are used verbatim as ledger keys and as composite-key parts, so they
    must not contain the composite-key delimiter.
    """
    value = require_text(value, "evidence_id", operation, max_len)
    if COMPOSITE_KEY_DELIMITER in value:
        raise ValidationError("evidence_id must not contain U+0000", operation=operation)
    return value

