"""
Equality-AND selectors for rich queries over current ledger state.

A selector document has the shape ``{"selector": {"field": value, ...}}``.
A record matches when it is a JSON object and every listed field is present
with exactly the given value. Only scalar values are supported.
"""

import json
from typing import Any, Mapping, Optional, Union

from custody.exceptions import ValidationError

SCALAR_TYPES = (str, int, float, bool)


def build_selector(**fields: Any) -> dict[str, dict[str, Any]]:
    """Build a selector document from keyword equality predicates."""
    return {"selector": dict(fields)}


def parse_selector(selector: Union[str, Mapping[str, Any]]) -> dict[str, Any]:
    """
    Validate a selector document and return its field predicates.

    Args:
        selector: Selector document, as a mapping or a JSON string

    Returns:
        Mapping of field name to required value

    Raises:
        ValidationError: If the selector is not an equality-AND selector
    """
    if isinstance(selector, str):
        try:
            selector = json.loads(selector)
        except json.JSONDecodeError as e:
            raise ValidationError(f"selector is not valid JSON: {e}", operation="rich_query") from e

    if not isinstance(selector, Mapping) or "selector" not in selector:
        raise ValidationError("selector document must contain 'selector'", operation="rich_query")

    fields = selector["selector"]
    if not isinstance(fields, Mapping) or not fields:
        raise ValidationError("selector must be a non-empty object", operation="rich_query")

    for name, value in fields.items():
        if not isinstance(name, str) or not name:
            raise ValidationError("selector field names must be strings", operation="rich_query")
        if not isinstance(value, SCALAR_TYPES):
            raise ValidationError(
                f"selector field {name!r} must be an equality predicate on a scalar",
                operation="rich_query",
            )

    return dict(fields)


def decode_document(value: Optional[bytes]) -> Optional[dict[str, Any]]:
    """Decode stored bytes as a JSON object; anything else yields None."""
    if not value:
        return None
    try:
        document = json.loads(value)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    return document if isinstance(document, dict) else None


def matches(document: Optional[Mapping[str, Any]], fields: Mapping[str, Any]) -> bool:
    """Check a decoded document against selector predicates."""
    if document is None:
        return False
    for name, expected in fields.items():
        if name not in document:
            return False
        actual = document[name]
        # bool is an int subclass; True must not match 1
        if isinstance(actual, bool) != isinstance(expected, bool):
            return False
        if actual != expected:
            return False
    return True
