"""
Composite key construction for namespaced ledger records.

A composite key is ``NUL + namespace + NUL + part_1 + NUL + ... + part_n + NUL``.
NUL is the lowest code point, so comparing two keys of the same namespace
compares their parts in order: keys sort by ``parts[0]``, then ``parts[1]``,
and so on. A key built from a prefix of the parts is a string prefix of every
key that extends it, which is what partial-key range scans rely on.
"""

from typing import Sequence

from custody.exceptions import ValidationError

COMPOSITE_KEY_DELIMITER = "\x00"


def _check_component(value: str, what: str) -> None:
    if not isinstance(value, str):
        raise ValidationError(f"{what} must be a string", operation="make_composite_key")
    if COMPOSITE_KEY_DELIMITER in value:
        raise ValidationError(
            f"{what} must not contain U+0000", operation="make_composite_key"
        )


def make_composite_key(namespace: str, parts: Sequence[str]) -> str:
    """Build a composite key from a namespace and ordered parts."""
    _check_component(namespace, "namespace")
    if not namespace:
        raise ValidationError("namespace must not be empty", operation="make_composite_key")
    for part in parts:
        _check_component(part, "key part")

    key = COMPOSITE_KEY_DELIMITER + namespace + COMPOSITE_KEY_DELIMITER
    for part in parts:
        key += part + COMPOSITE_KEY_DELIMITER
    return key


def split_composite_key(key: str) -> tuple[str, list[str]]:
    """Split a composite key back into its namespace and parts."""
    if not is_composite_key(key) or not key.endswith(COMPOSITE_KEY_DELIMITER):
        raise ValidationError("not a composite key", operation="split_composite_key", key=key)
    components = key[1:-1].split(COMPOSITE_KEY_DELIMITER)
    return components[0], components[1:]


def is_composite_key(key: str) -> bool:
    """Simple (non-composite) keys never start with the delimiter."""
    return key.startswith(COMPOSITE_KEY_DELIMITER)
