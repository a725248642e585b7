"""
Ledger store interface.

The evidence core never talks to a database directly. It receives a
LedgerTransaction, a handle scoped to one atomic unit of work, and reads and
writes through it. Stores implement the committed-state primitives and the
commit check; LedgerTransaction layers pending writes and read-set tracking
on top so every store gets the same isolation contract:

- reads observe the transaction's own pending writes
- nothing is visible to other transactions before commit
- commit fails with ConflictError if any key read by the transaction was
  changed by another commit in the meantime, and then applies nothing
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, Mapping, Optional, Sequence, Union
from uuid import uuid4

from custody.exceptions import StoreError, ValidationError
from custody.ledger.keys import make_composite_key
from custody.ledger.selectors import decode_document, matches, parse_selector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyModification:
    """One historical version of a key."""

    version_id: str  # id of the transaction that wrote this version
    value: Optional[bytes]
    is_delete: bool = False
    timestamp: Optional[datetime] = None


class LedgerTransaction:
    """
    Transaction-scoped handle onto a ledger store.

    Obtain one from ``LedgerStore.transaction()``; it is committed when the
    ``with`` block exits normally and discarded when it raises.
    """

    def __init__(self, store: "LedgerStore", tx_id: str):
        self.store = store
        self.tx_id = tx_id
        self._reads: dict[str, int] = {}
        self._writes: dict[str, Optional[bytes]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_writes(self) -> Mapping[str, Optional[bytes]]:
        return dict(self._writes)

    def current_transaction_id(self) -> str:
        """Identifier of this transaction, used for audit correlation."""
        return self.tx_id

    def get(self, key: str) -> Optional[bytes]:
        """Read a key; None when absent or deleted."""
        self._check_open("get")
        self._check_key(key, "get")
        if key in self._writes:
            return self._writes[key]
        value, version = self.store.load(key)
        self._reads.setdefault(key, version)
        return value

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

    def put(self, key: str, value: bytes) -> None:
        """Stage a write of value under key."""
        self._check_open("put")
        self._check_key(key, "put")
        if not isinstance(value, (bytes, bytearray)) or not value:
            raise ValidationError("value must be non-empty bytes", operation="put", key=key)
        self._writes[key] = bytes(value)

    def delete(self, key: str) -> None:
        """Stage a deletion; history keeps a tombstone for it."""
        self._check_open("delete")
        self._check_key(key, "delete")
        self._writes[key] = None

    def range_by_partial_key(
        self, namespace: str, prefix_parts: Sequence[str]
    ) -> Iterator[tuple[str, bytes]]:
        """
        Iterate records whose composite key starts with the given parts.

        Results come in key order, pending writes included.
        """
        self._check_open("range_by_partial_key")
        prefix = make_composite_key(namespace, prefix_parts)

        results: dict[str, bytes] = {}
        for key, value, version in self.store.scan(prefix):
            self._reads.setdefault(key, version)
            results[key] = value
        for key, value in self._writes.items():
            if not key.startswith(prefix):
                continue
            if value is None:
                results.pop(key, None)
            else:
                results[key] = value

        for key in sorted(results):
            yield key, results[key]

    def rich_query(
        self, selector: Union[str, Mapping[str, Any]]
    ) -> Iterator[tuple[str, bytes]]:
        """Iterate current records matching an equality-AND selector."""
        self._check_open("rich_query")
        fields = parse_selector(selector)

        for key, value in self.store.query(fields):
            if key in self._writes:
                continue
            yield key, value
        for key, value in self._writes.items():
            if value is not None and matches(decode_document(value), fields):
                yield key, value

    def history_of(self, key: str) -> Iterator[KeyModification]:
        """Iterate committed versions of key in the store's history order."""
        self._check_open("history_of")
        self._check_key(key, "history_of")
        yield from self.store.history(key)

    def commit(self) -> None:
        self._check_open("commit")
        self._closed = True
        if not self._writes:
            return
        self.store.apply(self.tx_id, dict(self._reads), dict(self._writes))
        logger.debug(f"Committed transaction {self.tx_id} ({len(self._writes)} writes)")

    def rollback(self) -> None:
        if self._closed:
            return
        self._closed = True
        discarded = len(self._writes)
        self._writes.clear()
        if discarded:
            logger.debug(f"Rolled back transaction {self.tx_id} ({discarded} writes discarded)")

    def _check_open(self, operation: str) -> None:
        if self._closed:
            raise StoreError("transaction is closed", operation=operation)

    @staticmethod
    def _check_key(key: str, operation: str) -> None:
        if not isinstance(key, str) or not key:
            raise ValidationError("key must be a non-empty string", operation=operation)


class LedgerStore(ABC):
    """Versioned key-value store with history and selector queries."""

    @contextmanager
    def transaction(self) -> Iterator[LedgerTransaction]:
        """
        Open a transaction.

        Commits when the block exits normally; any exception discards every
        staged write and propagates unchanged.
        """
        tx = LedgerTransaction(self, self.new_transaction_id())
        try:
            yield tx
        except BaseException:
            tx.rollback()
            raise
        if not tx.closed:
            tx.commit()

    def new_transaction_id(self) -> str:
        return uuid4().hex

    @abstractmethod
    def load(self, key: str) -> tuple[Optional[bytes], int]:
        """Return the committed value (None if absent) and its version (0 if never written)."""

    @abstractmethod
    def scan(self, prefix: str) -> list[tuple[str, bytes, int]]:
        """Return committed (key, value, version) for live keys starting with prefix."""

    @abstractmethod
    def query(self, fields: Mapping[str, Any]) -> list[tuple[str, bytes]]:
        """Return committed (key, value) pairs whose JSON document matches fields."""

    @abstractmethod
    def history(self, key: str) -> list[KeyModification]:
        """Return every committed version of key, oldest first."""

    @abstractmethod
    def apply(
        self,
        tx_id: str,
        reads: Mapping[str, int],
        writes: Mapping[str, Optional[bytes]],
    ) -> None:
        """
        Atomically validate the read set and apply the writes.

        Raises:
            ConflictError: If any read key's version changed since it was read
            StoreError: If the underlying storage fails
        """

    def close(self) -> None:
        """Release store resources."""
