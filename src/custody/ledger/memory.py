"""
In-memory ledger store.

Keeps current state, a per-key version counter and the full per-key history
in process memory. Suitable for tests, demos and embedding; nothing survives
the process.
"""

import logging
import threading
from typing import Any, Mapping, Optional

from custody.clock import Clock, utc_now
from custody.exceptions import ConflictError
from custody.ledger.base import KeyModification, LedgerStore
from custody.ledger.selectors import decode_document, matches

logger = logging.getLogger(__name__)


class InMemoryLedgerStore(LedgerStore):
    """Ledger store backed by dictionaries, with optimistic concurrency."""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or utc_now
        self._lock = threading.Lock()
        self._state: dict[str, bytes] = {}
        self._versions: dict[str, int] = {}
        self._history: dict[str, list[KeyModification]] = {}

    def load(self, key: str) -> tuple[Optional[bytes], int]:
        with self._lock:
            return self._state.get(key), self._versions.get(key, 0)

    def scan(self, prefix: str) -> list[tuple[str, bytes, int]]:
        with self._lock:
            return [
                (key, self._state[key], self._versions[key])
                for key in sorted(self._state)
                if key.startswith(prefix)
            ]

    def query(self, fields: Mapping[str, Any]) -> list[tuple[str, bytes]]:
        with self._lock:
            return [
                (key, value)
                for key, value in self._state.items()
                if matches(decode_document(value), fields)
            ]

    def history(self, key: str) -> list[KeyModification]:
        with self._lock:
            return list(self._history.get(key, []))

    def apply(
        self,
        tx_id: str,
        reads: Mapping[str, int],
        writes: Mapping[str, Optional[bytes]],
    ) -> None:
        with self._lock:
            for key, version in reads.items():
                current = self._versions.get(key, 0)
                if current != version:
                    logger.warning(
                        f"Transaction {tx_id} conflicts on {key!r}: "
                        f"read version {version}, now {current}"
                    )
                    raise ConflictError(
                        "read-write conflict: key changed since it was read",
                        operation="commit",
                        key=key,
                    )

            committed_at = self._clock()
            for key, value in writes.items():
                self._versions[key] = self._versions.get(key, 0) + 1
                if value is None:
                    self._state.pop(key, None)
                else:
                    self._state[key] = value
                self._history.setdefault(key, []).append(
                    KeyModification(
                        version_id=tx_id,
                        value=value,
                        is_delete=value is None,
                        timestamp=committed_at,
                    )
                )
