"""
Ledger store layer.

The evidence core consumes a versioned key-value store through
LedgerTransaction. Two stores ship with the package:
- InMemoryLedgerStore for tests and embedding
- SQLLedgerStore persisting state and history through SQLAlchemy
"""

from typing import Optional

from custody.clock import Clock
from custody.config import Settings, settings as default_settings
from custody.ledger.base import KeyModification, LedgerStore, LedgerTransaction
from custody.ledger.keys import (
    COMPOSITE_KEY_DELIMITER,
    is_composite_key,
    make_composite_key,
    split_composite_key,
)
from custody.ledger.memory import InMemoryLedgerStore
from custody.ledger.selectors import build_selector
from custody.ledger.sql import SQLLedgerStore


def create_store(settings: Optional[Settings] = None, clock: Optional[Clock] = None) -> LedgerStore:
    """Build the ledger store selected by settings."""
    settings = settings or default_settings
    if settings.ledger_backend == "sql":
        return SQLLedgerStore(
            database_url=settings.database_url,
            echo=settings.database_echo,
            clock=clock,
        )
    return InMemoryLedgerStore(clock=clock)


__all__ = [
    "COMPOSITE_KEY_DELIMITER",
    "InMemoryLedgerStore",
    "KeyModification",
    "LedgerStore",
    "LedgerTransaction",
    "SQLLedgerStore",
    "build_selector",
    "create_store",
    "is_composite_key",
    "make_composite_key",
    "split_composite_key",
]
