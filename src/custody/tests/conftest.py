"""
Pytest configuration and shared fixtures for custody tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest

from custody.config import Settings
from custody.evidence import EvidenceLedger
from custody.ledger import InMemoryLedgerStore, LedgerStore, SQLLedgerStore


class FakeClock:
    """Deterministic clock: returns now, then advances by step."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def set(self, value: datetime) -> None:
        self.now = value


START_TIME = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> FakeClock:
    """Create a clock starting at a fixed instant, one second per call."""
    return FakeClock(START_TIME)


@pytest.fixture
def test_settings() -> Settings:
    """Create settings isolated from the environment."""
    return Settings(_env_file=None, environment="test", ledger_backend="memory")


@pytest.fixture
def memory_store() -> InMemoryLedgerStore:
    """Create an empty in-memory ledger store."""
    return InMemoryLedgerStore()


@pytest.fixture
def sql_store() -> Generator[SQLLedgerStore, None, None]:
    """Create an SQL ledger store on a private in-memory SQLite database."""
    store = SQLLedgerStore("sqlite://")
    yield store
    store.close()


@pytest.fixture(params=["memory", "sql"])
def store(request) -> Generator[LedgerStore, None, None]:
    """Every shipped ledger store, one test run each."""
    if request.param == "memory":
        store = InMemoryLedgerStore()
    else:
        store = SQLLedgerStore("sqlite://")
    yield store
    store.close()


@pytest.fixture
def ledger(store, test_settings, clock) -> EvidenceLedger:
    """Create an evidence ledger over each store."""
    return EvidenceLedger(store, test_settings, clock)


def _evidence_fields(**overrides) -> dict[str, str]:
    fields = {
        "evidence_id": "E1",
        "case_id": "C1",
        "filename": "report.pdf",
        "content_locator_cid": "QmExampleCid",
        "file_hash": "abc123",
        "custody_officer": "alice",
        "access_level": "RESTRICTED",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def evidence_fields():
    """Factory for create_evidence keyword arguments of a typical item."""
    return _evidence_fields


@pytest.fixture
def sample_evidence(ledger):
    """Create evidence E1 in case C1 held by alice."""
    return ledger.create_evidence(**_evidence_fields())
