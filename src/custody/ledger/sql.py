"""
SQLAlchemy-backed ledger store.

Persists two tables:
- ledger_state: current value, decoded JSON document and version per key
- ledger_history: every committed version of every key, in commit order

Keys are stored as UTF-8 bytes so ordering and prefix ranges are plain byte
comparisons, independent of database collation. Deleted keys keep their
state row (value NULL) so the version counter survives deletion.
"""

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    LargeBinary,
    String,
    create_engine,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from custody.clock import Clock, ensure_utc, utc_now
from custody.exceptions import ConflictError, StoreError
from custody.ledger.base import KeyModification, LedgerStore
from custody.ledger.selectors import decode_document, matches

logger = logging.getLogger(__name__)

# 0xFF never occurs in UTF-8, so prefix + 0xFF bounds every extension of prefix
_RANGE_END = b"\xff"


class Base(DeclarativeBase):
    """Base class for ledger tables."""

    pass


class LedgerState(Base):
    """Current value of every key ever written."""

    __tablename__ = "ledger_state"

    key: Mapped[bytes] = mapped_column(LargeBinary, primary_key=True)
    value: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    document: Mapped[Optional[dict]] = mapped_column(JSON(none_as_null=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tx_id: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class LedgerHistory(Base):
    """Append-only version log. Rows are never updated or deleted."""

    __tablename__ = "ledger_history"

    sequence_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    tx_id: Mapped[str] = mapped_column(String(64), nullable=False)
    value: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    is_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    committed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_history_key_sequence", "key", "sequence_id"),)


def _encode_key(key: str) -> bytes:
    return key.encode("utf-8")


def _decode_key(key: bytes) -> str:
    return key.decode("utf-8")


def _json_predicate(element, value: Any):
    """Typed comparison of one JSON document field."""
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    return element.as_string() == value


class SQLLedgerStore(LedgerStore):
    """Ledger store persisted through SQLAlchemy (SQLite by default)."""

    def __init__(
        self,
        database_url: str = "sqlite://",
        echo: bool = False,
        clock: Optional[Clock] = None,
        engine: Optional[Engine] = None,
    ):
        self._clock = clock or utc_now
        if engine is None:
            engine = self._create_engine(database_url, echo)
        self.engine = engine
        Base.metadata.create_all(self.engine)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.info(f"SQL ledger store ready on {self.engine.url.render_as_string(hide_password=True)}")

    @staticmethod
    def _create_engine(database_url: str, echo: bool) -> Engine:
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # A private in-memory database must be shared by every session
            return create_engine(
                database_url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_engine(database_url, echo=echo)

    def load(self, key: str) -> tuple[Optional[bytes], int]:
        try:
            with self._session_factory() as session:
                row = session.get(LedgerState, _encode_key(key))
        except SQLAlchemyError as e:
            raise StoreError(f"failed to read ledger state: {e}", operation="get", key=key) from e
        if row is None:
            return None, 0
        return row.value, row.version

    def scan(self, prefix: str) -> list[tuple[str, bytes, int]]:
        lower = _encode_key(prefix)
        stmt = (
            select(LedgerState)
            .where(
                LedgerState.key >= lower,
                LedgerState.key < lower + _RANGE_END,
                LedgerState.value.is_not(None),
            )
            .order_by(LedgerState.key)
        )
        try:
            with self._session_factory() as session:
                rows = session.scalars(stmt).all()
        except SQLAlchemyError as e:
            raise StoreError(
                f"failed to scan ledger state: {e}", operation="range_by_partial_key", key=prefix
            ) from e
        return [(_decode_key(row.key), row.value, row.version) for row in rows]

    def query(self, fields: Mapping[str, Any]) -> list[tuple[str, bytes]]:
        stmt = select(LedgerState.key, LedgerState.value).where(
            LedgerState.document.is_not(None)
        )
        for name, value in fields.items():
            stmt = stmt.where(_json_predicate(LedgerState.document[name], value))
        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as e:
            raise StoreError(f"rich query failed: {e}", operation="rich_query") from e

        # JSON typing differs across databases; confirm exact matches here
        return [
            (_decode_key(key), value)
            for key, value in rows
            if matches(decode_document(value), fields)
        ]

    def history(self, key: str) -> list[KeyModification]:
        stmt = (
            select(LedgerHistory)
            .where(LedgerHistory.key == _encode_key(key))
            .order_by(LedgerHistory.sequence_id)
        )
        try:
            with self._session_factory() as session:
                rows = session.scalars(stmt).all()
        except SQLAlchemyError as e:
            raise StoreError(f"failed to read history: {e}", operation="history_of", key=key) from e
        return [
            KeyModification(
                version_id=row.tx_id,
                value=row.value,
                is_delete=row.is_delete,
                timestamp=ensure_utc(row.committed_at),
            )
            for row in rows
        ]

    def apply(
        self,
        tx_id: str,
        reads: Mapping[str, int],
        writes: Mapping[str, Optional[bytes]],
    ) -> None:
        committed_at = self._clock()
        try:
            with self._session_factory() as session, session.begin():
                for key, version in reads.items():
                    current = session.scalar(
                        select(LedgerState.version)
                        .where(LedgerState.key == _encode_key(key))
                        .with_for_update()
                    ) or 0
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

                for key, value in writes.items():
                    encoded = _encode_key(key)
                    row = session.get(LedgerState, encoded)
                    if row is None:
                        row = LedgerState(key=encoded, version=0)
                        session.add(row)
                    row.version += 1
                    row.value = value
                    row.document = decode_document(value)
                    row.tx_id = tx_id
                    row.updated_at = committed_at

                    session.add(
                        LedgerHistory(
                            key=encoded,
                            tx_id=tx_id,
                            value=value,
                            is_delete=value is None,
                            committed_at=committed_at,
                        )
                    )
        except IntegrityError as e:
            raise ConflictError(
                f"concurrent commit detected: {e}", operation="commit"
            ) from e
        except SQLAlchemyError as e:
            raise StoreError(f"commit failed: {e}", operation="commit") from e

    def close(self) -> None:
        self.engine.dispose()
