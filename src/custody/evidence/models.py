"""
Evidence ledger records.

Evidence and CustodyTransfer are the two record kinds written to the ledger.
Both are immutable values; a mutation produces a new copy which is then
written as a new version of the same key. Records travel as compact UTF-8
JSON with camelCase keys.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field, PlainSerializer
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from custody.clock import ensure_utc
from custody.exceptions import CorruptRecord


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with microseconds, e.g. 2024-01-02T03:04:05.000006Z."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


LedgerTimestamp = Annotated[
    datetime,
    AfterValidator(ensure_utc),
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]


class EvidenceStatus(str, Enum):
    """Well-known evidence statuses. Any other non-empty string is also valid."""

    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"
    DISPUTED = "DISPUTED"


class LedgerRecord(BaseModel):
    """Base for values stored in or returned from the ledger."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_json_bytes(
        cls,
        raw: bytes,
        key: Optional[str] = None,
        operation: str = "deserialize",
    ):
        """
        Parse a stored record.

        Raises:
            CorruptRecord: If raw is not a JSON object of this record's shape
        """
        try:
            return cls.model_validate_json(raw)
        except PydanticValidationError as e:
            raise CorruptRecord(
                f"stored bytes are not a valid {cls.__name__}: {e}",
                operation=operation,
                key=key,
            ) from e


class Evidence(LedgerRecord):
    """One evidence item as recorded on the ledger."""

    id: str
    case_id: str
    filename: str
    content_locator_cid: str = Field(
        validation_alias=AliasChoices("contentLocatorCid", "ipfsCid", "content_locator_cid"),
        serialization_alias="contentLocatorCid",
    )
    file_hash: str  # hash of the file content, supplied by the caller
    integrity_hash: str = Field(
        validation_alias=AliasChoices("integrityHash", "blockchainHash", "integrity_hash"),
        serialization_alias="integrityHash",
    )
    custody_officer: str
    timestamp: LedgerTimestamp
    status: str
    access_level: str


class CustodyTransfer(LedgerRecord):
    """A single custody change. Written once, never updated."""

    evidence_id: str
    from_officer: str
    to_officer: str
    timestamp: LedgerTimestamp
    reason: str
    transaction_id: str


class VerificationResult(LedgerRecord):
    """Outcome of comparing a supplied content hash with the recorded one."""

    evidence_id: str
    original_hash: str
    current_hash: str
    hash_match: bool
    integrity_hash: str
    integrity_hash_valid: bool
    last_modified: LedgerTimestamp
    custody_officer: str
    verified_at: LedgerTimestamp


class HistoryEntry(LedgerRecord):
    """One historical version of an evidence record."""

    version_id: str
    timestamp: Optional[LedgerTimestamp] = None
    is_delete: bool = False
    record: Optional[Evidence] = None
