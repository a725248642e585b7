"""
Evidence record management.

Creates, reads and updates evidence records on the ledger. The manager holds
no ledger state of its own; every operation receives the transaction it runs
in, and the integrity hash is recomputed on every write.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from custody.clock import Clock, ensure_utc, utc_now
from custody.config import Settings, settings as default_settings
from custody.evidence.hashing import with_integrity_hash
from custody.evidence.models import Evidence, EvidenceStatus
from custody.evidence.validation import optional_text, require_text, validate_evidence_id
from custody.exceptions import AlreadyExists, NotFound
from custody.ledger.base import LedgerTransaction

logger = logging.getLogger(__name__)


# Base set of evidence written by init_ledger
DEFAULT_SEED_EVIDENCE: tuple[dict[str, str], ...] = (
    {
        "evidence_id": "evidence1",
        "case_id": "case1",
        "filename": "initial_evidence.pdf",
        "content_locator_cid": "QmTestCID123",
        "file_hash": "sha256_hash_placeholder",
        "custody_officer": "officer.doe@police.gov",
        "access_level": "RESTRICTED",
    },
)


def advance_timestamp(clock: Clock, previous: datetime) -> datetime:
    """Current time, but never earlier than the previous version's timestamp."""
    return max(ensure_utc(clock()), ensure_utc(previous))


class EvidenceRecordManager:
    """
    Creates and maintains evidence records.

    Evidence ids are ledger keys: an id is written once by create_evidence and
    every later mutation writes a new version under the same key.
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Optional[Clock] = None):
        self.settings = settings or default_settings
        self.clock = clock or utc_now

    def create_evidence(
        self,
        tx: LedgerTransaction,
        evidence_id: str,
        case_id: str,
        filename: str,
        content_locator_cid: str,
        file_hash: str,
        custody_officer: str,
        access_level: str,
    ) -> Evidence:
        """
        Register a new evidence item.

        Args:
            tx: Transaction to write in
            evidence_id: Globally unique, immutable evidence id
            case_id: Case the evidence belongs to
            filename: Original file name
            content_locator_cid: Content-addressed storage pointer
            file_hash: Hash of the file content, as computed by the caller
            custody_officer: Initial custodian
            access_level: Classification tag

        Returns:
            The stored Evidence record (status ACTIVE)

        Raises:
            AlreadyExists: If evidence_id is already recorded
            ValidationError: If a required field is blank
        """
        op = "create_evidence"
        max_len = self.settings.max_field_length

        evidence_id = validate_evidence_id(evidence_id, op, max_len)
        case_id = require_text(case_id, "case_id", op, max_len)
        custody_officer = require_text(custody_officer, "custody_officer", op, max_len)

        if self.exists(tx, evidence_id):
            raise AlreadyExists(
                f"evidence {evidence_id} already exists", operation=op, key=evidence_id
            )

        evidence = with_integrity_hash(
            Evidence(
                id=evidence_id,
                case_id=case_id,
                filename=optional_text(filename, "filename", op, max_len),
                content_locator_cid=optional_text(
                    content_locator_cid, "content_locator_cid", op, max_len
                ),
                file_hash=optional_text(file_hash, "file_hash", op, max_len),
                integrity_hash="",
                custody_officer=custody_officer,
                timestamp=ensure_utc(self.clock()),
                status=EvidenceStatus.ACTIVE.value,
                access_level=optional_text(access_level, "access_level", op, max_len),
            )
        )

        tx.put(evidence_id, evidence.to_json_bytes())

        logger.info(f"Created evidence {evidence_id} in case {case_id} (custodian {custody_officer})")

        return evidence

    def read_evidence(self, tx: LedgerTransaction, evidence_id: str) -> Evidence:
        """
        Read the current version of an evidence record.

        Raises:
            NotFound: If the evidence does not exist
            CorruptRecord: If the stored bytes are not a valid record
        """
        op = "read_evidence"
        evidence_id = validate_evidence_id(evidence_id, op, self.settings.max_field_length)

        raw = tx.get(evidence_id)
        if raw is None:
            raise NotFound(f"evidence {evidence_id} does not exist", operation=op, key=evidence_id)

        return Evidence.from_json_bytes(raw, key=evidence_id, operation=op)

    def update_status(
        self,
        tx: LedgerTransaction,
        evidence_id: str,
        new_status: str,
    ) -> Evidence:
        """
        Change the status of an evidence record.

        Any status may follow any other; transition policy belongs to callers.
        """
        new_status = require_text(
            new_status, "new_status", "update_status", self.settings.max_field_length
        )

        evidence = self.read_evidence(tx, evidence_id)
        old_status = evidence.status

        updated = with_integrity_hash(
            evidence.model_copy(
                update={
                    "status": new_status,
                    "timestamp": advance_timestamp(self.clock, evidence.timestamp),
                }
            )
        )
        tx.put(updated.id, updated.to_json_bytes())

        logger.info(f"Evidence {updated.id} status: {old_status} -> {new_status}")

        return updated

    def exists(self, tx: LedgerTransaction, evidence_id: str) -> bool:
        """Check whether an evidence id is recorded."""
        evidence_id = validate_evidence_id(
            evidence_id, "exists", self.settings.max_field_length
        )
        return tx.exists(evidence_id)

    def init_ledger(
        self,
        tx: LedgerTransaction,
        records: Optional[Iterable[Mapping[str, Any]]] = None,
    ) -> list[Evidence]:
        """
        Seed the ledger with a base set of evidence.

        Ids that are already recorded are skipped, never overwritten.

        Args:
            tx: Transaction to write in
            records: create_evidence keyword arguments per record;
                defaults to DEFAULT_SEED_EVIDENCE

        Returns:
            The records that were created
        """
        created = []
        for record in DEFAULT_SEED_EVIDENCE if records is None else records:
            if self.exists(tx, record["evidence_id"]):
                logger.debug(f"Seed evidence {record['evidence_id']} already present, skipping")
                continue
            created.append(self.create_evidence(tx, **record))

        logger.info(f"Initialized ledger with {len(created)} evidence records")

        return created
