"""
Integrity verification for evidence records.

Verification is diagnostic only: mismatches and broken custody links are
reported to the caller, never corrected or flagged on the ledger.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from custody.clock import Clock, ensure_utc, utc_now
from custody.config import Settings, settings as default_settings
from custody.evidence.hashing import calculate_file_hash, compute_integrity_hash
from custody.evidence.history import HistoryQueryEngine
from custody.evidence.manager import EvidenceRecordManager
from custody.evidence.models import VerificationResult
from custody.exceptions import ValidationError
from custody.ledger.base import LedgerTransaction

logger = logging.getLogger(__name__)


class IntegrityVerifier:
    """Checks supplied content hashes and custody chains against the ledger."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        manager: Optional[EvidenceRecordManager] = None,
        history: Optional[HistoryQueryEngine] = None,
    ):
        self.settings = settings or default_settings
        self.clock = clock or utc_now
        self.manager = manager or EvidenceRecordManager(self.settings, self.clock)
        self.history = history or HistoryQueryEngine(self.settings)

    def verify_integrity(
        self,
        tx: LedgerTransaction,
        evidence_id: str,
        current_file_hash: str,
    ) -> VerificationResult:
        """
        Compare a content hash with the one recorded at creation.

        Args:
            tx: Transaction to read in
            evidence_id: Evidence to verify
            current_file_hash: Hash of the content as it exists now

        Returns:
            VerificationResult; hash_match is exact, case-sensitive equality
        """
        if not isinstance(current_file_hash, str):
            raise ValidationError("current_file_hash must be a string", operation="verify_integrity")

        evidence = self.manager.read_evidence(tx, evidence_id)

        result = VerificationResult(
            evidence_id=evidence.id,
            original_hash=evidence.file_hash,
            current_hash=current_file_hash,
            hash_match=evidence.file_hash == current_file_hash,
            integrity_hash=evidence.integrity_hash,
            integrity_hash_valid=compute_integrity_hash(evidence) == evidence.integrity_hash,
            last_modified=evidence.timestamp,
            custody_officer=evidence.custody_officer,
            verified_at=ensure_utc(self.clock()),
        )

        if not result.hash_match:
            logger.warning(f"Hash mismatch for evidence {evidence.id}")
        if not result.integrity_hash_valid:
            logger.error(f"Stored integrity hash of evidence {evidence.id} does not match its fields")

        return result

    def verify_file(
        self,
        tx: LedgerTransaction,
        evidence_id: str,
        file_path: Union[str, Path],
    ) -> VerificationResult:
        """Hash a local file and verify it against the recorded file hash."""
        return self.verify_integrity(tx, evidence_id, calculate_file_hash(file_path))

    def verify_custody_chain(
        self,
        tx: LedgerTransaction,
        evidence_id: str,
    ) -> tuple[bool, list[str]]:
        """
        Verify a custody chain and return detailed results.

        Checks that the first transfer starts with the custodian recorded at
        creation and every later one with the previous transfer's receiver,
        that timestamps never go backwards, and that the last receiver is the
        record's current custodian.

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        evidence = self.manager.read_evidence(tx, evidence_id)
        chain = self.history.get_custody_chain(tx, evidence.id)

        errors = []
        first = self.history.get_first_version(tx, evidence.id)
        if chain and first is not None and chain[0].from_officer != first.custody_officer:
            errors.append(
                f"Transfer 0: from {chain[0].from_officer!r} but evidence was created "
                f"in custody of {first.custody_officer!r}"
            )

        for i, transfer in enumerate(chain):
            if transfer.evidence_id != evidence.id:
                errors.append(f"Transfer {i}: recorded for {transfer.evidence_id}, expected {evidence.id}")
            if i == 0:
                continue
            previous = chain[i - 1]
            if transfer.from_officer != previous.to_officer:
                errors.append(
                    f"Transfer {i}: from {transfer.from_officer!r} but previous transfer "
                    f"went to {previous.to_officer!r}"
                )
            if transfer.timestamp < previous.timestamp:
                errors.append(f"Transfer {i}: timestamp earlier than transfer {i - 1}")

        if chain and chain[-1].to_officer != evidence.custody_officer:
            errors.append(
                f"Last transfer went to {chain[-1].to_officer!r} but current custodian "
                f"is {evidence.custody_officer!r}"
            )

        for error in errors:
            logger.error(f"Custody chain of {evidence.id}: {error}")

        return len(errors) == 0, errors
