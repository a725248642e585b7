"""
Evidence ledger facade.

Binds the evidence components to a ledger store and runs every operation in
its own store transaction: committed when the operation returns, discarded
when it raises. Callers that need several operations in one atomic unit use
the components directly with a transaction from ``store.transaction()``.
"""

from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from custody.clock import Clock, utc_now
from custody.config import Settings, settings as default_settings
from custody.evidence.history import HistoryQueryEngine
from custody.evidence.manager import EvidenceRecordManager
from custody.evidence.merkle import CaseManifest, build_case_manifest, verify_case_manifest
from custody.evidence.models import (
    CustodyTransfer,
    Evidence,
    HistoryEntry,
    VerificationResult,
)
from custody.evidence.transfer import CustodyTransferRecorder
from custody.evidence.verifier import IntegrityVerifier
from custody.ledger.base import LedgerStore


class EvidenceLedger:
    """All evidence operations against one ledger store."""

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.clock = clock or utc_now

        self.manager = EvidenceRecordManager(self.settings, self.clock)
        self.history = HistoryQueryEngine(self.settings)
        self.recorder = CustodyTransferRecorder(self.settings, self.clock, self.manager)
        self.verifier = IntegrityVerifier(self.settings, self.clock, self.manager, self.history)

    # Evidence records

    def create_evidence(
        self,
        evidence_id: str,
        case_id: str,
        filename: str,
        content_locator_cid: str,
        file_hash: str,
        custody_officer: str,
        access_level: str,
    ) -> Evidence:
        with self.store.transaction() as tx:
            return self.manager.create_evidence(
                tx,
                evidence_id=evidence_id,
                case_id=case_id,
                filename=filename,
                content_locator_cid=content_locator_cid,
                file_hash=file_hash,
                custody_officer=custody_officer,
                access_level=access_level,
            )

    def read_evidence(self, evidence_id: str) -> Evidence:
        with self.store.transaction() as tx:
            return self.manager.read_evidence(tx, evidence_id)

    def update_status(self, evidence_id: str, new_status: str) -> Evidence:
        with self.store.transaction() as tx:
            return self.manager.update_status(tx, evidence_id, new_status)

    def exists(self, evidence_id: str) -> bool:
        with self.store.transaction() as tx:
            return self.manager.exists(tx, evidence_id)

    def init_ledger(self, records: Optional[Iterable[Mapping[str, Any]]] = None) -> list[Evidence]:
        with self.store.transaction() as tx:
            return self.manager.init_ledger(tx, records)

    # Custody

    def transfer_custody(self, evidence_id: str, new_officer: str, reason: str) -> CustodyTransfer:
        with self.store.transaction() as tx:
            return self.recorder.transfer_custody(tx, evidence_id, new_officer, reason)

    # Verification

    def verify_integrity(self, evidence_id: str, current_file_hash: str) -> VerificationResult:
        with self.store.transaction() as tx:
            return self.verifier.verify_integrity(tx, evidence_id, current_file_hash)

    def verify_file(self, evidence_id: str, file_path: Union[str, Path]) -> VerificationResult:
        with self.store.transaction() as tx:
            return self.verifier.verify_file(tx, evidence_id, file_path)

    def verify_custody_chain(self, evidence_id: str) -> tuple[bool, list[str]]:
        with self.store.transaction() as tx:
            return self.verifier.verify_custody_chain(tx, evidence_id)

    # History and queries

    def get_evidence_history(self, evidence_id: str) -> list[HistoryEntry]:
        with self.store.transaction() as tx:
            return self.history.get_evidence_history(tx, evidence_id)

    def get_custody_chain(self, evidence_id: str) -> list[CustodyTransfer]:
        with self.store.transaction() as tx:
            return self.history.get_custody_chain(tx, evidence_id)

    def query_by_case(self, case_id: str) -> list[Evidence]:
        with self.store.transaction() as tx:
            return self.history.query_by_case(tx, case_id)

    def query_by_custodian(self, officer: str) -> list[Evidence]:
        with self.store.transaction() as tx:
            return self.history.query_by_custodian(tx, officer)

    def build_case_manifest(self, case_id: str) -> CaseManifest:
        with self.store.transaction() as tx:
            return build_case_manifest(tx, case_id, self.history, self.clock)

    def verify_case_manifest(
        self,
        case_id: str,
        expected_root: str,
        expected_leaves: Optional[Mapping[str, str]] = None,
    ) -> tuple[bool, list[str]]:
        with self.store.transaction() as tx:
            return verify_case_manifest(tx, case_id, expected_root, expected_leaves, self.history)
