"""
History and query engine.

Read-only reconstruction of evidence version history and custody chains, and
selector lookups over current evidence state. Nothing here writes.

History order is whatever the store's history feature returns. Both shipped
stores return versions oldest first, in commit order. Query results carry no
ordering guarantee.
"""

import logging
from typing import Any, Mapping, Optional

from custody.config import Settings, settings as default_settings
from custody.evidence.models import CustodyTransfer, Evidence, EvidenceStatus, HistoryEntry
from custody.evidence.validation import require_text, validate_evidence_id
from custody.ledger.base import LedgerTransaction
from custody.ledger.selectors import build_selector

logger = logging.getLogger(__name__)


class HistoryQueryEngine:
    """Reconstructs history and answers lookups over the evidence ledger."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    @property
    def namespace(self) -> str:
        return self.settings.custody_namespace

    def get_evidence_history(self, tx: LedgerTransaction, evidence_id: str) -> list[HistoryEntry]:
        """
        Get every recorded version of an evidence record.

        Deleted versions appear as tombstones (is_delete=True, record=None).

        Raises:
            CorruptRecord: If any version cannot be parsed; no partial history
                is returned
        """
        op = "get_evidence_history"
        evidence_id = validate_evidence_id(evidence_id, op, self.settings.max_field_length)

        entries = []
        for modification in tx.history_of(evidence_id):
            is_delete = modification.is_delete or not modification.value
            record = None
            if not is_delete:
                record = Evidence.from_json_bytes(modification.value, key=evidence_id, operation=op)
            entries.append(
                HistoryEntry(
                    version_id=modification.version_id,
                    timestamp=modification.timestamp,
                    is_delete=is_delete,
                    record=record,
                )
            )

        logger.debug(f"Loaded {len(entries)} history entries for {evidence_id}")

        return entries

    def get_first_version(self, tx: LedgerTransaction, evidence_id: str) -> Optional[Evidence]:
        """
        Get the evidence record as it was first written, or None if never written.

        Creation time and the initial custodian are read from this version;
        later versions carry the time and custodian of the latest change.
        """
        for entry in self.get_evidence_history(tx, evidence_id):
            if entry.record is not None:
                return entry.record
        return None

    def get_custody_chain(self, tx: LedgerTransaction, evidence_id: str) -> list[CustodyTransfer]:
        """Get all custody transfers of an evidence item, oldest first."""
        op = "get_custody_chain"
        evidence_id = validate_evidence_id(evidence_id, op, self.settings.max_field_length)

        return [
            CustodyTransfer.from_json_bytes(value, key=key, operation=op)
            for key, value in tx.range_by_partial_key(self.namespace, [evidence_id])
        ]

    def query_by_case(self, tx: LedgerTransaction, case_id: str) -> list[Evidence]:
        """Get all evidence recorded for a case."""
        case_id = require_text(case_id, "case_id", "query_by_case", self.settings.max_field_length)
        return self._query(tx, build_selector(caseId=case_id), "query_by_case")

    def query_by_custodian(self, tx: LedgerTransaction, officer: str) -> list[Evidence]:
        """Get active evidence currently held by an officer."""
        officer = require_text(officer, "officer", "query_by_custodian", self.settings.max_field_length)
        selector = build_selector(custodyOfficer=officer, status=EvidenceStatus.ACTIVE.value)
        return self._query(tx, selector, "query_by_custodian")

    def _query(
        self,
        tx: LedgerTransaction,
        selector: Mapping[str, Any],
        operation: str,
    ) -> list[Evidence]:
        results = [
            Evidence.from_json_bytes(value, key=key, operation=operation)
            for key, value in tx.rich_query(selector)
        ]
        logger.debug(f"{operation} matched {len(results)} records")
        return results
