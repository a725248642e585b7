"""
Custody transfer recording.

A transfer writes two records in the caller's transaction: an immutable
CustodyTransfer under a composite key, and a new version of the evidence
record naming the new custodian. The store commits both or neither.

Transfer keys are ``(namespace, evidence_id, timestamp, sequence)``. The
timestamp part is fixed width, so key order is time order; the sequence part
separates transfers recorded within the same clock tick.
"""

import logging
from datetime import datetime
from typing import Optional

from custody.clock import Clock, ensure_utc, utc_now
from custody.config import Settings, settings as default_settings
from custody.evidence.hashing import with_integrity_hash
from custody.evidence.manager import EvidenceRecordManager, advance_timestamp
from custody.evidence.models import CustodyTransfer
from custody.evidence.validation import optional_text, require_text
from custody.ledger.base import LedgerTransaction
from custody.ledger.keys import make_composite_key

logger = logging.getLogger(__name__)

KEY_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S.%fZ"
SEQUENCE_WIDTH = 6


def key_timestamp(value: datetime) -> str:
    """Fixed-width, lexicographically sortable rendering of a timestamp."""
    return ensure_utc(value).strftime(KEY_TIMESTAMP_FORMAT)


class CustodyTransferRecorder:
    """Appends custody transfers and moves custody on the evidence record."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        manager: Optional[EvidenceRecordManager] = None,
    ):
        self.settings = settings or default_settings
        self.clock = clock or utc_now
        self.manager = manager or EvidenceRecordManager(self.settings, self.clock)

    @property
    def namespace(self) -> str:
        return self.settings.custody_namespace

    def transfer_custody(
        self,
        tx: LedgerTransaction,
        evidence_id: str,
        new_officer: str,
        reason: str,
    ) -> CustodyTransfer:
        """
        Transfer custody of an evidence item.

        Args:
            tx: Transaction to write in
            evidence_id: Evidence changing hands
            new_officer: Receiving custodian
            reason: Free-text reason for the transfer

        Returns:
            The recorded CustodyTransfer

        Raises:
            NotFound: If the evidence does not exist
            ValidationError: If new_officer is blank
        """
        op = "transfer_custody"
        max_len = self.settings.max_field_length
        new_officer = require_text(new_officer, "new_officer", op, max_len)
        reason = optional_text(reason, "reason", op, max_len)

        evidence = self.manager.read_evidence(tx, evidence_id)
        timestamp = advance_timestamp(self.clock, evidence.timestamp)

        transfer = CustodyTransfer(
            evidence_id=evidence.id,
            from_officer=evidence.custody_officer,
            to_officer=new_officer,
            timestamp=timestamp,
            reason=reason,
            transaction_id=tx.current_transaction_id(),
        )
        tx.put(self.next_transfer_key(tx, evidence.id, timestamp), transfer.to_json_bytes())

        updated = with_integrity_hash(
            evidence.model_copy(
                update={"custody_officer": new_officer, "timestamp": timestamp}
            )
        )
        tx.put(updated.id, updated.to_json_bytes())

        logger.info(
            f"Custody of {evidence.id} transferred: "
            f"{transfer.from_officer} -> {transfer.to_officer} (tx {transfer.transaction_id})"
        )

        return transfer

    def next_transfer_key(
        self,
        tx: LedgerTransaction,
        evidence_id: str,
        timestamp: datetime,
    ) -> str:
        """Build the first unused transfer key for evidence_id at timestamp."""
        stamp = key_timestamp(timestamp)
        taken = sum(1 for _ in tx.range_by_partial_key(self.namespace, [evidence_id, stamp]))
        return make_composite_key(
            self.namespace, [evidence_id, stamp, str(taken).zfill(SEQUENCE_WIDTH)]
        )
