"""
Evidence integrity and chain-of-custody core.

Handles:
- Evidence registration with a deterministic integrity hash
- Custody transfers as an append-only, time-ordered chain
- Verification of content hashes and custody chains
- Version history, custody chain and selector lookups
- Merkle manifests over the evidence of a case
"""

from custody.evidence.hashing import (
    calculate_file_hash,
    canonical_timestamp,
    compute_integrity_hash,
    hash_bytes,
)
from custody.evidence.history import HistoryQueryEngine
from custody.evidence.ledger import EvidenceLedger
from custody.evidence.manager import DEFAULT_SEED_EVIDENCE, EvidenceRecordManager
from custody.evidence.merkle import (
    EMPTY_MERKLE_ROOT,
    CaseManifest,
    MerkleProof,
    build_case_manifest,
    generate_proof,
    merkle_root,
    verify_case_manifest,
    verify_proof,
)
from custody.evidence.models import (
    CustodyTransfer,
    Evidence,
    EvidenceStatus,
    HistoryEntry,
    VerificationResult,
)
from custody.evidence.transfer import CustodyTransferRecorder
from custody.evidence.verifier import IntegrityVerifier

__all__ = [
    "CaseManifest",
    "CustodyTransfer",
    "CustodyTransferRecorder",
    "DEFAULT_SEED_EVIDENCE",
    "EMPTY_MERKLE_ROOT",
    "Evidence",
    "EvidenceLedger",
    "EvidenceRecordManager",
    "EvidenceStatus",
    "HistoryEntry",
    "HistoryQueryEngine",
    "IntegrityVerifier",
    "MerkleProof",
    "VerificationResult",
    "build_case_manifest",
    "calculate_file_hash",
    "canonical_timestamp",
    "compute_integrity_hash",
    "generate_proof",
    "hash_bytes",
    "merkle_root",
    "verify_case_manifest",
    "verify_proof",
]
