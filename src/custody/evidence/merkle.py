"""
Merkle manifests over the evidence of a case.

Each evidence record contributes one leaf; the root commits to the whole set
so a single value can be published or compared, and a short proof shows that
one item belongs to it.

Leaf:   sha256 of the compact JSON array
        [caseId, evidenceId, contentLocatorCid, fileHash, createdAt]
        where createdAt is the timestamp of the first recorded version, so
        custody transfers and status changes leave the leaf unchanged
Parent: sha256 over the raw bytes of left || right (hex-decoded)
A node without a sibling is paired with itself. An empty tree has a root of
64 zeros.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from custody.clock import Clock, utc_now
from custody.evidence.history import HistoryQueryEngine
from custody.evidence.models import Evidence, format_timestamp
from custody.exceptions import ValidationError
from custody.ledger.base import LedgerTransaction

logger = logging.getLogger(__name__)

EMPTY_MERKLE_ROOT = "0" * 64

HASH_HEX_LENGTH = 64


@dataclass(frozen=True)
class MerkleProofNode:
    """Sibling hash on the path from a leaf to the root."""

    position: str  # "left" or "right" of the running hash
    hash: str

    def to_dict(self) -> dict[str, str]:
        return {"position": self.position, "hash": self.hash}


@dataclass(frozen=True)
class MerkleProof:
    """Proof that a leaf is part of a tree with the given root."""

    leaf: str
    siblings: tuple[MerkleProofNode, ...]
    root: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "leaf": self.leaf,
            "siblings": [s.to_dict() for s in self.siblings],
            "root": self.root,
        }


@dataclass
class CaseManifest:
    """Merkle root over a case's evidence, with a proof per item."""

    case_id: str
    root: str
    evidence_ids: list[str] = field(default_factory=list)
    leaves: list[str] = field(default_factory=list)
    proofs: dict[str, MerkleProof] = field(default_factory=dict)
    generated_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "case_id": self.case_id,
            "root": self.root,
            "evidence_ids": self.evidence_ids,
            "leaves": self.leaves,
            "proofs": {k: v.to_dict() for k, v in self.proofs.items()},
            "generated_at": format_timestamp(self.generated_at) if self.generated_at else None,
        }


def _normalize(value: Any, what: str, operation: str) -> str:
    """Lowercase a SHA-256 hex digest, rejecting anything else."""
    if not isinstance(value, str) or len(value) != HASH_HEX_LENGTH:
        raise ValidationError(
            f"{what} must be a {HASH_HEX_LENGTH}-character hex digest", operation=operation
        )
    value = value.lower()
    try:
        bytes.fromhex(value)
    except ValueError as e:
        raise ValidationError(f"{what} is not hexadecimal: {value!r}", operation=operation) from e
    return value


def _hash_pair(left: str, right: str) -> str:
    # Both sides are already normalized digests
    return hashlib.sha256(bytes.fromhex(left + right)).hexdigest()


def create_leaf_hash(
    case_id: str,
    evidence_id: str,
    content_locator_cid: str,
    file_hash: str,
    timestamp: str,
) -> str:
    """Hash the identifying fields of one evidence item into a leaf."""
    serialized = json.dumps(
        [case_id, evidence_id, content_locator_cid, file_hash, timestamp],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def leaf_for_evidence(evidence: Evidence, created_at: Optional[datetime] = None) -> str:
    """Leaf of one evidence item; created_at defaults to the record's own timestamp."""
    return create_leaf_hash(
        evidence.case_id,
        evidence.id,
        evidence.content_locator_cid,
        evidence.file_hash,
        format_timestamp(created_at or evidence.timestamp),
    )


def build_merkle_layers(leaves: list[str], operation: str = "merkle_root") -> list[list[str]]:
    """Build every tree layer from the leaves up to the single root."""
    if not leaves:
        return []

    layers = [[_normalize(leaf, "leaf", operation) for leaf in leaves]]
    while len(layers[-1]) > 1:
        current = layers[-1]
        layers.append(
            [
                _hash_pair(current[i], current[i + 1] if i + 1 < len(current) else current[i])
                for i in range(0, len(current), 2)
            ]
        )
    return layers


def merkle_root(leaves: list[str]) -> str:
    layers = build_merkle_layers(leaves)
    if not layers:
        return EMPTY_MERKLE_ROOT
    return layers[-1][0]


def generate_proof(leaves: list[str], index: int) -> MerkleProof:
    """
    Generate the proof for the leaf at index.

    Raises:
        ValidationError: If the tree is empty or index is out of bounds
    """
    if not leaves:
        raise ValidationError("cannot generate a proof from an empty tree", operation="generate_proof")
    if index < 0 or index >= len(leaves):
        raise ValidationError(
            f"index {index} is out of bounds for a tree with {len(leaves)} leaves",
            operation="generate_proof",
        )

    layers = build_merkle_layers(leaves, operation="generate_proof")
    leaf = layers[0][index]
    siblings = []
    for layer in layers[:-1]:
        is_right = index % 2 == 1
        sibling_index = index - 1 if is_right else index + 1
        sibling = layer[sibling_index] if sibling_index < len(layer) else layer[index]
        siblings.append(MerkleProofNode(position="left" if is_right else "right", hash=sibling))
        index //= 2

    return MerkleProof(leaf=leaf, siblings=tuple(siblings), root=layers[-1][0])


def verify_proof(leaf: str, proof: MerkleProof, expected_root: str) -> bool:
    """
    Rebuild the root from a leaf and its proof and compare.

    Raises:
        ValidationError: If a hash is not a hex digest or a sibling position
            is neither "left" nor "right"
    """
    op = "verify_proof"
    computed = _normalize(leaf, "leaf", op)
    for node in proof.siblings:
        sibling = _normalize(node.hash, "sibling hash", op)
        if node.position == "left":
            computed = _hash_pair(sibling, computed)
        elif node.position == "right":
            computed = _hash_pair(computed, sibling)
        else:
            raise ValidationError(f"unknown sibling position {node.position!r}", operation=op)
    expected = _normalize(expected_root, "expected root", op)
    return computed == expected and computed == _normalize(proof.root, "proof root", op)


def _creation_leaves(
    tx: LedgerTransaction,
    evidence: list[Evidence],
    history: HistoryQueryEngine,
) -> list[str]:
    leaves = []
    for item in evidence:
        first = history.get_first_version(tx, item.id)
        leaves.append(leaf_for_evidence(item, first.timestamp if first else None))
    return leaves


def build_case_manifest(
    tx: LedgerTransaction,
    case_id: str,
    history: Optional[HistoryQueryEngine] = None,
    clock: Optional[Clock] = None,
) -> CaseManifest:
    """
    Build the Merkle manifest of a case, items ordered by evidence id.

    Leaves bind each item's current content fields to its creation time, so
    the root only changes when evidence is added, removed or altered.
    """
    history = history or HistoryQueryEngine()
    evidence = sorted(history.query_by_case(tx, case_id), key=lambda e: e.id)

    leaves = _creation_leaves(tx, evidence, history)
    manifest = CaseManifest(
        case_id=case_id,
        root=merkle_root(leaves),
        evidence_ids=[e.id for e in evidence],
        leaves=leaves,
        proofs={e.id: generate_proof(leaves, i) for i, e in enumerate(evidence)},
        generated_at=(clock or utc_now)(),
    )

    logger.info(f"Built manifest for case {case_id}: {len(leaves)} items, root {manifest.root[:12]}")

    return manifest


def verify_case_manifest(
    tx: LedgerTransaction,
    case_id: str,
    expected_root: str,
    expected_leaves: Optional[Mapping[str, str]] = None,
    history: Optional[HistoryQueryEngine] = None,
) -> tuple[bool, list[str]]:
    """
    Check a previously published case root against the ledger as it is now.

    Args:
        tx: Transaction to read in
        case_id: Case the root was published for
        expected_root: Published root
        expected_leaves: Optional published leaves by evidence id; when given,
            items that were added, removed or altered are named in the errors

    Returns:
        Tuple of (is_valid, list of error messages)

    Raises:
        ValidationError: If expected_root or an expected leaf is not a hex digest
    """
    op = "verify_case_manifest"
    expected_root = _normalize(expected_root, "expected root", op)
    history = history or HistoryQueryEngine()
    evidence = sorted(history.query_by_case(tx, case_id), key=lambda e: e.id)
    leaves = _creation_leaves(tx, evidence, history)
    root = merkle_root(leaves)

    errors = []
    if root != expected_root:
        errors.append(f"Case {case_id}: root {root} does not match expected {expected_root}")

    if expected_leaves is not None:
        current = {e.id: leaf for e, leaf in zip(evidence, leaves)}
        for evidence_id in sorted(set(expected_leaves) | set(current)):
            if evidence_id not in current:
                errors.append(f"Evidence {evidence_id}: missing from case {case_id}")
            elif evidence_id not in expected_leaves:
                errors.append(f"Evidence {evidence_id}: not in the published manifest")
            elif current[evidence_id] != _normalize(expected_leaves[evidence_id], "expected leaf", op):
                errors.append(f"Evidence {evidence_id}: leaf changed since publication")

    for error in errors:
        logger.error(f"Manifest check failed: {error}")

    return len(errors) == 0, errors
