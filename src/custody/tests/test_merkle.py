"""
Tests for Merkle trees and case manifests.
"""

import hashlib
import json

import pytest

from custody.evidence import EMPTY_MERKLE_ROOT, generate_proof, merkle_root, verify_proof
from custody.evidence.merkle import (
    MerkleProof,
    MerkleProofNode,
    build_merkle_layers,
    create_leaf_hash,
    leaf_for_evidence,
)
from custody.exceptions import ValidationError


def leaf(n: int) -> str:
    return hashlib.sha256(f"leaf-{n}".encode()).hexdigest()


def pair(left: str, right: str) -> str:
    return hashlib.sha256(bytes.fromhex(left + right)).hexdigest()


class TestLeafHash:
    """Tests for create_leaf_hash."""

    def test_compact_json_array(self):
        """Test the leaf is the digest of the compact JSON field array."""
        expected = hashlib.sha256(
            b'["C1","E1","QmCid","abc123","2024-01-15T10:00:00.000000Z"]'
        ).hexdigest()

        assert create_leaf_hash("C1", "E1", "QmCid", "abc123", "2024-01-15T10:00:00.000000Z") == expected

    def test_non_ascii_kept_verbatim(self):
        """Test non-ASCII text is hashed as UTF-8, not escaped."""
        serialized = json.dumps(["Ärende", "E1", "", "", "t"], separators=(",", ":"), ensure_ascii=False)

        assert create_leaf_hash("Ärende", "E1", "", "", "t") == hashlib.sha256(
            serialized.encode("utf-8")
        ).hexdigest()


class TestMerkleRoot:
    """Tests for merkle_root."""

    def test_empty(self):
        """Test an empty tree has the all-zero root."""
        assert merkle_root([]) == EMPTY_MERKLE_ROOT == "0" * 64

    def test_single_leaf(self):
        """Test a single leaf is its own root."""
        assert merkle_root([leaf(0)]) == leaf(0)

    def test_two_leaves(self):
        """Test parents hash the raw bytes of both children."""
        assert merkle_root([leaf(0), leaf(1)]) == pair(leaf(0), leaf(1))

    def test_odd_leaf_paired_with_itself(self):
        """Test an unpaired node is hashed with itself."""
        expected = pair(pair(leaf(0), leaf(1)), pair(leaf(2), leaf(2)))
        assert merkle_root([leaf(0), leaf(1), leaf(2)]) == expected

    def test_order_matters(self):
        """Test swapping leaves changes the root."""
        assert merkle_root([leaf(0), leaf(1)]) != merkle_root([leaf(1), leaf(0)])

    def test_case_insensitive_input(self):
        """Test uppercase hex leaves give the same root."""
        leaves = [leaf(0), leaf(1), leaf(2)]
        assert merkle_root([x.upper() for x in leaves]) == merkle_root(leaves)

    def test_malformed_leaf(self):
        """Test non-hex leaves are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            merkle_root([leaf(0), "zz" * 32])

        assert exc_info.value.operation == "merkle_root"

    def test_layers(self):
        """Test layer sizes halve, rounding up, until one root remains."""
        layers = build_merkle_layers([leaf(n) for n in range(5)])
        assert [len(layer) for layer in layers] == [5, 3, 2, 1]


class TestProofs:
    """Tests for generate_proof and verify_proof."""

    @pytest.mark.parametrize("size", [1, 2, 3, 4, 5, 8])
    def test_every_leaf_verifies(self, size):
        """Test each leaf's proof rebuilds the root."""
        leaves = [leaf(n) for n in range(size)]
        root = merkle_root(leaves)

        for index, value in enumerate(leaves):
            proof = generate_proof(leaves, index)
            assert proof.leaf == value
            assert proof.root == root
            assert verify_proof(value, proof, root)

    def test_wrong_leaf_fails(self):
        """Test a proof does not verify a different leaf."""
        leaves = [leaf(n) for n in range(4)]
        proof = generate_proof(leaves, 1)

        assert not verify_proof(leaf(9), proof, merkle_root(leaves))

    def test_wrong_root_fails(self):
        """Test a proof does not verify against another root."""
        leaves = [leaf(n) for n in range(4)]
        proof = generate_proof(leaves, 2)

        assert not verify_proof(leaves[2], proof, merkle_root(leaves[:3]))

    def test_sibling_positions(self):
        """Test a right-hand leaf's first sibling sits on the left."""
        proof = generate_proof([leaf(0), leaf(1)], 1)

        assert [(s.position, s.hash) for s in proof.siblings] == [("left", leaf(0))]

    def test_empty_tree(self):
        """Test no proof exists for an empty tree."""
        with pytest.raises(ValidationError):
            generate_proof([], 0)

    @pytest.mark.parametrize("index", [-1, 3])
    def test_index_out_of_bounds(self, index):
        """Test out-of-range indexes are rejected."""
        with pytest.raises(ValidationError):
            generate_proof([leaf(0), leaf(1), leaf(2)], index)

    @pytest.mark.parametrize(
        "bad",
        ["zz" * 32, "ab" * 31, ""],
    )
    def test_malformed_leaf(self, bad):
        """Test a leaf that is not a hex digest is rejected."""
        leaves = [leaf(0), leaf(1)]
        proof = generate_proof(leaves, 0)

        with pytest.raises(ValidationError) as exc_info:
            verify_proof(bad, proof, merkle_root(leaves))

        assert exc_info.value.operation == "verify_proof"

    def test_malformed_sibling(self):
        """Test a proof with a non-hex sibling is rejected."""
        leaves = [leaf(0), leaf(1)]
        proof = MerkleProof(
            leaf=leaf(0),
            siblings=(MerkleProofNode(position="right", hash="g" * 64),),
            root=merkle_root(leaves),
        )

        with pytest.raises(ValidationError) as exc_info:
            verify_proof(leaf(0), proof, merkle_root(leaves))

        assert exc_info.value.operation == "verify_proof"

    def test_unknown_position(self):
        """Test a sibling position other than left or right is rejected."""
        leaves = [leaf(0), leaf(1)]
        proof = MerkleProof(
            leaf=leaf(0),
            siblings=(MerkleProofNode(position="up", hash=leaf(1)),),
            root=merkle_root(leaves),
        )

        with pytest.raises(ValidationError) as exc_info:
            verify_proof(leaf(0), proof, merkle_root(leaves))

        assert exc_info.value.operation == "verify_proof"

    def test_malformed_expected_root(self):
        """Test a non-hex expected root is rejected."""
        leaves = [leaf(0), leaf(1)]

        with pytest.raises(ValidationError):
            verify_proof(leaf(0), generate_proof(leaves, 0), "x" * 64)

    def test_proof_to_dict(self):
        """Test proofs serialize to plain data."""
        data = generate_proof([leaf(0), leaf(1)], 0).to_dict()

        assert data["leaf"] == leaf(0)
        assert data["siblings"] == [{"position": "right", "hash": leaf(1)}]


class TestCaseManifest:
    """Tests for build_case_manifest."""

    def test_manifest(self, ledger, evidence_fields):
        """Test the manifest commits to every item of the case, ordered by id."""
        ledger.create_evidence(**evidence_fields(evidence_id="E2"))
        ledger.create_evidence(**evidence_fields(evidence_id="E1"))
        ledger.create_evidence(**evidence_fields(evidence_id="X1", case_id="C2"))

        manifest = ledger.build_case_manifest("C1")

        assert manifest.case_id == "C1"
        assert manifest.evidence_ids == ["E1", "E2"]
        assert manifest.leaves == [leaf_for_evidence(ledger.read_evidence(i)) for i in ["E1", "E2"]]
        assert manifest.root == merkle_root(manifest.leaves)
        for evidence_id, item_leaf in zip(manifest.evidence_ids, manifest.leaves):
            assert verify_proof(item_leaf, manifest.proofs[evidence_id], manifest.root)

    def test_empty_case(self, ledger):
        """Test a case without evidence has the empty root."""
        manifest = ledger.build_case_manifest("C9")

        assert manifest.root == EMPTY_MERKLE_ROOT
        assert manifest.evidence_ids == []
        assert manifest.proofs == {}

    def test_root_stable_across_custody_and_status(self, ledger, sample_evidence):
        """Test transfers and status changes leave the case root unchanged."""
        before = ledger.build_case_manifest("C1")

        ledger.transfer_custody("E1", "bob", "lab")
        ledger.update_status("E1", "ARCHIVED")

        after = ledger.build_case_manifest("C1")
        assert ledger.read_evidence("E1").timestamp != sample_evidence.timestamp
        assert after.root == before.root
        assert after.leaves == [leaf_for_evidence(sample_evidence)]

    def test_root_changes_when_file_hash_altered(self, ledger, store, sample_evidence):
        """Test rewriting the stored file hash changes the case root."""
        before = ledger.build_case_manifest("C1").root

        with store.transaction() as tx:
            tx.put("E1", sample_evidence.model_copy(update={"file_hash": "forged"}).to_json_bytes())

        assert ledger.build_case_manifest("C1").root != before

    def test_root_changes_when_evidence_added(self, ledger, evidence_fields, sample_evidence):
        """Test a new item in the case changes the root."""
        before = ledger.build_case_manifest("C1").root

        ledger.create_evidence(**evidence_fields(evidence_id="E2"))

        assert ledger.build_case_manifest("C1").root != before

    def test_to_dict(self, ledger, sample_evidence):
        """Test the manifest serializes to plain data."""
        data = ledger.build_case_manifest("C1").to_dict()

        assert data["case_id"] == "C1"
        assert data["evidence_ids"] == ["E1"]
        assert data["root"] == data["leaves"][0]
        assert data["generated_at"].endswith("Z")


class TestVerifyCaseManifest:
    """Tests for verify_case_manifest."""

    def test_valid_after_transfer(self, ledger, sample_evidence):
        """Test a published root still verifies after custody moves."""
        manifest = ledger.build_case_manifest("C1")
        ledger.transfer_custody("E1", "bob", "lab")

        is_valid, errors = ledger.verify_case_manifest("C1", manifest.root)

        assert is_valid
        assert errors == []

    def test_uppercase_root_accepted(self, ledger, sample_evidence):
        """Test the expected root is compared case-insensitively."""
        root = ledger.build_case_manifest("C1").root

        assert ledger.verify_case_manifest("C1", root.upper()) == (True, [])

    def test_altered_item_named(self, ledger, store, evidence_fields, sample_evidence):
        """Test an altered file hash fails the root and names the item."""
        ledger.create_evidence(**evidence_fields(evidence_id="E2"))
        manifest = ledger.build_case_manifest("C1")
        published = dict(zip(manifest.evidence_ids, manifest.leaves))

        with store.transaction() as tx:
            tx.put("E1", sample_evidence.model_copy(update={"file_hash": "forged"}).to_json_bytes())

        is_valid, errors = ledger.verify_case_manifest("C1", manifest.root, published)

        assert not is_valid
        assert len(errors) == 2
        assert "does not match" in errors[0]
        assert errors[1] == "Evidence E1: leaf changed since publication"

    def test_added_item_named(self, ledger, evidence_fields, sample_evidence):
        """Test evidence added after publication is reported."""
        manifest = ledger.build_case_manifest("C1")
        published = dict(zip(manifest.evidence_ids, manifest.leaves))
        ledger.create_evidence(**evidence_fields(evidence_id="E2"))

        is_valid, errors = ledger.verify_case_manifest("C1", manifest.root, published)

        assert not is_valid
        assert errors[-1] == "Evidence E2: not in the published manifest"

    def test_missing_item_named(self, ledger, sample_evidence):
        """Test a published item no longer in the case is reported."""
        manifest = ledger.build_case_manifest("C1")
        published = dict(zip(manifest.evidence_ids, manifest.leaves))
        published["E0"] = leaf(0)

        is_valid, errors = ledger.verify_case_manifest("C1", manifest.root, published)

        assert not is_valid
        assert errors == ["Evidence E0: missing from case C1"]

    def test_empty_case(self, ledger):
        """Test a case without evidence matches the empty root."""
        assert ledger.verify_case_manifest("C9", EMPTY_MERKLE_ROOT) == (True, [])

    def test_malformed_root(self, ledger, sample_evidence):
        """Test a root that is not a hex digest is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            ledger.verify_case_manifest("C1", "not-a-root")

        assert exc_info.value.operation == "verify_case_manifest"
