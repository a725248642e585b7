"""
Integrity hashing for evidence records.

The integrity hash binds an evidence record's identity and content fields.
Its input is fixed so that digests written by earlier deployments remain
reproducible byte for byte:

    sha256(id + caseId + contentLocatorCid + fileHash + custodyOfficer
           + timestamp as YYYY-MM-DDTHH:MM:SSZ)

Fields are concatenated without separators. The timestamp is taken in UTC at
second precision. status, accessLevel and filename are not part of the digest.
"""

import hashlib
from datetime import datetime
from pathlib import Path
from typing import Union

from custody.clock import ensure_utc
from custody.evidence.models import Evidence

HASH_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

CHUNK_SIZE = 8192


def canonical_timestamp(value: datetime) -> str:
    """Render a timestamp the way it enters the integrity hash."""
    return ensure_utc(value).strftime(HASH_TIMESTAMP_FORMAT)


def compute_integrity_hash(evidence: Evidence) -> str:
    """Calculate the integrity hash for an evidence snapshot."""
    data = "".join(
        (
            evidence.id,
            evidence.case_id,
            evidence.content_locator_cid,
            evidence.file_hash,
            evidence.custody_officer,
            canonical_timestamp(evidence.timestamp),
        )
    )
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def with_integrity_hash(evidence: Evidence) -> Evidence:
    """Return a copy of evidence carrying its recomputed integrity hash."""
    return evidence.model_copy(update={"integrity_hash": compute_integrity_hash(evidence)})


def hash_bytes(content: bytes) -> str:
    """SHA-256 hex digest of raw content."""
    return hashlib.sha256(content).hexdigest()


def calculate_file_hash(file_path: Union[str, Path]) -> str:
    """Calculate SHA-256 hash of a file."""
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            sha256.update(chunk)
    return sha256.hexdigest()
