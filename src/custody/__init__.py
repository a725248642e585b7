"""
Custody - Evidence Integrity and Chain-of-Custody Ledger

A tamper-evident record keeper for investigative organizations that:
- Registers evidence items with a deterministic integrity hash
- Records custody transfers as an append-only, time-ordered chain
- Verifies supplied content hashes against the recorded originals
- Reconstructs the full version history of every evidence record
"""

__version__ = "0.1.0"
