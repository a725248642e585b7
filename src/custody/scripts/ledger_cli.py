#!/usr/bin/env python3
"""
Evidence ledger command-line tool.

Runs evidence operations against a SQL ledger and prints results as JSON.
The database is taken from --database-url, else from CUSTODY_DATABASE_URL,
else ./custody_ledger.db in the working directory, so state persists across
invocations.

Usage:
    python -m custody.scripts.ledger_cli init
    python -m custody.scripts.ledger_cli create E1 case1 report.pdf QmCid abc123 alice RESTRICTED
    python -m custody.scripts.ledger_cli transfer E1 bob "reassignment"
    python -m custody.scripts.ledger_cli verify E1 abc123
    python -m custody.scripts.ledger_cli verify E1 --file ./report.pdf
    python -m custody.scripts.ledger_cli chain E1
    python -m custody.scripts.ledger_cli verify-manifest case1 <root>
"""

import argparse
import json
import logging
import sys
from typing import Any, Optional, Sequence

from custody.config import Settings
from custody.evidence import EvidenceLedger
from custody.exceptions import CustodyError
from custody.ledger import create_store
from custody.logging_config import configure_logging

logger = logging.getLogger(__name__)


def _emit(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="custody-ledger",
        description="Evidence integrity and chain-of-custody ledger",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL of the ledger database (default: CUSTODY_DATABASE_URL)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Seed the ledger with the base evidence set")

    create = sub.add_parser("create", help="Register new evidence")
    create.add_argument("evidence_id")
    create.add_argument("case_id")
    create.add_argument("filename")
    create.add_argument("content_locator_cid")
    create.add_argument("file_hash")
    create.add_argument("custody_officer")
    create.add_argument("access_level")

    read = sub.add_parser("read", help="Show the current evidence record")
    read.add_argument("evidence_id")

    status = sub.add_parser("status", help="Change evidence status")
    status.add_argument("evidence_id")
    status.add_argument("new_status")

    transfer = sub.add_parser("transfer", help="Transfer custody")
    transfer.add_argument("evidence_id")
    transfer.add_argument("new_officer")
    transfer.add_argument("reason", nargs="?", default="")

    verify = sub.add_parser("verify", help="Verify a content hash or file")
    verify.add_argument("evidence_id")
    verify.add_argument("current_hash", nargs="?")
    verify.add_argument("--file", dest="file_path", help="Hash this file instead")

    history = sub.add_parser("history", help="Show the version history")
    history.add_argument("evidence_id")

    chain = sub.add_parser("chain", help="Show and check the custody chain")
    chain.add_argument("evidence_id")

    by_case = sub.add_parser("by-case", help="List evidence of a case")
    by_case.add_argument("case_id")

    by_officer = sub.add_parser("by-officer", help="List active evidence held by an officer")
    by_officer.add_argument("officer")

    manifest = sub.add_parser("manifest", help="Build the Merkle manifest of a case")
    manifest.add_argument("case_id")

    verify_manifest = sub.add_parser(
        "verify-manifest", help="Check a published case root against the ledger"
    )
    verify_manifest.add_argument("case_id")
    verify_manifest.add_argument("expected_root")

    return parser


def run_command(ledger: EvidenceLedger, args: argparse.Namespace) -> Any:
    """Dispatch one parsed command and return its JSON-ready result."""
    if args.command == "init":
        return [e.to_dict() for e in ledger.init_ledger()]
    if args.command == "create":
        return ledger.create_evidence(
            evidence_id=args.evidence_id,
            case_id=args.case_id,
            filename=args.filename,
            content_locator_cid=args.content_locator_cid,
            file_hash=args.file_hash,
            custody_officer=args.custody_officer,
            access_level=args.access_level,
        ).to_dict()
    if args.command == "read":
        return ledger.read_evidence(args.evidence_id).to_dict()
    if args.command == "status":
        return ledger.update_status(args.evidence_id, args.new_status).to_dict()
    if args.command == "transfer":
        return ledger.transfer_custody(args.evidence_id, args.new_officer, args.reason).to_dict()
    if args.command == "verify":
        if args.file_path:
            return ledger.verify_file(args.evidence_id, args.file_path).to_dict()
        if args.current_hash is None:
            raise SystemExit("verify: give a hash or --file")
        return ledger.verify_integrity(args.evidence_id, args.current_hash).to_dict()
    if args.command == "history":
        return [entry.to_dict() for entry in ledger.get_evidence_history(args.evidence_id)]
    if args.command == "chain":
        is_valid, errors = ledger.verify_custody_chain(args.evidence_id)
        return {
            "evidenceId": args.evidence_id,
            "transfers": [t.to_dict() for t in ledger.get_custody_chain(args.evidence_id)],
            "isValid": is_valid,
            "errors": errors,
        }
    if args.command == "by-case":
        return [e.to_dict() for e in ledger.query_by_case(args.case_id)]
    if args.command == "by-officer":
        return [e.to_dict() for e in ledger.query_by_custodian(args.officer)]
    if args.command == "manifest":
        return ledger.build_case_manifest(args.case_id).to_dict()
    if args.command == "verify-manifest":
        is_valid, errors = ledger.verify_case_manifest(args.case_id, args.expected_root)
        return {"caseId": args.case_id, "isValid": is_valid, "errors": errors}
    raise SystemExit(f"unknown command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Each invocation is a fresh process, so only a persistent backend makes sense
    overrides = {"ledger_backend": "sql"}
    if args.database_url:
        overrides["database_url"] = args.database_url
    settings = Settings(**overrides)

    configure_logging(settings)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    store = create_store(settings)
    try:
        _emit(run_command(EvidenceLedger(store, settings), args))
    except CustodyError as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
