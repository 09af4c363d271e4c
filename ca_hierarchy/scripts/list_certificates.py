#!/usr/bin/env python3
"""Print the issuance ledger as JSON for audit."""

import argparse
import json
import sys
from pathlib import Path

from ca_hierarchy.lib.ca_manager import CAManager
from ca_hierarchy.lib.config import CAConfig
from ca_hierarchy.lib.errors import CAError
from ca_hierarchy.lib.logging_config import LOGGER

DEFAULT_CA_DIR = Path("certificates")


def main(argv: list[str] | None = None) -> int:
    """Print ledger records, optionally only those for one subject.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="List issued certificates")
    parser.add_argument("--subject", help="Only show the latest record for this subject")
    parser.add_argument(
        "--ca-dir",
        type=Path,
        default=DEFAULT_CA_DIR,
        help=f"Storage area holding the CA hierarchy (default: {DEFAULT_CA_DIR})",
    )
    args = parser.parse_args(argv)

    try:
        ledger = CAManager(CAConfig.from_env(), args.ca_dir).ledger
    except CAError as e:
        LOGGER.error("Cannot read ledger: %s", e)
        return 1

    if args.subject is not None:
        record = ledger.find_by_subject(args.subject)
        records = [record] if record is not None else []
    else:
        records = ledger.all()

    print(json.dumps([record.to_entry() for record in records], indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
