#!/usr/bin/env python3
"""Export a password-protected PKCS#12 bundle for an issued certificate."""

import argparse
import sys
from pathlib import Path

from ca_hierarchy.lib.ca_manager import CAManager
from ca_hierarchy.lib.config import CAConfig
from ca_hierarchy.lib.errors import CAError
from ca_hierarchy.lib.logging_config import LOGGER

DEFAULT_CA_DIR = Path("certificates")


def main(argv: list[str] | None = None) -> int:
    """Re-export the bundle of a ledger serial with a new password.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="Export PKCS#12 bundle for an issued certificate")
    parser.add_argument("--serial", type=int, required=True, help="Serial number from the ledger")
    parser.add_argument(
        "--password",
        help="Bundle export password (default: BUNDLE_PASSWORD or the demo password)",
    )
    parser.add_argument("--key-password", help="Password of the stored private key, if any")
    parser.add_argument(
        "--ca-dir",
        type=Path,
        default=DEFAULT_CA_DIR,
        help=f"Storage area holding the CA hierarchy (default: {DEFAULT_CA_DIR})",
    )
    args = parser.parse_args(argv)

    try:
        ca_manager = CAManager(CAConfig.from_env(), args.ca_dir)
        bundle_path = ca_manager.export_bundle(
            args.serial, export_password=args.password, key_password=args.key_password
        )
        LOGGER.info("Bundle for serial %d written to %s", args.serial, bundle_path)
        return 0

    except CAError as e:
        LOGGER.error("Bundle export failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
