#!/usr/bin/env python3
"""Create truststore bundle (Intermediate + Root) for relying parties."""

import argparse
import sys
from pathlib import Path

from ca_hierarchy.lib.ca_manager import CAManager
from ca_hierarchy.lib.config import CAConfig
from ca_hierarchy.lib.errors import CAError
from ca_hierarchy.lib.logging_config import LOGGER

DEFAULT_CA_DIR = Path("certificates")


def main(argv: list[str] | None = None) -> int:
    """Create truststore bundle from the established hierarchy.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="Create truststore bundle")
    parser.add_argument(
        "--ca-dir",
        type=Path,
        default=DEFAULT_CA_DIR,
        help=f"Storage area holding the CA hierarchy (default: {DEFAULT_CA_DIR})",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Truststore output path (default: <ca-dir>/certs/truststore.pem)",
    )
    args = parser.parse_args(argv)

    try:
        ca_manager = CAManager(CAConfig.from_env(), args.ca_dir)
        path = ca_manager.create_truststore(args.output)
        LOGGER.info("Truststore created: %s", path)
        return 0

    except CAError as e:
        LOGGER.error("Truststore creation failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
