#!/usr/bin/env python3
"""Issue a device, edge or verification certificate from the CA hierarchy."""

import argparse
import sys
from pathlib import Path

from ca_hierarchy.lib.ca_manager import CAManager
from ca_hierarchy.lib.config import CAConfig
from ca_hierarchy.lib.errors import CAError
from ca_hierarchy.lib.logging_config import LOGGER, warn_not_for_production
from ca_hierarchy.lib.models import ISSUER_ROLES, Role

DEFAULT_CA_DIR = Path("certificates")
ISSUABLE_ROLES = [str(role) for role in Role if role not in ISSUER_ROLES]


def main(argv: list[str] | None = None) -> int:
    """Issue one certificate for the given role and subject name.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="Issue a certificate from the CA hierarchy")
    parser.add_argument(
        "--role",
        choices=ISSUABLE_ROLES,
        required=True,
        help="Certificate profile to issue",
    )
    parser.add_argument(
        "--subject",
        required=True,
        help="Subject name (used as CN in certificate)",
    )
    parser.add_argument(
        "--issuer",
        choices=[str(role) for role in ISSUER_ROLES],
        help="Signing CA (default: the profile's issuer)",
    )
    parser.add_argument(
        "--ca-dir",
        type=Path,
        default=DEFAULT_CA_DIR,
        help=f"Storage area holding the CA hierarchy (default: {DEFAULT_CA_DIR})",
    )
    parser.add_argument("--key-password", help="Encrypt the new private key with this password")
    parser.add_argument("--issuer-password", help="Issuer key password (default: demo password)")
    args = parser.parse_args(argv)

    try:
        config = CAConfig.from_env()
        ca_manager = CAManager(config, args.ca_dir)

        LOGGER.info("Issuing %s certificate for: %s", args.role, args.subject)
        result = ca_manager.issue(
            role=args.role,
            subject=args.subject,
            issuer_role=args.issuer,
            key_password=args.key_password,
            issuer_password=args.issuer_password,
        )

        LOGGER.info("Certificate created:")
        LOGGER.info("  Subject: %s", result.record.subject)
        LOGGER.info("  Issuer: %s", result.record.issuer)
        LOGGER.info("  Serial: %d", result.serial)
        for label, path in result.paths().items():
            LOGGER.info("  %s: %s", label, path)

        warn_not_for_production(config.validity_days, config.force_no_prod_warning)
        return 0

    except CAError as e:
        LOGGER.error("Certificate issuance failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
