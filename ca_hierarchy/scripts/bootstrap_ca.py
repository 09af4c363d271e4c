#!/usr/bin/env python3
"""Bootstrap CA: create or install the Root CA, then issue the Intermediate CA."""

import argparse
import sys
from pathlib import Path

from ca_hierarchy.lib.ca_manager import CAManager
from ca_hierarchy.lib.config import CAConfig
from ca_hierarchy.lib.errors import CAError
from ca_hierarchy.lib.logging_config import LOGGER, warn_not_for_production

DEFAULT_CA_DIR = Path("certificates")


def main(argv: list[str] | None = None) -> int:
    """Bootstrap Root CA and Intermediate CA.

    Without root arguments a fresh root is generated. With ``--root-cert`` and
    ``--root-key`` (files) or ``--root-cert-pem`` and ``--root-key-pem``
    (payloads) an existing root is installed instead. Either way the storage
    area is wiped first.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(
        description="Bootstrap CA (generate or install Root, then issue Intermediate)"
    )
    parser.add_argument(
        "--ca-dir",
        type=Path,
        default=DEFAULT_CA_DIR,
        help=f"Storage area for CA artifacts (default: {DEFAULT_CA_DIR})",
    )
    files = parser.add_argument_group("install root from files")
    files.add_argument("--root-cert", type=Path, help="Existing root CA certificate (PEM)")
    files.add_argument("--root-key", type=Path, help="Existing root CA private key (PEM)")
    payloads = parser.add_argument_group("install root from payloads")
    payloads.add_argument("--root-cert-pem", help="Existing root CA certificate PEM text")
    payloads.add_argument("--root-key-pem", help="Existing root CA private key PEM text")
    parser.add_argument(
        "--root-password",
        help="Root CA key password (new roots default to ROOT_CA_PASSWORD or the demo password)",
    )
    args = parser.parse_args(argv)

    from_files = args.root_cert is not None or args.root_key is not None
    from_payloads = args.root_cert_pem is not None or args.root_key_pem is not None
    if from_files and from_payloads:
        parser.error("use either --root-cert/--root-key or --root-cert-pem/--root-key-pem")
    if from_files and (args.root_cert is None or args.root_key is None):
        parser.error("--root-cert and --root-key must be given together")
    if from_payloads and (args.root_cert_pem is None or args.root_key_pem is None):
        parser.error("--root-cert-pem and --root-key-pem must be given together")

    try:
        config = CAConfig.from_env()
        ca_manager = CAManager(config, args.ca_dir)
        password = args.root_password

        if from_files:
            LOGGER.info("Installing root CA from %s", args.root_cert)
            result = ca_manager.install_root_ca_from_files(args.root_cert, args.root_key, password)
        elif from_payloads:
            LOGGER.info("Installing root CA from payload")
            result = ca_manager.install_root_ca_from_pem(
                args.root_cert_pem.encode("utf-8"), args.root_key_pem.encode("utf-8"), password
            )
        else:
            LOGGER.info("Creating root and intermediate CA in %s", args.ca_dir)
            result = ca_manager.create_root_and_intermediate(password)

        LOGGER.info("Root CA:")
        LOGGER.info("  Key: %s", result.root_key_path)
        LOGGER.info("  Cert: %s", result.root_cert_path)
        LOGGER.info("  Serial: %s", result.root_serial_hex)

        LOGGER.info("Intermediate CA:")
        LOGGER.info("  Key: %s", result.intermediate_key_path)
        LOGGER.info("  Cert: %s", result.intermediate_cert_path)
        LOGGER.info("  Full chain: %s", result.intermediate_chain_path)
        LOGGER.info("  Serial: %d", result.intermediate_serial)

        warn_not_for_production(config.validity_days, config.force_no_prod_warning)
        return 0

    except CAError as e:
        LOGGER.error("Bootstrap failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
