"""CA configuration dataclasses."""

import os
from dataclasses import dataclass

from cryptography import x509
from cryptography.x509 import oid

from .errors import PrerequisiteMissing

MIN_RSA_KEY_SIZE = 2048


def _env_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes"}


@dataclass
class CAConfig:
    """Configuration for a test/demo CA hierarchy.

    Passwords default to fixed values for the demo use case. Anything that
    targets production must supply its own secrets.
    """

    root_common_name: str = "Azure_IoT_Hub_CA_Cert_Test_Only"
    intermediate_common_name: str = "Azure_IoT_Hub_Intermediate_Cert_Test_Only"
    root_prefix: str = "azure-iot-test-only.root.ca"
    intermediate_prefix: str = "azure-iot-test-only.intermediate"
    validity_days: int = 30
    ca_key_size: int = 4096
    leaf_key_size: int = 2048
    root_password: str = "1234"
    intermediate_password: str = "1234"
    bundle_password: str = "1234"
    starting_serial: int = 1000
    ca_subject_suffix: str = ".ca"
    force_no_prod_warning: bool = False

    @classmethod
    def from_env(cls) -> "CAConfig":
        """Build configuration with overrides from environment variables.

        Reads DEFAULT_VALIDITY_DAYS, ROOT_CA_PASSWORD, BUNDLE_PASSWORD and
        FORCE_NO_PROD_WARNING.
        """
        config = cls()
        validity = os.environ.get("DEFAULT_VALIDITY_DAYS")
        if validity:
            try:
                config.validity_days = int(validity)
            except ValueError as e:
                raise PrerequisiteMissing(
                    "configuration", f"DEFAULT_VALIDITY_DAYS is not an integer: {validity!r}"
                ) from e
        config.root_password = os.environ.get("ROOT_CA_PASSWORD", config.root_password)
        config.bundle_password = os.environ.get("BUNDLE_PASSWORD", config.bundle_password)
        config.force_no_prod_warning = _env_flag(os.environ.get("FORCE_NO_PROD_WARNING"))
        return config

    def validate(self) -> None:
        """Raise PrerequisiteMissing if the configuration cannot drive issuance."""
        if self.validity_days <= 0:
            raise PrerequisiteMissing("configuration", "validity_days must be positive")
        if min(self.ca_key_size, self.leaf_key_size) < MIN_RSA_KEY_SIZE:
            raise PrerequisiteMissing(
                "configuration", f"RSA key sizes must be at least {MIN_RSA_KEY_SIZE} bits"
            )
        if not self.root_common_name or not self.intermediate_common_name:
            raise PrerequisiteMissing("configuration", "CA common names must not be empty")
        if self.starting_serial < 1:
            raise PrerequisiteMissing("configuration", "starting_serial must be positive")


@dataclass
class DistinguishedName:
    """X.509 Subject Distinguished Name.

    The test hierarchy names every certificate by common name alone.
    """

    common_name: str

    def to_x509_name(self) -> x509.Name:
        """Convert to cryptography x509.Name for certificate generation."""
        return x509.Name([x509.NameAttribute(oid.NameOID.COMMON_NAME, self.common_name)])
