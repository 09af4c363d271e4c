"""Data models for CA hierarchy operations."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import TypedDict

from cryptography import x509


class Role(StrEnum):
    """Certificate roles known to the profile catalog."""

    ROOT = "root"
    INTERMEDIATE = "intermediate"
    DEVICE_VERIFICATION = "device-verification"
    DEVICE_IDENTITY = "device-identity"
    EDGE_DEVICE_IDENTITY = "edge-device-identity"
    EDGE_DEVICE_CA = "edge-device-ca"
    EDGE_DEVICE = "edge-device"
    EDGE_SERVER = "edge-server"


ISSUER_ROLES = (Role.ROOT, Role.INTERMEDIATE)


class ExtensionSet(StrEnum):
    """X.509 extension sets applied at signing time."""

    ROOT_CA = "root-ca"
    INTERMEDIATE_CA = "intermediate-ca"
    LEAF_USR = "leaf-usr"
    LEAF_SERVER = "leaf-server"


class HierarchyState(StrEnum):
    """Lifecycle of a two-tier hierarchy."""

    UNINITIALIZED = "uninitialized"
    ROOT_ESTABLISHED = "root-established"
    OPERATIONAL = "operational"


@dataclass(frozen=True)
class CertificateProfile:
    """Signing parameters for one role.

    ``artifact_prefix`` may reference ``{subject}``; ``subject_suffix`` is
    appended to the requested common name.
    """

    role: Role
    extension_set: ExtensionSet
    key_size: int
    validity_days: int
    is_ca: bool
    default_issuer: Role | None
    artifact_prefix: str
    subject_suffix: str = ""


@dataclass(frozen=True)
class IssuanceRequest:
    """Validated input to a single issuance."""

    role: Role
    subject: str
    issuer_role: Role
    key_password: str | None = None
    issuer_password: str | None = None


@dataclass
class CAIdentity:
    """A CA certificate with the locations of its key and full chain."""

    role: Role
    certificate: x509.Certificate
    key_path: Path
    cert_path: Path
    chain_path: Path
    chain: list[x509.Certificate] = field(default_factory=list)


class LedgerEntry(TypedDict):
    """JSON shape of one ledger line."""

    serial: int
    subject: str
    issuer: str
    role: str
    issuedAt: str
    notValidAfter: str
    status: str
    artifactName: str


@dataclass(frozen=True)
class IssuedCertificateRecord:
    """Immutable ledger record of one issued certificate."""

    serial: int
    subject: str
    issuer: str
    role: Role
    issued_at: datetime
    not_valid_after: datetime
    artifact_name: str
    status: str = "valid"

    def to_entry(self) -> LedgerEntry:
        return LedgerEntry(
            serial=self.serial,
            subject=self.subject,
            issuer=self.issuer,
            role=str(self.role),
            issuedAt=self.issued_at.isoformat(),
            notValidAfter=self.not_valid_after.isoformat(),
            status=self.status,
            artifactName=self.artifact_name,
        )

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "IssuedCertificateRecord":
        return cls(
            serial=int(entry["serial"]),
            subject=entry["subject"],
            issuer=entry["issuer"],
            role=Role(entry["role"]),
            issued_at=datetime.fromisoformat(entry["issuedAt"]),
            not_valid_after=datetime.fromisoformat(entry["notValidAfter"]),
            artifact_name=entry["artifactName"],
            status=entry.get("status", "valid"),
        )


@dataclass
class BootstrapResult:
    """Result from establishing the root and intermediate CA.

    Contains file paths and serial numbers for Root and Intermediate CA artifacts.
    The random root serial is kept in colon-separated hex form.
    """

    root_key_path: Path
    root_cert_path: Path
    root_serial_hex: str
    intermediate_key_path: Path
    intermediate_cert_path: Path
    intermediate_chain_path: Path
    intermediate_serial: int


@dataclass
class IssuanceResult:
    """Artifacts produced by one issuance."""

    record: IssuedCertificateRecord
    certificate: x509.Certificate
    chain: list[x509.Certificate]
    key_path: Path
    csr_path: Path
    cert_path: Path
    chain_path: Path
    bundle_path: Path

    @property
    def serial(self) -> int:
        return self.record.serial

    def paths(self) -> dict[str, str]:
        return {
            "key": str(self.key_path),
            "csr": str(self.csr_path),
            "cert": str(self.cert_path),
            "fullChain": str(self.chain_path),
            "bundle": str(self.bundle_path),
        }

