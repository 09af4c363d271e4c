"""CA manager: the two-tier hierarchy state machine and issuance flow."""

import logging
import re
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from .cert_utils import (
    deserialize_certificate,
    deserialize_chain,
    get_certificate_serial_hex,
    get_common_name,
    is_ca_certificate,
    serialize_certificate,
    serialize_chain,
    serialize_csr,
)
from .config import CAConfig, DistinguishedName
from .errors import (
    CAError,
    InvalidRequest,
    NotFound,
    PersistenceFailure,
    PrerequisiteMissing,
    SigningFailure,
)
from .ledger import IssuanceLedger
from .models import (
    ISSUER_ROLES,
    BootstrapResult,
    CAIdentity,
    CertificateProfile,
    HierarchyState,
    IssuanceRequest,
    IssuanceResult,
    IssuedCertificateRecord,
    Role,
)
from .profiles import ProfileCatalog
from .serial_allocator import SerialAllocator
from .signing_engine import CryptographySigningEngine, SigningEngine
from .storage import StorageLayout

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _read_artifact(path: Path, step: str) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError as e:
        raise PrerequisiteMissing(step, "file not found", path) from e
    except OSError as e:
        raise PersistenceFailure(step, str(e), path) from e


class CAManager:
    """Owns one storage area's root and intermediate CA and issues from them.

    States move ``UNINITIALIZED -> ROOT_ESTABLISHED -> OPERATIONAL``.
    ``initialize`` and ``install_existing_root*`` are destructive: they wipe
    keys, certificates, the ledger and the serial counter of the area.
    """

    def __init__(
        self,
        config: CAConfig,
        base_dir: Path,
        engine: SigningEngine | None = None,
        catalog: ProfileCatalog | None = None,
    ) -> None:
        """Open the storage area at base_dir, restoring any existing hierarchy.

        Args:
            config: CA configuration with validity, key sizes and passwords
            base_dir: Storage area for keys, certificates, ledger and serial
            engine: Signing engine (defaults to CryptographySigningEngine)
            catalog: Profile catalog (defaults to one built from config)
        """
        config.validate()
        self.config = config
        self.engine: SigningEngine = engine or CryptographySigningEngine()
        self.engine.check_prerequisites()
        self.catalog = catalog or ProfileCatalog.from_config(config)
        self.layout = StorageLayout(Path(base_dir))
        self.serials = SerialAllocator(self.layout.serial_path, config.starting_serial)
        self.ledger = IssuanceLedger(self.layout.ledger_path)
        self.root: CAIdentity | None = None
        self.intermediate: CAIdentity | None = None
        self.load()

    @property
    def state(self) -> HierarchyState:
        if self.root is None:
            return HierarchyState.UNINITIALIZED
        if self.intermediate is None:
            return HierarchyState.ROOT_ESTABLISHED
        return HierarchyState.OPERATIONAL

    def load(self) -> HierarchyState:
        """Restore root and intermediate identities from the storage area."""
        self.root = None
        self.intermediate = None

        root_name = self.config.root_prefix
        root_cert_path = self.layout.cert_path(root_name)
        root_key_path = self.layout.key_path(root_name)
        if not (root_cert_path.exists() and root_key_path.exists()):
            return self.state

        root_cert = self._load_certificate(root_cert_path)
        self.root = CAIdentity(
            role=Role.ROOT,
            certificate=root_cert,
            key_path=root_key_path,
            cert_path=root_cert_path,
            chain_path=root_cert_path,
            chain=[root_cert],
        )

        name = self.config.intermediate_prefix
        paths = (
            self.layout.cert_path(name),
            self.layout.key_path(name),
            self.layout.chain_path(name),
        )
        if all(path.exists() for path in paths):
            cert_path, key_path, chain_path = paths
            cert = self._load_certificate(cert_path)
            if cert.issuer != root_cert.subject:
                raise PersistenceFailure(
                    "load intermediate CA",
                    "intermediate is not issued by the installed root",
                    cert_path,
                )
            try:
                chain = deserialize_chain(_read_artifact(chain_path, "load intermediate CA"))
            except ValueError as e:
                raise PersistenceFailure("load intermediate CA", str(e), chain_path) from e
            self.intermediate = CAIdentity(
                role=Role.INTERMEDIATE,
                certificate=cert,
                key_path=key_path,
                cert_path=cert_path,
                chain_path=chain_path,
                chain=chain,
            )

        logger.debug("Loaded hierarchy from %s in state %s", self.layout.base_dir, self.state)
        return self.state

    @staticmethod
    def _load_certificate(path: Path) -> x509.Certificate:
        try:
            return deserialize_certificate(_read_artifact(path, "load certificate"))
        except ValueError as e:
            raise PersistenceFailure("load certificate", str(e), path) from e

    def _reset(self) -> None:
        self.layout.prepare()
        self.serials.reset(self.config.starting_serial)
        self.ledger.reset()
        self.root = None
        self.intermediate = None

    def initialize(self, root_password: str | None = None) -> CAIdentity:
        """Generate a fresh root key and self-signed root certificate.

        Destroys any hierarchy previously held in the storage area.

        Args:
            root_password: Password encrypting the root key (config default if None)

        Returns:
            The new root identity
        """
        password = self.config.root_password if root_password is None else root_password
        profile = self.catalog.resolve(Role.ROOT)

        self._reset()

        root_key = self.engine.generate_private_key(profile.key_size)
        root_cert = self.engine.self_sign_root(
            root_key,
            DistinguishedName(common_name=self.config.root_common_name),
            profile.validity_days,
        )

        key_path = self.layout.key_path(self.config.root_prefix)
        cert_path = self.layout.cert_path(self.config.root_prefix)
        self.layout.write_private(key_path, self.engine.dump_private_key(root_key, password))
        self.layout.write_public(cert_path, serialize_certificate(root_cert))

        self.root = CAIdentity(
            role=Role.ROOT,
            certificate=root_cert,
            key_path=key_path,
            cert_path=cert_path,
            chain_path=cert_path,
            chain=[root_cert],
        )
        logger.info("Root CA generated: %s", cert_path)
        return self.root

    def install_existing_root(
        self, cert_path: Path, key_path: Path, key_password: str | None
    ) -> CAIdentity:
        """Install an externally supplied root CA from PEM files."""
        cert_pem = _read_artifact(Path(cert_path), "install root CA")
        key_pem = _read_artifact(Path(key_path), "install root CA")
        return self.install_existing_root_from_pem(cert_pem, key_pem, key_password)

    def install_existing_root_from_pem(
        self, cert_pem: bytes, key_pem: bytes, key_password: str | None
    ) -> CAIdentity:
        """Install an externally supplied root CA from in-memory PEM payloads.

        The payloads are checked before the storage area is reset, so a bad
        certificate or password leaves the existing hierarchy untouched. The
        key is stored re-encrypted with the configured root password, so later
        root-signed issuance opens it like a generated root.

        Raises:
            InvalidRequest: If the certificate is not a self-signed CA matching the key
            SigningFailure: If the key cannot be decrypted with key_password
        """
        try:
            cert = deserialize_certificate(cert_pem)
        except ValueError as e:
            raise InvalidRequest("install root CA", f"invalid certificate: {e}") from e
        key = self.engine.load_private_key(key_pem, key_password)
        self._check_root_pair(cert, key)

        self._reset()

        name = self.config.root_prefix
        key_path = self.layout.key_path(name)
        cert_path = self.layout.cert_path(name)
        self.layout.write_private(
            key_path, self.engine.dump_private_key(key, self.config.root_password)
        )
        self.layout.write_public(cert_path, serialize_certificate(cert))

        self.root = CAIdentity(
            role=Role.ROOT,
            certificate=cert,
            key_path=key_path,
            cert_path=cert_path,
            chain_path=cert_path,
            chain=[cert],
        )
        logger.info("Installed existing root CA %s", cert.subject.rfc4514_string())
        return self.root

    @staticmethod
    def _check_root_pair(cert: x509.Certificate, key: RSAPrivateKey) -> None:
        public_key = cert.public_key()
        if not isinstance(public_key, RSAPublicKey) or (
            public_key.public_numbers() != key.public_key().public_numbers()
        ):
            raise InvalidRequest("install root CA", "private key does not match certificate")
        if cert.issuer != cert.subject or not is_ca_certificate(cert):
            raise InvalidRequest("install root CA", "certificate is not a self-signed CA")

    def establish_intermediate(self, root_password: str | None = None) -> BootstrapResult:
        """Issue the intermediate CA signed by the root.

        Raises:
            PrerequisiteMissing: If no root is established
            InvalidRequest: If an intermediate already exists
            SigningFailure: If the root key cannot be used (e.g. wrong password)
            VerificationFailure: If the intermediate does not verify against the root
        """
        if self.root is None:
            raise PrerequisiteMissing("establish intermediate CA", "root CA is not established")
        if self.intermediate is not None:
            raise InvalidRequest("establish intermediate CA", "intermediate CA already established")

        profile = self.catalog.resolve(Role.INTERMEDIATE)
        request = IssuanceRequest(
            role=Role.INTERMEDIATE,
            subject=self.config.intermediate_common_name,
            issuer_role=Role.ROOT,
            key_password=self.config.intermediate_password,
            issuer_password=self.config.root_password if root_password is None else root_password,
        )
        result = self._issue_certificate(
            request, profile, artifact_name=self.config.intermediate_prefix
        )

        self.intermediate = CAIdentity(
            role=Role.INTERMEDIATE,
            certificate=result.certificate,
            key_path=result.key_path,
            cert_path=result.cert_path,
            chain_path=result.chain_path,
            chain=result.chain,
        )
        logger.info("Intermediate CA established: %s", result.cert_path)

        return BootstrapResult(
            root_key_path=self.root.key_path,
            root_cert_path=self.root.cert_path,
            root_serial_hex=get_certificate_serial_hex(self.root.certificate),
            intermediate_key_path=result.key_path,
            intermediate_cert_path=result.cert_path,
            intermediate_chain_path=result.chain_path,
            intermediate_serial=result.serial,
        )

    def issue(
        self,
        role: Role | str,
        subject: str,
        issuer_role: Role | str | None = None,
        key_password: str | None = None,
        issuer_password: str | None = None,
    ) -> IssuanceResult:
        """Issue a leaf or device sub-CA certificate.

        Args:
            role: Profile role of the new certificate
            subject: Common name requested by the caller
            issuer_role: ``root`` or ``intermediate``; the profile default if None
            key_password: Optional password encrypting the new private key
            issuer_password: Issuer key password (config default if None)

        Returns:
            IssuanceResult with certificate, full chain, ledger record and paths

        Raises:
            PrerequisiteMissing: If the hierarchy is not operational
            InvalidRequest: If subject, role or issuer are unusable
            SigningFailure: If signing fails (e.g. wrong issuer password)
            VerificationFailure: If the new certificate does not verify
        """
        if self.state is not HierarchyState.OPERATIONAL:
            raise PrerequisiteMissing(
                "issue certificate", f"hierarchy is {self.state}, intermediate CA required"
            )
        profile = self.catalog.resolve(role)
        if profile.role in ISSUER_ROLES:
            raise InvalidRequest(
                "issue certificate",
                f"{profile.role} is created by initialize/establish_intermediate",
            )
        request = self._build_request(profile, subject, issuer_role, key_password, issuer_password)
        return self._issue_certificate(request, profile)

    def _build_request(
        self,
        profile: CertificateProfile,
        subject: str,
        issuer_role: Role | str | None,
        key_password: str | None,
        issuer_password: str | None,
    ) -> IssuanceRequest:
        subject = (subject or "").strip()
        if not subject:
            raise InvalidRequest("issue certificate", "subject name must not be empty")

        if issuer_role is None:
            issuer_role = profile.default_issuer
        try:
            issuer = Role(issuer_role) if issuer_role is not None else None
        except ValueError as e:
            raise InvalidRequest("issue certificate", f"unknown issuer role {issuer_role!r}") from e
        if issuer not in ISSUER_ROLES:
            raise InvalidRequest(
                "issue certificate", f"issuer must be root or intermediate, got {issuer_role!r}"
            )

        if issuer_password is None:
            if issuer is Role.ROOT:
                issuer_password = self.config.root_password
            else:
                issuer_password = self.config.intermediate_password
        return IssuanceRequest(
            role=profile.role,
            subject=subject,
            issuer_role=issuer,
            key_password=key_password,
            issuer_password=issuer_password,
        )

    def _issuer_identity(self, role: Role) -> CAIdentity:
        identity = self.root if role is Role.ROOT else self.intermediate
        if identity is None:
            raise PrerequisiteMissing("issue certificate", f"{role} CA is not established")
        if not is_ca_certificate(identity.certificate):
            raise InvalidRequest(
                "issue certificate", f"{role} certificate is not a CA", identity.cert_path
            )
        return identity

    def _artifact_name(self, profile: CertificateProfile, subject: str, serial: int) -> str:
        safe_subject = _UNSAFE_NAME_CHARS.sub("_", subject)
        return f"{profile.artifact_prefix.format(subject=safe_subject)}-{serial}"

    def _issue_certificate(
        self,
        request: IssuanceRequest,
        profile: CertificateProfile,
        artifact_name: str | None = None,
    ) -> IssuanceResult:
        """Run one issuance: sign, verify, then persist and record.

        Nothing is written to the certificate store or ledger until the new
        certificate has verified against the root. The ledger record is
        written last; if any write up to and including it fails, the
        artifacts already written are removed so a reopened storage area
        never sees a half-committed certificate. A serial consumed by a
        failed attempt is not reclaimed.
        """
        if self.root is None:
            raise PrerequisiteMissing("issue certificate", "root CA is not established")
        issuer = self._issuer_identity(request.issuer_role)
        common_name = request.subject + profile.subject_suffix

        issuer_key = self.engine.load_private_key(
            _read_artifact(issuer.key_path, "load issuer key"),
            request.issuer_password,
            issuer.key_path,
        )

        serial = self.serials.next_serial()
        logger.info(
            "Issuing %s certificate for %s with serial %d", profile.role, common_name, serial
        )

        key = self.engine.generate_private_key(profile.key_size)
        csr = self.engine.create_csr(key, DistinguishedName(common_name=common_name))
        cert = self.engine.sign_certificate(
            csr,
            issuer.certificate,
            issuer_key,
            profile.extension_set,
            serial,
            profile.validity_days,
        )
        if is_ca_certificate(cert) is not profile.is_ca:
            raise SigningFailure(
                "sign certificate", f"CA flag of {profile.role} certificate contradicts its profile"
            )

        untrusted = [] if issuer.role is Role.ROOT else issuer.chain
        self.engine.verify_chain(cert, untrusted, self.root.certificate)

        chain = [cert, *issuer.chain]
        name = artifact_name or self._artifact_name(profile, request.subject, serial)
        key_path = self.layout.key_path(name)
        csr_path = self.layout.csr_path(name)
        cert_path = self.layout.cert_path(name)
        chain_path = self.layout.chain_path(name)
        bundle_path = self.layout.bundle_path(name)
        bundle = self.engine.export_bundle(
            name, key, cert, issuer.chain, self.config.bundle_password
        )

        record = IssuedCertificateRecord(
            serial=serial,
            subject=common_name,
            issuer=get_common_name(issuer.certificate.subject),
            role=profile.role,
            issued_at=datetime.now(UTC),
            not_valid_after=cert.not_valid_after_utc,
            artifact_name=name,
        )

        # the full chain goes last: load() treats it as the intermediate's commit marker
        public_artifacts = [
            (csr_path, serialize_csr(csr), "write CSR"),
            (cert_path, serialize_certificate(cert), "write certificate"),
            (bundle_path, bundle, "write bundle"),
            (chain_path, serialize_chain(chain), "write full chain"),
        ]
        written = [key_path]
        try:
            self.layout.write_private(
                key_path, self.engine.dump_private_key(key, request.key_password)
            )
            for path, data, step in public_artifacts:
                written.append(path)
                self.layout.write_public(path, data, step)
            self.ledger.record(record)
        except CAError:
            self._discard(written)
            raise

        return IssuanceResult(
            record=record,
            certificate=cert,
            chain=chain,
            key_path=key_path,
            csr_path=csr_path,
            cert_path=cert_path,
            chain_path=chain_path,
            bundle_path=bundle_path,
        )

    @staticmethod
    def _discard(paths: list[Path]) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove %s after failed issuance: %s", path, e)

    def _write_bundle(
        self,
        name: str,
        key: RSAPrivateKey,
        cert: x509.Certificate,
        issuer_chain: list[x509.Certificate],
        password: str,
    ) -> Path:
        bundle = self.engine.export_bundle(name, key, cert, issuer_chain, password)
        bundle_path = self.layout.bundle_path(name)
        self.layout.write_public(bundle_path, bundle, "write bundle")
        return bundle_path

    def export_bundle(
        self,
        serial: int,
        export_password: str | None = None,
        key_password: str | None = None,
    ) -> Path:
        """Write a password-protected PKCS#12 bundle for an issued certificate.

        Args:
            serial: Serial of a certificate recorded in the ledger
            export_password: Bundle password (config default if None)
            key_password: Password of the stored private key, if it has one

        Returns:
            Path to the written bundle

        Raises:
            NotFound: If serial is not in the ledger or its artifacts are missing
            InvalidRequest: If export_password is empty
        """
        record = self.ledger.find_by_serial(serial)
        if record is None:
            raise NotFound(
                "export bundle", f"serial {serial} is not in the ledger", self.layout.ledger_path
            )

        password = self.config.bundle_password if export_password is None else export_password
        if key_password is None and record.role is Role.INTERMEDIATE:
            key_password = self.config.intermediate_password

        name = record.artifact_name
        key_path = self.layout.key_path(name)
        chain_path = self.layout.chain_path(name)
        for path in (key_path, chain_path):
            if not path.exists():
                raise NotFound("export bundle", f"artifact for serial {serial} is missing", path)

        key = self.engine.load_private_key(
            _read_artifact(key_path, "export bundle"), key_password, key_path
        )
        try:
            cert, *issuer_chain = deserialize_chain(_read_artifact(chain_path, "export bundle"))
        except ValueError as e:
            raise PersistenceFailure("export bundle", str(e), chain_path) from e

        bundle_path = self._write_bundle(name, key, cert, issuer_chain, password)
        logger.info("Exported bundle for serial %d: %s", serial, bundle_path)
        return bundle_path

    def create_truststore(self, truststore_path: Path | None = None) -> Path:
        """Write the intermediate + root PEM bundle used by relying parties."""
        if self.intermediate is None:
            raise PrerequisiteMissing("create truststore", "intermediate CA is not established")
        path = truststore_path or self.layout.certs_dir / "truststore.pem"
        self.layout.write_public(path, serialize_chain(self.intermediate.chain), "write truststore")
        return path

    def create_root_and_intermediate(self, root_password: str | None = None) -> BootstrapResult:
        """Initialize a fresh hierarchy and establish its intermediate CA."""
        self.initialize(root_password)
        return self.establish_intermediate(root_password)

    def install_root_ca_from_files(
        self, cert_path: Path, key_path: Path, key_password: str | None
    ) -> BootstrapResult:
        self.install_existing_root(cert_path, key_path, key_password)
        return self.establish_intermediate()

    def install_root_ca_from_pem(
        self, cert_pem: bytes, key_pem: bytes, key_password: str | None
    ) -> BootstrapResult:
        self.install_existing_root_from_pem(cert_pem, key_pem, key_password)
        return self.establish_intermediate()

    def issue_verification_certificate(self, subject: str) -> IssuanceResult:
        """Issue a proof-of-possession certificate signed directly by the root."""
        return self.issue(Role.DEVICE_VERIFICATION, subject, issuer_role=Role.ROOT)

    def issue_device_certificate(self, subject: str) -> IssuanceResult:
        return self.issue(Role.DEVICE_IDENTITY, subject)

    def issue_edge_device_identity_certificate(self, subject: str) -> IssuanceResult:
        return self.issue(Role.EDGE_DEVICE_IDENTITY, subject)

    def issue_edge_device_ca_certificate(self, subject: str) -> IssuanceResult:
        return self.issue(Role.EDGE_DEVICE_CA, subject)

    def issue_edge_device_certificate(self, subject: str) -> IssuanceResult:
        return self.issue(Role.EDGE_DEVICE, subject)

    def issue_edge_server_certificate(self, subject: str) -> IssuanceResult:
        return self.issue(Role.EDGE_SERVER, subject)
