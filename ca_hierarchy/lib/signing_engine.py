"""Signing engine: key generation, CSR creation, signing, chain verification, export.

``CAManager`` only talks to the ``SigningEngine`` protocol. The bundled
``CryptographySigningEngine`` implements it with the ``cryptography`` package.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.serialization import pkcs12

from .cert_utils import (
    deserialize_private_key,
    generate_private_key,
    is_ca_certificate,
    serialize_private_key,
)
from .certificate_builder import CertificateBuilder
from .config import DistinguishedName
from .errors import InvalidRequest, PrerequisiteMissing, SigningFailure, VerificationFailure
from .models import ExtensionSet

logger = logging.getLogger(__name__)


class SigningEngine(Protocol):
    """Cryptographic capabilities the hierarchy manager depends on."""

    def check_prerequisites(self) -> None: ...

    def generate_private_key(self, key_size: int) -> RSAPrivateKey: ...

    def dump_private_key(self, key: RSAPrivateKey, password: str | None) -> bytes: ...

    def load_private_key(
        self, pem_data: bytes, password: str | None, path: Path | None = None
    ) -> RSAPrivateKey: ...

    def create_csr(
        self, key: RSAPrivateKey, subject: DistinguishedName
    ) -> x509.CertificateSigningRequest: ...

    def self_sign_root(
        self, key: RSAPrivateKey, subject: DistinguishedName, validity_days: int
    ) -> x509.Certificate: ...

    def sign_certificate(
        self,
        csr: x509.CertificateSigningRequest,
        issuer_cert: x509.Certificate,
        issuer_key: RSAPrivateKey,
        extension_set: ExtensionSet,
        serial_number: int,
        validity_days: int,
    ) -> x509.Certificate: ...

    def verify_chain(
        self,
        cert: x509.Certificate,
        untrusted: list[x509.Certificate],
        trust_anchor: x509.Certificate,
    ) -> None: ...

    def export_bundle(
        self,
        name: str,
        key: RSAPrivateKey,
        cert: x509.Certificate,
        chain: list[x509.Certificate],
        password: str,
    ) -> bytes: ...


class CryptographySigningEngine:
    """SigningEngine backed by the ``cryptography`` package."""

    def check_prerequisites(self) -> None:
        """Raise PrerequisiteMissing if the installed cryptography is too old."""
        required = ("verify_directly_issued_by", "not_valid_after_utc")
        missing = [attr for attr in required if not hasattr(x509.Certificate, attr)]
        if missing:
            raise PrerequisiteMissing(
                "check signing engine",
                f"cryptography>=42 is required (missing {', '.join(missing)})",
            )

    def generate_private_key(self, key_size: int) -> RSAPrivateKey:
        logger.debug("Generating %d-bit RSA key", key_size)
        return generate_private_key(key_size)

    def dump_private_key(self, key: RSAPrivateKey, password: str | None) -> bytes:
        return serialize_private_key(key, password)

    def load_private_key(
        self, pem_data: bytes, password: str | None, path: Path | None = None
    ) -> RSAPrivateKey:
        """Decrypt a PEM private key.

        Raises:
            SigningFailure: If the password is wrong or the key is unusable
        """
        try:
            return deserialize_private_key(pem_data, password)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SigningFailure("load private key", f"cannot decrypt key: {e}", path) from e

    def create_csr(
        self, key: RSAPrivateKey, subject: DistinguishedName
    ) -> x509.CertificateSigningRequest:
        try:
            return (
                x509.CertificateSigningRequestBuilder()
                .subject_name(subject.to_x509_name())
                .sign(key, hashes.SHA256())
            )
        except ValueError as e:
            raise SigningFailure("create CSR", str(e)) from e

    def self_sign_root(
        self, key: RSAPrivateKey, subject: DistinguishedName, validity_days: int
    ) -> x509.Certificate:
        try:
            return CertificateBuilder.build_root_ca(
                subject_dn=subject,
                private_key=key,
                validity_days=validity_days,
            )
        except ValueError as e:
            raise SigningFailure("sign root certificate", str(e)) from e

    def sign_certificate(
        self,
        csr: x509.CertificateSigningRequest,
        issuer_cert: x509.Certificate,
        issuer_key: RSAPrivateKey,
        extension_set: ExtensionSet,
        serial_number: int,
        validity_days: int,
    ) -> x509.Certificate:
        """Sign csr with the issuer key.

        Raises:
            SigningFailure: If the CSR is malformed or the key does not match
        """
        try:
            return CertificateBuilder.build_from_csr(
                csr=csr,
                issuer_cert=issuer_cert,
                issuer_key=issuer_key,
                extension_set=extension_set,
                serial_number=serial_number,
                validity_days=validity_days,
            )
        except (ValueError, TypeError) as e:
            raise SigningFailure("sign certificate", str(e)) from e

    def verify_chain(
        self,
        cert: x509.Certificate,
        untrusted: list[x509.Certificate],
        trust_anchor: x509.Certificate,
    ) -> None:
        """Verify cert chains to trust_anchor through the untrusted certificates.

        Walks from cert towards the anchor, picking each parent by subject
        name. Every link must be signed by its parent, the parent must be a
        CA, and every certificate on the path must be currently valid.

        Raises:
            VerificationFailure: On the first link that does not hold
        """
        now = datetime.now(UTC)
        if trust_anchor.issuer != trust_anchor.subject:
            raise VerificationFailure("verify chain", "trust anchor is not self-signed")
        self._check_link(trust_anchor, trust_anchor, now)

        candidates = [c for c in untrusted if c != trust_anchor]
        current = cert
        for _ in range(len(candidates) + 1):
            self._check_validity(current, now)
            if current.issuer == trust_anchor.subject:
                self._check_link(current, trust_anchor, now)
                return
            parent = next((c for c in candidates if c.subject == current.issuer), None)
            if parent is None:
                raise VerificationFailure(
                    "verify chain",
                    f"unable to get issuer certificate for {current.subject.rfc4514_string()}",
                )
            self._check_link(current, parent, now)
            candidates.remove(parent)
            current = parent

        raise VerificationFailure("verify chain", "chain does not terminate at the trust anchor")

    @staticmethod
    def _check_validity(cert: x509.Certificate, now: datetime) -> None:
        if not cert.not_valid_before_utc <= now <= cert.not_valid_after_utc:
            raise VerificationFailure(
                "verify chain",
                f"certificate {cert.subject.rfc4514_string()} is outside its validity window",
            )

    def _check_link(self, cert: x509.Certificate, issuer: x509.Certificate, now: datetime) -> None:
        self._check_validity(issuer, now)
        if not is_ca_certificate(issuer):
            raise VerificationFailure(
                "verify chain", f"issuer {issuer.subject.rfc4514_string()} is not a CA"
            )
        try:
            cert.verify_directly_issued_by(issuer)
        except (ValueError, TypeError, InvalidSignature) as e:
            raise VerificationFailure(
                "verify chain",
                f"{cert.subject.rfc4514_string()} is not signed by "
                f"{issuer.subject.rfc4514_string()}: {e}",
            ) from e

    def export_bundle(
        self,
        name: str,
        key: RSAPrivateKey,
        cert: x509.Certificate,
        chain: list[x509.Certificate],
        password: str,
    ) -> bytes:
        """Serialize key, cert and issuer chain as password-protected PKCS#12."""
        if not password:
            raise InvalidRequest("export bundle", "export password must not be empty")
        try:
            return pkcs12.serialize_key_and_certificates(
                name=name.encode("utf-8"),
                key=key,
                cert=cert,
                cas=chain or None,
                encryption_algorithm=serialization.BestAvailableEncryption(
                    password.encode("utf-8")
                ),
            )
        except (ValueError, TypeError) as e:
            raise SigningFailure("export bundle", str(e)) from e
