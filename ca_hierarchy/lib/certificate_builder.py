"""Certificate builder for X.509 certificate construction."""

from datetime import UTC, datetime, timedelta

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from cryptography.x509.oid import ExtendedKeyUsageOID

from .cert_utils import (
    extract_csr_public_key,
    generate_serial_number,
    get_common_name,
    validate_csr_signature,
)
from .config import DistinguishedName
from .models import ExtensionSet

_CA_KEY_USAGE = x509.KeyUsage(
    digital_signature=True,
    content_commitment=False,
    key_encipherment=False,
    data_encipherment=False,
    key_agreement=False,
    key_cert_sign=True,
    crl_sign=True,
    encipher_only=False,
    decipher_only=False,
)

_USR_KEY_USAGE = x509.KeyUsage(
    digital_signature=True,
    content_commitment=True,
    key_encipherment=True,
    data_encipherment=False,
    key_agreement=False,
    key_cert_sign=False,
    crl_sign=False,
    encipher_only=False,
    decipher_only=False,
)

_SERVER_KEY_USAGE = x509.KeyUsage(
    digital_signature=True,
    content_commitment=False,
    key_encipherment=True,
    data_encipherment=False,
    key_agreement=False,
    key_cert_sign=False,
    crl_sign=False,
    encipher_only=False,
    decipher_only=False,
)


def _validity_window(validity_days: int) -> tuple[datetime, datetime]:
    not_before = datetime.now(UTC)
    return not_before, not_before + timedelta(days=validity_days)


def _add_profile_extensions(
    builder: x509.CertificateBuilder,
    extension_set: ExtensionSet,
    subject: x509.Name,
) -> x509.CertificateBuilder:
    """Apply the BasicConstraints/KeyUsage/EKU combination of an extension set."""
    if extension_set in (ExtensionSet.ROOT_CA, ExtensionSet.INTERMEDIATE_CA):
        # no pathlen: edge device CAs below the intermediate sign their own leaves
        return builder.add_extension(
            x509.BasicConstraints(ca=True, path_length=None), critical=True
        ).add_extension(_CA_KEY_USAGE, critical=True)

    builder = builder.add_extension(
        x509.BasicConstraints(ca=False, path_length=None), critical=True
    )
    if extension_set is ExtensionSet.LEAF_USR:
        return builder.add_extension(_USR_KEY_USAGE, critical=True).add_extension(
            x509.ExtendedKeyUsage(
                [ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.EMAIL_PROTECTION]
            ),
            critical=False,
        )
    if extension_set is ExtensionSet.LEAF_SERVER:
        return (
            builder.add_extension(_SERVER_KEY_USAGE, critical=True)
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(get_common_name(subject))]),
                critical=False,
            )
        )
    raise ValueError(f"unsupported extension set: {extension_set}")


class CertificateBuilder:
    """Builds X.509 certificates for the CA hierarchy and its leaves."""

    @staticmethod
    def build_root_ca(
        subject_dn: DistinguishedName,
        private_key: RSAPrivateKey,
        validity_days: int,
    ) -> x509.Certificate:
        """Build self-signed Root CA certificate.

        The root takes a random serial so it never consumes a counter value.

        Args:
            subject_dn: Distinguished name for certificate subject
            private_key: RSA private key for signing
            validity_days: Certificate validity period in days

        Returns:
            Self-signed X.509 certificate with CA extensions
        """
        subject = subject_dn.to_x509_name()
        not_before, not_after = _validity_window(validity_days)
        public_key = private_key.public_key()

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(public_key)
            .serial_number(generate_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(public_key), critical=False
            )
        )
        builder = _add_profile_extensions(builder, ExtensionSet.ROOT_CA, subject)

        return builder.sign(private_key, hashes.SHA256())

    @staticmethod
    def build_from_csr(
        csr: x509.CertificateSigningRequest,
        issuer_cert: x509.Certificate,
        issuer_key: RSAPrivateKey,
        extension_set: ExtensionSet,
        serial_number: int,
        validity_days: int,
    ) -> x509.Certificate:
        """Build certificate from CSR, signed by issuer.

        Traditional PKI flow: CSR contains subject DN and public key.
        Signer validates CSR signature and issues certificate.

        Args:
            csr: Certificate signing request
            issuer_cert: Issuing CA certificate
            issuer_key: Issuing CA private key for signing
            extension_set: Extensions to apply (CA or leaf)
            serial_number: Serial allocated for this certificate
            validity_days: Certificate validity period in days

        Returns:
            X.509 certificate signed by issuer

        Raises:
            ValueError: If CSR signature is invalid or issuer key does not
                match issuer certificate
        """
        if not validate_csr_signature(csr):
            raise ValueError("CSR signature validation failed")

        issuer_public_key = issuer_cert.public_key()
        if not isinstance(issuer_public_key, RSAPublicKey) or (
            issuer_public_key.public_numbers() != issuer_key.public_key().public_numbers()
        ):
            raise ValueError("issuer key does not match issuer certificate")

        public_key = extract_csr_public_key(csr)
        not_before, not_after = _validity_window(validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(issuer_cert.subject)
            .public_key(public_key)
            .serial_number(serial_number)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_public_key),
                critical=False,
            )
        )
        builder = _add_profile_extensions(builder, extension_set, csr.subject)

        return builder.sign(issuer_key, hashes.SHA256())
