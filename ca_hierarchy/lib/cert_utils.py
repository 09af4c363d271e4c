"""Certificate utility functions for key generation and serialization."""

import uuid

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey


def generate_private_key(key_size: int = 4096) -> RSAPrivateKey:
    """Generate RSA private key with specified size."""
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )


def serialize_private_key(key: RSAPrivateKey, password: str | None = None) -> bytes:
    """Serialize private key to PEM (PKCS8), encrypted when a password is given."""
    encryption: serialization.KeySerializationEncryption
    if password:
        encryption = serialization.BestAvailableEncryption(password.encode("utf-8"))
    else:
        encryption = serialization.NoEncryption()
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


def deserialize_private_key(pem_data: bytes, password: str | None = None) -> RSAPrivateKey:
    """Deserialize private key from PEM bytes.

    Raises:
        ValueError: If the password is wrong or the data is not an RSA key
        TypeError: If the key is encrypted and no password was given, or
            a password was given for an unencrypted key
    """
    key = serialization.load_pem_private_key(
        pem_data, password=password.encode("utf-8") if password else None
    )
    if not isinstance(key, RSAPrivateKey):
        raise ValueError("expected RSA private key")
    return key


def serialize_certificate(cert: x509.Certificate) -> bytes:
    """Serialize certificate to PEM format."""
    return cert.public_bytes(serialization.Encoding.PEM)


def deserialize_certificate(pem_data: bytes) -> x509.Certificate:
    """Deserialize certificate from PEM bytes."""
    return x509.load_pem_x509_certificate(pem_data)


def serialize_chain(chain: list[x509.Certificate]) -> bytes:
    """Concatenate certificates in PEM format, leaf first."""
    return b"".join(serialize_certificate(cert) for cert in chain)


def deserialize_chain(pem_data: bytes) -> list[x509.Certificate]:
    """Load every certificate in a PEM bundle, preserving order."""
    return x509.load_pem_x509_certificates(pem_data)


def serialize_csr(csr: x509.CertificateSigningRequest) -> bytes:
    """Serialize CSR to PEM format."""
    return csr.public_bytes(serialization.Encoding.PEM)


def generate_serial_number() -> int:
    """Generate a random serial number from UUID4.

    Only the self-signed root uses this; every other certificate takes its
    serial from the SerialAllocator.
    """
    return uuid.uuid4().int


def get_certificate_serial_hex(cert: x509.Certificate) -> str:
    """Return certificate serial number as hex with colons (e.g., 03:E8)."""
    serial_hex = f"{cert.serial_number:X}"
    if len(serial_hex) % 2 != 0:
        serial_hex = "0" + serial_hex
    return ":".join(serial_hex[i : i + 2] for i in range(0, len(serial_hex), 2))


def get_common_name(name: x509.Name) -> str:
    """Return the first CN attribute of an X.509 name."""
    attributes = name.get_attributes_for_oid(x509.NameOID.COMMON_NAME)
    if not attributes:
        raise ValueError(f"name has no CN: {name.rfc4514_string()}")
    cn = attributes[0].value
    if not isinstance(cn, str):
        raise ValueError("CN must be string")
    return cn


def is_ca_certificate(cert: x509.Certificate) -> bool:
    """True if the certificate carries BasicConstraints CA=true."""
    try:
        bc = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return False
    return bc.ca


def extract_csr_public_key(
    csr: x509.CertificateSigningRequest,
) -> rsa.RSAPublicKey:
    """Extract public key from CSR.

    Raises:
        ValueError: If public key is not RSA type
    """
    public_key = csr.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise ValueError("CSR public key must be RSA type")
    return public_key


def validate_csr_signature(csr: x509.CertificateSigningRequest) -> bool:
    """Verify CSR self-signature to prove private key possession."""
    try:
        return csr.is_signature_valid
    except Exception:
        return False
