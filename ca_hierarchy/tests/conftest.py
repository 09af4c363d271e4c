"""Test fixtures for ca_hierarchy tests."""

from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from ca_hierarchy.lib.ca_manager import CAManager
from ca_hierarchy.lib.cert_utils import generate_private_key
from ca_hierarchy.lib.certificate_builder import CertificateBuilder
from ca_hierarchy.lib.config import CAConfig, DistinguishedName
from ca_hierarchy.lib.models import ExtensionSet


@pytest.fixture
def ca_config() -> CAConfig:
    """Return test CA configuration with 2048-bit keys for every role."""
    return CAConfig(
        validity_days=30,
        ca_key_size=2048,  # Faster for tests
        leaf_key_size=2048,
        force_no_prod_warning=True,
    )


@pytest.fixture
def ca_dir(tmp_path: Path) -> Path:
    """Return storage area path inside the pytest temp directory."""
    return tmp_path / "ca"


@pytest.fixture
def manager(ca_config: CAConfig, ca_dir: Path) -> CAManager:
    """Return manager over an empty storage area."""
    return CAManager(ca_config, ca_dir)


@pytest.fixture
def operational_manager(manager: CAManager) -> CAManager:
    """Return manager with root and intermediate CA established."""
    manager.create_root_and_intermediate()
    return manager


@pytest.fixture
def root_key() -> RSAPrivateKey:
    """Generate RSA private key for Root CA."""
    return generate_private_key(key_size=2048)


@pytest.fixture
def root_cert(root_key: RSAPrivateKey) -> x509.Certificate:
    """Generate self-signed Root CA certificate."""
    return CertificateBuilder.build_root_ca(
        subject_dn=DistinguishedName(common_name="Test Root CA"),
        private_key=root_key,
        validity_days=30,
    )


@pytest.fixture
def intermediate_key() -> RSAPrivateKey:
    """Generate RSA private key for Intermediate CA."""
    return generate_private_key(key_size=2048)


@pytest.fixture
def intermediate_cert(
    intermediate_key: RSAPrivateKey,
    root_cert: x509.Certificate,
    root_key: RSAPrivateKey,
) -> x509.Certificate:
    """Generate Intermediate CA certificate signed by Root CA."""
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(DistinguishedName(common_name="Test Intermediate CA").to_x509_name())
        .sign(intermediate_key, hashes.SHA256())
    )
    return CertificateBuilder.build_from_csr(
        csr=csr,
        issuer_cert=root_cert,
        issuer_key=root_key,
        extension_set=ExtensionSet.INTERMEDIATE_CA,
        serial_number=1000,
        validity_days=30,
    )


@pytest.fixture
def leaf_key() -> RSAPrivateKey:
    """Generate RSA private key for a device certificate."""
    return generate_private_key(key_size=2048)


@pytest.fixture
def leaf_csr(leaf_key: RSAPrivateKey) -> x509.CertificateSigningRequest:
    """Generate device certificate CSR."""
    return (
        x509.CertificateSigningRequestBuilder()
        .subject_name(DistinguishedName(common_name="test-device-001").to_x509_name())
        .sign(leaf_key, hashes.SHA256())
    )


@pytest.fixture
def leaf_cert(
    leaf_csr: x509.CertificateSigningRequest,
    intermediate_cert: x509.Certificate,
    intermediate_key: RSAPrivateKey,
) -> x509.Certificate:
    """Generate device certificate signed by Intermediate CA."""
    return CertificateBuilder.build_from_csr(
        csr=leaf_csr,
        issuer_cert=intermediate_cert,
        issuer_key=intermediate_key,
        extension_set=ExtensionSet.LEAF_USR,
        serial_number=1001,
        validity_days=30,
    )
