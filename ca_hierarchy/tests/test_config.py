"""Tests for CA configuration."""

import pytest
from cryptography import x509

from ca_hierarchy.lib.config import CAConfig, DistinguishedName
from ca_hierarchy.lib.errors import PrerequisiteMissing


class TestCAConfig:
    """Tests for CAConfig defaults, environment overrides and validation."""

    def test_defaults_match_demo_hierarchy(self) -> None:
        """Defaults describe the test-only IoT hierarchy."""
        config = CAConfig()
        assert config.validity_days == 30
        assert config.root_password == "1234"
        assert config.starting_serial == 1000
        assert config.intermediate_common_name == "Azure_IoT_Hub_Intermediate_Cert_Test_Only"

    def test_from_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables override validity, passwords and warning flag."""
        monkeypatch.setenv("DEFAULT_VALIDITY_DAYS", "90")
        monkeypatch.setenv("ROOT_CA_PASSWORD", "s3cret")
        monkeypatch.setenv("BUNDLE_PASSWORD", "bundle")
        monkeypatch.setenv("FORCE_NO_PROD_WARNING", "true")

        config = CAConfig.from_env()

        assert config.validity_days == 90
        assert config.root_password == "s3cret"
        assert config.bundle_password == "bundle"
        assert config.force_no_prod_warning is True

    def test_from_env_rejects_bad_validity(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Non-integer validity is a configuration error."""
        monkeypatch.setenv("DEFAULT_VALIDITY_DAYS", "thirty")
        with pytest.raises(PrerequisiteMissing, match="DEFAULT_VALIDITY_DAYS"):
            CAConfig.from_env()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"validity_days": 0},
            {"leaf_key_size": 1024},
            {"root_common_name": ""},
            {"starting_serial": 0},
        ],
    )
    def test_validate_rejects_unusable_values(self, overrides: dict[str, object]) -> None:
        """validate() raises PrerequisiteMissing for unusable values."""
        with pytest.raises(PrerequisiteMissing):
            CAConfig(**overrides).validate()  # type: ignore[arg-type]


class TestDistinguishedName:
    """Tests for DistinguishedName."""

    def test_to_x509_name_is_cn_only(self) -> None:
        """Names carry a single CN attribute."""
        name = DistinguishedName(common_name="thermostat-42").to_x509_name()
        assert name.rfc4514_string() == "CN=thermostat-42"
        assert len(name.get_attributes_for_oid(x509.NameOID.COMMON_NAME)) == 1
