"""Profile catalog mapping certificate roles to signing parameters."""

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .config import CAConfig
from .errors import UnknownRole
from .models import CertificateProfile, ExtensionSet, Role

_CA_EXTENSION_SETS = frozenset({ExtensionSet.ROOT_CA, ExtensionSet.INTERMEDIATE_CA})


class ProfileCatalog:
    """Immutable role -> CertificateProfile lookup."""

    def __init__(self, profiles: Iterable[CertificateProfile]) -> None:
        table: dict[Role, CertificateProfile] = {}
        for profile in profiles:
            table[profile.role] = profile
        self._profiles: Mapping[Role, CertificateProfile] = MappingProxyType(table)

    @classmethod
    def from_config(cls, config: CAConfig) -> "ProfileCatalog":
        """Build the default test hierarchy catalog.

        Key length follows the extension set: CA extension sets get the CA
        key size, leaf sets the leaf key size. Edge device CA roles carry the
        intermediate-CA extensions so a device can sign its own leaves, and
        get ``ca_subject_suffix`` appended so their subject never equals the
        device's own leaf/server certificate subject.
        """

        def profile(
            role: Role,
            extension_set: ExtensionSet,
            default_issuer: Role | None,
            artifact_prefix: str,
            subject_suffix: str = "",
        ) -> CertificateProfile:
            is_ca = extension_set in _CA_EXTENSION_SETS
            return CertificateProfile(
                role=role,
                extension_set=extension_set,
                key_size=config.ca_key_size if is_ca else config.leaf_key_size,
                validity_days=config.validity_days,
                is_ca=is_ca,
                default_issuer=default_issuer,
                artifact_prefix=artifact_prefix,
                subject_suffix=subject_suffix,
            )

        suffix = config.ca_subject_suffix
        return cls(
            [
                profile(Role.ROOT, ExtensionSet.ROOT_CA, None, config.root_prefix),
                profile(
                    Role.INTERMEDIATE,
                    ExtensionSet.INTERMEDIATE_CA,
                    Role.ROOT,
                    config.intermediate_prefix,
                ),
                profile(
                    Role.DEVICE_VERIFICATION,
                    ExtensionSet.LEAF_USR,
                    Role.ROOT,
                    "iot-device-verification-code",
                ),
                profile(
                    Role.DEVICE_IDENTITY,
                    ExtensionSet.LEAF_USR,
                    Role.INTERMEDIATE,
                    "iot-device-{subject}",
                ),
                profile(
                    Role.EDGE_DEVICE_IDENTITY,
                    ExtensionSet.LEAF_USR,
                    Role.INTERMEDIATE,
                    "iot-edge-device-identity-{subject}",
                ),
                profile(
                    Role.EDGE_DEVICE_CA,
                    ExtensionSet.INTERMEDIATE_CA,
                    Role.INTERMEDIATE,
                    "iot-edge-device-ca-{subject}",
                    suffix,
                ),
                profile(
                    Role.EDGE_DEVICE,
                    ExtensionSet.INTERMEDIATE_CA,
                    Role.INTERMEDIATE,
                    "iot-edge-device-{subject}",
                    suffix,
                ),
                profile(
                    Role.EDGE_SERVER,
                    ExtensionSet.LEAF_SERVER,
                    Role.INTERMEDIATE,
                    "iot-edge-server-{subject}",
                ),
            ]
        )

    def resolve(self, role: Role | str) -> CertificateProfile:
        """Return the profile for role.

        Raises:
            UnknownRole: If role is not a known role or has no profile
        """
        try:
            key = Role(role)
            return self._profiles[key]
        except (ValueError, KeyError) as e:
            raise UnknownRole("resolve profile", f"no profile configured for role {role!r}") from e

    def roles(self) -> list[Role]:
        return list(self._profiles)
