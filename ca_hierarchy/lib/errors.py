"""Error types for CA hierarchy operations."""

from pathlib import Path


class CAError(Exception):
    """Base error for CA hierarchy operations.

    Carries the failing step and, where one is involved, the artifact path so
    an operator can correct a password or missing file and re-run.
    """

    def __init__(self, step: str, detail: str, path: Path | str | None = None) -> None:
        self.step = step
        self.detail = detail
        self.path = Path(path) if path is not None else None
        message = f"{step} failed: {detail}"
        if self.path is not None:
            message = f"{message} ({self.path})"
        super().__init__(message)


class PrerequisiteMissing(CAError):
    """Required signing capability, configuration, or CA identity is absent."""


class InvalidRequest(CAError):
    """Issuance request is malformed (empty subject, bad issuer, ...)."""


class UnknownRole(InvalidRequest):
    """Role has no configured certificate profile."""


class SigningFailure(CAError):
    """Signing engine could not produce a certificate."""


class VerificationFailure(CAError):
    """Issued certificate does not chain-verify to the root."""


class DuplicateSerial(CAError):
    """Ledger already holds a record with this serial."""


class NotFound(CAError):
    """Requested serial is unknown to the ledger."""


class PersistenceFailure(CAError):
    """Serial counter or ledger could not be durably written."""
