"""Storage area layout and durable file writes."""

import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .errors import PersistenceFailure

LEDGER_FILE = "index.jsonl"
SERIAL_FILE = "serial"
_MANAGED_DIRS = ("private", "certs", "csr")


def write_durably(path: Path, data: bytes, step: str) -> None:
    """Write data to path via temp file, fsync and atomic rename.

    Raises:
        PersistenceFailure: If any part of the write fails
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise PersistenceFailure(step, str(e), path) from e


@dataclass(frozen=True)
class StorageLayout:
    """Paths of every artifact inside one storage area."""

    base_dir: Path

    @property
    def private_dir(self) -> Path:
        return self.base_dir / "private"

    @property
    def certs_dir(self) -> Path:
        return self.base_dir / "certs"

    @property
    def csr_dir(self) -> Path:
        return self.base_dir / "csr"

    @property
    def ledger_path(self) -> Path:
        return self.base_dir / LEDGER_FILE

    @property
    def serial_path(self) -> Path:
        return self.base_dir / SERIAL_FILE

    def key_path(self, name: str) -> Path:
        return self.private_dir / f"{name}.key.pem"

    def csr_path(self, name: str) -> Path:
        return self.csr_dir / f"{name}.csr.pem"

    def cert_path(self, name: str) -> Path:
        return self.certs_dir / f"{name}.cert.pem"

    def chain_path(self, name: str) -> Path:
        return self.certs_dir / f"{name}-full-chain.cert.pem"

    def bundle_path(self, name: str) -> Path:
        return self.certs_dir / f"{name}.cert.pfx"

    def prepare(self) -> None:
        """Recreate empty key, certificate and CSR directories.

        Destroys artifacts of any previous hierarchy in this area. The ledger
        and serial counter are reset by their owners.
        """
        try:
            for name in _MANAGED_DIRS:
                directory = self.base_dir / name
                if directory.exists():
                    shutil.rmtree(directory)
                directory.mkdir(parents=True)
        except OSError as e:
            raise PersistenceFailure("prepare storage area", str(e), self.base_dir) from e

    def write_private(self, path: Path, data: bytes) -> None:
        write_durably(path, data, "write private key")
        try:
            path.chmod(0o400)
        except OSError as e:
            raise PersistenceFailure("write private key", str(e), path) from e

    def write_public(self, path: Path, data: bytes, step: str = "write certificate") -> None:
        write_durably(path, data, step)
