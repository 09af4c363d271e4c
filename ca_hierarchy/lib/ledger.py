"""Append-only issuance ledger stored as JSON lines."""

import json
import logging
import os
from pathlib import Path
from typing import cast

from .errors import DuplicateSerial, PersistenceFailure
from .models import IssuedCertificateRecord, LedgerEntry
from .storage import write_durably

logger = logging.getLogger(__name__)


class IssuanceLedger:
    """Record of every certificate issued in the current hierarchy generation.

    Records are kept in memory indexed by serial and subject, and each append
    is flushed and fsynced to ``path`` before ``record`` returns.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._records: list[IssuedCertificateRecord] = []
        self._by_serial: dict[int, IssuedCertificateRecord] = {}
        self._by_subject: dict[str, IssuedCertificateRecord] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            lines = self.path.read_text().splitlines()
        except OSError as e:
            raise PersistenceFailure("read ledger", str(e), self.path) from e
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                entry = cast(LedgerEntry, json.loads(line))
                record = IssuedCertificateRecord.from_entry(entry)
            except (ValueError, KeyError) as e:
                raise PersistenceFailure(
                    "read ledger", f"corrupt entry on line {lineno}", self.path
                ) from e
            self._index(record)

    def _index(self, record: IssuedCertificateRecord) -> None:
        self._records.append(record)
        self._by_serial[record.serial] = record
        self._by_subject[record.subject] = record

    def record(self, entry: IssuedCertificateRecord) -> None:
        """Append entry to the ledger.

        Raises:
            DuplicateSerial: If a record with the same serial already exists
            PersistenceFailure: If the entry cannot be durably written
        """
        if entry.serial in self._by_serial:
            raise DuplicateSerial(
                "record issuance", f"serial {entry.serial} already in ledger", self.path
            )
        line = json.dumps(entry.to_entry(), sort_keys=True) + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                offset = handle.tell()
                try:
                    handle.write(line)
                    handle.flush()
                    os.fsync(handle.fileno())
                except OSError:
                    handle.truncate(offset)
                    raise
        except OSError as e:
            raise PersistenceFailure("record issuance", str(e), self.path) from e
        self._index(entry)
        logger.info("Recorded serial %d for %s", entry.serial, entry.subject)

    def find_by_serial(self, serial: int) -> IssuedCertificateRecord | None:
        return self._by_serial.get(serial)

    def find_by_subject(self, subject: str) -> IssuedCertificateRecord | None:
        """Return the most recent record issued to subject, if any."""
        return self._by_subject.get(subject)

    def all(self) -> list[IssuedCertificateRecord]:
        return list(self._records)

    def reset(self) -> None:
        """Discard every record; only used when the hierarchy is regenerated."""
        write_durably(self.path, b"", "reset ledger")
        self._records.clear()
        self._by_serial.clear()
        self._by_subject.clear()

    def __len__(self) -> int:
        return len(self._records)
