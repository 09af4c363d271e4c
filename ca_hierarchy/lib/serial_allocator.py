"""Durable, monotonically increasing certificate serial numbers."""

import logging
from pathlib import Path

from .errors import PersistenceFailure
from .storage import write_durably

logger = logging.getLogger(__name__)


class SerialAllocator:
    """File-backed serial counter.

    The counter is persisted before a value is handed out, so an interrupted
    issuance loses a serial instead of ever reusing one.
    """

    def __init__(self, path: Path, start_value: int = 1000) -> None:
        self.path = path
        self.start_value = start_value

    def peek(self) -> int:
        """Return the next value without consuming it."""
        if not self.path.exists():
            return self.start_value
        try:
            raw = self.path.read_text().strip()
        except OSError as e:
            raise PersistenceFailure("read serial counter", str(e), self.path) from e
        try:
            return int(raw)
        except ValueError as e:
            raise PersistenceFailure(
                "read serial counter", f"corrupt counter value {raw!r}", self.path
            ) from e

    def next_serial(self) -> int:
        """Return the current counter value and persist its successor.

        Raises:
            PersistenceFailure: If the incremented counter cannot be written
        """
        current = self.peek()
        write_durably(self.path, f"{current + 1}\n".encode(), "allocate serial")
        logger.debug("Allocated serial %d", current)
        return current

    def reset(self, start_value: int | None = None) -> None:
        """Reinitialize the counter for a new hierarchy generation."""
        if start_value is not None:
            self.start_value = start_value
        write_durably(self.path, f"{self.start_value}\n".encode(), "reset serial counter")
        logger.info("Serial counter reset to %d", self.start_value)
