"""
Referrer blocklist.

Loaded once at process start and handed to the aggregator by reference.
One substring per line; a referrer URL is blocked when it *contains* any
entry anywhere (no anchoring, no normalization). Deliberately loose: an
entry like ``spam.test`` also blocks ``https://notspam.test/?x=1``.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class Blocklist:
    """In-memory list of blocked referrer substrings."""

    def __init__(self, entries: list[str] | None = None, path: Path | str | None = None):
        self._path = Path(path) if path else None
        self._entries: list[str] = [e for e in (entries or []) if e]

    @classmethod
    def from_file(cls, path: Path | str) -> "Blocklist":
        blocklist = cls(path=path)
        blocklist.reload()
        return blocklist

    def reload(self) -> int:
        """Re-read the backing file. Missing file ⇒ empty list. Returns entry count."""
        if self._path is None:
            return len(self._entries)

        if not self._path.is_file():
            logger.info("No blocklist at %s — referrer filtering disabled", self._path)
            self._entries = []
            return 0

        with self._path.open(encoding="utf-8") as fh:
            # strip only the line terminator; blank lines would match everything
            self._entries = [line.rstrip("\r\n") for line in fh if line.rstrip("\r\n")]

        logger.info("Loaded %d blocklist entries from %s", len(self._entries), self._path)
        return len(self._entries)

    def is_blocked(self, referrer_url: str) -> bool:
        if referrer_url == "":
            return False
        return any(entry in referrer_url for entry in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self):
        return f"<Blocklist {len(self._entries)} entries from {self._path}>"
